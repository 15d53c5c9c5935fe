from __future__ import annotations

from typing import Any, Protocol, Sequence

from .errors import Issue
from .meta import MetaBag
from .model import Document, Position, Selection


class FileStore(Protocol):
    """
    Binary file access relative to the vault root ("attachments/x.png").
    """

    def read(self, path: str) -> bytes:
        pass

    def write(self, path: str, data: bytes) -> None:
        pass

    def exists(self, path: str) -> bool:
        pass

    def create_folder(self, path: str) -> None:
        pass


class PathResolver(Protocol):
    """
    Name -> vault path: exact match, then name + ".md", then basename search.
    """

    def resolve(self, name: str) -> str | None:
        pass


class MetadataCodec(Protocol):
    """
    Split a leading metadata header off the body and join it back on save.
    MUST NOT fail on malformed headers.
    """

    def split(self, text: str, issues: list[Issue] | None = None) -> tuple[MetaBag, str]:
        pass

    def join(self, meta: MetaBag, body: str) -> str:
        pass


class ParserStrategy(Protocol):
    """
    Markdown body -> fresh Document. Malformed input degrades to literal text.
    """

    def parse(self, text: str, issues: list[Issue] | None = None) -> Document:
        pass


class SerializerStrategy(Protocol):
    """
    Document -> markdown body. Pure and synchronous.
    """

    def serialize(self, doc: Document, issues: list[Issue] | None = None) -> str:
        pass


class ItemSource(Protocol):
    """
    Suggestion items for one trigger character.
    """

    id: str
    trigger: str
    query_pattern: Any  # compiled regex a single query character must match

    async def query(self, text: str) -> Sequence[Any]:
        pass

    def command(self, doc: Document, span: Selection, item: Any) -> Position:
        pass
