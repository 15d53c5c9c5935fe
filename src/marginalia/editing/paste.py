"""Clipboard payload + selection -> node or mark to insert."""

import asyncio
import logging
import re
from dataclasses import dataclass, field
from typing import Iterable

from ..adapters.idgen import AttachmentNamer
from ..core.model import (
    CodeBlock,
    Document,
    Image,
    Mark,
    Node,
    Selection,
    Text,
    WikiLink,
    add_mark_range,
    link,
    node_at,
    replace_inline_range,
)
from ..core.ports import FileStore, PathResolver

logger = logging.getLogger(__name__)

WIKILINK_RE = re.compile(r"^\[\[([^\[\]|\n]+)(?:\|([^\[\]\n]*))?\]\]$")
MD_LINK_RE = re.compile(r"^\[([^\]\n]+)\]\(([^)\s]+)\)$")
DOMAIN_RE = re.compile(r"^[A-Za-z0-9-]+(?:\.[A-Za-z0-9-]+)*\.[A-Za-z]{2,}(?:[/?#]\S*)?$")


@dataclass
class Clipboard:
    text: str = ""
    image: bytes | None = None
    mime: str | None = None  # e.g. "image/png"


@dataclass
class PasteOutcome:
    kind: str  # "image" | "wikilink" | "link" | "text"
    text: str = ""  # what a code block receives verbatim
    nodes: list[Node] = field(default_factory=list)  # inserted when nothing is selected
    mark: Mark | None = None  # applied over a non-empty selection
    data: bytes | None = None
    mime: str | None = None


class PasteClassifier:
    def __init__(self, resolver: PathResolver, uri_schemes: Iterable[str] = ("obsidian",)):
        self.resolver = resolver
        schemes = "|".join(re.escape(s) for s in uri_schemes)
        absolute = r"https?://|file:///" + (f"|(?:{schemes})://" if schemes else "")
        self._absolute_re = re.compile(rf"^(?:{absolute})\S*$", re.IGNORECASE)

    def classify(self, clipboard: Clipboard, selection: Selection) -> PasteOutcome:
        """First matching rule wins; a non-empty selection turns links into marks."""
        if clipboard.image:
            return PasteOutcome("image", data=clipboard.image, mime=clipboard.mime)

        text = clipboard.text
        candidate = text.strip()
        selected = not selection.empty

        m = WIKILINK_RE.match(candidate)
        if m:
            target, alias = m.group(1), m.group(2) or None
            if selected:
                return self._link(text, candidate, self._resolve(target) or target, selected)
            return PasteOutcome("wikilink", text=text, nodes=[WikiLink(target=target, alias=alias)])

        m = MD_LINK_RE.match(candidate)
        if m:
            return self._link(text, m.group(1), m.group(2), selected)

        href = self.derive_href(candidate)
        if href is not None:
            return self._link(text, candidate, href, selected)

        return PasteOutcome("text", text=text, nodes=[Text(text)] if text else [])

    def derive_href(self, candidate: str) -> str | None:
        if not candidate or "\n" in candidate:
            return None
        if self._absolute_re.match(candidate):
            return candidate
        path = self._resolve(candidate)
        if path is not None:
            return path
        if DOMAIN_RE.match(candidate):
            return "https://" + candidate
        return None

    def apply(self, doc: Document, selection: Selection, outcome: PasteOutcome) -> Selection:
        """Mutate `doc` and return the resulting cursor (or the kept selection)."""
        block = node_at(doc, selection.path)
        if isinstance(block, CodeBlock):
            end = replace_inline_range(
                doc, selection.path, selection.start, selection.end, [Text(outcome.text)] if outcome.text else []
            )
            return Selection.cursor(selection.path, end)
        if outcome.mark is not None and not selection.empty:
            add_mark_range(doc, selection.path, selection.start, selection.end, outcome.mark)
            return selection
        end = replace_inline_range(doc, selection.path, selection.start, selection.end, outcome.nodes)
        return Selection.cursor(selection.path, end)

    def _link(self, text: str, label: str, href: str, selected: bool) -> PasteOutcome:
        mark = link(href)
        if selected:
            return PasteOutcome("link", text=text, mark=mark)
        return PasteOutcome("link", text=text, nodes=[Text(label, frozenset({mark}))], mark=mark)

    def _resolve(self, name: str) -> str | None:
        try:
            return self.resolver.resolve(name)
        except OSError as exc:
            logger.warning("Path lookup for %r failed: %s", name, exc)
            return None


async def save_attachment(
    store: FileStore, namer: AttachmentNamer, folder: str, data: bytes, mime: str | None
) -> str:
    """Persist pasted image bytes and return their vault path."""
    folder = folder.strip("/")
    if folder and not await asyncio.to_thread(store.exists, folder):
        await asyncio.to_thread(store.create_folder, folder)
    name = namer.new_name(mime)
    path = f"{folder}/{name}" if folder else name
    await asyncio.to_thread(store.write, path, data)
    logger.info("Saved pasted image to %s", path)
    return path


def image_outcome(src: str) -> PasteOutcome:
    return PasteOutcome("image", text=src, nodes=[Image(src=src)])
