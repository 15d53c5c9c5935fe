import logging

from ..adapters.idgen import AttachmentNamer
from ..config import AttachmentConfig
from ..core.errors import Issue
from ..core.meta import MetaBag
from ..core.model import (
    Document,
    Mention,
    Node,
    Position,
    Selection,
    Text,
    WikiLink,
    replace_inline_range,
)
from ..core.ports import FileStore, MetadataCodec, ParserStrategy, PathResolver, SerializerStrategy
from .paste import Clipboard, PasteClassifier, image_outcome, save_attachment
from .suggestion import SuggestionEngine

logger = logging.getLogger(__name__)


class EditorSession:
    """One open file: its metadata, its tree and its suggestion engine.

    Every `load` replaces all three; nothing from the previous file survives.
    """

    def __init__(
        self,
        codec: MetadataCodec,
        parser: ParserStrategy,
        serializer: SerializerStrategy,
        classifier: PasteClassifier,
        engine: SuggestionEngine,
        resolver: PathResolver,
        store: FileStore | None = None,
        attachments: AttachmentConfig | None = None,
        namer: AttachmentNamer | None = None,
    ):
        self.codec = codec
        self.parser = parser
        self.serializer = serializer
        self.classifier = classifier
        self.engine = engine
        self.resolver = resolver
        self.store = store
        self.attachments = attachments or AttachmentConfig()
        self.namer = namer or AttachmentNamer(self.attachments.prefix)

        self.meta = MetaBag()
        self.doc = Document()
        self.cursor: Position | None = None
        self.load_issues: list[Issue] = []
        self.serialize_issues: list[Issue] = []
        self._generation = 0
        self._trailing_newline = False
        self.engine.reset(self.doc)

    @property
    def issues(self) -> list[Issue]:
        return self.load_issues + self.serialize_issues + self.engine.issues

    def load(self, raw: str) -> Document:
        self._generation += 1
        self.load_issues = []
        self.serialize_issues = []
        meta, body = self.codec.split(raw, self.load_issues)
        self.meta = meta
        self._trailing_newline = body.endswith("\n")
        self.doc = self.parser.parse(body, self.load_issues)
        self.cursor = None
        self.engine.reset(self.doc)
        logger.debug("Loaded document with %d blocks", len(self.doc.children))
        return self.doc

    def serialize(self) -> str:
        self.serialize_issues = []
        body = self.serializer.serialize(self.doc, self.serialize_issues)
        if self._trailing_newline and not body.endswith("\n"):
            body += "\n"
        return self.codec.join(self.meta, body)

    # -- keystrokes --------------------------------------------------------

    def type_text(self, position: Position, text: str) -> Position:
        end = replace_inline_range(self.doc, position.path, position.offset, position.offset, [Text(text)])
        self.cursor = Position(position.path, end)
        self.engine.handle_text(self.cursor, text)
        return self.cursor

    def delete_backward(self, position: Position) -> Position:
        if position.offset == 0:
            self.cursor = position
            return position
        replace_inline_range(self.doc, position.path, position.offset - 1, position.offset, [])
        self.cursor = Position(position.path, position.offset - 1)
        self.engine.handle_delete(self.cursor)
        return self.cursor

    def move_cursor(self, position: Position) -> None:
        self.cursor = position
        self.engine.handle_cursor(position)

    def key_down(self, key: str) -> bool:
        """Give the suggestion engine first refusal; True means the key was consumed."""
        handled = self.engine.handle_key(key)
        if self.engine.last_commit is not None:
            self.cursor = self.engine.last_commit
        return handled

    # -- paste / follow ----------------------------------------------------

    async def paste(self, clipboard: Clipboard, selection: Selection) -> Selection | None:
        """Classify and apply a paste; None when it was dropped."""
        generation = self._generation
        outcome = self.classifier.classify(clipboard, selection)
        if outcome.kind == "image":
            if self.store is None:
                logger.warning("No file store configured; pasted image dropped")
                return None
            try:
                src = await save_attachment(
                    self.store, self.namer, self.attachments.folder, outcome.data, outcome.mime
                )
            except OSError as exc:
                logger.error("Failed to paste image: %s", exc)
                return None
            if generation != self._generation:
                logger.info("Discarding image paste for a document that is no longer loaded")
                return None
            outcome = image_outcome(src)
        result = self.classifier.apply(self.doc, selection, outcome)
        self.cursor = result.head
        return result

    def follow(self, node: Node) -> str | None:
        """Vault path a wikilink or mention points at; never mutates the tree."""
        try:
            if isinstance(node, WikiLink):
                return self.resolver.resolve(node.target)
            if isinstance(node, Mention):
                return self.resolver.resolve(node.id) or self.resolver.resolve(node.label)
        except Exception as exc:  # never raises
            logger.warning("Could not follow %s: %s", getattr(node, "kind", node), exc)
        return None
