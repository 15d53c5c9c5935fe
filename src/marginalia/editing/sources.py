import logging
import re
from pathlib import PurePosixPath
from typing import Callable

from ..adapters.resolver_index import VaultIndex
from ..core.model import (
    MENTION_LABEL_RE,
    Blockquote,
    BulletList,
    CodeBlock,
    Document,
    Heading,
    HorizontalRule,
    ListItem,
    Mention,
    Node,
    OrderedList,
    Paragraph,
    Position,
    Selection,
    TaskItem,
    TaskList,
    Text,
    insert_at,
    node_at,
    normalize_inline,
    plain_text,
    replace_at,
    replace_inline_range,
)
from .suggestion import SuggestionItem

logger = logging.getLogger(__name__)


class MentionSource:
    """`@` + part of a note's file name -> Mention of that note."""

    id = "mention"
    query_pattern = re.compile(r"[\w\-.]")

    def __init__(self, index: VaultIndex, max_items: int = 10, trigger: str = "@"):
        self.index = index
        self.max_items = max_items
        self.trigger = trigger

    async def query(self, text: str) -> list[SuggestionItem]:
        needle = text.lower()
        out = []
        for path in self.index.markdown_files():
            name = PurePosixPath(path).stem
            # a name @label cannot spell would not survive a save
            if not MENTION_LABEL_RE.fullmatch(name):
                logger.debug("Skipping %s: not writable as a mention", path)
                continue
            if needle in name.lower():
                out.append(SuggestionItem(id=path, label=name))
                if len(out) >= self.max_items:
                    break
        return out

    def command(self, doc: Document, span: Selection, item: SuggestionItem) -> Position:
        end = replace_inline_range(
            doc, span.path, span.start, span.end, [Mention(id=item.id, label=item.label), Text(" ")]
        )
        return Position(span.path, end)


# Block transforms take (doc, path, offset) of the emptied-out span and return the new cursor.
BlockCommand = Callable[[Document, tuple, int], Position]


def _inline_of(block: Node) -> list[Node]:
    if isinstance(block, CodeBlock):
        return normalize_inline(block.children)
    return list(block.children)


def _set_heading(level: int) -> BlockCommand:
    def run(doc: Document, path: tuple, offset: int) -> Position:
        block = node_at(doc, path)
        replace_at(doc, path, Heading(level, _inline_of(block)))
        return Position(path, offset)

    return run


def _wrap(make: Callable[[Paragraph], Node], depth: int) -> BlockCommand:
    def run(doc: Document, path: tuple, offset: int) -> Position:
        block = node_at(doc, path)
        replace_at(doc, path, make(Paragraph(_inline_of(block))))
        return Position(path + (0,) * depth, offset)

    return run


def _set_code_block(doc: Document, path: tuple, offset: int) -> Position:
    block = node_at(doc, path)
    text = block.text if isinstance(block, CodeBlock) else plain_text(block.children)
    replace_at(doc, path, CodeBlock(None, [Text(text)] if text else []))
    return Position(path, min(offset, len(text)))


def _divider(doc: Document, path: tuple, offset: int) -> Position:
    block = node_at(doc, path)
    after = path[:-1] + (path[-1] + 1,)
    if block.children:
        insert_at(doc, after, HorizontalRule())
        return Position(path, offset)
    replace_at(doc, path, HorizontalRule(), Paragraph())
    return Position(after, 0)


BLOCK_COMMANDS: list[tuple[str, BlockCommand]] = [
    ("Heading 1", _set_heading(1)),
    ("Heading 2", _set_heading(2)),
    ("Heading 3", _set_heading(3)),
    ("Bullet List", _wrap(lambda p: BulletList([ListItem([p])]), 2)),
    ("Numbered List", _wrap(lambda p: OrderedList([ListItem([p])]), 2)),
    ("Task List", _wrap(lambda p: TaskList([TaskItem(False, [p])]), 2)),
    ("Code Block", _set_code_block),
    ("Quote", _wrap(lambda p: Blockquote([p]), 1)),
    ("Divider", _divider),
]


class SlashCommandSource:
    """`/` + part of a command title -> block transform of the current block."""

    id = "slash"
    query_pattern = re.compile(r"\w")

    def __init__(self, max_items: int = 10, trigger: str = "/"):
        self.max_items = max_items
        self.trigger = trigger

    async def query(self, text: str) -> list[SuggestionItem]:
        needle = text.lower()
        hits = [
            SuggestionItem(id=title.lower().replace(" ", "-"), label=title, data=run)
            for title, run in BLOCK_COMMANDS
            if needle in title.lower()
        ]
        return hits[: self.max_items]

    def command(self, doc: Document, span: Selection, item: SuggestionItem) -> Position:
        replace_inline_range(doc, span.path, span.start, span.end, [])
        logger.debug("Running block command %s at %s", item.label, span.path)
        return item.data(doc, tuple(span.path), span.start)
