from __future__ import annotations

import copy
import re
from dataclasses import dataclass, field
from typing import Any, ClassVar, Iterable, Iterator, Sequence

from .errors import StructureError

NodePath = tuple[int, ...]

BOLD_KIND = "bold"
ITALIC_KIND = "italic"
STRIKE_KIND = "strike"
UNDERLINE_KIND = "underline"
LINK_KIND = "link"
CODE_KIND = "code"

# What `@label` can carry on disk; anything else would re-read as a different mention.
MENTION_LABEL_RE = re.compile(r"[\w-]+")

# Outside-in nesting order used by the serializer; link and code stay innermost.
MARK_ORDER = (BOLD_KIND, ITALIC_KIND, STRIKE_KIND, UNDERLINE_KIND, LINK_KIND, CODE_KIND)


@dataclass(frozen=True)
class Mark:
    kind: str  # one of MARK_ORDER
    href: str | None = None  # only for "link"

    def __post_init__(self) -> None:
        if self.kind not in MARK_ORDER:
            raise StructureError(f"Unknown mark kind {self.kind!r}")
        if self.kind == LINK_KIND and not isinstance(self.href, str):
            raise StructureError("Link mark requires an href")
        if self.kind != LINK_KIND and self.href is not None:
            raise StructureError(f"{self.kind} mark takes no href")

    @property
    def rank(self) -> int:
        return MARK_ORDER.index(self.kind)


BOLD = Mark(BOLD_KIND)
ITALIC = Mark(ITALIC_KIND)
STRIKE = Mark(STRIKE_KIND)
UNDERLINE = Mark(UNDERLINE_KIND)
CODE = Mark(CODE_KIND)


def link(href: str) -> Mark:
    return Mark(LINK_KIND, href)


def sorted_marks(marks: Iterable[Mark]) -> list[Mark]:
    return sorted(marks, key=lambda m: m.rank)


class Node:
    """Base of the closed node set.

    `group` says where a node may appear ("block", "inline", "list_item",
    "task_item"); `content` says what a container accepts (same vocabulary,
    plus "text" for unmarked Text only). Leaves have content None.
    """

    kind: ClassVar[str] = "node"
    group: ClassVar[str] = ""
    content: ClassVar[str | None] = None

    def __post_init__(self) -> None:
        if self.content is not None:
            self.children = list(self.children)
            check_content(self, self.children)


def check_content(parent: Node, children: Sequence[Any]) -> None:
    """Reject children that the parent's content expression does not allow."""
    expected = parent.content
    if expected is None:
        raise StructureError(f"{parent.kind} cannot have children")
    seen: set[int] = set()
    for child in children:
        if not isinstance(child, Node):
            raise StructureError(f"{parent.kind} child is not a node: {child!r}")
        if id(child) in seen:
            raise StructureError(f"Same {child.kind} node appears twice in {parent.kind}")
        seen.add(id(child))
        if expected == "text":
            if not isinstance(child, Text) or child.marks:
                raise StructureError(f"{parent.kind} only accepts unmarked text, got {child.kind}")
        elif child.group != expected:
            raise StructureError(f"{parent.kind} cannot contain {child.kind} ({child.group})")


# -- inline leaves -----------------------------------------------------------


@dataclass
class Text(Node):
    value: str
    marks: frozenset[Mark] = field(default_factory=frozenset)

    kind: ClassVar[str] = "text"
    group: ClassVar[str] = "inline"

    def __post_init__(self) -> None:
        if not isinstance(self.value, str):
            raise StructureError("Text value must be a string")
        self.marks = frozenset(self.marks)
        for mark in self.marks:
            if not isinstance(mark, Mark):
                raise StructureError(f"Not a mark: {mark!r}")
        if sum(1 for m in self.marks if m.kind == LINK_KIND) > 1:
            raise StructureError("Text carries more than one link mark")


@dataclass
class HardBreak(Node):
    kind: ClassVar[str] = "hard_break"
    group: ClassVar[str] = "inline"


@dataclass
class WikiLink(Node):
    target: str
    alias: str | None = None

    kind: ClassVar[str] = "wikilink"
    group: ClassVar[str] = "inline"

    @property
    def display(self) -> str:
        return self.alias or self.target


@dataclass
class Mention(Node):
    id: str
    label: str

    kind: ClassVar[str] = "mention"
    group: ClassVar[str] = "inline"


@dataclass
class Image(Node):
    src: str
    alt: str | None = None

    kind: ClassVar[str] = "image"
    group: ClassVar[str] = "inline"


# -- blocks ------------------------------------------------------------------


@dataclass
class Paragraph(Node):
    children: list[Node] = field(default_factory=list)

    kind: ClassVar[str] = "paragraph"
    group: ClassVar[str] = "block"
    content: ClassVar[str | None] = "inline"


@dataclass
class Heading(Node):
    level: int = 1
    children: list[Node] = field(default_factory=list)

    kind: ClassVar[str] = "heading"
    group: ClassVar[str] = "block"
    content: ClassVar[str | None] = "inline"

    def __post_init__(self) -> None:
        if not isinstance(self.level, int) or not 1 <= self.level <= 6:
            raise StructureError(f"Heading level must be 1..6, got {self.level!r}")
        super().__post_init__()


@dataclass
class CodeBlock(Node):
    language: str | None = None
    children: list[Node] = field(default_factory=list)

    kind: ClassVar[str] = "code_block"
    group: ClassVar[str] = "block"
    content: ClassVar[str | None] = "text"

    @property
    def text(self) -> str:
        return "".join(child.value for child in self.children)


@dataclass
class Blockquote(Node):
    children: list[Node] = field(default_factory=list)

    kind: ClassVar[str] = "blockquote"
    group: ClassVar[str] = "block"
    content: ClassVar[str | None] = "block"


@dataclass
class HorizontalRule(Node):
    kind: ClassVar[str] = "horizontal_rule"
    group: ClassVar[str] = "block"


@dataclass
class ListItem(Node):
    children: list[Node] = field(default_factory=list)

    kind: ClassVar[str] = "list_item"
    group: ClassVar[str] = "list_item"
    content: ClassVar[str | None] = "block"


@dataclass
class BulletList(Node):
    children: list[Node] = field(default_factory=list)

    kind: ClassVar[str] = "bullet_list"
    group: ClassVar[str] = "block"
    content: ClassVar[str | None] = "list_item"


@dataclass
class OrderedList(Node):
    children: list[Node] = field(default_factory=list)
    start: int = 1

    kind: ClassVar[str] = "ordered_list"
    group: ClassVar[str] = "block"
    content: ClassVar[str | None] = "list_item"


@dataclass
class TaskItem(Node):
    checked: bool = False
    children: list[Node] = field(default_factory=list)

    kind: ClassVar[str] = "task_item"
    group: ClassVar[str] = "task_item"
    content: ClassVar[str | None] = "block"


@dataclass
class TaskList(Node):
    children: list[Node] = field(default_factory=list)

    kind: ClassVar[str] = "task_list"
    group: ClassVar[str] = "block"
    content: ClassVar[str | None] = "task_item"


@dataclass
class Document(Node):
    children: list[Node] = field(default_factory=list)

    kind: ClassVar[str] = "document"
    content: ClassVar[str | None] = "block"


TEXT_BLOCKS = (Paragraph, Heading, CodeBlock)
ATOMS = (WikiLink, Mention, Image)


@dataclass(frozen=True)
class Position:
    path: NodePath  # path of a text block
    offset: int


@dataclass(frozen=True)
class Selection:
    path: NodePath
    start: int
    end: int

    @classmethod
    def cursor(cls, path: NodePath, offset: int) -> "Selection":
        return cls(tuple(path), offset, offset)

    @property
    def empty(self) -> bool:
        return self.start == self.end

    @property
    def head(self) -> Position:
        return Position(self.path, self.end)


# -- tree paths --------------------------------------------------------------


def walk(root: Node, path: NodePath = ()) -> Iterator[tuple[NodePath, Node]]:
    """Depth-first (pre-order) traversal yielding (path, node)."""
    yield path, root
    for i, child in enumerate(getattr(root, "children", None) or []):
        yield from walk(child, path + (i,))


def node_at(root: Node, path: Sequence[int]) -> Node:
    node = root
    for depth, index in enumerate(path):
        children = getattr(node, "children", None)
        if children is None or not 0 <= index < len(children):
            raise StructureError(f"No node at path {tuple(path[: depth + 1])}")
        node = children[index]
    return node


def _attach(root: Node, parent: Node, nodes: Sequence[Node], leaving: Node | None = None) -> None:
    """Check that `nodes` fit `parent` and share no node with the tree.

    Nodes inside `leaving` (the subtree being replaced) may be reused.
    """
    check_content(parent, list(nodes))
    attached = {id(n) for _p, n in walk(root)}
    if leaving is not None:
        attached -= {id(n) for _p, n in walk(leaving)}
    for node in nodes:
        for _p, inner in walk(node):
            if id(inner) in attached:
                raise StructureError(f"{inner.kind} node is already part of the tree")


def insert_at(root: Node, path: Sequence[int], node: Node) -> None:
    """Insert `node` so that it ends up at `path`."""
    if not path:
        raise StructureError("Cannot insert at the root path")
    parent = node_at(root, path[:-1])
    index = path[-1]
    if parent.content is None or not 0 <= index <= len(parent.children):
        raise StructureError(f"Cannot insert at path {tuple(path)}")
    _attach(root, parent, [node])
    parent.children.insert(index, node)


def delete_at(root: Node, path: Sequence[int]) -> Node:
    if not path:
        raise StructureError("Cannot delete the root")
    parent = node_at(root, path[:-1])
    node_at(root, path)
    return parent.children.pop(path[-1])


def replace_at(root: Node, path: Sequence[int], *nodes: Node) -> None:
    """Whole-subtree replacement of the node at `path` by zero or more nodes."""
    if not path:
        raise StructureError("Cannot replace the root")
    parent = node_at(root, path[:-1])
    index = path[-1]
    old = node_at(root, path)
    _attach(root, parent, nodes, leaving=old)
    parent.children[index : index + 1] = list(nodes)


# -- inline content ----------------------------------------------------------


def inline_size(node: Node) -> int:
    return len(node.value) if isinstance(node, Text) else 1


def inline_length(nodes: Iterable[Node]) -> int:
    return sum(inline_size(n) for n in nodes)


def split_inline(nodes: Sequence[Node], offset: int) -> tuple[list[Node], list[Node]]:
    """Split inline content at `offset`, cutting a Text node when needed."""
    left: list[Node] = []
    right: list[Node] = []
    pos = 0
    for node in nodes:
        size = inline_size(node)
        if pos + size <= offset:
            left.append(node)
        elif pos >= offset:
            right.append(node)
        else:
            cut = offset - pos
            left.append(Text(node.value[:cut], node.marks))
            right.append(Text(node.value[cut:], node.marks))
        pos += size
    return left, right


def _expand_breaks(nodes: Iterable[Node]) -> Iterator[Node]:
    for node in nodes:
        if not isinstance(node, Text) or "\n" not in node.value:
            yield node
            continue
        for i, piece in enumerate(node.value.split("\n")):
            if i:
                yield HardBreak()
            yield Text(piece, node.marks)


def normalize_inline(nodes: Iterable[Node], breaks: bool = True) -> list[Node]:
    """Canonical inline form: merged equal-mark text, no empty text.

    With `breaks`, newlines inside Text become HardBreak nodes.
    """
    out: list[Node] = []
    for node in _expand_breaks(nodes) if breaks else nodes:
        if isinstance(node, Text):
            if not node.value:
                continue
            prev = out[-1] if out else None
            if isinstance(prev, Text) and prev.marks == node.marks:
                out[-1] = Text(prev.value + node.value, prev.marks)
                continue
        out.append(node)
    return out


def _text_block(root: Node, path: Sequence[int]) -> Node:
    block = node_at(root, path)
    if not isinstance(block, TEXT_BLOCKS):
        raise StructureError(f"{block.kind} at {tuple(path)} is not a text block")
    return block


def replace_inline_range(
    root: Node, path: Sequence[int], start: int, end: int, nodes: Sequence[Node]
) -> int:
    """Replace [start, end) of a text block with copies of `nodes`.

    Returns the offset right after the inserted content.
    """
    block = _text_block(root, path)
    if not 0 <= start <= end <= inline_length(block.children):
        raise StructureError(f"Range {start}..{end} outside {block.kind}")
    fresh = [copy.deepcopy(n) for n in nodes]
    head, rest = split_inline(block.children, start)
    _middle, tail = split_inline(rest, end - start)
    is_code = isinstance(block, CodeBlock)
    children = normalize_inline(head + fresh + tail, breaks=not is_code)
    check_content(block, children)
    block.children = children
    return start + inline_length(fresh)


def add_mark_range(root: Node, path: Sequence[int], start: int, end: int, mark: Mark) -> None:
    """Apply `mark` to every Text in [start, end); a link replaces any previous link."""
    block = _text_block(root, path)
    if isinstance(block, CodeBlock):
        raise StructureError("Code blocks do not carry marks")
    head, rest = split_inline(block.children, start)
    middle, tail = split_inline(rest, end - start)
    marked: list[Node] = []
    for node in middle:
        if isinstance(node, Text):
            kept = {m for m in node.marks if not (mark.kind == LINK_KIND and m.kind == LINK_KIND)}
            marked.append(Text(node.value, frozenset(kept | {mark})))
        else:
            marked.append(node)
    block.children = normalize_inline(head + marked + tail)


def plain_text(nodes: Iterable[Node]) -> str:
    parts = []
    for node in nodes:
        if isinstance(node, Text):
            parts.append(node.value)
        elif isinstance(node, HardBreak):
            parts.append("\n")
        elif isinstance(node, WikiLink):
            parts.append(node.display)
        elif isinstance(node, Mention):
            parts.append(f"@{node.label}")
        elif isinstance(node, Image):
            parts.append(node.alt or "")
    return "".join(parts)


def text_between(root: Node, path: Sequence[int], start: int, end: int) -> str:
    block = _text_block(root, path)
    _head, rest = split_inline(block.children, start)
    middle, _tail = split_inline(rest, end - start)
    return plain_text(middle)


def to_dict(node: Node) -> dict[str, Any]:
    """JSON-friendly view of a node, used by the CLI tree dump."""
    out: dict[str, Any] = {"type": node.kind}
    if isinstance(node, Text):
        out["text"] = node.value
        if node.marks:
            out["marks"] = [
                {"type": m.kind, "href": m.href} if m.href is not None else {"type": m.kind}
                for m in sorted_marks(node.marks)
            ]
        return out
    for attr in ("level", "language", "start", "checked", "target", "alias", "id", "label", "src", "alt"):
        if hasattr(node, attr):
            out[attr] = getattr(node, attr)
    if node.content is not None:
        out["children"] = [to_dict(child) for child in node.children]
    return out
