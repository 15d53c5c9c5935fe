import logging
import re
from typing import NamedTuple

from ..core.errors import UNTERMINATED_INLINE_SYNTAX, Issue
from ..core.model import (
    Blockquote,
    BulletList,
    CodeBlock,
    Document,
    Heading,
    HorizontalRule,
    ListItem,
    Node,
    OrderedList,
    Paragraph,
    TaskItem,
    TaskList,
    Text,
)
from ..core.ports import ParserStrategy
from .inline_parser import InlineParser

logger = logging.getLogger(__name__)

HEADING_RE = re.compile(r"^(#{1,6})(?:[ \t](.*))?$")
FENCE_START_RE = re.compile(r"^(`{3,})[ \t]*([^`]*)$")
HR_RE = re.compile(r"^([-*_])(?:[ \t]*\1){2,}[ \t]*$")
QUOTE_RE = re.compile(r"^>[ ]?(.*)$")
BULLET_RE = re.compile(r"^([-*+])(?:[ \t](.*))?$")
ORDERED_RE = re.compile(r"^(\d{1,9})\.(?:[ \t](.*))?$")
TASK_RE = re.compile(r"^\[([ xX])\](?:[ \t](.*))?$")

INDENT = "  "


class _Marker(NamedTuple):
    kind: str  # "bullet" | "ordered" | "task"
    content: str
    number: int = 1
    checked: bool = False


def list_marker(line: str) -> _Marker | None:
    if HR_RE.match(line):
        return None
    m = ORDERED_RE.match(line)
    if m:
        return _Marker("ordered", m.group(2) or "", number=int(m.group(1)))
    m = BULLET_RE.match(line)
    if not m:
        return None
    content = m.group(2) or ""
    task = TASK_RE.match(content)
    if task:
        return _Marker("task", task.group(2) or "", checked=task.group(1) != " ")
    return _Marker("bullet", content)


def starts_block(line: str) -> bool:
    """True when `line` would open a block other than a paragraph."""
    return bool(
        HEADING_RE.match(line)
        or FENCE_START_RE.match(line)
        or HR_RE.match(line)
        or line.startswith(">")
        or list_marker(line)
    )


def _next_content(lines: list[str], i: int) -> int | None:
    while i < len(lines):
        if lines[i].strip():
            return i
        i += 1
    return None


class MarkdownParser(ParserStrategy):
    """Markdown body -> Document.

    Block structure is recognised at column 0 only; nested content is
    indented by two spaces. Anything that fails to parse is kept as
    paragraph text and reported through `issues`.
    """

    def __init__(self, inline: InlineParser | None = None):
        self.inline = inline or InlineParser()

    def parse(self, text: str, issues: list[Issue] | None = None) -> Document:
        lines = text.replace("\r\n", "\n").replace("\r", "\n").split("\n")
        return Document(self._blocks(lines, issues))

    def _blocks(self, lines: list[str], issues: list[Issue] | None) -> list[Node]:
        blocks: list[Node] = []
        i = 0
        while i < len(lines):
            line = lines[i]
            if not line.strip():
                i += 1
                continue

            fence = FENCE_START_RE.match(line)
            if fence:
                end = self._fence_end(lines, i + 1, len(fence.group(1)))
                if end is not None:
                    info = fence.group(2).split()
                    body = "\n".join(lines[i + 1 : end])
                    blocks.append(CodeBlock(info[0] if info else None, [Text(body)] if body else []))
                    i = end + 1
                    continue
                logger.info("Unterminated code fence %r kept as text", line)
                if issues is not None:
                    issues.append(Issue(UNTERMINATED_INLINE_SYNTAX, f"Unterminated code fence: {line!r}"))
                i = self._paragraph(lines, i, blocks, issues)
                continue

            heading = HEADING_RE.match(line)
            if heading:
                children = self.inline.parse(heading.group(2) or "", issues)
                blocks.append(Heading(len(heading.group(1)), children))
                i += 1
                continue

            if HR_RE.match(line):
                blocks.append(HorizontalRule())
                i += 1
                continue

            if line.startswith(">"):
                inner = []
                while i < len(lines) and lines[i].startswith(">"):
                    inner.append(QUOTE_RE.match(lines[i]).group(1))
                    i += 1
                blocks.append(Blockquote(self._blocks(inner, issues)))
                continue

            marker = list_marker(line)
            if marker:
                i = self._list(lines, i, marker.kind, blocks, issues)
                continue

            i = self._paragraph(lines, i, blocks, issues)
        return blocks

    def _fence_end(self, lines: list[str], start: int, length: int) -> int | None:
        closing = re.compile(r"^`{%d,}[ \t]*$" % length)
        for j in range(start, len(lines)):
            if closing.match(lines[j]):
                return j
        return None

    def _paragraph(self, lines, i, blocks, issues) -> int:
        collected = [lines[i]]
        i += 1
        while i < len(lines) and lines[i].strip() and not starts_block(lines[i]):
            collected.append(lines[i])
            i += 1
        blocks.append(Paragraph(self.inline.parse("\n".join(collected), issues)))
        return i

    def _list(self, lines, i, kind, blocks, issues) -> int:
        items: list[Node] = []
        start = 1
        while i < len(lines):
            marker = list_marker(lines[i])
            if marker is None or marker.kind != kind:
                break
            if not items:
                start = marker.number
            item_lines = [marker.content]
            i += 1
            while i < len(lines):
                line = lines[i]
                if not line.strip():
                    nxt = _next_content(lines, i)
                    if nxt is not None and lines[nxt].startswith(INDENT):
                        item_lines.extend([""] * (nxt - i))
                        i = nxt
                        continue
                    break
                if line.startswith(INDENT):
                    item_lines.append(line[len(INDENT) :])
                elif starts_block(line):
                    break
                else:
                    # lazy continuation of the item's last paragraph
                    item_lines.append(line)
                i += 1
            children = self._blocks(item_lines, issues) or [Paragraph()]
            if kind == "task":
                items.append(TaskItem(marker.checked, children))
            else:
                items.append(ListItem(children))
            # a blank line ends the list; the next marker starts a new one

        if kind == "task":
            blocks.append(TaskList(items))
        elif kind == "ordered":
            blocks.append(OrderedList(items, start=start))
        else:
            blocks.append(BulletList(items))
        return i
