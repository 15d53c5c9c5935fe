"""Document -> markdown body.

Marks stay open across adjacent text nodes that share them, and a mark is
only reopened when the prefix of open marks changes. Bold and italic share
the `*` delimiter, so whenever the set of those two changes both are closed
and reopened together; that keeps every run of `*` splittable into "close
what is open, then open the rest" when the text is read back.
"""

import logging
import re

from ..core.errors import MISSING_REQUIRED_ATTRIBUTE, Issue
from ..core.model import (
    BOLD_KIND,
    CODE,
    ITALIC_KIND,
    LINK_KIND,
    MENTION_LABEL_RE,
    Blockquote,
    BulletList,
    CodeBlock,
    Document,
    HardBreak,
    Heading,
    HorizontalRule,
    Image,
    ListItem,
    Mark,
    Mention,
    Node,
    OrderedList,
    Paragraph,
    TaskItem,
    TaskList,
    Text,
    WikiLink,
    sorted_marks,
)
from ..core.ports import SerializerStrategy

logger = logging.getLogger(__name__)

_STAR_KINDS = (BOLD_KIND, ITALIC_KIND)
_ALWAYS_ESCAPED = frozenset("\\*~[]`")
_WORD_RE = re.compile(r"[\w-]")
# continuation characters that can be escaped so they do not extend a mention label
_LABEL_PUNCT = frozenset("-_")
_TAG_START_RE = re.compile(r"[A-Za-z/]")
_BACKTICKS_RE = re.compile(r"`+")
_LINE_START_RES = (
    re.compile(r"#{1,6}(?:[ \t]|$)"),
    re.compile(r">"),
    re.compile(r"[-+](?:[ \t]|$)"),
    re.compile(r"([-_])(?:[ \t]*\1){2,}[ \t]*$"),
)
_ORDERED_START_RE = re.compile(r"^(\d{1,9})\.(?=[ \t]|$)")
_RESERVED_IN_WIKILINK = re.compile(r"[\[\]|\n]")

_OPEN = {
    BOLD_KIND: "**",
    ITALIC_KIND: "*",
    "strike": "~~",
    "underline": "<u>",
    LINK_KIND: "[",
}
_CLOSE = {
    BOLD_KIND: "**",
    ITALIC_KIND: "*",
    "strike": "~~",
    "underline": "</u>",
}

_BREAK = object()


def _escape_line_start(line: str) -> str:
    m = _ORDERED_START_RE.match(line)
    if m:
        return f"{m.group(1)}\\.{line[m.end():]}"
    for pattern in _LINE_START_RES:
        if pattern.match(line):
            return "\\" + line
    return line


def escape_text(text: str) -> str:
    out = []
    for i, ch in enumerate(text):
        if ch in _ALWAYS_ESCAPED:
            out.append("\\" + ch)
        elif ch == "<" and _TAG_START_RE.match(text, i + 1):
            out.append("\\<")
        elif ch == "@" and _WORD_RE.match(text, i + 1):
            out.append("\\@")
        else:
            out.append(ch)
    return "".join(out)


def code_span(value: str) -> str:
    longest = max((len(run) for run in _BACKTICKS_RE.findall(value)), default=0)
    fence = "`" * (longest + 1)
    pad = value.startswith("`") or value.endswith("`")
    if value.startswith(" ") and value.endswith(" ") and value.strip():
        pad = True
    inner = f" {value} " if pad else value
    return f"{fence}{inner}{fence}"


def destination(href: str) -> str:
    if re.search(r"\s", href):
        return "<" + href.replace("<", "%3C").replace(">", "%3E") + ">"
    return href.replace("(", "\\(").replace(")", "\\)")


class MarkdownSerializer(SerializerStrategy):
    def __init__(self) -> None:
        self._block_writers = {
            Paragraph: self._paragraph,
            Heading: self._heading,
            CodeBlock: self._code_block,
            Blockquote: self._blockquote,
            HorizontalRule: lambda node, issues: "---",
            BulletList: self._list,
            OrderedList: self._list,
            TaskList: self._list,
        }

    def serialize(self, doc: Document, issues: list[Issue] | None = None) -> str:
        return self._blocks(doc.children, issues)

    # -- blocks ------------------------------------------------------------

    def _blocks(self, blocks: list[Node], issues, in_item: bool = False) -> str:
        out: list[str] = []
        prev: Node | None = None
        for block in blocks:
            writer = self._block_writers.get(type(block))
            if writer is None:
                self._skip(block, f"Cannot serialize {block.kind} as a block", issues)
                continue
            text = writer(block, issues)
            if not text and not (in_item and not out):
                continue
            if out:
                tight = in_item and isinstance(prev, Paragraph) and isinstance(
                    block, (BulletList, OrderedList, TaskList)
                )
                out.append("\n" if tight else "\n\n")
            out.append(text)
            prev = block
        return "".join(out)

    def _paragraph(self, node: Paragraph, issues) -> str:
        return self._inline(node.children, issues)

    def _heading(self, node: Heading, issues) -> str:
        text = self._inline(node.children, issues, breaks=False)
        return "#" * node.level + (f" {text}" if text else "")

    def _code_block(self, node: CodeBlock, issues) -> str:
        text = node.text
        starts = [len(m.group()) for m in re.finditer(r"^`+", text, re.MULTILINE)]
        fence = "`" * max(3, max(starts, default=0) + 1)
        opening = fence + (node.language or "")
        if not text:
            return f"{opening}\n{fence}"
        return f"{opening}\n{text}\n{fence}"

    def _blockquote(self, node: Blockquote, issues) -> str:
        inner = self._blocks(node.children, issues)
        if not inner:
            return ">"
        return "\n".join(f"> {line}" if line else ">" for line in inner.split("\n"))

    def _list(self, node: Node, issues) -> str:
        rendered = []
        for index, item in enumerate(node.children):
            if isinstance(item, TaskItem):
                marker = "- [x]" if item.checked else "- [ ]"
            elif isinstance(node, OrderedList):
                marker = f"{node.start + index}."
            else:
                marker = "-"
            body = self._blocks(item.children, issues, in_item=True)
            lines = body.split("\n")
            first = f"{marker} {lines[0]}" if lines[0] else marker
            rest = [f"  {line}" if line else "" for line in lines[1:]]
            rendered.append("\n".join([first] + rest))
        return "\n".join(rendered)

    # -- inline ------------------------------------------------------------

    def _inline(self, nodes: list[Node], issues, breaks: bool = True) -> str:
        parts: list = []
        open_: list[Mark] = []
        pending = ""  # trailing whitespace moved outside the marks it closes
        after_mention = False

        for node in nodes:
            if not self._renderable(node, issues):
                continue
            follows_mention = after_mention
            if not (isinstance(node, Text) and not node.value):
                after_mention = isinstance(node, Mention)
            target = self._target_marks(node)
            keep = self._keep(open_, target)
            for mark in reversed(open_[keep:]):
                parts.append(self._close(mark))
            del open_[keep:]
            parts.append(pending)
            pending = ""

            if isinstance(node, HardBreak):
                parts.append(_BREAK)
                continue
            if not isinstance(node, Text):
                self._append_opening(parts, self._atom(node))
                continue

            new = [m for m in target if m not in open_]
            if CODE in node.marks:
                for mark in new:
                    self._append_opening(parts, _OPEN[mark.kind])
                    open_.append(mark)
                parts.append(code_span(node.value))
                continue

            body = node.value
            if new:
                stripped = body.lstrip()
                if not stripped:
                    parts.append(body)
                    continue
                parts.append(body[: len(body) - len(stripped)])
                body = stripped
                for mark in new:
                    self._append_opening(parts, _OPEN[mark.kind])
                    open_.append(mark)
            core = body.rstrip() if open_ else body
            escaped = escape_text(core)
            if follows_mention and not new and escaped[:1] in _LABEL_PUNCT:
                escaped = "\\" + escaped
            parts.append(escaped)
            pending = body[len(core) :]

        for mark in reversed(open_):
            parts.append(self._close(mark))
        parts.append(pending)
        return self._join_lines(parts, breaks)

    def _join_lines(self, parts: list, breaks: bool) -> str:
        lines = [""]
        for part in parts:
            if part is _BREAK:
                lines.append("")
            else:
                lines[-1] += part
        if not breaks:
            return "<br>".join(lines)
        out = lines[0]
        for line in lines[1:]:
            current = out.rsplit("\n", 1)[-1]
            # a blank physical line would end the paragraph
            sep = "\n" if line.strip() and current.strip() else "<br>"
            out += sep + line
        return "\n".join(_escape_line_start(line) for line in out.split("\n"))

    def _append_opening(self, parts: list, text: str) -> None:
        # "!" right before "[" would turn a link into an image
        if text.startswith("["):
            for i in range(len(parts) - 1, -1, -1):
                if isinstance(parts[i], str) and parts[i]:
                    if parts[i].endswith("!") and not parts[i].endswith("\\!"):
                        parts[i] = parts[i][:-1] + "\\!"
                    break
        parts.append(text)

    def _target_marks(self, node: Node) -> list[Mark]:
        if not isinstance(node, Text):
            return []
        return [m for m in sorted_marks(node.marks) if m != CODE]

    def _keep(self, open_: list[Mark], target: list[Mark]) -> int:
        keep = 0
        while keep < len(open_) and open_[keep] in target:
            keep += 1
        stars_open = {m.kind for m in open_ if m.kind in _STAR_KINDS}
        stars_target = {m.kind for m in target if m.kind in _STAR_KINDS}
        if stars_open != stars_target:
            for i, mark in enumerate(open_):
                if mark.kind in _STAR_KINDS:
                    keep = min(keep, i)
                    break
        return keep

    def _close(self, mark: Mark) -> str:
        if mark.kind == LINK_KIND:
            return f"]({destination(mark.href)})"
        return _CLOSE[mark.kind]

    def _atom(self, node: Node) -> str:
        if isinstance(node, WikiLink):
            if node.alias and node.alias != node.target:
                return f"[[{node.target}|{node.alias}]]"
            return f"[[{node.target}]]"
        if isinstance(node, Mention):
            return f"@{node.label or node.id}"
        if isinstance(node, Image):
            return f"![{escape_text(node.alt or '')}]({destination(node.src)})"
        return ""

    def _renderable(self, node: Node, issues) -> bool:
        if isinstance(node, (Text, HardBreak)):
            return True
        if isinstance(node, WikiLink):
            if not node.target or _RESERVED_IN_WIKILINK.search(node.target):
                return self._skip(node, f"Wikilink target {node.target!r} cannot be written", issues)
            if node.alias and re.search(r"[\[\]\n]", node.alias):
                return self._skip(node, f"Wikilink alias {node.alias!r} cannot be written", issues)
            return True
        if isinstance(node, Mention):
            if not (node.label or node.id):
                return self._skip(node, "Mention without id or label", issues)
            if not MENTION_LABEL_RE.fullmatch(node.label or node.id):
                return self._skip(node, f"Mention label {node.label or node.id!r} cannot be written", issues)
            return True
        if isinstance(node, Image):
            if not node.src:
                return self._skip(node, "Image without src", issues)
            return True
        return self._skip(node, f"Cannot serialize {node.kind} inline", issues)

    def _skip(self, node: Node, message: str, issues) -> bool:
        logger.warning("%s; node skipped", message)
        if issues is not None:
            issues.append(Issue(MISSING_REQUIRED_ATTRIBUTE, message, node))
        return False
