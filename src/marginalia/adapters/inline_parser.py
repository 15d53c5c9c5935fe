"""Inline pass of the markdown parser.

Each line of a leaf block is scanned left to right. At every position the
rules below are tried in order and the first one that matches wins; text that
no rule claims accumulates as plain text. Emphasis delimiters are collected
first and paired afterwards with a delimiter stack, so overlapping marks
combine instead of nesting improperly. Line breaks are hard breaks, and no
construct spans one.
"""

import logging
import re
import string
from dataclasses import dataclass, field

from ..core.errors import UNTERMINATED_INLINE_SYNTAX, Issue
from ..core.model import (
    BOLD,
    CODE,
    ITALIC,
    LINK_KIND,
    MENTION_LABEL_RE,
    STRIKE,
    UNDERLINE,
    HardBreak,
    Image,
    Mark,
    Mention,
    Node,
    Text,
    WikiLink,
    link,
    normalize_inline,
)

logger = logging.getLogger(__name__)

ESCAPABLE = frozenset(string.punctuation)
SPECIAL = frozenset("\\`[!@<*~")

WIKILINK_RE = re.compile(r"\[\[([^\[\]|\n]+)(?:\|([^\[\]\n]*))?\]\]")
PLAIN_RE = re.compile(r"[^\\`\[!@<*~]+")
BR_RE = re.compile(r"<br\s*/?>", re.IGNORECASE)
AUTOLINK_RE = re.compile(r"<([A-Za-z][A-Za-z0-9+.\-]{1,31}:[^\s<>]*)>")

_DELIM_MARKS = {
    ("*", 1): ITALIC,
    ("*", 2): BOLD,
    ("~", 2): STRIKE,
    ("u", 1): UNDERLINE,
}


@dataclass
class _Delim:
    char: str  # "*", "~" or "u" (the <u> / </u> tags)
    count: int
    can_open: bool
    can_close: bool
    literal: str = ""
    marks: set[Mark] = field(default_factory=set)

    def leftover(self) -> str:
        if self.char == "u":
            return self.literal if self.count else ""
        return self.char * self.count


def unescape(text: str) -> str:
    return re.sub(r"\\([!-/:-@\[-`{-~])", r"\1", text)


def _with_link(nodes: list[Node], mark: Mark) -> list[Node]:
    out: list[Node] = []
    for node in nodes:
        if isinstance(node, Text):
            kept = {m for m in node.marks if m.kind != LINK_KIND}
            out.append(Text(node.value, frozenset(kept | {mark})))
        else:
            out.append(node)
    return out


class InlineParser:
    def __init__(self) -> None:
        self._rules = (
            self._escape,
            self._code_span,
            self._wikilink,
            self._image,
            self._link,
            self._mention,
            self._html_tag,
            self._emphasis,
            self._autolink,
        )

    def parse(self, text: str, issues: list[Issue] | None = None) -> list[Node]:
        """Parse the text of a leaf block; every newline becomes a HardBreak."""
        nodes: list[Node] = []
        for i, line in enumerate(text.split("\n")):
            if i:
                nodes.append(HardBreak())
            nodes.extend(self.parse_line(line, issues))
        return normalize_inline(nodes, breaks=False)

    def parse_line(
        self, line: str, issues: list[Issue] | None = None, in_link: bool = False
    ) -> list[Node]:
        items: list = []
        buf: list[str] = []
        pos = 0
        while pos < len(line):
            if line[pos] not in SPECIAL:
                m = PLAIN_RE.match(line, pos)
                buf.append(m.group())
                pos = m.end()
                continue
            for rule in self._rules:
                hit = rule(line, pos, issues, in_link)
                if hit is not None:
                    produced, pos = hit
                    if buf:
                        items.append(Text("".join(buf)))
                        buf = []
                    items.extend(produced)
                    break
            else:
                buf.append(line[pos])
                pos += 1
        if buf:
            items.append(Text("".join(buf)))
        self._pair_delimiters(items)
        out: list[Node] = []
        for item in items:
            if isinstance(item, _Delim):
                if item.count:
                    out.append(Text(item.leftover(), frozenset(item.marks)))
            else:
                out.append(item)
        return normalize_inline(out, breaks=False)

    # -- rules: (line, pos, issues, in_link) -> (items, new_pos) | None ----

    def _escape(self, line, pos, issues, in_link):
        if line[pos] == "\\" and pos + 1 < len(line) and line[pos + 1] in ESCAPABLE:
            return [Text(line[pos + 1])], pos + 2
        return None

    def _code_span(self, line, pos, issues, in_link):
        if line[pos] != "`":
            return None
        n = _run_length(line, pos, "`")
        close = _find_backtick_run(line, pos + n, n)
        if close is None:
            return [Text("`" * n)], pos + n
        content = line[pos + n : close]
        if len(content) > 1 and content[0] == " " and content[-1] == " " and content.strip():
            content = content[1:-1]
        return [Text(content, frozenset({CODE}))], close + n

    def _wikilink(self, line, pos, issues, in_link):
        if not line.startswith("[[", pos):
            return None
        m = WIKILINK_RE.match(line, pos)
        if m:
            alias = m.group(2) or None
            return [WikiLink(target=m.group(1), alias=alias)], m.end()
        if "]]" not in line[pos + 2 :]:
            logger.info("Unterminated wikilink at column %d kept as text", pos)
            if issues is not None:
                issues.append(
                    Issue(UNTERMINATED_INLINE_SYNTAX, f"Unterminated wikilink: {line[pos:pos + 40]!r}")
                )
        return None

    def _image(self, line, pos, issues, in_link):
        if not line.startswith("![", pos):
            return None
        end = _scan_brackets(line, pos + 1)
        if end is None:
            return None
        dest = _parse_destination(line, end + 1)
        if dest is None:
            return None
        src, after = dest
        alt = unescape(line[pos + 2 : end]) or None
        return [Image(src=src, alt=alt)], after

    def _link(self, line, pos, issues, in_link):
        if in_link or line[pos] != "[":
            return None
        end = _scan_brackets(line, pos)
        if end is None:
            return None
        dest = _parse_destination(line, end + 1)
        if dest is None:
            return None
        href, after = dest
        inner = self.parse_line(line[pos + 1 : end], issues, in_link=True)
        return _with_link(inner, link(href)), after

    def _mention(self, line, pos, issues, in_link):
        if line[pos] != "@":
            return None
        m = MENTION_LABEL_RE.match(line, pos + 1)
        if not m:
            return None
        name = m.group()
        return [Mention(id=name, label=name)], m.end()

    def _html_tag(self, line, pos, issues, in_link):
        if line[pos] != "<":
            return None
        if line.startswith("<u>", pos):
            return [_Delim("u", 1, True, False, "<u>")], pos + 3
        if line.startswith("</u>", pos):
            return [_Delim("u", 1, False, True, "</u>")], pos + 4
        m = BR_RE.match(line, pos)
        if m:
            return [HardBreak()], m.end()
        return None

    def _emphasis(self, line, pos, issues, in_link):
        ch = line[pos]
        if ch not in "*~":
            return None
        n = _run_length(line, pos, ch)
        if ch == "~" and n < 2:
            return None
        before = line[pos - 1] if pos else None
        after = line[pos + n] if pos + n < len(line) else None
        can_open = after is not None and not after.isspace()
        can_close = before is not None and not before.isspace()
        if not (can_open or can_close):
            return [Text(ch * n)], pos + n
        return [_Delim(ch, n, can_open, can_close)], pos + n

    def _autolink(self, line, pos, issues, in_link):
        if in_link or line[pos] != "<":
            return None
        m = AUTOLINK_RE.match(line, pos)
        if not m:
            return None
        url = m.group(1)
        return [Text(url, frozenset({link(url)}))], m.end()

    # -- delimiter pairing -------------------------------------------------

    def _pair_delimiters(self, items: list) -> None:
        """Match closers against the nearest usable opener, innermost first.

        A closer keeps consuming openers until it runs out; whatever is left
        of a run that can also open stays available to later closers.
        """
        i = 0
        while i < len(items):
            closer = items[i]
            if not (isinstance(closer, _Delim) and closer.can_close and closer.count):
                i += 1
                continue
            j = self._find_opener(items, i)
            if j is None:
                i += 1
                continue
            opener = items[j]
            if closer.char == "*":
                use = 2 if opener.count >= 2 and closer.count >= 2 else 1
            elif closer.char == "~":
                use = 2
            else:
                use = 1
            mark = _DELIM_MARKS[(closer.char, use)]
            for k in range(j + 1, i):
                inner = items[k]
                if isinstance(inner, Text):
                    items[k] = Text(inner.value, inner.marks | {mark})
                elif isinstance(inner, _Delim):
                    inner.marks.add(mark)
                    inner.can_open = inner.can_close = False
            opener.count -= use
            closer.count -= use
            if not closer.count:
                i += 1

    def _find_opener(self, items: list, i: int) -> int | None:
        closer = items[i]
        need = 2 if closer.char == "~" else 1
        if closer.count < need:
            return None
        for j in range(i - 1, -1, -1):
            item = items[j]
            if isinstance(item, HardBreak):
                return None
            if (
                isinstance(item, _Delim)
                and item.char == closer.char
                and item.can_open
                and item.count >= need
            ):
                return j
        return None


def _run_length(line: str, pos: int, ch: str) -> int:
    end = pos
    while end < len(line) and line[end] == ch:
        end += 1
    return end - pos


def _find_backtick_run(line: str, start: int, n: int) -> int | None:
    pos = line.find("`", start)
    while pos != -1:
        run = _run_length(line, pos, "`")
        if run == n:
            return pos
        pos = line.find("`", pos + run)
    return None


def _scan_brackets(line: str, pos: int) -> int | None:
    """Index of the "]" matching the "[" at `pos`, honouring escapes and code spans."""
    depth = 0
    i = pos
    while i < len(line):
        c = line[i]
        if c == "\\":
            i += 2
            continue
        if c == "`":
            n = _run_length(line, i, "`")
            close = _find_backtick_run(line, i + n, n)
            i = close + n if close is not None else i + n
            continue
        if c == "[":
            depth += 1
        elif c == "]":
            depth -= 1
            if depth == 0:
                return i
        i += 1
    return None


def _parse_destination(line: str, pos: int) -> tuple[str, int] | None:
    """Parse "(href)" / "(<href>)" / "(href "title")" starting at `pos`."""
    if pos >= len(line) or line[pos] != "(":
        return None
    i = pos + 1
    while i < len(line) and line[i] == " ":
        i += 1
    if i < len(line) and line[i] == "<":
        close = line.find(">", i + 1)
        if close == -1 or "<" in line[i + 1 : close]:
            return None
        href = line[i + 1 : close]
        i = close + 1
    else:
        start = i
        depth = 0
        while i < len(line):
            c = line[i]
            if c == "\\" and i + 1 < len(line):
                i += 2
                continue
            if c.isspace():
                break
            if c == "(":
                depth += 1
            elif c == ")":
                if depth == 0:
                    break
                depth -= 1
            i += 1
        href = unescape(line[start:i])
    while i < len(line) and line[i] == " ":
        i += 1
    if i < len(line) and line[i] in "\"'":
        close = line.find(line[i], i + 1)
        if close == -1:
            return None
        i = close + 1
        while i < len(line) and line[i] == " ":
            i += 1
    if i < len(line) and line[i] == ")":
        return href, i + 1
    return None
