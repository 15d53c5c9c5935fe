"""Tests for markdown parsing into the document tree."""

from marginalia.adapters.markdown_parser import MarkdownParser
from marginalia.core.errors import UNTERMINATED_INLINE_SYNTAX
from marginalia.core.model import (
    BOLD,
    CODE,
    ITALIC,
    STRIKE,
    UNDERLINE,
    Blockquote,
    BulletList,
    CodeBlock,
    Document,
    HardBreak,
    Heading,
    HorizontalRule,
    Image,
    ListItem,
    Mention,
    OrderedList,
    Paragraph,
    TaskItem,
    TaskList,
    Text,
    WikiLink,
    link,
)


def parse(text, issues=None):
    return MarkdownParser().parse(text, issues)


def test_task_list_with_mention():
    """Checkbox items become a task list; @name becomes a mention."""
    doc = parse("- [ ] buy milk\n- [x] call @alice")
    assert doc == Document(
        [
            TaskList(
                [
                    TaskItem(False, [Paragraph([Text("buy milk")])]),
                    TaskItem(True, [Paragraph([Text("call "), Mention(id="alice", label="alice")])]),
                ]
            )
        ]
    )


def test_mention_stops_at_first_non_label_character():
    """@name runs over word characters and hyphens; an @ with no name is text."""
    doc = parse("@alice, hi @carol-x. and @ alone")
    assert doc.children[0].children == [
        Mention(id="alice", label="alice"),
        Text(", hi "),
        Mention(id="carol-x", label="carol-x"),
        Text(". and @ alone"),
    ]


def test_mention_after_word_character():
    """An @ glued to the previous word still starts a mention."""
    doc = parse("a@bob x_@ann @a@b")
    assert doc.children[0].children == [
        Text("a"),
        Mention(id="bob", label="bob"),
        Text(" x_"),
        Mention(id="ann", label="ann"),
        Text(" "),
        Mention(id="a", label="a"),
        Mention(id="b", label="b"),
    ]


def test_escaped_at_is_text():
    """\\@name keeps the @ literal."""
    doc = parse(r"mail bob\@example.com")
    assert doc.children[0].children == [Text("mail bob@example.com")]


def test_wikilink_with_and_without_alias():
    """[[target]] and [[target|alias]]."""
    doc = parse("see [[Note]] and [[Other|shown]]")
    assert doc.children[0].children == [
        Text("see "),
        WikiLink("Note"),
        Text(" and "),
        WikiLink("Other", "shown"),
    ]


def test_unterminated_wikilink_is_text_with_issue():
    """An unclosed [[ is kept literally and reported."""
    issues = []
    doc = parse("see [[broken link", issues)
    assert doc.children[0].children == [Text("see [[broken link")]
    assert [i.kind for i in issues] == [UNTERMINATED_INLINE_SYNTAX]


def test_unterminated_fence_is_paragraph_with_issue():
    """A fence that never closes is read as paragraph text."""
    issues = []
    doc = parse("```python\ncode here", issues)
    assert doc.children == [Paragraph([Text("```python"), HardBreak(), Text("code here")])]
    assert issues and issues[0].kind == UNTERMINATED_INLINE_SYNTAX


def test_single_newline_is_hard_break():
    """Every line break inside a paragraph is a HardBreak."""
    doc = parse("line one\nline two")
    assert doc.children == [Paragraph([Text("line one"), HardBreak(), Text("line two")])]


def test_br_tag_is_hard_break():
    """<br> gives a break even where a newline cannot."""
    doc = parse("# a<br>b")
    assert doc.children == [Heading(1, [Text("a"), HardBreak(), Text("b")])]


def test_crlf_is_normalized():
    """Windows line endings read the same as LF."""
    assert parse("a\r\nb") == parse("a\nb")


def test_emphasis_marks():
    """Bold, italic, strike, underline and code spans."""
    doc = parse("**b** *i* ~~s~~ <u>u</u> `c*d`")
    assert doc.children[0].children == [
        Text("b", frozenset({BOLD})),
        Text(" "),
        Text("i", frozenset({ITALIC})),
        Text(" "),
        Text("s", frozenset({STRIKE})),
        Text(" "),
        Text("u", frozenset({UNDERLINE})),
        Text(" "),
        Text("c*d", frozenset({CODE})),
    ]


def test_triple_star_gives_bold_italic():
    """*** opens both bold and italic."""
    doc = parse("***both***")
    assert doc.children[0].children == [Text("both", frozenset({BOLD, ITALIC}))]


def test_lone_star_between_spaces_is_literal():
    """A delimiter that can neither open nor close stays text."""
    doc = parse("2 * 3")
    assert doc.children[0].children == [Text("2 * 3")]


def test_link_with_marked_label():
    """The link mark covers every text node of the label."""
    doc = parse("[a **b**](https://x.y)")
    assert doc.children[0].children == [
        Text("a ", frozenset({link("https://x.y")})),
        Text("b", frozenset({BOLD, link("https://x.y")})),
    ]


def test_autolink():
    """<scheme:...> becomes linked text."""
    doc = parse("go <https://x.y/z>")
    assert doc.children[0].children == [
        Text("go "),
        Text("https://x.y/z", frozenset({link("https://x.y/z")})),
    ]


def test_image_with_empty_alt():
    """An empty alt reads back as no alt."""
    doc = parse("![](pic.png) ![a cat](cat.png)")
    assert doc.children[0].children == [
        Image("pic.png", None),
        Text(" "),
        Image("cat.png", "a cat"),
    ]


def test_escapes():
    """Backslash escapes any ASCII punctuation."""
    doc = parse(r"\*not\* \[x\] \@me")
    assert doc.children[0].children == [Text("*not* [x] @me")]


def test_blocks():
    """Headings, rules, quotes and fenced code."""
    doc = parse("## Title\n\n---\n\n> quoted\n> more\n\n```js\nlet x\n```")
    assert doc.children == [
        Heading(2, [Text("Title")]),
        HorizontalRule(),
        Blockquote([Paragraph([Text("quoted"), HardBreak(), Text("more")])]),
        CodeBlock("js", [Text("let x")]),
    ]


def test_nested_lists():
    """Two-space indentation nests content inside an item."""
    doc = parse("- a\n  - b\n- c")
    assert doc.children == [
        BulletList(
            [
                ListItem([Paragraph([Text("a")]), BulletList([ListItem([Paragraph([Text("b")])])])]),
                ListItem([Paragraph([Text("c")])]),
            ]
        )
    ]


def test_ordered_list_start():
    """The first number sets the list start."""
    doc = parse("3. x\n4. y")
    assert doc.children == [
        OrderedList([ListItem([Paragraph([Text("x")])]), ListItem([Paragraph([Text("y")])])], start=3)
    ]


def test_empty_item_gets_empty_paragraph():
    """A bare marker is an item holding one empty paragraph."""
    doc = parse("-\n- x")
    assert doc.children[0].children[0] == ListItem([Paragraph()])


def test_list_kind_change_starts_new_list():
    """Switching from bullets to numbers ends the bullet list."""
    doc = parse("- a\n1. b")
    assert [type(b) for b in doc.children] == [BulletList, OrderedList]


def test_empty_body():
    """Nothing in, nothing out."""
    assert parse("") == Document([])


def test_blank_line_between_lists_keeps_them_apart():
    """Two lists of the same kind separated by a blank line stay two lists."""
    doc = parse("- a\n\n- b\n\n1. c\n\n2. d")
    assert doc == Document(
        [
            BulletList([ListItem([Paragraph([Text("a")])])]),
            BulletList([ListItem([Paragraph([Text("b")])])]),
            OrderedList([ListItem([Paragraph([Text("c")])])]),
            OrderedList([ListItem([Paragraph([Text("d")])])], start=2),
        ]
    )


def test_indented_block_after_blank_line_stays_in_item():
    """A blank line followed by indented content continues the item."""
    doc = parse("- a\n\n  b\n- c")
    assert doc == Document(
        [
            BulletList(
                [
                    ListItem([Paragraph([Text("a")]), Paragraph([Text("b")])]),
                    ListItem([Paragraph([Text("c")])]),
                ]
            )
        ]
    )
