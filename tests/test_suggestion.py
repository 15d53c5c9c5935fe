"""Tests for trigger-character suggestions."""

import asyncio
import re
import tempfile
from pathlib import Path

from marginalia.core.errors import ASYNC_LOOKUP_FAILURE
from marginalia.core.model import (
    BulletList,
    CodeBlock,
    Document,
    Heading,
    ListItem,
    Mention,
    Paragraph,
    Position,
    Text,
    replace_inline_range,
)
from marginalia.editing.suggestion import ACTIVE, DISMISSED, IDLE, SuggestionEngine, SuggestionItem
from marginalia.runtime import build_runtime


class ControlledSource:
    """Lookups that finish only when the test resolves their future."""

    id = "controlled"
    trigger = "@"
    query_pattern = re.compile(r"\w")

    def __init__(self):
        self.pending = {}
        self.calls = []

    async def query(self, text):
        self.calls.append(text)
        fut = asyncio.get_running_loop().create_future()
        self.pending[text] = fut
        return await fut

    def command(self, doc, span, item):
        end = replace_inline_range(doc, span.path, span.start, span.end, [Text(item.label)])
        return Position(span.path, end)


class StaticSource(ControlledSource):
    def __init__(self, labels):
        super().__init__()
        self.labels = labels

    async def query(self, text):
        self.calls.append(text)
        return [SuggestionItem(label, label) for label in self.labels]


class FailingSource(ControlledSource):
    async def query(self, text):
        raise RuntimeError("index unavailable")


def new_engine(source, doc=None):
    engine = SuggestionEngine([source])
    doc = doc or Document([Paragraph([])])
    engine.reset(doc)
    return engine, doc


def type_into(doc, engine, position, text):
    end = replace_inline_range(doc, position.path, position.offset, position.offset, [Text(text)])
    after = Position(position.path, end)
    engine.handle_text(after, text)
    return after


def test_only_latest_lookup_is_applied():
    """Results of superseded lookups never reach the item list."""

    async def scenario():
        source = ControlledSource()
        engine, doc = new_engine(source)
        pos = Position((0,), 0)
        for ch in "@ab":
            pos = type_into(doc, engine, pos, ch)
            await asyncio.sleep(0)

        source.pending["ab"].set_result([SuggestionItem("ab", "ab")])
        await engine.settle()
        assert [i.label for i in engine.items] == ["ab"]

        for stale in ("", "a"):
            fut = source.pending[stale]
            if not fut.done():
                fut.set_result([SuggestionItem(stale, "stale")])
        await asyncio.sleep(0)
        await asyncio.sleep(0)
        assert [i.label for i in engine.items] == ["ab"]
        assert engine.query == "ab"

    asyncio.run(scenario())


def test_trigger_needs_boundary():
    """A trigger right after a word character does not open a span."""

    async def scenario():
        engine, doc = new_engine(StaticSource(["x"]))
        type_into(doc, engine, Position((0,), 0), "a@")
        assert engine.state == IDLE

    asyncio.run(scenario())


def test_no_suggestions_inside_code_block():
    """Code blocks never open a suggestion span."""

    async def scenario():
        engine, doc = new_engine(StaticSource(["x"]), Document([CodeBlock(None, [])]))
        type_into(doc, engine, Position((0,), 0), "@")
        assert engine.state == IDLE

    asyncio.run(scenario())


def test_terminator_closes_span():
    """A character outside the query pattern ends the span."""

    async def scenario():
        engine, doc = new_engine(StaticSource(["x"]))
        pos = type_into(doc, engine, Position((0,), 0), "@a")
        assert engine.state == ACTIVE
        type_into(doc, engine, pos, " ")
        assert engine.state == IDLE
        assert engine.items == []

    asyncio.run(scenario())


def test_escape_dismisses_until_span_ends():
    """After Escape typing continues without lookups until a terminator."""

    async def scenario():
        source = StaticSource(["x"])
        engine, doc = new_engine(source)
        pos = type_into(doc, engine, Position((0,), 0), "@a")
        await engine.settle()
        calls = len(source.calls)

        assert engine.handle_key("Escape") is True
        assert engine.state == DISMISSED
        pos = type_into(doc, engine, pos, "b")
        await engine.settle()
        assert engine.state == DISMISSED
        assert len(source.calls) == calls
        assert engine.handle_key("Enter") is False

        type_into(doc, engine, pos, " ")
        assert engine.state == IDLE

    asyncio.run(scenario())


def test_arrow_keys_wrap_around():
    """ArrowUp from the first item selects the last."""

    async def scenario():
        engine, doc = new_engine(StaticSource(["a", "b", "c"]))
        type_into(doc, engine, Position((0,), 0), "@")
        await engine.settle()
        assert engine.handle_key("ArrowDown")
        assert engine.selected == 1
        engine.handle_key("ArrowUp")
        engine.handle_key("ArrowUp")
        assert engine.selected == 2

    asyncio.run(scenario())


def test_deleting_the_trigger_closes_span():
    """Backspace keeps the span until the trigger itself is removed."""

    async def scenario():
        engine, doc = new_engine(StaticSource(["x"]))
        type_into(doc, engine, Position((0,), 0), "@a")
        replace_inline_range(doc, (0,), 1, 2, [])
        engine.handle_delete(Position((0,), 1))
        assert engine.state == ACTIVE
        assert engine.query == ""
        replace_inline_range(doc, (0,), 0, 1, [])
        engine.handle_delete(Position((0,), 0))
        assert engine.state == IDLE

    asyncio.run(scenario())


def test_cursor_leaving_span_ends_dismissal():
    """Moving the cursor out of a dismissed span returns to idle."""

    async def scenario():
        engine, doc = new_engine(StaticSource(["x"]))
        pos = type_into(doc, engine, Position((0,), 0), "@ab")
        engine.handle_key("Escape")
        engine.handle_cursor(Position((0,), 2))
        assert engine.state == DISMISSED
        engine.handle_cursor(Position((0,), 0))
        assert engine.state == IDLE
        type_into(doc, engine, pos, "c")
        assert engine.state == IDLE

    asyncio.run(scenario())


def test_failed_lookup_is_reported():
    """A lookup error leaves an empty list and an issue."""

    async def scenario():
        engine, doc = new_engine(FailingSource())
        type_into(doc, engine, Position((0,), 0), "@x")
        await engine.settle()
        assert engine.state == ACTIVE
        assert engine.items == []
        assert [i.kind for i in engine.issues] == [ASYNC_LOOKUP_FAILURE]

    asyncio.run(scenario())


def test_mention_commit_through_session():
    """@ + query + Enter inserts a mention of the matching note."""

    async def scenario(session):
        session.load("Hi ")
        pos = session.type_text(Position((0,), 3), "@")
        session.type_text(pos, "al")
        await session.engine.settle()
        assert [i.label for i in session.engine.items] == ["Alice"]
        assert session.key_down("Enter") is True
        return session

    with tempfile.TemporaryDirectory() as tmpdir:
        vault = Path(tmpdir)
        (vault / "notes").mkdir()
        (vault / "notes" / "Alice.md").write_text("# Alice\n", encoding="utf-8")
        (vault / "Bob.md").write_text("# Bob\n", encoding="utf-8")
        session = asyncio.run(scenario(build_runtime(vault_path=vault).new_session()))

        assert session.doc.children[0].children == [
            Text("Hi "),
            Mention(id="notes/Alice.md", label="Alice"),
            Text(" "),
        ]
        assert session.cursor == Position((0,), 5)
        assert session.engine.state == IDLE
        assert session.serialize() == "Hi @Alice "


def test_slash_command_turns_block_into_heading():
    """/head, ArrowDown, Enter makes the paragraph a level-2 heading."""

    async def scenario(session):
        session.load("Title")
        session.type_text(Position((0,), 0), "/head")
        await session.engine.settle()
        assert [i.label for i in session.engine.items] == ["Heading 1", "Heading 2", "Heading 3"]
        session.key_down("ArrowDown")
        session.key_down("Enter")
        return session

    with tempfile.TemporaryDirectory() as tmpdir:
        session = asyncio.run(scenario(build_runtime(vault_path=Path(tmpdir)).new_session()))
        assert session.doc == Document([Heading(2, [Text("Title")])])
        assert session.cursor == Position((0,), 0)


def test_slash_command_wraps_block_in_list():
    """/bullet wraps the paragraph in a list and moves the cursor inside."""

    async def scenario(session):
        session.load("item")
        session.type_text(Position((0,), 0), "/bullet")
        await session.engine.settle()
        session.key_down("Enter")
        return session

    with tempfile.TemporaryDirectory() as tmpdir:
        session = asyncio.run(scenario(build_runtime(vault_path=Path(tmpdir)).new_session()))
        assert session.doc == Document([BulletList([ListItem([Paragraph([Text("item")])])])])
        assert session.cursor == Position((0, 0, 0), 0)
        assert session.serialize() == "- item"


def test_load_resets_engine():
    """Opening another file closes any open span."""

    async def scenario(session):
        session.load("x ")
        session.type_text(Position((0,), 2), "@")
        assert session.engine.state == ACTIVE
        session.load("other")
        assert session.engine.state == IDLE
        assert session.engine.items == []

    with tempfile.TemporaryDirectory() as tmpdir:
        asyncio.run(scenario(build_runtime(vault_path=Path(tmpdir)).new_session()))


def test_select_out_of_range_is_ignored():
    """An index past the item list commits nothing and keeps the span open."""

    async def scenario():
        engine, doc = new_engine(StaticSource(["a", "b"]))
        type_into(doc, engine, Position((0,), 0), "@")
        await engine.settle()
        assert engine.select(99) is None
        assert engine.select(-1) is None
        assert engine.state == ACTIVE
        assert doc.children[0].children == [Text("@")]
        assert engine.select(1) == Position((0,), 1)
        assert doc.children[0].children == [Text("b")]

    asyncio.run(scenario())


def test_typing_without_event_loop_reports_issue():
    """Outside a running loop the trigger is kept and the lookup is reported."""
    with tempfile.TemporaryDirectory() as tmpdir:
        session = build_runtime(vault_path=Path(tmpdir)).new_session()
        session.load("Hi ")
        pos = session.type_text(Position((0,), 3), "@")
        session.type_text(pos, "a")
        assert session.serialize() == r"Hi \@a"
        assert session.engine.state == ACTIVE
        assert session.engine.items == []
        assert ASYNC_LOOKUP_FAILURE in [i.kind for i in session.issues]


def test_mention_source_skips_names_that_cannot_be_written():
    """Notes whose names contain spaces or dots are not offered as mentions."""

    async def scenario(source):
        return [item.label for item in await source.query("my")]

    with tempfile.TemporaryDirectory() as tmpdir:
        vault = Path(tmpdir)
        (vault / "My Note.md").write_text("x\n", encoding="utf-8")
        (vault / "my.v2.md").write_text("x\n", encoding="utf-8")
        (vault / "my-notes.md").write_text("x\n", encoding="utf-8")
        rt = build_runtime(vault_path=vault)
        session = rt.new_session()
        source = session.engine.sources["@"]
        assert asyncio.run(scenario(source)) == ["my-notes"]
