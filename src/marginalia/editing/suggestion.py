"""Trigger-character autocomplete.

The engine is told about every edit after the host applied it and decides
whether a suggestion span is open. Lookups run as asyncio tasks; each carries
the generation number current when it was issued, and its result is dropped
unless that generation is still the latest one and the engine is still active.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Iterable

from ..core.errors import ASYNC_LOOKUP_FAILURE, Issue
from ..core.model import CodeBlock, Document, Position, Selection, node_at, text_between
from ..core.ports import ItemSource

logger = logging.getLogger(__name__)

IDLE = "idle"
ACTIVE = "active"
DISMISSED = "dismissed"

PREVIOUS_KEYS = ("ArrowUp",)
NEXT_KEYS = ("ArrowDown",)
COMMIT_KEYS = ("Enter", "Tab")
CANCEL_KEYS = ("Escape",)


@dataclass
class SuggestionItem:
    id: str
    label: str
    data: Any = None  # source-specific payload, e.g. the block command to run


class SuggestionEngine:
    def __init__(self, sources: Iterable[ItemSource]):
        self.sources: dict[str, ItemSource] = {s.trigger: s for s in sources}
        self.doc: Document | None = None
        self.issues: list[Issue] = []
        self.last_commit: Position | None = None
        self._generation = 0
        self._task: asyncio.Task | None = None
        self._clear()

    def _clear(self) -> None:
        self.state = IDLE
        self.source: ItemSource | None = None
        self.trigger_position: Position | None = None
        self.cursor: Position | None = None
        self.query = ""
        self.items: list = []
        self.selected = 0

    # -- lifecycle ---------------------------------------------------------

    def reset(self, doc: Document) -> None:
        """Forget everything about the previous document."""
        self._supersede()
        self._clear()
        self.doc = doc
        self.issues = []
        self.last_commit = None

    def _supersede(self) -> None:
        self._generation += 1
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = None

    def _to_idle(self) -> None:
        if self.state != IDLE:
            logger.debug("Suggestion span closed (query %r)", self.query)
        self._supersede()
        self._clear()

    async def settle(self) -> None:
        """Wait for the current lookup, if any, to finish or be cancelled."""
        task = self._task
        if task is not None:
            await asyncio.wait({task})

    # -- edits -------------------------------------------------------------

    def handle_text(self, position: Position, text: str) -> None:
        """`text` was inserted and now ends at `position`.

        Lookups need a running event loop; without one the span still opens
        but the item list stays empty and an issue is recorded.
        """
        start = position.offset - len(text)
        for i, ch in enumerate(text):
            self._feed(Position(position.path, start + i + 1), ch)

    def _feed(self, after: Position, ch: str) -> None:
        if self.state != IDLE:
            if not self._inside_span(after):
                self._to_idle()
            elif ch.isspace() or not self.source.query_pattern.fullmatch(ch):
                self._to_idle()
            else:
                self.cursor = after
                if self.state == ACTIVE:
                    self._update_query()
                return
        source = self.sources.get(ch)
        if source is not None and self._may_trigger(Position(after.path, after.offset - 1)):
            self.state = ACTIVE
            self.source = source
            self.trigger_position = Position(after.path, after.offset - 1)
            self.cursor = after
            logger.debug("Suggestion span opened by %r", ch)
            self._update_query()

    def handle_delete(self, position: Position) -> None:
        """The character before the old cursor was removed; `position` is the new cursor."""
        if self.state == IDLE:
            return
        if not self._inside_span(position) or position.offset <= self.trigger_position.offset:
            self._to_idle()
            return
        self.cursor = position
        if self.state == ACTIVE:
            self._update_query()

    def handle_cursor(self, position: Position) -> None:
        """The cursor moved without an edit; leaving the span ends it."""
        if self.state == IDLE:
            return
        if not self._inside_span(position) or position.offset > self.cursor.offset:
            self._to_idle()

    def handle_key(self, key: str) -> bool:
        """Navigation keys; returns True when the key was consumed."""
        self.last_commit = None
        if self.state != ACTIVE:
            return False
        if key in PREVIOUS_KEYS or key in NEXT_KEYS:
            if self.items:
                step = -1 if key in PREVIOUS_KEYS else 1
                self.selected = (self.selected + step) % len(self.items)
            return True
        if key in COMMIT_KEYS:
            if not self.items:
                return False
            self.last_commit = self.select()
            return True
        if key in CANCEL_KEYS:
            self._supersede()
            self.state = DISMISSED
            self.items = []
            logger.debug("Suggestion span dismissed (query %r)", self.query)
            return True
        return False

    def select(self, index: int | None = None) -> Position | None:
        """Replace the span with the chosen item's command result."""
        if self.state != ACTIVE or not self.items:
            return None
        index = self.selected if index is None else index
        if not 0 <= index < len(self.items):
            logger.debug("No suggestion at index %d", index)
            return None
        item = self.items[index]
        span = Selection(self.trigger_position.path, self.trigger_position.offset, self.cursor.offset)
        source = self.source
        self._to_idle()
        return source.command(self.doc, span, item)

    # -- helpers -----------------------------------------------------------

    def _inside_span(self, position: Position) -> bool:
        return (
            position.path == self.trigger_position.path
            and position.offset > self.trigger_position.offset
        )

    def _may_trigger(self, at: Position) -> bool:
        block = node_at(self.doc, at.path)
        if isinstance(block, CodeBlock):
            return False
        if at.offset == 0:
            return True
        before = text_between(self.doc, at.path, at.offset - 1, at.offset)
        return not before or before[-1].isspace()

    def _update_query(self) -> None:
        self.query = text_between(
            self.doc, self.trigger_position.path, self.trigger_position.offset + 1, self.cursor.offset
        )
        self._supersede()
        generation = self._generation
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.warning("No running event loop; suggestions for %r skipped", self.query)
            self.issues.append(
                Issue(ASYNC_LOOKUP_FAILURE, f"Lookup for {self.query!r} needs a running event loop")
            )
            self.items = []
            return
        self._task = loop.create_task(self._lookup(generation, self.source, self.query))

    async def _lookup(self, generation: int, source: ItemSource, query: str) -> None:
        try:
            items = list(await source.query(query))
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.warning("Suggestion lookup for %r failed: %s", query, exc)
            self.issues.append(Issue(ASYNC_LOOKUP_FAILURE, f"Lookup for {query!r} failed: {exc}"))
            items = []
        if generation != self._generation or self.state != ACTIVE:
            logger.debug("Dropping stale suggestions for %r", query)
            return
        self.items = items
        self.selected = 0
