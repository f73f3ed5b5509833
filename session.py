"""
Session Controller - Drives one user's review loop.

Phases: idle -> presenting (front) -> reviewing (back + result) -> presenting ...

Each turn:
    answer -> classify -> SM-2 update -> level -> persist -> feedback

All mutable state lives in a SessionState owned by the controller. Every
transition returns that state; invalid transitions are ignored, and
collaborator failures (catalog, progress store) are logged, never raised.
"""

import asyncio
import threading
from concurrent.futures import Future, ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Callable, List, Optional, Set

from loguru import logger

from core.answer_matcher import AnswerResult, match
from core.deck_selector import Filters, select_next
from core.items import ReviewableItem, merge_items
from core.mastery import LevelStats
from core.memory_model import MemoryState, advance, quality_for, utcnow


NO_DUE_MESSAGE = "No due cards match current filters! Check back tomorrow or change filters."


class FeedbackKind(str, Enum):
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"
    NEUTRAL = "neutral"


@dataclass
class SessionState:
    """Everything the presentation layer needs to render the current turn."""
    items: List[ReviewableItem] = field(default_factory=list)
    current: Optional[ReviewableItem] = None
    is_reviewing: bool = False  # False = front shown, True = result shown
    last_result: Optional[AnswerResult] = None
    feedback_message: str = ""
    feedback_kind: FeedbackKind = FeedbackKind.NEUTRAL
    filters: Filters = field(default_factory=Filters)
    is_loading: bool = False
    generation: int = 0  # Bumped on every load/reset; stale loads are dropped

    @property
    def phase(self) -> str:
        if self.is_loading:
            return "loading"
        if self.is_reviewing:
            return "reviewing"
        if not self.items:
            return "idle"
        return "presenting"


class ProgressWriter:
    """
    Sends progress upserts to the store without blocking the session.

    One worker thread, so writes for a session land in order.
    """

    def __init__(self, store, executor: Optional[ThreadPoolExecutor] = None):
        self.store = store
        self._executor = executor or ThreadPoolExecutor(max_workers=1, thread_name_prefix="progress-writer")
        self._pending: List[Future] = []

    def submit(self, user_id: str, item_id: int, state: MemoryState) -> Future:
        """Queue one upsert. The future resolves to True/False."""
        self._pending = [f for f in self._pending if not f.done()]
        future = self._executor.submit(self._write, user_id, item_id, state)
        self._pending.append(future)
        return future

    def _write(self, user_id: str, item_id: int, state: MemoryState) -> bool:
        try:
            ok = self.store.save(user_id, item_id, state)
        except Exception as e:
            logger.error(f"Failed to sync progress {user_id}/{item_id}: {e}")
            return False
        if not ok:
            logger.error(f"Progress store rejected {user_id}/{item_id}; local state is ahead of the store")
        return bool(ok)

    def flush(self, timeout: Optional[float] = None) -> bool:
        """
        Wait for every queued write.

        Args:
            timeout: Overall limit in seconds (None = wait as long as it takes)

        Returns:
            True if everything was written, False if the timeout ran out
        """
        done, not_done = wait(self._pending, timeout=timeout)
        self._pending = list(not_done)
        if not_done:
            logger.warning(f"{len(not_done)} progress writes still pending after {timeout}s")
            return False
        return True

    def close(self, timeout: Optional[float] = None):
        """Flush (bounded by timeout) and release the worker without waiting on it."""
        self.flush(timeout)
        self._executor.shutdown(wait=False)


class SessionController:
    """
    One user's trainer session.

    Every public transition runs under one lock, so requests served from
    several threads are applied one at a time.

    Args:
        user_id: Owner of the progress
        catalog: Anything with items() -> List[VocabularyItem]
        store: Progress store (load/save), or None for local-only mode
        writer: Custom ProgressWriter (defaults to one around store)
        filters: Initial filters (copied); when omitted every catalog part is enabled on load
        rng: random.Random for card selection
        clock: Returns "now" (UTC)
    """

    def __init__(self, user_id: str, catalog, store=None,
                 writer: Optional[ProgressWriter] = None,
                 filters: Optional[Filters] = None,
                 rng=None, clock: Callable[[], datetime] = utcnow):
        self.user_id = user_id
        self.catalog = catalog
        self.store = store
        self.writer = writer or (ProgressWriter(store) if store is not None else None)
        self.rng = rng
        self.clock = clock
        self._lock = threading.RLock()
        self._parts_from_catalog = filters is None
        if filters is None:
            filters = Filters()
        self.state = SessionState(filters=Filters(levels=set(filters.levels), parts=set(filters.parts)))

    # ==================== Loading ====================

    async def load_items(self) -> SessionState:
        """
        Fetch catalog and stored progress, merge them and present a card.

        Answers are rejected while this runs. If reset() or another load
        happens meanwhile, this result is discarded.
        """
        with self._lock:
            self.state.generation += 1
            generation = self.state.generation
            self.state.is_loading = True

        catalog_items, stored = await asyncio.gather(
            self._fetch("catalog", self.catalog.items, []),
            self._fetch("progress", self._load_progress, {}),
        )

        with self._lock:
            if generation != self.state.generation:
                logger.debug(f"Dropping stale load for {self.user_id} (generation {generation})")
                return self.state

            self.state.items = merge_items(catalog_items, stored)
            if self._parts_from_catalog and self.state.items:
                self.state.filters.parts = {r.item.part for r in self.state.items}
            self.state.is_loading = False

            logger.info(f"Loaded {len(self.state.items)} items for {self.user_id} ({len(stored)} with progress)")
            return self._present_next()

    def load_items_sync(self) -> SessionState:
        """load_items() for callers without an event loop."""
        return asyncio.run(self.load_items())

    async def _fetch(self, what: str, fn: Callable, default):
        try:
            return await asyncio.to_thread(fn)
        except Exception as e:
            logger.error(f"Error fetching {what} for {self.user_id}: {e}")
            return default

    def _load_progress(self):
        if self.store is None:
            return {}
        return self.store.load(self.user_id)

    def reset(self) -> SessionState:
        """Forget loaded items and the current card; in-flight loads are ignored."""
        with self._lock:
            generation = self.state.generation + 1
            self.state = SessionState(filters=self.state.filters, generation=generation)
            return self.state

    # ==================== Answering ====================

    def _can_answer(self) -> bool:
        return (not self.state.is_loading
                and self.state.current is not None
                and not self.state.is_reviewing)

    def submit_answer(self, text: str) -> SessionState:
        """Check a typed answer against the current card."""
        with self._lock:
            if not self._can_answer() or not text or not text.strip():
                logger.debug(f"Ignoring answer for {self.user_id} in phase {self.state.phase}")
                return self.state

            target = self.state.current.item.target
            result = match(text, target).result

            if result == AnswerResult.EXACT:
                return self._record(result, "Correct!", FeedbackKind.SUCCESS)
            if result == AnswerResult.FUZZY:
                return self._record(result, f'Close enough! Correct: "{target}"', FeedbackKind.WARNING)
            return self._record(result, f'Incorrect. Solution: "{target}"', FeedbackKind.ERROR)

    def give_up(self) -> SessionState:
        """Reveal the answer; scored like a wrong answer."""
        with self._lock:
            if not self._can_answer():
                return self.state
            target = self.state.current.item.target
            return self._record(AnswerResult.GAVE_UP, f'Keep practicing! Solution: "{target}"', FeedbackKind.WARNING)

    def skip(self) -> SessionState:
        """
        Reveal the answer without trying.

        With a progress store this is recorded as quality 0; in local-only
        mode the card's memory state is left alone.
        """
        with self._lock:
            if not self._can_answer():
                return self.state
            target = self.state.current.item.target
            return self._record(AnswerResult.SKIPPED, f'Skipped. Solution: "{target}"', FeedbackKind.NEUTRAL,
                                update_memory=self.store is not None)

    def _record(self, result: AnswerResult, message: str, kind: FeedbackKind,
                update_memory: bool = True) -> SessionState:
        # Caller holds the lock
        reviewable = self.state.current

        if update_memory:
            reviewable.apply(advance(quality_for(result), reviewable.memory, now=self.clock()))
            self._persist(reviewable)

        self.state.is_reviewing = True
        self.state.last_result = result
        self.state.feedback_message = message
        self.state.feedback_kind = kind
        return self.state

    def _persist(self, reviewable: ReviewableItem):
        if self.writer is None:
            return
        self.writer.submit(self.user_id, reviewable.id, reviewable.memory)

    # ==================== Navigation ====================

    def advance_to_next(self) -> SessionState:
        """Leave the result screen and present the next due card."""
        with self._lock:
            if not self.state.is_reviewing:
                return self.state
            return self._present_next()

    def _present_next(self) -> SessionState:
        card = select_next(self.state.items, self.state.filters, now=self.clock(), rng=self.rng)

        self.state.current = card
        self.state.is_reviewing = False
        self.state.last_result = None
        self.state.feedback_kind = FeedbackKind.NEUTRAL
        self.state.feedback_message = "" if card else NO_DUE_MESSAGE
        return self.state

    # ==================== Filters ====================

    def toggle_level_filter(self, level: int) -> SessionState:
        with self._lock:
            self.state.filters.toggle_level(level)
            return self._filters_changed()

    def toggle_part_filter(self, part: int) -> SessionState:
        with self._lock:
            self.state.filters.toggle_part(part)
            return self._filters_changed()

    def toggle_filter(self, dimension: str, value: int) -> SessionState:
        """Toggle one value of the "level" or "part" filter."""
        if dimension == "level":
            return self.toggle_level_filter(value)
        if dimension == "part":
            return self.toggle_part_filter(value)
        logger.warning(f"Unknown filter dimension {dimension!r}")
        return self.state

    def set_filters(self, levels: Set[int], parts: Set[int]) -> SessionState:
        with self._lock:
            self.state.filters = Filters(levels=set(levels), parts=set(parts))
            return self._filters_changed()

    def _filters_changed(self) -> SessionState:
        # A card being answered or reviewed is never swapped out; only the
        # empty "no due cards" screen re-runs selection.
        if (self.state.current is None and not self.state.is_reviewing
                and not self.state.is_loading and self.state.items):
            return self._present_next()
        return self.state

    # ==================== Stats ====================

    def stats(self) -> LevelStats:
        """Per-level counts over the parts currently enabled."""
        with self._lock:
            return LevelStats.from_items(self.state.items, parts=self.state.filters.parts)

    def close(self, timeout: Optional[float] = None):
        """
        Flush pending writes (waiting at most timeout seconds) and stop the writer.

        Writes still running after the timeout finish in the background.
        """
        if self.writer is not None:
            self.writer.close(timeout)
