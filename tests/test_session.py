"""Tests for session.py - the review loop end to end, with an in-memory store."""

import sys
sys.path.append(".")

import asyncio
import random
import threading
import time
from datetime import timedelta

import pytest
from loguru import logger

from core.answer_matcher import AnswerResult
from core.deck_selector import Filters
from core.items import VocabularyItem
from core.memory_model import MemoryState, utcnow
from progress_store import InMemoryProgressStore
from session import NO_DUE_MESSAGE, FeedbackKind, SessionController
from vocabulary_catalog import VocabularyCatalog


PERRO = VocabularyItem(id=1, source="el perro", target="perro", part=1, example="El perro ladra.")
CASA = VocabularyItem(id=2, source="la casa", target="house/home", part=2)


class FailingStore:
    """Loads nothing, refuses every write."""

    def load(self, user_id):
        return {}

    def save(self, user_id, item_id, state):
        raise RuntimeError("connection refused")


class CountingStore(InMemoryProgressStore):
    """Counts saves."""

    def __init__(self):
        super().__init__()
        self.saves = 0

    def save(self, user_id, item_id, state):
        self.saves += 1
        return super().save(user_id, item_id, state)


class SlowStore(InMemoryProgressStore):
    """Holds every save until released."""

    def __init__(self):
        super().__init__()
        self.release = threading.Event()

    def save(self, user_id, item_id, state):
        self.release.wait(timeout=5)
        return super().save(user_id, item_id, state)


class BrokenCatalog:
    def items(self):
        raise OSError("catalog unavailable")


@pytest.fixture
def error_logs():
    messages = []
    handler_id = logger.add(messages.append, level="ERROR")
    yield messages
    logger.remove(handler_id)


def start(items, store=None, **kwargs):
    controller = SessionController("user-1", VocabularyCatalog(items=items), store=store,
                                   rng=random.Random(3), **kwargs)
    controller.load_items_sync()
    return controller


# ==================== Loading ====================

def test_load_presents_due_card():
    controller = start([PERRO], store=InMemoryProgressStore())
    state = controller.state

    assert state.phase == "presenting"
    assert state.current.item == PERRO
    assert state.current.level == 0
    assert not state.is_reviewing
    assert not state.is_loading


def test_default_filters_cover_catalog_parts():
    controller = start([PERRO, VocabularyItem(id=5, source="a", target="b", part=3)])
    assert controller.state.filters.parts == {1, 3}


def test_load_merges_stored_progress():
    store = InMemoryProgressStore()
    store.save("user-1", 1, MemoryState(repetition=2, interval=6, next_review=utcnow() + timedelta(days=6)))

    controller = start([PERRO, CASA], store=store)

    by_id = {r.id: r for r in controller.state.items}
    assert by_id[1].memory.repetition == 2
    assert by_id[1].level == 1
    assert by_id[2].memory == MemoryState(next_review=by_id[2].memory.next_review)
    # Only the fresh card is due
    assert controller.state.current.id == 2


def test_catalog_failure_leaves_usable_empty_session(error_logs):
    controller = SessionController("user-1", BrokenCatalog(), store=InMemoryProgressStore())
    state = controller.load_items_sync()

    assert state.items == []
    assert state.current is None
    assert state.phase == "idle"
    assert any("catalog" in str(m) for m in error_logs)

    # Still safe to poke
    controller.submit_answer("perro")
    controller.advance_to_next()


def test_stale_load_is_ignored():
    controller = SessionController("user-1", VocabularyCatalog(items=[PERRO]))

    async def scenario():
        task = asyncio.create_task(controller.load_items())
        await asyncio.sleep(0)
        assert controller.state.is_loading
        controller.reset()
        await task

    asyncio.run(scenario())

    assert controller.state.items == []
    assert controller.state.current is None
    assert not controller.state.is_loading


def test_answers_rejected_while_loading():
    controller = start([PERRO], store=InMemoryProgressStore())
    controller.state.is_loading = True

    state = controller.submit_answer("perro")

    assert not state.is_reviewing
    assert state.current.memory.repetition == 0


# ==================== Answering ====================

def test_exact_answer():
    store = InMemoryProgressStore()
    controller = start([PERRO], store=store)

    state = controller.submit_answer("  Perro ")
    controller.writer.flush()

    assert state.is_reviewing
    assert state.last_result == AnswerResult.EXACT
    assert state.feedback_message == "Correct!"
    assert state.feedback_kind == FeedbackKind.SUCCESS

    reviewable = state.current
    assert (reviewable.memory.repetition, reviewable.memory.interval) == (1, 1)
    assert reviewable.memory.easiness_factor == pytest.approx(2.6)
    assert reviewable.level == 1
    # Mutated in place: the deck holds the same object
    assert controller.state.items[0] is reviewable

    saved = store.load("user-1")[1]
    assert saved.repetition == 1
    assert saved.interval == 1
    controller.close()


def test_fuzzy_answer():
    controller = start([PERRO], store=InMemoryProgressStore())
    state = controller.submit_answer("perr")

    assert state.last_result == AnswerResult.FUZZY
    assert state.feedback_message == 'Close enough! Correct: "perro"'
    assert state.feedback_kind == FeedbackKind.WARNING
    assert state.current.memory.repetition == 1
    assert state.current.memory.easiness_factor == pytest.approx(2.36)


def test_incorrect_answer():
    controller = start([PERRO], store=InMemoryProgressStore())
    state = controller.submit_answer("gato")

    assert state.last_result == AnswerResult.INCORRECT
    assert state.feedback_message == 'Incorrect. Solution: "perro"'
    assert state.feedback_kind == FeedbackKind.ERROR
    assert (state.current.memory.repetition, state.current.memory.interval) == (0, 1)
    assert state.current.level == 0


def test_blank_answer_ignored():
    controller = start([PERRO], store=InMemoryProgressStore())
    state = controller.submit_answer("   ")

    assert not state.is_reviewing
    assert state.last_result is None
    assert state.current.memory.interval == 0


def test_second_answer_while_reviewing_ignored():
    controller = start([PERRO], store=InMemoryProgressStore())
    controller.submit_answer("perro")
    state = controller.submit_answer("perro")

    assert state.current.memory.repetition == 1
    assert controller.give_up().current.memory.repetition == 1
    assert controller.skip().current.memory.repetition == 1


def test_give_up():
    controller = start([PERRO], store=InMemoryProgressStore())
    state = controller.give_up()

    assert state.last_result == AnswerResult.GAVE_UP
    assert state.feedback_message == 'Keep practicing! Solution: "perro"'
    assert state.feedback_kind == FeedbackKind.WARNING
    assert (state.current.memory.repetition, state.current.memory.interval) == (0, 1)
    assert state.current.memory.easiness_factor == pytest.approx(1.96)


def test_skip_with_store_records_blackout():
    store = InMemoryProgressStore()
    controller = start([PERRO], store=store)

    state = controller.skip()
    controller.writer.flush()

    assert state.last_result == AnswerResult.SKIPPED
    assert state.feedback_message == 'Skipped. Solution: "perro"'
    assert state.feedback_kind == FeedbackKind.NEUTRAL
    assert state.current.memory.interval == 1
    assert state.current.memory.easiness_factor == pytest.approx(1.7)
    assert store.load("user-1")[1].easiness_factor == pytest.approx(1.7)


def test_skip_local_only_keeps_memory():
    controller = start([PERRO])
    before = controller.state.current.memory

    state = controller.skip()

    assert state.is_reviewing
    assert state.last_result == AnswerResult.SKIPPED
    assert state.current.memory is before
    assert state.current.memory.interval == 0


def test_local_only_answers_still_schedule():
    controller = start([PERRO])
    state = controller.submit_answer("perro")
    assert state.current.memory.repetition == 1
    assert controller.writer is None


def test_write_failure_is_logged_not_raised(error_logs):
    controller = start([PERRO], store=FailingStore())

    state = controller.submit_answer("perro")
    controller.writer.flush()

    assert state.is_reviewing
    assert state.current.memory.repetition == 1
    assert any("user-1/1" in str(m) for m in error_logs)
    controller.close()


def test_saved_row_carries_level():
    store = InMemoryProgressStore()
    controller = start([PERRO], store=store)
    controller.submit_answer("perro")
    controller.writer.flush()

    assert '"level": 1' in store.rows["user-1"]["1"]


# ==================== Navigation ====================

def test_advance_only_from_review():
    controller = start([PERRO, CASA])
    current = controller.state.current

    state = controller.advance_to_next()
    assert state.current is current
    assert not state.is_reviewing


def test_advance_to_next_card_then_nothing_due():
    controller = start([PERRO, CASA], store=InMemoryProgressStore())
    first = controller.state.current

    controller.submit_answer(first.item.target.split("/")[0])
    state = controller.advance_to_next()
    second = state.current

    assert second is not None
    assert second.id != first.id
    assert not state.is_reviewing
    assert state.last_result is None
    assert state.feedback_message == ""

    controller.submit_answer(second.item.target.split("/")[0])
    state = controller.advance_to_next()

    assert state.current is None
    assert state.feedback_message == NO_DUE_MESSAGE
    assert state.feedback_kind == FeedbackKind.NEUTRAL
    assert state.phase == "presenting"


def test_failed_card_not_due_until_tomorrow():
    controller = start([PERRO])
    controller.submit_answer("wrong")
    assert controller.advance_to_next().current is None


# ==================== Filters ====================

def test_filter_change_keeps_current_card():
    controller = start([PERRO, CASA], filters=Filters(parts={1}))
    assert controller.state.current.item == PERRO

    state = controller.toggle_part_filter(1)
    assert state.current.item == PERRO
    assert state.filters.parts == set()

    controller.submit_answer("perro")
    state = controller.advance_to_next()
    assert state.current is None
    assert state.feedback_message == NO_DUE_MESSAGE


def test_filter_change_refills_empty_screen():
    controller = start([PERRO, CASA], filters=Filters(parts={3}))
    assert controller.state.current is None
    assert controller.state.feedback_message == NO_DUE_MESSAGE

    state = controller.toggle_filter("part", 2)
    assert state.current.item == CASA
    assert state.feedback_message == ""


def test_level_filter_and_unknown_dimension():
    controller = start([PERRO])
    controller.toggle_filter("level", 0)
    assert 0 not in controller.state.filters.levels

    state = controller.toggle_filter("colour", 1)
    assert state.filters.levels == {1, 2, 3}


def test_set_filters():
    controller = start([PERRO, CASA], filters=Filters(parts=set()))
    state = controller.set_filters(levels={0}, parts={2})
    assert state.current.item == CASA


# ==================== Stats ====================

def test_stats_follow_enabled_parts():
    controller = start([PERRO, CASA], filters=Filters(parts={1}))
    controller.submit_answer("perro")

    assert controller.stats().counts == [0, 1, 0, 0]

    controller.toggle_part_filter(2)
    assert controller.stats().counts == [1, 1, 0, 0]


# ==================== Concurrency ====================

def test_concurrent_answers_count_once():
    store = CountingStore()
    controller = start([PERRO], store=store)
    barrier = threading.Barrier(4)

    def answer():
        barrier.wait()
        controller.submit_answer("perro")

    threads = [threading.Thread(target=answer) for _ in range(4)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    controller.writer.flush()

    assert controller.state.current.memory.repetition == 1
    assert controller.state.current.memory.interval == 1
    assert store.saves == 1
    controller.close()


def test_concurrent_give_up_and_skip_apply_one_result():
    store = CountingStore()
    controller = start([PERRO], store=store)
    barrier = threading.Barrier(3)
    actions = [controller.give_up, controller.skip, lambda: controller.submit_answer("gato")]

    def run(action):
        barrier.wait()
        action()

    threads = [threading.Thread(target=run, args=(a,)) for a in actions]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    controller.writer.flush()

    # Exactly one SM-2 step from a fresh card: failed, so EF drops once
    assert store.saves == 1
    assert controller.state.current.memory.repetition == 0
    assert controller.state.current.memory.easiness_factor > 1.6
    controller.close()


# ==================== Closing ====================

def test_close_waits_at_most_timeout():
    store = SlowStore()
    controller = start([PERRO], store=store)
    controller.submit_answer("perro")

    began = time.monotonic()
    controller.close(timeout=0.05)
    assert time.monotonic() - began < 2

    store.release.set()
    # The write still lands once the store frees up
    for _ in range(100):
        if "user-1" in store.rows:
            break
        time.sleep(0.02)
    assert '"repetition": 1' in store.rows["user-1"]["1"]


def test_flush_reports_pending_writes():
    store = SlowStore()
    controller = start([PERRO], store=store)
    controller.submit_answer("perro")

    assert controller.writer.flush(timeout=0.05) is False

    store.release.set()
    assert controller.writer.flush(timeout=5) is True
    controller.close()


# ==================== Filters ownership ====================

def test_filters_are_copied_per_session():
    shared = Filters(levels={0, 1}, parts={1, 2})
    first = start([PERRO, CASA], filters=shared)
    second = start([PERRO, CASA], filters=shared)

    first.toggle_part_filter(2)
    first.toggle_level_filter(0)

    assert shared.parts == {1, 2}
    assert shared.levels == {0, 1}
    assert second.state.filters.parts == {1, 2}
    assert second.state.filters.levels == {0, 1}
    assert first.state.filters.parts == {1}
