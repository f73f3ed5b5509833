"""
Memory Model - SM-2 spaced repetition scheduling.

Features:
    - Per-item memory state (repetition, interval, easiness factor, due date)
    - Answer outcome -> recall quality mapping
    - SM-2 update with the 1.3 easiness floor
    - Serialization for the progress store

SM-2 update:
    success (q >= 3): interval 1, then 6, then round(interval * EF)
    failure (q < 3):  repetition = 0, interval = 1
    EF' = EF + (0.1 - (5 - q) * (0.08 + (5 - q) * 0.02)), never below 1.3
"""

import math
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta, timezone
from enum import IntEnum
from typing import Optional

from .answer_matcher import AnswerResult


DEFAULT_EASINESS = 2.5
MIN_EASINESS = 1.3


class Quality(IntEnum):
    """SM-2 recall quality for the outcomes the trainer can produce."""
    BLACKOUT = 0  # Skipped
    INCORRECT = 1  # Wrong answer or gave up
    HESITANT = 3  # Correct with typos
    PERFECT = 5  # Exact


QUALITY_BY_RESULT = {
    AnswerResult.SKIPPED: Quality.BLACKOUT,
    AnswerResult.INCORRECT: Quality.INCORRECT,
    AnswerResult.GAVE_UP: Quality.INCORRECT,
    AnswerResult.FUZZY: Quality.HESITANT,
    AnswerResult.EXACT: Quality.PERFECT,
}


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class MemoryState:
    """SM-2 state for one user x item pair."""
    repetition: int = 0  # Consecutive successful recalls
    interval: int = 0  # Days until next review
    easiness_factor: float = DEFAULT_EASINESS
    next_review: datetime = field(default_factory=utcnow)

    def is_due(self, now: Optional[datetime] = None) -> bool:
        """True if the review date has passed."""
        return self.next_review <= (now or utcnow())

    # ==================== Serialization ====================

    def to_dict(self) -> dict:
        """Serialize to a JSON-friendly dict (for the progress store)."""
        return {
            "repetition": self.repetition,
            "interval": self.interval,
            "easiness_factor": self.easiness_factor,
            "next_review_date": self.next_review.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "MemoryState":
        """
        Deserialize a stored row.

        Raises:
            ValueError: if a field is missing or malformed
        """
        try:
            next_review = datetime.fromisoformat(data["next_review_date"])
            if next_review.tzinfo is None:
                next_review = next_review.replace(tzinfo=timezone.utc)
            return cls(
                repetition=int(data["repetition"]),
                interval=int(data["interval"]),
                easiness_factor=float(data["easiness_factor"]),
                next_review=next_review,
            )
        except (KeyError, TypeError) as e:
            raise ValueError(f"Malformed memory state: {data!r}") from e


def quality_for(result: AnswerResult) -> Quality:
    """Map an answer outcome to its SM-2 quality."""
    return QUALITY_BY_RESULT[AnswerResult(result)]


def _round_half_up(value: float) -> int:
    # Python's round() is banker's rounding; intervals round .5 upwards
    return int(math.floor(value + 0.5))


def next_easiness(easiness_factor: float, quality: int) -> float:
    """Standard SM-2 easiness update, floored at MIN_EASINESS."""
    miss = 5 - quality
    ef = easiness_factor + (0.1 - miss * (0.08 + miss * 0.02))
    return max(MIN_EASINESS, ef)


def advance(quality: int, state: MemoryState, now: Optional[datetime] = None) -> MemoryState:
    """
    Compute the memory state after one review.

    Args:
        quality: Recall quality 0-5 (see Quality)
        state: Current state; not modified
        now: Review instant, defaults to the current UTC time

    Returns:
        New MemoryState with next_review = now + interval days

    Raises:
        ValueError: if quality is outside 0-5
    """
    if quality < 0 or quality > 5:
        raise ValueError("quality must be between 0 and 5")

    if quality >= 3:
        if state.repetition == 0:
            interval = 1
        elif state.repetition == 1:
            interval = 6
        else:
            interval = _round_half_up(state.interval * state.easiness_factor)
        repetition = state.repetition + 1
    else:
        # Forget everything learned about this item
        repetition = 0
        interval = 1

    now = now or utcnow()

    return replace(
        state,
        repetition=repetition,
        interval=interval,
        easiness_factor=next_easiness(state.easiness_factor, quality),
        next_review=now + timedelta(days=interval),
    )
