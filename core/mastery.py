"""
Mastery Levels - Coarse 0-3 buckets for filtering and progress stats.

Levels (from the review interval):
    0 New       interval 0 (or the item was just failed)
    1 Learning  1-6 days
    2 Familiar  7-21 days
    3 Mastered  more than 21 days
"""

from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Set

from .memory_model import MemoryState


LEVELS = (0, 1, 2, 3)
LEVEL_NAMES = ("New", "Learning", "Familiar", "Mastered")


def level_for_interval(interval: int) -> int:
    """Map an interval in days to a mastery level."""
    if interval > 21:
        return 3
    if interval > 6:
        return 2
    if interval > 0:
        return 1
    return 0


def level_for_state(state: MemoryState) -> int:
    """
    Level carried by a reviewable item.

    An item with no current streak (failed or never reviewed) is New,
    otherwise the level follows the interval.
    """
    if state.repetition == 0:
        return 0
    return level_for_interval(state.interval)


@dataclass
class LevelStats:
    """Item counts per mastery level, one slot per level."""
    counts: List[int] = field(default_factory=lambda: [0] * len(LEVELS))

    @classmethod
    def from_items(cls, items: Iterable, parts: Optional[Set[int]] = None) -> "LevelStats":
        """
        Count reviewable items by level.

        Args:
            items: ReviewableItem objects
            parts: Only count items in these parts (None = all)
        """
        stats = cls()
        for reviewable in items:
            if parts is not None and reviewable.item.part not in parts:
                continue
            stats.counts[reviewable.level] += 1
        return stats

    def __getitem__(self, level: int) -> int:
        return self.counts[level]

    @property
    def total(self) -> int:
        return sum(self.counts)

    @property
    def mastered(self) -> int:
        return self.counts[3]

    @property
    def learning(self) -> int:
        return self.counts[1] + self.counts[2]

    @property
    def score(self) -> int:
        """Weighted progress: each item is worth its level."""
        return sum(level * count for level, count in zip(LEVELS, self.counts))

    @property
    def max_score(self) -> int:
        return LEVELS[-1] * self.total

    @property
    def percent(self) -> float:
        if self.max_score == 0:
            return 0.0
        return round(100.0 * self.score / self.max_score, 1)

    def summary(self) -> Dict:
        """Dashboard-friendly dict."""
        return {
            "levels": {name: count for name, count in zip(LEVEL_NAMES, self.counts)},
            "counts": list(self.counts),
            "total": self.total,
            "mastered": self.mastered,
            "learning": self.learning,
            "score": self.score,
            "max_score": self.max_score,
            "percent": self.percent,
        }
