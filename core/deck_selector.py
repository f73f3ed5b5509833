"""
Deck Selector - Picks the next card to show.

Selection:
    1. Keep items whose level and part pass the filters and that are due
    2. Sort oldest-due first
    3. Pick uniformly among the first POOL_SIZE

Picking at random among the oldest few keeps overdue cards first without
showing them in the same order every time.
"""

import random
from dataclasses import dataclass, field
from datetime import datetime
from typing import Iterable, List, Optional, Set

from .items import ReviewableItem
from .mastery import LEVELS
from .memory_model import utcnow


POOL_SIZE = 5
DEFAULT_PARTS = (1, 2)


@dataclass
class Filters:
    """Active deck filters: allowed mastery levels and parts."""
    levels: Set[int] = field(default_factory=lambda: set(LEVELS))
    parts: Set[int] = field(default_factory=lambda: set(DEFAULT_PARTS))

    def matches(self, reviewable: ReviewableItem) -> bool:
        return reviewable.level in self.levels and reviewable.item.part in self.parts

    def toggle_level(self, level: int):
        self.levels ^= {level}

    def toggle_part(self, part: int):
        self.parts ^= {part}

    def to_dict(self) -> dict:
        return {"levels": sorted(self.levels), "parts": sorted(self.parts)}


def due_items(items: Iterable[ReviewableItem], filters: Filters,
              now: Optional[datetime] = None) -> List[ReviewableItem]:
    """Items passing the filters whose review date has passed, oldest first."""
    now = now or utcnow()
    due = [r for r in items if filters.matches(r) and r.memory.is_due(now)]
    due.sort(key=lambda r: r.memory.next_review)
    return due


def select_next(items: Iterable[ReviewableItem], filters: Filters,
                now: Optional[datetime] = None,
                rng: Optional[random.Random] = None) -> Optional[ReviewableItem]:
    """
    Choose the next item to present.

    Args:
        items: The whole deck (not modified)
        filters: Active filters
        now: Evaluation instant, defaults to the current UTC time
        rng: Random source, defaults to the random module

    Returns:
        A due item, or None if nothing is due under the filters
    """
    due = due_items(items, filters, now)
    if not due:
        return None

    pool = due[:min(POOL_SIZE, len(due))]
    return (rng or random).choice(pool)
