"""
Core module - Answer scoring, SM-2 scheduling, mastery levels and card selection.

Components:
    - answer_matcher: Typo-tolerant comparison against accepted translations
    - memory_model: SM-2 memory state and update rule
    - mastery: Interval -> 0-3 level mapping and per-level stats
    - items: Catalog items and their reviewable (per-user) form
    - deck_selector: Due-aware, filtered next-card selection

Everything here is pure: no I/O, no global state.
"""

from .answer_matcher import AnswerResult, Match, classify, match, normalize, levenshtein
from .memory_model import MemoryState, Quality, advance, quality_for
from .mastery import LevelStats, level_for_interval, level_for_state
from .items import VocabularyItem, ReviewableItem, merge_items
from .deck_selector import Filters, due_items, select_next

__all__ = [
    "AnswerResult",
    "Match",
    "classify",
    "match",
    "normalize",
    "levenshtein",
    "MemoryState",
    "Quality",
    "advance",
    "quality_for",
    "LevelStats",
    "level_for_interval",
    "level_for_state",
    "VocabularyItem",
    "ReviewableItem",
    "merge_items",
    "Filters",
    "due_items",
    "select_next",
]
