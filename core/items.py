"""
Items - Catalog entries and their per-user reviewable form.
"""

from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional

from .memory_model import MemoryState
from .mastery import level_for_state


@dataclass(frozen=True)
class VocabularyItem:
    """A catalog fact. Read-only to the trainer."""
    id: int
    source: str  # Prompt shown on the front of the card
    target: str  # Accepted answer, synonyms separated by "/"
    part: int  # Deck the word belongs to (1..N)
    example: str = ""
    word_type: Optional[str] = None  # noun, verb, ...


@dataclass
class ReviewableItem:
    """A catalog item merged with the user's memory state."""
    item: VocabularyItem
    memory: MemoryState = field(default_factory=MemoryState)
    level: int = 0

    def __post_init__(self):
        self.level = level_for_state(self.memory)

    @property
    def id(self) -> int:
        return self.item.id

    def apply(self, memory: MemoryState):
        """Replace the memory state and re-derive the level."""
        self.memory = memory
        self.level = level_for_state(memory)


def merge_items(catalog: Iterable[VocabularyItem],
                stored: Dict[int, MemoryState]) -> List[ReviewableItem]:
    """
    Build the reviewable deck.

    Items with no stored state get a fresh MemoryState (due now).
    Stored states for ids missing from the catalog are ignored.
    """
    return [
        ReviewableItem(item=item, memory=stored.get(item.id) or MemoryState())
        for item in catalog
    ]
