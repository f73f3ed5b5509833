"""
Vocabulary Catalog - Loads the word list the trainer drills.

Sources:
- JSON catalog (data/vocabulary.json): list of {id, p, es, en, ex, type}
- Raw word list: "# Category" headers followed by "en|es|type|ex" rows

The raw list is how new decks are authored; the __main__ entry point
converts one into the JSON catalog.
"""

import json
import os
import sys
from typing import Dict, List, Optional

from dotenv import load_dotenv
from loguru import logger

from core.items import VocabularyItem

load_dotenv()


DEFAULT_DATA_PATH = "data/vocabulary.json"

# Category header -> deck part
CATEGORY_PARTS = {
    "Top 100 High-Frequency Words": 1,
    "Essential Regular Verbs": 2,
    "Essential Irregular & Stem-Changing Verbs": 3,
    "Core Adjectives & Adverbs": 4,
    "Time, Numbers, & Calendar": 5,
    "People, Family, & Home": 6,
    "Food, Dining, & Travel": 7,
    "Health, Body & Emergencies": 8,
    "Common Connectors & Prepositions": 9,
    "Business, Study, & Tech Essentials": 10,
    "Travel, Environment & Additional Nouns": 10,
    "Colors & Basic Qualities": 10,
    "Final Extra Essential Words": 10,
}
FALLBACK_PART = 10


class VocabularyCatalog:
    def __init__(self, data_path: Optional[str] = None, items: Optional[List[VocabularyItem]] = None):
        """
        Load the catalog.

        Args:
            data_path: JSON file, defaults to $VOCAB_DATA_PATH or data/vocabulary.json
            items: Use these items instead of reading a file
        """
        if items is not None:
            self._items = sorted(items, key=lambda i: i.id)
        else:
            path = data_path or os.getenv("VOCAB_DATA_PATH", DEFAULT_DATA_PATH)
            with open(path, 'r', encoding='utf-8') as f:
                self._items = sorted((item_from_row(row) for row in json.load(f)), key=lambda i: i.id)

        # Quick lookup: item id -> item
        self.by_id: Dict[int, VocabularyItem] = {item.id: item for item in self._items}

    @classmethod
    def from_word_list(cls, path: str) -> "VocabularyCatalog":
        """Build a catalog from a raw "en|es|type|ex" word list file."""
        with open(path, 'r', encoding='utf-8') as f:
            return cls(items=parse_word_list(f.read()))

    def items(self) -> List[VocabularyItem]:
        """All items, ordered by id."""
        return list(self._items)

    def get(self, item_id: int) -> Optional[VocabularyItem]:
        return self.by_id.get(item_id)

    def parts(self) -> List[int]:
        """Distinct deck parts, ascending."""
        return sorted({item.part for item in self._items})

    def __len__(self) -> int:
        return len(self._items)

    def to_json(self) -> List[Dict]:
        return [item_to_row(item) for item in self._items]


# ==================== Row Conversion ====================

def item_from_row(row: Dict) -> VocabularyItem:
    """Catalog JSON row -> VocabularyItem. Prompt is Spanish, answer English."""
    return VocabularyItem(
        id=int(row["id"]),
        source=row["es"],
        target=row["en"],
        part=int(row.get("p", 1)),
        example=row.get("ex", ""),
        word_type=row.get("type") or None,
    )


def item_to_row(item: VocabularyItem) -> Dict:
    return {
        "id": item.id,
        "p": item.part,
        "es": item.source,
        "en": item.target,
        "ex": item.example,
        "type": item.word_type,
    }


# ==================== Word List Parsing ====================

def _category_title(line: str) -> str:
    return line.strip().lstrip('#').strip()


def parse_word_list(text: str) -> List[VocabularyItem]:
    """
    Parse the raw word list format.

    Lines starting with "#" name a category (mapped to a part through
    CATEGORY_PARTS); other lines are "en|es|type|ex". Rows before any
    header, or in an unknown category, land in FALLBACK_PART. Ids are
    assigned from 1 in file order.

    Returns:
        Parsed items (empty if nothing parsed)
    """
    items: List[VocabularyItem] = []
    part = FALLBACK_PART

    for line in text.splitlines():
        line = line.strip()
        if not line:
            continue

        if line.startswith('#'):
            category = _category_title(line)
            if category not in CATEGORY_PARTS:
                logger.warning(f"Unrecognized category header {category!r}, using deck {FALLBACK_PART}")
            part = CATEGORY_PARTS.get(category, FALLBACK_PART)
            continue

        fields = [f.strip() for f in line.split('|')]
        if len(fields) < 4:
            continue

        en, es, word_type, example = fields[:4]
        items.append(VocabularyItem(
            id=len(items) + 1,
            source=es,
            target=en,
            part=part,
            example=example,
            word_type=word_type or None,
        ))

    if not items:
        logger.error("Parsed 0 words. Check the word list format (en|es|type|ex)")

    return items


if __name__ == "__main__":
    if len(sys.argv) != 3:
        print("usage: python vocabulary_catalog.py <word_list.txt> <output.json>")
        sys.exit(1)

    catalog = VocabularyCatalog.from_word_list(sys.argv[1])
    with open(sys.argv[2], 'w', encoding='utf-8') as f:
        json.dump(catalog.to_json(), f, ensure_ascii=False, indent=2)
    print(f"Wrote {len(catalog)} words to {sys.argv[2]}")
