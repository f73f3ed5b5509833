"""
Answer Matcher - Typo-tolerant scoring of typed translations.

Features:
    - Normalization (case, surrounding whitespace, punctuation)
    - Synonym support: accepted answers separated by "/"
    - Levenshtein edit distance with a length-based tolerance
    - Classification: exact / fuzzy / incorrect
"""

import re
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional


class AnswerResult(str, Enum):
    """Outcome of a single turn."""
    EXACT = "exact"
    FUZZY = "fuzzy"
    INCORRECT = "incorrect"
    SKIPPED = "skipped"  # Never produced by classify(), only by the session
    GAVE_UP = "gave_up"  # Same


@dataclass
class Match:
    """Detailed result of matching a guess against the accepted answer."""
    result: AnswerResult
    matched_synonym: Optional[str] = None  # Raw synonym text that matched
    distance: Optional[int] = None  # Edit distance to the matched synonym


# Characters removed before comparing
PUNCTUATION_PATTERN = re.compile(r"[.,/#!$%^&*;:{}=\-_`~()]")

SYNONYM_SEPARATOR = "/"


# ==================== Normalization ====================

def normalize(text: str) -> str:
    """
    Lowercase, trim and strip punctuation.

    Args:
        text: Raw user input or an accepted answer

    Returns:
        Normalized comparison string
    """
    return PUNCTUATION_PATTERN.sub("", text.lower().strip())


def split_synonyms(accepted_answer: str) -> List[str]:
    """Split an accepted answer into its synonyms, in priority order."""
    return accepted_answer.split(SYNONYM_SEPARATOR)


# ==================== Edit Distance ====================

def levenshtein(a: str, b: str) -> int:
    """
    Levenshtein edit distance (insert, delete, substitute all cost 1).

    Keeps only two rows of the DP table.
    """
    if a == b:
        return 0
    if not a:
        return len(b)
    if not b:
        return len(a)

    previous = list(range(len(b) + 1))
    for i, ca in enumerate(a, start=1):
        current = [i]
        for j, cb in enumerate(b, start=1):
            if ca == cb:
                current.append(previous[j - 1])
            else:
                current.append(1 + min(previous[j - 1], previous[j], current[j - 1]))
        previous = current

    return previous[-1]


def tolerance_for(candidate: str) -> int:
    """
    Number of typos forgiven for a normalized candidate.

    Length > 6 -> 2, length 4..6 -> 1, length <= 3 -> 0.
    """
    length = len(candidate)
    if length > 6:
        return 2
    if length > 3:
        return 1
    return 0


# ==================== Classification ====================

def match(raw_input: str, accepted_answer: str) -> Match:
    """
    Match a guess against every synonym of the accepted answer.

    The first synonym that matches exactly or within tolerance wins.

    Args:
        raw_input: What the user typed
        accepted_answer: Target text, possibly "a/b/c"

    Returns:
        Match with the result and the winning synonym (if any)
    """
    guess = normalize(raw_input)

    for synonym in split_synonyms(accepted_answer):
        candidate = normalize(synonym)

        if guess == candidate:
            return Match(AnswerResult.EXACT, synonym.strip(), 0)

        distance = levenshtein(guess, candidate)
        # distance 0 was handled above
        if 0 < distance <= tolerance_for(candidate):
            return Match(AnswerResult.FUZZY, synonym.strip(), distance)

    return Match(AnswerResult.INCORRECT)


def classify(raw_input: str, accepted_answer: str) -> AnswerResult:
    """Classify a guess as EXACT, FUZZY or INCORRECT."""
    return match(raw_input, accepted_answer).result
