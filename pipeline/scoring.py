# pipeline/scoring.py
import re
from enum import Enum
from functools import lru_cache

MAX_WORD_LENGTH = 15

_CONSECUTIVE_VOWELS = re.compile(r"[aeiou]{2,}", re.IGNORECASE)
_CONSONANT_CLUSTER = re.compile(r"[bcdfghjklmnpqrstvwxyz]{3,}", re.IGNORECASE)
_ALTERNATING = re.compile(r"^(?:[bcdfghjklmnpqrstvwxyz][aeiou])+$", re.IGNORECASE)
_REPEATED_LETTER = re.compile(r"(.)\1")


class DifficultyTier(str, Enum):
    BEGINNER = "BEGINNER"
    INTERMEDIATE = "INTERMEDIATE"
    ADVANCED = "ADVANCED"


@lru_cache(maxsize=4096)
def word_complexity(word: str) -> float:
    """
    Score a word's shape in [0, 1].

    Weighted sum of length (0.4, relative to the 15 letter cap), letter
    diversity (0.3) and pattern features (0.3): vowel runs, consonant
    clusters, strict consonant/vowel alternation, and no doubled letters.
    """
    if not word:
        return 0.0

    length_score = min(len(word) / MAX_WORD_LENGTH, 1.0) * 0.4
    diversity_score = (len(set(word.lower())) / len(word)) * 0.3

    pattern = 0.0
    if _CONSECUTIVE_VOWELS.search(word):
        pattern += 0.25
    if _CONSONANT_CLUSTER.search(word):
        pattern += 0.25
    if _ALTERNATING.match(word):
        pattern += 0.25
    if not _REPEATED_LETTER.search(word.lower()):
        pattern += 0.25

    return min(max(length_score + diversity_score + pattern * 0.3, 0.0), 1.0)


def difficulty_tier(complexity: float) -> DifficultyTier:
    if complexity < 0.4:
        return DifficultyTier.BEGINNER
    if complexity < 0.7:
        return DifficultyTier.INTERMEDIATE
    return DifficultyTier.ADVANCED
