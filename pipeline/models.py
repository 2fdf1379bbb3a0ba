# pipeline/models.py
import json
import logging
from dataclasses import dataclass, replace
from typing import Any, Dict, Optional

from pipeline.scoring import DifficultyTier, difficulty_tier, word_complexity

logger = logging.getLogger(__name__)

# Length bounds sent to the service when the caller leaves them open
DEFAULT_MIN_LENGTH = 2
DEFAULT_MAX_LENGTH = 15


@dataclass(frozen=True)
class GenerationRequest:
    characters: str
    language: str = "en"
    min_length: Optional[int] = None
    max_length: Optional[int] = None
    include_definitions: bool = False

    def normalized(self) -> "GenerationRequest":
        return replace(
            self,
            characters=self.characters.strip().lower(),
            language=self.language.strip().lower(),
        )

    def cache_key(self) -> str:
        """
        Canonical key: identical for requests with equal normalized fields,
        independent of field order or object identity.
        """
        n = self.normalized()
        fields = {
            "characters": n.characters,
            "language": n.language,
            "min_length": n.min_length,
            "max_length": n.max_length,
            "include_definitions": bool(n.include_definitions),
        }
        return "generate:" + json.dumps(fields, sort_keys=True, separators=(",", ":"))

    def to_payload(self) -> Dict[str, Any]:
        """Body for POST /words/generate."""
        n = self.normalized()
        return {
            "characters": n.characters,
            "language": n.language,
            "minLength": n.min_length if n.min_length is not None else DEFAULT_MIN_LENGTH,
            "maxLength": n.max_length if n.max_length is not None else DEFAULT_MAX_LENGTH,
            "includeDefinitions": bool(n.include_definitions),
        }


def validation_cache_key(word: str, language: str) -> str:
    fields = {"word": word.strip().lower(), "language": language.strip().lower()}
    return "validate:" + json.dumps(fields, sort_keys=True, separators=(",", ":"))


@dataclass(frozen=True)
class WordResult:
    word: str
    definition: Optional[str]
    complexity: float
    difficulty_tier: DifficultyTier
    is_favorite: bool = False

    @classmethod
    def from_combination(cls, raw: Dict[str, Any]) -> Optional["WordResult"]:
        """
        Build a result from one entry of the service's `combinations` list.
        Returns None for entries without a usable word.
        """
        word = raw.get("word") if isinstance(raw, dict) else None
        if not isinstance(word, str) or not word.strip():
            logger.warning("Skipping malformed combination", extra={"event": "bad_combination", "raw": str(raw)[:200]})
            return None

        word = word.strip()
        definition = raw.get("definition")
        complexity = word_complexity(word.lower())
        return cls(
            word=word,
            definition=definition if isinstance(definition, str) and definition else None,
            complexity=complexity,
            difficulty_tier=difficulty_tier(complexity),
        )

    def to_dict(self) -> dict:
        return {
            "word": self.word,
            "definition": self.definition,
            "complexity": round(self.complexity, 4),
            "difficulty_tier": self.difficulty_tier.value,
            "is_favorite": self.is_favorite,
        }
