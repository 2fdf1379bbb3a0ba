# pipeline/validation.py
"""
Synchronous input checks shared by the debouncer and the orchestrator.
They run before anything touches the cache or the network.
"""

import string
from typing import Optional, TYPE_CHECKING

from core.exceptions import ValidationError

if TYPE_CHECKING:
    from pipeline.models import GenerationRequest

MIN_CHARS = 1
MAX_CHARS = 15

_BASE = frozenset(string.ascii_lowercase)

# Lowercase alphabet per supported ISO 639-1 language code
SUPPORTED_LANGUAGES = {
    "en": _BASE,
    "es": _BASE | frozenset("ñáéíóúü"),
    "fr": _BASE | frozenset("àâæçéèêëîïôœùûüÿ"),
    "de": _BASE | frozenset("äöüß"),
}

LANGUAGE_NAMES = {
    "en": "English",
    "es": "Spanish",
    "fr": "French",
    "de": "German",
}


def validate_language(language: Optional[str]) -> str:
    code = language.strip().lower() if isinstance(language, str) else ""
    if code not in SUPPORTED_LANGUAGES:
        supported = ", ".join(f"{name} ({lang})" for lang, name in LANGUAGE_NAMES.items())
        raise ValidationError(f"Unsupported language: {language!r}. Supported: {supported}", field="language")
    return code


def validate_characters(text: Optional[str], language: str, field: str = "characters") -> str:
    """
    Check length and alphabet of `text` for `language`.
    Returns the normalized (stripped, lowercased) text.
    """
    alphabet = SUPPORTED_LANGUAGES[validate_language(language)]
    if not isinstance(text, str):
        raise ValidationError("Input is required", field=field)

    normalized = text.strip().lower()
    if not MIN_CHARS <= len(normalized) <= MAX_CHARS:
        raise ValidationError(
            f"Input must be between {MIN_CHARS} and {MAX_CHARS} characters",
            field=field,
        )

    invalid = sorted({ch for ch in normalized if ch not in alphabet})
    if invalid:
        raise ValidationError(
            f"Please enter valid alphabetic characters only (rejected: {''.join(invalid)!r})",
            field=field,
        )
    return normalized


def validate_length_bounds(min_length: Optional[int], max_length: Optional[int]) -> None:
    for name, value in (("min_length", min_length), ("max_length", max_length)):
        if value is None:
            continue
        if isinstance(value, bool) or not isinstance(value, int):
            raise ValidationError(f"{name} must be an integer", field=name)
        if not MIN_CHARS <= value <= MAX_CHARS:
            raise ValidationError(f"{name} must be between {MIN_CHARS} and {MAX_CHARS}", field=name)

    if min_length is not None and max_length is not None and min_length > max_length:
        raise ValidationError("min_length cannot exceed max_length", field="min_length")


def validate_generation_request(request: "GenerationRequest") -> None:
    validate_characters(request.characters, request.language)
    validate_length_bounds(request.min_length, request.max_length)


def validate_word_input(word: Optional[str], language: str) -> str:
    return validate_characters(word, language, field="word")
