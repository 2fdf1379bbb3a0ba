import pytest

from core.exceptions import ValidationError
from pipeline.models import GenerationRequest, WordResult, validation_cache_key
from pipeline.scoring import DifficultyTier, difficulty_tier, word_complexity
from pipeline.validation import (
    validate_characters,
    validate_generation_request,
    validate_language,
    validate_length_bounds,
)


# ---------------------------------------------------------------------------
# Input validation
# ---------------------------------------------------------------------------

def test_characters_are_normalized():
    assert validate_characters("  CaT ", "en") == "cat"


@pytest.mark.parametrize("text", ["", "   ", "a" * 16, "ca7", "c a", "héllo"])
def test_invalid_english_input(text):
    with pytest.raises(ValidationError) as info:
        validate_characters(text, "en")
    assert info.value.field == "characters"


def test_non_string_input_is_rejected():
    with pytest.raises(ValidationError):
        validate_characters(None, "en")


def test_length_boundaries_are_inclusive():
    assert validate_characters("a", "en") == "a"
    assert validate_characters("a" * 15, "en") == "a" * 15


@pytest.mark.parametrize(
    "language,text",
    [("es", "niño"), ("fr", "garçon"), ("de", "straße")],
)
def test_language_specific_letters(language, text):
    assert validate_characters(text, language) == text


def test_language_letters_do_not_leak_across_languages():
    with pytest.raises(ValidationError):
        validate_characters("straße", "en")


def test_unsupported_language():
    with pytest.raises(ValidationError) as info:
        validate_language("xx")
    assert info.value.field == "language"
    assert validate_language(" EN ") == "en"


def test_length_bounds():
    validate_length_bounds(None, None)
    validate_length_bounds(2, 15)

    with pytest.raises(ValidationError):
        validate_length_bounds(5, 3)
    with pytest.raises(ValidationError):
        validate_length_bounds(0, None)
    with pytest.raises(ValidationError):
        validate_length_bounds(None, True)


def test_generation_request_validation():
    validate_generation_request(GenerationRequest("cat", min_length=2, max_length=3))
    with pytest.raises(ValidationError):
        validate_generation_request(GenerationRequest("cat", language="xx"))


# ---------------------------------------------------------------------------
# Scoring
# ---------------------------------------------------------------------------

def test_word_complexity_examples():
    assert word_complexity("cat") == pytest.approx(0.455)
    assert word_complexity("hello") == pytest.approx(0.3733, abs=1e-4)
    assert word_complexity("") == 0.0


def test_complexity_stays_in_unit_interval():
    for word in ("a", "strengths", "onomatopoeia", "abcdefghijklmno"):
        assert 0.0 <= word_complexity(word) <= 1.0


def test_difficulty_tiers():
    assert difficulty_tier(0.0) is DifficultyTier.BEGINNER
    assert difficulty_tier(0.399) is DifficultyTier.BEGINNER
    assert difficulty_tier(0.4) is DifficultyTier.INTERMEDIATE
    assert difficulty_tier(0.7) is DifficultyTier.ADVANCED


# ---------------------------------------------------------------------------
# Models
# ---------------------------------------------------------------------------

def test_cache_key_ignores_case_and_whitespace():
    a = GenerationRequest("CAT ", language="EN")
    b = GenerationRequest("cat", language="en")
    assert a.cache_key() == b.cache_key()
    assert a.cache_key().startswith("generate:")


def test_cache_key_distinguishes_options():
    base = GenerationRequest("cat")
    assert base.cache_key() != GenerationRequest("cat", max_length=3).cache_key()
    assert base.cache_key() != GenerationRequest("cat", include_definitions=True).cache_key()
    assert base.cache_key() != GenerationRequest("cat", language="es").cache_key()


def test_payload_fills_default_lengths():
    payload = GenerationRequest(" Cat").to_payload()
    assert payload == {
        "characters": "cat",
        "language": "en",
        "minLength": 2,
        "maxLength": 15,
        "includeDefinitions": False,
    }


def test_validation_cache_key_is_separate_namespace():
    key = validation_cache_key("Cat", "en")
    assert key.startswith("validate:")
    assert key == validation_cache_key("cat ", "EN")


def test_word_result_from_combination():
    result = WordResult.from_combination({"word": "cat", "definition": "a small feline", "complexity": 99})

    assert result.word == "cat"
    assert result.definition == "a small feline"
    assert result.complexity == pytest.approx(0.455)
    assert result.difficulty_tier is DifficultyTier.INTERMEDIATE
    assert result.to_dict()["difficulty_tier"] == "INTERMEDIATE"


@pytest.mark.parametrize("raw", [{}, {"word": ""}, {"word": 5}, "cat", None])
def test_malformed_combinations_are_skipped(raw):
    assert WordResult.from_combination(raw) is None


def test_empty_definition_becomes_none():
    assert WordResult.from_combination({"word": "act", "definition": ""}).definition is None


def test_unsupported_language_message_lists_supported_languages():
    with pytest.raises(ValidationError) as info:
        validate_language("it")
    assert "English (en)" in str(info.value)
    assert "German (de)" in str(info.value)
