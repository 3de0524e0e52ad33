import pytest
from pydantic import ValidationError

from api.models.requests.ai_generation import CreateGenerationRequest, CommitGenerationRequest
from api.models.requests.flashcard import FlashcardCreate, FlashcardUpdate
from utils.text import sanitize_source_text, sanitize_flashcard_text, hash_text
from utils.validation import (
    count_code_points,
    validate_source_text,
    validate_flashcard_front,
    validate_flashcard_back,
    validate_temperature,
    validate_max_flashcards,
    validate_model,
    might_exceed_payload_size,
)

def test_count_code_points_counts_scalar_values():
    """Emoji outside the BMP count once each."""
    assert count_code_points("😀😀") == 2
    assert count_code_points("zażółć") == 6
    assert count_code_points("") == 0

@pytest.mark.parametrize("length,valid", [(999, False), (1000, True), (10000, True), (10001, False)])
def test_validate_source_text_bounds(length, valid):
    result = validate_source_text("a" * length)
    assert result.is_valid is valid
    if not valid:
        assert f"(currently: {length})" in result.error

def test_validate_source_text_measures_trimmed_text():
    result = validate_source_text("   " + "a" * 999 + "   ")
    assert not result.is_valid
    assert "at least 1000" in result.error

def test_validate_source_text_counts_emoji_as_one():
    assert validate_source_text("😀" * 1000).is_valid

def test_validate_flashcard_front_and_back():
    assert validate_flashcard_front("a" * 10).is_valid
    assert not validate_flashcard_front("a" * 201).is_valid
    assert validate_flashcard_back("a" * 500).is_valid
    assert "must not exceed 500" in validate_flashcard_back("a" * 501).error

    result = validate_flashcard_front("zbyt")
    assert not result.is_valid
    assert "at least 10" in result.error

@pytest.mark.parametrize("value,valid", [
    (None, True),
    (0.0, True),
    (1.25, True),
    (2.0, True),
    (1.234, False),
    (-0.1, False),
    (2.1, False),
    (float("nan"), False),
])
def test_validate_temperature(value, valid):
    assert validate_temperature(value).is_valid is valid

@pytest.mark.parametrize("value,valid", [(1, True), (15, True), (0, False), (16, False), (2.5, False), (True, False)])
def test_validate_max_flashcards(value, valid):
    assert validate_max_flashcards(value).is_valid is valid

def test_validate_model():
    allowed = ["model-a", "model-b"]
    assert validate_model(None, allowed).is_valid
    assert validate_model("model-b", allowed).is_valid
    result = validate_model("model-c", allowed)
    assert not result.is_valid
    assert "model-a" in result.error

def test_might_exceed_payload_size():
    # 8115 * 1.2 + 500 = 10238 bytes, just under 10 KB
    assert not might_exceed_payload_size("a" * 8115)
    assert might_exceed_payload_size("a" * 8120)

def test_sanitize_source_text():
    raw = "  Hello\x00 \t world\x07\n\n\n\n\nNext   paragraph\r\n  "
    assert sanitize_source_text(raw) == "Hello world\n\nNext paragraph"

def test_sanitize_flashcard_text_keeps_newlines():
    assert sanitize_flashcard_text("  What  is\tit?\nLine two\x01 ") == "What is\tit?\nLine two"

def test_hash_text_is_sha256_hex():
    assert hash_text("abc") == "ba7816bf8f01cfea414140de5dae2223b00361a396177a9cb410ff61f20015ad"

def test_create_generation_request_sanitizes_and_accepts_camel_case(source_text):
    request = CreateGenerationRequest.model_validate({
        "sourceText": "   " + source_text + "\x00",
        "maxFlashcards": 5,
        "temperature": 0.75
    })
    assert request.source_text == source_text.strip()
    assert request.max_flashcards == 5
    assert request.model is None

def test_create_generation_request_rejects_short_text_after_sanitization():
    with pytest.raises(ValidationError) as exc_info:
        CreateGenerationRequest.model_validate({"sourceText": "a  " * 400, "maxFlashcards": 5})
    assert "after sanitization" in str(exc_info.value)

@pytest.mark.parametrize("field,value", [
    ("maxFlashcards", 0),
    ("maxFlashcards", 16),
    ("temperature", 1.234),
    ("temperature", 2.5),
    ("model", "some/unknown-model"),
    ("unexpected", "value"),
])
def test_create_generation_request_rejects_invalid_fields(source_text, field, value):
    body = {"sourceText": source_text, "maxFlashcards": 5, field: value}
    with pytest.raises(ValidationError):
        CreateGenerationRequest.model_validate(body)

def test_commit_request_splits_actions():
    request = CommitGenerationRequest.model_validate({"flashcards": [
        {"action": "accept", "proposalId": "p1", "front": "Front of card one", "back": "Back of card one"},
        {"action": "reject", "proposalId": "p2", "reason": "duplicate"},
        {"action": "reject", "proposalId": "p3"},
    ]})
    assert [a.proposal_id for a in request.accepted] == ["p1"]
    assert [r.proposal_id for r in request.rejected] == ["p2", "p3"]

def test_commit_request_rejects_unknown_action():
    with pytest.raises(ValidationError):
        CommitGenerationRequest.model_validate({"flashcards": [{"action": "maybe", "proposalId": "p1"}]})

def test_flashcard_create_origin_rules():
    card = FlashcardCreate.model_validate({"front": "  Capital  of France? ", "back": "Paris is the capital."})
    assert card.front == "Capital of France?"
    assert card.source.value == "manual"

    with pytest.raises(ValidationError):
        FlashcardCreate.model_validate({"front": "Capital of France?", "back": "Paris is the capital.", "source": "ai-full"})

    with pytest.raises(ValidationError):
        FlashcardCreate.model_validate({
            "front": "Capital of France?",
            "back": "Paris is the capital.",
            "source": "manual",
            "originGenerationId": "6f1c1d0e-8f0a-4a4e-9a51-1f2b3c4d5e6f"
        })

def test_flashcard_update_changes_only_include_sent_fields():
    assert FlashcardUpdate.model_validate({}).changes() == {}
    assert FlashcardUpdate.model_validate({"back": "A brand new answer"}).changes() == {"back": "A brand new answer"}
