"""Field validators shared by the API schemas and the generation client.

Every validator returns a ValidationResult instead of raising, so callers can
show the message next to the field. Lengths are measured in Unicode code points
on the trimmed text; the server schemas sanitize before measuring, these do not.
"""
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
import math
from typing import Optional, Sequence

SOURCE_TEXT_MIN_LENGTH = 1000
SOURCE_TEXT_MAX_LENGTH = 10000
FRONT_MIN_LENGTH = 10
FRONT_MAX_LENGTH = 200
BACK_MIN_LENGTH = 10
BACK_MAX_LENGTH = 500
TEMPERATURE_MIN = 0.0
TEMPERATURE_MAX = 2.0
TEMPERATURE_MAX_DECIMALS = 2
MAX_FLASHCARDS_MIN = 1
MAX_FLASHCARDS_MAX = 15
MAX_PAYLOAD_BYTES = 10 * 1024

@dataclass(frozen=True)
class ValidationResult:
    is_valid: bool
    error: Optional[str] = None

VALID = ValidationResult(is_valid=True)

def count_code_points(text: str) -> int:
    """Number of Unicode scalar values in text (not UTF-16 code units)."""
    return len(text)

def _validate_length(text: str, label: str, minimum: int, maximum: int) -> ValidationResult:
    length = count_code_points(text.strip())
    if length < minimum:
        return ValidationResult(
            is_valid=False,
            error=f"{label} must be at least {minimum} characters (currently: {length})"
        )
    if length > maximum:
        return ValidationResult(
            is_valid=False,
            error=f"{label} must not exceed {maximum} characters (currently: {length})"
        )
    return VALID

def validate_source_text(text: str) -> ValidationResult:
    return _validate_length(text, "Source text", SOURCE_TEXT_MIN_LENGTH, SOURCE_TEXT_MAX_LENGTH)

def validate_flashcard_front(text: str) -> ValidationResult:
    return _validate_length(text, "Front", FRONT_MIN_LENGTH, FRONT_MAX_LENGTH)

def validate_flashcard_back(text: str) -> ValidationResult:
    return _validate_length(text, "Back", BACK_MIN_LENGTH, BACK_MAX_LENGTH)

def validate_model(model: Optional[str], allowed_models: Sequence[str]) -> ValidationResult:
    """Optional field; when set it must be on the whitelist."""
    if not model:
        return VALID
    if model not in allowed_models:
        return ValidationResult(
            is_valid=False,
            error=f"Model must be one of: {', '.join(allowed_models)}"
        )
    return VALID

def decimal_places(value: float) -> int:
    try:
        exponent = Decimal(str(value)).as_tuple().exponent
    except InvalidOperation:
        return 0
    return max(0, -exponent) if isinstance(exponent, int) else 0

def validate_temperature(value: Optional[float]) -> ValidationResult:
    """Optional field; 0.0-2.0 with at most two decimal digits."""
    if value is None:
        return VALID
    if not math.isfinite(value) or value < TEMPERATURE_MIN or value > TEMPERATURE_MAX:
        return ValidationResult(
            is_valid=False,
            error=f"Temperature must be between {TEMPERATURE_MIN} and {TEMPERATURE_MAX}"
        )
    if decimal_places(value) > TEMPERATURE_MAX_DECIMALS:
        return ValidationResult(
            is_valid=False,
            error=f"Temperature may have at most {TEMPERATURE_MAX_DECIMALS} decimal places"
        )
    return VALID

def validate_max_flashcards(value) -> ValidationResult:
    if isinstance(value, bool) or not isinstance(value, int):
        return ValidationResult(is_valid=False, error="Number of flashcards must be an integer")
    if value < MAX_FLASHCARDS_MIN or value > MAX_FLASHCARDS_MAX:
        return ValidationResult(
            is_valid=False,
            error=f"Number of flashcards must be between {MAX_FLASHCARDS_MIN} and {MAX_FLASHCARDS_MAX}"
        )
    return VALID

def might_exceed_payload_size(source_text: str) -> bool:
    """Rough pre-check for a 413: 20% JSON overhead plus 500 bytes of metadata."""
    estimated_size = len(source_text) * 1.2 + 500
    return estimated_size > MAX_PAYLOAD_BYTES
