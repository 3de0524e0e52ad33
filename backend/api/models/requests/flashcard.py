from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel
from typing import Optional
from uuid import UUID

from models.enums import FlashcardSource
from utils.text import sanitize_flashcard_text
from utils.validation import (
    count_code_points,
    FRONT_MIN_LENGTH,
    FRONT_MAX_LENGTH,
    BACK_MIN_LENGTH,
    BACK_MAX_LENGTH,
)

def _checked_text(value: str, label: str, minimum: int, maximum: int) -> str:
    sanitized = sanitize_flashcard_text(value)
    length = count_code_points(sanitized)
    if length < minimum:
        raise ValueError(f"{label} text must be at least {minimum} characters")
    if length > maximum:
        raise ValueError(f"{label} text must not exceed {maximum} characters")
    return sanitized

def _check_origin(source: Optional[FlashcardSource], origin_generation_id: Optional[UUID]) -> None:
    if source == FlashcardSource.MANUAL and origin_generation_id:
        raise ValueError("originGenerationId should not be provided for manual flashcards")
    if source not in (None, FlashcardSource.MANUAL) and not origin_generation_id:
        raise ValueError("originGenerationId is required when source is AI-generated")

class FlashcardCreate(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    front: str = Field(..., description="Front text of the flashcard")
    back: str = Field(..., description="Back text of the flashcard")
    source: FlashcardSource = Field(default=FlashcardSource.MANUAL, description="manual, ai-full or ai-edited")
    origin_generation_id: Optional[UUID] = Field(default=None, description="Generation the card was accepted from")

    @field_validator("front")
    @classmethod
    def check_front(cls, value: str) -> str:
        return _checked_text(value, "Front", FRONT_MIN_LENGTH, FRONT_MAX_LENGTH)

    @field_validator("back")
    @classmethod
    def check_back(cls, value: str) -> str:
        return _checked_text(value, "Back", BACK_MIN_LENGTH, BACK_MAX_LENGTH)

    @model_validator(mode="after")
    def check_origin(self):
        _check_origin(self.source, self.origin_generation_id)
        return self

class FlashcardUpdate(BaseModel):
    """Partial update; only fields present in the body are applied."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    front: Optional[str] = Field(default=None, description="New front text of the flashcard")
    back: Optional[str] = Field(default=None, description="New back text of the flashcard")
    source: Optional[FlashcardSource] = Field(default=None, description="New source tag")
    origin_generation_id: Optional[UUID] = Field(default=None, description="New origin generation, null to clear")

    @field_validator("front")
    @classmethod
    def check_front(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return value
        return _checked_text(value, "Front", FRONT_MIN_LENGTH, FRONT_MAX_LENGTH)

    @field_validator("back")
    @classmethod
    def check_back(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return value
        return _checked_text(value, "Back", BACK_MIN_LENGTH, BACK_MAX_LENGTH)

    @model_validator(mode="after")
    def check_origin(self):
        _check_origin(self.source, self.origin_generation_id)
        return self

    def changes(self) -> dict:
        """Column values to write, keyed by model attribute."""
        updates = {}
        if self.front is not None:
            updates["front"] = self.front
        if self.back is not None:
            updates["back"] = self.back
        if self.source is not None:
            updates["source"] = self.source.value
        if "origin_generation_id" in self.model_fields_set:
            updates["origin_generation_id"] = str(self.origin_generation_id) if self.origin_generation_id else None
        return updates
