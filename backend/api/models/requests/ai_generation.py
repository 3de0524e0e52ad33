from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel
from typing import Annotated, List, Literal, Optional, Union

from config.env import settings
from utils.text import sanitize_source_text
from utils.validation import (
    count_code_points,
    decimal_places,
    SOURCE_TEXT_MIN_LENGTH,
    SOURCE_TEXT_MAX_LENGTH,
    FRONT_MIN_LENGTH,
    FRONT_MAX_LENGTH,
    BACK_MIN_LENGTH,
    BACK_MAX_LENGTH,
    MAX_FLASHCARDS_MIN,
    MAX_FLASHCARDS_MAX,
    TEMPERATURE_MIN,
    TEMPERATURE_MAX,
    TEMPERATURE_MAX_DECIMALS,
)

class CreateGenerationRequest(BaseModel):
    """Body of POST /api/ai-generations. Unknown keys are rejected."""
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="forbid",
        json_schema_extra={
            "example": {
                "sourceText": "Photosynthesis is the process ... (at least 1000 characters)",
                "maxFlashcards": 5,
                "model": "openrouter/openai/gpt-4o-mini",
                "temperature": 0.7
            }
        }
    )

    source_text: str = Field(..., description="Text to derive flashcards from (1000-10000 characters after sanitization)")
    max_flashcards: int = Field(..., strict=True, ge=MAX_FLASHCARDS_MIN, le=MAX_FLASHCARDS_MAX, description="Maximum number of proposals")
    model: Optional[str] = Field(default=None, description="Model identifier from the allowed list")
    temperature: Optional[float] = Field(default=None, strict=True, ge=TEMPERATURE_MIN, le=TEMPERATURE_MAX, description="Sampling temperature")

    @field_validator("source_text")
    @classmethod
    def sanitize_and_check_length(cls, value: str) -> str:
        sanitized = sanitize_source_text(value)
        length = count_code_points(sanitized)
        if length < SOURCE_TEXT_MIN_LENGTH:
            raise ValueError(f"Source text must be at least {SOURCE_TEXT_MIN_LENGTH} characters after sanitization")
        if length > SOURCE_TEXT_MAX_LENGTH:
            raise ValueError(f"Source text must not exceed {SOURCE_TEXT_MAX_LENGTH} characters after sanitization")
        return sanitized

    @field_validator("model")
    @classmethod
    def check_allowed_model(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return value
        value = value.strip()
        allowed = settings.get_allowed_models()
        if value not in allowed:
            raise ValueError(f"Model must be one of the allowed models: {', '.join(allowed)}")
        return value

    @field_validator("temperature")
    @classmethod
    def check_decimal_places(cls, value: Optional[float]) -> Optional[float]:
        if value is not None and decimal_places(value) > TEMPERATURE_MAX_DECIMALS:
            raise ValueError(f"Temperature must have at most {TEMPERATURE_MAX_DECIMALS} decimal places")
        return value

class AcceptProposal(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    action: Literal["accept"]
    proposal_id: str
    front: str = Field(..., min_length=FRONT_MIN_LENGTH, max_length=FRONT_MAX_LENGTH)
    back: str = Field(..., min_length=BACK_MIN_LENGTH, max_length=BACK_MAX_LENGTH)

class RejectProposal(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    action: Literal["reject"]
    proposal_id: str
    reason: Optional[str] = None

GenerationCommitAction = Annotated[Union[AcceptProposal, RejectProposal], Field(discriminator="action")]

class CommitGenerationRequest(BaseModel):
    """Body of POST /api/ai-generations/{id}/commit."""
    flashcards: List[GenerationCommitAction] = Field(..., description="Accept/reject decision per proposal")

    @property
    def accepted(self) -> List[AcceptProposal]:
        return [f for f in self.flashcards if isinstance(f, AcceptProposal)]

    @property
    def rejected(self) -> List[RejectProposal]:
        return [f for f in self.flashcards if isinstance(f, RejectProposal)]
