from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel
from typing import List, Optional
from datetime import datetime

from .flashcard import FlashcardResponse

CAMEL = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)

class GenerationSummaryResponse(BaseModel):
    model_config = CAMEL

    id: str = Field(..., description="ID of the generation")
    status: str = Field(..., description="pending, succeeded or failed")
    source_text_length: int = Field(..., description="Code points of the sanitized source text")
    max_flashcards: int
    created_at: datetime
    expires_at: datetime = Field(..., description="When the client should stop polling")

class CreateGenerationResponse(BaseModel):
    generation: GenerationSummaryResponse

class ProposedFlashcardResponse(BaseModel):
    model_config = CAMEL

    proposal_id: str
    front: str
    back: str
    source: str = "ai-full"

class GenerationMetricsResponse(BaseModel):
    model_config = CAMEL

    generated_count: int = 0
    accepted_count: int = 0
    accepted_edited_count: int = 0
    accepted_unedited_count: int = 0
    rejected_count: int = 0
    duration_ms: Optional[int] = None

class GenerationDetailResponse(GenerationSummaryResponse):
    updated_at: datetime
    model: str
    temperature: Optional[float] = None
    duration_ms: Optional[int] = None
    error_message: Optional[str] = None
    proposed_flashcards: List[ProposedFlashcardResponse] = []
    metrics: GenerationMetricsResponse
    source_text_hash: str

class CommitSummaryResponse(BaseModel):
    model_config = CAMEL

    accepted: int
    accepted_edited: int
    accepted_unedited: int
    rejected: int
    skipped: int

class CommitMetricsResponse(BaseModel):
    model_config = CAMEL

    accepted_count: int
    accepted_edited_count: int
    accepted_unedited_count: int
    rejected_count: int
    duration_ms: Optional[int] = None

class CommitGenerationResponse(BaseModel):
    accepted: List[FlashcardResponse]
    summary: CommitSummaryResponse
    metrics: CommitMetricsResponse
