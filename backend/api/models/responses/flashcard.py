from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel
from typing import List, Optional
from datetime import datetime

class FlashcardResponse(BaseModel):
    id: str
    front: str
    back: str
    source: str
    origin_generation_id: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)

class FlashcardEnvelope(BaseModel):
    flashcard: FlashcardResponse

class FlashcardListResponse(BaseModel):
    data: List[FlashcardResponse]
