from fastapi import APIRouter, Depends, Response
from sqlalchemy.orm import Session

from database import get_db
from config.env import settings
from api.dependencies import get_current_user_id, json_body
from api.models.requests.ai_generation import CreateGenerationRequest, CommitGenerationRequest
from api.models.responses.ai_generation import (
    CreateGenerationResponse,
    GenerationDetailResponse,
    CommitGenerationResponse,
)
from services.ai_generation import AIGenerationService
from services.errors import ErrorCode
from services.generation_queue import GenerationQueueClient, get_generation_queue

router = APIRouter()

create_generation_body = json_body(
    CreateGenerationRequest,
    code=ErrorCode.SCHEMA_VALIDATION_FAILED,
    message="Input validation failed. Please check your request data.",
    max_bytes=settings.max_generation_payload_bytes
)
commit_body = json_body(CommitGenerationRequest, message="Invalid commit command")

@router.post("", response_model=CreateGenerationResponse, status_code=202)
async def create_generation(
    response: Response,
    user_id: str = Depends(get_current_user_id),
    request_data: CreateGenerationRequest = Depends(create_generation_body),
    db: Session = Depends(get_db),
    queue: GenerationQueueClient = Depends(get_generation_queue)
):
    """Start generating flashcard proposals from source text.

    Returns 202 immediately; the proposals are produced by the background
    worker and fetched by polling GET /api/ai-generations/{id}.
    """
    response.headers["Cache-Control"] = "no-store"
    service = AIGenerationService(db, user_id, queue)
    return await service.create_generation(request_data)

@router.get("/{generation_id}", response_model=GenerationDetailResponse)
async def get_generation(
    generation_id: str,
    response: Response,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db)
):
    """Get a generation with its proposals and metrics."""
    response.headers["Cache-Control"] = "no-store"
    service = AIGenerationService(db, user_id)
    return service.get_generation(generation_id)

@router.post("/{generation_id}/commit", response_model=CommitGenerationResponse)
async def commit_generation(
    generation_id: str,
    user_id: str = Depends(get_current_user_id),
    commit_request: CommitGenerationRequest = Depends(commit_body),
    db: Session = Depends(get_db)
):
    """Accept or reject proposals; accepted ones become flashcards."""
    service = AIGenerationService(db, user_id)
    return service.commit_generation(generation_id, commit_request)
