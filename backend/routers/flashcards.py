from fastapi import APIRouter, Depends, Response
from sqlalchemy.orm import Session

from database import get_db
from api.dependencies import get_current_user_id, json_body
from api.models.requests.flashcard import FlashcardCreate, FlashcardUpdate
from api.models.responses.flashcard import FlashcardEnvelope, FlashcardListResponse, FlashcardResponse
from services.flashcard import FlashcardService

router = APIRouter()

@router.get("", response_model=FlashcardListResponse)
async def list_flashcards(
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db)
):
    """List the caller's flashcards, newest first."""
    service = FlashcardService(db, user_id)
    cards = service.list_flashcards()
    return FlashcardListResponse(data=[FlashcardResponse.model_validate(card) for card in cards])

@router.post("", response_model=FlashcardEnvelope, status_code=201)
async def create_flashcard(
    user_id: str = Depends(get_current_user_id),
    card: FlashcardCreate = Depends(json_body(FlashcardCreate)),
    db: Session = Depends(get_db)
):
    service = FlashcardService(db, user_id)
    new_card = service.create_flashcard(card)
    return FlashcardEnvelope(flashcard=FlashcardResponse.model_validate(new_card))

@router.patch("/{card_id}", response_model=FlashcardEnvelope)
async def update_flashcard(
    card_id: str,
    user_id: str = Depends(get_current_user_id),
    card_update: FlashcardUpdate = Depends(json_body(FlashcardUpdate)),
    db: Session = Depends(get_db)
):
    """Partially update a flashcard; an empty body is rejected."""
    service = FlashcardService(db, user_id)
    card = service.update_flashcard(card_id, card_update)
    return FlashcardEnvelope(flashcard=FlashcardResponse.model_validate(card))

@router.delete("/{card_id}", status_code=204)
async def delete_flashcard(
    card_id: str,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db)
):
    service = FlashcardService(db, user_id)
    service.delete_flashcard(card_id)
    return Response(status_code=204)
