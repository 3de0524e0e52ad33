from sqlalchemy.orm import Session
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from typing import List
import logging

from config.env import settings
from models.flashcard import Flashcard
from api.models.requests.flashcard import FlashcardCreate, FlashcardUpdate
from services.errors import (
    ErrorCode,
    ServiceError,
    DUPLICATE_FLASHCARD_MESSAGE,
    flashcard_limit_message,
)
from utils.db_errors import classify_integrity_error, IntegrityKind

logger = logging.getLogger(__name__)

class FlashcardService:
    """CRUD over a single user's flashcards."""

    def __init__(self, db: Session, user_id: str):
        self.db = db
        self.user_id = user_id

    def count_flashcards(self) -> int:
        try:
            return self.db.query(func.count(Flashcard.id))\
                .filter(Flashcard.user_id == self.user_id)\
                .scalar() or 0
        except SQLAlchemyError as e:
            logger.error(f"Failed to count flashcards for user {self.user_id}: {str(e)}")
            raise ServiceError(ErrorCode.DB_CHECK_FAILED, "Failed to check flashcard count", details=[str(e)])

    def list_flashcards(self) -> List[Flashcard]:
        try:
            return self.db.query(Flashcard)\
                .filter(Flashcard.user_id == self.user_id)\
                .order_by(Flashcard.created_at.desc())\
                .all()
        except SQLAlchemyError as e:
            logger.error(f"Failed to load flashcards for user {self.user_id}: {str(e)}")
            raise ServiceError(ErrorCode.DB_READ_FAILED, "Failed to load flashcards", details=[str(e)])

    def create_flashcard(self, card: FlashcardCreate) -> Flashcard:
        """Create a flashcard; the storage layer enforces the per-user limit and front uniqueness."""
        new_card = Flashcard(
            user_id=self.user_id,
            front=card.front,
            back=card.back,
            source=card.source.value,
            origin_generation_id=str(card.origin_generation_id) if card.origin_generation_id else None
        )
        try:
            self.db.add(new_card)
            self.db.commit()
        except IntegrityError as e:
            self.db.rollback()
            raise self._constraint_error(e, "Failed to create flashcard")
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Failed to create flashcard: {str(e)}")
            raise ServiceError(ErrorCode.DB_WRITE_FAILED, "Failed to create flashcard", details=[str(e)])

        self.db.refresh(new_card)
        logger.info(f"Created {new_card.source} flashcard {new_card.id} for user {self.user_id}")
        return new_card

    def add_flashcard(self, **fields) -> Flashcard:
        """Stage a flashcard in the current transaction without committing.

        Constraint violations surface as ServiceError; the caller owns rollback.
        """
        new_card = Flashcard(user_id=self.user_id, **fields)
        try:
            self.db.add(new_card)
            self.db.flush()
        except IntegrityError as e:
            raise self._constraint_error(e, "Failed to create flashcard")
        return new_card

    def update_flashcard(self, card_id: str, card_update: FlashcardUpdate) -> Flashcard:
        updates = card_update.changes()
        if not updates:
            raise ServiceError(
                ErrorCode.FLASHCARD_UPDATE_EMPTY,
                "At least one field must be provided to update a flashcard"
            )

        card = self._get_owned(card_id)
        try:
            for field, value in updates.items():
                setattr(card, field, value)
            self.db.commit()
        except IntegrityError as e:
            self.db.rollback()
            raise self._constraint_error(e, "Failed to update flashcard")
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Failed to update flashcard {card_id}: {str(e)}")
            raise ServiceError(ErrorCode.DB_WRITE_FAILED, "Failed to update flashcard", details=[str(e)])

        self.db.refresh(card)
        return card

    def delete_flashcard(self, card_id: str) -> None:
        card = self._get_owned(card_id)
        try:
            self.db.delete(card)
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Failed to delete flashcard {card_id}: {str(e)}")
            raise ServiceError(ErrorCode.DB_WRITE_FAILED, "Failed to delete flashcard", details=[str(e)])
        logger.info(f"Deleted flashcard {card_id} for user {self.user_id}")

    def _get_owned(self, card_id: str) -> Flashcard:
        # Cards owned by other users are reported as missing
        card = self.db.query(Flashcard)\
            .filter(Flashcard.id == card_id, Flashcard.user_id == self.user_id)\
            .first()
        if not card:
            raise ServiceError(ErrorCode.FLASHCARD_NOT_FOUND, "Flashcard not found")
        return card

    def _constraint_error(self, error: IntegrityError, fallback: str) -> ServiceError:
        kind = classify_integrity_error(error)
        if kind == IntegrityKind.LIMIT:
            return ServiceError(ErrorCode.FLASHCARD_LIMIT_REACHED, flashcard_limit_message(settings.flashcard_limit))
        if kind == IntegrityKind.UNIQUE:
            return ServiceError(ErrorCode.FLASHCARD_DUPLICATE, DUPLICATE_FLASHCARD_MESSAGE)
        logger.error(f"{fallback}: {str(error)}")
        return ServiceError(ErrorCode.DB_WRITE_FAILED, fallback, details=[str(error.orig)])
