from datetime import datetime, timedelta, UTC
import uuid

from sqlalchemy import Column, Integer, String, ForeignKey, DateTime, Text, JSON, Float, Index, text
from sqlalchemy.orm import relationship

from config.env import settings
from .base import Base
from .enums import GenerationStatus

class AIGeneration(Base):
    """One request to derive flashcard proposals from a block of source text."""
    __tablename__ = "ai_generation_logs"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String(255), nullable=False)
    status = Column(String(20), nullable=False, default=GenerationStatus.PENDING.value)

    # Source text metadata
    source_text = Column(Text, nullable=False)
    source_text_hash = Column(String(64), nullable=False)
    source_text_length = Column(Integer, nullable=False)  # Code points of the sanitized text

    # {"maxFlashcards": n, "items": [{"proposalId", "front", "back"}, ...]}
    proposed_flashcards = Column(JSON, nullable=False, default=dict)

    # Model configuration
    model = Column(String(255), nullable=False)
    temperature = Column(Float, nullable=True)

    # Metrics
    generated_count = Column(Integer, nullable=False, default=0)
    accepted_count = Column(Integer, nullable=False, default=0)
    accepted_edited_count = Column(Integer, nullable=False, default=0)
    accepted_unedited_count = Column(Integer, nullable=False, default=0)
    rejected_count = Column(Integer, nullable=False, default=0)
    duration_ms = Column(Integer, nullable=True)
    error_message = Column(Text, nullable=True)

    created_at = Column(DateTime, default=lambda: datetime.now(UTC))
    updated_at = Column(DateTime, default=lambda: datetime.now(UTC), onupdate=lambda: datetime.now(UTC))

    # Relationships
    flashcards = relationship("Flashcard", back_populates="origin_generation")
    error_logs = relationship("AIGenerationErrorLog", back_populates="generation")

    __table_args__ = (
        # At most one pending generation per user
        Index(
            'uq_ai_generation_logs_pending_user',
            'user_id',
            unique=True,
            sqlite_where=text("status = 'pending'"),
            postgresql_where=text("status = 'pending'")
        ),
        Index('ix_ai_generation_logs_user_created', 'user_id', 'created_at'),
    )

    @property
    def max_flashcards(self) -> int:
        return (self.proposed_flashcards or {}).get("maxFlashcards") or 10

    @property
    def proposal_items(self) -> list:
        return list((self.proposed_flashcards or {}).get("items") or [])

    @property
    def expires_at(self) -> datetime:
        """Deadline after which the UI stops waiting for this generation."""
        return self.created_at + timedelta(minutes=settings.generation_expiry_minutes)

    def find_proposal(self, proposal_id: str) -> dict | None:
        # Older worker payloads used "id" instead of "proposalId"
        return next(
            (p for p in self.proposal_items if (p.get("proposalId") or p.get("id")) == proposal_id),
            None
        )

class AIGenerationErrorLog(Base):
    """Server-side failures while creating or processing a generation."""
    __tablename__ = "ai_generation_error_logs"

    id = Column(Integer, primary_key=True)
    user_id = Column(String(255), nullable=False)
    generation_id = Column(String(36), ForeignKey('ai_generation_logs.id'), nullable=True)
    error_code = Column(String(64), nullable=False)
    error_message = Column(Text, nullable=False)
    model = Column(String(255), nullable=True)
    source_text_hash = Column(String(64), nullable=True)
    source_text_length = Column(Integer, nullable=True)
    created_at = Column(DateTime, default=lambda: datetime.now(UTC))
    updated_at = Column(DateTime, default=lambda: datetime.now(UTC), onupdate=lambda: datetime.now(UTC))

    generation = relationship("AIGeneration", back_populates="error_logs")
