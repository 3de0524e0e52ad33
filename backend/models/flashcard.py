from datetime import datetime, UTC
import uuid

from sqlalchemy import Column, String, ForeignKey, DateTime, Text, UniqueConstraint, CheckConstraint, Index, DDL, event
from sqlalchemy.orm import relationship

from config.env import settings
from .base import Base
from .enums import FlashcardSource

# Message raised by the per-user limit trigger; matched when classifying IntegrityErrors
FLASHCARD_LIMIT_TRIGGER_MESSAGE = "flashcard_limit_reached"

class Flashcard(Base):
    __tablename__ = "flashcards"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String(255), nullable=False)
    front = Column(Text, nullable=False)
    back = Column(Text, nullable=False)
    source = Column(String(20), nullable=False, default=FlashcardSource.MANUAL.value)
    origin_generation_id = Column(String(36), ForeignKey('ai_generation_logs.id'), nullable=True)
    created_at = Column(DateTime, default=lambda: datetime.now(UTC))
    updated_at = Column(DateTime, default=lambda: datetime.now(UTC), onupdate=lambda: datetime.now(UTC))

    # Relationships
    origin_generation = relationship("AIGeneration", back_populates="flashcards")

    __table_args__ = (
        # A user cannot own two cards with the same front
        UniqueConstraint('user_id', 'front', name='uq_flashcards_user_front'),
        CheckConstraint(
            "(source = 'manual' AND origin_generation_id IS NULL) OR "
            "(source <> 'manual' AND origin_generation_id IS NOT NULL)",
            name='ck_flashcards_source_origin'
        ),
        Index('ix_flashcards_user_created', 'user_id', 'created_at'),
    )

    def __repr__(self):
        return f"<Flashcard id={self.id} user={self.user_id} source={self.source}>"

# Storage-level ceiling on cards per user. The service layer pre-checks the same
# limit, but concurrent inserts can only be stopped here.
event.listen(
    Flashcard.__table__,
    "after_create",
    DDL(
        f"""
        CREATE TRIGGER IF NOT EXISTS trg_flashcards_limit
        BEFORE INSERT ON flashcards
        WHEN (SELECT COUNT(*) FROM flashcards WHERE user_id = NEW.user_id) >= {int(settings.flashcard_limit)}
        BEGIN
            SELECT RAISE(ABORT, '{FLASHCARD_LIMIT_TRIGGER_MESSAGE}');
        END;
        """
    ).execute_if(dialect="sqlite")
)

event.listen(
    Flashcard.__table__,
    "after_create",
    DDL(
        f"""
        CREATE OR REPLACE FUNCTION enforce_flashcard_limit() RETURNS trigger AS $$
        BEGIN
            IF (SELECT COUNT(*) FROM flashcards WHERE user_id = NEW.user_id) >= {int(settings.flashcard_limit)} THEN
                RAISE EXCEPTION '{FLASHCARD_LIMIT_TRIGGER_MESSAGE}' USING ERRCODE = 'check_violation';
            END IF;
            RETURN NEW;
        END;
        $$ LANGUAGE plpgsql
        """
    ).execute_if(dialect="postgresql")
)

event.listen(
    Flashcard.__table__,
    "after_create",
    DDL(
        "CREATE TRIGGER trg_flashcards_limit BEFORE INSERT ON flashcards "
        "FOR EACH ROW EXECUTE FUNCTION enforce_flashcard_limit()"
    ).execute_if(dialect="postgresql")
)
