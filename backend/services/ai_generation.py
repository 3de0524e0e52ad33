from sqlalchemy.orm import Session
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from typing import Optional
import logging

from config.env import settings
from models.enums import GenerationStatus, FlashcardSource
from models.generation import AIGeneration, AIGenerationErrorLog
from api.models.requests.ai_generation import CreateGenerationRequest, CommitGenerationRequest
from api.models.responses.ai_generation import (
    CreateGenerationResponse,
    GenerationSummaryResponse,
    GenerationDetailResponse,
    GenerationMetricsResponse,
    ProposedFlashcardResponse,
    CommitGenerationResponse,
    CommitSummaryResponse,
    CommitMetricsResponse,
)
from api.models.responses.flashcard import FlashcardResponse
from services.errors import (
    ErrorCode,
    ServiceError,
    GENERATION_PENDING_MESSAGE,
    flashcard_limit_message,
)
from services.flashcard import FlashcardService
from services.generation_queue import GenerationQueueClient, EnqueueGenerationPayload, QueueEnqueueError
from utils.db_errors import classify_integrity_error, IntegrityKind
from utils.text import hash_text
from utils.validation import count_code_points

logger = logging.getLogger(__name__)

ENQUEUE_FAILED_MESSAGE = "Failed to enqueue AI generation for background processing"

class AIGenerationService:
    """Business rules around creating, reading and committing AI generations for one user."""

    def __init__(self, db: Session, user_id: str, queue: Optional[GenerationQueueClient] = None):
        self.db = db
        self.user_id = user_id
        self.queue = queue
        self.flashcard_service = FlashcardService(db, user_id)

    async def create_generation(self, request: CreateGenerationRequest) -> CreateGenerationResponse:
        """Create a pending generation and hand it to the background worker.

        Rules enforced before anything is written:
        - the user has no other pending generation
        - the user owns fewer flashcards than the limit

        The pending check is repeated by the storage layer's partial unique index;
        a violation there is reported exactly like a failed pre-check. If the worker
        cannot be reached the record is marked failed before the error propagates.
        """
        source_text = request.source_text
        source_text_length = count_code_points(source_text)
        source_text_hash = hash_text(source_text)
        model = request.model or settings.default_generation_model
        generation_id = None

        try:
            self._assert_no_pending_generation()

            limit = settings.flashcard_limit
            flashcard_count = self.flashcard_service.count_flashcards()
            if flashcard_count >= limit:
                raise ServiceError(
                    ErrorCode.FLASHCARD_LIMIT_REACHED,
                    flashcard_limit_message(limit)
                )

            # Allowed; the commit step enforces the real ceiling
            if flashcard_count + request.max_flashcards > limit:
                logger.warning(
                    f"Requested {request.max_flashcards} flashcards for user {self.user_id} "
                    f"but only {limit - flashcard_count} slots remain"
                )

            temperature = request.temperature if request.temperature is not None else settings.default_temperature

            generation = self._insert_pending_generation(
                source_text=source_text,
                source_text_hash=source_text_hash,
                source_text_length=source_text_length,
                max_flashcards=request.max_flashcards,
                model=model,
                temperature=temperature
            )
            generation_id = generation.id

            await self._dispatch(
                generation,
                EnqueueGenerationPayload(
                    generation_id=generation.id,
                    user_id=self.user_id,
                    max_flashcards=request.max_flashcards,
                    model=model,
                    temperature=temperature,
                    source_text_hash=source_text_hash
                )
            )

            logger.info(f"Generation {generation.id} created for user {self.user_id} with status {generation.status}")
            return CreateGenerationResponse(generation=self._to_summary(generation))

        except ServiceError as e:
            # Conflicts are expected traffic; only server failures are recorded
            if e.status_code >= 500:
                self._log_generation_error(generation_id, e.code, e.message, model, source_text_hash, source_text_length)
            raise
        except Exception as e:
            logger.exception(f"Unexpected error while creating generation for user {self.user_id}")
            self.db.rollback()
            error = ServiceError(
                ErrorCode.INTERNAL_ERROR,
                "An unexpected error occurred while creating the generation"
            )
            self._log_generation_error(generation_id, error.code, error.message, model, source_text_hash, source_text_length)
            raise error from e

    def get_generation(self, generation_id: str) -> GenerationDetailResponse:
        generation = self._get_owned_generation(generation_id)
        return self._to_detail(generation)

    def commit_generation(self, generation_id: str, request: CommitGenerationRequest) -> CommitGenerationResponse:
        """Turn accepted proposals into flashcards and record acceptance metrics.

        Accepted proposals whose text differs from the original proposal are
        stored as ai-edited, the rest as ai-full. All inserts and the metric
        update share one transaction; any conflict rolls the whole commit back.
        """
        generation = self._get_owned_generation(generation_id)
        accepted = request.accepted
        rejected = request.rejected

        limit = settings.flashcard_limit
        remaining_slots = limit - self.flashcard_service.count_flashcards()
        if len(accepted) > remaining_slots:
            raise ServiceError(
                ErrorCode.FLASHCARD_LIMIT_REACHED,
                f"Cannot accept {len(accepted)} flashcards. Only {max(remaining_slots, 0)} slots available."
            )

        created = []
        edited_count = 0
        unedited_count = 0
        try:
            for action in accepted:
                original = generation.find_proposal(action.proposal_id)
                was_edited = original is not None and (
                    action.front != original.get("front") or action.back != original.get("back")
                )
                if was_edited:
                    edited_count += 1
                else:
                    unedited_count += 1

                created.append(self.flashcard_service.add_flashcard(
                    front=action.front,
                    back=action.back,
                    source=(FlashcardSource.AI_EDITED if was_edited else FlashcardSource.AI_FULL).value,
                    origin_generation_id=generation.id
                ))

            generation.accepted_count = len(accepted)
            generation.accepted_edited_count = edited_count
            generation.accepted_unedited_count = unedited_count
            generation.rejected_count = len(rejected)
            self.db.commit()
        except ServiceError:
            self.db.rollback()
            raise
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Failed to commit generation {generation_id}: {str(e)}")
            raise ServiceError(ErrorCode.DB_WRITE_FAILED, "Failed to save accepted flashcards", details=[str(e)])

        skipped = max(0, len(generation.proposal_items) - len(accepted) - len(rejected))
        logger.info(
            f"Committed generation {generation_id}: accepted={len(accepted)} "
            f"(edited={edited_count}) rejected={len(rejected)} skipped={skipped}"
        )

        return CommitGenerationResponse(
            accepted=[FlashcardResponse.model_validate(card) for card in created],
            summary=CommitSummaryResponse(
                accepted=len(accepted),
                accepted_edited=edited_count,
                accepted_unedited=unedited_count,
                rejected=len(rejected),
                skipped=skipped
            ),
            metrics=CommitMetricsResponse(
                accepted_count=len(accepted),
                accepted_edited_count=edited_count,
                accepted_unedited_count=unedited_count,
                rejected_count=len(rejected),
                duration_ms=generation.duration_ms
            )
        )

    def _assert_no_pending_generation(self) -> None:
        try:
            pending = self.db.query(AIGeneration.id)\
                .filter(
                    AIGeneration.user_id == self.user_id,
                    AIGeneration.status == GenerationStatus.PENDING.value
                )\
                .first()
        except SQLAlchemyError as e:
            raise ServiceError(ErrorCode.DB_CHECK_FAILED, "Failed to check for pending generations", details=[str(e)])

        if pending:
            raise ServiceError(ErrorCode.GENERATION_PENDING, GENERATION_PENDING_MESSAGE)

    def _insert_pending_generation(
        self,
        source_text: str,
        source_text_hash: str,
        source_text_length: int,
        max_flashcards: int,
        model: str,
        temperature: float
    ) -> AIGeneration:
        generation = AIGeneration(
            user_id=self.user_id,
            status=GenerationStatus.PENDING.value,
            source_text=source_text,
            source_text_hash=source_text_hash,
            source_text_length=source_text_length,
            proposed_flashcards={"maxFlashcards": max_flashcards, "items": []},
            generated_count=0,
            accepted_count=0,
            accepted_edited_count=0,
            accepted_unedited_count=0,
            rejected_count=0,
            model=model,
            temperature=temperature,
            duration_ms=None,
            error_message=None
        )
        try:
            self.db.add(generation)
            self.db.commit()
        except IntegrityError as e:
            self.db.rollback()
            # Another request inserted a pending row between our check and this insert
            if classify_integrity_error(e) == IntegrityKind.UNIQUE:
                raise ServiceError(ErrorCode.GENERATION_PENDING, GENERATION_PENDING_MESSAGE, details=[str(e.orig)])
            raise ServiceError(ErrorCode.DB_WRITE_FAILED, "Failed to create generation record", details=[str(e.orig)])
        except SQLAlchemyError as e:
            self.db.rollback()
            raise ServiceError(ErrorCode.DB_WRITE_FAILED, "Failed to create generation record", details=[str(e)])

        self.db.refresh(generation)
        return generation

    async def _dispatch(self, generation: AIGeneration, payload: EnqueueGenerationPayload) -> None:
        try:
            await self.queue.enqueue(payload)
        except QueueEnqueueError as e:
            logger.error(f"Enqueue failed for generation {generation.id}: {str(e)}")
            self._mark_failed(generation, ENQUEUE_FAILED_MESSAGE)
            raise ServiceError(ErrorCode.QUEUE_ENQUEUE_FAILED, ENQUEUE_FAILED_MESSAGE, details=[str(e)]) from e
        except Exception as e:
            # The row is already committed as pending; it must not stay that way
            logger.exception(f"Unexpected error while enqueuing generation {generation.id}")
            self._mark_failed(generation, ENQUEUE_FAILED_MESSAGE)
            raise ServiceError(ErrorCode.QUEUE_ENQUEUE_FAILED, ENQUEUE_FAILED_MESSAGE, details=[str(e)]) from e

    def _mark_failed(self, generation: AIGeneration, message: str) -> None:
        """Compensating write so a dispatch failure never leaves a pending row behind."""
        try:
            generation.status = GenerationStatus.FAILED.value
            generation.error_message = message
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Failed to mark generation {generation.id} as failed: {str(e)}")

    def _log_generation_error(
        self,
        generation_id: Optional[str],
        code: ErrorCode,
        message: str,
        model: str,
        source_text_hash: str,
        source_text_length: int
    ) -> None:
        """Best-effort write to ai_generation_error_logs; never raises."""
        try:
            self.db.add(AIGenerationErrorLog(
                user_id=self.user_id,
                generation_id=generation_id,
                error_code=code.value,
                error_message=message,
                model=model,
                source_text_hash=source_text_hash,
                source_text_length=source_text_length
            ))
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Failed to log generation error {code.value}: {str(e)}")

    def _get_owned_generation(self, generation_id: str) -> AIGeneration:
        try:
            generation = self.db.query(AIGeneration)\
                .filter(AIGeneration.id == generation_id, AIGeneration.user_id == self.user_id)\
                .first()
        except SQLAlchemyError as e:
            logger.error(f"Failed to load generation {generation_id}: {str(e)}")
            raise ServiceError(ErrorCode.DB_READ_FAILED, "Failed to load generation", details=[str(e)])

        if not generation:
            raise ServiceError(
                ErrorCode.GENERATION_NOT_FOUND,
                "Generation not found or you don't have access to it"
            )
        return generation

    def _to_summary(self, generation: AIGeneration) -> GenerationSummaryResponse:
        return GenerationSummaryResponse(
            id=generation.id,
            status=generation.status,
            source_text_length=generation.source_text_length,
            max_flashcards=generation.max_flashcards,
            created_at=generation.created_at,
            expires_at=generation.expires_at
        )

    def _to_detail(self, generation: AIGeneration) -> GenerationDetailResponse:
        return GenerationDetailResponse(
            **self._to_summary(generation).model_dump(),
            updated_at=generation.updated_at,
            model=generation.model,
            temperature=generation.temperature,
            duration_ms=generation.duration_ms,
            error_message=generation.error_message,
            proposed_flashcards=[
                ProposedFlashcardResponse(
                    proposal_id=item.get("proposalId") or item.get("id") or "",
                    front=item.get("front", ""),
                    back=item.get("back", "")
                )
                for item in generation.proposal_items
            ],
            metrics=GenerationMetricsResponse(
                generated_count=generation.generated_count,
                accepted_count=generation.accepted_count,
                accepted_edited_count=generation.accepted_edited_count,
                accepted_unedited_count=generation.accepted_unedited_count,
                rejected_count=generation.rejected_count,
                duration_ms=generation.duration_ms
            ),
            source_text_hash=generation.source_text_hash
        )
