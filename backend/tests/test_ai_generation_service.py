import asyncio
import pytest
from sqlalchemy.exc import SQLAlchemyError

from api.models.requests.ai_generation import CreateGenerationRequest, CommitGenerationRequest
from config.env import settings
from models.enums import GenerationStatus
from models.flashcard import Flashcard
from models.generation import AIGeneration, AIGenerationErrorLog
from services.ai_generation import AIGenerationService
from services.errors import ErrorCode, ServiceError
from services.generation_queue import QueueEnqueueError
from utils.text import hash_text
from conftest import USER_ID, OTHER_USER_ID

def _request(source_text, **overrides):
    body = {"sourceText": source_text, "maxFlashcards": 5}
    body.update(overrides)
    return CreateGenerationRequest.model_validate(body)

@pytest.mark.asyncio
async def test_create_generation_persists_pending_record(test_db, fake_queue, source_text):
    """A new generation is stored as pending and handed to the queue."""
    service = AIGenerationService(test_db, USER_ID, fake_queue)

    response = await service.create_generation(_request(source_text))

    summary = response.generation
    assert summary.status == "pending"
    assert summary.max_flashcards == 5
    assert summary.source_text_length == len(source_text.strip())
    assert (summary.expires_at - summary.created_at).total_seconds() == settings.generation_expiry_minutes * 60

    generation = test_db.get(AIGeneration, summary.id)
    assert generation.user_id == USER_ID
    assert generation.proposed_flashcards == {"maxFlashcards": 5, "items": []}
    assert generation.model == settings.default_generation_model
    assert generation.temperature == settings.default_temperature
    assert generation.accepted_count == 0

    assert len(fake_queue.payloads) == 1
    payload = fake_queue.payloads[0]
    assert payload.generation_id == summary.id
    assert payload.source_text_hash == hash_text(source_text.strip())
    assert "sourceText" not in payload.to_json()

@pytest.mark.asyncio
async def test_create_generation_uses_requested_model_and_temperature(test_db, fake_queue, source_text):
    service = AIGenerationService(test_db, USER_ID, fake_queue)

    response = await service.create_generation(
        _request(source_text, model="openrouter/openai/gpt-4o-mini", temperature=0.3)
    )

    generation = test_db.get(AIGeneration, response.generation.id)
    assert generation.model == "openrouter/openai/gpt-4o-mini"
    assert generation.temperature == 0.3
    assert fake_queue.payloads[0].temperature == 0.3

@pytest.mark.asyncio
async def test_second_generation_while_pending_is_rejected(test_db, fake_queue, source_text):
    service = AIGenerationService(test_db, USER_ID, fake_queue)
    await service.create_generation(_request(source_text))

    with pytest.raises(ServiceError) as exc_info:
        await service.create_generation(_request(source_text))

    assert exc_info.value.code == ErrorCode.GENERATION_PENDING
    assert exc_info.value.status_code == 409
    assert test_db.query(AIGeneration).count() == 1
    # Conflicts are not incidents
    assert test_db.query(AIGenerationErrorLog).count() == 0

@pytest.mark.asyncio
async def test_concurrent_generations_only_one_succeeds(test_db, fake_queue, source_text):
    """Two requests issued back to back: exactly one wins."""
    first = AIGenerationService(test_db, USER_ID, fake_queue)
    second = AIGenerationService(test_db, USER_ID, fake_queue)

    results = await asyncio.gather(
        first.create_generation(_request(source_text)),
        second.create_generation(_request(source_text)),
        return_exceptions=True
    )

    errors = [r for r in results if isinstance(r, ServiceError)]
    assert len(errors) == 1
    assert errors[0].code == ErrorCode.GENERATION_PENDING
    assert test_db.query(AIGeneration).filter(AIGeneration.status == "pending").count() == 1

@pytest.mark.asyncio
async def test_pending_index_rejects_insert_that_skipped_the_check(test_db, fake_queue, source_text, monkeypatch):
    """The storage index is the real guard when two requests pass the pre-check together."""
    service = AIGenerationService(test_db, USER_ID, fake_queue)
    await service.create_generation(_request(source_text))

    monkeypatch.setattr(service, "_assert_no_pending_generation", lambda: None)
    with pytest.raises(ServiceError) as exc_info:
        await service.create_generation(_request(source_text))

    assert exc_info.value.code == ErrorCode.GENERATION_PENDING
    assert test_db.query(AIGeneration).count() == 1

@pytest.mark.asyncio
async def test_other_users_pending_generation_does_not_block(test_db, fake_queue, source_text):
    await AIGenerationService(test_db, OTHER_USER_ID, fake_queue).create_generation(_request(source_text))

    response = await AIGenerationService(test_db, USER_ID, fake_queue).create_generation(_request(source_text))

    assert response.generation.status == "pending"

@pytest.mark.asyncio
@pytest.mark.parametrize("max_flashcards", [1, 15])
async def test_create_generation_fails_at_flashcard_limit(test_db, fake_queue, source_text, make_flashcards, max_flashcards):
    make_flashcards(settings.flashcard_limit)
    service = AIGenerationService(test_db, USER_ID, fake_queue)

    with pytest.raises(ServiceError) as exc_info:
        await service.create_generation(_request(source_text, maxFlashcards=max_flashcards))

    assert exc_info.value.code == ErrorCode.FLASHCARD_LIMIT_REACHED
    assert exc_info.value.status_code == 409
    assert test_db.query(AIGeneration).count() == 0
    assert fake_queue.payloads == []

@pytest.mark.asyncio
async def test_create_generation_allows_overshooting_remaining_slots(test_db, fake_queue, source_text, make_flashcards, caplog):
    make_flashcards(12)
    service = AIGenerationService(test_db, USER_ID, fake_queue)

    response = await service.create_generation(_request(source_text, maxFlashcards=10))

    assert response.generation.status == "pending"
    assert "only 3 slots remain" in caplog.text

@pytest.mark.asyncio
async def test_enqueue_failure_marks_generation_failed(test_db, fake_queue, source_text):
    fake_queue.error = QueueEnqueueError("worker unavailable", status_code=503)
    service = AIGenerationService(test_db, USER_ID, fake_queue)

    with pytest.raises(ServiceError) as exc_info:
        await service.create_generation(_request(source_text))

    assert exc_info.value.code == ErrorCode.QUEUE_ENQUEUE_FAILED
    assert exc_info.value.status_code == 500

    generation = test_db.query(AIGeneration).one()
    assert generation.status == GenerationStatus.FAILED.value
    assert generation.error_message

    error_log = test_db.query(AIGenerationErrorLog).one()
    assert error_log.error_code == "QUEUE_ENQUEUE_FAILED"
    assert error_log.generation_id == generation.id
    assert error_log.user_id == USER_ID
    assert error_log.source_text_hash == hash_text(source_text.strip())

    # The failed record no longer blocks a retry
    fake_queue.error = None
    response = await service.create_generation(_request(source_text))
    assert response.generation.status == "pending"

@pytest.mark.asyncio
async def test_unexpected_enqueue_error_still_marks_generation_failed(test_db, fake_queue, source_text):
    fake_queue.error = RuntimeError("queue client crashed")
    service = AIGenerationService(test_db, USER_ID, fake_queue)

    with pytest.raises(ServiceError) as exc_info:
        await service.create_generation(_request(source_text))

    assert exc_info.value.code == ErrorCode.QUEUE_ENQUEUE_FAILED
    generation = test_db.query(AIGeneration).one()
    assert generation.status == GenerationStatus.FAILED.value
    assert test_db.query(AIGenerationErrorLog).one().generation_id == generation.id

    fake_queue.error = None
    response = await service.create_generation(_request(source_text))
    assert response.generation.status == "pending"

@pytest.mark.asyncio
async def test_unexpected_error_is_wrapped_and_logged(test_db, fake_queue, source_text, monkeypatch):
    service = AIGenerationService(test_db, USER_ID, fake_queue)

    def explode():
        raise RuntimeError("boom")

    monkeypatch.setattr(service.flashcard_service, "count_flashcards", explode)

    with pytest.raises(ServiceError) as exc_info:
        await service.create_generation(_request(source_text))

    assert exc_info.value.code == ErrorCode.INTERNAL_ERROR
    error_log = test_db.query(AIGenerationErrorLog).one()
    assert error_log.error_code == "INTERNAL_ERROR"
    assert error_log.generation_id is None

@pytest.mark.asyncio
async def test_error_log_failure_does_not_mask_original_error(test_db, fake_queue, source_text, monkeypatch):
    fake_queue.error = QueueEnqueueError("worker unavailable")
    service = AIGenerationService(test_db, USER_ID, fake_queue)

    original_add = test_db.add

    def failing_add(instance):
        if isinstance(instance, AIGenerationErrorLog):
            raise SQLAlchemyError("error log table is gone")
        original_add(instance)

    monkeypatch.setattr(test_db, "add", failing_add)

    with pytest.raises(ServiceError) as exc_info:
        await service.create_generation(_request(source_text))

    assert exc_info.value.code == ErrorCode.QUEUE_ENQUEUE_FAILED

def test_get_generation_returns_detail(test_db, make_generation):
    generation = make_generation()
    service = AIGenerationService(test_db, USER_ID)

    detail = service.get_generation(generation.id)

    assert detail.status == "succeeded"
    assert [p.proposal_id for p in detail.proposed_flashcards] == ["p1", "p2", "p3"]
    assert all(p.source == "ai-full" for p in detail.proposed_flashcards)
    assert detail.metrics.generated_count == 3
    assert detail.max_flashcards == 5
    assert detail.source_text_hash == generation.source_text_hash

def test_get_generation_of_another_user_is_not_found(test_db, make_generation):
    generation = make_generation(user_id=OTHER_USER_ID)

    with pytest.raises(ServiceError) as exc_info:
        AIGenerationService(test_db, USER_ID).get_generation(generation.id)

    assert exc_info.value.code == ErrorCode.GENERATION_NOT_FOUND
    assert exc_info.value.status_code == 404

def _commit(actions):
    return CommitGenerationRequest.model_validate({"flashcards": actions})

def test_commit_tags_edited_and_unedited_cards(test_db, make_generation):
    generation = make_generation()
    service = AIGenerationService(test_db, USER_ID)

    result = service.commit_generation(generation.id, _commit([
        {"action": "accept", "proposalId": "p1", "front": "What is photosynthesis?", "back": "Turning light into chemical energy."},
        {"action": "accept", "proposalId": "p2", "front": "Where does photosynthesis happen?", "back": "In the chloroplasts of plant cells."},
        {"action": "reject", "proposalId": "p3"},
    ]))

    assert [card.source for card in result.accepted] == ["ai-full", "ai-edited"]
    assert all(card.origin_generation_id == generation.id for card in result.accepted)
    assert result.summary.accepted == 2
    assert result.summary.accepted_edited == 1
    assert result.summary.accepted_unedited == 1
    assert result.summary.rejected == 1
    assert result.summary.skipped == 0
    assert result.metrics.duration_ms == 1200

    test_db.refresh(generation)
    assert generation.accepted_count == 2
    assert generation.accepted_edited_count == 1
    assert generation.rejected_count == 1
    assert test_db.query(Flashcard).filter(Flashcard.user_id == USER_ID).count() == 2

def test_commit_counts_skipped_proposals(test_db, make_generation):
    generation = make_generation()

    result = AIGenerationService(test_db, USER_ID).commit_generation(generation.id, _commit([
        {"action": "accept", "proposalId": "p3", "front": "What gas is released?", "back": "Oxygen is released as a by-product."},
    ]))

    assert result.summary.skipped == 2

def test_commit_more_than_remaining_slots_is_rejected(test_db, make_generation, make_flashcards):
    make_flashcards(14)
    generation = make_generation()

    with pytest.raises(ServiceError) as exc_info:
        AIGenerationService(test_db, USER_ID).commit_generation(generation.id, _commit([
            {"action": "accept", "proposalId": "p1", "front": "What is photosynthesis?", "back": "Turning light into chemical energy."},
            {"action": "accept", "proposalId": "p2", "front": "Where does it take place?", "back": "In the chloroplasts of plant cells."},
        ]))

    assert exc_info.value.code == ErrorCode.FLASHCARD_LIMIT_REACHED
    assert "Only 1 slots available" in exc_info.value.message
    assert test_db.query(Flashcard).count() == 14

def test_commit_duplicate_front_rolls_back_whole_batch(test_db, make_generation):
    generation = make_generation()
    test_db.add(Flashcard(user_id=USER_ID, front="Where does it take place?", back="Somewhere in a leaf.", source="manual"))
    test_db.commit()

    with pytest.raises(ServiceError) as exc_info:
        AIGenerationService(test_db, USER_ID).commit_generation(generation.id, _commit([
            {"action": "accept", "proposalId": "p1", "front": "What is photosynthesis?", "back": "Turning light into chemical energy."},
            {"action": "accept", "proposalId": "p2", "front": "Where does it take place?", "back": "In the chloroplasts of plant cells."},
        ]))

    assert exc_info.value.code == ErrorCode.FLASHCARD_DUPLICATE
    assert exc_info.value.status_code == 409
    assert test_db.query(Flashcard).count() == 1
    test_db.refresh(generation)
    assert generation.accepted_count == 0

def test_commit_unknown_generation(test_db):
    with pytest.raises(ServiceError) as exc_info:
        AIGenerationService(test_db, USER_ID).commit_generation("missing", _commit([]))
    assert exc_info.value.code == ErrorCode.GENERATION_NOT_FOUND
