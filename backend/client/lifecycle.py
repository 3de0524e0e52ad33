"""State machine behind the "generate flashcards" screen.

    idle -> submitting -> pending -> ready | failed
    ready -> committing -> committed | ready
    any -> idle (reset)

Polling runs as one asyncio task per lifecycle. The clock and sleep are
injected so tests can drive the timeout without waiting in real time.
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, List, Optional
import asyncio
import logging
import time

from client.api_client import AIGenerationsClient, ApiError
from config.env import settings
from services.errors import ErrorCode
from utils.validation import validate_flashcard_front, validate_flashcard_back

logger = logging.getLogger(__name__)

POLL_INTERVAL_SECONDS = 0.8
POLL_TIMEOUT_SECONDS = 5.0
POLL_TIMEOUT_MESSAGE = "Generation is taking too long. Please try again later."

class LifecycleStatus(str, Enum):
    IDLE = "idle"
    SUBMITTING = "submitting"
    PENDING = "pending"
    READY = "ready"
    FAILED = "failed"
    COMMITTING = "committing"
    COMMITTED = "committed"

# Remote generation status -> lifecycle status; anything else keeps polling
REMOTE_STATUS = {
    "pending": LifecycleStatus.PENDING,
    "succeeded": LifecycleStatus.READY,
    "failed": LifecycleStatus.FAILED,
}

@dataclass
class GenerationForm:
    source_text: str
    max_flashcards: int
    model: Optional[str] = None
    temperature: Optional[float] = None

@dataclass
class Progress:
    started_at: Optional[float] = None
    deadline_at: Optional[float] = None

@dataclass
class UiError:
    code: str
    message: str
    details: Optional[List[Any]] = None

    @classmethod
    def from_api_error(cls, error: ApiError) -> "UiError":
        return cls(code=error.code, message=error.message, details=error.details)

@dataclass
class ProposalValidation:
    front: Optional[str] = None
    back: Optional[str] = None

@dataclass
class EditableProposal:
    proposal_id: str
    front_original: str
    back_original: str
    front_draft: str
    back_draft: str
    accepted: bool = False
    edited: bool = False
    validation: ProposalValidation = field(default_factory=ProposalValidation)

@dataclass
class Selection:
    selected_count: int = 0
    remaining_slots: int = field(default_factory=lambda: settings.flashcard_limit)

class GenerationLifecycle:
    def __init__(
        self,
        client: AIGenerationsClient,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        poll_interval: float = POLL_INTERVAL_SECONDS,
        poll_timeout: float = POLL_TIMEOUT_SECONDS
    ):
        self.client = client
        self._clock = clock
        self._sleep = sleep
        self.poll_interval = poll_interval
        self.poll_timeout = poll_timeout
        self._poll_task: Optional[asyncio.Task] = None
        # Bumped by every submit and reset; a create response for an older value is dropped
        self._submission = 0
        self._clear()

    def _clear(self) -> None:
        self.status = LifecycleStatus.IDLE
        self.history: List[LifecycleStatus] = [LifecycleStatus.IDLE]
        self.progress = Progress()
        self.error: Optional[UiError] = None
        self.generation_id: Optional[str] = None
        self.proposals: List[EditableProposal] = []
        self.selection = Selection()

    def _set_status(self, status: LifecycleStatus) -> None:
        logger.debug(f"Generation lifecycle: {self.status.value} -> {status.value}")
        self.status = status
        self.history.append(status)

    def _fail(self, error: UiError) -> None:
        self._set_status(LifecycleStatus.FAILED)
        self.error = error

    @property
    def is_polling(self) -> bool:
        return self._poll_task is not None and not self._poll_task.done()

    @property
    def can_commit(self) -> bool:
        return (
            self.status == LifecycleStatus.READY
            and self.generation_id is not None
            and self.selection.selected_count > 0
        )

    async def start_generation(self, form: GenerationForm) -> None:
        """Submit the form and, on success, start polling in the background."""
        self._cancel_polling()
        self._submission += 1
        submission = self._submission
        self._set_status(LifecycleStatus.SUBMITTING)
        self.error = None
        self.proposals = []

        try:
            response = await self.client.create_generation(
                source_text=form.source_text,
                max_flashcards=form.max_flashcards,
                model=form.model,
                temperature=form.temperature
            )
        except ApiError as e:
            if submission == self._submission:
                self._fail(UiError.from_api_error(e))
            return
        except Exception:
            logger.exception("Failed to start generation")
            if submission == self._submission:
                self._fail(UiError(ErrorCode.UNKNOWN_ERROR.value, "Failed to start generation"))
            return

        if submission != self._submission:
            logger.debug(f"Dropping generation {response.generation.id}; lifecycle was reset during submit")
            return

        self.generation_id = response.generation.id
        self._set_status(LifecycleStatus.PENDING)
        self._start_polling()

    def _start_polling(self) -> None:
        started_at = self._clock()
        self.progress = Progress(started_at=started_at, deadline_at=started_at + self.poll_timeout)
        self._poll_task = asyncio.get_running_loop().create_task(self._poll_loop())

    async def _poll_loop(self) -> None:
        while True:
            await self._sleep(self.poll_interval)
            if not await self.poll_once():
                return

    async def poll_once(self) -> bool:
        """Run one polling tick. Returns True while polling should continue."""
        if self.status != LifecycleStatus.PENDING:
            return False

        # The deadline is measured from submission, not from the last response
        if self._clock() > self.progress.deadline_at:
            self._fail(UiError(ErrorCode.POLLING_TIMEOUT.value, POLL_TIMEOUT_MESSAGE))
            return False

        # A stalled fetch may not outlive the deadline either
        remaining = max(0.0, self.progress.deadline_at - self._clock())
        try:
            detail = await asyncio.wait_for(self.client.get_generation_detail(self.generation_id), timeout=remaining)
        except asyncio.TimeoutError:
            self._fail(UiError(ErrorCode.POLLING_TIMEOUT.value, POLL_TIMEOUT_MESSAGE))
            return False
        except ApiError as e:
            self._fail(UiError.from_api_error(e))
            return False
        except Exception:
            logger.exception(f"Polling generation {self.generation_id} failed")
            self._fail(UiError(ErrorCode.UNKNOWN_ERROR.value, "An unexpected error occurred"))
            return False

        remote_status = REMOTE_STATUS.get(detail.status)
        if remote_status == LifecycleStatus.READY:
            self.proposals = [
                EditableProposal(
                    proposal_id=p.proposal_id,
                    front_original=p.front,
                    back_original=p.back,
                    front_draft=p.front,
                    back_draft=p.back
                )
                for p in detail.proposed_flashcards
            ]
            self.selection.selected_count = 0
            self._set_status(LifecycleStatus.READY)
            return False
        if remote_status == LifecycleStatus.FAILED:
            self._fail(UiError(
                ErrorCode.GENERATION_FAILED.value,
                detail.error_message or "Generation failed"
            ))
            return False
        return True

    async def wait_for_result(self) -> LifecycleStatus:
        """Block until the current polling task has finished."""
        if self._poll_task is not None:
            await asyncio.wait({self._poll_task})
        return self.status

    def _find(self, proposal_id: str) -> Optional[EditableProposal]:
        return next((p for p in self.proposals if p.proposal_id == proposal_id), None)

    def toggle_accept(self, proposal_id: str) -> None:
        proposal = self._find(proposal_id)
        if proposal is None:
            return
        proposal.accepted = not proposal.accepted
        self.selection.selected_count = sum(1 for p in self.proposals if p.accepted)

    def edit_proposal(self, proposal_id: str, front: str, back: str) -> None:
        proposal = self._find(proposal_id)
        if proposal is None:
            return

        proposal.front_draft = front
        proposal.back_draft = back
        proposal.edited = front != proposal.front_original or back != proposal.back_original

        front_result = validate_flashcard_front(front)
        back_result = validate_flashcard_back(back)
        proposal.validation = ProposalValidation(
            front=None if front_result.is_valid else front_result.error,
            back=None if back_result.is_valid else back_result.error
        )

    async def commit_selected(self) -> bool:
        """Send accepted proposals with their current drafts. Returns True when committed."""
        if not self.can_commit:
            return False

        self._set_status(LifecycleStatus.COMMITTING)
        self.error = None
        accepted = [p for p in self.proposals if p.accepted]

        try:
            result = await self.client.commit_generation(
                self.generation_id,
                [
                    {
                        "action": "accept",
                        "proposalId": p.proposal_id,
                        "front": p.front_draft,
                        "back": p.back_draft,
                    }
                    for p in accepted
                ]
            )
        except ApiError as e:
            # Drafts survive a failed commit
            self._set_status(LifecycleStatus.READY)
            self.error = UiError.from_api_error(e)
            return False
        except Exception:
            logger.exception(f"Committing generation {self.generation_id} failed")
            self._set_status(LifecycleStatus.READY)
            self.error = UiError(ErrorCode.COMMIT_FAILED.value, "Failed to save flashcards")
            return False

        self._set_status(LifecycleStatus.COMMITTED)
        self.proposals = []
        self.selection = Selection(
            selected_count=0,
            remaining_slots=max(0, self.selection.remaining_slots - len(result.accepted))
        )
        return True

    def _cancel_polling(self) -> None:
        if self._poll_task is not None and not self._poll_task.done():
            self._poll_task.cancel()
        self._poll_task = None

    def reset(self) -> None:
        self._cancel_polling()
        self._submission += 1
        self._clear()
