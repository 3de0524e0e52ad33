from dataclasses import dataclass
from typing import Optional
import logging

import httpx

from config.env import settings

logger = logging.getLogger(__name__)

@dataclass
class EnqueueGenerationPayload:
    """Job sent to the worker. Carries the text hash, never the text itself."""
    generation_id: str
    user_id: str
    max_flashcards: int
    model: str
    temperature: float
    source_text_hash: str

    def to_json(self) -> dict:
        return {
            "generationId": self.generation_id,
            "userId": self.user_id,
            "maxFlashcards": self.max_flashcards,
            "model": self.model,
            "temperature": self.temperature,
            "sourceTextHash": self.source_text_hash,
        }

class QueueEnqueueError(Exception):
    """The worker endpoint did not accept the job."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code

class GenerationQueueClient:
    """Dispatches generations to the background worker over HTTP."""

    def __init__(
        self,
        queue_url: str,
        token: Optional[str] = None,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        self.queue_url = queue_url
        self.token = token
        self.timeout = timeout
        self._transport = transport

    async def enqueue(self, payload: EnqueueGenerationPayload) -> None:
        logger.debug(f"Enqueueing generation {payload.generation_id} for user {payload.user_id} at {self.queue_url}")

        headers = {"Content-Type": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.post(self.queue_url, json=payload.to_json(), headers=headers)
        except httpx.HTTPError as e:
            logger.error(f"Queue request for generation {payload.generation_id} failed: {str(e)}")
            raise QueueEnqueueError(f"Queue request failed: {str(e)}") from e

        if response.is_error:
            logger.error(
                f"Queue rejected generation {payload.generation_id}: "
                f"status={response.status_code} body={response.text}"
            )
            raise QueueEnqueueError(
                f"Queue enqueue failed with status {response.status_code}: {response.text}",
                status_code=response.status_code
            )

def get_generation_queue() -> GenerationQueueClient:
    """FastAPI dependency; tests override it with a fake."""
    return GenerationQueueClient(
        settings.generation_queue_url,
        token=settings.generation_queue_token,
        timeout=settings.generation_queue_timeout_seconds
    )
