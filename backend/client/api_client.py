from typing import Any, Dict, List, Optional
import logging

import httpx

from config.env import settings
from api.models.responses.ai_generation import (
    CreateGenerationResponse,
    GenerationDetailResponse,
    CommitGenerationResponse,
)
from api.models.responses.flashcard import FlashcardEnvelope
from services.errors import ErrorCode

logger = logging.getLogger(__name__)

class ApiError(Exception):
    """Error envelope returned by the flashcards API."""

    def __init__(self, status_code: int, code: str, message: str, details: Optional[List[Any]] = None):
        super().__init__(message)
        self.status_code = status_code
        self.code = code
        self.message = message
        self.details = details

    @classmethod
    def from_response(cls, response: httpx.Response) -> "ApiError":
        try:
            error = response.json()["error"]
            return cls(response.status_code, error["code"], error["message"], error.get("details"))
        except (ValueError, KeyError, TypeError):
            return cls(
                response.status_code,
                ErrorCode.UNKNOWN_ERROR.value,
                f"Request failed with status {response.status_code}"
            )

class AIGenerationsClient:
    """Async client for the generation endpoints and manual flashcard creation."""

    def __init__(
        self,
        base_url: str,
        user_id: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        timeout: float = 30.0
    ):
        headers = {"Content-Type": "application/json"}
        if user_id:
            headers[settings.auth_user_header] = user_id
        self._client = httpx.AsyncClient(base_url=base_url, headers=headers, transport=transport, timeout=timeout)

    async def __aenter__(self) -> "AIGenerationsClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def create_generation(
        self,
        source_text: str,
        max_flashcards: int,
        model: Optional[str] = None,
        temperature: Optional[float] = None
    ) -> CreateGenerationResponse:
        payload: Dict[str, Any] = {"sourceText": source_text, "maxFlashcards": max_flashcards}
        if model is not None:
            payload["model"] = model
        if temperature is not None:
            payload["temperature"] = temperature
        data = await self._request("POST", "/api/ai-generations", json=payload)
        return CreateGenerationResponse.model_validate(data)

    async def get_generation_detail(self, generation_id: str) -> GenerationDetailResponse:
        data = await self._request("GET", f"/api/ai-generations/{generation_id}")
        return GenerationDetailResponse.model_validate(data)

    async def commit_generation(self, generation_id: str, flashcards: List[Dict[str, Any]]) -> CommitGenerationResponse:
        data = await self._request("POST", f"/api/ai-generations/{generation_id}/commit", json={"flashcards": flashcards})
        return CommitGenerationResponse.model_validate(data)

    async def create_manual_flashcard(self, front: str, back: str) -> FlashcardEnvelope:
        data = await self._request("POST", "/api/flashcards", json={"front": front, "back": back, "source": "manual"})
        return FlashcardEnvelope.model_validate(data)

    async def _request(self, method: str, url: str, json: Optional[Dict[str, Any]] = None) -> Any:
        response = await self._client.request(method, url, json=json)
        if response.is_error:
            error = ApiError.from_response(response)
            logger.debug(f"{method} {url} failed: {error.status_code} {error.code}")
            raise error
        return response.json()
