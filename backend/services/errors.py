"""Error taxonomy shared by the services, the routers and the generation client.

Every failure the API reports is one ErrorCode with a fixed default HTTP status.
Services raise ServiceError; main.py renders it as
``{"error": {"code": ..., "message": ..., "details": [...]}}``.
"""
import enum
from typing import Any, Optional, Sequence

from fastapi import HTTPException

class ErrorCode(str, enum.Enum):
    # Request boundary
    UNAUTHORIZED = "UNAUTHORIZED"
    INVALID_CONTENT_TYPE = "INVALID_CONTENT_TYPE"
    INVALID_JSON = "INVALID_JSON"
    PAYLOAD_TOO_LARGE = "PAYLOAD_TOO_LARGE"
    SCHEMA_VALIDATION_FAILED = "SCHEMA_VALIDATION_FAILED"
    VALIDATION_ERROR = "VALIDATION_ERROR"

    # Business rules
    GENERATION_PENDING = "GENERATION_PENDING"
    GENERATION_NOT_FOUND = "GENERATION_NOT_FOUND"
    FLASHCARD_LIMIT_REACHED = "FLASHCARD_LIMIT_REACHED"
    FLASHCARD_DUPLICATE = "FLASHCARD_DUPLICATE"
    FLASHCARD_NOT_FOUND = "FLASHCARD_NOT_FOUND"
    FLASHCARD_UPDATE_EMPTY = "FLASHCARD_UPDATE_EMPTY"

    # Infrastructure
    DB_CHECK_FAILED = "DB_CHECK_FAILED"
    DB_READ_FAILED = "DB_READ_FAILED"
    DB_WRITE_FAILED = "DB_WRITE_FAILED"
    QUEUE_ENQUEUE_FAILED = "QUEUE_ENQUEUE_FAILED"
    INTERNAL_ERROR = "INTERNAL_ERROR"

    # Raised only by the generation client
    POLLING_TIMEOUT = "POLLING_TIMEOUT"
    GENERATION_FAILED = "GENERATION_FAILED"
    COMMIT_FAILED = "COMMIT_FAILED"
    UNKNOWN_ERROR = "UNKNOWN_ERROR"

STATUS_CODES = {
    ErrorCode.UNAUTHORIZED: 401,
    ErrorCode.INVALID_CONTENT_TYPE: 400,
    ErrorCode.INVALID_JSON: 400,
    ErrorCode.PAYLOAD_TOO_LARGE: 413,
    ErrorCode.SCHEMA_VALIDATION_FAILED: 422,
    ErrorCode.VALIDATION_ERROR: 422,
    ErrorCode.GENERATION_PENDING: 409,
    ErrorCode.GENERATION_NOT_FOUND: 404,
    ErrorCode.FLASHCARD_LIMIT_REACHED: 409,
    ErrorCode.FLASHCARD_DUPLICATE: 409,
    ErrorCode.FLASHCARD_NOT_FOUND: 404,
    ErrorCode.FLASHCARD_UPDATE_EMPTY: 400,
    ErrorCode.DB_CHECK_FAILED: 500,
    ErrorCode.DB_READ_FAILED: 500,
    ErrorCode.DB_WRITE_FAILED: 500,
    ErrorCode.QUEUE_ENQUEUE_FAILED: 500,
    ErrorCode.INTERNAL_ERROR: 500,
    ErrorCode.POLLING_TIMEOUT: 408,
    ErrorCode.GENERATION_FAILED: 500,
    ErrorCode.COMMIT_FAILED: 500,
    ErrorCode.UNKNOWN_ERROR: 500,
}

class ServiceError(HTTPException):
    """Typed domain error with a machine readable code."""

    def __init__(
        self,
        code: ErrorCode,
        message: str,
        status_code: Optional[int] = None,
        details: Optional[Sequence[Any]] = None
    ):
        super().__init__(status_code=status_code or STATUS_CODES[code], detail=message)
        self.code = code
        self.message = message
        self.details = list(details) if details is not None else None

    def to_dict(self) -> dict:
        error = {"code": self.code.value, "message": self.message}
        if self.details:
            error["details"] = self.details
        return {"error": error}

    def __str__(self):
        return f"{self.code.value}: {self.message}"

# Messages reused by more than one code path
GENERATION_PENDING_MESSAGE = (
    "You already have a pending AI generation. "
    "Please wait for it to complete before starting a new one."
)
DUPLICATE_FLASHCARD_MESSAGE = "A flashcard with the same front already exists."

def flashcard_limit_message(limit: int) -> str:
    return (
        f"You have reached the maximum of {limit} flashcards. "
        "Delete an existing card before adding a new one."
    )
