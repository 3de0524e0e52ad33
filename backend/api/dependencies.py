from fastapi import Request
from pydantic import BaseModel, ValidationError
from typing import Any, Callable, Dict, List, Optional, Type, TypeVar
import json
import logging

from config.env import settings
from services.errors import ErrorCode, ServiceError

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)

def get_current_user_id(request: Request) -> str:
    """User id forwarded by the authenticating gateway."""
    user_id = (request.headers.get(settings.auth_user_header) or "").strip()
    if not user_id:
        raise ServiceError(ErrorCode.UNAUTHORIZED, "Authentication required. Please log in.")
    return user_id

async def read_json_body(request: Request, max_bytes: Optional[int] = None) -> Any:
    """Check content type and size, then decode the body as JSON.

    The size limit is checked against the declared Content-Length first and
    against the bytes actually received after reading.
    """
    content_type = request.headers.get("content-type", "")
    if "application/json" not in content_type:
        raise ServiceError(ErrorCode.INVALID_CONTENT_TYPE, "Content-Type must be application/json")

    too_large = ServiceError(
        ErrorCode.PAYLOAD_TOO_LARGE,
        f"Request payload exceeds maximum size of {max_bytes // 1024} KB" if max_bytes else "Request payload too large"
    )
    if max_bytes is not None:
        content_length = request.headers.get("content-length", "")
        if content_length.isdigit() and int(content_length) > max_bytes:
            raise too_large

    body = await request.body()
    if max_bytes is not None and len(body) > max_bytes:
        raise too_large

    try:
        return json.loads(body)
    except ValueError:
        raise ServiceError(ErrorCode.INVALID_JSON, "Request body must be valid JSON")

def validation_issues(error: ValidationError) -> List[Dict[str, str]]:
    return [
        {
            "path": ".".join(str(part) for part in issue["loc"]),
            "message": issue["msg"],
            "code": issue["type"],
        }
        for issue in error.errors()
    ]

def parse_body(model: Type[ModelT], data: Any, code: ErrorCode, message: str) -> ModelT:
    try:
        return model.model_validate(data)
    except ValidationError as e:
        logger.debug(f"{model.__name__} rejected: {e.error_count()} issue(s)")
        raise ServiceError(code, message, details=validation_issues(e))

def json_body(
    model: Type[ModelT],
    code: ErrorCode = ErrorCode.VALIDATION_ERROR,
    message: str = "Input validation failed",
    max_bytes: Optional[int] = None
) -> Callable:
    """Build a dependency that reads, size-checks and validates a JSON body.

    Declare it after get_current_user_id so unauthenticated calls get 401 first.
    """
    async def dependency(request: Request) -> ModelT:
        data = await read_json_body(request, max_bytes)
        return parse_body(model, data, code, message)
    return dependency
