from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Literal, Optional
import asyncio
import json
import logging

import httpx

from config.env import settings

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://openrouter.ai/api"
DEFAULT_MODEL = "gpt-3.5-turbo"
CHAT_COMPLETIONS_PATH = "/v1/chat/completions"
APP_TITLE = "AI Flashcard Generator"

# Request/response schemas

class ChatMessage(BaseModel):
    role: Literal["system", "user", "assistant"]
    content: str = Field(..., min_length=1)

class ModelParameters(BaseModel):
    model_config = ConfigDict(extra="forbid")

    temperature: Optional[float] = Field(None, ge=0, le=2)
    max_tokens: Optional[int] = Field(None, gt=0)
    top_p: Optional[float] = Field(None, ge=0, le=1)
    frequency_penalty: Optional[float] = Field(None, ge=-2, le=2)
    presence_penalty: Optional[float] = Field(None, ge=-2, le=2)

class JsonSchemaDefinition(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    name: str
    strict: bool
    schema_: Dict[str, Any] = Field(..., alias="schema")

class ResponseFormat(BaseModel):
    type: Literal["json_schema"] = "json_schema"
    json_schema: JsonSchemaDefinition

class ChatOptions(BaseModel):
    model: Optional[str] = None
    parameters: Optional[ModelParameters] = None
    response_format: Optional[ResponseFormat] = None

class OpenRouterOptions(BaseModel):
    api_key: str = Field(..., min_length=1)
    base_url: Optional[str] = None
    default_model: Optional[str] = Field(None, min_length=1)
    default_parameters: Optional[ModelParameters] = None

    @field_validator('api_key')
    @classmethod
    def api_key_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("API key is required and cannot be empty")
        return v

    @field_validator('base_url')
    @classmethod
    def base_url_is_http(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and not v.startswith(("http://", "https://")):
            raise ValueError(f"Invalid base URL: {v}")
        return v

class ChatCompletionPayload(ModelParameters):
    model: str = Field(..., min_length=1)
    messages: List[ChatMessage] = Field(..., min_length=1)
    response_format: Optional[ResponseFormat] = None

class ApiMessage(BaseModel):
    role: str
    content: str

class ApiChoice(BaseModel):
    index: int
    message: ApiMessage
    finish_reason: str

class ApiUsage(BaseModel):
    prompt_tokens: int
    completion_tokens: int
    total_tokens: int

class ChatCompletionApiResponse(BaseModel):
    id: str
    model: str
    created: int
    choices: List[ApiChoice] = Field(..., min_length=1)
    usage: Optional[ApiUsage] = None

@dataclass
class ChatResponse:
    id: str
    model: str
    content: Any
    finish_reason: str
    usage: Optional[ApiUsage] = None

# Errors

class OpenRouterError(Exception):
    def __init__(self, message: str, code: str, status_code: Optional[int] = None, details: Any = None):
        super().__init__(message)
        self.message = message
        self.code = code
        self.status_code = status_code
        self.details = details

class AuthenticationError(OpenRouterError):
    def __init__(self, message: str = "Invalid or missing API key"):
        super().__init__(message, "AUTHENTICATION_ERROR", 401)

class NetworkError(OpenRouterError):
    def __init__(self, message: str, details: Any = None):
        super().__init__(message, "NETWORK_ERROR", details=details)

class RateLimitError(OpenRouterError):
    def __init__(self, message: str = "API rate limit exceeded", retry_after: Optional[float] = None):
        super().__init__(message, "RATE_LIMIT_ERROR", 429)
        self.retry_after = retry_after

class SchemaValidationError(OpenRouterError):
    def __init__(self, message: str, details: Any = None):
        super().__init__(message, "SCHEMA_VALIDATION_ERROR", details=details)

class ModelNotFoundError(OpenRouterError):
    def __init__(self, model: str):
        super().__init__(f"Model not found or unsupported: {model}", "MODEL_NOT_FOUND", 404)

def _first_error(error: ValidationError) -> str:
    first = error.errors()[0]
    location = ".".join(str(part) for part in first.get("loc", ()))
    return f"{location}: {first['msg']}" if location else first["msg"]

class OpenRouterService:
    """Chat-completion client for the OpenRouter API.

    Rate-limited requests are retried honoring Retry-After, timeouts and
    connection failures with exponential backoff. Authentication, missing
    models and other error statuses fail immediately.

    Example:
        service = OpenRouterService(api_key, default_parameters={"temperature": 0.7})
        response = await service.send_chat_completion([
            {"role": "system", "content": "You are a helpful assistant"},
            {"role": "user", "content": "Hello!"},
        ])
    """

    MAX_ATTEMPTS = 3
    BASE_DELAY_SECONDS = 1.0

    def __init__(
        self,
        api_key: str,
        base_url: Optional[str] = None,
        default_model: Optional[str] = None,
        default_parameters: Optional[Dict[str, Any]] = None,
        app_url: Optional[str] = None,
        timeout: float = 60.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep
    ):
        try:
            options = OpenRouterOptions(
                api_key=api_key,
                base_url=base_url,
                default_model=default_model,
                default_parameters=default_parameters
            )
        except ValidationError as e:
            raise SchemaValidationError(f"Invalid configuration: {_first_error(e)}", e.errors(include_context=False))

        self.base_url = options.base_url or DEFAULT_BASE_URL
        self.default_model = options.default_model or DEFAULT_MODEL
        self.default_parameters = options.default_parameters or ModelParameters()
        self.current_model = self.default_model
        self.current_parameters = self.default_parameters.model_copy()
        self.system_message: Optional[ChatMessage] = None
        self.user_message: Optional[ChatMessage] = None
        self.response_format: Optional[ResponseFormat] = None

        self._headers = {
            "Authorization": f"Bearer {options.api_key}",
            "Content-Type": "application/json",
            "HTTP-Referer": app_url or settings.app_url,
            "X-Title": APP_TITLE,
        }
        self._timeout = timeout
        self._transport = transport
        self._sleep = sleep

    async def send_chat_completion(
        self,
        messages: Optional[List[Dict[str, str]]] = None,
        options: Optional[ChatOptions] = None
    ) -> ChatResponse:
        """Send one chat completion; uses the stored system/user messages when none are given."""
        payload = self._build_payload(messages, options)
        data = await self._execute_request(payload)
        return self._parse_response(data, payload.response_format)

    def set_system_message(self, message: str) -> None:
        if not message.strip():
            raise OpenRouterError("System message cannot be empty", "INVALID_SYSTEM_MESSAGE")
        self.system_message = ChatMessage(role="system", content=message)

    def set_user_message(self, message: str) -> None:
        if not message.strip():
            raise OpenRouterError("User message cannot be empty", "INVALID_USER_MESSAGE")
        self.user_message = ChatMessage(role="user", content=message)

    def set_response_format(self, response_format: ResponseFormat) -> None:
        self.response_format = response_format

    def set_model(self, name: str, parameters: Optional[Dict[str, Any]] = None) -> None:
        """Switch model; parameters are layered over the defaults, not over the previous model's."""
        if not name.strip():
            raise OpenRouterError("Model name cannot be empty", "INVALID_MODEL_NAME")
        self.current_model = name
        self.current_parameters = self._merge_parameters(self.default_parameters, parameters or {})

    def _merge_parameters(self, base: ModelParameters, overrides: Dict[str, Any]) -> ModelParameters:
        merged = base.model_dump(exclude_none=True)
        merged.update({k: v for k, v in overrides.items() if v is not None})
        try:
            return ModelParameters(**merged)
        except ValidationError as e:
            raise SchemaValidationError(f"Invalid model parameters: {_first_error(e)}", e.errors(include_context=False))

    def _build_payload(self, messages: Optional[List[Dict[str, str]]], options: Optional[ChatOptions]) -> ChatCompletionPayload:
        options = options or ChatOptions()
        if messages is None:
            messages = [m.model_dump() for m in (self.system_message, self.user_message) if m is not None]

        overrides = options.parameters.model_dump(exclude_none=True) if options.parameters else {}
        parameters = self._merge_parameters(self.current_parameters, overrides)

        try:
            return ChatCompletionPayload(
                model=options.model or self.current_model,
                messages=messages,
                response_format=options.response_format or self.response_format,
                **parameters.model_dump(exclude_none=True)
            )
        except ValidationError as e:
            raise SchemaValidationError(f"Invalid request payload: {_first_error(e)}", e.errors(include_context=False))

    def _backoff(self, attempt: int) -> float:
        return self.BASE_DELAY_SECONDS * (2 ** (attempt - 1))

    async def _execute_request(self, payload: ChatCompletionPayload) -> Any:
        body = payload.model_dump(exclude_none=True, by_alias=True)
        attempt = 1

        while True:
            try:
                async with httpx.AsyncClient(
                    base_url=self.base_url,
                    headers=self._headers,
                    timeout=self._timeout,
                    transport=self._transport
                ) as client:
                    response = await client.post(CHAT_COMPLETIONS_PATH, json=body)
            except (httpx.TimeoutException, httpx.ConnectError) as e:
                if attempt < self.MAX_ATTEMPTS:
                    delay = self._backoff(attempt)
                    logger.warning(f"OpenRouter request failed ({str(e)}), retrying in {delay}s (attempt {attempt})")
                    await self._sleep(delay)
                    attempt += 1
                    continue
                raise NetworkError(
                    f"Network request failed after {self.MAX_ATTEMPTS} attempts: {str(e)}",
                    details=str(e)
                ) from e
            except httpx.HTTPError as e:
                raise OpenRouterError(f"HTTP request failed: {str(e)}", "HTTP_ERROR", details=str(e)) from e

            try:
                return self._handle_response(response, payload.model)
            except RateLimitError as e:
                if attempt >= self.MAX_ATTEMPTS:
                    raise
                delay = e.retry_after if e.retry_after is not None else self._backoff(attempt)
                logger.warning(f"OpenRouter rate limit hit, retrying in {delay}s (attempt {attempt})")
                await self._sleep(delay)
                attempt += 1

    def _handle_response(self, response: httpx.Response, model: str) -> Any:
        status = response.status_code
        if status in (200, 201):
            try:
                return response.json()
            except ValueError as e:
                raise SchemaValidationError("Invalid API response structure: body is not valid JSON", details=response.text) from e

        if status in (401, 403):
            raise AuthenticationError()
        if status == 404:
            raise ModelNotFoundError(model)
        if status == 429:
            retry_after = response.headers.get("retry-after")
            raise RateLimitError(retry_after=float(retry_after) if retry_after and retry_after.isdigit() else None)

        logger.error(f"OpenRouter request failed with status {status}: {response.text}")
        raise OpenRouterError(f"Request failed with status {status}", "API_ERROR", status, details=response.text)

    def _parse_response(self, data: Any, response_format: Optional[ResponseFormat]) -> ChatResponse:
        try:
            parsed = ChatCompletionApiResponse.model_validate(data)
        except ValidationError as e:
            raise SchemaValidationError(f"Invalid API response structure: {_first_error(e)}", e.errors(include_context=False))

        choice = parsed.choices[0]
        if not choice.message.content:
            raise SchemaValidationError("Invalid response: missing message content", details=data)

        content: Any = choice.message.content
        if response_format is not None:
            try:
                content = json.loads(content)
            except json.JSONDecodeError as e:
                raise SchemaValidationError("Failed to parse response content as JSON", details=str(e)) from e

        return ChatResponse(
            id=parsed.id,
            model=parsed.model,
            content=content,
            finish_reason=choice.finish_reason,
            usage=parsed.usage
        )

def get_openrouter_service() -> OpenRouterService:
    return OpenRouterService(
        settings.openrouter_api_key or "",
        base_url=settings.openrouter_base_url,
        default_model=settings.openrouter_default_model,
        app_url=settings.app_url
    )
