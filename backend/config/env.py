from pydantic_settings import BaseSettings
from pydantic import Field
from typing import List, Optional

DEFAULT_ALLOWED_MODELS = (
    "openrouter/anthropic/claude-3.5-sonnet",
    "openrouter/openai/gpt-4o",
    "openrouter/openai/gpt-4o-mini",
    "openrouter/google/gemini-pro-1.5",
)

class Settings(BaseSettings):
    # Database settings
    database_url: str = Field(
        default="sqlite:///./flashcards.db",
        description="Database connection URL"
    )

    # API settings
    api_title: str = Field(
        default="Flashcards API",
        description="API title for documentation"
    )
    api_description: str = Field(
        default="API for generating flashcards with AI and managing a personal flashcard library",
        description="API description for documentation"
    )
    api_version: str = Field(
        default="1.0.0",
        description="API version"
    )
    auth_user_header: str = Field(
        default="X-User-Id",
        description="Header carrying the authenticated user id, set by the auth gateway"
    )

    # Business rules
    flashcard_limit: int = Field(
        default=15,
        description="Maximum number of flashcards a single user may own"
    )
    max_generation_payload_bytes: int = Field(
        default=10 * 1024,
        description="Maximum request body size for creating a generation"
    )
    generation_expiry_minutes: int = Field(
        default=5,
        description="How long the UI polls a generation before giving up"
    )

    # Generation settings
    default_generation_model: str = Field(
        default=DEFAULT_ALLOWED_MODELS[0],
        description="Model used when a generation request does not name one"
    )
    default_temperature: float = Field(
        default=1.0,
        description="Sampling temperature used when a generation request does not set one"
    )
    allowed_models: str = Field(
        default=",".join(DEFAULT_ALLOWED_MODELS),
        description="Comma separated whitelist of models accepted by the API"
    )

    # Worker queue settings
    generation_queue_url: str = Field(
        default="https://functions.supabase.co/ai-generations/enqueue",
        description="Endpoint of the background worker that processes generations"
    )
    generation_queue_token: Optional[str] = Field(
        default=None,
        description="Bearer token sent with enqueue requests"
    )
    generation_queue_timeout_seconds: float = Field(
        default=10.0,
        description="Timeout for a single enqueue request"
    )

    # OpenRouter settings
    openrouter_api_key: Optional[str] = Field(
        default=None,
        description="API key for the OpenRouter chat completion API"
    )
    openrouter_base_url: str = Field(
        default="https://openrouter.ai/api",
        description="Base URL of the OpenRouter API"
    )
    openrouter_default_model: str = Field(
        default="gpt-3.5-turbo",
        description="Default chat completion model"
    )
    app_url: str = Field(
        default="http://localhost:4321",
        description="Public URL of the application, sent as HTTP-Referer to OpenRouter"
    )

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        env_nested_delimiter = "__"
        extra = "ignore"  # Allow extra fields in environment without validation errors

    def get_allowed_models(self) -> List[str]:
        """Parse the model whitelist into a list."""
        return [m.strip() for m in self.allowed_models.split(",") if m.strip()]

settings = Settings()
