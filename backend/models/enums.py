import enum

class FlashcardSource(enum.Enum):
    """Where a flashcard came from."""
    MANUAL = "manual"
    AI_FULL = "ai-full"  # Accepted AI proposal, unedited
    AI_EDITED = "ai-edited"  # Accepted AI proposal, edited before commit

class GenerationStatus(enum.Enum):
    """Lifecycle of an AI generation record."""
    PENDING = "pending"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
