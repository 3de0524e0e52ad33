from .base import Base
from .enums import (
    FlashcardSource,
    GenerationStatus
)
from .flashcard import Flashcard
from .generation import AIGeneration, AIGenerationErrorLog

__all__ = [
    'Base',
    'FlashcardSource',
    'GenerationStatus',
    'Flashcard',
    'AIGeneration',
    'AIGenerationErrorLog',
]
