import enum

from sqlalchemy.exc import IntegrityError

from models.flashcard import FLASHCARD_LIMIT_TRIGGER_MESSAGE

UNIQUE_VIOLATION = "23505"

class IntegrityKind(enum.Enum):
    UNIQUE = "unique"
    LIMIT = "limit"
    OTHER = "other"

def _sqlstate(error: IntegrityError) -> str | None:
    orig = getattr(error, "orig", None)
    # psycopg2 exposes pgcode, psycopg 3 exposes sqlstate
    return getattr(orig, "pgcode", None) or getattr(orig, "sqlstate", None)

def classify_integrity_error(error: IntegrityError) -> IntegrityKind:
    """Map a driver-specific constraint failure onto the cases the services handle."""
    message = str(getattr(error, "orig", error))
    if FLASHCARD_LIMIT_TRIGGER_MESSAGE in message:
        return IntegrityKind.LIMIT

    sqlstate = _sqlstate(error)
    if sqlstate == UNIQUE_VIOLATION or "UNIQUE constraint failed" in message:
        return IntegrityKind.UNIQUE
    return IntegrityKind.OTHER
