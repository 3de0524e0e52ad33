import hashlib
import re

# Control characters except \t, \n and \r
CONTROL_CHARS = re.compile(r"[\x00-\x08\x0B\x0C\x0E-\x1F\x7F]")
HORIZONTAL_WHITESPACE = re.compile(r"[^\S\r\n]+")
SPACE_OR_TAB_RUNS = re.compile(r"[ \t]{2,}")
EXCESS_NEWLINES = re.compile(r"\n{3,}")

def sanitize_source_text(text: str) -> str:
    """Normalize pasted source text before it is measured and stored."""
    text = CONTROL_CHARS.sub("", text.strip())
    text = HORIZONTAL_WHITESPACE.sub(" ", text)
    return EXCESS_NEWLINES.sub("\n\n", text)

def sanitize_flashcard_text(text: str) -> str:
    text = CONTROL_CHARS.sub("", text.strip())
    return SPACE_OR_TAB_RUNS.sub(" ", text)

def hash_text(text: str) -> str:
    """SHA-256 hex digest of the UTF-8 encoded text."""
    return hashlib.sha256(text.encode("utf-8")).hexdigest()
