import os
import sys
import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool
from fastapi.testclient import TestClient

# Add the backend directory to the Python path
backend_dir = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
sys.path.insert(0, backend_dir)

# Keep the startup hook away from the on-disk database
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")

from database import get_db
from models.base import Base
from models.enums import FlashcardSource, GenerationStatus
from models.flashcard import Flashcard
from models.generation import AIGeneration
from services.generation_queue import get_generation_queue
from utils.text import hash_text
from main import app

# Create in-memory SQLite database for testing
SQLALCHEMY_DATABASE_URL = "sqlite:///:memory:"

USER_ID = "user-1"
OTHER_USER_ID = "user-2"

SOURCE_TEXT = (
    "Photosynthesis converts light energy into chemical energy stored in glucose. "
    "It takes place in the chloroplasts of plant cells and releases oxygen. "
) * 11

class FakeGenerationQueue:
    """Records enqueued payloads; set `error` to make the next calls fail."""

    def __init__(self):
        self.payloads = []
        self.error = None

    async def enqueue(self, payload):
        if self.error is not None:
            raise self.error
        self.payloads.append(payload)

@pytest.fixture
def test_db():
    # Create engine with special configuration for in-memory SQLite
    engine = create_engine(
        SQLALCHEMY_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    # Create all tables, including the flashcard limit trigger
    Base.metadata.create_all(bind=engine)

    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

    # Create a new session for each test
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()
        # Drop all tables after tests
        Base.metadata.drop_all(bind=engine)

@pytest.fixture
def fake_queue():
    return FakeGenerationQueue()

@pytest.fixture
def client(test_db, fake_queue):
    # Override the get_db dependency
    def override_get_db():
        try:
            yield test_db
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_generation_queue] = lambda: fake_queue

    # Create test client
    with TestClient(app) as test_client:
        yield test_client

    # Clear dependency override after test
    app.dependency_overrides.clear()

@pytest.fixture
def auth_headers():
    return {"X-User-Id": USER_ID}

@pytest.fixture
def source_text():
    return SOURCE_TEXT

@pytest.fixture
def make_generation(test_db):
    """Insert a generation as the worker would have left it."""
    def _make(
        user_id=USER_ID,
        status=GenerationStatus.SUCCEEDED,
        proposals=None,
        max_flashcards=5,
        error_message=None
    ):
        items = proposals if proposals is not None else [
            {"proposalId": "p1", "front": "What is photosynthesis?", "back": "Turning light into chemical energy."},
            {"proposalId": "p2", "front": "Where does it take place?", "back": "In the chloroplasts of plant cells."},
            {"proposalId": "p3", "front": "What gas is released?", "back": "Oxygen is released as a by-product."},
        ]
        generation = AIGeneration(
            user_id=user_id,
            status=status.value,
            source_text=SOURCE_TEXT.strip(),
            source_text_hash=hash_text(SOURCE_TEXT.strip()),
            source_text_length=len(SOURCE_TEXT.strip()),
            proposed_flashcards={"maxFlashcards": max_flashcards, "items": items},
            generated_count=len(items),
            model="openrouter/openai/gpt-4o-mini",
            temperature=0.7,
            duration_ms=1200,
            error_message=error_message
        )
        test_db.add(generation)
        test_db.commit()
        test_db.refresh(generation)
        return generation
    return _make

@pytest.fixture
def make_flashcards(test_db):
    """Insert `count` manual flashcards for a user."""
    def _make(count, user_id=USER_ID):
        cards = [
            Flashcard(
                user_id=user_id,
                front=f"Existing question number {i}",
                back=f"Existing answer number {i}",
                source=FlashcardSource.MANUAL.value
            )
            for i in range(count)
        ]
        test_db.add_all(cards)
        test_db.commit()
        return cards
    return _make
