import pytest

from models.flashcard import Flashcard
from conftest import USER_ID, OTHER_USER_ID

def test_create_manual_flashcard(client, test_db, auth_headers):
    """Test creating a manual flashcard."""
    response = client.post(
        "/api/flashcards",
        json={"front": "  What is the capital of France?  ", "back": "Paris is the capital of France."},
        headers=auth_headers
    )
    assert response.status_code == 201

    card = response.json()["flashcard"]
    assert card["front"] == "What is the capital of France?"
    assert card["source"] == "manual"
    assert card["originGenerationId"] is None

    db_card = test_db.get(Flashcard, card["id"])
    assert db_card.user_id == USER_ID

def test_create_flashcard_requires_user(client):
    response = client.post("/api/flashcards", json={"front": "Front text here", "back": "Back text here"})
    assert response.status_code == 401

def test_create_flashcard_validation_error(client, auth_headers):
    response = client.post("/api/flashcards", json={"front": "Too short", "back": "x"}, headers=auth_headers)
    assert response.status_code == 422
    error = response.json()["error"]
    assert error["code"] == "VALIDATION_ERROR"
    assert {issue["path"] for issue in error["details"]} == {"front", "back"}

def test_create_ai_flashcard_requires_origin(client, auth_headers):
    response = client.post(
        "/api/flashcards",
        json={"front": "What is photosynthesis?", "back": "Turning light into energy.", "source": "ai-full"},
        headers=auth_headers
    )
    assert response.status_code == 422

def test_create_duplicate_front(client, auth_headers):
    body = {"front": "What is the capital of France?", "back": "Paris is the capital of France."}
    assert client.post("/api/flashcards", json=body, headers=auth_headers).status_code == 201

    response = client.post("/api/flashcards", json=body, headers=auth_headers)
    assert response.status_code == 409
    assert response.json()["error"]["code"] == "FLASHCARD_DUPLICATE"

    # Another user may use the same front
    assert client.post("/api/flashcards", json=body, headers={"X-User-Id": OTHER_USER_ID}).status_code == 201

def test_create_flashcard_over_limit(client, auth_headers, make_flashcards):
    """The storage trigger stops the sixteenth card."""
    make_flashcards(15)

    response = client.post(
        "/api/flashcards",
        json={"front": "One card too many here", "back": "This should be rejected."},
        headers=auth_headers
    )
    assert response.status_code == 409
    assert response.json()["error"]["code"] == "FLASHCARD_LIMIT_REACHED"

def test_list_flashcards_only_returns_own_cards(client, auth_headers, make_flashcards):
    make_flashcards(2)
    make_flashcards(3, user_id=OTHER_USER_ID)

    response = client.get("/api/flashcards", headers=auth_headers)
    assert response.status_code == 200
    assert len(response.json()["data"]) == 2

def test_update_flashcard(client, test_db, auth_headers, make_flashcards):
    card = make_flashcards(1)[0]

    response = client.patch(
        f"/api/flashcards/{card.id}",
        json={"back": "A completely rewritten answer."},
        headers=auth_headers
    )
    assert response.status_code == 200
    data = response.json()["flashcard"]
    assert data["back"] == "A completely rewritten answer."
    assert data["front"] == "Existing question number 0"

def test_update_flashcard_empty_body(client, auth_headers, make_flashcards):
    card = make_flashcards(1)[0]

    response = client.patch(f"/api/flashcards/{card.id}", json={}, headers=auth_headers)
    assert response.status_code == 400
    assert response.json()["error"]["code"] == "FLASHCARD_UPDATE_EMPTY"

def test_update_flashcard_duplicate_front(client, auth_headers, make_flashcards):
    cards = make_flashcards(2)

    response = client.patch(
        f"/api/flashcards/{cards[1].id}",
        json={"front": cards[0].front},
        headers=auth_headers
    )
    assert response.status_code == 409
    assert response.json()["error"]["code"] == "FLASHCARD_DUPLICATE"

@pytest.mark.parametrize("method", ["patch", "delete"])
def test_other_users_card_is_not_found(client, auth_headers, make_flashcards, method):
    card = make_flashcards(1, user_id=OTHER_USER_ID)[0]

    if method == "patch":
        response = client.patch(f"/api/flashcards/{card.id}", json={"back": "Trying to change it."}, headers=auth_headers)
    else:
        response = client.delete(f"/api/flashcards/{card.id}", headers=auth_headers)
    assert response.status_code == 404
    assert response.json()["error"]["code"] == "FLASHCARD_NOT_FOUND"

def test_delete_flashcard(client, test_db, auth_headers, make_flashcards):
    card = make_flashcards(1)[0]
    card_id = card.id

    response = client.delete(f"/api/flashcards/{card_id}", headers=auth_headers)
    assert response.status_code == 204
    assert test_db.get(Flashcard, card_id) is None
