from unittest.mock import AsyncMock

import pytest
from fastapi.testclient import TestClient

from mneme.application.review_service import ReviewService
from mneme.consts import VERSION
from mneme.domain.errors import PersistenceError
from mneme.infrastructure.adapters.memory_store import InMemoryCardStore
from mneme.server import app


@pytest.fixture
def client():
    app.state.service = ReviewService(InMemoryCardStore())
    if hasattr(app.state, "config"):
        del app.state.config
    return TestClient(app)


def test_health_check(client):
    response = client.get("/health")
    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "ok"
    assert data["version"] == VERSION


def test_get_version(client):
    response = client.get("/version")
    assert response.status_code == 200
    assert response.json() == {"version": VERSION}


def test_register_and_review(client):
    response = client.post("/cards", json={"note_path": "a.md", "content": "Q", "card_id": "c1"})
    assert response.status_code == 200
    assert response.json()["cardUUID"] == "c1"

    response = client.post("/cards/c1/review", json={"quality": 2})
    assert response.status_code == 200
    data = response.json()
    assert data["isLearning"] is True
    assert data["learningStep"] == 0
    assert data["efHistory"][-1]["rating"] == 2

    response = client.get("/cards/c1")
    assert response.status_code == 200
    assert response.json()["notePath"] == "a.md"


def test_review_invalid_rating(client):
    response = client.post("/cards/c1/review", json={"quality": 6})
    assert response.status_code == 422
    assert "between 0 and 5" in response.json()["detail"]


def test_stop(client):
    client.post("/cards/c1/review", json={"quality": 4})
    response = client.post("/cards/c1/stop")
    assert response.status_code == 200
    data = response.json()
    assert data["active"] is False
    assert "nextReviewDate" not in data


def test_missing_card(client):
    assert client.get("/cards/ghost").status_code == 404
    assert client.post("/cards/ghost/stop").status_code == 404


def test_queue_and_stats(client):
    client.post("/cards", json={"note_path": "a.md", "content": "Alpha", "card_id": "c1"})
    client.post("/cards", json={"note_path": "b.md", "content": "Beta", "card_id": "c2"})

    response = client.get("/queue", params={"mode": "scheduled"})
    assert response.status_code == 200
    assert response.json()["count"] == 2

    response = client.get("/queue", params={"mode": "note", "note": "a.md"})
    assert [c["cardUUID"] for c in response.json()["cards"]] == ["c1"]

    response = client.get("/queue")
    assert response.json() == {"count": 0, "cards": []}

    response = client.get("/stats")
    assert response.status_code == 200
    assert response.json()["total"] == 2


def test_persistence_failure(client):
    store = AsyncMock()
    store.get.side_effect = PersistenceError("/tmp/data.json", "unwritable")
    app.state.service = ReviewService(store)

    response = client.post("/cards/c1/review", json={"quality": 3})
    assert response.status_code == 503
    assert "unwritable" in response.json()["detail"]
