from fastapi.testclient import TestClient

import crud
from main import app


def test_health_check(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


def test_unknown_route_uses_message_shape(client):
    response = client.get("/api/does-not-exist")
    assert response.status_code == 404
    assert "message" in response.json()


def test_validation_errors_are_400_with_detail(client):
    response = client.post("/api/auth/login", json={"username": "admin"})
    assert response.status_code == 400
    body = response.json()
    assert body["message"] == "Invalid request data"
    assert any(err["loc"][-1] == "password" for err in body["errors"])


def test_unknown_fields_are_rejected(client):
    response = client.post(
        "/api/auth/login",
        json={"username": "admin", "password": "whatever", "remember": True},
    )
    assert response.status_code == 400


def test_request_logging_does_not_break_responses(client, caplog):
    with caplog.at_level("INFO", logger="main"):
        client.get("/health")
    assert any("/health" in record.getMessage() for record in caplog.records)


def test_unhandled_errors_return_generic_500(client, monkeypatch):
    def broken(db, published_only=False):
        raise RuntimeError("database exploded")

    monkeypatch.setattr(crud, "list_posts", broken)
    with TestClient(app, raise_server_exceptions=False) as raw_client:
        response = raw_client.get("/api/posts", params={"published": "true"})
    assert response.status_code == 500
    assert response.json() == {"message": "Internal server error"}
