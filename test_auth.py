from datetime import timedelta

import pytest

import auth
import auth_service
from conftest import OWNER_EMAIL, OWNER_PASSWORD, OWNER_USERNAME
from errors import InvalidCredentials, NoChangesProvided, Unauthenticated, ValidationError
from models import LoginSession, utcnow
from rate_limiter import limiter


def _login(client, username=OWNER_USERNAME, password=OWNER_PASSWORD):
    return client.post("/api/auth/login", json={"username": username, "password": password})


def test_login_sets_session_cookie(client, owner, db_session):
    response = _login(client)
    assert response.status_code == 200
    user = response.json()["user"]
    assert user == {
        "id": owner.id,
        "username": OWNER_USERNAME,
        "displayName": "Site Owner",
        "recoveryEmail": OWNER_EMAIL,
    }

    set_cookie = response.headers["set-cookie"]
    assert "blog_session=" in set_cookie
    assert "HttpOnly" in set_cookie
    assert "samesite=lax" in set_cookie.lower()
    assert "Path=/" in set_cookie
    assert "Max-Age=604800" in set_cookie

    token = client.cookies.get("blog_session")
    session = db_session.query(LoginSession).filter(LoginSession.id == token).one()
    expected = utcnow() + timedelta(days=7)
    assert abs((session.expires_at - expected).total_seconds()) < 60
    assert session.username == OWNER_USERNAME


def test_login_error_does_not_reveal_username(client, owner):
    wrong_password = _login(client, password="wrong")
    unknown_user = _login(client, username="nobody", password="wrong")

    assert wrong_password.status_code == 401
    assert unknown_user.status_code == 401
    assert wrong_password.json() == unknown_user.json()
    assert wrong_password.json()["message"] == "Invalid credentials"
    assert "blog_session" not in client.cookies


def test_login_service_raises_same_error(db_session, owner):
    with pytest.raises(InvalidCredentials) as unknown:
        auth_service.login(db_session, "ghost", OWNER_PASSWORD)
    with pytest.raises(InvalidCredentials) as wrong:
        auth_service.login(db_session, OWNER_USERNAME, "not-the-password")
    assert unknown.value.message == wrong.value.message


def test_me_requires_session(client, owner):
    response = client.get("/api/auth/me")
    assert response.status_code == 401


def test_me_returns_current_user(auth_client, owner):
    response = auth_client.get("/api/auth/me")
    assert response.status_code == 200
    assert response.json()["user"]["username"] == OWNER_USERNAME


def test_me_rejects_expired_session(auth_client, db_session):
    token = auth_client.cookies.get("blog_session")
    session = db_session.query(LoginSession).filter(LoginSession.id == token).one()
    session.expires_at = utcnow() - timedelta(seconds=1)
    db_session.commit()

    assert auth_client.get("/api/auth/me").status_code == 401


def test_session_bound_to_other_owner_is_invalid(db_session, owner):
    stale = LoginSession(id="f" * 64, owner_id="someone-else", username="ghost", expires_at=utcnow())
    with pytest.raises(Unauthenticated) as exc:
        auth_service.owner_for_session(db_session, stale)
    assert exc.value.clear_cookie is True


def test_logout_destroys_session_and_clears_cookie(auth_client, db_session):
    token = auth_client.cookies.get("blog_session")

    response = auth_client.post("/api/auth/logout")
    assert response.status_code == 200
    assert "blog_session" not in auth_client.cookies
    assert db_session.query(LoginSession).filter(LoginSession.id == token).count() == 0
    assert auth_client.get("/api/auth/me").status_code == 401


def test_logout_without_session_is_idempotent(client):
    first = client.post("/api/auth/logout")
    second = client.post("/api/auth/logout")
    assert first.status_code == 200
    assert second.status_code == 200
    assert 'blog_session=""' in first.headers["set-cookie"] or "Max-Age=0" in first.headers["set-cookie"]


def test_multiple_sessions_coexist(client, owner, db_session):
    _login(client)
    _login(client)
    assert db_session.query(LoginSession).filter(LoginSession.owner_id == owner.id).count() == 2


def test_change_password_requires_session(client, owner):
    response = client.post(
        "/api/auth/change-password",
        json={"currentPassword": OWNER_PASSWORD, "newPassword": "another-password"},
    )
    assert response.status_code == 401


def test_change_password_rejects_wrong_current_password(auth_client):
    response = auth_client.post(
        "/api/auth/change-password",
        json={"currentPassword": "wrong", "newPassword": "another-password"},
    )
    assert response.status_code == 401
    assert response.json()["message"] == "Current password is incorrect"


def test_change_password_enforces_min_length(auth_client):
    response = auth_client.post(
        "/api/auth/change-password",
        json={"currentPassword": OWNER_PASSWORD, "newPassword": "short"},
    )
    assert response.status_code == 400


def test_change_password_rotates_credentials(auth_client):
    response = auth_client.post(
        "/api/auth/change-password",
        json={"currentPassword": OWNER_PASSWORD, "newPassword": "another-password"},
    )
    assert response.status_code == 200

    assert _login(auth_client).status_code == 401
    assert _login(auth_client, password="another-password").status_code == 200


def test_change_password_service_checks_length(db_session, owner):
    with pytest.raises(ValidationError):
        auth_service.change_password(db_session, owner.id, OWNER_PASSWORD, "1234567")


def test_change_credentials_requires_a_change(auth_client):
    response = auth_client.post(
        "/api/auth/change-credentials",
        json={"password": OWNER_PASSWORD, "newUsername": OWNER_USERNAME, "newEmail": OWNER_EMAIL},
    )
    assert response.status_code == 400
    assert response.json()["message"] == "No changes provided"


def test_change_credentials_rejects_wrong_password(auth_client):
    response = auth_client.post(
        "/api/auth/change-credentials",
        json={"password": "wrong", "newUsername": "editor"},
    )
    assert response.status_code == 401


def test_change_credentials_updates_only_changed_fields(auth_client, db_session, owner):
    response = auth_client.post(
        "/api/auth/change-credentials",
        json={"password": OWNER_PASSWORD, "newUsername": "editor"},
    )
    assert response.status_code == 200

    db_session.refresh(owner)
    assert owner.username == "editor"
    assert owner.recovery_email == OWNER_EMAIL
    token = auth_client.cookies.get("blog_session")
    assert db_session.get(LoginSession, token).username == "editor"

    assert _login(auth_client, username="editor").status_code == 200
    assert _login(auth_client, username=OWNER_USERNAME).status_code == 401


def test_change_credentials_service_updates_email(db_session, owner):
    updated = auth_service.change_credentials(
        db_session, owner.id, OWNER_PASSWORD, new_email="new@example.com"
    )
    assert updated.recovery_email == "new@example.com"
    assert updated.username == OWNER_USERNAME

    with pytest.raises(NoChangesProvided):
        auth_service.change_credentials(db_session, owner.id, OWNER_PASSWORD)


def test_password_hash_is_salted(owner):
    assert owner.password_hash != OWNER_PASSWORD
    assert auth.hash_password(OWNER_PASSWORD) != auth.hash_password(OWNER_PASSWORD)
    assert auth.verify_password(OWNER_PASSWORD, owner.password_hash)
    assert not auth.verify_password(OWNER_PASSWORD, "not-a-hash")


def test_session_for_missing_owner_clears_cookie(auth_client, monkeypatch):
    monkeypatch.setattr(auth_service.crud, "get_site_owner", lambda db: None)

    response = auth_client.get("/api/auth/me")
    assert response.status_code == 401
    assert response.json() == {"message": "Session invalid"}
    assert "blog_session=" in response.headers["set-cookie"]
    assert "Max-Age=0" in response.headers["set-cookie"]
    assert "blog_session" not in auth_client.cookies


@pytest.fixture
def rate_limited():
    limiter.reset()
    limiter.enabled = True
    yield limiter
    limiter.enabled = False
    limiter.reset()


def test_login_is_rate_limited(client, owner, rate_limited):
    for _ in range(5):
        assert _login(client, password="wrong").status_code == 401

    response = _login(client, password="wrong")
    assert response.status_code == 429
    assert response.json()["message"].startswith("Too many requests")
