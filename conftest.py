import os
import tempfile

# Settings are read at import time, so the environment has to be in place first.
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["ENVIRONMENT"] = "test"
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["SESSION_CLEANUP_INTERVAL_MINUTES"] = "0"
os.environ["PASSWORD_HASH_ROUNDS"] = "1000"
os.environ["STORAGE_PROVIDER"] = "local"
os.environ["UPLOAD_DIR"] = tempfile.mkdtemp(prefix="blog-uploads-")
for _key in (
    "OWNER_BOOTSTRAP_USERNAME",
    "OWNER_BOOTSTRAP_PASSWORD",
    "OWNER_BOOTSTRAP_EMAIL",
    "RESEND_API_KEY",
    "RESEND_FROM",
    "SUPABASE_URL",
    "SUPABASE_SERVICE_ROLE_KEY",
    "SUPABASE_BUCKET",
):
    os.environ.pop(_key, None)

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import auth_service
from database import Base, get_db
from mailer import get_mailer
from main import app
from upload_storage import LocalUploadBackend, get_upload_backend

OWNER_USERNAME = "admin"
OWNER_PASSWORD = "correct-horse-battery"
OWNER_EMAIL = "owner@example.com"


class FakeMailer:
    configured = True

    def __init__(self):
        self.sent = []

    async def send_password_reset(self, to_email, reset_link):
        self.sent.append((to_email, reset_link))

    @property
    def last_token(self):
        return self.sent[-1][1].split("token=", 1)[1]


@pytest.fixture(scope="function")
def db_session():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    session = TestingSessionLocal()

    yield session

    session.close()
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def owner(db_session):
    return auth_service.provision_owner(
        db_session,
        username=OWNER_USERNAME,
        password=OWNER_PASSWORD,
        recovery_email=OWNER_EMAIL,
        display_name="Site Owner",
    )


@pytest.fixture
def mailer():
    return FakeMailer()


@pytest.fixture
def upload_backend(tmp_path):
    backend = LocalUploadBackend(tmp_path / "uploads", "/uploads", max_bytes=10 * 1024 * 1024)
    backend.ensure_dirs()
    return backend


@pytest.fixture(scope="function")
def client(db_session, mailer, upload_backend):
    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_mailer] = lambda: mailer
    app.dependency_overrides[get_upload_backend] = lambda: upload_backend
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture
def auth_client(client, owner):
    response = client.post(
        "/api/auth/login",
        json={"username": OWNER_USERNAME, "password": OWNER_PASSWORD},
    )
    assert response.status_code == 200
    return client
