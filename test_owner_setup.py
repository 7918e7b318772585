import pytest
from sqlalchemy.orm import sessionmaker

import auth
import auth_service
import create_owner
from config import settings
from models import SiteOwner


@pytest.fixture
def bootstrap_settings(monkeypatch):
    monkeypatch.setattr(settings, "OWNER_BOOTSTRAP_USERNAME", "bootstrap")
    monkeypatch.setattr(settings, "OWNER_BOOTSTRAP_PASSWORD", "bootstrap-password")
    monkeypatch.setattr(settings, "OWNER_BOOTSTRAP_EMAIL", "boot@example.com")
    monkeypatch.setattr(settings, "OWNER_BOOTSTRAP_DISPLAY_NAME", "Boot Strap")
    return settings


def test_bootstrap_creates_owner_from_settings(db_session, bootstrap_settings):
    owner = auth_service.bootstrap_owner_if_needed(db_session)

    assert owner is not None
    assert owner.username == "bootstrap"
    assert owner.recovery_email == "boot@example.com"
    assert owner.display_name == "Boot Strap"
    assert auth.verify_password("bootstrap-password", owner.password_hash)


def test_bootstrap_skips_incomplete_settings(db_session, bootstrap_settings, monkeypatch):
    monkeypatch.setattr(settings, "OWNER_BOOTSTRAP_EMAIL", None)

    assert auth_service.bootstrap_owner_if_needed(db_session) is None
    assert db_session.query(SiteOwner).count() == 0


def test_bootstrap_leaves_existing_owner(db_session, owner, bootstrap_settings):
    assert auth_service.bootstrap_owner_if_needed(db_session) is None
    assert [o.username for o in db_session.query(SiteOwner).all()] == [owner.username]


@pytest.fixture
def cli_db(db_session, monkeypatch):
    bind = db_session.get_bind()
    monkeypatch.setattr(create_owner, "engine", bind)
    monkeypatch.setattr(create_owner, "SessionLocal", sessionmaker(autocommit=False, autoflush=False, bind=bind))
    return db_session


def test_create_owner_command(cli_db, capsys):
    code = create_owner.main(
        [
            "--username", "cli-admin",
            "--email", "cli@example.com",
            "--display-name", "CLI Admin",
            "--password", "long-enough-password",
        ]
    )

    assert code == 0
    assert "Created site owner cli-admin" in capsys.readouterr().out
    owner = cli_db.query(SiteOwner).one()
    assert owner.username == "cli-admin"
    assert auth.verify_password("long-enough-password", owner.password_hash)


def test_create_owner_command_refuses_second_owner(cli_db, owner, capsys):
    code = create_owner.main(
        ["--username", "intruder", "--email", "x@example.com", "--password", "long-enough-password"]
    )

    assert code == 1
    assert "Site owner already exists" in capsys.readouterr().err
    assert cli_db.query(SiteOwner).count() == 1


def test_create_owner_command_rejects_short_password(cli_db, capsys):
    code = create_owner.main(["--username", "admin", "--email", "a@example.com", "--password", "short"])

    assert code == 1
    assert "at least 8 characters" in capsys.readouterr().err
    assert cli_db.query(SiteOwner).count() == 0
