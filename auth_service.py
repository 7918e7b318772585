"""Owner authentication: login, sessions, credential changes and password recovery.

The functions here raise domain errors from ``errors`` and never touch HTTP
objects; the routers translate results into cookies and JSON.
"""

import logging
from datetime import datetime, timedelta
from typing import Optional, Tuple

from fastapi import Depends
from sqlalchemy.orm import Session

import auth
import crud
from config import settings
from database import get_db
from errors import (
    InvalidCredentials,
    InvalidOrExpiredToken,
    NoChangesProvided,
    Unauthenticated,
    ValidationError,
)
from mailer import EmailDeliveryError, Mailer
from models import TOKEN_PASSWORD_RESET, LoginSession, SiteOwner, utcnow

logger = logging.getLogger(__name__)

PASSWORD_RESET_MESSAGE = "If that email exists, a reset link has been sent"


def _check_new_password(new_password: str) -> None:
    if not new_password or len(new_password) < settings.PASSWORD_MIN_LENGTH:
        raise ValidationError(
            f"New password must be at least {settings.PASSWORD_MIN_LENGTH} characters"
        )


def login(db: Session, username: str, password: str) -> Tuple[SiteOwner, LoginSession]:
    owner = crud.get_site_owner_by_username(db, username)
    if owner is None:
        auth.dummy_verify()
        logger.warning("Failed login attempt")
        raise InvalidCredentials()

    if not auth.verify_password(password, owner.password_hash):
        logger.warning("Failed login attempt")
        raise InvalidCredentials()

    if auth.pwd_context.needs_update(owner.password_hash):
        owner.password_hash = auth.hash_password(password)

    session = auth.create_session(db, owner)
    logger.info(f"Owner {owner.id} logged in")
    return owner, session


def logout(db: Session, token: Optional[str]) -> None:
    if token:
        auth.destroy_session(db, token)


def owner_for_session(db: Session, session: LoginSession) -> SiteOwner:
    owner = crud.get_site_owner(db)
    if owner is None or owner.id != session.owner_id:
        raise Unauthenticated("Session invalid", clear_cookie=True)
    return owner


def current_owner(db: Session, token: Optional[str]) -> SiteOwner:
    session = auth.get_session(db, token) if token else None
    if session is None:
        raise Unauthenticated("Not authenticated")
    return owner_for_session(db, session)


def get_current_owner(
    session: LoginSession = Depends(auth.require_auth),
    db: Session = Depends(get_db),
) -> SiteOwner:
    return owner_for_session(db, session)


def change_password(db: Session, owner_id: str, current_password: str, new_password: str) -> None:
    _check_new_password(new_password)

    owner = crud.get_site_owner_by_id(db, owner_id)
    if owner is None:
        raise Unauthenticated("Unauthorized")
    if not auth.verify_password(current_password, owner.password_hash):
        raise InvalidCredentials("Current password is incorrect")

    owner.password_hash = auth.hash_password(new_password)
    owner.updated_at = utcnow()
    db.commit()
    logger.info(f"Owner {owner.id} changed password")


def change_credentials(
    db: Session,
    owner_id: str,
    password: str,
    new_username: Optional[str] = None,
    new_email: Optional[str] = None,
) -> SiteOwner:
    owner = crud.get_site_owner_by_id(db, owner_id)
    if owner is None:
        raise Unauthenticated("Unauthorized")
    if not auth.verify_password(password, owner.password_hash):
        raise InvalidCredentials("Password is incorrect")

    changed = []
    if new_username and new_username != owner.username:
        owner.username = new_username
        # Sessions carry a copy of the username.
        db.query(LoginSession).filter(LoginSession.owner_id == owner.id).update(
            {LoginSession.username: new_username}, synchronize_session=False
        )
        changed.append("username")
    if new_email and new_email != owner.recovery_email:
        owner.recovery_email = new_email
        changed.append("recovery_email")

    if not changed:
        raise NoChangesProvided()

    owner.updated_at = utcnow()
    db.commit()
    db.refresh(owner)
    logger.info(f"Owner {owner.id} changed {', '.join(changed)}")
    return owner


def build_reset_link(token: str) -> str:
    return f"{settings.PUBLIC_BASE_URL.rstrip('/')}/admin/reset-password?token={token}"


async def request_password_reset(
    db: Session,
    email: str,
    mailer: Mailer,
    now: Optional[datetime] = None,
) -> str:
    """Issue a reset token when ``email`` is the owner's recovery address.

    Returns the same message whether or not anything was issued.
    """
    owner = crud.get_site_owner(db)
    requested = (email or "").strip().lower()
    if owner is None or not requested or owner.recovery_email.strip().lower() != requested:
        logger.info("Password reset requested for an unknown email")
        return PASSWORD_RESET_MESSAGE

    now = now or utcnow()
    crud.invalidate_recovery_tokens_for_owner(db, owner.id, TOKEN_PASSWORD_RESET, now=now)
    token = auth.generate_secure_token()
    crud.create_recovery_token(
        db,
        owner_id=owner.id,
        token=token,
        token_type=TOKEN_PASSWORD_RESET,
        expires_at=now + timedelta(minutes=settings.PASSWORD_RESET_EXPIRE_MINUTES),
    )
    db.commit()
    logger.info(f"Password reset token issued for owner {owner.id}")

    try:
        await mailer.send_password_reset(owner.recovery_email, build_reset_link(token))
    except EmailDeliveryError as exc:
        logger.error(f"Failed to deliver password reset email: {exc}")

    return PASSWORD_RESET_MESSAGE


def reset_password(
    db: Session,
    token: str,
    new_password: str,
    now: Optional[datetime] = None,
) -> SiteOwner:
    _check_new_password(new_password)

    now = now or utcnow()
    row = crud.get_valid_recovery_token(db, token, TOKEN_PASSWORD_RESET, now=now)
    if row is None:
        raise InvalidOrExpiredToken()
    owner = crud.get_site_owner_by_id(db, row.owner_id)
    if owner is None:
        raise InvalidOrExpiredToken()

    owner.password_hash = auth.hash_password(new_password)
    owner.updated_at = now
    crud.mark_recovery_token_used(db, row, now=now)
    revoked = auth.destroy_all_sessions_for_owner(db, owner.id, commit=False)
    db.commit()
    logger.info(f"Password reset for owner {owner.id}; revoked {revoked} session(s)")
    return owner


def provision_owner(
    db: Session,
    *,
    username: str,
    password: str,
    recovery_email: str,
    display_name: Optional[str] = None,
) -> SiteOwner:
    if not username or not recovery_email:
        raise ValidationError("Username and recovery email are required")
    _check_new_password(password)
    return crud.create_site_owner(
        db,
        username=username,
        password_hash=auth.hash_password(password),
        recovery_email=recovery_email,
        display_name=display_name,
    )


def bootstrap_owner_if_needed(db: Session) -> Optional[SiteOwner]:
    """Create the owner from OWNER_BOOTSTRAP_* settings on first start.

    Does nothing once an owner exists or when the settings are incomplete.
    """
    if crud.get_site_owner(db) is not None:
        return None
    username = (settings.OWNER_BOOTSTRAP_USERNAME or "").strip()
    password = settings.OWNER_BOOTSTRAP_PASSWORD or ""
    email = (settings.OWNER_BOOTSTRAP_EMAIL or "").strip()
    if not username or not password or not email:
        logger.warning("No site owner exists and OWNER_BOOTSTRAP_* is not configured")
        return None

    owner = provision_owner(
        db,
        username=username,
        password=password,
        recovery_email=email,
        display_name=settings.OWNER_BOOTSTRAP_DISPLAY_NAME,
    )
    logger.info(f"Bootstrapped site owner {owner.username}")
    return owner
