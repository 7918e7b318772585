import logging
import secrets
from datetime import datetime, timedelta
from typing import Optional

from fastapi import Depends, Request, Response
from passlib.context import CryptContext
from sqlalchemy.orm import Session

from config import settings
from database import get_db
from errors import Unauthenticated
from models import LoginSession, SiteOwner, utcnow

logger = logging.getLogger(__name__)

pwd_context = CryptContext(
    schemes=["pbkdf2_sha256"],
    deprecated="auto",
    pbkdf2_sha256__default_rounds=settings.PASSWORD_HASH_ROUNDS,
)


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(password: str, password_hash: str) -> bool:
    if not password or not password_hash:
        return False
    try:
        return pwd_context.verify(password, password_hash)
    except (ValueError, TypeError):
        # Unrecognised or corrupt hash.
        return False


def dummy_verify() -> None:
    """Burn the same time as a real verification when there is no hash to check."""
    pwd_context.dummy_verify()


def generate_secure_token() -> str:
    # 256 random bits, hex encoded.
    return secrets.token_hex(32)


# Session store

def create_session(db: Session, owner: SiteOwner) -> LoginSession:
    session = LoginSession(
        id=generate_secure_token(),
        owner_id=owner.id,
        username=owner.username,
        expires_at=utcnow() + timedelta(days=settings.SESSION_EXPIRE_DAYS),
    )
    db.add(session)
    db.commit()
    db.refresh(session)
    return session


def get_session(db: Session, token: str, now: Optional[datetime] = None) -> Optional[LoginSession]:
    if not token:
        return None
    now = now or utcnow()
    return (
        db.query(LoginSession)
        .filter(LoginSession.id == token, LoginSession.expires_at > now)
        .first()
    )


def destroy_session(db: Session, token: str) -> None:
    db.query(LoginSession).filter(LoginSession.id == token).delete(synchronize_session=False)
    db.commit()


def destroy_all_sessions_for_owner(db: Session, owner_id: str, commit: bool = True) -> int:
    count = (
        db.query(LoginSession)
        .filter(LoginSession.owner_id == owner_id)
        .delete(synchronize_session=False)
    )
    if commit:
        db.commit()
    return count


def cleanup_expired_sessions(db: Session, now: Optional[datetime] = None) -> int:
    # Exact negation of the validity check in get_session (expires_at > now).
    now = now or utcnow()
    count = (
        db.query(LoginSession)
        .filter(LoginSession.expires_at <= now)
        .delete(synchronize_session=False)
    )
    db.commit()
    if count:
        logger.info(f"Removed {count} expired session(s)")
    return count


# Cookies

def set_session_cookie(response: Response, token: str) -> None:
    response.set_cookie(
        settings.SESSION_COOKIE_NAME,
        token,
        max_age=settings.SESSION_EXPIRE_DAYS * 24 * 60 * 60,
        path="/",
        secure=settings.secure_cookies,
        httponly=True,
        samesite="lax",
    )


def clear_session_cookie(response: Response) -> None:
    response.delete_cookie(
        settings.SESSION_COOKIE_NAME,
        path="/",
        secure=settings.secure_cookies,
        httponly=True,
        samesite="lax",
    )


def get_session_token(request: Request) -> Optional[str]:
    return request.cookies.get(settings.SESSION_COOKIE_NAME)


# Dependencies

def get_optional_session(
    request: Request,
    db: Session = Depends(get_db),
) -> Optional[LoginSession]:
    token = get_session_token(request)
    if not token:
        return None
    return get_session(db, token)


def require_auth(session: Optional[LoginSession] = Depends(get_optional_session)) -> LoginSession:
    if session is None:
        raise Unauthenticated()
    return session

