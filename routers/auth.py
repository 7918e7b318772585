import logging

from fastapi import APIRouter, Depends, Request, Response, status
from sqlalchemy.orm import Session

import auth, auth_service, schemas
from config import settings
from database import get_db
from mailer import Mailer, get_mailer
from models import SiteOwner
from rate_limiter import limiter

router = APIRouter(prefix="/api/auth", tags=["Auth"])
logger = logging.getLogger(__name__)


def _user_response(owner: SiteOwner) -> schemas.UserResponse:
    return schemas.UserResponse(user=schemas.UserPublic.model_validate(owner))


@router.post("/login", response_model=schemas.UserResponse)
@limiter.limit(settings.LOGIN_RATE_LIMIT)
def login(
    request: Request,
    response: Response,
    payload: schemas.LoginRequest,
    db: Session = Depends(get_db),
):
    owner, session = auth_service.login(db, payload.username, payload.password)
    auth.set_session_cookie(response, session.id)
    return _user_response(owner)


@router.post("/logout", response_model=schemas.MessageResponse)
def logout(request: Request, response: Response, db: Session = Depends(get_db)):
    auth_service.logout(db, auth.get_session_token(request))
    auth.clear_session_cookie(response)
    return {"message": "Logged out successfully"}


@router.get("/me", response_model=schemas.UserResponse)
def me(request: Request, db: Session = Depends(get_db)):
    owner = auth_service.current_owner(db, auth.get_session_token(request))
    return _user_response(owner)


@router.post("/change-password", response_model=schemas.MessageResponse)
def change_password(
    payload: schemas.ChangePasswordRequest,
    owner: SiteOwner = Depends(auth_service.get_current_owner),
    db: Session = Depends(get_db),
):
    auth_service.change_password(db, owner.id, payload.current_password, payload.new_password)
    return {"message": "Password updated successfully"}


@router.post("/change-credentials", response_model=schemas.MessageResponse)
def change_credentials(
    payload: schemas.ChangeCredentialsRequest,
    owner: SiteOwner = Depends(auth_service.get_current_owner),
    db: Session = Depends(get_db),
):
    auth_service.change_credentials(
        db,
        owner.id,
        payload.password,
        new_username=payload.new_username,
        new_email=payload.new_email,
    )
    return {"message": "Credentials updated successfully"}


@router.post("/request-password-reset", response_model=schemas.MessageResponse)
@limiter.limit(settings.PASSWORD_RESET_RATE_LIMIT)
async def request_password_reset(
    request: Request,
    payload: schemas.PasswordResetRequest,
    db: Session = Depends(get_db),
    mailer: Mailer = Depends(get_mailer),
):
    message = await auth_service.request_password_reset(db, payload.email, mailer)
    return {"message": message}


@router.post("/reset-password", response_model=schemas.MessageResponse, status_code=status.HTTP_200_OK)
def reset_password(
    payload: schemas.ResetPasswordRequest,
    response: Response,
    db: Session = Depends(get_db),
):
    auth_service.reset_password(db, payload.token, payload.new_password)
    # Every session was revoked, including any this browser held.
    auth.clear_session_cookie(response)
    return {"message": "Password reset successfully"}
