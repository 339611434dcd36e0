import logging
import os
from datetime import datetime
from typing import Any, Dict

from fastapi import APIRouter, Body, Depends, HTTPException, Request, Response, status
from slowapi import Limiter
from slowapi.util import get_remote_address
from sqlmodel import Session

from smartcare.auth import (
    ACCESS_TOKEN_EXPIRE_MINUTES, TOKEN_COOKIE_NAME, verify_password, token_for_user, seconds_until_expiry,
)
from smartcare.database import get_session
from smartcare.dependencies import get_current_user
from smartcare.models import User, UserRole
from smartcare.routers.users import create_user_account, find_user_by_email
from smartcare.schemas import UserLogin, parse_user_create, user_to_dict
from smartcare.services.token_blacklist import blacklist_token
from smartcare.utils.responses import success_response

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth", tags=["Authentication"])
limiter = Limiter(
    key_func=get_remote_address,
    enabled=os.getenv("RATE_LIMIT_ENABLED", "true").lower() == "true",
)

SECURE_COOKIES = os.getenv("ENVIRONMENT", "development").lower() == "production"


def set_token_cookie(response: Response, token: str) -> None:
    response.set_cookie(
        key=TOKEN_COOKIE_NAME,
        value=token,
        httponly=True,
        secure=SECURE_COOKIES,
        samesite="strict",
        max_age=ACCESS_TOKEN_EXPIRE_MINUTES * 60,
    )


@router.post("/register", status_code=status.HTTP_201_CREATED)
@limiter.limit("3/minute")
def register(
    request: Request,
    response: Response,
    payload: Dict[str, Any] = Body(...),
    session: Session = Depends(get_session)
):
    """Patient self-registration; other roles are created by a manager"""
    if payload.get("role", UserRole.PATIENT.value) != UserRole.PATIENT.value:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Only patients can self-register"
        )

    user_data = parse_user_create({**payload, "role": UserRole.PATIENT.value})
    user = create_user_account(session, user_data)
    token = token_for_user(user)
    set_token_cookie(response, token)

    return success_response(
        data={"user": user_to_dict(user), "token": token},
        message="User registered successfully",
    )


@router.post("/login")
@limiter.limit("5/minute")
def login(
    request: Request,
    response: Response,
    credentials: UserLogin,
    session: Session = Depends(get_session)
):
    """Login user"""
    user = find_user_by_email(session, credentials.email)
    if not user or not verify_password(credentials.password, user.password_hash):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid credentials"
        )

    if not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User account is inactive"
        )

    user.last_login = datetime.utcnow()
    session.add(user)
    session.commit()
    session.refresh(user)

    token = token_for_user(user)
    set_token_cookie(response, token)
    logger.info(f"User {user.id} logged in")

    return success_response(
        data={"user": user_to_dict(user), "token": token},
        message="Login successful",
    )


@router.post("/logout")
def logout(
    request: Request,
    response: Response,
    current_user: User = Depends(get_current_user)
):
    """Revoke the presented token and clear the session cookie"""
    payload = request.state.token_payload
    blacklist_token(request.state.token, payload.get("jti"), seconds_until_expiry(payload))
    response.delete_cookie(TOKEN_COOKIE_NAME)
    logger.info(f"User {current_user.id} logged out")
    return success_response(message="Logout successful")


@router.get("/verify")
def verify(current_user: User = Depends(get_current_user)):
    """Resolve the session token to its user"""
    return success_response(data={"user": user_to_dict(current_user)})
