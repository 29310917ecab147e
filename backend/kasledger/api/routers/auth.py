from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Response
from sqlalchemy import select
from sqlalchemy.orm import Session

from kasledger.api.deps import get_current_user, get_db
from kasledger.core.config import settings
from kasledger.core.security import create_access_token, verify_password
from kasledger.models.user import User
from kasledger.schemas.auth import LoginRequest, TokenResponse, UserMe

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])


@router.post("/login", response_model=TokenResponse)
def login(payload: LoginRequest, response: Response, db: Session = Depends(get_db)) -> TokenResponse:
    user = db.scalar(select(User).where(User.email == payload.email.strip().lower()))
    if not user or not user.is_active:
        raise HTTPException(status_code=401, detail="Email atau kata sandi salah")

    if not verify_password(payload.password, user.password_hash):
        logger.info("Failed login for %s", payload.email)
        raise HTTPException(status_code=401, detail="Email atau kata sandi salah")

    token = create_access_token(str(user.id), role=user.role)

    # Store JWT in HttpOnly cookie so refresh doesn't lose login state.
    response.set_cookie(
        key=settings.auth_cookie_name,
        value=token,
        httponly=True,
        secure=bool(settings.auth_cookie_secure),
        samesite=settings.auth_cookie_samesite,
        max_age=int(settings.jwt_expire_minutes) * 60,
        path="/",
    )

    return TokenResponse(access_token=token)


@router.post("/logout")
def logout(response: Response) -> dict:
    response.delete_cookie(key=settings.auth_cookie_name, path="/")
    return {"ok": True}


@router.get("/me", response_model=UserMe)
def me(current_user: User = Depends(get_current_user)) -> UserMe:
    return UserMe(id=current_user.id, email=current_user.email, role=current_user.role)
