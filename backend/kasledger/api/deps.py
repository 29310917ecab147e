from __future__ import annotations

from collections.abc import Iterator

from fastapi import Depends, HTTPException, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError
from sqlalchemy.orm import Session

from kasledger.core.config import settings
from kasledger.core.security import decode_access_token
from kasledger.models.user import User
from kasledger.services.catalog import CatalogCache
from kasledger.services.extract import ExtractEngine
from kasledger.services.ledger import LedgerEngine
from kasledger.services.monthly_balance import MonthlyBalanceStore
from kasledger.services.submission import SubmissionCoordinator

bearer_scheme = HTTPBearer(auto_error=False)


def get_db(request: Request) -> Iterator[Session]:
    db = request.app.state.session_factory()
    try:
        yield db
    finally:
        db.close()


def get_current_user(
    request: Request,
    cred: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    db: Session = Depends(get_db),
) -> User:
    token: str | None = None
    if cred and cred.credentials:
        token = cred.credentials
    else:
        token = request.cookies.get(settings.auth_cookie_name)

    if not token:
        raise HTTPException(status_code=401, detail="Not authenticated")

    try:
        user_id = int(decode_access_token(token))
    except (JWTError, ValueError):
        raise HTTPException(status_code=401, detail="Invalid token")

    user = db.get(User, user_id)
    if not user or not user.is_active:
        raise HTTPException(status_code=401, detail="User inactive")
    return user


def require_admin_user(current_user: User = Depends(get_current_user)) -> User:
    if current_user.role != User.ROLE_ADMIN:
        raise HTTPException(status_code=403, detail="Admin only")
    return current_user


def get_catalog(request: Request, db: Session = Depends(get_db)) -> CatalogCache:
    catalog: CatalogCache = request.app.state.catalog
    catalog.ensure_loaded(db)
    return catalog


def get_monthly_balances(request: Request, _: CatalogCache = Depends(get_catalog)) -> MonthlyBalanceStore:
    return request.app.state.monthly_balances


def get_ledger(request: Request, _: CatalogCache = Depends(get_catalog)) -> LedgerEngine:
    return request.app.state.ledger


def get_coordinator(request: Request, _: CatalogCache = Depends(get_catalog)) -> SubmissionCoordinator:
    return request.app.state.coordinator


def get_extract(request: Request, _: CatalogCache = Depends(get_catalog)) -> ExtractEngine:
    return request.app.state.extract
