from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from kasledger.api.deps import get_db, require_admin_user
from kasledger.core.security import hash_password
from kasledger.models.user import User
from kasledger.schemas.user import UserCreate, UserOut, UserUpdate

router = APIRouter(prefix="/config/users", tags=["config"])


def _to_out(row: User) -> UserOut:
    return UserOut(id=row.id, email=row.email, role=row.role, isActive=row.is_active)


@router.get("", response_model=list[UserOut])
def list_users(
    db: Session = Depends(get_db),
    _: User = Depends(require_admin_user),
) -> list[UserOut]:
    rows = db.scalars(select(User).order_by(User.id.desc())).all()
    return [_to_out(r) for r in rows]


@router.post("", response_model=UserOut)
def create_user(
    payload: UserCreate,
    db: Session = Depends(get_db),
    _: User = Depends(require_admin_user),
) -> UserOut:
    email = payload.email.strip().lower()
    existing = db.scalar(select(User).where(User.email == email))
    if existing:
        raise HTTPException(status_code=400, detail="Email sudah terdaftar")

    row = User(
        email=email,
        password_hash=hash_password(payload.password),
        role=payload.role,
        is_active=payload.isActive,
    )
    db.add(row)
    db.commit()
    db.refresh(row)
    return _to_out(row)


@router.patch("/{user_id}", response_model=UserOut)
def update_user(
    user_id: int,
    payload: UserUpdate,
    db: Session = Depends(get_db),
    current_admin: User = Depends(require_admin_user),
) -> UserOut:
    row = db.get(User, user_id)
    if not row:
        raise HTTPException(status_code=404, detail="User not found")

    next_role = payload.role if payload.role is not None else row.role
    next_active = payload.isActive if payload.isActive is not None else row.is_active

    # Safety: avoid locking yourself out from admin.
    if row.id == current_admin.id:
        if next_role != User.ROLE_ADMIN:
            raise HTTPException(status_code=400, detail="Cannot change your own role")
        if next_active is False:
            raise HTTPException(status_code=400, detail="Cannot disable your own account")

    # Safety: keep at least one active admin.
    if row.role == User.ROLE_ADMIN and (next_role != User.ROLE_ADMIN or not next_active):
        active_admin_count = db.scalar(
            select(func.count(User.id)).where(User.role == User.ROLE_ADMIN, User.is_active == True)  # noqa: E712
        )
        if active_admin_count is not None and int(active_admin_count) <= 1:
            raise HTTPException(status_code=400, detail="At least one active admin is required")

    if payload.password is not None:
        row.password_hash = hash_password(payload.password)
    row.role = next_role
    row.is_active = next_active

    db.commit()
    db.refresh(row)
    return _to_out(row)
