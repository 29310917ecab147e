from __future__ import annotations

from sqlalchemy import Boolean, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from kasledger.models.base import Base


class User(Base):
    __tablename__ = "users"

    ROLE_ADMIN = "admin"
    ROLE_GUEST = "guest"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    email: Mapped[str] = mapped_column(String(200), unique=True, index=True)
    password_hash: Mapped[str] = mapped_column(String(255))

    # 'admin' | 'guest'
    role: Mapped[str] = mapped_column(String(10), default=ROLE_GUEST)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
