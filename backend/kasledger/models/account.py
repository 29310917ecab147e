from __future__ import annotations

from datetime import datetime

from sqlalchemy import Boolean, DateTime, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from kasledger.core.datetime_utils import utcnow_naive
from kasledger.models.base import Base


class Account(Base):
    __tablename__ = "accounts"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)

    # e.g. 'Kas Tunai', 'Kas Bank Lingkungan'. Report totals match on 'bank' / 'tunai'.
    name: Mapped[str] = mapped_column(String(100))
    bank_number: Mapped[str | None] = mapped_column(String(50), nullable=True)

    # Soft delete only: transactions keep referencing deactivated accounts
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, index=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), default=utcnow_naive, index=True)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), default=utcnow_naive, onupdate=utcnow_naive)
