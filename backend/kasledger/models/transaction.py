from __future__ import annotations

import datetime as dt
from decimal import Decimal

from sqlalchemy import Date, DateTime, ForeignKey, Index, Integer, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column

from kasledger.models.base import Base


class Transaction(Base):
    __tablename__ = "transactions"
    __table_args__ = (
        # Total order of the balance chain
        Index("ix_transactions_chain_order", "date", "created_at", "id"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)

    name: Mapped[str] = mapped_column(String(200))
    date: Mapped[dt.date] = mapped_column(Date, index=True)

    # Signed at write time: income positive, expense negative, opening balance as entered
    amount: Mapped[Decimal] = mapped_column(Numeric(18, 2))

    # No FK on purpose: deactivated/unknown accounts must still display
    account_id: Mapped[int] = mapped_column(Integer, index=True)
    category_id: Mapped[str] = mapped_column(String(50), ForeignKey("categories.id"), index=True)

    description: Mapped[str | None] = mapped_column(String(1000), nullable=True)

    # Running cash balance after this transaction
    saldo_kas: Mapped[Decimal] = mapped_column(Numeric(18, 2))

    created_at: Mapped[dt.datetime] = mapped_column(DateTime(timezone=False), index=True)

    created_by: Mapped[str | None] = mapped_column(String(50), nullable=True)
    created_by_email: Mapped[str | None] = mapped_column(String(200), nullable=True)
    created_by_role: Mapped[str | None] = mapped_column(String(10), nullable=True)
