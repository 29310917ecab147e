from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from sqlalchemy import Boolean, DateTime, ForeignKey, Integer, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from kasledger.core.datetime_utils import utcnow_naive
from kasledger.models.base import Base


class MonthlyBalance(Base):
    __tablename__ = "monthly_balances"

    # 'YYYY-MM'
    key: Mapped[str] = mapped_column(String(7), primary_key=True)
    year: Mapped[int] = mapped_column(Integer)
    month: Mapped[int] = mapped_column(Integer)

    # Saldo Awal / Saldo Akhir of the month
    starting_balance: Mapped[Decimal] = mapped_column(Numeric(18, 2), default=Decimal("0"))
    ending_balance: Mapped[Decimal] = mapped_column(Numeric(18, 2), default=Decimal("0"))

    last_updated: Mapped[datetime] = mapped_column(DateTime(timezone=False), default=utcnow_naive, onupdate=utcnow_naive)

    # Provenance
    is_initial_setup: Mapped[bool] = mapped_column(Boolean, default=False)
    auto_saved: Mapped[bool] = mapped_column(Boolean, default=False)

    account_balances: Mapped[list["MonthlyAccountBalance"]] = relationship(
        back_populates="monthly_balance",
        cascade="all, delete-orphan",
        order_by="MonthlyAccountBalance.account_id",
    )


class MonthlyAccountBalance(Base):
    __tablename__ = "monthly_account_balances"

    month_key: Mapped[str] = mapped_column(String(7), ForeignKey("monthly_balances.key"), primary_key=True)
    account_id: Mapped[int] = mapped_column(Integer, primary_key=True)

    name: Mapped[str] = mapped_column(String(100))

    # Carried balance at the start of the month
    opening: Mapped[Decimal] = mapped_column(Numeric(18, 2), default=Decimal("0"))
    # Net movement within the month
    total: Mapped[Decimal] = mapped_column(Numeric(18, 2), default=Decimal("0"))

    monthly_balance: Mapped[MonthlyBalance] = relationship(back_populates="account_balances")
