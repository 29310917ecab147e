from __future__ import annotations

from sqlalchemy import Integer
from sqlalchemy.orm import Mapped, mapped_column

from kasledger.models.base import Base


class LedgerHead(Base):
    """Single row whose sequence is bumped by compare-and-swap on every write."""

    __tablename__ = "ledger_heads"

    LEDGER_ID = 1

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    sequence: Mapped[int] = mapped_column(Integer, default=0)
    last_transaction_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
