from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from kasledger.core.datetime_utils import utcnow_naive
from kasledger.models.base import Base


class Category(Base):
    __tablename__ = "categories"

    # Dotted path, e.g. '2.1.3'. Doubles as sort key and parent encoding.
    id: Mapped[str] = mapped_column(String(50), primary_key=True)
    parent_id: Mapped[str | None] = mapped_column(String(50), ForeignKey("categories.id"), nullable=True, index=True)

    # 1..5, equal to the number of dotted segments
    level: Mapped[int] = mapped_column(Integer)

    # Historically duplicated field; always equal to id
    index: Mapped[str] = mapped_column(String(50), index=True)

    name: Mapped[str] = mapped_column(String(200))
    # '{index}. {name}'
    full_name: Mapped[str] = mapped_column(String(260))

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), default=utcnow_naive)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), default=utcnow_naive, onupdate=utcnow_naive)
