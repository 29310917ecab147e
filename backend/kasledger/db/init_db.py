from __future__ import annotations

import logging

from sqlalchemy import inspect, select
from sqlalchemy.orm import Session

from kasledger.core.config import settings
from kasledger.core.security import hash_password
from kasledger.models.category import Category
from kasledger.models.user import User

logger = logging.getLogger(__name__)

# Root digit drives the sign of every transaction booked below it.
DEFAULT_ROOT_CATEGORIES = (
    ("1", "Saldo Awal"),
    ("2", "Penerimaan"),
    ("3", "Pengeluaran"),
)


def ensure_seed_data(db: Session) -> None:
    inspector = inspect(db.get_bind())

    # If migrations haven't been applied yet, don't fail startup.
    if not inspector.has_table("users") or not inspector.has_table("categories"):
        logger.warning("Schema not found; run `alembic upgrade head` or set KAS_AUTO_CREATE_SCHEMA=true")
        return

    # Create the administrator when database is empty.
    if db.scalar(select(User.id).limit(1)) is None:
        db.add(
            User(
                email=settings.admin_email,
                password_hash=hash_password(settings.admin_password),
                role=User.ROLE_ADMIN,
                is_active=True,
            )
        )
        db.commit()
        logger.info("Seeded administrator %s", settings.admin_email)

    if db.scalar(select(Category.id).limit(1)) is not None:
        return

    db.add_all(
        [
            Category(id=index, parent_id=None, level=1, index=index, name=name, full_name=f"{index}. {name}")
            for index, name in DEFAULT_ROOT_CATEGORIES
        ]
    )
    db.commit()
    logger.info("Seeded root categories %s", ", ".join(i for i, _ in DEFAULT_ROOT_CATEGORIES))
