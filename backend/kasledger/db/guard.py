from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from kasledger.core.errors import PersistenceError

logger = logging.getLogger(__name__)


@contextmanager
def persistence_guard(db: Session, action: str) -> Iterator[None]:
    """Roll back and re-raise store failures as PersistenceError."""

    try:
        yield
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception("Store failure while %s", action)
        raise PersistenceError(f"Gagal {action}: {exc.__class__.__name__}") from exc
