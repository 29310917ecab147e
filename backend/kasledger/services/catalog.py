from __future__ import annotations

import threading

from sqlalchemy.orm import Session

from kasledger.services.account_registry import AccountRegistry
from kasledger.services.category_tree import CategoryTree


class CatalogCache:
    """Session-scoped categories and accounts, refreshed only by reload()."""

    def __init__(self) -> None:
        self.categories = CategoryTree()
        self.accounts = AccountRegistry()
        self._lock = threading.Lock()

    @property
    def loaded(self) -> bool:
        return self.categories.loaded and self.accounts.loaded

    def reload(self, db: Session) -> None:
        with self._lock:
            self.categories.load(db)
            self.accounts.load(db)

    def ensure_loaded(self, db: Session) -> None:
        if not self.loaded:
            self.reload(db)
