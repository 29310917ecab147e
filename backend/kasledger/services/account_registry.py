from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import select
from sqlalchemy.orm import Session

from kasledger.core.errors import AccountNotFound, ValidationError
from kasledger.db.guard import persistence_guard
from kasledger.models.account import Account

logger = logging.getLogger(__name__)

UNKNOWN_ACCOUNT_NAME = "Akun tidak diketahui"


@dataclass(frozen=True)
class AccountEntry:
    id: int
    name: str
    bank_number: str | None
    is_active: bool
    created_at: datetime

    @property
    def label(self) -> str:
        if self.bank_number:
            return f"{self.name} - {self.bank_number}"
        return self.name


def _snapshot(row: Account) -> AccountEntry:
    return AccountEntry(
        id=int(row.id),
        name=row.name,
        bank_number=row.bank_number,
        is_active=bool(row.is_active),
        created_at=row.created_at,
    )


class AccountRegistry:
    def __init__(self) -> None:
        self._active: list[AccountEntry] = []
        # Every account, deactivated included, for display lookups
        self._by_id: dict[int, AccountEntry] = {}
        self._loaded = False

    @property
    def loaded(self) -> bool:
        return self._loaded

    def load(self, db: Session) -> list[AccountEntry]:
        rows = db.scalars(select(Account).order_by(Account.created_at.asc(), Account.id.asc())).all()
        entries = [_snapshot(r) for r in rows]
        self._by_id = {e.id: e for e in entries}
        self._active = [e for e in entries if e.is_active]
        self._loaded = True
        logger.debug("Loaded %d accounts (%d active)", len(entries), len(self._active))
        return list(self._active)

    def active(self) -> list[AccountEntry]:
        return list(self._active)

    def all(self) -> list[AccountEntry]:
        return list(self._by_id.values())

    def get(self, account_id: int | None) -> AccountEntry | None:
        if account_id is None:
            return None
        return self._by_id.get(int(account_id))

    def require_active(self, account_id: int | None) -> AccountEntry:
        entry = self.get(account_id)
        if entry is None or not entry.is_active:
            raise AccountNotFound(account_id)
        return entry

    def display_name(self, account_id: int | None) -> str:
        entry = self.get(account_id)
        if entry is None:
            return UNKNOWN_ACCOUNT_NAME
        return entry.name

    def add(self, db: Session, name: str, bank_number: str | None = None) -> AccountEntry:
        clean_name = (name or "").strip()
        if not clean_name:
            raise ValidationError("Nama akun harus diisi")

        row = Account(name=clean_name, bank_number=(bank_number or "").strip() or None, is_active=True)
        with persistence_guard(db, "menambah akun"):
            db.add(row)
            db.commit()
            db.refresh(row)

        logger.info("Added account %s (%s)", row.id, row.name)
        self.load(db)
        return _snapshot(row)

    def rename(self, db: Session, account_id: int, name: str, bank_number: str | None = None) -> AccountEntry:
        clean_name = (name or "").strip()
        if not clean_name:
            raise ValidationError("Nama akun harus diisi")

        row = db.get(Account, account_id)
        if row is None:
            raise AccountNotFound(account_id)

        with persistence_guard(db, "mengubah akun"):
            row.name = clean_name
            row.bank_number = (bank_number or "").strip() or None
            db.commit()
            db.refresh(row)

        self.load(db)
        return _snapshot(row)

    def deactivate(self, db: Session, account_id: int) -> AccountEntry:
        row = db.get(Account, account_id)
        if row is None:
            raise AccountNotFound(account_id)

        # Historical transactions keep their account_id.
        with persistence_guard(db, "menonaktifkan akun"):
            row.is_active = False
            db.commit()
            db.refresh(row)

        logger.info("Deactivated account %s (%s)", row.id, row.name)
        self.load(db)
        return _snapshot(row)
