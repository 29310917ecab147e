"""Per-month Saldo Kas snapshots.

Each ``monthly_balances`` row is keyed ``YYYY-MM`` and holds the month's
Saldo Awal / Saldo Akhir plus one ``monthly_account_balances`` row per
account where ``total`` is the account's net movement within the month and
``opening`` is the balance carried in from the nearest earlier snapshot.
An account's closing balance is therefore ``opening + total``.

The initial-setup snapshot written from the opening-balance prompt stores the
entered balances as ``total`` with ``opening = 0``. The ledger refuses
transactions dated in or before that month, so it is never recomputed from
transactions.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from datetime import date
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.orm import Session

from kasledger.core.datetime_utils import month_bounds, month_key, parse_month_key, previous_month_key, utcnow_naive
from kasledger.core.errors import AccountNotFound
from kasledger.models.monthly_balance import MonthlyAccountBalance, MonthlyBalance
from kasledger.models.transaction import Transaction
from kasledger.services.catalog import CatalogCache
from kasledger.services.category_tree import signed_amount

logger = logging.getLogger(__name__)

ZERO = Decimal("0")


def closing_balances(record: MonthlyBalance | None) -> dict[int, Decimal]:
    if record is None:
        return {}
    return {int(ab.account_id): (ab.opening or ZERO) + (ab.total or ZERO) for ab in record.account_balances}


class MonthlyBalanceStore:
    def __init__(self, catalog: CatalogCache) -> None:
        self._catalog = catalog

    def get(self, db: Session, key: str) -> MonthlyBalance | None:
        parse_month_key(key)
        return db.get(MonthlyBalance, key)

    def list(self, db: Session, start: str | None = None, end: str | None = None) -> list[MonthlyBalance]:
        stmt = select(MonthlyBalance)
        if start is not None:
            parse_month_key(start)
            stmt = stmt.where(MonthlyBalance.key >= start)
        if end is not None:
            parse_month_key(end)
            stmt = stmt.where(MonthlyBalance.key <= end)
        return list(db.scalars(stmt.order_by(MonthlyBalance.key.asc())).all())

    def latest_initial_setup_key(self, db: Session) -> str | None:
        return db.scalar(
            select(MonthlyBalance.key)
            .where(MonthlyBalance.is_initial_setup == True)  # noqa: E712
            .order_by(MonthlyBalance.key.desc())
            .limit(1)
        )

    def _get_or_create(self, db: Session, key: str) -> MonthlyBalance:
        record = db.get(MonthlyBalance, key)
        if record is None:
            year, month = parse_month_key(key)
            record = MonthlyBalance(key=key, year=year, month=month, account_balances=[])
            db.add(record)
        return record

    def _carried_balances(self, db: Session, key: str) -> dict[int, Decimal]:
        previous = db.scalars(
            select(MonthlyBalance).where(MonthlyBalance.key < key).order_by(MonthlyBalance.key.desc()).limit(1)
        ).first()
        return closing_balances(previous)

    def _write_account_balances(self, record: MonthlyBalance, values: Mapping[int, tuple[Decimal, Decimal]]) -> None:
        accounts = self._catalog.accounts
        existing = {int(ab.account_id): ab for ab in record.account_balances}

        for account_id, ab in existing.items():
            if account_id not in values:
                record.account_balances.remove(ab)

        for account_id, (opening, total) in sorted(values.items()):
            ab = existing.get(account_id)
            if ab is None:
                ab = MonthlyAccountBalance(month_key=record.key, account_id=account_id)
                record.account_balances.append(ab)
            ab.name = accounts.display_name(account_id)
            ab.opening = opening
            ab.total = total

    def save_initial_setup(self, db: Session, key: str, balances: Mapping[int, Decimal]) -> MonthlyBalance:
        """Record human-entered closing balances for ``key``, one per active account."""

        active = self._catalog.accounts.active()
        active_ids = {a.id for a in active}
        for account_id in balances:
            if int(account_id) not in active_ids:
                raise AccountNotFound(account_id)

        entered = {a.id: Decimal(balances.get(a.id, ZERO)) for a in active}
        total = sum(entered.values(), ZERO)

        record = self._get_or_create(db, key)
        record.starting_balance = total
        record.ending_balance = total
        record.is_initial_setup = True
        record.auto_saved = False
        record.last_updated = utcnow_naive()
        self._write_account_balances(record, {aid: (ZERO, value) for aid, value in entered.items()})
        db.flush()

        logger.info("Initial balance %s saved for %s", total, key)
        return record

    def recompute(self, db: Session, key: str, *, auto_saved: bool = False) -> MonthlyBalance | None:
        """Rebuild the snapshot for ``key`` from its transactions.

        Returns the existing record untouched (or None) when the month has no
        transactions. Running it twice over the same transactions yields the
        same snapshot.
        """

        start, end = month_bounds(key)
        rows = db.scalars(
            select(Transaction)
            .where(Transaction.date >= start, Transaction.date <= end)
            .order_by(Transaction.date.asc(), Transaction.created_at.asc(), Transaction.id.asc())
        ).all()
        if not rows:
            return db.get(MonthlyBalance, key)

        categories = self._catalog.categories
        movement: dict[int, Decimal] = {}
        for row in rows:
            category = categories.get(row.category_id)
            amount = signed_amount(category.index, row.amount) if category else row.amount
            movement[int(row.account_id)] = movement.get(int(row.account_id), ZERO) + amount

        record = db.get(MonthlyBalance, key)
        created = record is None
        record = self._get_or_create(db, key)

        carried = self._carried_balances(db, key)
        values = {aid: (carried.get(aid, ZERO), movement.get(aid, ZERO)) for aid in set(movement) | set(carried)}

        first, last = rows[0], rows[-1]
        record.starting_balance = first.saldo_kas - first.amount
        record.ending_balance = last.saldo_kas
        record.last_updated = utcnow_naive()
        if created and auto_saved:
            record.auto_saved = True
        self._write_account_balances(record, values)
        db.flush()

        logger.info("Monthly balance %s: Saldo Akhir %s", key, record.ending_balance)
        return record

    def reconcile_from(self, db: Session, key: str) -> list[MonthlyBalance]:
        """Recompute ``key`` and every later existing snapshot, oldest first."""

        result: list[MonthlyBalance] = []
        record = self.recompute(db, key)
        if record is not None:
            result.append(record)

        later_keys = db.scalars(
            select(MonthlyBalance.key).where(MonthlyBalance.key > key).order_by(MonthlyBalance.key.asc())
        ).all()
        for later_key in later_keys:
            record = self.recompute(db, later_key)
            if record is not None:
                result.append(record)
        return result

    def backfill_previous_month(self, db: Session, today: date) -> MonthlyBalance | None:
        """Write the snapshot of the month before ``today`` if it is missing."""

        key = previous_month_key(month_key(today))
        if db.get(MonthlyBalance, key) is not None:
            return None

        record = self.recompute(db, key, auto_saved=True)
        if record is not None:
            logger.info("Auto-saved previous month balance for %s: %s", key, record.ending_balance)
        return record
