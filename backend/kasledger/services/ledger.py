"""Running-balance (Saldo Kas) engine.

Transactions form one chain in (date, created_at, id) order; every
transaction persists the Saldo Kas after it is applied. Writers are
serialised in-process by a lock and across processes by a compare-and-swap
on ``ledger_heads.sequence``.
"""

from __future__ import annotations

import datetime as dt
import logging
import threading
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from enum import Enum

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from kasledger.core.datetime_utils import month_key, previous_month_key, utcnow_naive
from kasledger.core.errors import (
    ConcurrencyConflict,
    LedgerError,
    OpeningBalanceRequired,
    PersistenceError,
    ValidationError,
)
from kasledger.models.ledger_head import LedgerHead
from kasledger.models.transaction import Transaction
from kasledger.services.account_registry import AccountEntry
from kasledger.services.catalog import CatalogCache
from kasledger.services.category_tree import CategoryKind, CategoryNode, signed_amount
from kasledger.services.monthly_balance import MonthlyBalanceStore

logger = logging.getLogger(__name__)

ZERO = Decimal("0")
CENT = Decimal("0.01")
# Numeric(18, 2) holds 16 integer digits.
MAX_AMOUNT = Decimal("1e16")
MAX_NAME_LENGTH = 100


class SubmissionState(str, Enum):
    DRAFT = "draft"
    VALIDATING = "validating"
    RESOLVING_BALANCE = "resolving_balance"
    AWAITING_OPENING_BALANCE = "awaiting_opening_balance"
    PERSISTING = "persisting"
    BALANCE_RECONCILING = "balance_reconciling"
    COMMITTED = "committed"
    FAILED = "failed"


StateCallback = Callable[[SubmissionState], None]


@dataclass
class TransactionDraft:
    name: str
    date: dt.date | None
    amount: Decimal
    account_id: int | None
    category_id: str | None
    description: str | None = None
    created_by: str | None = None
    created_by_email: str | None = None
    created_by_role: str | None = None


@dataclass(frozen=True)
class PreviousBalance:
    amount: Decimal
    # 'transaction' | 'chain_seed' | 'monthly_balance' | 'initial_setup'
    source: str


class _HeadMoved(Exception):
    pass


def _ordered(stmt, *, descending: bool = False):
    if descending:
        return stmt.order_by(Transaction.date.desc(), Transaction.created_at.desc(), Transaction.id.desc())
    return stmt.order_by(Transaction.date.asc(), Transaction.created_at.asc(), Transaction.id.asc())


def _to_decimal(value, field: str) -> Decimal:
    """Parse an amount and round it to whole cents, the precision the columns store."""

    try:
        result = Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise ValidationError(f"{field} harus berupa angka")
    if not result.is_finite():
        raise ValidationError(f"{field} harus berupa angka")
    if abs(result) >= MAX_AMOUNT:
        raise ValidationError(f"{field} terlalu besar")
    return result.quantize(CENT, rounding=ROUND_HALF_UP)


class LedgerEngine:
    def __init__(
        self,
        catalog: CatalogCache,
        monthly_balances: MonthlyBalanceStore,
        *,
        clock: Callable[[], dt.datetime] = utcnow_naive,
        today: Callable[[], dt.date] | None = None,
        max_retries: int = 3,
    ) -> None:
        self._catalog = catalog
        self._monthly = monthly_balances
        self._clock = clock
        self._today = today or (lambda: clock().date())
        self._max_retries = max(1, max_retries)
        self._lock = threading.RLock()

    def validate(self, draft: TransactionDraft) -> tuple[CategoryNode, AccountEntry, Decimal]:
        """Check the draft against the catalog; returns (category, account, signed amount)."""

        name = (draft.name or "").strip()
        if not name:
            raise ValidationError("Nama transaksi harus diisi")
        if len(name) > MAX_NAME_LENGTH:
            raise ValidationError(f"Nama transaksi maksimal {MAX_NAME_LENGTH} karakter")
        if draft.date is None:
            raise ValidationError("Tanggal transaksi harus diisi")
        if draft.account_id is None:
            raise ValidationError("Akun harus dipilih")
        if not draft.category_id:
            raise ValidationError("Kategori transaksi harus dipilih")

        category = self._catalog.categories.require(draft.category_id)
        account = self._catalog.accounts.require_active(draft.account_id)

        amount = _to_decimal(draft.amount, "Jumlah transaksi")
        if category.kind in (CategoryKind.INCOME, CategoryKind.EXPENSE) and amount <= 0:
            raise ValidationError("Jumlah transaksi harus lebih dari 0")
        if amount == 0:
            raise ValidationError("Jumlah transaksi tidak boleh 0")

        return category, account, signed_amount(category.index, amount)

    def normalize_opening_balances(self, balances: Mapping) -> dict[int, Decimal]:
        active_ids = {a.id for a in self._catalog.accounts.active()}
        result: dict[int, Decimal] = {}
        for key, value in balances.items():
            try:
                account_id = int(key)
            except (TypeError, ValueError):
                raise ValidationError(f"Akun tidak valid: {key}")
            if account_id not in active_ids:
                raise ValidationError(f"Akun tidak aktif atau tidak ditemukan: {account_id}")
            result[account_id] = ZERO if value is None else _to_decimal(value, "Saldo awal")
        return result

    def current_balance(self, db: Session) -> Decimal:
        latest = db.scalars(_ordered(select(Transaction), descending=True).limit(1)).first()
        return latest.saldo_kas if latest is not None else ZERO

    def record_transaction(
        self,
        db: Session,
        draft: TransactionDraft,
        *,
        opening_balances: Mapping[int, Decimal] | None = None,
        on_state: StateCallback | None = None,
    ) -> Transaction:
        """Sign, chain, persist and reconcile one transaction.

        Raises OpeningBalanceRequired when nothing precedes the transaction and
        ``opening_balances`` was not supplied; nothing is written in that case.
        """

        notify = on_state or (lambda _state: None)

        notify(SubmissionState.VALIDATING)
        category, _account, amount = self.validate(draft)
        balances = self.normalize_opening_balances(opening_balances) if opening_balances is not None else None

        with self._lock:
            for attempt in range(1, self._max_retries + 1):
                try:
                    tx, previous, shifted = self._write(db, draft, category, amount, balances, notify)
                    break
                except _HeadMoved:
                    db.rollback()
                    logger.warning("Ledger head moved while writing (attempt %d/%d); retrying", attempt, self._max_retries)
                except (LedgerError, OpeningBalanceRequired):
                    db.rollback()
                    raise
                except SQLAlchemyError as exc:
                    db.rollback()
                    logger.exception("Failed to persist transaction")
                    raise PersistenceError("Terjadi kesalahan saat menyimpan transaksi") from exc
            else:
                raise ConcurrencyConflict("Transaksi lain sedang disimpan; silakan coba lagi")

            logger.info(
                "Transaction %s committed: %s %s, previous balance %s (%s) -> Saldo Kas %s",
                tx.id,
                category.full_name,
                tx.amount,
                previous.amount,
                previous.source,
                tx.saldo_kas,
            )

            notify(SubmissionState.BALANCE_RECONCILING)
            self._reconcile(db, tx, shifted)

        notify(SubmissionState.COMMITTED)
        return tx

    def _write(
        self,
        db: Session,
        draft: TransactionDraft,
        category: CategoryNode,
        amount: Decimal,
        opening_balances: Mapping[int, Decimal] | None,
        notify: StateCallback,
    ) -> tuple[Transaction, PreviousBalance, int]:
        notify(SubmissionState.RESOLVING_BALANCE)
        sequence = self._read_head(db)

        setup_key = self._monthly.latest_initial_setup_key(db)
        if setup_key is not None and month_key(draft.date) <= setup_key:
            raise ValidationError(f"Tanggal transaksi harus setelah bulan saldo awal ({setup_key})")

        previous = self._previous_balance(db, draft.date, opening_balances)
        saldo_kas = previous.amount + amount

        notify(SubmissionState.PERSISTING)
        tx = Transaction(
            name=draft.name.strip(),
            date=draft.date,
            amount=amount,
            account_id=int(draft.account_id),
            category_id=category.id,
            description=(draft.description or "").strip() or None,
            saldo_kas=saldo_kas,
            created_at=self._clock(),
            created_by=draft.created_by,
            created_by_email=draft.created_by_email,
            created_by_role=draft.created_by_role,
        )
        db.add(tx)
        db.flush()

        shifted = self._shift_later(db, tx, amount)
        self._advance_head(db, sequence, tx.id)
        db.commit()

        return tx, previous, shifted

    def _read_head(self, db: Session) -> int:
        head = db.get(LedgerHead, LedgerHead.LEDGER_ID)
        if head is not None:
            return int(head.sequence)
        try:
            db.add(LedgerHead(id=LedgerHead.LEDGER_ID, sequence=0))
            db.flush()
        except IntegrityError:
            # Another writer created it first.
            raise _HeadMoved()
        return 0

    def _advance_head(self, db: Session, expected: int, transaction_id: int) -> None:
        result = db.execute(
            update(LedgerHead)
            .where(LedgerHead.id == LedgerHead.LEDGER_ID, LedgerHead.sequence == expected)
            .values(sequence=expected + 1, last_transaction_id=transaction_id)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise _HeadMoved()

    def _previous_balance(
        self,
        db: Session,
        on_date: dt.date,
        opening_balances: Mapping[int, Decimal] | None,
    ) -> PreviousBalance:
        prior = db.scalars(
            _ordered(select(Transaction).where(Transaction.date <= on_date), descending=True).limit(1)
        ).first()
        if prior is not None:
            return PreviousBalance(prior.saldo_kas, "transaction")

        first = db.scalars(_ordered(select(Transaction)).limit(1)).first()
        if first is not None:
            # Earlier than every existing entry: start from the chain's seed.
            return PreviousBalance(first.saldo_kas - first.amount, "chain_seed")

        prev_key = previous_month_key(month_key(on_date))
        record = self._monthly.get(db, prev_key)
        if record is not None:
            logger.info("Found previous month balance for %s: %s", prev_key, record.ending_balance)
            return PreviousBalance(record.ending_balance, "monthly_balance")

        if opening_balances is None:
            logger.info("No balance found for previous month %s; opening balance required", prev_key)
            raise OpeningBalanceRequired(
                prev_key,
                [
                    {"accountId": a.id, "name": a.name, "bankNumber": a.bank_number}
                    for a in self._catalog.accounts.active()
                ],
            )

        record = self._monthly.save_initial_setup(db, prev_key, opening_balances)
        return PreviousBalance(record.ending_balance, "initial_setup")

    def _shift_later(self, db: Session, tx: Transaction, amount: Decimal) -> int:
        # The new row carries the newest created_at, so only later dates follow it.
        later = db.scalars(_ordered(select(Transaction).where(Transaction.date > tx.date))).all()
        for row in later:
            row.saldo_kas = row.saldo_kas + amount
        if later:
            db.flush()
            logger.warning(
                "Back-dated transaction %s on %s shifted Saldo Kas of %d later transactions",
                tx.id,
                tx.date,
                len(later),
            )
        return len(later)

    def _reconcile(self, db: Session, tx: Transaction, shifted: int) -> None:
        tx_id = int(tx.id)
        tx_month = month_key(tx.date)
        try:
            self._monthly.reconcile_from(db, tx_month)
            backfilled = self._monthly.backfill_previous_month(db, self._today())
            if backfilled is not None:
                # Later snapshots carried balances from before the backfilled month.
                self._monthly.reconcile_from(db, backfilled.key)
            db.commit()
        except SQLAlchemyError as exc:
            db.rollback()
            logger.exception("Monthly balance reconciliation failed after transaction %s", tx_id)
            raise PersistenceError(
                "Transaksi tersimpan, tetapi saldo bulanan gagal diperbarui",
                transaction_id=tx_id,
            ) from exc
        if shifted:
            logger.info("Reconciled monthly balances from %s after back-dated entry", tx_month)

    def verify_chain(self, db: Session) -> list[int]:
        """Ids whose Saldo Kas does not extend the previous one by their amount."""

        rows = db.scalars(_ordered(select(Transaction))).all()
        if not rows:
            return []

        seed_record = self._monthly.get(db, previous_month_key(month_key(rows[0].date)))
        expected = seed_record.ending_balance if seed_record is not None else rows[0].saldo_kas - rows[0].amount

        broken: list[int] = []
        for row in rows:
            expected = expected + row.amount
            if row.saldo_kas != expected:
                broken.append(int(row.id))
                expected = row.saldo_kas
        return broken
