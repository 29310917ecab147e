from __future__ import annotations

import datetime as dt
from decimal import Decimal

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from conftest import make_draft
from kasledger.core.errors import (
    AccountNotFound,
    CategoryNotFound,
    ConcurrencyConflict,
    OpeningBalanceRequired,
    PersistenceError,
    ValidationError,
)
from kasledger.models.ledger_head import LedgerHead
from kasledger.models.monthly_balance import MonthlyBalance
from kasledger.models.transaction import Transaction
from kasledger.services.catalog import CatalogCache
from kasledger.services.ledger import LedgerEngine, SubmissionState
from kasledger.services.monthly_balance import MonthlyBalanceStore, closing_balances


def _count(db: Session, model) -> int:
    return int(db.scalar(select(func.count()).select_from(model)))


def _chain(db: Session) -> list[Transaction]:
    return list(
        db.scalars(
            select(Transaction).order_by(Transaction.date, Transaction.created_at, Transaction.id)
        ).all()
    )


def test_first_transaction_requires_opening_balances(
    db: Session,
    ledger: LedgerEngine,
    cash_id: int,
    bank_id: int,
) -> None:
    draft = make_draft(cash_id, "3.1", 20000, dt.date(2024, 2, 5))

    with pytest.raises(OpeningBalanceRequired) as info:
        ledger.record_transaction(db, draft)

    assert info.value.month_key == "2024-01"
    assert [a["accountId"] for a in info.value.accounts] == [cash_id, bank_id]
    assert _count(db, Transaction) == 0
    assert _count(db, MonthlyBalance) == 0

    tx = ledger.record_transaction(
        db,
        draft,
        opening_balances={cash_id: Decimal("200000"), bank_id: Decimal("0")},
    )

    assert tx.amount == Decimal("-20000")
    assert tx.saldo_kas == Decimal("180000")

    setup = db.get(MonthlyBalance, "2024-01")
    assert setup.is_initial_setup is True
    assert setup.ending_balance == Decimal("200000")
    assert closing_balances(setup) == {cash_id: Decimal("200000"), bank_id: Decimal("0")}


def test_previous_month_snapshot_seeds_first_transaction(
    db: Session,
    ledger: LedgerEngine,
    monthly: MonthlyBalanceStore,
    cash_id: int,
) -> None:
    monthly.save_initial_setup(db, "2024-01", {cash_id: Decimal("1000")})
    db.commit()

    tx = ledger.record_transaction(db, make_draft(cash_id, "2.1", 500, dt.date(2024, 2, 1)))

    assert tx.saldo_kas == Decimal("1500")


def test_saldo_kas_chains_and_signs_follow_category(
    db: Session,
    catalog: CatalogCache,
    seeded_ledger: LedgerEngine,
    cash_id: int,
    bank_id: int,
) -> None:
    seeded_ledger.record_transaction(db, make_draft(cash_id, "3.1.1", 10000, dt.date(2024, 2, 10)))
    seeded_ledger.record_transaction(db, make_draft(bank_id, "2.2", 100000, dt.date(2024, 2, 12)))
    seeded_ledger.record_transaction(db, make_draft(bank_id, "3.1", 5000, dt.date(2024, 2, 12)))

    rows = _chain(db)
    assert [r.saldo_kas for r in rows] == [Decimal("750000"), Decimal("740000"), Decimal("840000"), Decimal("835000")]

    balance = Decimal("700000")
    for row in rows:
        balance += row.amount
        assert row.saldo_kas == balance
        kind = catalog.categories.kind_of(row.category_id).value
        if kind == "income":
            assert row.amount > 0
        elif kind == "expense":
            assert row.amount < 0

    assert seeded_ledger.current_balance(db) == Decimal("835000")
    assert seeded_ledger.verify_chain(db) == []


def test_opening_category_amount_is_passed_through(db: Session, seeded_ledger: LedgerEngine, cash_id: int) -> None:
    tx = seeded_ledger.record_transaction(db, make_draft(cash_id, "1", -1500, dt.date(2024, 2, 6)))
    assert tx.amount == Decimal("-1500")
    assert tx.saldo_kas == Decimal("748500")


def test_fractional_amounts_are_rounded_to_cents_before_chaining(
    db: Session, seeded_ledger: LedgerEngine, cash_id: int
) -> None:
    for day in (10, 11, 12):
        seeded_ledger.record_transaction(db, make_draft(cash_id, "2.1", "100.005", dt.date(2024, 2, day)))

    db.expire_all()
    assert [(r.amount, r.saldo_kas) for r in _chain(db)[1:]] == [
        (Decimal("100.01"), Decimal("750100.01")),
        (Decimal("100.01"), Decimal("750200.02")),
        (Decimal("100.01"), Decimal("750300.03")),
    ]
    assert seeded_ledger.verify_chain(db) == []


def test_opening_balances_are_rounded_to_cents(
    db: Session, ledger: LedgerEngine, cash_id: int, bank_id: int
) -> None:
    tx = ledger.record_transaction(
        db,
        make_draft(cash_id, "2.1", 50000, dt.date(2024, 2, 4)),
        opening_balances={cash_id: Decimal("200000.005"), bank_id: Decimal("0.004")},
    )

    db.expire_all()
    assert db.get(MonthlyBalance, "2024-01").ending_balance == Decimal("200000.01")
    assert db.get(Transaction, tx.id).saldo_kas == Decimal("250000.01")
    assert ledger.verify_chain(db) == []


@pytest.mark.parametrize(
    "changes",
    [
        {"name": "   "},
        {"name": "x" * 101},
        {"date": None},
        {"amount": Decimal("0")},
        {"amount": Decimal("-10")},
        {"amount": Decimal("0.004")},
        {"amount": Decimal("1e16")},
        {"category_id": ""},
    ],
)
def test_invalid_drafts_are_rejected_before_any_write(
    db: Session,
    seeded_ledger: LedgerEngine,
    cash_id: int,
    changes: dict,
) -> None:
    draft = make_draft(cash_id, "3.1", 1000, dt.date(2024, 2, 20))
    for field, value in changes.items():
        setattr(draft, field, value)

    with pytest.raises(ValidationError):
        seeded_ledger.record_transaction(db, draft)
    assert _count(db, Transaction) == 1


def test_unknown_category_aborts_without_partial_state(
    db: Session,
    seeded_ledger: LedgerEngine,
    cash_id: int,
) -> None:
    before = db.get(MonthlyBalance, "2024-02").ending_balance

    with pytest.raises(CategoryNotFound):
        seeded_ledger.record_transaction(db, make_draft(cash_id, "9.9", 1000, dt.date(2024, 2, 20)))

    assert _count(db, Transaction) == 1
    assert db.get(MonthlyBalance, "2024-02").ending_balance == before
    assert db.get(LedgerHead, LedgerHead.LEDGER_ID).sequence == 1


def test_inactive_account_is_rejected(
    db: Session,
    catalog: CatalogCache,
    seeded_ledger: LedgerEngine,
    bank_id: int,
) -> None:
    catalog.accounts.deactivate(db, bank_id)
    with pytest.raises(AccountNotFound):
        seeded_ledger.record_transaction(db, make_draft(bank_id, "2.1", 1000, dt.date(2024, 2, 20)))


def test_transactions_in_initial_setup_month_are_rejected(
    db: Session,
    seeded_ledger: LedgerEngine,
    cash_id: int,
) -> None:
    with pytest.raises(ValidationError):
        seeded_ledger.record_transaction(db, make_draft(cash_id, "2.1", 1000, dt.date(2024, 1, 31)))
    assert _count(db, Transaction) == 1


def test_monthly_snapshot_tracks_opening_and_movement(
    db: Session,
    seeded_ledger: LedgerEngine,
    cash_id: int,
    bank_id: int,
) -> None:
    seeded_ledger.record_transaction(db, make_draft(cash_id, "3.1", 10000, dt.date(2024, 2, 10)))
    seeded_ledger.record_transaction(db, make_draft(bank_id, "2.2", 100000, dt.date(2024, 2, 12)))

    record = db.get(MonthlyBalance, "2024-02")
    assert record.starting_balance == Decimal("700000")
    assert record.ending_balance == Decimal("840000")
    assert record.is_initial_setup is False
    assert record.auto_saved is False

    by_account = {ab.account_id: ab for ab in record.account_balances}
    assert by_account[cash_id].opening == Decimal("200000")
    assert by_account[cash_id].total == Decimal("40000")
    assert by_account[bank_id].opening == Decimal("500000")
    assert by_account[bank_id].total == Decimal("100000")
    assert sum(closing_balances(record).values()) == record.ending_balance


def test_recompute_is_idempotent(
    db: Session,
    monthly: MonthlyBalanceStore,
    seeded_ledger: LedgerEngine,
    cash_id: int,
    bank_id: int,
) -> None:
    seeded_ledger.record_transaction(db, make_draft(bank_id, "3.1", 7500, dt.date(2024, 2, 14)))

    first = monthly.recompute(db, "2024-02")
    snapshot = (first.ending_balance, [(ab.account_id, ab.opening, ab.total) for ab in first.account_balances])
    db.commit()

    second = monthly.recompute(db, "2024-02")
    db.commit()

    assert (second.ending_balance, [(ab.account_id, ab.opening, ab.total) for ab in second.account_balances]) == snapshot


def test_back_dated_entry_rechains_later_transactions(
    db: Session,
    seeded_ledger: LedgerEngine,
    cash_id: int,
    bank_id: int,
) -> None:
    seeded_ledger.record_transaction(db, make_draft(cash_id, "3.1", 30000, dt.date(2024, 2, 20)))
    march = seeded_ledger.record_transaction(db, make_draft(bank_id, "2.1", 1000, dt.date(2024, 3, 2)))

    late = seeded_ledger.record_transaction(db, make_draft(bank_id, "2.2", 10000, dt.date(2024, 2, 10)))

    assert late.saldo_kas == Decimal("760000")
    assert [r.saldo_kas for r in _chain(db)] == [
        Decimal("750000"),
        Decimal("760000"),
        Decimal("730000"),
        Decimal("731000"),
    ]
    assert seeded_ledger.verify_chain(db) == []
    assert db.get(MonthlyBalance, "2024-02").ending_balance == Decimal("730000")

    march_record = db.get(MonthlyBalance, "2024-03")
    assert march_record.ending_balance == db.get(Transaction, march.id).saldo_kas
    assert {ab.account_id: ab.opening for ab in march_record.account_balances}[bank_id] == Decimal("510000")


def test_entry_before_every_transaction_uses_chain_seed(
    db: Session,
    seeded_ledger: LedgerEngine,
    cash_id: int,
) -> None:
    tx = seeded_ledger.record_transaction(db, make_draft(cash_id, "3.1", 1000, dt.date(2024, 2, 1)))

    assert tx.saldo_kas == Decimal("699000")
    assert [r.saldo_kas for r in _chain(db)] == [Decimal("699000"), Decimal("749000")]


def test_missing_previous_month_is_backfilled(
    db: Session,
    monthly: MonthlyBalanceStore,
    seeded_ledger: LedgerEngine,
    cash_id: int,
) -> None:
    # Simulate a reconciliation that never happened for February.
    db.delete(db.get(MonthlyBalance, "2024-02"))
    db.commit()

    seeded_ledger.record_transaction(db, make_draft(cash_id, "3.1", 1000, dt.date(2024, 3, 1)))

    february = db.get(MonthlyBalance, "2024-02")
    assert february is not None
    assert february.auto_saved is True
    assert february.ending_balance == Decimal("750000")

    march = db.get(MonthlyBalance, "2024-03")
    assert {ab.account_id: ab.opening for ab in march.account_balances}[cash_id] == Decimal("250000")


def test_reconciliation_failure_keeps_transaction_and_heals_later(
    db: Session,
    monthly: MonthlyBalanceStore,
    seeded_ledger: LedgerEngine,
    cash_id: int,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    def broken(*args, **kwargs):
        raise SQLAlchemyError("store unavailable")

    monkeypatch.setattr(monthly, "reconcile_from", broken)
    with pytest.raises(PersistenceError) as info:
        seeded_ledger.record_transaction(db, make_draft(cash_id, "3.1", 1000, dt.date(2024, 2, 15)))

    stored = db.get(Transaction, info.value.transaction_id)
    assert stored.saldo_kas == Decimal("749000")
    assert db.get(MonthlyBalance, "2024-02").ending_balance == Decimal("750000")

    monkeypatch.undo()
    seeded_ledger.record_transaction(db, make_draft(cash_id, "3.1", 1000, dt.date(2024, 2, 16)))
    assert db.get(MonthlyBalance, "2024-02").ending_balance == Decimal("748000")


def test_concurrent_head_move_is_retried(
    db: Session,
    seeded_ledger: LedgerEngine,
    cash_id: int,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    real_read_head = seeded_ledger._read_head
    calls = {"n": 0}

    def stale_once(session: Session) -> int:
        calls["n"] += 1
        value = real_read_head(session)
        return value - 1 if calls["n"] == 1 else value

    monkeypatch.setattr(seeded_ledger, "_read_head", stale_once)
    tx = seeded_ledger.record_transaction(db, make_draft(cash_id, "2.1", 1000, dt.date(2024, 2, 15)))

    assert calls["n"] == 2
    assert tx.saldo_kas == Decimal("751000")
    assert db.get(LedgerHead, LedgerHead.LEDGER_ID).sequence == 2


def test_exhausted_retries_raise_conflict(
    db: Session,
    seeded_ledger: LedgerEngine,
    cash_id: int,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    monkeypatch.setattr(seeded_ledger, "_read_head", lambda session: 99)

    with pytest.raises(ConcurrencyConflict):
        seeded_ledger.record_transaction(db, make_draft(cash_id, "2.1", 1000, dt.date(2024, 2, 15)))
    assert _count(db, Transaction) == 1


def test_state_callback_walks_the_submission_states(db: Session, seeded_ledger: LedgerEngine, cash_id: int) -> None:
    states: list[SubmissionState] = []
    seeded_ledger.record_transaction(
        db,
        make_draft(cash_id, "2.1", 1000, dt.date(2024, 2, 15)),
        on_state=states.append,
    )
    assert states == [
        SubmissionState.VALIDATING,
        SubmissionState.RESOLVING_BALANCE,
        SubmissionState.PERSISTING,
        SubmissionState.BALANCE_RECONCILING,
        SubmissionState.COMMITTED,
    ]


def test_verify_chain_reports_broken_rows(db: Session, seeded_ledger: LedgerEngine, cash_id: int) -> None:
    second = seeded_ledger.record_transaction(db, make_draft(cash_id, "2.1", 1000, dt.date(2024, 2, 15)))
    row = db.get(Transaction, second.id)
    row.saldo_kas = Decimal("1")
    db.commit()

    assert seeded_ledger.verify_chain(db) == [second.id]
