from __future__ import annotations

import datetime as dt
import threading
from decimal import Decimal

import pytest
from sqlalchemy import select
from sqlalchemy.orm import Session, sessionmaker

from conftest import TODAY, FakeClock, make_draft
from kasledger.models.ledger_head import LedgerHead
from kasledger.models.monthly_balance import MonthlyBalance
from kasledger.models.transaction import Transaction
from kasledger.services.catalog import CatalogCache
from kasledger.services.ledger import LedgerEngine
from kasledger.services.monthly_balance import MonthlyBalanceStore

CASH_ID = 1
BANK_ID = 2
PER_WRITER = 8


@pytest.fixture
def file_catalog(file_session_factory: sessionmaker[Session]) -> CatalogCache:
    cache = CatalogCache()
    with file_session_factory() as session:
        cache.reload(session)
    return cache


def _engine(catalog: CatalogCache, clock: FakeClock) -> LedgerEngine:
    return LedgerEngine(catalog, MonthlyBalanceStore(catalog), clock=clock, today=lambda: TODAY)


def _bootstrap(factory: sessionmaker[Session], ledger: LedgerEngine) -> None:
    with factory() as session:
        ledger.record_transaction(
            session,
            make_draft(CASH_ID, "2.1", 50000, dt.date(2024, 2, 4), name="Kolekte Minggu I"),
            opening_balances={CASH_ID: Decimal("200000"), BANK_ID: Decimal("500000")},
        )


def test_parallel_writers_keep_a_single_chain(
    file_session_factory: sessionmaker[Session], file_catalog: CatalogCache
) -> None:
    ledger = _engine(file_catalog, FakeClock())
    _bootstrap(file_session_factory, ledger)

    start = threading.Barrier(2)
    errors: list[Exception] = []

    def writer(account_id: int, amount: int) -> None:
        start.wait()
        try:
            with file_session_factory() as session:
                for i in range(PER_WRITER):
                    draft = make_draft(account_id, "2.2", amount, dt.date(2024, 2, 5 + i), name=f"Sumbangan {i}")
                    ledger.record_transaction(session, draft)
        except Exception as exc:  # noqa: BLE001
            errors.append(exc)

    threads = [
        threading.Thread(target=writer, args=(CASH_ID, 1000)),
        threading.Thread(target=writer, args=(BANK_ID, 10)),
    ]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=60)

    assert errors == []
    with file_session_factory() as db:
        rows = db.scalars(select(Transaction).order_by(Transaction.date, Transaction.created_at, Transaction.id)).all()
        saldos = [row.saldo_kas for row in rows]

        assert len(rows) == 2 * PER_WRITER + 1
        assert ledger.verify_chain(db) == []
        assert len(set(saldos)) == len(saldos)
        assert saldos[-1] == Decimal("750000") + PER_WRITER * Decimal("1010")
        assert db.get(LedgerHead, LedgerHead.LEDGER_ID).sequence == 2 * PER_WRITER + 1
        assert db.get(MonthlyBalance, "2024-02").ending_balance == saldos[-1]


def test_writer_from_another_engine_moves_the_head_and_forces_a_retry(
    file_session_factory: sessionmaker[Session],
    file_catalog: CatalogCache,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    clock = FakeClock()
    ledger_a = _engine(file_catalog, clock)
    ledger_b = _engine(file_catalog, clock)
    _bootstrap(file_session_factory, ledger_a)

    real_read_head = ledger_a._read_head
    calls = {"n": 0}

    with file_session_factory() as session_a, file_session_factory() as session_b:

        def read_then_lose_race(session: Session) -> int:
            calls["n"] += 1
            sequence = real_read_head(session)
            if calls["n"] == 1:
                ledger_b.record_transaction(session_b, make_draft(BANK_ID, "2.2", 1000, dt.date(2024, 2, 10)))
            return sequence

        monkeypatch.setattr(ledger_a, "_read_head", read_then_lose_race)
        tx = ledger_a.record_transaction(session_a, make_draft(CASH_ID, "2.1", 500, dt.date(2024, 2, 11)))

        assert calls["n"] == 2
        assert tx.saldo_kas == Decimal("751500")

    with file_session_factory() as db:
        assert ledger_a.verify_chain(db) == []
        assert db.get(LedgerHead, LedgerHead.LEDGER_ID).sequence == 3
        assert db.get(MonthlyBalance, "2024-02").ending_balance == Decimal("751500")
