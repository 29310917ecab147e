from __future__ import annotations

import datetime as dt
from collections.abc import Generator
from decimal import Decimal

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from kasledger.models import Account, Base, Category
from kasledger.services.catalog import CatalogCache
from kasledger.services.ledger import LedgerEngine, TransactionDraft
from kasledger.services.monthly_balance import MonthlyBalanceStore
from kasledger.services.submission import SubmissionCoordinator

TODAY = dt.date(2024, 3, 15)

CATEGORIES = [
    ("1", None, "Saldo Awal"),
    ("2", None, "Penerimaan"),
    ("2.1", "2", "Kolekte"),
    ("2.2", "2", "Sumbangan"),
    ("3", None, "Pengeluaran"),
    ("3.1", "3", "Listrik"),
    ("3.1.1", "3.1", "Listrik Kapel"),
]


class FakeClock:
    """Monotonic fake for created_at: each call is one second after the last."""

    def __init__(self, start: dt.datetime = dt.datetime(2024, 3, 15, 8, 0, 0)) -> None:
        self.current = start

    def __call__(self) -> dt.datetime:
        self.current = self.current + dt.timedelta(seconds=1)
        return self.current


@pytest.fixture
def session_factory() -> Generator[sessionmaker[Session], None, None]:
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield sessionmaker(bind=engine, autoflush=False, autocommit=False)
    engine.dispose()


@pytest.fixture
def file_session_factory(tmp_path) -> Generator[sessionmaker[Session], None, None]:
    """File-backed SQLite: every session gets its own connection."""

    engine = create_engine(
        f"sqlite:///{tmp_path / 'kas.db'}",
        connect_args={"check_same_thread": False, "timeout": 30},
    )
    Base.metadata.create_all(bind=engine)
    factory = sessionmaker(bind=engine, autoflush=False, autocommit=False)
    with factory() as session:
        seed_catalog(session)
    yield factory
    engine.dispose()


def seed_catalog(session: Session) -> None:
    for index, parent, name in CATEGORIES:
        session.add(
            Category(
                id=index,
                parent_id=parent,
                level=len(index.split(".")),
                index=index,
                name=name,
                full_name=f"{index}. {name}",
            )
        )
    session.add(Account(name="Kas Tunai", bank_number=None, created_at=dt.datetime(2024, 1, 1, 0, 0, 1)))
    session.add(Account(name="Kas Bank BRI", bank_number="0123456", created_at=dt.datetime(2024, 1, 1, 0, 0, 2)))
    session.commit()


@pytest.fixture
def db(session_factory: sessionmaker[Session]) -> Generator[Session, None, None]:
    session = session_factory()
    seed_catalog(session)
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def catalog(db: Session) -> CatalogCache:
    cache = CatalogCache()
    cache.reload(db)
    return cache


@pytest.fixture
def cash_id(catalog: CatalogCache) -> int:
    return catalog.accounts.active()[0].id


@pytest.fixture
def bank_id(catalog: CatalogCache) -> int:
    return catalog.accounts.active()[1].id


@pytest.fixture
def monthly(catalog: CatalogCache) -> MonthlyBalanceStore:
    return MonthlyBalanceStore(catalog)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def ledger(catalog: CatalogCache, monthly: MonthlyBalanceStore, clock: FakeClock) -> LedgerEngine:
    return LedgerEngine(catalog, monthly, clock=clock, today=lambda: TODAY)


@pytest.fixture
def coordinator(ledger: LedgerEngine) -> SubmissionCoordinator:
    return SubmissionCoordinator(ledger, pending_ttl_seconds=60)


def make_draft(
    account_id: int,
    category_id: str,
    amount: str | int,
    on: dt.date,
    name: str = "Transaksi",
) -> TransactionDraft:
    return TransactionDraft(
        name=name,
        date=on,
        amount=Decimal(str(amount)),
        account_id=account_id,
        category_id=category_id,
    )


@pytest.fixture
def seeded_ledger(db: Session, ledger: LedgerEngine, cash_id: int, bank_id: int) -> LedgerEngine:
    """Ledger bootstrapped with January 2024 opening balances: cash 200000, bank 500000."""

    ledger.record_transaction(
        db,
        make_draft(cash_id, "2.1", 50000, dt.date(2024, 2, 4), name="Kolekte Minggu I"),
        opening_balances={cash_id: Decimal("200000"), bank_id: Decimal("500000")},
    )
    return ledger
