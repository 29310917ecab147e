from __future__ import annotations

import datetime as dt
from decimal import Decimal

from pydantic import BaseModel, Field

from kasledger.schemas.common import Money


class TransactionCreate(BaseModel):
    name: str = Field(min_length=1, max_length=100)
    date: dt.date
    # Entered unsigned for income/expense; the category decides the sign
    amount: Decimal
    accountId: int
    categoryId: str = Field(min_length=1)
    description: str | None = Field(default=None, max_length=1000)


class TransactionOut(BaseModel):
    id: int
    name: str
    date: dt.date
    amount: Money
    accountId: int
    accountName: str
    categoryId: str
    categoryName: str | None
    description: str | None
    saldoKas: Money
    createdAt: dt.datetime
    createdBy: str | None
    createdByEmail: str | None
    createdByRole: str | None


class TransactionListOut(BaseModel):
    items: list[TransactionOut]
    total: int


class OpeningAccountOut(BaseModel):
    accountId: int
    name: str
    bankNumber: str | None


class OpeningBalancePrompt(BaseModel):
    monthKey: str
    accounts: list[OpeningAccountOut]


class OpeningBalancesIn(BaseModel):
    # accountId -> closing balance of the month before the first transaction
    balances: dict[int, Decimal] = Field(default_factory=dict)


class SubmissionOut(BaseModel):
    id: str
    state: str
    error: str | None = None
    transactionId: int | None = None
    saldoKas: Money | None = None
    openingBalance: OpeningBalancePrompt | None = None


class BalanceOut(BaseModel):
    saldoKas: Money


class ChainCheckOut(BaseModel):
    ok: bool
    brokenTransactionIds: list[int]


class MonthGroupOut(BaseModel):
    key: str
    saldoAwal: Money
    saldoAkhir: Money
    transactions: list[TransactionOut]


class AccountMovementOut(BaseModel):
    accountId: int
    name: str
    amount: Money


class LedgerSummaryOut(BaseModel):
    currentSaldoKas: Money
    accounts: list[AccountMovementOut]
    months: list[MonthGroupOut]
