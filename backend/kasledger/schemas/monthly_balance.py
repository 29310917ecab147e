from __future__ import annotations

import datetime as dt

from pydantic import BaseModel

from kasledger.schemas.common import Money


class AccountBalanceOut(BaseModel):
    accountId: int
    name: str
    opening: Money
    total: Money
    closing: Money


class MonthlyBalanceOut(BaseModel):
    key: str
    year: int
    month: int
    startingBalance: Money | None
    endingBalance: Money
    lastUpdated: dt.datetime | None
    isInitialSetup: bool
    autoSaved: bool
    accountBalances: list[AccountBalanceOut]
