from __future__ import annotations

import datetime as dt

from pydantic import BaseModel

from kasledger.schemas.common import Money


class ReportColumnOut(BaseModel):
    accountId: int
    name: str
    header: str


class ReportCellOut(BaseModel):
    accountId: int
    amount: Money


class ReportRowOut(BaseModel):
    categoryId: str
    index: str
    level: int
    label: str
    cells: list[ReportCellOut]
    totalKasBank: Money
    totalKas: Money


class ExtractOut(BaseModel):
    startMonth: str
    endMonth: str
    seedMonth: str
    seeded: bool
    columns: list[ReportColumnOut]
    rows: list[ReportRowOut]
    columnTotals: list[ReportCellOut]
    grandTotal: Money


class CategoryStatsOut(BaseModel):
    categoryId: str
    start: dt.date | None
    end: dt.date | None
    categoryIds: list[str]
    accountTotals: list[ReportCellOut]
    total: Money
    transactionCount: int
