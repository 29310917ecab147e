"""Category × account extract over a range of months."""

from __future__ import annotations

import csv
import io
import logging
from dataclasses import dataclass, field
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.orm import Session

from kasledger.core.datetime_utils import month_bounds, parse_month_key, previous_month_key
from kasledger.core.errors import ValidationError
from kasledger.models.transaction import Transaction
from kasledger.services.catalog import CatalogCache
from kasledger.services.monthly_balance import MonthlyBalanceStore, closing_balances

logger = logging.getLogger(__name__)

ZERO = Decimal("0")

BANK_MARKERS = ("bank",)
CASH_MARKERS = ("tunai", "cash")


def is_bank_account(name: str) -> bool:
    lowered = name.lower()
    return any(marker in lowered for marker in BANK_MARKERS)


def is_cash_account(name: str) -> bool:
    lowered = name.lower()
    return not is_bank_account(name) and any(marker in lowered for marker in CASH_MARKERS)


@dataclass(frozen=True)
class ReportColumn:
    account_id: int
    name: str

    @property
    def header(self) -> str:
        return f"Sum of {self.name}"


@dataclass
class ReportRow:
    category_id: str
    index: str
    level: int
    label: str
    cells: dict[int, Decimal] = field(default_factory=dict)
    total_kas_bank: Decimal = ZERO
    total_kas: Decimal = ZERO


@dataclass
class ReportTable:
    start_month: str
    end_month: str
    seed_month: str
    seeded: bool
    columns: list[ReportColumn]
    rows: list[ReportRow]
    column_totals: dict[int, Decimal]
    grand_total: Decimal

    def headers(self) -> list[str]:
        return ["Keterangan", *(c.header for c in self.columns), "Total Kas Bank", "Total Kas"]


class ExtractEngine:
    def __init__(self, catalog: CatalogCache, monthly_balances: MonthlyBalanceStore) -> None:
        self._catalog = catalog
        self._monthly = monthly_balances

    def build_extract(self, db: Session, start_month: str, end_month: str) -> ReportTable:
        for key in (start_month, end_month):
            try:
                parse_month_key(key)
            except ValueError:
                raise ValidationError(f"Format bulan tidak valid: {key} (gunakan YYYY-MM)")
        if start_month > end_month:
            raise ValidationError("Bulan awal tidak boleh setelah bulan akhir")

        columns = [ReportColumn(a.id, a.name) for a in self._catalog.accounts.active()]
        column_ids = {c.account_id for c in columns}

        # Categories come back from the tree already in numeric index order.
        rows: dict[str, ReportRow] = {}
        for node in self._catalog.categories.all():
            rows[node.id] = ReportRow(
                category_id=node.id,
                index=node.index,
                level=node.level,
                label=node.full_name,
                cells={c.account_id: ZERO for c in columns},
            )

        seed_key = previous_month_key(start_month)
        seed_record = self._monthly.get(db, seed_key)
        opening = self._catalog.categories.opening_category()
        seeded = False
        if seed_record is not None and opening is not None:
            for account_id, balance in closing_balances(seed_record).items():
                if account_id in column_ids:
                    rows[opening.id].cells[account_id] += balance
            seeded = True
        elif seed_record is None:
            logger.info("No monthly balance for %s; extract starts from zero", seed_key)
        else:
            logger.warning("No opening balance category; monthly balance %s not seeded", seed_key)

        first_day, _ = month_bounds(start_month)
        _, last_day = month_bounds(end_month)
        transactions = db.scalars(
            select(Transaction).where(Transaction.date >= first_day, Transaction.date <= last_day)
        ).all()
        for tx in transactions:
            row = rows.get(tx.category_id)
            if row is None or tx.account_id not in column_ids:
                continue
            # Amounts are stored already signed.
            row.cells[tx.account_id] += tx.amount

        column_totals = {c.account_id: ZERO for c in columns}
        for row in rows.values():
            bank = ZERO
            cash = ZERO
            for column in columns:
                amount = row.cells[column.account_id]
                column_totals[column.account_id] += amount
                if is_bank_account(column.name):
                    bank += amount
                elif is_cash_account(column.name):
                    cash += amount
            row.total_kas_bank = bank
            row.total_kas = bank + cash

        logger.info("Built extract %s..%s over %d transactions", start_month, end_month, len(transactions))
        return ReportTable(
            start_month=start_month,
            end_month=end_month,
            seed_month=seed_key,
            seeded=seeded,
            columns=columns,
            rows=list(rows.values()),
            column_totals=column_totals,
            grand_total=sum(column_totals.values(), ZERO),
        )


def _csv_number(value: Decimal):
    if value == value.to_integral_value():
        return int(value)
    return value


def render_csv(table: ReportTable) -> str:
    buffer = io.StringIO()
    csv.writer(buffer, lineterminator="\n").writerow(table.headers())
    # Decimal and int count as numeric, so only the label gets quoted.
    writer = csv.writer(buffer, quoting=csv.QUOTE_NONNUMERIC, lineterminator="\n")
    for row in table.rows:
        writer.writerow(
            [
                row.label,
                *(_csv_number(row.cells[c.account_id]) for c in table.columns),
                _csv_number(row.total_kas_bank),
                _csv_number(row.total_kas),
            ]
        )
    return buffer.getvalue()


def extract_filename(table: ReportTable) -> str:
    return f"ekstrak_data_{table.start_month}_{table.end_month}.csv"
