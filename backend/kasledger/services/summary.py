from __future__ import annotations

import datetime as dt
from dataclasses import dataclass, field
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.orm import Session

from kasledger.core.datetime_utils import month_key, parse_month_key
from kasledger.core.errors import ValidationError
from kasledger.models.transaction import Transaction
from kasledger.services.catalog import CatalogCache
from kasledger.services.category_tree import is_descendant_or_self

ZERO = Decimal("0")


@dataclass
class MonthGroup:
    key: str
    saldo_awal: Decimal
    saldo_akhir: Decimal
    # Newest first
    transactions: list[Transaction] = field(default_factory=list)


@dataclass
class LedgerSummary:
    current_saldo_kas: Decimal
    account_movement: dict[int, Decimal]
    months: list[MonthGroup]


@dataclass
class CategoryStatistics:
    category_id: str
    start: dt.date | None
    end: dt.date | None
    category_ids: list[str]
    account_totals: dict[int, Decimal]
    total: Decimal
    transaction_count: int


def _chain_order(tx: Transaction) -> tuple:
    return (tx.date, tx.created_at, tx.id)


def ledger_summary(
    db: Session,
    catalog: CatalogCache,
    *,
    month: str | None = None,
    category_id: str | None = None,
) -> LedgerSummary:
    """Home-page view: current Saldo Kas plus the filtered transactions grouped by month."""

    if month is not None:
        try:
            parse_month_key(month)
        except ValueError as exc:
            raise ValidationError(str(exc))
    category = catalog.categories.require(category_id) if category_id else None

    everything = sorted(db.scalars(select(Transaction)).all(), key=_chain_order)
    current = everything[-1].saldo_kas if everything else ZERO

    by_month: dict[str, list[Transaction]] = {}
    for tx in everything:
        by_month.setdefault(month_key(tx.date), []).append(tx)

    def keep(tx: Transaction) -> bool:
        if month is not None and month_key(tx.date) != month:
            return False
        if category is not None:
            node = catalog.categories.get(tx.category_id)
            if node is None or not is_descendant_or_self(node.index, category.index):
                return False
        return True

    filtered = [tx for tx in everything if keep(tx)]

    movement = {a.id: ZERO for a in catalog.accounts.active()}
    for tx in filtered:
        if tx.account_id in movement:
            movement[tx.account_id] += tx.amount

    groups: dict[str, MonthGroup] = {}
    for tx in filtered:
        key = month_key(tx.date)
        group = groups.get(key)
        if group is None:
            in_month = by_month[key]
            group = MonthGroup(
                key=key,
                saldo_awal=in_month[0].saldo_kas - in_month[0].amount,
                saldo_akhir=in_month[-1].saldo_kas,
            )
            groups[key] = group
        group.transactions.append(tx)

    months = [groups[key] for key in sorted(groups, reverse=True)]
    for group in months:
        group.transactions.reverse()

    return LedgerSummary(current_saldo_kas=current, account_movement=movement, months=months)


def category_statistics(
    db: Session,
    catalog: CatalogCache,
    category_id: str,
    *,
    start: dt.date | None = None,
    end: dt.date | None = None,
) -> CategoryStatistics:
    if start is not None and end is not None and start > end:
        raise ValidationError("Tanggal awal tidak boleh setelah tanggal akhir")

    root = catalog.categories.require(category_id)
    ids = [root.id, *(node.id for node in catalog.categories.descendants_of(root.id))]

    stmt = select(Transaction).where(Transaction.category_id.in_(ids))
    if start is not None:
        stmt = stmt.where(Transaction.date >= start)
    if end is not None:
        stmt = stmt.where(Transaction.date <= end)
    rows = db.scalars(stmt).all()

    totals: dict[int, Decimal] = {}
    for tx in rows:
        totals[int(tx.account_id)] = totals.get(int(tx.account_id), ZERO) + tx.amount

    return CategoryStatistics(
        category_id=root.id,
        start=start,
        end=end,
        category_ids=ids,
        account_totals=totals,
        total=sum(totals.values(), ZERO),
        transaction_count=len(rows),
    )
