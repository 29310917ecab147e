from __future__ import annotations

import datetime as dt

from fastapi import APIRouter, Depends
from fastapi.responses import Response
from sqlalchemy.orm import Session

from kasledger.api.deps import get_catalog, get_current_user, get_db, get_extract
from kasledger.models.user import User
from kasledger.schemas.report import CategoryStatsOut, ExtractOut, ReportCellOut, ReportColumnOut, ReportRowOut
from kasledger.services.catalog import CatalogCache
from kasledger.services.extract import ExtractEngine, ReportTable, extract_filename, render_csv
from kasledger.services.summary import category_statistics

router = APIRouter(prefix="/reports", tags=["reports"])


def extract_out(table: ReportTable) -> ExtractOut:
    return ExtractOut(
        startMonth=table.start_month,
        endMonth=table.end_month,
        seedMonth=table.seed_month,
        seeded=table.seeded,
        columns=[ReportColumnOut(accountId=c.account_id, name=c.name, header=c.header) for c in table.columns],
        rows=[
            ReportRowOut(
                categoryId=r.category_id,
                index=r.index,
                level=r.level,
                label=r.label,
                cells=[ReportCellOut(accountId=c.account_id, amount=r.cells[c.account_id]) for c in table.columns],
                totalKasBank=r.total_kas_bank,
                totalKas=r.total_kas,
            )
            for r in table.rows
        ],
        columnTotals=[ReportCellOut(accountId=aid, amount=amount) for aid, amount in table.column_totals.items()],
        grandTotal=table.grand_total,
    )


@router.get("/extract", response_model=ExtractOut)
def extract(
    startMonth: str,
    endMonth: str,
    db: Session = Depends(get_db),
    engine: ExtractEngine = Depends(get_extract),
    _: User = Depends(get_current_user),
) -> ExtractOut:
    return extract_out(engine.build_extract(db, startMonth, endMonth))


@router.get("/extract.csv")
def extract_csv(
    startMonth: str,
    endMonth: str,
    db: Session = Depends(get_db),
    engine: ExtractEngine = Depends(get_extract),
    _: User = Depends(get_current_user),
) -> Response:
    table = engine.build_extract(db, startMonth, endMonth)
    return Response(
        content=render_csv(table),
        media_type="text/csv; charset=utf-8",
        headers={"Content-Disposition": f'attachment; filename="{extract_filename(table)}"'},
    )


@router.get("/category-stats/{category_id}", response_model=CategoryStatsOut)
def category_stats(
    category_id: str,
    start: dt.date | None = None,
    end: dt.date | None = None,
    db: Session = Depends(get_db),
    catalog: CatalogCache = Depends(get_catalog),
    _: User = Depends(get_current_user),
) -> CategoryStatsOut:
    stats = category_statistics(db, catalog, category_id, start=start, end=end)
    return CategoryStatsOut(
        categoryId=stats.category_id,
        start=stats.start,
        end=stats.end,
        categoryIds=stats.category_ids,
        accountTotals=[ReportCellOut(accountId=aid, amount=amount) for aid, amount in stats.account_totals.items()],
        total=stats.total,
        transactionCount=stats.transaction_count,
    )
