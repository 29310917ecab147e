from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from kasledger.api.deps import get_current_user, get_db, get_monthly_balances, require_admin_user
from kasledger.core.datetime_utils import parse_month_key
from kasledger.db.guard import persistence_guard
from kasledger.models.monthly_balance import MonthlyBalance
from kasledger.models.user import User
from kasledger.schemas.monthly_balance import AccountBalanceOut, MonthlyBalanceOut
from kasledger.services.monthly_balance import MonthlyBalanceStore

router = APIRouter(prefix="/ledger/monthly-balances", tags=["ledger"])


def _check_key(value: str | None) -> None:
    if value is None:
        return
    try:
        parse_month_key(value)
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid month format (YYYY-MM)")


def monthly_balance_out(record: MonthlyBalance) -> MonthlyBalanceOut:
    return MonthlyBalanceOut(
        key=record.key,
        year=record.year,
        month=record.month,
        startingBalance=record.starting_balance,
        endingBalance=record.ending_balance,
        lastUpdated=record.last_updated,
        isInitialSetup=bool(record.is_initial_setup),
        autoSaved=bool(record.auto_saved),
        accountBalances=[
            AccountBalanceOut(
                accountId=ab.account_id,
                name=ab.name,
                opening=ab.opening,
                total=ab.total,
                closing=ab.opening + ab.total,
            )
            for ab in record.account_balances
        ],
    )


@router.get("", response_model=list[MonthlyBalanceOut])
def list_monthly_balances(
    start: str | None = None,
    end: str | None = None,
    db: Session = Depends(get_db),
    store: MonthlyBalanceStore = Depends(get_monthly_balances),
    _: User = Depends(get_current_user),
) -> list[MonthlyBalanceOut]:
    _check_key(start)
    _check_key(end)
    return [monthly_balance_out(r) for r in store.list(db, start, end)]


@router.get("/{key}", response_model=MonthlyBalanceOut)
def get_monthly_balance(
    key: str,
    db: Session = Depends(get_db),
    store: MonthlyBalanceStore = Depends(get_monthly_balances),
    _: User = Depends(get_current_user),
) -> MonthlyBalanceOut:
    _check_key(key)
    record = store.get(db, key)
    if record is None:
        raise HTTPException(status_code=404, detail="Monthly balance not found")
    return monthly_balance_out(record)


@router.post("/{key}/recompute", response_model=MonthlyBalanceOut)
def recompute_monthly_balance(
    key: str,
    db: Session = Depends(get_db),
    store: MonthlyBalanceStore = Depends(get_monthly_balances),
    _: User = Depends(require_admin_user),
) -> MonthlyBalanceOut:
    _check_key(key)
    record = store.get(db, key)
    if record is not None and record.is_initial_setup:
        raise HTTPException(status_code=400, detail="Initial setup balances are entered, not computed")
    with persistence_guard(db, "menghitung ulang saldo bulanan"):
        records = store.reconcile_from(db, key)
        db.commit()
    if not records or records[0].key != key:
        raise HTTPException(status_code=404, detail="No transactions in this month")
    return monthly_balance_out(records[0])
