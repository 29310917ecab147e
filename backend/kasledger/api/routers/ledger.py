from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Response
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from kasledger.api.deps import get_catalog, get_coordinator, get_current_user, get_db, get_ledger
from kasledger.core.datetime_utils import month_bounds, parse_month_key
from kasledger.models.transaction import Transaction
from kasledger.models.user import User
from kasledger.schemas.transaction import (
    AccountMovementOut,
    BalanceOut,
    ChainCheckOut,
    LedgerSummaryOut,
    MonthGroupOut,
    OpeningAccountOut,
    OpeningBalancePrompt,
    OpeningBalancesIn,
    SubmissionOut,
    TransactionCreate,
    TransactionListOut,
    TransactionOut,
)
from kasledger.services.catalog import CatalogCache
from kasledger.services.ledger import LedgerEngine, TransactionDraft
from kasledger.services.submission import Submission, SubmissionCoordinator
from kasledger.services.summary import ledger_summary

router = APIRouter(prefix="/ledger", tags=["ledger"])


def transaction_out(tx: Transaction, catalog: CatalogCache) -> TransactionOut:
    category = catalog.categories.get(tx.category_id)
    return TransactionOut(
        id=tx.id,
        name=tx.name,
        date=tx.date,
        amount=tx.amount,
        accountId=tx.account_id,
        accountName=catalog.accounts.display_name(tx.account_id),
        categoryId=tx.category_id,
        categoryName=category.full_name if category else None,
        description=tx.description,
        saldoKas=tx.saldo_kas,
        createdAt=tx.created_at,
        createdBy=tx.created_by,
        createdByEmail=tx.created_by_email,
        createdByRole=tx.created_by_role,
    )


def submission_out(submission: Submission) -> SubmissionOut:
    prompt = None
    if submission.awaiting_opening_balance:
        prompt = OpeningBalancePrompt(
            monthKey=submission.opening_month_key,
            accounts=[OpeningAccountOut(**a) for a in submission.opening_accounts],
        )
    return SubmissionOut(
        id=submission.id,
        state=submission.state.value,
        error=submission.error,
        transactionId=submission.transaction_id,
        saldoKas=submission.saldo_kas,
        openingBalance=prompt,
    )


def _status_for(submission: Submission) -> int:
    # 202 while the opening-balance prompt is outstanding
    return 202 if submission.awaiting_opening_balance else 201


@router.post("/submissions", response_model=SubmissionOut, status_code=201)
def submit_transaction(
    payload: TransactionCreate,
    response: Response,
    db: Session = Depends(get_db),
    coordinator: SubmissionCoordinator = Depends(get_coordinator),
    current_user: User = Depends(get_current_user),
) -> SubmissionOut:
    draft = TransactionDraft(
        name=payload.name,
        date=payload.date,
        amount=payload.amount,
        account_id=payload.accountId,
        category_id=payload.categoryId,
        description=payload.description,
        created_by=str(current_user.id),
        created_by_email=current_user.email,
        created_by_role=current_user.role,
    )
    submission = coordinator.submit(db, draft)
    response.status_code = _status_for(submission)
    return submission_out(submission)


@router.get("/submissions/{submission_id}", response_model=SubmissionOut)
def get_submission(
    submission_id: str,
    coordinator: SubmissionCoordinator = Depends(get_coordinator),
    _: User = Depends(get_current_user),
) -> SubmissionOut:
    return submission_out(coordinator.get(submission_id))


@router.post("/submissions/{submission_id}/opening-balances", response_model=SubmissionOut, status_code=201)
def provide_opening_balances(
    submission_id: str,
    payload: OpeningBalancesIn,
    response: Response,
    db: Session = Depends(get_db),
    coordinator: SubmissionCoordinator = Depends(get_coordinator),
    _: User = Depends(get_current_user),
) -> SubmissionOut:
    submission = coordinator.provide_opening_balances(db, submission_id, payload.balances)
    response.status_code = _status_for(submission)
    return submission_out(submission)


@router.post("/submissions/{submission_id}/cancel", response_model=SubmissionOut, status_code=201)
def cancel_opening_balances(
    submission_id: str,
    response: Response,
    db: Session = Depends(get_db),
    coordinator: SubmissionCoordinator = Depends(get_coordinator),
    _: User = Depends(get_current_user),
) -> SubmissionOut:
    submission = coordinator.cancel_opening_balances(db, submission_id)
    response.status_code = _status_for(submission)
    return submission_out(submission)


@router.get("/transactions", response_model=TransactionListOut)
def list_transactions(
    month: str | None = None,
    categoryId: str | None = None,
    accountId: int | None = None,
    page: int = 1,
    pageSize: int = 50,
    db: Session = Depends(get_db),
    catalog: CatalogCache = Depends(get_catalog),
    _: User = Depends(get_current_user),
) -> TransactionListOut:
    if page < 1:
        raise HTTPException(status_code=400, detail="Invalid page")
    if pageSize < 1 or pageSize > 500:
        raise HTTPException(status_code=400, detail="Invalid pageSize")

    filters = []
    if month:
        try:
            parse_month_key(month)
        except ValueError:
            raise HTTPException(status_code=400, detail="Invalid month format (YYYY-MM)")
        start, end = month_bounds(month)
        filters += [Transaction.date >= start, Transaction.date <= end]
    if categoryId:
        root = catalog.categories.require(categoryId)
        ids = [root.id, *(n.id for n in catalog.categories.descendants_of(root.id))]
        filters.append(Transaction.category_id.in_(ids))
    if accountId is not None:
        filters.append(Transaction.account_id == accountId)

    total = db.scalar(select(func.count(Transaction.id)).where(*filters)) or 0
    rows = db.scalars(
        select(Transaction)
        .where(*filters)
        .order_by(Transaction.date.desc(), Transaction.created_at.desc(), Transaction.id.desc())
        .offset((page - 1) * pageSize)
        .limit(pageSize)
    ).all()
    return TransactionListOut(items=[transaction_out(r, catalog) for r in rows], total=int(total))


@router.get("/transactions/{transaction_id}", response_model=TransactionOut)
def get_transaction(
    transaction_id: int,
    db: Session = Depends(get_db),
    catalog: CatalogCache = Depends(get_catalog),
    _: User = Depends(get_current_user),
) -> TransactionOut:
    row = db.get(Transaction, transaction_id)
    if not row:
        raise HTTPException(status_code=404, detail="Transaction not found")
    return transaction_out(row, catalog)


@router.get("/summary", response_model=LedgerSummaryOut)
def summary(
    month: str | None = None,
    categoryId: str | None = None,
    db: Session = Depends(get_db),
    catalog: CatalogCache = Depends(get_catalog),
    _: User = Depends(get_current_user),
) -> LedgerSummaryOut:
    result = ledger_summary(db, catalog, month=month, category_id=categoryId)
    return LedgerSummaryOut(
        currentSaldoKas=result.current_saldo_kas,
        accounts=[
            AccountMovementOut(accountId=aid, name=catalog.accounts.display_name(aid), amount=amount)
            for aid, amount in result.account_movement.items()
        ],
        months=[
            MonthGroupOut(
                key=g.key,
                saldoAwal=g.saldo_awal,
                saldoAkhir=g.saldo_akhir,
                transactions=[transaction_out(tx, catalog) for tx in g.transactions],
            )
            for g in result.months
        ],
    )


@router.get("/balance", response_model=BalanceOut)
def current_balance(
    db: Session = Depends(get_db),
    ledger: LedgerEngine = Depends(get_ledger),
    _: User = Depends(get_current_user),
) -> BalanceOut:
    return BalanceOut(saldoKas=ledger.current_balance(db))


@router.get("/verify", response_model=ChainCheckOut)
def verify_chain(
    db: Session = Depends(get_db),
    ledger: LedgerEngine = Depends(get_ledger),
    _: User = Depends(get_current_user),
) -> ChainCheckOut:
    broken = ledger.verify_chain(db)
    return ChainCheckOut(ok=not broken, brokenTransactionIds=broken)
