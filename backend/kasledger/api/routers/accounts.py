from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from kasledger.api.deps import get_catalog, get_current_user, get_db, require_admin_user
from kasledger.models.user import User
from kasledger.schemas.account import AccountCreate, AccountOut, AccountUpdate
from kasledger.services.account_registry import AccountEntry
from kasledger.services.catalog import CatalogCache

router = APIRouter(prefix="/config/accounts", tags=["config"])


def account_out(entry: AccountEntry) -> AccountOut:
    return AccountOut(
        id=entry.id,
        name=entry.name,
        bankNumber=entry.bank_number,
        isActive=entry.is_active,
        createdAt=entry.created_at,
    )


@router.get("", response_model=list[AccountOut])
def list_accounts(
    includeInactive: bool = False,
    catalog: CatalogCache = Depends(get_catalog),
    _: User = Depends(get_current_user),
) -> list[AccountOut]:
    entries = catalog.accounts.all() if includeInactive else catalog.accounts.active()
    return [account_out(e) for e in entries]


@router.post("", response_model=AccountOut)
def create_account(
    payload: AccountCreate,
    db: Session = Depends(get_db),
    catalog: CatalogCache = Depends(get_catalog),
    _: User = Depends(require_admin_user),
) -> AccountOut:
    return account_out(catalog.accounts.add(db, payload.name, payload.bankNumber))


@router.patch("/{account_id}", response_model=AccountOut)
def update_account(
    account_id: int,
    payload: AccountUpdate,
    db: Session = Depends(get_db),
    catalog: CatalogCache = Depends(get_catalog),
    _: User = Depends(require_admin_user),
) -> AccountOut:
    return account_out(catalog.accounts.rename(db, account_id, payload.name, payload.bankNumber))


@router.post("/{account_id}/deactivate", response_model=AccountOut)
def deactivate_account(
    account_id: int,
    db: Session = Depends(get_db),
    catalog: CatalogCache = Depends(get_catalog),
    _: User = Depends(require_admin_user),
) -> AccountOut:
    return account_out(catalog.accounts.deactivate(db, account_id))
