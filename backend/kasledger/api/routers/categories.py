from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from kasledger.api.deps import get_catalog, get_current_user, get_db, require_admin_user
from kasledger.models.user import User
from kasledger.schemas.category import CategoryCreate, CategoryNodeOut, CategoryOut, CategoryRename
from kasledger.services.catalog import CatalogCache
from kasledger.services.category_tree import CategoryNode

router = APIRouter(prefix="/config", tags=["config"])


def category_out(node: CategoryNode) -> CategoryOut:
    return CategoryOut(
        id=node.id,
        parentId=node.parent_id,
        level=node.level,
        index=node.index,
        name=node.name,
        fullName=node.full_name,
        kind=node.kind.value,
    )


def _tree_out(entry: dict) -> CategoryNodeOut:
    node: CategoryNode = entry["node"]
    return CategoryNodeOut(
        **category_out(node).model_dump(),
        children=[_tree_out(child) for child in entry["children"]],
    )


@router.get("/categories", response_model=list[CategoryOut])
def list_categories(
    catalog: CatalogCache = Depends(get_catalog),
    _: User = Depends(get_current_user),
) -> list[CategoryOut]:
    return [category_out(n) for n in catalog.categories.all()]


@router.get("/categories/tree", response_model=list[CategoryNodeOut])
def category_tree(
    catalog: CatalogCache = Depends(get_catalog),
    _: User = Depends(get_current_user),
) -> list[CategoryNodeOut]:
    return [_tree_out(entry) for entry in catalog.categories.tree()]


@router.get("/categories/{category_id}/children", response_model=list[CategoryOut])
def category_children(
    category_id: str,
    catalog: CatalogCache = Depends(get_catalog),
    _: User = Depends(get_current_user),
) -> list[CategoryOut]:
    parent = catalog.categories.require(category_id)
    return [category_out(n) for n in catalog.categories.children_of(parent.id, parent.level + 1)]


@router.post("/categories", response_model=CategoryOut)
def create_category(
    payload: CategoryCreate,
    db: Session = Depends(get_db),
    catalog: CatalogCache = Depends(get_catalog),
    _: User = Depends(require_admin_user),
) -> CategoryOut:
    node = catalog.categories.add(db, payload.parentId, payload.name, payload.level)
    return category_out(node)


@router.patch("/categories/{category_id}", response_model=CategoryOut)
def rename_category(
    category_id: str,
    payload: CategoryRename,
    db: Session = Depends(get_db),
    catalog: CatalogCache = Depends(get_catalog),
    _: User = Depends(require_admin_user),
) -> CategoryOut:
    node = catalog.categories.rename(db, category_id, payload.name)
    return category_out(node)


@router.post("/catalog/reload")
def reload_catalog(
    db: Session = Depends(get_db),
    catalog: CatalogCache = Depends(get_catalog),
    _: User = Depends(get_current_user),
) -> dict:
    catalog.reload(db)
    return {
        "ok": True,
        "categories": len(catalog.categories.all()),
        "accounts": len(catalog.accounts.active()),
    }
