"""Hierarchical chart of accounts keyed by dotted indexes.

A category's index (``"2.1.3"``) is its id, its sort key and the encoding of
its ancestry. The first segment decides how amounts booked against it are
signed: ``1`` opening balance, ``2`` income, ``3`` expense.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from functools import cmp_to_key

from sqlalchemy import select
from sqlalchemy.orm import Session

from kasledger.core.errors import CategoryNotFound, ValidationError
from kasledger.db.guard import persistence_guard
from kasledger.models.category import Category

logger = logging.getLogger(__name__)

MAX_LEVEL = 5
ROOT_KEY = "root"


class CategoryKind(str, Enum):
    OPENING = "opening"
    INCOME = "income"
    EXPENSE = "expense"
    OTHER = "other"


_KIND_BY_ROOT = {
    "1": CategoryKind.OPENING,
    "2": CategoryKind.INCOME,
    "3": CategoryKind.EXPENSE,
}


def root_digit(index: str) -> str:
    return index.split(".", 1)[0]


def classify(index: str) -> CategoryKind:
    return _KIND_BY_ROOT.get(root_digit(index), CategoryKind.OTHER)


def signed_amount(index: str, amount: Decimal) -> Decimal:
    kind = classify(index)
    if kind is CategoryKind.INCOME:
        return abs(amount)
    if kind is CategoryKind.EXPENSE:
        return -abs(amount)
    return amount


def _segment(value: str) -> int:
    try:
        return int(value)
    except ValueError:
        return 0


def index_segments(index: str) -> list[int]:
    return [_segment(part) for part in index.split(".")]


def compare_indexes(a: str, b: str) -> int:
    """Numeric segment-by-segment comparison; the shorter side is padded with 0."""

    parts_a = index_segments(a)
    parts_b = index_segments(b)
    for i in range(max(len(parts_a), len(parts_b))):
        num_a = parts_a[i] if i < len(parts_a) else 0
        num_b = parts_b[i] if i < len(parts_b) else 0
        if num_a != num_b:
            return -1 if num_a < num_b else 1
    return 0


index_sort_key = cmp_to_key(compare_indexes)


def sort_indexes(indexes: list[str]) -> list[str]:
    return sorted(indexes, key=index_sort_key)


def is_descendant_or_self(index: str, ancestor: str) -> bool:
    return index == ancestor or index.startswith(ancestor + ".")


def _parent_index(index: str) -> str | None:
    if "." not in index:
        return None
    return index.rsplit(".", 1)[0]


@dataclass(frozen=True)
class CategoryNode:
    id: str
    parent_id: str | None
    level: int
    index: str
    name: str
    full_name: str

    @property
    def kind(self) -> CategoryKind:
        return classify(self.index)


def _snapshot(row: Category) -> CategoryNode:
    return CategoryNode(
        id=row.id,
        parent_id=row.parent_id,
        level=int(row.level),
        index=row.index,
        name=row.name,
        full_name=row.full_name,
    )


class CategoryTree:
    def __init__(self) -> None:
        self._ordered: list[CategoryNode] = []
        self._by_id: dict[str, CategoryNode] = {}
        self._children: dict[tuple[int, str], list[CategoryNode]] = {}
        self._loaded = False

    @property
    def loaded(self) -> bool:
        return self._loaded

    def load(self, db: Session) -> list[CategoryNode]:
        rows = db.scalars(select(Category)).all()
        ordered = sorted((_snapshot(r) for r in rows), key=lambda n: index_sort_key(n.index))

        by_id: dict[str, CategoryNode] = {}
        children: dict[tuple[int, str], list[CategoryNode]] = {}
        for node in ordered:
            self._check_node(node)
            by_id[node.id] = node
            children.setdefault((node.level, node.parent_id or ROOT_KEY), []).append(node)

        # Swap in whole structures so readers never see a half-built index.
        self._ordered = ordered
        self._by_id = by_id
        self._children = children
        self._loaded = True
        logger.debug("Loaded %d categories", len(ordered))
        return list(ordered)

    @staticmethod
    def _check_node(node: CategoryNode) -> None:
        # Acyclic by construction: the parent is always the dotted prefix.
        if node.index != node.id:
            logger.warning("Category %s has index %s; expected them equal", node.id, node.index)
        if node.level != len(node.id.split(".")):
            logger.warning("Category %s has level %s inconsistent with its id", node.id, node.level)
        if node.parent_id != _parent_index(node.id):
            logger.warning("Category %s has parent %s inconsistent with its id", node.id, node.parent_id)

    def all(self) -> list[CategoryNode]:
        return list(self._ordered)

    def get(self, category_id: str | None) -> CategoryNode | None:
        if not category_id:
            return None
        return self._by_id.get(category_id)

    def require(self, category_id: str | None) -> CategoryNode:
        node = self.get(category_id)
        if node is None:
            raise CategoryNotFound(category_id)
        return node

    def children_of(self, parent_id: str | None, level: int | None = None) -> list[CategoryNode]:
        if level is None:
            parent = self.get(parent_id)
            level = parent.level + 1 if parent else 1
        return list(self._children.get((level, parent_id or ROOT_KEY), []))

    def descendants_of(self, category_id: str) -> list[CategoryNode]:
        node = self.require(category_id)
        result: list[CategoryNode] = []
        stack = list(reversed(self.children_of(node.id, node.level + 1)))
        while stack:
            current = stack.pop()
            result.append(current)
            stack.extend(reversed(self.children_of(current.id, current.level + 1)))
        return result

    def path_of(self, category_id: str) -> list[CategoryNode]:
        node = self.require(category_id)
        path = [node]
        while node.parent_id is not None:
            parent = self.get(node.parent_id)
            if parent is None:
                break
            path.append(parent)
            node = parent
        path.reverse()
        return path

    def kind_of(self, category_id: str) -> CategoryKind:
        return self.require(category_id).kind

    def tree(self) -> list[dict]:
        """Nested view: each node as a dict with a ``children`` list."""

        def build(node: CategoryNode) -> dict:
            return {
                "node": node,
                "children": [build(child) for child in self.children_of(node.id, node.level + 1)],
            }

        return [build(root) for root in self.children_of(None, 1)]

    def opening_category(self) -> CategoryNode | None:
        for node in self.children_of(None, 1):
            if node.kind is CategoryKind.OPENING:
                return node
        return None

    def add(self, db: Session, parent_id: str | None, name: str, level: int | None = None) -> CategoryNode:
        clean_name = (name or "").strip()
        if not clean_name:
            raise ValidationError("Nama kategori harus diisi")

        if parent_id:
            parent = self.require(parent_id)
            expected_level = parent.level + 1
        else:
            parent = None
            expected_level = 1
        if level is not None and level != expected_level:
            raise ValidationError(f"Level {level} tidak sesuai dengan induk kategori (seharusnya {expected_level})")
        if expected_level > MAX_LEVEL:
            raise ValidationError(f"Maksimal {MAX_LEVEL} level kategori")

        # Siblings are read from the store so a stale cache cannot reuse a suffix.
        parent_key = parent.id if parent else None
        stmt = select(Category.id)
        if parent_key is None:
            stmt = stmt.where(Category.parent_id.is_(None))
        else:
            stmt = stmt.where(Category.parent_id == parent_key)
        sibling_ids = db.scalars(stmt).all()
        max_suffix = max((_segment(sid.rsplit(".", 1)[-1]) for sid in sibling_ids), default=0)
        new_index = str(max_suffix + 1) if parent is None else f"{parent.index}.{max_suffix + 1}"

        row = Category(
            id=new_index,
            parent_id=parent_key,
            level=expected_level,
            index=new_index,
            name=clean_name,
            full_name=f"{new_index}. {clean_name}",
        )
        with persistence_guard(db, "menyimpan kategori"):
            db.add(row)
            db.commit()

        logger.info("Added category %s", row.full_name)
        self.load(db)
        return self.require(new_index)

    def rename(self, db: Session, category_id: str, new_name: str) -> CategoryNode:
        clean_name = (new_name or "").strip()
        if not clean_name:
            raise ValidationError("Nama kategori harus diisi")

        row = db.get(Category, category_id)
        if row is None:
            raise CategoryNotFound(category_id)

        with persistence_guard(db, "mengubah kategori"):
            row.name = clean_name
            row.full_name = f"{row.index}. {clean_name}"
            db.commit()

        logger.info("Renamed category %s to %s", category_id, clean_name)
        self.load(db)
        return self.require(category_id)
