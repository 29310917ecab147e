from __future__ import annotations

from decimal import Decimal

import pytest
from sqlalchemy.orm import Session

from kasledger.core.errors import CategoryNotFound, ValidationError
from kasledger.services.catalog import CatalogCache
from kasledger.services.category_tree import (
    CategoryKind,
    compare_indexes,
    is_descendant_or_self,
    signed_amount,
    sort_indexes,
)


def test_sort_indexes_is_numeric_per_segment() -> None:
    assert sort_indexes(["2", "10", "2.1", "1"]) == ["1", "2", "2.1", "10"]
    assert sort_indexes(["2.10", "2.9", "2.1.5", "2.1"]) == ["2.1", "2.1.5", "2.9", "2.10"]


def test_compare_indexes_pads_shorter_side_with_zero() -> None:
    assert compare_indexes("2", "2.0") == 0
    assert compare_indexes("2", "2.1") == -1
    assert compare_indexes("3", "2.99") == 1
    assert compare_indexes("2.x", "2.0") == 0


def test_signed_amount_follows_root_digit() -> None:
    assert signed_amount("2.1", Decimal("-500")) == Decimal("500")
    assert signed_amount("3.1.1", Decimal("500")) == Decimal("-500")
    assert signed_amount("1", Decimal("-500")) == Decimal("-500")
    assert signed_amount("4", Decimal("500")) == Decimal("500")


def test_descendant_match_respects_segment_boundaries() -> None:
    assert is_descendant_or_self("2.1", "2")
    assert is_descendant_or_self("2", "2")
    assert not is_descendant_or_self("20", "2")


def test_loaded_categories_keep_id_index_and_level_consistent(catalog: CatalogCache) -> None:
    nodes = catalog.categories.all()
    assert [n.id for n in nodes] == ["1", "2", "2.1", "2.2", "3", "3.1", "3.1.1"]
    for node in nodes:
        assert node.id == node.index
        assert node.level == len(node.id.split("."))


def test_children_and_descendants(catalog: CatalogCache) -> None:
    tree = catalog.categories
    assert [n.id for n in tree.children_of(None, 1)] == ["1", "2", "3"]
    assert [n.id for n in tree.children_of("2", 2)] == ["2.1", "2.2"]
    assert tree.children_of("2.2", 3) == []
    assert [n.id for n in tree.descendants_of("3")] == ["3.1", "3.1.1"]
    assert [n.id for n in tree.path_of("3.1.1")] == ["3", "3.1", "3.1.1"]
    assert tree.kind_of("3.1.1") is CategoryKind.EXPENSE
    assert tree.opening_category().id == "1"


def test_tree_view_nests_children(catalog: CatalogCache) -> None:
    roots = catalog.categories.tree()
    expense = roots[2]
    assert expense["node"].id == "3"
    assert expense["children"][0]["children"][0]["node"].id == "3.1.1"


def test_add_assigns_monotonic_suffixes_without_gaps(db: Session, catalog: CatalogCache) -> None:
    added = [catalog.categories.add(db, "3.1", f"Sub {i}") for i in range(3)]

    assert [n.id for n in added] == ["3.1.2", "3.1.3", "3.1.4"]
    suffixes = sorted(int(n.id.rsplit(".", 1)[1]) for n in catalog.categories.children_of("3.1"))
    assert suffixes == [1, 2, 3, 4]
    assert added[0].full_name == "3.1.2. Sub 0"
    assert added[0].level == 3


def test_add_root_uses_next_integer(db: Session, catalog: CatalogCache) -> None:
    node = catalog.categories.add(db, None, "Lain-lain")
    assert node.id == "4"
    assert node.kind is CategoryKind.OTHER


def test_add_sorts_double_digit_suffixes_numerically(db: Session, catalog: CatalogCache) -> None:
    for i in range(9):
        catalog.categories.add(db, "2", f"Kategori {i}")

    ids = [n.id for n in catalog.categories.children_of("2")]
    assert ids[-2:] == ["2.10", "2.11"]


def test_add_rejects_sixth_level(db: Session, catalog: CatalogCache) -> None:
    level4 = catalog.categories.add(db, "3.1.1", "Level empat")
    level5 = catalog.categories.add(db, level4.id, "Level lima")
    assert level5.level == 5

    with pytest.raises(ValidationError):
        catalog.categories.add(db, level5.id, "Level enam")


def test_add_rejects_inconsistent_level_and_unknown_parent(db: Session, catalog: CatalogCache) -> None:
    with pytest.raises(ValidationError):
        catalog.categories.add(db, "2", "Salah level", level=3)
    with pytest.raises(CategoryNotFound):
        catalog.categories.add(db, "9.9", "Tidak ada induk")
    with pytest.raises(ValidationError):
        catalog.categories.add(db, "2", "   ")


def test_rename_regenerates_full_name_only(db: Session, catalog: CatalogCache) -> None:
    node = catalog.categories.rename(db, "2.1", "Kolekte Misa")
    assert node.id == "2.1"
    assert node.index == "2.1"
    assert node.full_name == "2.1. Kolekte Misa"
