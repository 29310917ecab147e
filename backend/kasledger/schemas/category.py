from __future__ import annotations

from pydantic import BaseModel, Field


class CategoryCreate(BaseModel):
    name: str = Field(min_length=1, max_length=200)
    parentId: str | None = None
    # Optional; must equal the parent's level + 1 when given
    level: int | None = Field(default=None, ge=1, le=5)


class CategoryRename(BaseModel):
    name: str = Field(min_length=1, max_length=200)


class CategoryOut(BaseModel):
    id: str
    parentId: str | None
    level: int
    index: str
    name: str
    fullName: str
    kind: str


class CategoryNodeOut(CategoryOut):
    children: list["CategoryNodeOut"] = Field(default_factory=list)
