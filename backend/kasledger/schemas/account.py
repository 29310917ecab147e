from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field


class AccountCreate(BaseModel):
    name: str = Field(min_length=1, max_length=100)
    bankNumber: str | None = Field(default=None, max_length=50)


class AccountUpdate(BaseModel):
    name: str = Field(min_length=1, max_length=100)
    bankNumber: str | None = Field(default=None, max_length=50)


class AccountOut(BaseModel):
    id: int
    name: str
    bankNumber: str | None
    isActive: bool
    createdAt: datetime
