from __future__ import annotations

from pydantic import BaseModel, Field


class UserOut(BaseModel):
    id: int
    email: str
    role: str
    isActive: bool


class UserCreate(BaseModel):
    email: str = Field(min_length=3, max_length=200)
    password: str = Field(min_length=1, max_length=128)
    role: str = Field(default="guest", pattern="^(admin|guest)$")
    isActive: bool = True


class UserUpdate(BaseModel):
    password: str | None = Field(default=None, min_length=1, max_length=128)
    role: str | None = Field(default=None, pattern="^(admin|guest)$")
    isActive: bool | None = None
