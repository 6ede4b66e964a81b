from __future__ import annotations

import uuid
from datetime import datetime

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator, model_validator

from leaddesk.core.dates import as_utc
from leaddesk.platform.security.context import Role


class UserCreate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    email: EmailStr
    full_name: str = Field(min_length=1)
    role: Role
    account_manager_name: str | None = None

    @model_validator(mode="after")
    def _account_manager_for_field_reps(self) -> UserCreate:
        if self.role == Role.FIELD_REP:
            if not (self.account_manager_name or "").strip():
                raise ValueError("account_manager_name is required for field reps")
        else:
            self.account_manager_name = None
        return self


class UserUpdate(BaseModel):
    """Partial update. The field rep / account manager pairing is rechecked against the stored role."""

    model_config = ConfigDict(extra="forbid")

    full_name: str | None = Field(default=None, min_length=1)
    role: Role | None = None
    account_manager_name: str | None = None
    is_active: bool | None = None


class UserRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    email: str
    full_name: str
    role: Role
    account_manager_name: str | None = None
    is_active: bool
    created_at: datetime
    updated_at: datetime
    created_by: uuid.UUID | None = None

    @field_validator("created_at", "updated_at")
    @classmethod
    def _timestamps_in_utc(cls, value: datetime) -> datetime:
        return as_utc(value)
