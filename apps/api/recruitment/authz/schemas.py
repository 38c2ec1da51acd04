from __future__ import annotations

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator


_HTTP_METHOD_PATTERN = "^(GET|POST|PUT|PATCH|DELETE)$"


class PermissionCreate(BaseModel):
    name: str = Field(min_length=1)
    api_path: str = Field(min_length=1)
    method: str = Field(pattern=_HTTP_METHOD_PATTERN)
    module: str = Field(min_length=1)

    @field_validator("method", "module", mode="before")
    @classmethod
    def _upper(cls, value: object) -> object:
        return value.strip().upper() if isinstance(value, str) else value


class PermissionUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1)
    api_path: str | None = Field(default=None, min_length=1)
    method: str | None = Field(default=None, pattern=_HTTP_METHOD_PATTERN)
    module: str | None = Field(default=None, min_length=1)

    @field_validator("method", "module", mode="before")
    @classmethod
    def _upper(cls, value: object) -> object:
        return value.strip().upper() if isinstance(value, str) else value


class PermissionRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    name: str
    api_path: str
    method: str
    module: str
    created_at: datetime
    updated_at: datetime


class RoleCreate(BaseModel):
    name: str = Field(min_length=1)
    description: str | None = None
    is_active: bool = True
    permission_ids: list[UUID] = Field(default_factory=list)


class RoleUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1)
    description: str | None = None
    is_active: bool | None = None
    permission_ids: list[UUID] | None = None


class RoleRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    name: str
    description: str | None
    is_active: bool
    created_at: datetime
    updated_at: datetime
    permissions: list[PermissionRead]


class AddRolePermissionsRequest(BaseModel):
    permission_ids: list[UUID] = Field(min_length=1)


class AccountRole(BaseModel):
    id: str
    name: str


class AccountCompany(BaseModel):
    id: str
    name: str | None = None


class AccountPermission(BaseModel):
    id: str
    name: str
    api_path: str
    method: str
    module: str


class AccountRead(BaseModel):
    id: str
    email: str | None
    role: AccountRole
    company: AccountCompany | None
    permissions: list[AccountPermission]
