from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class PermissionGrant:
    """Immutable snapshot of a catalog permission, safe to cache and share across requests."""

    id: str
    name: str
    api_path: str
    method: str
    module: str


@dataclass(frozen=True, slots=True)
class ActorRole:
    id: str
    name: str


@dataclass(frozen=True, slots=True)
class ActorCompany:
    id: str
    name: str | None = None


@dataclass(frozen=True, slots=True)
class Actor:
    """Authenticated caller of one request.

    ``permissions`` is the list authentication attached, if any. When it is
    ``None`` or empty the ability factory derives the list from the role.
    """

    id: str
    role: ActorRole
    company: ActorCompany | None = None
    permissions: tuple[PermissionGrant, ...] | None = None
    email: str | None = None

    @property
    def role_name(self) -> str:
        return self.role.name

    @property
    def company_id(self) -> str | None:
        return self.company.id if self.company is not None else None
