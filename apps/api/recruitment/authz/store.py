from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol

from sqlalchemy import select
from sqlalchemy.orm import Session, selectinload, sessionmaker

from recruitment.authz.context import PermissionGrant
from recruitment.authz.models import Permission, Role, RolePermission
from recruitment.metrics import observe_authz_db_queries_count


@dataclass(frozen=True, slots=True)
class RoleSnapshot:
    id: str
    name: str
    is_active: bool
    permissions: tuple[PermissionGrant, ...]


class RoleStore(Protocol):
    """Read-only access to the authoritative role records."""

    def find_role_by_name(self, name: str) -> RoleSnapshot | None:
        ...


def to_permission_grant(permission: Permission) -> PermissionGrant:
    return PermissionGrant(
        id=str(permission.id),
        name=permission.name,
        api_path=permission.api_path,
        method=permission.method.upper(),
        module=permission.module.upper(),
    )


def to_role_snapshot(role: Role) -> RoleSnapshot:
    return RoleSnapshot(
        id=str(role.id),
        name=role.name,
        is_active=role.is_active,
        permissions=tuple(to_permission_grant(link.permission) for link in role.permission_links),
    )


class SqlRoleStore:
    """Role store backed by the SQLAlchemy models; each lookup runs in its own short session."""

    def __init__(self, session_factory: sessionmaker[Session]) -> None:
        self._session_factory = session_factory

    def find_role_by_name(self, name: str) -> RoleSnapshot | None:
        with self._session_factory() as session:
            role = session.scalar(
                select(Role)
                .where(Role.name == name)
                .options(selectinload(Role.permission_links).selectinload(RolePermission.permission))
            )
            observe_authz_db_queries_count(1)
            if role is None:
                return None
            return to_role_snapshot(role)
