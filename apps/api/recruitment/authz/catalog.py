from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass

from sqlalchemy import select
from sqlalchemy.orm import Session

from recruitment.authz.abilities import HR_ROLE, SUPER_ADMIN_ROLE, USER_ROLE
from recruitment.authz.errors import PermissionConflictError
from recruitment.authz.models import Permission, Role, RolePermission


logger = logging.getLogger("recruitment.authz")

API_PREFIX = "/api/v1"


@dataclass(frozen=True, slots=True)
class CatalogEntry:
    name: str
    method: str
    api_path: str
    module: str

    @property
    def key(self) -> tuple[str, str]:
        return (self.method, self.api_path)


def _entry(name: str, method: str, path: str, module: str) -> CatalogEntry:
    return CatalogEntry(name=name, method=method, api_path=f"{API_PREFIX}{path}", module=module)


DEFAULT_PERMISSIONS: tuple[CatalogEntry, ...] = (
    _entry("Create company", "POST", "/companies", "COMPANIES"),
    _entry("List companies", "GET", "/companies", "COMPANIES"),
    _entry("Get company", "GET", "/companies/:id", "COMPANIES"),
    _entry("Update company", "PATCH", "/companies/:id", "COMPANIES"),
    _entry("Delete company", "DELETE", "/companies/:id", "COMPANIES"),
    _entry("Create job", "POST", "/jobs", "JOBS"),
    _entry("List jobs", "GET", "/jobs", "JOBS"),
    _entry("Get job", "GET", "/jobs/:id", "JOBS"),
    _entry("Update job", "PATCH", "/jobs/:id", "JOBS"),
    _entry("Delete job", "DELETE", "/jobs/:id", "JOBS"),
    _entry("Create resume", "POST", "/resumes", "RESUMES"),
    _entry("List resumes", "GET", "/resumes", "RESUMES"),
    _entry("Get resume", "GET", "/resumes/:id", "RESUMES"),
    _entry("Update resume", "PATCH", "/resumes/:id", "RESUMES"),
    _entry("Delete resume", "DELETE", "/resumes/:id", "RESUMES"),
    _entry("List own resumes", "POST", "/resumes/by-user", "RESUMES"),
    _entry("Create user", "POST", "/users", "USERS"),
    _entry("List users", "GET", "/users", "USERS"),
    _entry("Get user", "GET", "/users/:id", "USERS"),
    _entry("Update own profile", "PATCH", "/users", "USERS"),
    _entry("Update user as admin", "PATCH", "/users/admin-update", "USERS"),
    _entry("Delete user", "DELETE", "/users/:id", "USERS"),
    _entry("Upload file", "POST", "/files/upload", "FILES"),
    _entry("Upload files", "POST", "/files/upload-multiple", "FILES"),
    _entry("List files", "GET", "/files", "FILES"),
    _entry("Get file", "GET", "/files/:id", "FILES"),
    _entry("Get file signed url", "GET", "/files/:id/signed-url", "FILES"),
    _entry("Delete file", "DELETE", "/files/:id", "FILES"),
    _entry("Create subscriber", "POST", "/subscribers", "SUBSCRIBERS"),
    _entry("List subscribers", "GET", "/subscribers", "SUBSCRIBERS"),
    _entry("Get subscriber", "GET", "/subscribers/:id", "SUBSCRIBERS"),
    _entry("Update subscriber", "PATCH", "/subscribers/:id", "SUBSCRIBERS"),
    _entry("Delete subscriber", "DELETE", "/subscribers/:id", "SUBSCRIBERS"),
    _entry("Create role", "POST", "/roles", "ROLES"),
    _entry("List roles", "GET", "/roles", "ROLES"),
    _entry("Get role", "GET", "/roles/:id", "ROLES"),
    _entry("Update role", "PATCH", "/roles/:id", "ROLES"),
    _entry("Add role permissions", "PATCH", "/roles/:id/permissions", "ROLES"),
    _entry("Delete role", "DELETE", "/roles/:id", "ROLES"),
    _entry("Create permission", "POST", "/permissions", "PERMISSIONS"),
    _entry("List permissions", "GET", "/permissions", "PERMISSIONS"),
    _entry("Get permission", "GET", "/permissions/:id", "PERMISSIONS"),
    _entry("Update permission", "PATCH", "/permissions/:id", "PERMISSIONS"),
    _entry("Delete permission", "DELETE", "/permissions/:id", "PERMISSIONS"),
)


def _keys(*pairs: tuple[str, str]) -> frozenset[tuple[str, str]]:
    return frozenset((method, f"{API_PREFIX}{path}") for method, path in pairs)


HR_PERMISSION_KEYS = _keys(
    ("GET", "/companies"),
    ("GET", "/companies/:id"),
    ("PATCH", "/companies/:id"),
    ("POST", "/jobs"),
    ("GET", "/jobs"),
    ("GET", "/jobs/:id"),
    ("PATCH", "/jobs/:id"),
    ("DELETE", "/jobs/:id"),
    ("GET", "/resumes"),
    ("GET", "/resumes/:id"),
    ("PATCH", "/resumes/:id"),
    ("GET", "/users"),
    ("GET", "/users/:id"),
    ("PATCH", "/users"),
    ("POST", "/files/upload"),
    ("GET", "/files"),
    ("GET", "/files/:id"),
    ("GET", "/files/:id/signed-url"),
    ("DELETE", "/files/:id"),
)

USER_PERMISSION_KEYS = _keys(
    ("GET", "/companies"),
    ("GET", "/companies/:id"),
    ("GET", "/jobs"),
    ("GET", "/jobs/:id"),
    ("POST", "/resumes"),
    ("GET", "/resumes/:id"),
    ("PATCH", "/resumes/:id"),
    ("DELETE", "/resumes/:id"),
    ("POST", "/resumes/by-user"),
    ("GET", "/users/:id"),
    ("PATCH", "/users"),
    ("DELETE", "/users/:id"),
    ("POST", "/files/upload"),
    ("POST", "/files/upload-multiple"),
    ("GET", "/files/:id"),
    ("GET", "/files/:id/signed-url"),
    ("DELETE", "/files/:id"),
    ("POST", "/subscribers"),
    ("PATCH", "/subscribers/:id"),
    ("DELETE", "/subscribers/:id"),
)


class PermissionCatalog:
    """Lookup over the permission table; enforces the ``(api_path, method)`` uniqueness rule."""

    def __init__(self, session: Session) -> None:
        self._session = session

    def list_all(self) -> list[Permission]:
        stmt = select(Permission).order_by(Permission.module.asc(), Permission.api_path.asc(), Permission.method.asc())
        return list(self._session.scalars(stmt).all())

    def get(self, permission_id: uuid.UUID) -> Permission | None:
        return self._session.get(Permission, permission_id)

    def find_by_path_and_method(
        self,
        api_path: str,
        method: str,
        exclude_id: uuid.UUID | None = None,
    ) -> Permission | None:
        stmt = select(Permission).where(Permission.api_path == api_path, Permission.method == method.upper())
        if exclude_id is not None:
            stmt = stmt.where(Permission.id != exclude_id)
        return self._session.scalar(stmt.limit(1))

    def ensure_available(self, api_path: str, method: str, exclude_id: uuid.UUID | None = None) -> None:
        if self.find_by_path_and_method(api_path, method, exclude_id) is not None:
            raise PermissionConflictError(api_path, method.upper())


@dataclass(slots=True)
class SeedResult:
    permissions_created: int = 0
    roles_created: int = 0


def seed_catalog(session: Session, *, super_admin_role: str = SUPER_ADMIN_ROLE) -> SeedResult:
    """Insert missing default permissions and built-in roles. Existing records are left untouched."""

    result = SeedResult()
    catalog = PermissionCatalog(session)

    by_key: dict[tuple[str, str], Permission] = {}
    for entry in DEFAULT_PERMISSIONS:
        permission = catalog.find_by_path_and_method(entry.api_path, entry.method)
        if permission is None:
            permission = Permission(name=entry.name, api_path=entry.api_path, method=entry.method, module=entry.module)
            session.add(permission)
            result.permissions_created += 1
        by_key[entry.key] = permission
    session.flush()

    role_specs = (
        (super_admin_role, "Full access to every module", frozenset(by_key)),
        (HR_ROLE, "Recruiter scoped to one company", HR_PERMISSION_KEYS),
        (USER_ROLE, "Candidate using the platform", USER_PERMISSION_KEYS),
    )
    for name, description, keys in role_specs:
        if session.scalar(select(Role).where(Role.name == name)) is not None:
            continue
        role = Role(name=name, description=description, is_active=True)
        role.permission_links = [
            RolePermission(permission=by_key[entry.key]) for entry in DEFAULT_PERMISSIONS if entry.key in keys
        ]
        session.add(role)
        result.roles_created += 1

    session.commit()
    logger.info(
        "authz.catalog.seeded",
        extra={"role_key": ",".join(name for name, _, _ in role_specs)},
    )
    return result
