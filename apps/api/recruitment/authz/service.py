from __future__ import annotations

import logging
import uuid
from collections.abc import Iterable

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, selectinload

from recruitment.authz.cache import RolePermissionCache
from recruitment.authz.catalog import PermissionCatalog
from recruitment.authz.errors import (
    PermissionConflictError,
    PermissionInUseError,
    PermissionNotFoundError,
    ProtectedRoleError,
    RoleConflictError,
    RoleNotFoundError,
)
from recruitment.authz.models import Permission, Role, RolePermission
from recruitment.authz.schemas import (
    PermissionCreate,
    PermissionRead,
    PermissionUpdate,
    RoleCreate,
    RoleRead,
    RoleUpdate,
)


logger = logging.getLogger("recruitment.authz")


class AuthorizationAdminService:
    """Role and permission administration.

    Every mutation that can change what a role resolves to invalidates the
    affected cache entries after the commit and before returning.
    """

    def __init__(self, cache: RolePermissionCache | None, *, super_admin_role: str) -> None:
        self._cache = cache
        self._super_admin_role = super_admin_role

    def _invalidate(self, role_names: Iterable[str]) -> None:
        if self._cache is None:
            return
        for name in sorted(set(role_names)):
            self._cache.invalidate(name)

    def _get_role(self, session: Session, role_id: uuid.UUID) -> Role:
        role = session.scalar(
            select(Role)
            .where(Role.id == role_id)
            .options(selectinload(Role.permission_links).selectinload(RolePermission.permission))
        )
        if role is None:
            raise RoleNotFoundError(str(role_id))
        return role

    def _get_permission(self, session: Session, permission_id: uuid.UUID) -> Permission:
        permission = session.get(Permission, permission_id)
        if permission is None:
            raise PermissionNotFoundError([str(permission_id)])
        return permission

    def _load_permissions(self, session: Session, permission_ids: Iterable[uuid.UUID]) -> list[Permission]:
        wanted = list(dict.fromkeys(permission_ids))
        if not wanted:
            return []
        rows = session.scalars(select(Permission).where(Permission.id.in_(wanted))).all()
        found = {row.id: row for row in rows}
        missing = [str(permission_id) for permission_id in wanted if permission_id not in found]
        if missing:
            raise PermissionNotFoundError(missing)
        return [found[permission_id] for permission_id in wanted]

    def _replace_permissions(self, role: Role, permissions: list[Permission]) -> None:
        wanted = {permission.id for permission in permissions}
        kept = [link for link in role.permission_links if link.permission_id in wanted]
        present = {link.permission_id for link in kept}
        kept.extend(RolePermission(permission=permission) for permission in permissions if permission.id not in present)
        role.permission_links = kept

    def _ensure_role_name_available(self, session: Session, name: str, exclude_id: uuid.UUID | None = None) -> None:
        stmt = select(Role.id).where(Role.name == name)
        if exclude_id is not None:
            stmt = stmt.where(Role.id != exclude_id)
        if session.scalar(stmt.limit(1)) is not None:
            raise RoleConflictError(name)

    def list_permissions(self, session: Session) -> list[PermissionRead]:
        return [PermissionRead.model_validate(row) for row in PermissionCatalog(session).list_all()]

    def get_permission(self, session: Session, permission_id: uuid.UUID) -> PermissionRead:
        return PermissionRead.model_validate(self._get_permission(session, permission_id))

    def create_permission(self, session: Session, dto: PermissionCreate) -> PermissionRead:
        api_path = dto.api_path.strip()
        PermissionCatalog(session).ensure_available(api_path, dto.method)

        permission = Permission(name=dto.name.strip(), api_path=api_path, method=dto.method, module=dto.module)
        session.add(permission)
        try:
            session.commit()
        except IntegrityError:
            session.rollback()
            raise PermissionConflictError(api_path, dto.method)
        session.refresh(permission)
        return PermissionRead.model_validate(permission)

    def update_permission(self, session: Session, permission_id: uuid.UUID, dto: PermissionUpdate) -> PermissionRead:
        permission = self._get_permission(session, permission_id)

        api_path = dto.api_path.strip() if dto.api_path is not None else permission.api_path
        method = dto.method if dto.method is not None else permission.method
        PermissionCatalog(session).ensure_available(api_path, method, exclude_id=permission.id)

        if dto.name is not None:
            permission.name = dto.name.strip()
        permission.api_path = api_path
        permission.method = method
        if dto.module is not None:
            permission.module = dto.module

        affected_roles = [link.role.name for link in permission.role_links]
        try:
            session.commit()
        except IntegrityError:
            session.rollback()
            raise PermissionConflictError(api_path, method)
        session.refresh(permission)

        self._invalidate(affected_roles)
        return PermissionRead.model_validate(permission)

    def delete_permission(self, session: Session, permission_id: uuid.UUID) -> None:
        permission = self._get_permission(session, permission_id)
        role_names = [link.role.name for link in permission.role_links]
        if role_names:
            raise PermissionInUseError(str(permission.id), role_names)

        session.delete(permission)
        session.commit()

    def list_roles(self, session: Session) -> list[RoleRead]:
        rows = session.scalars(
            select(Role)
            .order_by(Role.name.asc())
            .options(selectinload(Role.permission_links).selectinload(RolePermission.permission))
        ).all()
        return [RoleRead.model_validate(row) for row in rows]

    def get_role(self, session: Session, role_id: uuid.UUID) -> RoleRead:
        return RoleRead.model_validate(self._get_role(session, role_id))

    def create_role(self, session: Session, dto: RoleCreate) -> RoleRead:
        name = dto.name.strip()
        self._ensure_role_name_available(session, name)
        permissions = self._load_permissions(session, dto.permission_ids)

        role = Role(name=name, description=dto.description, is_active=dto.is_active)
        role.permission_links = [RolePermission(permission=permission) for permission in permissions]
        session.add(role)
        try:
            session.commit()
        except IntegrityError:
            session.rollback()
            raise RoleConflictError(name)

        self._invalidate([name])
        return RoleRead.model_validate(self._get_role(session, role.id))

    def update_role(self, session: Session, role_id: uuid.UUID, dto: RoleUpdate) -> RoleRead:
        role = self._get_role(session, role_id)
        previous_name = role.name

        if dto.name is not None and dto.name.strip() != role.name:
            new_name = dto.name.strip()
            if role.name == self._super_admin_role:
                raise ProtectedRoleError(role.name, "renamed")
            self._ensure_role_name_available(session, new_name, exclude_id=role.id)
            role.name = new_name
        if dto.description is not None:
            role.description = dto.description
        if dto.is_active is not None:
            role.is_active = dto.is_active
        if dto.permission_ids is not None:
            self._replace_permissions(role, self._load_permissions(session, dto.permission_ids))

        try:
            session.commit()
        except IntegrityError:
            session.rollback()
            raise RoleConflictError(role.name)

        self._invalidate([previous_name, role.name])
        return RoleRead.model_validate(self._get_role(session, role.id))

    def add_role_permissions(self, session: Session, role_id: uuid.UUID, permission_ids: list[uuid.UUID]) -> RoleRead:
        role = self._get_role(session, role_id)
        permissions = self._load_permissions(session, permission_ids)

        attached = {link.permission_id for link in role.permission_links}
        for permission in permissions:
            if permission.id not in attached:
                role.permission_links.append(RolePermission(permission=permission))
                attached.add(permission.id)
        session.commit()

        self._invalidate([role.name])
        logger.info("authz.role.permissions_added", extra={"role": role.name})
        return RoleRead.model_validate(self._get_role(session, role.id))

    def delete_role(self, session: Session, role_id: uuid.UUID) -> None:
        role = self._get_role(session, role_id)
        if role.name == self._super_admin_role:
            raise ProtectedRoleError(role.name)

        name = role.name
        session.delete(role)
        session.commit()
        self._invalidate([name])
