from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, Request, status
from sqlalchemy.orm import Session

from recruitment.authz.abilities import SubjectType
from recruitment.authz.context import Actor
from recruitment.authz.decorators import can_create, can_delete, can_read, can_update, skip_permission_check
from recruitment.authz.guard import get_authorization_guard
from recruitment.authz.schemas import (
    AccountCompany,
    AccountPermission,
    AccountRead,
    AccountRole,
    AddRolePermissionsRequest,
    PermissionCreate,
    PermissionRead,
    PermissionUpdate,
    RoleCreate,
    RoleRead,
    RoleUpdate,
)
from recruitment.authz.service import AuthorizationAdminService
from recruitment.core.auth import get_required_actor
from recruitment.core.database import get_db


API_PREFIX = "/api/v1"

permissions_router = APIRouter(prefix=f"{API_PREFIX}/permissions", tags=["permissions"])
roles_router = APIRouter(prefix=f"{API_PREFIX}/roles", tags=["roles"])
account_router = APIRouter(prefix=f"{API_PREFIX}/auth", tags=["auth"])


def get_admin_service(request: Request) -> AuthorizationAdminService:
    guard = get_authorization_guard(request)
    return AuthorizationAdminService(
        getattr(request.app.state, "permission_cache", None),
        super_admin_role=guard.ability_factory.super_admin_role,
    )


@permissions_router.post("", response_model=PermissionRead, status_code=status.HTTP_201_CREATED)
@can_create(SubjectType.PERMISSION)
def create_permission(
    dto: PermissionCreate,
    db: Session = Depends(get_db),
    service: AuthorizationAdminService = Depends(get_admin_service),
) -> PermissionRead:
    return service.create_permission(db, dto)


@permissions_router.get("", response_model=list[PermissionRead])
@can_read(SubjectType.PERMISSION)
def list_permissions(
    db: Session = Depends(get_db),
    service: AuthorizationAdminService = Depends(get_admin_service),
) -> list[PermissionRead]:
    return service.list_permissions(db)


@permissions_router.get("/{id}", response_model=PermissionRead)
@can_read(SubjectType.PERMISSION)
def get_permission(
    id: uuid.UUID,
    db: Session = Depends(get_db),
    service: AuthorizationAdminService = Depends(get_admin_service),
) -> PermissionRead:
    return service.get_permission(db, id)


@permissions_router.patch("/{id}", response_model=PermissionRead)
@can_update(SubjectType.PERMISSION)
def update_permission(
    id: uuid.UUID,
    dto: PermissionUpdate,
    db: Session = Depends(get_db),
    service: AuthorizationAdminService = Depends(get_admin_service),
) -> PermissionRead:
    return service.update_permission(db, id, dto)


@permissions_router.delete("/{id}", status_code=status.HTTP_204_NO_CONTENT)
@can_delete(SubjectType.PERMISSION)
def delete_permission(
    id: uuid.UUID,
    db: Session = Depends(get_db),
    service: AuthorizationAdminService = Depends(get_admin_service),
) -> None:
    service.delete_permission(db, id)


@roles_router.post("", response_model=RoleRead, status_code=status.HTTP_201_CREATED)
@can_create(SubjectType.ROLE)
def create_role(
    dto: RoleCreate,
    db: Session = Depends(get_db),
    service: AuthorizationAdminService = Depends(get_admin_service),
) -> RoleRead:
    return service.create_role(db, dto)


@roles_router.get("", response_model=list[RoleRead])
@can_read(SubjectType.ROLE)
def list_roles(
    db: Session = Depends(get_db),
    service: AuthorizationAdminService = Depends(get_admin_service),
) -> list[RoleRead]:
    return service.list_roles(db)


@roles_router.get("/{id}", response_model=RoleRead)
@can_read(SubjectType.ROLE)
def get_role(
    id: uuid.UUID,
    db: Session = Depends(get_db),
    service: AuthorizationAdminService = Depends(get_admin_service),
) -> RoleRead:
    return service.get_role(db, id)


@roles_router.patch("/{id}", response_model=RoleRead)
@can_update(SubjectType.ROLE)
def update_role(
    id: uuid.UUID,
    dto: RoleUpdate,
    db: Session = Depends(get_db),
    service: AuthorizationAdminService = Depends(get_admin_service),
) -> RoleRead:
    return service.update_role(db, id, dto)


@roles_router.patch("/{id}/permissions", response_model=RoleRead)
@can_update(SubjectType.ROLE)
def add_role_permissions(
    id: uuid.UUID,
    dto: AddRolePermissionsRequest,
    db: Session = Depends(get_db),
    service: AuthorizationAdminService = Depends(get_admin_service),
) -> RoleRead:
    return service.add_role_permissions(db, id, dto.permission_ids)


@roles_router.delete("/{id}", status_code=status.HTTP_204_NO_CONTENT)
@can_delete(SubjectType.ROLE)
def delete_role(
    id: uuid.UUID,
    db: Session = Depends(get_db),
    service: AuthorizationAdminService = Depends(get_admin_service),
) -> None:
    service.delete_role(db, id)


@account_router.get("/account", response_model=AccountRead)
@skip_permission_check
def get_account(
    request: Request,
    actor: Actor = Depends(get_required_actor),
) -> AccountRead:
    permissions = get_authorization_guard(request).ability_factory.resolve_permissions(actor)
    return AccountRead(
        id=actor.id,
        email=actor.email,
        role=AccountRole(id=actor.role.id, name=actor.role.name),
        company=AccountCompany(id=actor.company.id, name=actor.company.name) if actor.company is not None else None,
        permissions=[
            AccountPermission(
                id=permission.id,
                name=permission.name,
                api_path=permission.api_path,
                method=permission.method,
                module=permission.module,
            )
            for permission in permissions
        ],
    )
