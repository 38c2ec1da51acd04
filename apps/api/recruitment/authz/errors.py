from __future__ import annotations

from typing import Any


class AuthorizationError(Exception):
    """Base error for authorization and role/permission administration failures."""

    status_code = 403
    code = "authorization_error"

    def __init__(self, message: str, *, details: Any = None) -> None:
        self.message = message
        self.details = details
        super().__init__(message)


class NotAuthenticatedError(AuthorizationError):
    """Raised when an endpoint needs an identity and the request carries none."""

    code = "not_authenticated"

    def __init__(self, message: str = "User not authenticated") -> None:
        super().__init__(message)


class ForbiddenError(AuthorizationError):
    """Raised when an authenticated actor lacks a satisfying rule."""

    code = "forbidden"


class PermissionConflictError(AuthorizationError):
    status_code = 409
    code = "permission_conflict"

    def __init__(self, api_path: str, method: str) -> None:
        self.api_path = api_path
        self.method = method
        super().__init__(
            f"Permission with apiPath={api_path}, method={method} already exists",
            details={"api_path": api_path, "method": method},
        )


class PermissionInUseError(AuthorizationError):
    status_code = 409
    code = "permission_in_use"

    def __init__(self, permission_id: str, role_names: list[str]) -> None:
        self.role_names = sorted(role_names)
        super().__init__(
            f"Permission {permission_id} is assigned to roles: {', '.join(self.role_names)}",
            details={"permission_id": permission_id, "roles": self.role_names},
        )


class RoleConflictError(AuthorizationError):
    status_code = 409
    code = "role_conflict"

    def __init__(self, name: str) -> None:
        super().__init__(f"Role with name {name!r} already exists", details={"name": name})


class RoleNotFoundError(AuthorizationError):
    status_code = 404
    code = "role_not_found"

    def __init__(self, role_id: str) -> None:
        super().__init__("role not found", details={"role_id": role_id})


class PermissionNotFoundError(AuthorizationError):
    status_code = 404
    code = "permission_not_found"

    def __init__(self, permission_ids: list[str]) -> None:
        super().__init__("permission not found", details={"permission_ids": permission_ids})


class ProtectedRoleError(AuthorizationError):
    status_code = 400
    code = "protected_role"

    def __init__(self, name: str, operation: str = "deleted") -> None:
        super().__init__(f"Role {name!r} cannot be {operation}", details={"name": name})
