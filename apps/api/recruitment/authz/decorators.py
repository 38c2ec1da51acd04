"""Per-endpoint authorization metadata.

Handler decorators attach attributes to the endpoint function and return it
unchanged, so they can sit above or below the router decorator. A whole router
is opened up with ``APIRouter(dependencies=[Depends(SkipPermissionCheck)])``;
an explicit ``skip_permission_check(enabled=False)`` on a handler overrides it.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, TypeVar

from recruitment.authz.abilities import Action, SubjectType


F = TypeVar("F", bound=Callable[..., Any])

REQUIRED_PERMISSIONS_ATTR = "__authz_required_permissions__"
SKIP_PERMISSION_CHECK_ATTR = "__authz_skip_permission_check__"


@dataclass(frozen=True, slots=True)
class RequiredPermission:
    action: Action
    subject: SubjectType
    field: str | None = None


@dataclass(frozen=True, slots=True)
class EndpointPermissions:
    skip_permission_check: bool | None = None
    required: tuple[RequiredPermission, ...] = ()


def SkipPermissionCheck() -> None:
    """Router-level marker; its presence in a route's dependencies skips the permission guard."""


def check_abilities(*required: RequiredPermission) -> Callable[[F], F]:
    def decorator(func: F) -> F:
        existing: tuple[RequiredPermission, ...] = getattr(func, REQUIRED_PERMISSIONS_ATTR, ())
        # Decorators apply bottom-up; prepend so the list reads top to bottom.
        setattr(func, REQUIRED_PERMISSIONS_ATTR, tuple(required) + existing)
        return func

    return decorator


def check_ability(action: Action | str, subject: SubjectType | str, field: str | None = None) -> Callable[[F], F]:
    return check_abilities(RequiredPermission(Action(action), SubjectType(subject), field))


def can_create(subject: SubjectType | str) -> Callable[[F], F]:
    return check_ability(Action.CREATE, subject)


def can_read(subject: SubjectType | str) -> Callable[[F], F]:
    return check_ability(Action.READ, subject)


def can_update(subject: SubjectType | str) -> Callable[[F], F]:
    return check_ability(Action.UPDATE, subject)


def can_delete(subject: SubjectType | str) -> Callable[[F], F]:
    return check_ability(Action.DELETE, subject)


def can_manage(subject: SubjectType | str) -> Callable[[F], F]:
    return check_ability(Action.MANAGE, subject)


def skip_permission_check(func: F | None = None, *, enabled: bool = True) -> Any:
    """Mark a handler as exempt from the permission guard.

    Usable bare (``@skip_permission_check``) or called
    (``@skip_permission_check(enabled=False)``).
    """

    def decorator(target: F) -> F:
        setattr(target, SKIP_PERMISSION_CHECK_ATTR, enabled)
        return target

    if func is not None:
        return decorator(func)
    return decorator


def _group_skips(route: Any) -> bool:
    for dependency in getattr(route, "dependencies", None) or ():
        if getattr(dependency, "dependency", None) is SkipPermissionCheck:
            return True
    return False


def resolve_endpoint_permissions(route: Any) -> EndpointPermissions:
    if route is None:
        return EndpointPermissions()

    endpoint = getattr(route, "endpoint", None)
    skip: bool | None = getattr(endpoint, SKIP_PERMISSION_CHECK_ATTR, None)
    if skip is None and _group_skips(route):
        skip = True

    return EndpointPermissions(
        skip_permission_check=skip,
        required=getattr(endpoint, REQUIRED_PERMISSIONS_ATTR, ()),
    )
