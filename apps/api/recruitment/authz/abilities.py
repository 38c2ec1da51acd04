from __future__ import annotations

import logging
import re
import uuid
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from enum import StrEnum
from typing import Any

from recruitment.authz.cache import RolePermissionCache
from recruitment.authz.context import Actor, PermissionGrant
from recruitment.authz.ownership import is_company_match, is_owner
from recruitment.authz.store import RoleStore


logger = logging.getLogger("recruitment.authz")

SUPER_ADMIN_ROLE = "SUPER_ADMIN"
HR_ROLE = "HR"
USER_ROLE = "USER"


class Action(StrEnum):
    MANAGE = "manage"
    CREATE = "create"
    READ = "read"
    UPDATE = "update"
    DELETE = "delete"


class SubjectType(StrEnum):
    USER = "User"
    COMPANY = "Company"
    JOB = "Job"
    RESUME = "Resume"
    FILE = "File"
    SUBSCRIBER = "Subscriber"
    ROLE = "Role"
    PERMISSION = "Permission"
    ALL = "all"


METHOD_ACTIONS: dict[str, Action] = {
    "GET": Action.READ,
    "POST": Action.CREATE,
    "PUT": Action.UPDATE,
    "PATCH": Action.UPDATE,
    "DELETE": Action.DELETE,
}

MODULE_SUBJECTS: dict[str, SubjectType] = {
    "USERS": SubjectType.USER,
    "COMPANIES": SubjectType.COMPANY,
    "JOBS": SubjectType.JOB,
    "RESUMES": SubjectType.RESUME,
    "FILES": SubjectType.FILE,
    "SUBSCRIBERS": SubjectType.SUBSCRIBER,
    "ROLES": SubjectType.ROLE,
    "PERMISSIONS": SubjectType.PERMISSION,
}

_PLACEHOLDER_SEGMENT = re.compile(r"/:[^/]+(?:/|$)")


def map_method_to_action(method: str) -> Action | None:
    return METHOD_ACTIONS.get(method.strip().upper())


def map_module_to_subject(module: str) -> SubjectType | None:
    return MODULE_SUBJECTS.get(module.strip().upper())


def is_detail_path(api_path: str) -> bool:
    return _PLACEHOLDER_SEGMENT.search(api_path) is not None


def _read_field(resource: Any, *names: str) -> Any:
    for name in names:
        if isinstance(resource, Mapping):
            value = resource.get(name)
        else:
            value = getattr(resource, name, None)
        if value is not None:
            return value
    return None


def resource_id(resource: Any) -> Any:
    return _read_field(resource, "_id", "id")


def resource_owner_id(subject: SubjectType, resource: Any) -> Any:
    if subject == SubjectType.USER:
        return resource_id(resource)
    return _read_field(resource, "user_id", "userId")


def resource_company_id(subject: SubjectType, resource: Any) -> Any:
    if subject == SubjectType.COMPANY:
        return resource_id(resource)
    direct = _read_field(resource, "company_id", "companyId")
    if direct is not None:
        return direct
    company = _read_field(resource, "company")
    if company is None or isinstance(company, (str, uuid.UUID)):
        return company
    return resource_id(company)


@dataclass(frozen=True, slots=True)
class OwnerEquals:
    """Resource belongs to ``value``: a User record's own id, any other record's ``user_id``."""

    value: str

    def matches(self, subject: SubjectType, resource: Any) -> bool:
        return is_owner(self.value, resource_owner_id(subject, resource))


@dataclass(frozen=True, slots=True)
class CompanyEquals:
    """Resource is scoped to company ``value``: a Company record's own id, any other record's company id."""

    value: str

    def matches(self, subject: SubjectType, resource: Any) -> bool:
        return is_company_match(self.value, resource_company_id(subject, resource))


FieldCondition = OwnerEquals | CompanyEquals


@dataclass(frozen=True, slots=True)
class Rule:
    action: Action
    subject: SubjectType
    condition: FieldCondition | None = None

    def applies_to(self, action: str, subject: str) -> bool:
        if self.action != Action.MANAGE and self.action != action:
            return False
        return self.subject == SubjectType.ALL or self.subject == subject

    def allows(self, action: str, subject: str, resource: Any = None) -> bool:
        if not self.applies_to(action, subject):
            return False
        # Type-level checks (no instance loaded yet) pass conditional rules.
        if self.condition is None or resource is None:
            return True
        return self.condition.matches(SubjectType(subject), resource)


@dataclass(frozen=True, slots=True)
class Ability:
    """Allow-only rule set for one actor; ``can`` is true when any rule matches."""

    rules: tuple[Rule, ...] = ()

    def can(self, action: str, subject: str, field: str | None = None, resource: Any = None) -> bool:
        # No rule is field-restricted, so ``field`` never narrows the answer.
        return any(rule.allows(action, subject, resource) for rule in self.rules)

    def rules_for(self, action: str, subject: str) -> tuple[Rule, ...]:
        return tuple(rule for rule in self.rules if rule.applies_to(action, subject))

    @property
    def is_empty(self) -> bool:
        return not self.rules


SUPER_ADMIN_ABILITY = Ability(rules=(Rule(Action.MANAGE, SubjectType.ALL),))
EMPTY_ABILITY = Ability()
GUEST_ABILITY = Ability(
    rules=(
        Rule(Action.READ, SubjectType.COMPANY),
        Rule(Action.READ, SubjectType.JOB),
        Rule(Action.CREATE, SubjectType.SUBSCRIBER),
        Rule(Action.DELETE, SubjectType.SUBSCRIBER),
    )
)


def narrow_condition(actor: Actor, subject: SubjectType, method: str, api_path: str) -> FieldCondition | None:
    role = actor.role_name
    company_id = actor.company_id
    hr_with_company = role == HR_ROLE and bool(company_id)

    if subject == SubjectType.USER and method in {"PATCH", "DELETE"}:
        if role == USER_ROLE:
            return OwnerEquals(actor.id)
        if hr_with_company:
            return CompanyEquals(company_id)
        return None

    if subject == SubjectType.JOB and method in {"POST", "PATCH", "DELETE"}:
        return CompanyEquals(company_id) if hr_with_company else None

    if subject == SubjectType.COMPANY and method in {"PATCH", "DELETE"}:
        return CompanyEquals(company_id) if hr_with_company else None

    if subject == SubjectType.FILE and (method == "DELETE" or (method == "GET" and is_detail_path(api_path))):
        return OwnerEquals(actor.id) if role == USER_ROLE else None

    # Resume PATCH stays unconstrained; status gating happens at the call site.
    return None


def build_rules(actor: Actor, permissions: Iterable[PermissionGrant]) -> tuple[Rule, ...]:
    rules: list[Rule] = []
    for permission in permissions:
        method = permission.method.strip().upper()
        action = map_method_to_action(method)
        subject = map_module_to_subject(permission.module)
        if action is None or subject is None:
            logger.debug(
                "authz.permission.skipped",
                extra={"method": method, "path": permission.api_path, "subject": permission.module},
            )
            continue
        rules.append(Rule(action, subject, narrow_condition(actor, subject, method, permission.api_path)))
    return tuple(rules)


class AbilityFactory:
    """Builds abilities from role permissions held in the role store.

    Permission lists are taken from the actor when authentication attached a
    non-empty one, otherwise from the cache, otherwise from the store (and then
    cached; an inactive role is cached as an empty list). Unknown or inactive
    roles and store failures all yield an empty ability; nothing here raises
    for an authenticated actor.
    """

    def __init__(
        self,
        store: RoleStore,
        cache: RolePermissionCache | None = None,
        *,
        super_admin_role: str = SUPER_ADMIN_ROLE,
    ) -> None:
        self._store = store
        self._cache = cache
        self._super_admin_role = super_admin_role

    @property
    def super_admin_role(self) -> str:
        return self._super_admin_role

    def is_super_admin(self, actor: Actor) -> bool:
        return actor.role_name == self._super_admin_role

    def build_for_actor(self, actor: Actor) -> Ability:
        if self.is_super_admin(actor):
            return SUPER_ADMIN_ABILITY
        permissions = self.resolve_permissions(actor)
        if not permissions:
            return EMPTY_ABILITY
        return Ability(rules=build_rules(actor, permissions))

    def build_for_guest(self) -> Ability:
        return GUEST_ABILITY

    def resolve_permissions(self, actor: Actor) -> tuple[PermissionGrant, ...]:
        if actor.permissions:
            return actor.permissions

        role_key = actor.role_name
        cached = self._read_cache(role_key)
        if cached is not None:
            return cached

        generation = self._cache_generation(role_key)
        try:
            role = self._store.find_role_by_name(role_key)
        except Exception as exc:
            logger.exception(
                "authz.role.load_failed",
                extra={"actor_id": actor.id, "role": role_key, "error": str(exc)[:500]},
            )
            return ()

        if role is None:
            logger.info("authz.role.not_found", extra={"actor_id": actor.id, "role": role_key})
            return ()
        if not role.is_active:
            logger.info("authz.role.inactive", extra={"actor_id": actor.id, "role": role_key})
            self._write_cache(role_key, (), generation)
            return ()

        self._write_cache(role_key, role.permissions, generation)
        return role.permissions

    def _read_cache(self, role_key: str) -> tuple[PermissionGrant, ...] | None:
        if self._cache is None:
            return None
        try:
            return self._cache.get(role_key)
        except Exception as exc:
            logger.exception("authz.cache.read_failed", extra={"role_key": role_key, "error": str(exc)[:500]})
            return None

    def _cache_generation(self, role_key: str) -> tuple[int, int] | None:
        if self._cache is None:
            return None
        try:
            return self._cache.generation(role_key)
        except Exception as exc:
            logger.exception("authz.cache.read_failed", extra={"role_key": role_key, "error": str(exc)[:500]})
            return None

    def _write_cache(
        self,
        role_key: str,
        permissions: tuple[PermissionGrant, ...],
        generation: tuple[int, int] | None,
    ) -> None:
        if self._cache is None:
            return
        try:
            self._cache.set(role_key, permissions, generation=generation)
        except Exception as exc:
            logger.exception("authz.cache.write_failed", extra={"role_key": role_key, "error": str(exc)[:500]})
