from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from enum import StrEnum

from fastapi import Depends
from starlette.requests import Request

from recruitment.authz.abilities import AbilityFactory
from recruitment.authz.context import Actor
from recruitment.authz.decorators import EndpointPermissions, RequiredPermission, resolve_endpoint_permissions
from recruitment.authz.errors import ForbiddenError, NotAuthenticatedError
from recruitment.core.auth import get_current_actor
from recruitment.metrics import observe_authz_decision
from recruitment.otel import get_tracer


logger = logging.getLogger("recruitment.authz")

_TEMPLATE_PARAM = re.compile(r"\{([^}:]+)(?::[^}]*)?\}")


class DecisionOutcome(StrEnum):
    ALLOW = "allow"
    DENY = "deny"


class DecisionMode(StrEnum):
    SKIP = "skip"
    ANONYMOUS = "anonymous"
    GUEST = "guest"
    SUPER_ADMIN = "super_admin"
    LEGACY = "legacy"
    ABILITY = "ability"


@dataclass(frozen=True, slots=True)
class AuthorizationDecision:
    outcome: DecisionOutcome
    mode: DecisionMode
    reason: str | None = None
    authenticated: bool = True
    failed: RequiredPermission | None = None

    @property
    def allowed(self) -> bool:
        return self.outcome == DecisionOutcome.ALLOW


def _allow(mode: DecisionMode, *, authenticated: bool = True) -> AuthorizationDecision:
    return AuthorizationDecision(outcome=DecisionOutcome.ALLOW, mode=mode, authenticated=authenticated)


def _deny(
    mode: DecisionMode,
    reason: str,
    *,
    authenticated: bool = True,
    failed: RequiredPermission | None = None,
) -> AuthorizationDecision:
    return AuthorizationDecision(
        outcome=DecisionOutcome.DENY,
        mode=mode,
        reason=reason,
        authenticated=authenticated,
        failed=failed,
    )


def to_catalog_path(route_template: str) -> str:
    """Rewrite a route template's ``{param}`` segments to the catalog's ``:param`` form."""

    return _TEMPLATE_PARAM.sub(r":\1", route_template)


class AuthorizationGuard:
    """Per-request allow/deny state machine.

    Order: skip flag, anonymous or guest access, super admin, then either the
    exact ``(method, apiPath)`` match when the endpoint declares nothing or the
    ability check over the declared requirements, first failure wins. The guard
    only reads; the sole write on this path is the factory's cache fill.
    """

    def __init__(self, ability_factory: AbilityFactory) -> None:
        self._factory = ability_factory

    @property
    def ability_factory(self) -> AbilityFactory:
        return self._factory

    def authorize(
        self,
        actor: Actor | None,
        endpoint: EndpointPermissions,
        method: str,
        route_path: str,
    ) -> AuthorizationDecision:
        if endpoint.skip_permission_check:
            return _allow(DecisionMode.SKIP, authenticated=actor is not None)

        if actor is None:
            if not endpoint.required:
                return _allow(DecisionMode.ANONYMOUS, authenticated=False)
            guest = self._factory.build_for_guest()
            for requirement in endpoint.required:
                if not guest.can(requirement.action, requirement.subject, requirement.field):
                    return _deny(
                        DecisionMode.GUEST,
                        NotAuthenticatedError().message,
                        authenticated=False,
                        failed=requirement,
                    )
            return _allow(DecisionMode.GUEST, authenticated=False)

        if self._factory.is_super_admin(actor):
            return _allow(DecisionMode.SUPER_ADMIN)

        if not endpoint.required:
            return self._legacy_check(actor, method, route_path)

        ability = self._factory.build_for_actor(actor)
        for requirement in endpoint.required:
            if not ability.can(requirement.action, requirement.subject, requirement.field):
                return _deny(
                    DecisionMode.ABILITY,
                    f"You don't have permission to {requirement.action} {requirement.subject}",
                    failed=requirement,
                )
        return _allow(DecisionMode.ABILITY)

    def _legacy_check(self, actor: Actor, method: str, route_path: str) -> AuthorizationDecision:
        target_method = method.upper()
        for permission in self._factory.resolve_permissions(actor):
            if permission.method.upper() == target_method and permission.api_path == route_path:
                return _allow(DecisionMode.LEGACY)
        return _deny(
            DecisionMode.LEGACY,
            f"You don't have permission to access endpoint: {target_method} {route_path}",
        )

    @staticmethod
    def enforce(decision: AuthorizationDecision) -> None:
        if decision.allowed:
            return
        reason = decision.reason or "Forbidden"
        if not decision.authenticated:
            raise NotAuthenticatedError(reason)
        details = None
        if decision.failed is not None:
            details = {"action": str(decision.failed.action), "subject": str(decision.failed.subject)}
        raise ForbiddenError(reason, details=details)


def get_authorization_guard(request: Request) -> AuthorizationGuard:
    return request.app.state.authorization_guard


def authorize_request(
    request: Request,
    actor: Actor | None = Depends(get_current_actor),
    guard: AuthorizationGuard = Depends(get_authorization_guard),
) -> AuthorizationDecision:
    """App-wide dependency running the guard for the matched route."""

    route = request.scope.get("route")
    template = getattr(route, "path_format", None) or getattr(route, "path", None) or request.url.path
    route_path = to_catalog_path(template)
    endpoint = resolve_endpoint_permissions(route)

    with get_tracer("recruitment.authz").start_as_current_span("authz.authorize") as span:
        decision = guard.authorize(actor, endpoint, request.method, route_path)
        span.set_attribute("authz.outcome", decision.outcome.value)
        span.set_attribute("authz.mode", decision.mode.value)

    request.state.authz_decision = decision
    observe_authz_decision(decision.outcome.value, decision.mode.value)

    log_extra = {
        "method": request.method,
        "path": route_path,
        "actor_id": actor.id if actor is not None else None,
        "role": actor.role_name if actor is not None else None,
        "decision": decision.outcome.value,
        "mode": decision.mode.value,
    }
    if decision.allowed:
        logger.debug("authz.decision", extra=log_extra)
    else:
        logger.info("authz.decision", extra={**log_extra, "reason": decision.reason})

    guard.enforce(decision)
    return decision
