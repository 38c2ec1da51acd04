from __future__ import annotations

from collections.abc import Generator

import pytest
from fastapi import APIRouter, Depends, FastAPI, Request
from fastapi.testclient import TestClient
from jose import jwt

from recruitment.api.errors import authorization_error_handler
from recruitment.authz.abilities import AbilityFactory, Action, SubjectType
from recruitment.authz.cache import RolePermissionCache
from recruitment.authz.context import Actor, ActorCompany, ActorRole, PermissionGrant
from recruitment.authz.decorators import (
    EndpointPermissions,
    RequiredPermission,
    SkipPermissionCheck,
    can_delete,
    can_read,
    can_update,
    check_abilities,
    skip_permission_check,
)
from recruitment.authz.errors import AuthorizationError, ForbiddenError, NotAuthenticatedError
from recruitment.authz.guard import (
    AuthorizationGuard,
    DecisionMode,
    DecisionOutcome,
    authorize_request,
    to_catalog_path,
)
from recruitment.authz.store import RoleSnapshot
from recruitment.core.config import get_settings


def grant(method: str, api_path: str, module: str) -> PermissionGrant:
    return PermissionGrant(id=f"{method} {api_path}", name=api_path, api_path=api_path, method=method, module=module)


class FakeRoleStore:
    def __init__(self) -> None:
        self.roles: dict[str, RoleSnapshot] = {}
        self.calls: list[str] = []

    def find_role_by_name(self, name: str) -> RoleSnapshot | None:
        self.calls.append(name)
        return self.roles.get(name)

    def put(self, name: str, *permissions: PermissionGrant) -> None:
        self.roles[name] = RoleSnapshot(id=f"role-{name}", name=name, is_active=True, permissions=permissions)


def actor(role: str, actor_id: str = "u1", company_id: str | None = None, permissions=None) -> Actor:
    company = ActorCompany(id=company_id) if company_id else None
    return Actor(id=actor_id, role=ActorRole(id=f"role-{role}", name=role), company=company, permissions=permissions)


def requires(*pairs: tuple[Action, SubjectType]) -> EndpointPermissions:
    return EndpointPermissions(required=tuple(RequiredPermission(action, subject) for action, subject in pairs))


@pytest.fixture()
def store() -> FakeRoleStore:
    return FakeRoleStore()


@pytest.fixture()
def cache() -> RolePermissionCache:
    return RolePermissionCache()


@pytest.fixture()
def guard(store: FakeRoleStore, cache: RolePermissionCache) -> AuthorizationGuard:
    return AuthorizationGuard(AbilityFactory(store, cache))


def test_route_template_converted_to_catalog_form() -> None:
    assert to_catalog_path("/api/v1/jobs/{id}") == "/api/v1/jobs/:id"
    assert to_catalog_path("/api/v1/files/{id}/signed-url") == "/api/v1/files/:id/signed-url"
    assert to_catalog_path("/api/v1/items/{item_id:int}") == "/api/v1/items/:item_id"
    assert to_catalog_path("/api/v1/jobs") == "/api/v1/jobs"


def test_skip_flag_allows_everyone(guard: AuthorizationGuard) -> None:
    endpoint = EndpointPermissions(skip_permission_check=True, required=requires((Action.DELETE, SubjectType.ROLE)).required)

    decision = guard.authorize(None, endpoint, "DELETE", "/api/v1/roles/:id")

    assert decision.allowed
    assert decision.mode == DecisionMode.SKIP


def test_anonymous_without_requirements_is_allowed(guard: AuthorizationGuard) -> None:
    decision = guard.authorize(None, EndpointPermissions(), "GET", "/api/v1/jobs")
    assert decision.allowed
    assert decision.mode == DecisionMode.ANONYMOUS
    assert not decision.authenticated


def test_anonymous_read_job_allowed_by_guest_ability(guard: AuthorizationGuard) -> None:
    decision = guard.authorize(None, requires((Action.READ, SubjectType.JOB)), "GET", "/api/v1/jobs")
    assert decision.allowed
    assert decision.mode == DecisionMode.GUEST


def test_anonymous_outside_guest_ability_is_not_authenticated(guard: AuthorizationGuard) -> None:
    endpoint = requires((Action.READ, SubjectType.JOB), (Action.UPDATE, SubjectType.JOB))

    decision = guard.authorize(None, endpoint, "PATCH", "/api/v1/jobs/:id")

    assert decision.outcome == DecisionOutcome.DENY
    assert decision.reason == "User not authenticated"
    assert not decision.authenticated
    with pytest.raises(NotAuthenticatedError):
        guard.enforce(decision)


def test_super_admin_allowed_without_store_lookup(guard: AuthorizationGuard, store: FakeRoleStore) -> None:
    decision = guard.authorize(actor("SUPER_ADMIN"), EndpointPermissions(), "DELETE", "/api/v1/anything/:id")
    assert decision.allowed
    assert decision.mode == DecisionMode.SUPER_ADMIN
    assert store.calls == []


def test_legacy_match_on_method_and_route_template(guard: AuthorizationGuard) -> None:
    hr = actor("HR", permissions=(grant("GET", "/jobs/:id", "JOBS"),))

    allowed = guard.authorize(hr, EndpointPermissions(), "GET", "/jobs/:id")
    denied = guard.authorize(hr, EndpointPermissions(), "DELETE", "/jobs/:id")

    assert allowed.allowed
    assert allowed.mode == DecisionMode.LEGACY
    assert not denied.allowed
    assert denied.reason == "You don't have permission to access endpoint: DELETE /jobs/:id"
    with pytest.raises(ForbiddenError):
        guard.enforce(denied)


def test_legacy_uses_role_permissions_when_none_attached(guard: AuthorizationGuard, store: FakeRoleStore) -> None:
    store.put("HR", grant("GET", "/jobs/:id", "JOBS"))
    assert guard.authorize(actor("HR"), EndpointPermissions(), "get", "/jobs/:id").allowed


def test_legacy_does_not_match_concrete_paths(guard: AuthorizationGuard) -> None:
    hr = actor("HR", permissions=(grant("GET", "/jobs/:id", "JOBS"),))
    assert not guard.authorize(hr, EndpointPermissions(), "GET", "/jobs/abc").allowed


def test_declared_requirements_checked_in_order(guard: AuthorizationGuard, store: FakeRoleStore) -> None:
    store.put("HR", grant("GET", "/api/v1/jobs", "JOBS"))
    endpoint = requires(
        (Action.READ, SubjectType.JOB),
        (Action.UPDATE, SubjectType.ROLE),
        (Action.DELETE, SubjectType.PERMISSION),
    )

    decision = guard.authorize(actor("HR", company_id="c1"), endpoint, "GET", "/api/v1/jobs")

    assert not decision.allowed
    assert decision.mode == DecisionMode.ABILITY
    assert decision.reason == "You don't have permission to update Role"
    assert decision.failed == RequiredPermission(Action.UPDATE, SubjectType.ROLE)


def test_all_requirements_satisfied(guard: AuthorizationGuard, store: FakeRoleStore) -> None:
    store.put("HR", grant("GET", "/api/v1/jobs", "JOBS"), grant("PATCH", "/api/v1/jobs/:id", "JOBS"))
    endpoint = requires((Action.READ, SubjectType.JOB), (Action.UPDATE, SubjectType.JOB))

    assert guard.authorize(actor("HR", company_id="c1"), endpoint, "PATCH", "/api/v1/jobs/:id").allowed


def test_unknown_role_denied_not_raised(guard: AuthorizationGuard) -> None:
    decision = guard.authorize(actor("GHOST"), requires((Action.READ, SubjectType.JOB)), "GET", "/api/v1/jobs")
    assert not decision.allowed
    assert decision.reason == "You don't have permission to read Job"


def test_guard_does_not_mutate_actor(guard: AuthorizationGuard, store: FakeRoleStore) -> None:
    store.put("HR", grant("GET", "/api/v1/jobs", "JOBS"))
    hr = actor("HR", company_id="c1")

    guard.authorize(hr, requires((Action.READ, SubjectType.JOB)), "GET", "/api/v1/jobs")

    assert hr.permissions is None


def _token(claims: dict) -> str:
    settings = get_settings()
    return jwt.encode(claims, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def _auth(claims: dict) -> dict[str, str]:
    return {"Authorization": f"Bearer {_token(claims)}"}


@pytest.fixture()
def client(guard: AuthorizationGuard) -> Generator[TestClient, None, None]:
    get_settings.cache_clear()
    app = FastAPI(dependencies=[Depends(authorize_request)])
    app.add_exception_handler(AuthorizationError, authorization_error_handler)
    app.state.authorization_guard = guard

    jobs = APIRouter(prefix="/api/v1/jobs")

    @jobs.get("")
    @can_read(SubjectType.JOB)
    def list_jobs(request: Request) -> dict[str, str]:
        return {"mode": request.state.authz_decision.mode.value}

    @jobs.get("/{id}")
    def get_job(id: str) -> dict[str, str]:
        return {"id": id}

    @jobs.delete("/{id}")
    def delete_job(id: str) -> dict[str, str]:
        return {"id": id}

    @jobs.patch("/{id}")
    @check_abilities(RequiredPermission(Action.READ, SubjectType.JOB), RequiredPermission(Action.UPDATE, SubjectType.JOB))
    def update_job(id: str) -> dict[str, str]:
        return {"id": id}

    public = APIRouter(prefix="/api/v1/public", dependencies=[Depends(SkipPermissionCheck)])

    @public.get("/ping")
    @can_delete(SubjectType.ROLE)
    def ping() -> dict[str, str]:
        return {"status": "ok"}

    @public.get("/locked")
    @skip_permission_check(enabled=False)
    @can_update(SubjectType.RESUME)
    def locked() -> dict[str, str]:
        return {"status": "ok"}

    app.include_router(jobs)
    app.include_router(public)

    with TestClient(app) as test_client:
        yield test_client
    get_settings.cache_clear()


def test_http_guest_reads_jobs(client: TestClient) -> None:
    response = client.get("/api/v1/jobs")
    assert response.status_code == 200
    assert response.json() == {"mode": "guest"}


def test_http_guest_update_is_not_authenticated(client: TestClient) -> None:
    response = client.patch("/api/v1/jobs/j1", headers={"X-Correlation-Id": "guard-1"})

    assert response.status_code == 403
    body = response.json()
    assert body["code"] == "not_authenticated"
    assert body["message"] == "User not authenticated"


def test_http_legacy_mode_uses_attached_permissions(client: TestClient) -> None:
    claims = {
        "sub": "u1",
        "role": {"_id": "r1", "name": "HR"},
        "permissions": [{"_id": "p1", "name": "Get job", "apiPath": "/api/v1/jobs/:id", "method": "GET", "module": "JOBS"}],
    }

    assert client.get("/api/v1/jobs/abc", headers=_auth(claims)).status_code == 200

    denied = client.delete("/api/v1/jobs/abc", headers=_auth(claims))
    assert denied.status_code == 403
    assert denied.json()["code"] == "forbidden"
    assert denied.json()["message"] == "You don't have permission to access endpoint: DELETE /api/v1/jobs/:id"


def test_http_ability_denial_names_action_and_subject(client: TestClient, store: FakeRoleStore) -> None:
    store.put("HR", grant("GET", "/api/v1/jobs/:id", "JOBS"))
    claims = {"sub": "h1", "role": "HR", "company": {"_id": "c1", "name": "Acme"}}

    response = client.patch("/api/v1/jobs/j1", headers=_auth(claims))

    assert response.status_code == 403
    body = response.json()
    assert body["message"] == "You don't have permission to update Job"
    assert body["details"] == {"action": "update", "subject": "Job"}


def test_http_super_admin_bypasses_everything(client: TestClient) -> None:
    claims = {"sub": "admin", "role": {"_id": "r0", "name": "SUPER_ADMIN"}}
    assert client.delete("/api/v1/jobs/j1", headers=_auth(claims)).status_code == 200
    assert client.get("/api/v1/public/locked", headers=_auth(claims)).status_code == 200


def test_http_router_skip_marker_and_handler_override(client: TestClient) -> None:
    assert client.get("/api/v1/public/ping").status_code == 200

    locked = client.get("/api/v1/public/locked")
    assert locked.status_code == 403
    assert locked.json()["code"] == "not_authenticated"


def test_http_invalid_token_treated_as_anonymous(client: TestClient) -> None:
    response = client.get("/api/v1/jobs", headers={"Authorization": "Bearer not-a-token"})
    assert response.status_code == 200
    assert response.json() == {"mode": "guest"}
