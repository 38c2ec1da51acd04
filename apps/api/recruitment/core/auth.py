from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

from fastapi import Depends
from jose import JWTError, jwt
from starlette.requests import Request

from recruitment.authz.context import Actor, ActorCompany, ActorRole, PermissionGrant
from recruitment.authz.errors import NotAuthenticatedError
from recruitment.core.config import get_settings


logger = logging.getLogger("recruitment.authz")


def _claim_id(value: Mapping[str, Any]) -> str | None:
    raw = value.get("_id", value.get("id"))
    return str(raw) if raw is not None else None


def _parse_role(payload: Mapping[str, Any]) -> ActorRole | None:
    raw = payload.get("role")
    if isinstance(raw, str) and raw:
        return ActorRole(id=str(payload.get("role_id", "")), name=raw)
    if isinstance(raw, Mapping) and raw.get("name"):
        return ActorRole(id=_claim_id(raw) or "", name=str(raw["name"]))
    return None


def _parse_company(payload: Mapping[str, Any]) -> ActorCompany | None:
    raw = payload.get("company")
    if isinstance(raw, Mapping):
        company_id = _claim_id(raw)
        if company_id:
            name = raw.get("name")
            return ActorCompany(id=company_id, name=str(name) if name is not None else None)
    return None


def _parse_permissions(payload: Mapping[str, Any]) -> tuple[PermissionGrant, ...] | None:
    raw = payload.get("permissions")
    if not isinstance(raw, list):
        return None

    grants: list[PermissionGrant] = []
    for item in raw:
        if not isinstance(item, Mapping):
            continue
        api_path = item.get("api_path", item.get("apiPath"))
        method = item.get("method")
        if not api_path or not method:
            continue
        grants.append(
            PermissionGrant(
                id=_claim_id(item) or "",
                name=str(item.get("name", "")),
                api_path=str(api_path),
                method=str(method).upper(),
                module=str(item.get("module", "")).upper(),
            )
        )
    return tuple(grants)


def actor_from_claims(payload: Mapping[str, Any]) -> Actor | None:
    """Map verified token claims to an actor; ``None`` when subject or role is missing."""

    subject = payload.get("sub", payload.get("_id"))
    role = _parse_role(payload)
    if subject is None or role is None:
        return None
    email = payload.get("email")
    return Actor(
        id=str(subject),
        role=role,
        company=_parse_company(payload),
        permissions=_parse_permissions(payload),
        email=str(email) if email is not None else None,
    )


def get_current_actor(request: Request) -> Actor | None:
    auth_header = request.headers.get("authorization", "")
    token = auth_header.removeprefix("Bearer ").strip() if auth_header.startswith("Bearer ") else ""
    if not token:
        return None

    settings = get_settings()
    try:
        payload = jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])
    except JWTError as exc:
        logger.warning("auth.token.rejected", extra={"error": str(exc)[:200]})
        return None
    return actor_from_claims(payload)


def get_required_actor(actor: Actor | None = Depends(get_current_actor)) -> Actor:
    if actor is None:
        raise NotAuthenticatedError()
    return actor
