from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any

from fastapi.responses import JSONResponse
from starlette.requests import Request

from recruitment.authz.errors import AuthorizationError
from recruitment.context import get_correlation_id


@dataclass
class ErrorEnvelope:
    code: str
    message: str
    details: Any
    correlation_id: str | None


def error_response(
    request: Request,
    *,
    status_code: int,
    code: str,
    message: str,
    details: Any = None,
) -> JSONResponse:
    payload = ErrorEnvelope(
        code=code,
        message=message,
        details=details,
        correlation_id=get_correlation_id() or request.headers.get("x-correlation-id"),
    )
    return JSONResponse(status_code=status_code, content=asdict(payload))


async def authorization_error_handler(request: Request, exc: AuthorizationError) -> JSONResponse:
    return error_response(
        request,
        status_code=exc.status_code,
        code=exc.code,
        message=exc.message,
        details=exc.details,
    )
