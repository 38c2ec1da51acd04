from contextlib import asynccontextmanager
import logging

from fastapi import Depends, FastAPI
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from sqlalchemy.orm import Session, sessionmaker

from recruitment.api.errors import authorization_error_handler
from recruitment.api.routes import router as api_router
from recruitment.authz.abilities import AbilityFactory
from recruitment.authz.cache import RolePermissionCache
from recruitment.authz.catalog import seed_catalog
from recruitment.authz.errors import AuthorizationError
from recruitment.authz.guard import AuthorizationGuard, authorize_request
from recruitment.authz.store import SqlRoleStore
from recruitment.core.config import Settings, get_settings
from recruitment.core.database import SessionLocal
from recruitment.logging import configure_logging
from recruitment.middleware.correlation_id import CorrelationIdMiddleware
from recruitment.middleware.request_logging import RequestLoggingMiddleware
from recruitment.otel import get_fastapi_server_request_hook, setup_otel


configure_logging()
logger = logging.getLogger("recruitment.lifecycle")


def install_authorization(app: FastAPI, session_factory: sessionmaker[Session], settings: Settings) -> AuthorizationGuard:
    cache = RolePermissionCache(
        ttl_seconds=settings.authz_cache_ttl_seconds,
        capacity=settings.authz_cache_capacity,
    )
    factory = AbilityFactory(SqlRoleStore(session_factory), cache, super_admin_role=settings.super_admin_role)
    guard = AuthorizationGuard(factory)
    app.state.permission_cache = cache
    app.state.authorization_guard = guard
    return guard


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()
    installed_here = getattr(app.state, "authorization_guard", None) is None
    if installed_here:
        install_authorization(app, SessionLocal, settings)

    if settings.seed_on_startup:
        with SessionLocal() as session:
            result = seed_catalog(session, super_admin_role=settings.super_admin_role)
        logger.info(
            "catalog_seeded",
            extra={"reason": f"permissions={result.permissions_created} roles={result.roles_created}"},
        )

    logger.info("system_started", extra={"mode": settings.app_env})
    yield

    app.state.permission_cache.clear()
    if installed_here:
        app.state.authorization_guard = None
        app.state.permission_cache = None
    logger.info("system_stopped")


app = FastAPI(
    title="Recruitment API",
    version="0.1.0",
    lifespan=lifespan,
    dependencies=[Depends(authorize_request)],
)
app.add_middleware(RequestLoggingMiddleware)
app.add_middleware(CorrelationIdMiddleware)
app.add_exception_handler(AuthorizationError, authorization_error_handler)
app.include_router(api_router)

settings = get_settings()
if settings.otel_enabled:
    setup_otel("recruitment-api", True)

if not getattr(app, "_is_instrumented_by_opentelemetry", False):
    FastAPIInstrumentor().instrument_app(app, server_request_hook=get_fastapi_server_request_hook())
