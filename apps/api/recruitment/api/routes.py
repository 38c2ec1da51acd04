from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.responses import Response

from recruitment.authz.api import account_router, permissions_router, roles_router
from recruitment.authz.decorators import SkipPermissionCheck
from recruitment.core.config import get_settings
from recruitment.metrics import generate_metrics_payload, metrics_content_type

router = APIRouter()
router.include_router(permissions_router)
router.include_router(roles_router)
router.include_router(account_router)

system_router = APIRouter(tags=["system"], dependencies=[Depends(SkipPermissionCheck)])


@system_router.get("/health")
def health() -> dict[str, str]:
    settings = get_settings()
    return {
        "status": "ok",
        "service": settings.app_name,
        "environment": settings.app_env,
    }


@system_router.get("/metrics")
def metrics() -> Response:
    settings = get_settings()
    if not settings.metrics_enabled:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="not found")
    return Response(content=generate_metrics_payload(), media_type=metrics_content_type())


router.include_router(system_router)
