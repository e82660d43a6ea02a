from fastapi import APIRouter

from app.portal.core.config import settings
from app.portal.routers.access_control import router as access_control_router
from app.portal.routers.health import ops_router, router as health_router
from app.portal.routers.roles import router as roles_router
from app.portal.routers.users import router as users_router

api_router = APIRouter()
api_router.include_router(health_router)
api_router.include_router(access_control_router, prefix="/portal/access-control", tags=["access-control"])
api_router.include_router(users_router, prefix="/portal", tags=["users"])
api_router.include_router(roles_router, prefix="/portal", tags=["roles"])
if settings.METRICS_ENABLED:
    api_router.include_router(ops_router, tags=["ops"])
