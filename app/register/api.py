from fastapi import APIRouter

from app.register.core.config import settings
from app.register.routers.exports import router as exports_router
from app.register.routers.health import router as health_router
from app.register.routers.metrics import router as metrics_router
from app.register.routers.products import router as products_router
from app.register.routers.register import router as register_router
from app.register.routers.sales import router as sales_router
from app.register.routers.settings import router as settings_router

api_router = APIRouter()
api_router.include_router(health_router)
api_router.include_router(register_router, tags=["register"])
api_router.include_router(products_router, tags=["products"])
api_router.include_router(sales_router, tags=["sales"])
api_router.include_router(settings_router, tags=["settings"])
api_router.include_router(exports_router, tags=["exports"])
if settings.METRICS_ENABLED:
    api_router.include_router(metrics_router, tags=["ops"])
