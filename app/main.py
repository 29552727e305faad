from contextlib import asynccontextmanager

from fastapi import FastAPI

from app.register.api import api_router
from app.register.core.config import settings
from app.register.core.errors import setup_exception_handlers
from app.register.core.logging import configure_logging
from app.register.db.seed import seed_sample_products
from app.register.db.session import SessionLocal
from app.register.middleware.observability import ObservabilityMiddleware
from app.register.services.decisions import DecisionGateway
from app.register.services.register import RegisterController, log_receipt
from app.register.services.runner import OperationRunner
from app.register.services.tax_rate import TaxRateConfig


@asynccontextmanager
async def lifespan(app: FastAPI):
    if settings.SEED_SAMPLE_PRODUCTS:
        with SessionLocal() as db:
            seed_sample_products(db)
    yield


def create_app() -> FastAPI:
    configure_logging(settings.LOG_LEVEL)
    app = FastAPI(title=settings.APP_NAME, lifespan=lifespan)
    gateway = DecisionGateway()
    tax_config = TaxRateConfig(SessionLocal, settings.TAX_RATE)
    app.state.tax_config = tax_config
    app.state.register = RegisterController(
        SessionLocal,
        gateway,
        tax_config,
        tax_enabled_default=settings.TAX_ENABLED_DEFAULT,
        confirm_load_over_unsaved=settings.CONFIRM_LOAD_OVER_UNSAVED,
        store_name=settings.STORE_NAME,
        printer=log_receipt,
    )
    app.state.runner = OperationRunner(gateway)
    app.add_middleware(ObservabilityMiddleware)
    setup_exception_handlers(app)
    app.include_router(api_router)
    return app


app = create_app()
