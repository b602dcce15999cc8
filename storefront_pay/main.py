import logging
import os
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from storefront_pay.core.config import CORS_ALLOW_ORIGIN_REGEX, CORS_ORIGINS, DATABASE_URL
from storefront_pay.core.database import Base, engine
from storefront_pay.core.logging_setup import configure_logging
from storefront_pay.core.startup_checks import (
    ensure_migrations_applied,
    validate_database_environment,
    validate_payment_settings,
)
from storefront_pay.middleware.observability import ObservabilityMiddleware
import storefront_pay.models  # garante que os models são importados antes do create_all
from storefront_pay.services.order_events import register_default_handlers

from storefront_pay.routers.internal import router as internal_router
from storefront_pay.routers.mercadopago_oauth import router as mercadopago_oauth_router
from storefront_pay.routers.orders import router as orders_router
from storefront_pay.routers.pix import router as pix_router
from storefront_pay.routers.webhook import router as webhook_router

configure_logging()

logger = logging.getLogger(__name__)
STARTUP_PREFIX = "[STARTUP]"
REPO_ROOT = Path(__file__).resolve().parents[1]
ALEMBIC_CONFIG_PATH = Path(
    os.getenv("ALEMBIC_CONFIG", str(REPO_ROOT / "alembic.ini"))
)


@asynccontextmanager
async def lifespan(_: FastAPI):
    _startup_tasks()
    yield


app = FastAPI(
    title="Storefront Payments API",
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_origin_regex=CORS_ALLOW_ORIGIN_REGEX,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(ObservabilityMiddleware)

register_default_handlers()


def _startup_tasks() -> None:
    try:
        validate_database_environment()
        validate_payment_settings()
        # SQLite local usa create_all; demais bancos dependem das migrations.
        if DATABASE_URL.startswith("sqlite"):
            Base.metadata.create_all(bind=engine)
        else:
            ensure_migrations_applied(engine=engine, alembic_config_path=ALEMBIC_CONFIG_PATH)
    except Exception:
        logger.exception("%s ERROR startup failed", STARTUP_PREFIX)
        raise


# Routers
app.include_router(mercadopago_oauth_router)
app.include_router(webhook_router)
app.include_router(pix_router)
app.include_router(orders_router)
app.include_router(internal_router)


@app.get("/")
def root():
    return {"status": "ok"}


@app.get("/health")
def health():
    return {"status": "healthy"}
