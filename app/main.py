import logging
import os
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.core.config import CORS_ORIGINS, DATABASE_URL
from app.core.database import Base, SessionLocal, engine
from app.core.http_errors import storefront_error_handler
from app.core.logging_setup import configure_logging
from app.core.startup_checks import ensure_migrations_applied, validate_database_environment, validate_secrets
from app.middleware.cart_session import CartSessionMiddleware
from app.middleware.observability import ObservabilityMiddleware
import app.models  # garante que os models são importados antes do create_all

from app.routers.admin_auth import router as admin_auth_router
from app.routers.admin_discounts import router as admin_discounts_router
from app.routers.admin_orders import router as admin_orders_router
from app.routers.admin_stock import router as admin_stock_router
from app.routers.cart import router as cart_router
from app.routers.internal_metrics import router as internal_metrics_router
from app.routers.orders import router as orders_router
from app.services.admin_auth import bootstrap_admin
from app.services.errors import StorefrontError

configure_logging()

logger = logging.getLogger(__name__)
BOOTSTRAP_PREFIX = "[ADMIN_BOOTSTRAP]"
DEFAULT_ADMIN_EMAIL = "admin@example.com"
DEFAULT_ADMIN_NAME = "Admin"
REPO_ROOT = Path(__file__).resolve().parents[1]
ALEMBIC_CONFIG_PATH = Path(
    os.getenv("ALEMBIC_CONFIG", str(REPO_ROOT / "alembic.ini"))
)


@asynccontextmanager
async def lifespan(_: FastAPI):
    _startup_tasks()
    yield


app = FastAPI(
    title="Storefront API",
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
)

app.add_exception_handler(StorefrontError, storefront_error_handler)

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
# último adicionado roda primeiro: cart_session_id já existe no log da requisição
app.add_middleware(ObservabilityMiddleware)
app.add_middleware(CartSessionMiddleware)


def _bootstrap_initial_admin() -> None:
    dev_admin_password = os.getenv("DEV_ADMIN_PASSWORD", "").strip()
    if not dev_admin_password:
        logger.info("%s skipped: configure DEV_ADMIN_PASSWORD.", BOOTSTRAP_PREFIX)
        return

    db = SessionLocal()
    try:
        admin, created = bootstrap_admin(
            db,
            email=os.getenv("DEV_ADMIN_EMAIL", "").strip() or DEFAULT_ADMIN_EMAIL,
            password=dev_admin_password,
            name=os.getenv("DEV_ADMIN_NAME", "").strip() or DEFAULT_ADMIN_NAME,
        )
        logger.info("%s %s id=%s email=%s", BOOTSTRAP_PREFIX, "created" if created else "exists", admin.id, admin.email)
    except Exception:
        logger.exception("%s ERROR bootstrap failed", BOOTSTRAP_PREFIX)
        raise
    finally:
        db.close()


def _startup_tasks() -> None:
    try:
        validate_database_environment()
        validate_secrets()
        # Cria tabelas (dev). Em produção, use migrations.
        if DATABASE_URL.startswith("sqlite"):
            Base.metadata.create_all(bind=engine)
        ensure_migrations_applied(engine=engine, alembic_config_path=ALEMBIC_CONFIG_PATH)
        _bootstrap_initial_admin()
    except Exception:
        logger.exception("[STARTUP] ERROR startup failed")
        raise


# Routers
app.include_router(cart_router)
app.include_router(orders_router)
app.include_router(admin_auth_router)
app.include_router(admin_discounts_router)
app.include_router(admin_stock_router)
app.include_router(admin_orders_router)
app.include_router(internal_metrics_router)


@app.get("/")
def root():
    return {"status": "ok"}


@app.get("/health")
def health():
    return {"status": "healthy"}
