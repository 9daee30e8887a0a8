import logging
import os
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from salon_backend.core.config import CORS_ORIGINS, DATABASE_URL, ENV, RESET_ADMIN_PASSWORD, VERSION
from salon_backend.core.database import Base, SessionLocal, engine
from salon_backend.core.logging_setup import configure_logging
from salon_backend.core.startup_checks import (
    ensure_auth_tables_exist,
    ensure_migrations_applied,
    validate_database_environment,
)
from salon_backend.errors import register_exception_handlers
from salon_backend.middleware.api_rate_limit import ApiRateLimitMiddleware
from salon_backend.middleware.observability import ObservabilityMiddleware
import salon_backend.models  # noqa: F401  registers every table on Base.metadata before create_all
from salon_backend.routers.auth import router as auth_router
from salon_backend.routers.customers import router as customers_router
from salon_backend.routers.reservations import router as reservations_router
from salon_backend.routers.security import router as security_router
from salon_backend.routers.staff import router as staff_router
from salon_backend.services.staff_bootstrap import upsert_staff_account

configure_logging()

logger = logging.getLogger(__name__)
BOOTSTRAP_PREFIX = "[ADMIN_BOOTSTRAP]"
DEFAULT_ADMIN_EMAIL = "admin@salon.com"
DEFAULT_ADMIN_TENANT_ID = 1
DEFAULT_ADMIN_NAME = "Admin"
REPO_ROOT = Path(__file__).resolve().parents[1]
ALEMBIC_CONFIG_PATH = Path(os.getenv("ALEMBIC_CONFIG", str(REPO_ROOT / "alembic.ini")))


@asynccontextmanager
async def lifespan(_: FastAPI):
    _startup_tasks()
    yield


app = FastAPI(
    title="Salon Management API",
    version=VERSION,
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
)

app.add_middleware(ApiRateLimitMiddleware)
app.add_middleware(ObservabilityMiddleware)
# outermost, so throttled and failed responses still carry CORS headers
app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials="*" not in CORS_ORIGINS,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["X-Request-ID", "Retry-After", "X-RateLimit-Limit", "X-RateLimit-Remaining"],
)
register_exception_handlers(app)


def _bootstrap_initial_admin() -> None:
    dev_admin_password = os.getenv("DEV_ADMIN_PASSWORD", "").strip()
    if not dev_admin_password:
        logger.warning("%s skipped: configure DEV_ADMIN_PASSWORD.", BOOTSTRAP_PREFIX)
        return

    dev_admin_email = os.getenv("DEV_ADMIN_EMAIL", DEFAULT_ADMIN_EMAIL).strip() or DEFAULT_ADMIN_EMAIL
    dev_admin_name = os.getenv("DEV_ADMIN_NAME", DEFAULT_ADMIN_NAME).strip() or DEFAULT_ADMIN_NAME
    tenant_id_raw = os.getenv("DEV_ADMIN_TENANT_ID", str(DEFAULT_ADMIN_TENANT_ID)).strip()
    try:
        dev_admin_tenant_id = int(tenant_id_raw)
    except ValueError as exc:
        raise RuntimeError(f"Invalid DEV_ADMIN_TENANT_ID: {tenant_id_raw}") from exc

    db = SessionLocal()
    try:
        admin, created = upsert_staff_account(
            db,
            tenant_id=dev_admin_tenant_id,
            email=dev_admin_email,
            name=dev_admin_name,
            role="ADMIN",
            password=dev_admin_password,
            reset_password=RESET_ADMIN_PASSWORD,
        )
        logger.info(
            "%s %s id=%s tenant_id=%s email=%s",
            BOOTSTRAP_PREFIX,
            "created" if created else "exists",
            admin.id,
            admin.tenant_id,
            admin.email,
        )
    except Exception:
        logger.exception("%s ERROR bootstrap failed", BOOTSTRAP_PREFIX)
        raise
    finally:
        db.close()


def _startup_tasks() -> None:
    logger.info("starting salon backend version=%s env=%s", VERSION, ENV)
    validate_database_environment()
    if DATABASE_URL.startswith("sqlite"):
        Base.metadata.create_all(bind=engine)
    else:
        ensure_migrations_applied(engine=engine, alembic_config_path=ALEMBIC_CONFIG_PATH)
    ensure_auth_tables_exist(engine=engine)
    _bootstrap_initial_admin()


app.include_router(auth_router)
app.include_router(staff_router)
app.include_router(customers_router)
app.include_router(reservations_router)
app.include_router(security_router)


@app.get("/")
def root():
    return {"status": "ok"}


@app.get("/health")
def health():
    return {"status": "healthy", "version": VERSION}
