from __future__ import annotations

import bcrypt
import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import salon_backend.models  # noqa: F401
from salon_backend.core.database import Base, get_db
from salon_backend.core.rate_limiter import InMemoryRateLimiterService, get_login_rate_limiter
from salon_backend.errors import register_exception_handlers
from salon_backend.models.customer import Customer
from salon_backend.models.staff import Staff
from salon_backend.models.tenant import Tenant
from salon_backend.routers.auth import router as auth_router
from salon_backend.routers.customers import router as customers_router
from salon_backend.routers.reservations import router as reservations_router
from salon_backend.routers.security import router as security_router
from salon_backend.routers.staff import router as staff_router
from salon_backend.services.tokens import get_token_issuer
from tests.fixtures_data import (
    ADMIN_ACCOUNT,
    CUSTOMERS,
    MANAGER_ACCOUNT,
    OTHER_TENANT_ADMIN,
    STAFF_ACCOUNT,
    TENANTS,
)

ACCOUNTS = [ADMIN_ACCOUNT, STAFF_ACCOUNT, MANAGER_ACCOUNT, OTHER_TENANT_ADMIN]


def _cheap_hash(password: str) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt(rounds=4)).decode("utf-8")


_PASSWORD_HASHES = {account["email"]: _cheap_hash(account["password"]) for account in ACCOUNTS}


@pytest.fixture
def session_factory():
    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    factory = sessionmaker(autocommit=False, autoflush=False, bind=engine)

    db = factory()
    for tenant in TENANTS:
        db.add(Tenant(**tenant))
    for account in ACCOUNTS:
        fields = {key: value for key, value in account.items() if key != "password"}
        db.add(Staff(**fields, password_hash=_PASSWORD_HASHES[account["email"]], failed_login_count=0))
    for customer in CUSTOMERS:
        db.add(Customer(**customer))
    db.commit()
    db.close()

    yield factory
    engine.dispose()


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def login_limiter():
    return InMemoryRateLimiterService(limit=1000, window_seconds=60)


@pytest.fixture
def app(session_factory, login_limiter):
    application = FastAPI()
    register_exception_handlers(application)
    application.include_router(auth_router)
    application.include_router(staff_router)
    application.include_router(customers_router)
    application.include_router(reservations_router)
    application.include_router(security_router)

    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    application.dependency_overrides[get_db] = override_get_db
    application.dependency_overrides[get_login_rate_limiter] = lambda: login_limiter
    return application


@pytest.fixture
def client(app):
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def issue_token():
    def _issue(account: dict, **kwargs) -> str:
        return get_token_issuer().issue(
            account["id"], account["email"], account["role"], account["tenant_id"], **kwargs
        )

    return _issue


@pytest.fixture
def auth_headers(issue_token):
    def _headers(account: dict) -> dict:
        return {"Authorization": f"Bearer {issue_token(account)}"}

    return _headers
