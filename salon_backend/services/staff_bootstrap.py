from __future__ import annotations

from datetime import datetime

from sqlalchemy import func, inspect
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session

from salon_backend.models.staff import Staff
from salon_backend.models.tenant import Tenant
from salon_backend.services.credentials import normalize_email
from salon_backend.services.passwords import hash_password, password_looks_hashed
from salon_backend.services.permissions import Role


def ensure_staff_table(engine: Engine) -> None:
    inspector = inspect(engine)
    if not inspector.has_table("staff"):
        raise RuntimeError("Table staff not found. Run `alembic upgrade head` first.")


def resolve_password_hash(password: str) -> str:
    if password_looks_hashed(password):
        return password
    return hash_password(password)


def ensure_tenant(db: Session, *, tenant_id: int, name: str | None = None) -> Tenant:
    tenant = db.query(Tenant).filter(Tenant.id == tenant_id).first()
    if tenant is not None:
        return tenant
    tenant = Tenant(id=tenant_id, name=name or f"Salon {tenant_id}", slug=f"salon-{tenant_id}", is_active=True)
    db.add(tenant)
    db.flush()
    return tenant


def upsert_staff_account(
    db: Session,
    *,
    tenant_id: int,
    email: str,
    name: str,
    role: str,
    password: str | None,
    reset_password: bool = True,
) -> tuple[Staff, bool]:
    """Create or refresh a staff account; returns ``(staff, created)``."""
    resolved_role = Role.parse(role)
    if resolved_role is None:
        raise ValueError(f"Unknown role: {role}")

    normalized_email = normalize_email(email)
    ensure_tenant(db, tenant_id=tenant_id)
    existing = (
        db.query(Staff)
        .filter(Staff.tenant_id == tenant_id, func.lower(Staff.email) == normalized_email)
        .first()
    )
    if existing:
        existing.name = name
        existing.role = resolved_role.value
        existing.is_active = True
        if password and reset_password:
            existing.password_hash = resolve_password_hash(password)
            existing.failed_login_count = 0
            existing.locked_until = None
        db.commit()
        db.refresh(existing)
        return existing, False

    if not password:
        raise ValueError("A password is required to create a new account.")

    staff = Staff(
        tenant_id=tenant_id,
        email=normalized_email,
        name=name,
        password_hash=resolve_password_hash(password),
        role=resolved_role.value,
        is_active=True,
        failed_login_count=0,
        created_at=datetime.utcnow(),
    )
    db.add(staff)
    db.commit()
    db.refresh(staff)
    return staff, True
