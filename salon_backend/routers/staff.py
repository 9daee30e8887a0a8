from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, Depends, Request, status
from pydantic import BaseModel, EmailStr, Field
from sqlalchemy import func
from sqlalchemy.orm import Session

from salon_backend.core.database import get_db
from salon_backend.deps import StaffIdentity, require_roles
from salon_backend.errors import NotFoundError, ValidationError
from salon_backend.models.staff import Staff
from salon_backend.schemas.auth import MessageResponse
from salon_backend.services import security_audit
from salon_backend.services.credentials import normalize_email
from salon_backend.services.login_attempts import is_locked, unlock_account
from salon_backend.services.passwords import hash_password, password_strength_errors
from salon_backend.services.permissions import Role
from salon_backend.services.security_audit import log_security_event

router = APIRouter(prefix="/api/staff", tags=["staff"])


class StaffMemberRead(BaseModel):
    id: int
    tenant_id: int
    email: str
    name: str
    role: str
    is_active: bool
    two_factor_enabled: bool
    failed_login_count: int
    locked: bool


class StaffCreate(BaseModel):
    email: EmailStr
    name: str = Field(..., min_length=1)
    role: str = Field("STAFF", min_length=1)
    password: str = Field(..., min_length=1)


class StaffUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1)
    role: Optional[str] = Field(None, min_length=1)
    is_active: Optional[bool] = None


def _serialize(entry: Staff) -> dict:
    return {
        "id": entry.id,
        "tenant_id": entry.tenant_id,
        "email": entry.email,
        "name": entry.name,
        "role": entry.role,
        "is_active": bool(entry.is_active),
        "two_factor_enabled": bool(entry.two_factor_enabled),
        "failed_login_count": entry.failed_login_count or 0,
        "locked": is_locked(entry),
    }


def _parse_role(value: str) -> Role:
    role = Role.parse(value)
    if role is None:
        raise ValidationError(
            "Invalid role",
            details=[{"field": "role", "message": f"must be one of {', '.join(r.value for r in Role)}"}],
        )
    return role


def _get_member(db: Session, tenant_id: int, staff_id: int) -> Staff:
    # another tenant's staff member is reported as missing
    entry = db.query(Staff).filter(Staff.id == staff_id, Staff.tenant_id == tenant_id).first()
    if entry is None:
        raise NotFoundError("Staff member not found")
    return entry


@router.get("", response_model=List[StaffMemberRead])
def list_staff(
    identity: StaffIdentity = Depends(require_roles(Role.ADMIN)),
    db: Session = Depends(get_db),
):
    members = (
        db.query(Staff)
        .filter(Staff.tenant_id == identity.tenant_id)
        .order_by(Staff.id.asc())
        .all()
    )
    return [_serialize(entry) for entry in members]


@router.post("", response_model=StaffMemberRead, status_code=status.HTTP_201_CREATED)
def create_staff(
    payload: StaffCreate,
    identity: StaffIdentity = Depends(require_roles(Role.ADMIN)),
    db: Session = Depends(get_db),
):
    role = _parse_role(payload.role)
    errors = password_strength_errors(payload.password)
    if errors:
        raise ValidationError(
            "Password does not meet the requirements",
            details=[{"field": "password", "message": message} for message in errors],
        )

    email = normalize_email(payload.email)
    existing = (
        db.query(Staff)
        .filter(Staff.tenant_id == identity.tenant_id, func.lower(Staff.email) == email)
        .first()
    )
    if existing:
        raise ValidationError("Email already registered", details=[{"field": "email", "message": "already in use"}])

    member = Staff(
        tenant_id=identity.tenant_id,
        email=email,
        name=payload.name.strip(),
        role=role.value,
        password_hash=hash_password(payload.password),
        is_active=True,
        failed_login_count=0,
    )
    db.add(member)
    db.commit()
    db.refresh(member)
    return _serialize(member)


@router.patch("/{staff_id}", response_model=StaffMemberRead)
def update_staff(
    staff_id: int,
    payload: StaffUpdate,
    identity: StaffIdentity = Depends(require_roles(Role.ADMIN)),
    db: Session = Depends(get_db),
):
    member = _get_member(db, identity.tenant_id, staff_id)

    if member.id == identity.staff_id and (payload.is_active is False or payload.role is not None):
        raise ValidationError("You cannot change your own role or deactivate yourself")

    if payload.name is not None:
        member.name = payload.name.strip()
    if payload.role is not None:
        member.role = _parse_role(payload.role).value
    if payload.is_active is not None:
        member.is_active = payload.is_active

    db.commit()
    db.refresh(member)
    return _serialize(member)


@router.post("/{staff_id}/unlock", response_model=MessageResponse)
def unlock_staff(
    staff_id: int,
    request: Request,
    identity: StaffIdentity = Depends(require_roles(Role.ADMIN)),
    db: Session = Depends(get_db),
):
    member = _get_member(db, identity.tenant_id, staff_id)
    unlock_account(db, member.id)
    log_security_event(
        db,
        event_type=security_audit.ACCOUNT_UNLOCKED,
        tenant_id=member.tenant_id,
        staff_id=member.id,
        request=request,
        meta={"unlocked_by": identity.staff_id},
    )
    db.commit()
    return MessageResponse(message="Account unlocked")
