from __future__ import annotations

import json
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel
from sqlalchemy import func
from sqlalchemy.orm import Session

from salon_backend.core.database import get_db
from salon_backend.deps import StaffIdentity, require_roles
from salon_backend.models.security_event import SecurityEvent
from salon_backend.models.staff import Staff
from salon_backend.services import security_audit
from salon_backend.services.permissions import Role

router = APIRouter(prefix="/api/security", tags=["security"])

LOGIN_EVENT_TYPES = (security_audit.LOGIN_SUCCESS, security_audit.LOGIN_FAILED)


class SecurityEventRead(BaseModel):
    id: int
    event_type: str
    severity: str
    description: Optional[str]
    staff_id: Optional[int]
    staff_name: Optional[str]
    staff_email: Optional[str]
    ip_address: Optional[str]
    user_agent: Optional[str]
    meta: Optional[Dict[str, Any]]
    created_at: datetime


class Pagination(BaseModel):
    page: int
    limit: int
    total: int
    total_pages: int
    has_next: bool
    has_prev: bool


class SecurityEventPage(BaseModel):
    success: bool = True
    events: List[SecurityEventRead]
    pagination: Pagination


class SecurityStats(BaseModel):
    success: bool = True
    days: int
    total_events: int
    by_event_type: Dict[str, int]
    by_severity: Dict[str, int]
    failed_logins: int
    successful_logins: int
    locked_accounts: int
    active_staff: int
    two_factor_enabled: int


def _naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _serialize(entry: SecurityEvent, staff: Optional[Staff]) -> Dict[str, Any]:
    meta = None
    if entry.meta_json:
        try:
            meta = json.loads(entry.meta_json)
        except json.JSONDecodeError:
            meta = {"raw": entry.meta_json}
    return {
        "id": entry.id,
        "event_type": entry.event_type,
        "severity": entry.severity,
        "description": entry.description,
        "staff_id": entry.staff_id,
        "staff_name": staff.name if staff else None,
        "staff_email": staff.email if staff else None,
        "ip_address": entry.ip_address,
        "user_agent": entry.user_agent,
        "meta": meta,
        "created_at": entry.created_at,
    }


def _event_page(query, *, page: int, limit: int) -> Dict[str, Any]:
    total = query.count()
    rows = (
        query.order_by(SecurityEvent.created_at.desc(), SecurityEvent.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return {
        "events": [_serialize(entry, staff) for entry, staff in rows],
        "pagination": {
            "page": page,
            "limit": limit,
            "total": total,
            "total_pages": (total + limit - 1) // limit,
            "has_next": page * limit < total,
            "has_prev": page > 1,
        },
    }


def _tenant_events(db: Session, tenant_id: int):
    # staff rows are joined within the tenant so a foreign staff_id never leaks a name
    return (
        db.query(SecurityEvent, Staff)
        .outerjoin(Staff, (Staff.id == SecurityEvent.staff_id) & (Staff.tenant_id == SecurityEvent.tenant_id))
        .filter(SecurityEvent.tenant_id == tenant_id)
    )


@router.get("/events", response_model=SecurityEventPage)
def list_security_events(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    event_type: Optional[str] = None,
    severity: Optional[str] = None,
    staff_id: Optional[int] = None,
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    identity: StaffIdentity = Depends(require_roles(Role.ADMIN)),
    db: Session = Depends(get_db),
):
    query = _tenant_events(db, identity.tenant_id)
    if event_type:
        query = query.filter(SecurityEvent.event_type == event_type.strip().upper())
    if severity:
        query = query.filter(SecurityEvent.severity == severity.strip().upper())
    if staff_id:
        query = query.filter(SecurityEvent.staff_id == staff_id)
    if start_date:
        query = query.filter(SecurityEvent.created_at >= _naive_utc(start_date))
    if end_date:
        query = query.filter(SecurityEvent.created_at <= _naive_utc(end_date))

    return _event_page(query, page=page, limit=limit)


@router.get("/login-history", response_model=SecurityEventPage)
def login_history(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    staff_id: Optional[int] = None,
    success: Optional[bool] = None,
    identity: StaffIdentity = Depends(require_roles(Role.ADMIN)),
    db: Session = Depends(get_db),
):
    if success is None:
        event_types = LOGIN_EVENT_TYPES
    else:
        event_types = (security_audit.LOGIN_SUCCESS,) if success else (security_audit.LOGIN_FAILED,)

    query = _tenant_events(db, identity.tenant_id).filter(SecurityEvent.event_type.in_(event_types))
    if staff_id:
        query = query.filter(SecurityEvent.staff_id == staff_id)

    return _event_page(query, page=page, limit=limit)


@router.get("/stats", response_model=SecurityStats)
def security_stats(
    days: int = Query(30, ge=1, le=365),
    identity: StaffIdentity = Depends(require_roles(Role.ADMIN)),
    db: Session = Depends(get_db),
):
    now = _utcnow()
    since = now - timedelta(days=days)
    window = (SecurityEvent.tenant_id == identity.tenant_id, SecurityEvent.created_at >= since)

    by_event_type = dict(
        db.query(SecurityEvent.event_type, func.count(SecurityEvent.id))
        .filter(*window)
        .group_by(SecurityEvent.event_type)
        .all()
    )
    by_severity = dict(
        db.query(SecurityEvent.severity, func.count(SecurityEvent.id))
        .filter(*window)
        .group_by(SecurityEvent.severity)
        .all()
    )

    staff_query = db.query(Staff).filter(Staff.tenant_id == identity.tenant_id, Staff.is_active.is_(True))
    return {
        "days": days,
        "total_events": sum(by_event_type.values()),
        "by_event_type": by_event_type,
        "by_severity": by_severity,
        "failed_logins": by_event_type.get(security_audit.LOGIN_FAILED, 0),
        "successful_logins": by_event_type.get(security_audit.LOGIN_SUCCESS, 0),
        "locked_accounts": staff_query.filter(Staff.locked_until.is_not(None), Staff.locked_until > now).count(),
        "active_staff": staff_query.count(),
        "two_factor_enabled": staff_query.filter(Staff.two_factor_enabled.is_(True)).count(),
    }
