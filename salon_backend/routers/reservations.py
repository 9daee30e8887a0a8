from __future__ import annotations

from datetime import date, datetime, time, timedelta
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, Field, model_validator
from sqlalchemy.orm import Session

from salon_backend.core.database import get_db
from salon_backend.deps import StaffIdentity, require_permission
from salon_backend.errors import NotFoundError, ValidationError
from salon_backend.models.customer import Customer
from salon_backend.models.reservation import Reservation
from salon_backend.models.staff import Staff
from salon_backend.services.permissions import Action, Resource

router = APIRouter(prefix="/api/reservations", tags=["reservations"])

RESERVATION_STATUSES = {"CONFIRMED", "PENDING", "CANCELLED", "COMPLETED", "NO_SHOW"}


class ReservationRead(BaseModel):
    id: int
    tenant_id: int
    customer_id: int
    staff_id: Optional[int] = None
    starts_at: datetime
    ends_at: Optional[datetime] = None
    menu: Optional[str] = None
    status: str

    model_config = {"from_attributes": True}


class ReservationCreate(BaseModel):
    customer_id: int = Field(..., ge=1)
    staff_id: Optional[int] = Field(None, ge=1)
    starts_at: datetime
    ends_at: Optional[datetime] = None
    menu: Optional[str] = None
    status: str = "CONFIRMED"

    @model_validator(mode="after")
    def _ends_after_start(self):
        if self.ends_at is not None and self.ends_at <= self.starts_at:
            raise ValueError("ends_at must be after starts_at")
        return self


@router.get("", response_model=List[ReservationRead])
def list_reservations(
    day: Optional[date] = Query(None, alias="date"),
    identity: StaffIdentity = Depends(require_permission(Resource.RESERVATIONS, Action.READ)),
    db: Session = Depends(get_db),
):
    query = db.query(Reservation).filter(Reservation.tenant_id == identity.tenant_id)
    if day is not None:
        start = datetime.combine(day, time.min)
        query = query.filter(Reservation.starts_at >= start, Reservation.starts_at < start + timedelta(days=1))
    return query.order_by(Reservation.starts_at.asc(), Reservation.id.asc()).all()


@router.post("", response_model=ReservationRead, status_code=status.HTTP_201_CREATED)
def create_reservation(
    payload: ReservationCreate,
    identity: StaffIdentity = Depends(require_permission(Resource.RESERVATIONS, Action.WRITE)),
    db: Session = Depends(get_db),
):
    reservation_status = payload.status.strip().upper()
    if reservation_status not in RESERVATION_STATUSES:
        raise ValidationError("Invalid status", details=[{"field": "status", "message": "unknown status"}])

    customer = (
        db.query(Customer.id)
        .filter(Customer.id == payload.customer_id, Customer.tenant_id == identity.tenant_id)
        .first()
    )
    if customer is None:
        raise NotFoundError("Customer not found")

    if payload.staff_id is not None:
        assignee = (
            db.query(Staff.id)
            .filter(Staff.id == payload.staff_id, Staff.tenant_id == identity.tenant_id)
            .first()
        )
        if assignee is None:
            raise NotFoundError("Staff member not found")

    reservation = Reservation(
        tenant_id=identity.tenant_id,
        customer_id=payload.customer_id,
        staff_id=payload.staff_id,
        starts_at=payload.starts_at,
        ends_at=payload.ends_at,
        menu=payload.menu,
        status=reservation_status,
    )
    db.add(reservation)
    db.commit()
    db.refresh(reservation)
    return reservation
