from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, EmailStr, Field
from sqlalchemy import or_
from sqlalchemy.orm import Session

from salon_backend.core.database import get_db
from salon_backend.deps import StaffIdentity, require_permission
from salon_backend.errors import NotFoundError
from salon_backend.models.customer import Customer
from salon_backend.services.permissions import Action, Resource

router = APIRouter(prefix="/api/customers", tags=["customers"])


class CustomerRead(BaseModel):
    id: int
    tenant_id: int
    name: str
    phone: Optional[str] = None
    email: Optional[str] = None
    notes: Optional[str] = None
    created_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class CustomerCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=120)
    phone: Optional[str] = Field(None, max_length=30)
    email: Optional[EmailStr] = None
    notes: Optional[str] = None


@router.get("", response_model=List[CustomerRead])
def list_customers(
    q: Optional[str] = Query(None, description="Search by name or phone"),
    identity: StaffIdentity = Depends(require_permission(Resource.CUSTOMERS, Action.READ)),
    db: Session = Depends(get_db),
):
    query = db.query(Customer).filter(Customer.tenant_id == identity.tenant_id)
    term = (q or "").strip()
    if term:
        like = f"%{term}%"
        query = query.filter(or_(Customer.name.ilike(like), Customer.phone.ilike(like)))
    return query.order_by(Customer.id.asc()).all()


@router.post("", response_model=CustomerRead, status_code=status.HTTP_201_CREATED)
def create_customer(
    payload: CustomerCreate,
    identity: StaffIdentity = Depends(require_permission(Resource.CUSTOMERS, Action.WRITE)),
    db: Session = Depends(get_db),
):
    customer = Customer(
        tenant_id=identity.tenant_id,
        name=payload.name.strip(),
        phone=(payload.phone or "").strip() or None,
        email=str(payload.email).lower() if payload.email else None,
        notes=payload.notes,
    )
    db.add(customer)
    db.commit()
    db.refresh(customer)
    return customer


@router.get("/{customer_id}", response_model=CustomerRead)
def get_customer(
    customer_id: int,
    identity: StaffIdentity = Depends(require_permission(Resource.CUSTOMERS, Action.READ)),
    db: Session = Depends(get_db),
):
    customer = (
        db.query(Customer)
        .filter(Customer.id == customer_id, Customer.tenant_id == identity.tenant_id)
        .first()
    )
    if customer is None:
        raise NotFoundError("Customer not found")
    return customer
