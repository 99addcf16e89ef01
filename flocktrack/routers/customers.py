from __future__ import annotations

from typing import Dict, List

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from ..auth import AuthUser, get_current_user
from ..database import get_db
from .. import models, schemas

router = APIRouter(prefix="/customers", tags=["customers"])

CustomerList = schemas.Envelope[Dict[str, List[schemas.CustomerOut]]]
CustomerItem = schemas.Envelope[Dict[str, schemas.CustomerOut]]


@router.get("/", response_model=CustomerList)
def list_customers(
    db: Session = Depends(get_db),
    user: AuthUser = Depends(get_current_user),
):
    customers = (
        db.query(models.Customer)
        .filter(models.Customer.user_id == user.id)
        .filter(models.Customer.is_active.is_(True))
        .order_by(models.Customer.name.asc())
        .all()
    )
    return {"data": {"customers": customers}}


@router.post("/", response_model=CustomerItem, status_code=201)
def create_customer(
    payload: schemas.CustomerIn,
    db: Session = Depends(get_db),
    user: AuthUser = Depends(get_current_user),
):
    customer = models.Customer(
        user_id=user.id,
        name=payload.name,
        phone=payload.phone,
        notes=payload.notes,
        is_active=True,
    )
    db.add(customer)
    db.commit()
    db.refresh(customer)
    return {"data": {"customer": customer}}


@router.put("/{customer_id}", response_model=CustomerItem)
def update_customer(
    customer_id: int,
    payload: schemas.CustomerIn,
    db: Session = Depends(get_db),
    user: AuthUser = Depends(get_current_user),
):
    customer = (
        db.query(models.Customer)
        .filter(models.Customer.id == customer_id)
        .filter(models.Customer.user_id == user.id)
        .first()
    )
    if not customer:
        raise HTTPException(404, "Customer not found")

    customer.name = payload.name
    customer.phone = payload.phone
    customer.notes = payload.notes
    customer.is_active = payload.is_active if payload.is_active is not None else True

    db.commit()
    db.refresh(customer)
    return {"data": {"customer": customer}}
