from __future__ import annotations

from typing import Dict, List

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from ..auth import AuthUser, get_current_user
from ..database import get_db
from .. import models, schemas

router = APIRouter(prefix="/sales", tags=["sales"])

SaleList = schemas.Envelope[Dict[str, List[schemas.SaleOut]]]
SaleItem = schemas.Envelope[Dict[str, schemas.SaleOut]]


def _sale_out(sale: models.Sale, customer_name: str | None) -> schemas.SaleOut:
    out = schemas.SaleOut.model_validate(sale)
    out.customer_name = customer_name
    return out


@router.get("/", response_model=SaleList)
def list_sales(
    db: Session = Depends(get_db),
    user: AuthUser = Depends(get_current_user),
):
    rows = (
        db.query(models.Sale, models.Customer.name)
        .outerjoin(models.Customer, models.Customer.id == models.Sale.customer_id)
        .filter(models.Sale.user_id == user.id)
        .order_by(models.Sale.sale_date.desc())
        .all()
    )
    return {"data": {"sales": [_sale_out(s, name or "Unknown Customer") for s, name in rows]}}


@router.post("/", response_model=SaleItem, status_code=201)
def create_sale(
    payload: schemas.SaleCreate,
    db: Session = Depends(get_db),
    user: AuthUser = Depends(get_current_user),
):
    customer = None
    if payload.customer_id is not None:
        customer = (
            db.query(models.Customer)
            .filter(models.Customer.id == payload.customer_id)
            .filter(models.Customer.user_id == user.id)
            .first()
        )
        if not customer:
            raise HTTPException(404, "Customer not found")

    sale = models.Sale(**payload.model_dump(), user_id=user.id)
    db.add(sale)
    db.commit()
    db.refresh(sale)
    return {"data": {"sale": _sale_out(sale, customer.name if customer else None)}}


@router.delete("/{sale_id}", response_model=schemas.Envelope[dict])
def delete_sale(
    sale_id: int,
    db: Session = Depends(get_db),
    user: AuthUser = Depends(get_current_user),
):
    sale = (
        db.query(models.Sale)
        .filter(models.Sale.id == sale_id)
        .filter(models.Sale.user_id == user.id)
        .first()
    )
    if not sale:
        raise HTTPException(404, "Sale not found")
    db.delete(sale)
    db.commit()
    return {"message": "Sale deleted successfully"}
