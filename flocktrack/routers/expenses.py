from __future__ import annotations

from typing import Dict, List

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from ..auth import AuthUser, get_current_user
from ..database import get_db
from .. import models, schemas

router = APIRouter(prefix="/expenses", tags=["expenses"])


@router.get("/", response_model=schemas.Envelope[Dict[str, List[schemas.ExpenseOut]]])
def list_expenses(
    db: Session = Depends(get_db),
    user: AuthUser = Depends(get_current_user),
):
    expenses = (
        db.query(models.Expense)
        .filter(models.Expense.user_id == user.id)
        .order_by(models.Expense.date.desc())
        .all()
    )
    return {"data": {"expenses": expenses}}


@router.post("/", response_model=schemas.Envelope[Dict[str, schemas.ExpenseOut]], status_code=201)
def create_expense(
    payload: schemas.ExpenseCreate,
    db: Session = Depends(get_db),
    user: AuthUser = Depends(get_current_user),
):
    entry = models.Expense(**payload.model_dump(), user_id=user.id)
    db.add(entry)
    db.commit()
    db.refresh(entry)
    return {"data": {"expense": entry}}


@router.delete("/{expense_id}", response_model=schemas.Envelope[dict])
def delete_expense(
    expense_id: int,
    db: Session = Depends(get_db),
    user: AuthUser = Depends(get_current_user),
):
    entry = (
        db.query(models.Expense)
        .filter(models.Expense.id == expense_id)
        .filter(models.Expense.user_id == user.id)
        .first()
    )
    if not entry:
        raise HTTPException(404, "Expense not found")
    db.delete(entry)
    db.commit()
    return {"message": "Expense deleted successfully"}
