from __future__ import annotations

import logging
from typing import Dict, List

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from ..auth import AuthUser, get_current_user
from ..database import get_db
from .. import models, schemas

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/flock-batches", tags=["flock-batches"])

BatchList = schemas.Envelope[Dict[str, List[schemas.FlockBatchOut]]]
BatchItem = schemas.Envelope[Dict[str, schemas.FlockBatchOut]]


def get_owned_batch(db: Session, batch_id: int, user_id: str, active_only: bool = True) -> models.FlockBatch:
    q = (
        db.query(models.FlockBatch)
        .filter(models.FlockBatch.id == batch_id)
        .filter(models.FlockBatch.user_id == user_id)
    )
    if active_only:
        q = q.filter(models.FlockBatch.is_active.is_(True))
    batch = q.first()
    if not batch:
        raise HTTPException(404, "Batch not found or access denied")
    return batch


@router.get("/", response_model=BatchList)
def list_batches(
    db: Session = Depends(get_db),
    user: AuthUser = Depends(get_current_user),
):
    batches = (
        db.query(models.FlockBatch)
        .filter(models.FlockBatch.user_id == user.id)
        .filter(models.FlockBatch.is_active.is_(True))
        .order_by(models.FlockBatch.acquisition_date.desc())
        .all()
    )
    return {"data": {"batches": batches}}


@router.get("/{batch_id}", response_model=BatchItem)
def get_batch(
    batch_id: int,
    db: Session = Depends(get_db),
    user: AuthUser = Depends(get_current_user),
):
    return {"data": {"batch": get_owned_batch(db, batch_id, user.id)}}


@router.post("/", response_model=BatchItem, status_code=201)
def create_batch(
    payload: schemas.FlockBatchCreate,
    db: Session = Depends(get_db),
    user: AuthUser = Depends(get_current_user),
):
    batch = models.FlockBatch(
        **payload.model_dump(),
        user_id=user.id,
        current_count=payload.initial_count,
        brooding_count=0,
        is_active=True,
    )
    try:
        db.add(batch)
        db.flush()

        # Acquisition cost is tracked as an expense as well
        if payload.cost > 0:
            db.add(models.Expense(
                user_id=user.id,
                date=payload.acquisition_date,
                category="Birds",
                description=f"Batch acquisition: {payload.batch_name} ({payload.initial_count} {payload.type})",
                amount=payload.cost,
            ))

        db.commit()
        db.refresh(batch)
    except Exception:
        db.rollback()
        raise

    logger.info("Created batch %s for user %s", batch.id, user.id)
    return {"data": {"batch": batch}}


@router.put("/{batch_id}", response_model=BatchItem)
def update_batch(
    batch_id: int,
    payload: schemas.FlockBatchUpdate,
    db: Session = Depends(get_db),
    user: AuthUser = Depends(get_current_user),
):
    batch = get_owned_batch(db, batch_id, user.id, active_only=False)

    # Only update fields that were actually provided
    for field, value in payload.model_dump(exclude_unset=True).items():
        setattr(batch, field, value)

    if batch.actual_laying_start_date and batch.actual_laying_start_date < batch.acquisition_date:
        db.rollback()
        raise HTTPException(400, "Laying start date cannot be before acquisition date")

    db.commit()
    db.refresh(batch)
    return {"data": {"batch": batch}}


@router.delete("/{batch_id}", response_model=schemas.Envelope[dict])
def deactivate_batch(
    batch_id: int,
    db: Session = Depends(get_db),
    user: AuthUser = Depends(get_current_user),
):
    """Soft delete: the batch and its death records stay for history."""
    batch = get_owned_batch(db, batch_id, user.id)
    batch.is_active = False
    db.commit()
    return {"message": "Batch deactivated successfully"}
