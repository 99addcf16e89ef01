from __future__ import annotations

import logging
from typing import Dict, List

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from ..auth import AuthUser, get_current_user
from ..database import get_db
from .. import models, schemas
from .flock_batches import get_owned_batch

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/death-records", tags=["death-records"])

RecordList = schemas.Envelope[Dict[str, List[schemas.DeathRecordOut]]]
RecordItem = schemas.Envelope[Dict[str, schemas.DeathRecordOut]]


def _record_out(record: models.DeathRecord, batch: models.FlockBatch | None) -> schemas.DeathRecordOut:
    return schemas.DeathRecordOut(
        id=record.id,
        batch_id=record.batch_id,
        batch_name=batch.batch_name if batch else None,
        breed=batch.breed if batch else None,
        type=batch.type if batch else None,
        date=record.date,
        count=record.count,
        cause=record.cause,
        description=record.description,
        notes=record.notes,
    )


@router.get("/", response_model=RecordList)
def list_death_records(
    batch_id: int | None = Query(default=None),
    db: Session = Depends(get_db),
    user: AuthUser = Depends(get_current_user),
):
    q = (
        db.query(models.DeathRecord, models.FlockBatch)
        .join(models.FlockBatch, models.FlockBatch.id == models.DeathRecord.batch_id)
        .filter(models.DeathRecord.user_id == user.id)
    )
    if batch_id is not None:
        q = q.filter(models.DeathRecord.batch_id == batch_id)

    rows = q.order_by(models.DeathRecord.date.desc(), models.DeathRecord.id.desc()).all()
    return {"data": {"records": [_record_out(r, b) for r, b in rows]}}


@router.post("/", response_model=RecordItem, status_code=201)
def create_death_record(
    payload: schemas.DeathRecordCreate,
    db: Session = Depends(get_db),
    user: AuthUser = Depends(get_current_user),
):
    batch = get_owned_batch(db, payload.batch_id, user.id)

    if payload.count > batch.current_count:
        raise HTTPException(
            400,
            f"Cannot record {payload.count} deaths. Batch \"{batch.batch_name}\" "
            f"only has {batch.current_count} birds remaining.",
        )

    try:
        record = models.DeathRecord(**payload.model_dump(), user_id=user.id)
        batch.current_count = max(0, batch.current_count - payload.count)
        db.add(record)
        db.commit()
        db.refresh(record)
    except Exception:
        db.rollback()
        raise

    logger.info("Recorded %s deaths on batch %s", record.count, batch.id)
    return {"data": {"record": _record_out(record, batch)}}


@router.put("/{record_id}", response_model=RecordItem)
def update_death_record(
    record_id: int,
    payload: schemas.DeathRecordUpdate,
    db: Session = Depends(get_db),
    user: AuthUser = Depends(get_current_user),
):
    record = (
        db.query(models.DeathRecord)
        .filter(models.DeathRecord.id == record_id)
        .filter(models.DeathRecord.user_id == user.id)
        .first()
    )
    if not record:
        raise HTTPException(404, "Record not found or access denied")

    batch = db.get(models.FlockBatch, record.batch_id)
    changes = payload.model_dump(exclude_unset=True, exclude_none=True)

    difference = changes.get("count", record.count) - record.count
    if difference > batch.current_count:
        raise HTTPException(
            400,
            f"Cannot update death count. Batch \"{batch.batch_name}\" "
            f"only has {batch.current_count} birds remaining.",
        )

    for field, value in changes.items():
        setattr(record, field, value)
    # Corrections move the birds back into (or out of) the batch
    batch.current_count = max(0, batch.current_count - difference)

    db.commit()
    db.refresh(record)
    return {"data": {"record": _record_out(record, batch)}}


@router.delete("/{record_id}", response_model=schemas.Envelope[dict])
def delete_death_record(
    record_id: int,
    db: Session = Depends(get_db),
    user: AuthUser = Depends(get_current_user),
):
    record = (
        db.query(models.DeathRecord)
        .filter(models.DeathRecord.id == record_id)
        .filter(models.DeathRecord.user_id == user.id)
        .first()
    )
    if not record:
        raise HTTPException(404, "Record not found or access denied")

    batch = db.get(models.FlockBatch, record.batch_id)
    if batch:
        batch.current_count += record.count

    db.delete(record)
    db.commit()
    return {"message": "Death record deleted successfully"}
