"""
Per-batch timeline events.

Every batch event also writes a matching entry on the flock-wide timeline
(``flock_events``), and brooding_start / brooding_stop events are the
source of a batch's ``brooding_count``: after any change touching one of
them the count is replayed from the batch's full brooding history.
"""
from __future__ import annotations

import logging
from typing import Dict, List

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from ..auth import AuthUser, get_current_user
from ..database import get_db
from ..services.summary import BROODING_EVENTS, brooding_count_from_events
from .. import models, schemas
from .flock_batches import get_owned_batch

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/batch-events", tags=["batch-events"])

EventList = schemas.Envelope[Dict[str, List[schemas.BatchEventOut]]]
EventItem = schemas.Envelope[Dict[str, schemas.BatchEventOut]]

# batch event type -> (flock event type, description); {batch} is the batch name
FLOCK_TIMELINE = {
    "health_check": ("other", "Health check performed on {batch} batch"),
    "vaccination": ("other", "Vaccination administered to {batch} batch"),
    "relocation": ("other", "{batch} batch relocated"),
    "breeding": ("broody", "Breeding activity in {batch} batch"),
    "laying_start": ("laying_start", "{batch} batch started laying eggs"),
    "production_note": ("other", "Production update for {batch} batch"),
    "brooding_start": ("broody", "Brooding started in {batch} batch"),
    "brooding_stop": ("other", "Brooding ended in {batch} batch"),
}


def _timeline_fields(event: models.BatchEvent, batch_name: str) -> dict:
    flock_type, template = FLOCK_TIMELINE.get(event.type, ("other", "{batch}: {description}"))
    notes = f"From {batch_name} batch"
    if event.notes:
        notes += f": {event.notes}"
    return {
        "date": event.date,
        "type": flock_type,
        "description": template.format(batch=batch_name, description=event.description),
        "affected_birds": event.affected_count,
        "notes": notes,
    }


def _sync_timeline(db: Session, event: models.BatchEvent, batch: models.FlockBatch) -> None:
    fields = _timeline_fields(event, batch.batch_name)
    flock_event = db.get(models.FlockEvent, event.flock_event_id) if event.flock_event_id else None
    if flock_event is None or flock_event.user_id != event.user_id:
        flock_event = models.FlockEvent(user_id=event.user_id, **fields)
        db.add(flock_event)
        db.flush()
        event.flock_event_id = flock_event.id
    else:
        for field, value in fields.items():
            setattr(flock_event, field, value)


def _recount_brooding(db: Session, batch: models.FlockBatch) -> None:
    db.flush()
    events = (
        db.query(models.BatchEvent)
        .filter(models.BatchEvent.batch_id == batch.id)
        .filter(models.BatchEvent.user_id == batch.user_id)
        .filter(models.BatchEvent.type.in_(BROODING_EVENTS))
        .order_by(models.BatchEvent.date.asc(), models.BatchEvent.id.asc())
        .all()
    )
    batch.brooding_count = brooding_count_from_events(events)
    logger.info("Batch %s brooding count is now %s", batch.id, batch.brooding_count)


def _get_owned_event(db: Session, event_id: int, user_id: str) -> models.BatchEvent:
    event = (
        db.query(models.BatchEvent)
        .filter(models.BatchEvent.id == event_id)
        .filter(models.BatchEvent.user_id == user_id)
        .first()
    )
    if not event:
        raise HTTPException(404, "Event not found or access denied")
    return event


@router.get("/", response_model=EventList)
def list_batch_events(
    batch_id: int = Query(...),
    db: Session = Depends(get_db),
    user: AuthUser = Depends(get_current_user),
):
    events = (
        db.query(models.BatchEvent)
        .filter(models.BatchEvent.batch_id == batch_id)
        .filter(models.BatchEvent.user_id == user.id)
        .order_by(models.BatchEvent.date.desc(), models.BatchEvent.id.desc())
        .all()
    )
    return {"data": {"events": events}}


@router.post("/", response_model=EventItem, status_code=201)
def create_batch_event(
    payload: schemas.BatchEventCreate,
    db: Session = Depends(get_db),
    user: AuthUser = Depends(get_current_user),
):
    batch = get_owned_batch(db, payload.batch_id, user.id, active_only=False)

    try:
        event = models.BatchEvent(**payload.model_dump(), user_id=user.id)
        db.add(event)
        db.flush()
        _sync_timeline(db, event, batch)
        if event.type in BROODING_EVENTS:
            _recount_brooding(db, batch)
        db.commit()
        db.refresh(event)
    except Exception:
        db.rollback()
        raise

    return {"data": {"event": event}}


@router.put("/{event_id}", response_model=EventItem)
def update_batch_event(
    event_id: int,
    payload: schemas.BatchEventUpdate,
    db: Session = Depends(get_db),
    user: AuthUser = Depends(get_current_user),
):
    event = _get_owned_event(db, event_id, user.id)
    batch = db.get(models.FlockBatch, event.batch_id)
    old_type = event.type

    for field, value in payload.model_dump(exclude_unset=True).items():
        setattr(event, field, value)

    _sync_timeline(db, event, batch)
    if old_type in BROODING_EVENTS or event.type in BROODING_EVENTS:
        _recount_brooding(db, batch)

    db.commit()
    db.refresh(event)
    return {"data": {"event": event}}


@router.delete("/{event_id}", response_model=schemas.Envelope[dict])
def delete_batch_event(
    event_id: int,
    db: Session = Depends(get_db),
    user: AuthUser = Depends(get_current_user),
):
    event = _get_owned_event(db, event_id, user.id)
    batch = db.get(models.FlockBatch, event.batch_id)

    if event.flock_event_id:
        flock_event = db.get(models.FlockEvent, event.flock_event_id)
        if flock_event is not None and flock_event.user_id == user.id:
            db.delete(flock_event)

    was_brooding = event.type in BROODING_EVENTS
    db.delete(event)
    if was_brooding and batch is not None:
        _recount_brooding(db, batch)

    db.commit()
    return {"message": "Event deleted successfully"}
