from __future__ import annotations

from typing import Dict, List

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from ..auth import AuthUser, get_current_user
from ..database import get_db
from .. import models, schemas

router = APIRouter(prefix="/flock-events", tags=["flock-events"])

EventItem = schemas.Envelope[Dict[str, schemas.FlockEventOut]]


def _get_owned_event(db: Session, event_id: int, user_id: str) -> models.FlockEvent:
    event = (
        db.query(models.FlockEvent)
        .filter(models.FlockEvent.id == event_id)
        .filter(models.FlockEvent.user_id == user_id)
        .first()
    )
    if not event:
        raise HTTPException(404, "Event not found")
    return event


@router.get("/", response_model=schemas.Envelope[Dict[str, List[schemas.FlockEventOut]]])
def list_events(
    db: Session = Depends(get_db),
    user: AuthUser = Depends(get_current_user),
):
    events = (
        db.query(models.FlockEvent)
        .filter(models.FlockEvent.user_id == user.id)
        .order_by(models.FlockEvent.date.asc(), models.FlockEvent.id.asc())
        .all()
    )
    return {"data": {"events": events}}


@router.post("/", response_model=EventItem, status_code=201)
def create_event(
    payload: schemas.FlockEventCreate,
    db: Session = Depends(get_db),
    user: AuthUser = Depends(get_current_user),
):
    event = models.FlockEvent(**payload.model_dump(), user_id=user.id)
    db.add(event)
    db.commit()
    db.refresh(event)
    return {"data": {"event": event}}


@router.put("/{event_id}", response_model=EventItem)
def update_event(
    event_id: int,
    payload: schemas.FlockEventCreate,
    db: Session = Depends(get_db),
    user: AuthUser = Depends(get_current_user),
):
    event = _get_owned_event(db, event_id, user.id)
    for field, value in payload.model_dump().items():
        setattr(event, field, value)
    db.commit()
    db.refresh(event)
    return {"data": {"event": event}}


@router.delete("/{event_id}", response_model=schemas.Envelope[dict])
def delete_event(
    event_id: int,
    db: Session = Depends(get_db),
    user: AuthUser = Depends(get_current_user),
):
    event = _get_owned_event(db, event_id, user.id)
    # batch events keep their own history when the timeline entry goes
    (
        db.query(models.BatchEvent)
        .filter(models.BatchEvent.flock_event_id == event.id)
        .update({models.BatchEvent.flock_event_id: None}, synchronize_session=False)
    )
    db.delete(event)
    db.commit()
    return {"message": "Event deleted successfully"}
