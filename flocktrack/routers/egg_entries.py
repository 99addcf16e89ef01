from __future__ import annotations

from typing import Dict, List

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from ..auth import AuthUser, get_current_user
from ..database import get_db
from .. import models, schemas

router = APIRouter(prefix="/egg-entries", tags=["egg-entries"])


@router.get("/", response_model=schemas.Envelope[Dict[str, List[schemas.EggEntryOut]]])
def list_egg_entries(
    db: Session = Depends(get_db),
    user: AuthUser = Depends(get_current_user),
):
    entries = (
        db.query(models.EggEntry)
        .filter(models.EggEntry.user_id == user.id)
        .order_by(models.EggEntry.date.desc())
        .all()
    )
    return {"data": {"entries": entries}}


@router.post("/", response_model=schemas.Envelope[Dict[str, schemas.EggEntryOut]], status_code=201)
def save_egg_entry(
    payload: schemas.EggEntryCreate,
    db: Session = Depends(get_db),
    user: AuthUser = Depends(get_current_user),
):
    """One entry per day: posting a date that already exists replaces its count."""
    entry = (
        db.query(models.EggEntry)
        .filter(models.EggEntry.user_id == user.id)
        .filter(models.EggEntry.date == payload.date)
        .first()
    )
    if entry:
        entry.count = payload.count
        entry.notes = payload.notes
    else:
        entry = models.EggEntry(**payload.model_dump(), user_id=user.id)
        db.add(entry)

    db.commit()
    db.refresh(entry)
    return {"data": {"entry": entry}}


@router.delete("/{entry_id}", response_model=schemas.Envelope[dict])
def delete_egg_entry(
    entry_id: int,
    db: Session = Depends(get_db),
    user: AuthUser = Depends(get_current_user),
):
    entry = (
        db.query(models.EggEntry)
        .filter(models.EggEntry.id == entry_id)
        .filter(models.EggEntry.user_id == user.id)
        .first()
    )
    if not entry:
        raise HTTPException(404, "Egg entry not found")
    db.delete(entry)
    db.commit()
    return {"message": "Egg entry deleted successfully"}
