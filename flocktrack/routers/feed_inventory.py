from __future__ import annotations

from typing import Dict, List

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from ..auth import AuthUser, get_current_user
from ..database import get_db
from .. import models, schemas

router = APIRouter(prefix="/feed-inventory", tags=["feed-inventory"])


@router.get("/", response_model=schemas.Envelope[Dict[str, List[schemas.FeedInventoryOut]]])
def list_feed_inventory(
    db: Session = Depends(get_db),
    user: AuthUser = Depends(get_current_user),
):
    feed = (
        db.query(models.FeedInventory)
        .filter(models.FeedInventory.user_id == user.id)
        .order_by(models.FeedInventory.id.desc())
        .all()
    )
    return {"data": {"feed": feed}}


@router.post("/", response_model=schemas.Envelope[Dict[str, schemas.FeedInventoryOut]], status_code=201)
def create_feed_entry(
    payload: schemas.FeedInventoryCreate,
    db: Session = Depends(get_db),
    user: AuthUser = Depends(get_current_user),
):
    if payload.purchase_date and payload.expiry_date and payload.expiry_date < payload.purchase_date:
        raise HTTPException(400, "Depleted date cannot be before opened date")

    entry = models.FeedInventory(**payload.model_dump(), user_id=user.id)
    db.add(entry)
    db.commit()
    db.refresh(entry)
    return {"data": {"feed": entry}}


@router.delete("/{feed_id}", response_model=schemas.Envelope[dict])
def delete_feed_entry(
    feed_id: int,
    db: Session = Depends(get_db),
    user: AuthUser = Depends(get_current_user),
):
    entry = (
        db.query(models.FeedInventory)
        .filter(models.FeedInventory.id == feed_id)
        .filter(models.FeedInventory.user_id == user.id)
        .first()
    )
    if not entry:
        raise HTTPException(404, "Feed inventory entry not found")
    db.delete(entry)
    db.commit()
    return {"message": "Feed inventory entry deleted successfully"}
