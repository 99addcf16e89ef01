from __future__ import annotations

from typing import Dict, Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..auth import AuthUser, get_current_user
from ..database import get_db
from .. import models, schemas

router = APIRouter(prefix="/flock-profile", tags=["flock-profile"])

ProfileItem = schemas.Envelope[Dict[str, Optional[schemas.FlockProfileOut]]]


@router.get("/", response_model=ProfileItem)
def get_flock_profile(
    db: Session = Depends(get_db),
    user: AuthUser = Depends(get_current_user),
):
    profile = (
        db.query(models.FlockProfile)
        .filter(models.FlockProfile.user_id == user.id)
        .first()
    )
    return {"data": {"profile": profile}}


@router.put("/", response_model=ProfileItem)
def save_flock_profile(
    payload: schemas.FlockProfileIn,
    db: Session = Depends(get_db),
    user: AuthUser = Depends(get_current_user),
):
    profile = (
        db.query(models.FlockProfile)
        .filter(models.FlockProfile.user_id == user.id)
        .first()
    )
    if profile is None:
        profile = models.FlockProfile(user_id=user.id)
        db.add(profile)

    for field, value in payload.model_dump().items():
        setattr(profile, field, value)

    db.commit()
    db.refresh(profile)
    return {"data": {"profile": profile}}
