from __future__ import annotations

from typing import Dict

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..auth import AuthUser, get_current_user
from ..database import get_db
from .. import models, schemas

router = APIRouter(prefix="/profile", tags=["profile"])

ProfileItem = schemas.Envelope[Dict[str, schemas.UserProfileOut]]


def get_or_create_profile(db: Session, user: AuthUser) -> models.UserProfile:
    profile = (
        db.query(models.UserProfile)
        .filter(models.UserProfile.user_id == user.id)
        .first()
    )
    if profile is None:
        profile = models.UserProfile(user_id=user.id, email=user.email, subscription_status="free")
        db.add(profile)
        db.commit()
        db.refresh(profile)
    return profile


@router.get("/", response_model=ProfileItem)
def get_profile(
    db: Session = Depends(get_db),
    user: AuthUser = Depends(get_current_user),
):
    return {"data": {"profile": get_or_create_profile(db, user)}}


@router.put("/", response_model=ProfileItem)
def update_profile(
    payload: schemas.UserProfileUpdate,
    db: Session = Depends(get_db),
    user: AuthUser = Depends(get_current_user),
):
    profile = get_or_create_profile(db, user)
    for field, value in payload.model_dump(exclude_unset=True, exclude_none=True).items():
        setattr(profile, field, value)
    db.commit()
    db.refresh(profile)
    return {"data": {"profile": profile}}
