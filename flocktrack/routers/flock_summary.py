from __future__ import annotations

from datetime import timedelta
from typing import Dict

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..auth import AuthUser, get_current_user
from ..config import get_settings
from ..database import get_db
from ..services.summary import compute_flock_summary, utc_today
from .. import models, schemas

router = APIRouter(prefix="/flock-summary", tags=["flock-summary"])


@router.get("/", response_model=schemas.Envelope[Dict[str, schemas.FlockSummary]])
def flock_summary(
    db: Session = Depends(get_db),
    user: AuthUser = Depends(get_current_user),
):
    settings = get_settings()
    today = utc_today()

    batches = (
        db.query(models.FlockBatch)
        .filter(models.FlockBatch.user_id == user.id)
        .filter(models.FlockBatch.is_active.is_(True))
        .all()
    )
    batch_ids = [b.id for b in batches]

    deaths = []
    if batch_ids:
        deaths = (
            db.query(models.DeathRecord)
            .filter(models.DeathRecord.batch_id.in_(batch_ids))
            .all()
        )

    window_start = today - timedelta(days=settings.production_window_days)
    eggs = (
        db.query(models.EggEntry)
        .filter(models.EggEntry.user_id == user.id)
        .filter(models.EggEntry.date >= window_start)
        .all()
    )

    summary = compute_flock_summary(
        batches,
        deaths,
        eggs,
        today=today,
        eggs_per_hen_baseline=settings.eggs_per_hen_baseline,
        window_days=settings.production_window_days,
    )
    return {"data": {"summary": summary}}
