"""
Derived flock statistics.

Everything here is a pure function of the rows handed in, so the API's
``/flock-summary`` handler (ORM rows) and the client snapshot (pydantic
records) share one implementation. Rows only need attribute access.
"""
from __future__ import annotations

import math
from collections import defaultdict
from datetime import date, datetime, timedelta, timezone
from typing import Iterable, Optional

from .. import schemas

DEFAULT_EGGS_PER_HEN_BASELINE = 0.8
DEFAULT_WINDOW_DAYS = 30

# (upper bound, status, message); the last band is open-ended
PRODUCTION_BANDS = [
    (0.3, "poor", "Low production. Check for health issues, stress, molting, or seasonal factors."),
    (0.5, "fair", "Fair production. May need to address health, nutrition, or stress factors."),
    (0.7, "good", "Good egg production. Consider optimizing nutrition or environment."),
    (None, "excellent", "Excellent egg production! Your hens are highly productive."),
]
UNKNOWN_STATUS = ("unknown", "No recent egg data available")

# Weeks since acquisition after which a batch counts as laying age
LAYING_AGE_WEEKS = {
    "adult": 0,
    "juvenile": 8,
    "chick": 18,
}


def utc_today() -> date:
    return datetime.now(timezone.utc).date()


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def _n(value) -> int:
    return int(value or 0)


def _as_date(value) -> Optional[date]:
    if value is None or isinstance(value, date):
        return value
    return date.fromisoformat(str(value)[:10])


def classify_production(avg_eggs_per_hen: float) -> tuple[str, str]:
    if avg_eggs_per_hen <= 0:
        return UNKNOWN_STATUS
    for upper, status, message in PRODUCTION_BANDS:
        if upper is None or avg_eggs_per_hen < upper:
            return status, message
    return UNKNOWN_STATUS


def is_laying_ready(batch, today: date) -> bool:
    """
    Laying readiness for one batch, in order of evidence:
    actual start date, expected start date, then age at acquisition
    plus whole weeks elapsed since acquisition.
    """
    if batch.type != "hens":
        return False
    if batch.actual_laying_start_date:
        return True
    expected = _as_date(batch.expected_laying_start_date)
    if expected is not None:
        return expected <= today

    acquired = _as_date(batch.acquisition_date)
    if acquired is None:
        return False
    weeks_old = (today - acquired).days // 7
    threshold = LAYING_AGE_WEEKS.get(batch.age_at_acquisition)
    return threshold is not None and weeks_old >= threshold


BROODING_EVENTS = ("brooding_start", "brooding_stop")


def brooding_count_from_events(events: Iterable) -> int:
    """
    Replay a batch's brooding_start / brooding_stop events. An event without
    an affected count moves one bird; the total is clamped at zero.
    """
    count = 0
    for e in events:
        if e.type == "brooding_start":
            count += _n(e.affected_count) or 1
        elif e.type == "brooding_stop":
            count -= _n(e.affected_count) or 1
    return max(0, count)


def expected_layers(batches: Iterable) -> int:
    total = 0
    for b in batches:
        hens = _n(b.hens_count)
        if hens > 0 and b.actual_laying_start_date:
            total += max(0, hens - _n(b.brooding_count))
    return total


def mortality_rate(total_deaths: int, total_initial: int) -> float:
    if total_initial <= 0:
        return 0
    return round(total_deaths / total_initial * 100, 2)


def average_daily_eggs(egg_entries: Iterable, today: date, window_days: int = DEFAULT_WINDOW_DAYS) -> float:
    start = today - timedelta(days=window_days)
    per_day: dict[date, int] = defaultdict(int)
    for e in egg_entries:
        d = _as_date(e.date)
        if d is not None and start <= d <= today:
            per_day[d] += _n(e.count)
    if not per_day:
        return 0
    return sum(per_day.values()) / len(per_day)


def compute_flock_summary(
    batches: Iterable,
    death_records: Iterable,
    egg_entries: Iterable,
    today: Optional[date] = None,
    eggs_per_hen_baseline: float = DEFAULT_EGGS_PER_HEN_BASELINE,
    window_days: int = DEFAULT_WINDOW_DAYS,
) -> schemas.FlockSummary:
    today = today or utc_today()
    active = [b for b in batches if getattr(b, "is_active", True)]
    batch_ids = {b.id for b in active}

    layers = expected_layers(active)

    total_deaths = 0
    recent_deaths = 0
    window_start = today - timedelta(days=window_days)
    for r in death_records:
        if r.batch_id not in batch_ids:
            continue
        total_deaths += _n(r.count)
        d = _as_date(r.date)
        if d is not None and d >= window_start:
            recent_deaths += _n(r.count)

    total_initial = sum(_n(b.initial_count) for b in active)
    rate = mortality_rate(total_deaths, total_initial)

    avg_daily = average_daily_eggs(egg_entries, today, window_days)
    actual_layers = 0
    avg_per_hen = 0
    if avg_daily > 0:
        if eggs_per_hen_baseline > 0:
            actual_layers = round_half_up(avg_daily / eggs_per_hen_baseline)
        if layers > 0:
            avg_per_hen = round(avg_daily / layers, 2)
    status, message = classify_production(avg_per_hen)

    laying_ready = 0
    too_young = 0
    batch_summary = []
    for b in active:
        ready = is_laying_ready(b, today)
        if b.type == "hens":
            if ready:
                laying_ready += _n(b.current_count)
            else:
                too_young += _n(b.current_count)
        batch_summary.append(schemas.BatchSummary(
            id=b.id,
            name=b.batch_name,
            breed=b.breed,
            type=b.type,
            current_count=_n(b.current_count),
            acquisition_date=_as_date(b.acquisition_date),
            is_laying_age=ready,
        ))

    return schemas.FlockSummary(
        total_birds=sum(_n(b.current_count) for b in active),
        total_hens=sum(_n(b.hens_count) for b in active),
        total_roosters=sum(_n(b.roosters_count) for b in active),
        total_chicks=sum(_n(b.chicks_count) for b in active),
        total_brooding=sum(_n(b.brooding_count) for b in active),
        active_batches=len(active),
        expected_layers=layers,
        actual_layers=actual_layers,
        avg_eggs_per_hen=avg_per_hen,
        total_deaths=total_deaths,
        mortality_rate=rate,
        production_metrics=schemas.ProductionMetrics(
            avg_daily_eggs=round(avg_daily, 1),
            production_status=status,
            production_message=message,
            laying_ready=laying_ready,
            too_young=too_young,
            brooding=sum(_n(b.brooding_count) for b in active),
        ),
        mortality_metrics=schemas.MortalityMetrics(
            recent_deaths=recent_deaths,
            last_30_days=recent_deaths,
            overall_rate=rate,
        ),
        batch_summary=batch_summary,
    )
