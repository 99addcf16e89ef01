from __future__ import annotations

import datetime as dt
from typing import Any, Dict, Generic, List, Optional, TypeVar

from pydantic import BaseModel, Field, model_validator

T = TypeVar("T")

NULLABLE_BATCH_FIELDS = {"expected_laying_start_date", "actual_laying_start_date", "notes"}

BATCH_TYPE = r"^(hens|roosters|chicks|mixed)$"
AGE_CATEGORY = r"^(chick|juvenile|adult)$"
DEATH_CAUSE = r"^(predator|disease|age|injury|unknown|culled|other)$"
EVENT_TYPE = r"^(acquisition|laying_start|broody|hatching|other)$"
BATCH_EVENT_TYPE = (
    r"^(health_check|vaccination|relocation|breeding|laying_start|brooding_start|brooding_stop"
    r"|production_note|flock_added|flock_loss|chickens_hatched|other)$"
)
SUBSCRIPTION_STATUS = r"^(free|active|cancelled|past_due|paused)$"


class Envelope(BaseModel, Generic[T]):
    success: bool = True
    data: Optional[T] = None
    error: Optional[str] = None
    message: Optional[str] = None


def _reject_nulls(model: BaseModel, nullable: set[str]) -> None:
    """Partial updates may omit a field, but only nullable columns may be sent as null."""
    for name in model.model_fields_set:
        if name not in nullable and getattr(model, name) is None:
            raise ValueError(f"{name} cannot be null")


# -----------------------------
# Flock batches
# -----------------------------

class FlockBatchCreate(BaseModel):
    batch_name: str = Field(min_length=1)
    breed: str = Field(min_length=1)
    type: str = Field(pattern=BATCH_TYPE)
    age_at_acquisition: str = Field(pattern=AGE_CATEGORY)
    acquisition_date: dt.date
    initial_count: int = Field(gt=0)
    source: str = Field(min_length=1)
    hens_count: int = Field(default=0, ge=0)
    roosters_count: int = Field(default=0, ge=0)
    chicks_count: int = Field(default=0, ge=0)
    expected_laying_start_date: Optional[dt.date] = None
    actual_laying_start_date: Optional[dt.date] = None
    cost: float = Field(default=0, ge=0)
    notes: Optional[str] = None

    @model_validator(mode="after")
    def validate_counts(self):
        total = self.hens_count + self.roosters_count + self.chicks_count
        if total != self.initial_count:
            raise ValueError(
                "Individual bird counts must add up to initial count "
                f"(hens {self.hens_count}, roosters {self.roosters_count}, "
                f"chicks {self.chicks_count}, total {total}, expected {self.initial_count})"
            )
        if self.actual_laying_start_date and self.actual_laying_start_date < self.acquisition_date:
            raise ValueError("Laying start date cannot be before acquisition date")
        return self


class FlockBatchUpdate(BaseModel):
    batch_name: Optional[str] = Field(default=None, min_length=1)
    breed: Optional[str] = None
    type: Optional[str] = Field(default=None, pattern=BATCH_TYPE)
    age_at_acquisition: Optional[str] = Field(default=None, pattern=AGE_CATEGORY)
    acquisition_date: Optional[dt.date] = None
    initial_count: Optional[int] = Field(default=None, gt=0)
    current_count: Optional[int] = Field(default=None, ge=0)
    hens_count: Optional[int] = Field(default=None, ge=0)
    roosters_count: Optional[int] = Field(default=None, ge=0)
    chicks_count: Optional[int] = Field(default=None, ge=0)
    brooding_count: Optional[int] = Field(default=None, ge=0)
    expected_laying_start_date: Optional[dt.date] = None
    actual_laying_start_date: Optional[dt.date] = None
    source: Optional[str] = None
    notes: Optional[str] = None
    is_active: Optional[bool] = None

    @model_validator(mode="after")
    def reject_nulls(self):
        _reject_nulls(self, NULLABLE_BATCH_FIELDS)
        return self


class FlockBatchOut(BaseModel):
    id: int
    batch_name: str
    breed: str
    type: str
    age_at_acquisition: str
    acquisition_date: dt.date
    initial_count: int
    current_count: int
    hens_count: int = 0
    roosters_count: int = 0
    chicks_count: int = 0
    brooding_count: int = 0
    expected_laying_start_date: Optional[dt.date] = None
    actual_laying_start_date: Optional[dt.date] = None
    source: str
    cost: Optional[float] = 0
    notes: Optional[str] = None
    is_active: bool = True

    class Config:
        from_attributes = True


# -----------------------------
# Death records
# -----------------------------

class DeathRecordCreate(BaseModel):
    batch_id: int
    date: dt.date
    count: int = Field(gt=0)
    cause: str = Field(pattern=DEATH_CAUSE)
    description: str = Field(min_length=1)
    notes: Optional[str] = None


class DeathRecordUpdate(BaseModel):
    date: Optional[dt.date] = None
    count: Optional[int] = Field(default=None, gt=0)
    cause: Optional[str] = Field(default=None, pattern=DEATH_CAUSE)
    description: Optional[str] = Field(default=None, min_length=1)
    notes: Optional[str] = None


class DeathRecordOut(DeathRecordCreate):
    id: int
    batch_name: Optional[str] = None
    breed: Optional[str] = None
    type: Optional[str] = None

    class Config:
        from_attributes = True


# -----------------------------
# Egg entries
# -----------------------------

class EggEntryCreate(BaseModel):
    date: dt.date
    count: int = Field(ge=0)
    notes: Optional[str] = None


class EggEntryOut(EggEntryCreate):
    id: int

    class Config:
        from_attributes = True


# -----------------------------
# Flock events
# -----------------------------

class FlockEventCreate(BaseModel):
    date: dt.date
    type: str = Field(pattern=EVENT_TYPE)
    description: str = Field(min_length=1)
    affected_birds: Optional[int] = Field(default=None, gt=0)
    notes: Optional[str] = None


class FlockEventOut(FlockEventCreate):
    id: int

    class Config:
        from_attributes = True


class BatchEventCreate(BaseModel):
    batch_id: int
    date: dt.date
    type: str = Field(pattern=BATCH_EVENT_TYPE)
    description: str = Field(min_length=1)
    affected_count: Optional[int] = Field(default=None, gt=0)
    notes: Optional[str] = None


class BatchEventUpdate(BaseModel):
    date: Optional[dt.date] = None
    type: Optional[str] = Field(default=None, pattern=BATCH_EVENT_TYPE)
    description: Optional[str] = Field(default=None, min_length=1)
    affected_count: Optional[int] = Field(default=None, gt=0)
    notes: Optional[str] = None

    @model_validator(mode="after")
    def reject_nulls(self):
        _reject_nulls(self, {"affected_count", "notes"})
        return self


class BatchEventOut(BatchEventCreate):
    id: int
    flock_event_id: Optional[int] = None

    class Config:
        from_attributes = True


# -----------------------------
# Flock profile
# -----------------------------

class FlockProfileIn(BaseModel):
    farm_name: str = Field(min_length=1)
    location: Optional[str] = None
    flock_size: int = Field(default=0, ge=0)
    breed: Optional[str] = None
    start_date: Optional[dt.date] = None
    notes: Optional[str] = None
    hens: int = Field(default=0, ge=0)
    roosters: int = Field(default=0, ge=0)
    chicks: int = Field(default=0, ge=0)
    brooding: int = Field(default=0, ge=0)


class FlockProfileOut(FlockProfileIn):
    id: int

    class Config:
        from_attributes = True


# -----------------------------
# Customers / Sales
# -----------------------------

class CustomerIn(BaseModel):
    name: str
    phone: Optional[str] = None
    notes: Optional[str] = None
    is_active: Optional[bool] = None

    @model_validator(mode="after")
    def clean_fields(self):
        self.name = (self.name or "").strip()
        if not self.name:
            raise ValueError("Customer name is required")
        self.phone = (self.phone or "").strip() or None
        self.notes = (self.notes or "").strip() or None
        return self


class CustomerOut(BaseModel):
    id: int
    name: str
    phone: Optional[str] = None
    notes: Optional[str] = None
    is_active: bool = True

    class Config:
        from_attributes = True


class SaleCreate(BaseModel):
    sale_date: dt.date
    total_amount: float = Field(ge=0)
    customer_id: Optional[int] = None
    dozen_count: int = Field(default=0, ge=0)
    individual_count: int = Field(default=0, ge=0)
    paid: bool = False
    notes: Optional[str] = None


class SaleOut(SaleCreate):
    id: int
    customer_name: Optional[str] = None

    class Config:
        from_attributes = True


# -----------------------------
# Expenses / Feed inventory
# -----------------------------

class ExpenseCreate(BaseModel):
    date: dt.date
    category: str = Field(min_length=1)
    description: Optional[str] = None
    amount: float = Field(ge=0)


class ExpenseOut(ExpenseCreate):
    id: int

    class Config:
        from_attributes = True


class FeedInventoryCreate(BaseModel):
    name: str = Field(min_length=1)
    type: str = "Layer Feed"
    quantity: float = Field(ge=0)
    unit: str = Field(min_length=1)
    cost_per_unit: Optional[float] = Field(default=None, ge=0)
    purchase_date: Optional[dt.date] = None
    expiry_date: Optional[dt.date] = None
    batch_number: Optional[str] = None


class FeedInventoryOut(FeedInventoryCreate):
    id: int

    class Config:
        from_attributes = True


# -----------------------------
# User profile
# -----------------------------

class UserProfileUpdate(BaseModel):
    email: Optional[str] = None
    display_name: Optional[str] = None
    subscription_status: Optional[str] = Field(default=None, pattern=SUBSCRIPTION_STATUS)


class UserProfileOut(BaseModel):
    user_id: str
    email: Optional[str] = None
    display_name: Optional[str] = None
    subscription_status: str = "free"

    class Config:
        from_attributes = True


# -----------------------------
# Derived summaries
# -----------------------------

class ProductionMetrics(BaseModel):
    avg_daily_eggs: float = 0
    production_status: str = "unknown"
    production_message: str = "No recent egg data available"
    laying_ready: int = 0
    too_young: int = 0
    brooding: int = 0


class MortalityMetrics(BaseModel):
    recent_deaths: int = 0
    last_30_days: int = 0
    overall_rate: float = 0


class BatchSummary(BaseModel):
    id: int
    name: str
    breed: str
    type: str
    current_count: int
    acquisition_date: dt.date
    is_laying_age: bool


class FlockSummary(BaseModel):
    total_birds: int = 0
    total_hens: int = 0
    total_roosters: int = 0
    total_chicks: int = 0
    total_brooding: int = 0
    active_batches: int = 0
    expected_layers: int = 0
    actual_layers: int = 0
    avg_eggs_per_hen: float = 0
    total_deaths: int = 0
    mortality_rate: float = 0
    production_metrics: ProductionMetrics = Field(default_factory=ProductionMetrics)
    mortality_metrics: MortalityMetrics = Field(default_factory=MortalityMetrics)
    batch_summary: List[BatchSummary] = Field(default_factory=list)


class SalesSummary(BaseModel):
    customer_count: int = 0
    total_sales: int = 0
    total_revenue: float = 0
    total_eggs_sold: int = 0
    free_eggs_given: int = 0
    top_customer: Optional[str] = None


class ErrorOut(BaseModel):
    success: bool = False
    error: str
    details: Optional[Dict[str, Any]] = None
