from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import (
    Boolean,
    Column,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from .database import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class FlockBatch(Base):
    __tablename__ = "flock_batches"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String, nullable=False, index=True)
    batch_name = Column(String, nullable=False)
    breed = Column(String, nullable=False)
    type = Column(String, nullable=False)  # hens/roosters/chicks/mixed
    age_at_acquisition = Column(String, nullable=False)  # chick/juvenile/adult
    acquisition_date = Column(Date, nullable=False)
    initial_count = Column(Integer, nullable=False)
    current_count = Column(Integer, nullable=False)
    hens_count = Column(Integer, default=0)
    roosters_count = Column(Integer, default=0)
    chicks_count = Column(Integer, default=0)
    brooding_count = Column(Integer, default=0)
    expected_laying_start_date = Column(Date)
    actual_laying_start_date = Column(Date)
    source = Column(String, nullable=False)
    cost = Column(Float, default=0)
    notes = Column(Text)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime(timezone=True), default=_utcnow)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)


class DeathRecord(Base):
    __tablename__ = "death_records"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String, nullable=False, index=True)
    batch_id = Column(Integer, ForeignKey("flock_batches.id", ondelete="CASCADE"), nullable=False)
    date = Column(Date, nullable=False)
    count = Column(Integer, nullable=False)
    cause = Column(String, nullable=False)  # predator/disease/age/injury/unknown/culled/other
    description = Column(Text, nullable=False)
    notes = Column(Text)
    created_at = Column(DateTime(timezone=True), default=_utcnow)


class EggEntry(Base):
    __tablename__ = "egg_entries"
    __table_args__ = (UniqueConstraint("user_id", "date", name="uq_egg_entries_user_date"),)

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String, nullable=False, index=True)
    date = Column(Date, nullable=False)
    count = Column(Integer, nullable=False)
    notes = Column(Text)


class FlockEvent(Base):
    __tablename__ = "flock_events"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String, nullable=False, index=True)
    date = Column(Date, nullable=False)
    type = Column(String, nullable=False)  # acquisition/laying_start/broody/hatching/other
    description = Column(Text, nullable=False)
    affected_birds = Column(Integer)
    notes = Column(Text)


class BatchEvent(Base):
    __tablename__ = "batch_events"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String, nullable=False, index=True)
    batch_id = Column(Integer, ForeignKey("flock_batches.id", ondelete="CASCADE"), nullable=False, index=True)
    # health_check/vaccination/relocation/breeding/laying_start/brooding_start/brooding_stop/...
    type = Column(String, nullable=False)
    date = Column(Date, nullable=False)
    description = Column(Text, nullable=False)
    affected_count = Column(Integer)
    notes = Column(Text)
    # The flock-wide timeline entry written alongside this event
    flock_event_id = Column(Integer, ForeignKey("flock_events.id", ondelete="SET NULL"))
    created_at = Column(DateTime(timezone=True), default=_utcnow)


class FlockProfile(Base):
    __tablename__ = "flock_profiles"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String, nullable=False, unique=True)
    farm_name = Column(String, nullable=False)
    location = Column(String)
    flock_size = Column(Integer, default=0)
    breed = Column(String)
    start_date = Column(Date)
    notes = Column(Text)
    hens = Column(Integer, default=0)
    roosters = Column(Integer, default=0)
    chicks = Column(Integer, default=0)
    brooding = Column(Integer, default=0)


class Customer(Base):
    __tablename__ = "customers"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String, nullable=False, index=True)
    name = Column(String, nullable=False)
    phone = Column(String, nullable=True)
    notes = Column(Text, nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime(timezone=True), default=_utcnow)


class Sale(Base):
    __tablename__ = "sales"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String, nullable=False, index=True)
    customer_id = Column(Integer, ForeignKey("customers.id", ondelete="SET NULL"), nullable=True)
    sale_date = Column(Date, nullable=False)
    dozen_count = Column(Integer, default=0)
    individual_count = Column(Integer, default=0)
    total_amount = Column(Float, nullable=False)
    paid = Column(Boolean, default=False)
    notes = Column(Text, nullable=True)


class Expense(Base):
    __tablename__ = "expenses"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String, nullable=False, index=True)
    date = Column(Date, nullable=False)
    category = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    amount = Column(Float, nullable=False)


class FeedInventory(Base):
    __tablename__ = "feed_inventory"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String, nullable=False, index=True)
    name = Column(String, nullable=False)
    type = Column(String, default="Layer Feed")
    quantity = Column(Float, nullable=False)
    unit = Column(String, nullable=False)
    cost_per_unit = Column(Float, nullable=True)
    purchase_date = Column(Date, nullable=True)
    expiry_date = Column(Date, nullable=True)
    batch_number = Column(String, nullable=True)


class UserProfile(Base):
    __tablename__ = "user_profiles"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String, nullable=False, unique=True)
    email = Column(String, nullable=True)
    display_name = Column(String, nullable=True)
    subscription_status = Column(String, nullable=False, default="free")  # free/active/cancelled/past_due/paused
