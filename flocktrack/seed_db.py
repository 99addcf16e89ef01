"""
flocktrack/seed_db.py
---------------------
Populates the database with realistic-looking demo data for one user:
flock batches, losses, daily egg counts, timeline events, customers,
egg sales, expenses and feed.

Run from the project root:
    python -m flocktrack.seed_db

Pass --reset to wipe the database first, --user to pick the owner:
    python -m flocktrack.seed_db --reset --user demo-user
"""
from __future__ import annotations

import os
import random
import sys
from datetime import date, timedelta
from urllib.parse import urlparse

from .database import Base, engine, SessionLocal, DATABASE_URL
from . import models
from .services.summary import brooding_count_from_events


DEMO_USER = "demo-user"


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _days_ago(n: int) -> date:
    return date.today() - timedelta(days=n)


def _remove_sqlite_file_if_local() -> None:
    """Delete the SQLite file so we start completely fresh."""
    if not DATABASE_URL.startswith("sqlite"):
        Base.metadata.drop_all(bind=engine)
        print("  Dropped all tables")
        return
    # urlparse turns  sqlite:///./foo.db  into  path=/./foo.db
    path = urlparse(DATABASE_URL).path.lstrip("/")
    if path and path != ":memory:" and os.path.exists(path):
        os.remove(path)
        print(f"  Removed existing database: {path}")


# ---------------------------------------------------------------------------
# Seed data
# ---------------------------------------------------------------------------

BATCHES = [
    # (name, breed, type, age, days_ago_acquired, hens, roosters, chicks, laying_days_ago, cost)
    ("Spring Layers",  "Rhode Island Red", "hens",     "juvenile", 300, 12, 0, 0, 220, 96.00),
    ("Barnyard Mix",   "Plymouth Rock",    "mixed",    "adult",    200,  6, 2, 0, 195, 60.00),
    ("Autumn Pullets", "Leghorn",          "hens",     "chick",     60,  0, 0, 10, None, 35.00),
    ("Guard Rooster",  "Brahma",           "roosters", "adult",    150,  0, 1, 0, None, 25.00),
]

CUSTOMERS = [
    ("Oakridge Farm",    "555-0101"),
    ("Green Pastures",   "555-0182"),
    ("River Bend Ranch", "555-0234"),
    ("Neighbour Sue",    None),
]

FEED = [
    # (name, quantity, unit, cost_per_unit, opened_days_ago)
    ("Layer pellets 16%", 50, "lb", 0.42, 70),
    ("Layer pellets 16%", 50, "lb", 0.44, 40),
    ("Scratch grains",    25, "lb", 0.55, 30),
    ("Chick starter",     25, "lb", 0.60, 58),
]


def seed(db, user_id: str = DEMO_USER) -> None:
    random.seed(42)      # reproducible

    # ------------------------------------------------------------------
    # 1. Profiles
    # ------------------------------------------------------------------
    print("  Creating profiles...")

    db.add(models.UserProfile(user_id=user_id, display_name="Demo Farmer", subscription_status="active"))
    db.add(models.FlockProfile(
        user_id=user_id, farm_name="Hillside Hens", location="Valley Road",
        flock_size=31, breed="Rhode Island Red, Plymouth Rock, Leghorn, Brahma",
        start_date=_days_ago(300),
    ))

    # ------------------------------------------------------------------
    # 2. Batches (acquisition cost doubles as an expense)
    # ------------------------------------------------------------------
    print("  Creating flock batches...")

    batches = []
    for name, breed, kind, age, acquired_ago, hens, roosters, chicks, laying_ago, cost in BATCHES:
        initial = hens + roosters + chicks
        b = models.FlockBatch(
            user_id=user_id,
            batch_name=name,
            breed=breed,
            type=kind,
            age_at_acquisition=age,
            acquisition_date=_days_ago(acquired_ago),
            initial_count=initial,
            current_count=initial,
            hens_count=hens,
            roosters_count=roosters,
            chicks_count=chicks,
            brooding_count=0,
            actual_laying_start_date=_days_ago(laying_ago) if laying_ago else None,
            source="hatchery" if age == "chick" else "farm",
            cost=cost,
            is_active=True,
        )
        db.add(b)
        db.add(models.Expense(
            user_id=user_id, date=b.acquisition_date, category="Birds",
            description=f"Batch acquisition: {name} ({initial} {kind})", amount=cost,
        ))
        db.add(models.FlockEvent(
            user_id=user_id, date=b.acquisition_date, type="acquisition",
            description=f"Brought home {name}", affected_birds=initial,
        ))
        if laying_ago:
            db.add(models.FlockEvent(
                user_id=user_id, date=_days_ago(laying_ago), type="laying_start",
                description=f"{name} started laying eggs",
            ))
        batches.append(b)
    db.flush()

    # Two hens went broody in the spring batch last week
    layers = batches[0]
    timeline = models.FlockEvent(
        user_id=user_id, date=_days_ago(7), type="broody",
        description=f"Brooding started in {layers.batch_name} batch", affected_birds=2,
        notes=f"From {layers.batch_name} batch",
    )
    db.add(timeline)
    db.flush()
    brooding = models.BatchEvent(
        user_id=user_id, batch_id=layers.id, date=_days_ago(7), type="brooding_start",
        description="Two hens sitting on eggs", affected_count=2, flock_event_id=timeline.id,
    )
    db.add(brooding)
    layers.brooding_count = brooding_count_from_events([brooding])

    # ------------------------------------------------------------------
    # 3. Losses
    # ------------------------------------------------------------------
    print("  Creating death records...")

    losses = [
        (batches[0], 120, 1, "predator", "Fox got in overnight"),
        (batches[1], 45,  1, "disease",  "Respiratory infection"),
        (batches[2], 20,  2, "unknown",  "Found in brooder"),
    ]
    for batch, days_ago, count, cause, description in losses:
        db.add(models.DeathRecord(
            user_id=user_id, batch_id=batch.id, date=_days_ago(days_ago),
            count=count, cause=cause, description=description,
        ))
        batch.current_count = max(0, batch.current_count - count)

    # ------------------------------------------------------------------
    # 4. Daily egg counts for the last 45 days
    # ------------------------------------------------------------------
    print("  Creating egg entries...")

    for days_ago in range(45, 0, -1):
        db.add(models.EggEntry(user_id=user_id, date=_days_ago(days_ago), count=random.randint(9, 15)))

    # ------------------------------------------------------------------
    # 5. Customers and sales
    # ------------------------------------------------------------------
    print("  Creating customers and sales...")

    customers = []
    for name, phone in CUSTOMERS:
        c = models.Customer(user_id=user_id, name=name, phone=phone, is_active=True)
        db.add(c)
        customers.append(c)
    db.flush()

    for days_ago in range(40, 0, -4):
        customer = random.choice(customers)
        dozens = random.randint(1, 3)
        free = customer.name == "Neighbour Sue"
        db.add(models.Sale(
            user_id=user_id,
            customer_id=customer.id,
            sale_date=_days_ago(days_ago),
            dozen_count=dozens,
            individual_count=0,
            total_amount=0 if free else round(dozens * 4.50, 2),
            paid=not free,
        ))

    # ------------------------------------------------------------------
    # 6. Feed
    # ------------------------------------------------------------------
    print("  Creating feed inventory...")

    for name, qty, unit, cpu, opened_ago in FEED:
        db.add(models.FeedInventory(
            user_id=user_id, name=name, quantity=qty, unit=unit,
            cost_per_unit=cpu, purchase_date=_days_ago(opened_ago),
        ))
        db.add(models.Expense(
            user_id=user_id, date=_days_ago(opened_ago), category="Feed",
            description=name, amount=round(qty * cpu, 2),
        ))

    db.commit()

    # ------------------------------------------------------------------
    # Summary
    # ------------------------------------------------------------------
    def count(model) -> int:
        return db.query(model).filter(model.user_id == user_id).count()

    print(f"\n  ✓ Batches:       {count(models.FlockBatch)}")
    print(f"  ✓ Death records: {count(models.DeathRecord)}")
    print(f"  ✓ Batch events:  {count(models.BatchEvent)}")
    print(f"  ✓ Egg entries:   {count(models.EggEntry)}")
    print(f"  ✓ Customers:     {count(models.Customer)}")
    print(f"  ✓ Sales:         {count(models.Sale)}")
    print(f"  ✓ Expenses:      {count(models.Expense)}")


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

def main() -> None:
    reset = "--reset" in sys.argv
    user_id = DEMO_USER
    if "--user" in sys.argv:
        user_id = sys.argv[sys.argv.index("--user") + 1]

    if reset:
        print("Resetting database...")
        _remove_sqlite_file_if_local()

    print("Creating tables...")
    Base.metadata.create_all(bind=engine)

    print(f"Seeding data for {user_id}...")
    db = SessionLocal()
    try:
        seed(db, user_id)
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()

    print("\nDone. Run the app with:")
    print("  python -m uvicorn flocktrack.main:app --reload")
    print(f"  FLOCK_API_TOKENS=demo-token:{user_id}")


if __name__ == "__main__":
    main()
