"""
Client-side data layer for the flock dashboard.

``DataProvider`` keeps one in-memory snapshot of everything a signed-in user
sees. It fills the snapshot from the per-user cache for an instant first
render, refreshes it from the API (all collections concurrently), derives
flock and sales summaries, and keeps it fresh with a background staleness
check. It is the only writer of the snapshot.

Snapshot state: UNINITIALIZED -> LOADING -> READY. An explicit refresh goes
READY -> LOADING -> READY; silent and background refreshes never leave READY.
A failed fetch keeps the previous snapshot and sets ``error``.
"""
from __future__ import annotations

import asyncio
import contextlib
import logging
import time
from datetime import date
from enum import Enum
from typing import Any, Callable, List, Optional

from pydantic import BaseModel, Field, ValidationError

from ..config import Settings, get_settings
from ..services.sales import compute_sales_summary
from ..services.summary import compute_flock_summary, utc_today
from .. import schemas
from .api import COLLECTIONS, FlockApiClient, response_data
from .cache import APP_DATA, FLOCK_SUMMARY, SALES_SUMMARY, SUBSCRIPTION_STATUS, SnapshotCache
from .errors import ApiServiceError, user_friendly_message

logger = logging.getLogger(__name__)


class SnapshotState(str, Enum):
    UNINITIALIZED = "uninitialized"
    LOADING = "loading"
    READY = "ready"


class AppData(BaseModel):
    egg_entries: List[schemas.EggEntryOut] = Field(default_factory=list)
    expenses: List[schemas.ExpenseOut] = Field(default_factory=list)
    feed_inventory: List[schemas.FeedInventoryOut] = Field(default_factory=list)
    flock_profile: Optional[schemas.FlockProfileOut] = None
    flock_events: List[schemas.FlockEventOut] = Field(default_factory=list)
    customers: List[schemas.CustomerOut] = Field(default_factory=list)
    sales: List[schemas.SaleOut] = Field(default_factory=list)
    flock_batches: List[schemas.FlockBatchOut] = Field(default_factory=list)
    death_records: List[schemas.DeathRecordOut] = Field(default_factory=list)
    user_profile: Optional[schemas.UserProfileOut] = None
    flock_summary: schemas.FlockSummary = Field(default_factory=schemas.FlockSummary)
    sales_summary: schemas.SalesSummary = Field(default_factory=schemas.SalesSummary)


SINGLE_RECORDS = {"flock_profile", "user_profile"}

RECORD_TYPES = {
    "egg_entries": schemas.EggEntryOut,
    "expenses": schemas.ExpenseOut,
    "feed_inventory": schemas.FeedInventoryOut,
    "flock_events": schemas.FlockEventOut,
    "customers": schemas.CustomerOut,
    "sales": schemas.SaleOut,
    "flock_batches": schemas.FlockBatchOut,
    "death_records": schemas.DeathRecordOut,
}


class DataProvider:
    def __init__(
        self,
        api: FlockApiClient,
        cache: SnapshotCache,
        settings: Optional[Settings] = None,
        *,
        has_focus: Optional[Callable[[], bool]] = None,
        clock: Callable[[], float] = time.time,
        today: Callable[[], date] = utc_today,
    ):
        self.api = api
        self.cache = cache
        self.settings = settings or get_settings()
        self.has_focus = has_focus or (lambda: True)
        self.clock = clock
        self.today = today

        self.state = SnapshotState.UNINITIALIZED
        self.data = AppData()
        self.error: Optional[str] = None
        self.last_fetched: Optional[float] = None
        self.is_subscription_loading = True
        self.user_id: Optional[str] = None

        self._last_user_id: Optional[str] = None
        self._cached_subscription: Optional[str] = None
        self._generation = 0
        self._in_flight = 0
        self._background: Optional[asyncio.Task] = None

    # -----------------------------
    # Derived state
    # -----------------------------
    @property
    def is_loading(self) -> bool:
        return self.state == SnapshotState.LOADING

    @property
    def in_flight(self) -> bool:
        return self._in_flight > 0

    @property
    def subscription_status(self) -> Optional[str]:
        if self.data.user_profile is not None:
            return self.data.user_profile.subscription_status
        return self._cached_subscription

    @property
    def user_tier(self) -> str:
        return "premium" if self.subscription_status == "active" else "free"

    # -----------------------------
    # Session
    # -----------------------------
    async def sign_in(self, user_id: str, token: Optional[str] = None) -> None:
        if token is not None:
            self.api.set_token(token)

        # A different user must never see the previous user's cached data
        if self._last_user_id and self._last_user_id != user_id:
            removed = self.cache.clear_all(self._last_user_id)
            logger.info("User switched, cleared %s cached entries", removed)

        self._generation += 1
        self.user_id = user_id
        self._last_user_id = user_id
        self._reset()
        self._load_cached()
        await self.refresh()

    def sign_out(self) -> None:
        """Drop the session; the user's cache stays so the next sign-in is fast."""
        self._generation += 1
        self.user_id = None
        self.api.set_token(None)
        self._reset()
        self.is_subscription_loading = False

    def _reset(self) -> None:
        self.state = SnapshotState.UNINITIALIZED
        self.data = AppData()
        self.error = None
        self.last_fetched = None
        self.is_subscription_loading = True
        self._cached_subscription = None

    def _load_cached(self) -> None:
        entry = self.cache.get_entry(APP_DATA, self.user_id)
        if entry is not None:
            try:
                self.data = AppData.model_validate(entry.data)
            except ValidationError as exc:
                logger.warning("Discarding unreadable cached snapshot: %s", exc)
                self.cache.remove(APP_DATA, self.user_id)
            else:
                self._recompute(self.data)
                self.last_fetched = entry.timestamp / 1000
                self.state = SnapshotState.READY
                logger.debug("Loaded cached data for user %s", self.user_id)

        status = self.cache.get(SUBSCRIPTION_STATUS, self.user_id)
        if status:
            self._cached_subscription = status
            if self.data.user_profile is not None:
                self.data.user_profile.subscription_status = status
        if status or self.data.user_profile is not None:
            self.is_subscription_loading = False

    # -----------------------------
    # Fetching
    # -----------------------------
    async def refresh(self) -> None:
        """Explicit refresh: shows the loading state and reports failures in ``error``."""
        if not self.user_id:
            return

        generation = self._generation
        self.state = SnapshotState.LOADING
        self.error = None
        try:
            await self._fetch_and_merge(generation)
        except ApiServiceError as exc:
            logger.error("Error fetching data: %s", exc)
            if generation == self._generation:
                self.error = user_friendly_message(exc)
        except ValidationError as exc:
            logger.error("Malformed data from the API: %s", exc)
            if generation == self._generation:
                self.error = "Received unexpected data from the server. Please try again."
        finally:
            if generation == self._generation:
                self.state = SnapshotState.READY

    async def silent_refresh(self) -> None:
        """Same fetch as ``refresh`` but never touches the loading state or raises."""
        if not self.user_id:
            return

        generation = self._generation
        try:
            await self._fetch_and_merge(generation)
        except (ApiServiceError, ValidationError) as exc:
            logger.warning("Silent refresh failed: %s", exc)

    async def _fetch_and_merge(self, generation: int) -> bool:
        self._in_flight += 1
        try:
            raw = await self.api.fetch_all()
        finally:
            self._in_flight -= 1

        if generation != self._generation:
            logger.info("Discarding response from an earlier session")
            return False

        self.data = self._merge(raw)
        self.last_fetched = self.clock()
        self.is_subscription_loading = False
        self._persist()
        return True

    def _merge(self, raw: dict[str, Any]) -> AppData:
        values = {}
        for name in COLLECTIONS:
            value = raw.get(name)
            if name in SINGLE_RECORDS:
                values[name] = value or None
            else:
                values[name] = value or []
        data = AppData.model_validate(values)
        self._recompute(data)
        return data

    def _recompute(self, data: AppData) -> None:
        data.flock_summary = compute_flock_summary(
            data.flock_batches,
            data.death_records,
            data.egg_entries,
            today=self.today(),
            eggs_per_hen_baseline=self.settings.eggs_per_hen_baseline,
            window_days=self.settings.production_window_days,
        )
        data.sales_summary = compute_sales_summary(data.customers, data.sales)

    def _persist(self) -> None:
        if not self.user_id:
            return
        self.cache.set(APP_DATA, self.data.model_dump(mode="json"), self.settings.cache_ttl_minutes, self.user_id)
        ttl = self.settings.cache_ttl_minutes
        self.cache.set(FLOCK_SUMMARY, self.data.flock_summary.model_dump(mode="json"), ttl, self.user_id)
        self.cache.set(SALES_SUMMARY, self.data.sales_summary.model_dump(mode="json"), ttl, self.user_id)
        status = self.subscription_status
        if status:
            self.cache.set(SUBSCRIPTION_STATUS, status, self.settings.subscription_ttl_minutes, self.user_id)

    # -----------------------------
    # Staleness
    # -----------------------------
    def is_stale(self) -> bool:
        if self.last_fetched is None:
            return True
        return self.clock() - self.last_fetched > self.settings.cache_ttl_minutes * 60

    async def check_staleness(self) -> bool:
        if not self.user_id or self.in_flight or not self.has_focus() or not self.is_stale():
            return False
        logger.info("Snapshot is stale, refreshing in the background")
        await self.silent_refresh()
        return True

    async def _background_loop(self, interval: float) -> None:
        while True:
            await asyncio.sleep(interval)
            try:
                await self.check_staleness()
            except Exception:
                # the timer must outlive any single bad refresh
                logger.exception("Background refresh failed")

    def start_background_refresh(self, interval: Optional[float] = None) -> asyncio.Task:
        if self._background is None or self._background.done():
            self._background = asyncio.create_task(
                self._background_loop(interval or self.settings.refresh_interval_seconds)
            )
        return self._background

    async def stop_background_refresh(self) -> None:
        task, self._background = self._background, None
        if task is None:
            return
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task

    # -----------------------------
    # Mutations
    # -----------------------------
    def upsert_record(self, collection: str, record: Any) -> None:
        """Optimistically splice one new or updated record into a collection."""
        record = RECORD_TYPES[collection].model_validate(record)
        items = list(getattr(self.data, collection))
        for i, existing in enumerate(items):
            if existing.id == record.id:
                items[i] = record
                break
        else:
            items.insert(0, record)
        setattr(self.data, collection, items)
        self._recompute(self.data)
        self._persist()

    def remove_record(self, collection: str, record_id: int) -> None:
        if collection not in RECORD_TYPES:
            raise KeyError(collection)
        items = [r for r in getattr(self.data, collection) if r.id != record_id]
        setattr(self.data, collection, items)
        self._recompute(self.data)
        self._persist()

    async def submit(
        self,
        method: str,
        path: str,
        payload: Any = None,
        *,
        collection: Optional[str] = None,
        record_id: Optional[int] = None,
    ) -> dict:
        """
        User-initiated mutation. Errors propagate to the caller; on success the
        returned record (or ``record_id`` for deletes) is spliced into
        ``collection`` and the snapshot is silently refreshed.
        """
        body = await self.api.request(method, path, payload)

        if collection:
            if method.upper() == "DELETE" and record_id is not None:
                self.remove_record(collection, record_id)
            else:
                returned = list(response_data(body, path).values())
                if returned and isinstance(returned[0], dict):
                    self.upsert_record(collection, returned[0])

        await self.silent_refresh()
        return body


def create_provider(token: Optional[str] = None, storage=None, settings: Optional[Settings] = None) -> DataProvider:
    """Wire a provider from settings: ``API_BASE_URL`` for the client, ``CACHE_PREFIX`` for the cache."""
    settings = settings or get_settings()
    api = FlockApiClient(settings.api_base_url, token)
    cache = SnapshotCache(storage, prefix=settings.cache_prefix)
    return DataProvider(api, cache, settings)
