"""Dashboard statistics assembled from independent remote reads."""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, time, timedelta
from enum import Enum
from typing import Any, Callable, Iterable, List, Optional, Tuple

from django.conf import settings
from django.utils import timezone

from customers.roles import RoleResolver
from customers.search import CustomerSearch
from datastore.client import StoreError, TableQuery
from datastore.guarded import FetchResult, guarded
from datastore.paging import read_all_pages
from datastore.records import CollectionRecord, RecordError, UserRecord

from .formatting import format_status, format_time
from .session import CollectorSession

logger = logging.getLogger(__name__)

COLLECTIONS_TABLE = "unified_collections"
PICKUP_COLUMNS = (
    "id,customer_name,pickup_address,actual_time,status,total_weight_kg,created_at,collector_id,created_by"
)
HISTORY_COLUMNS = (
    "id,status,created_at,actual_date,customer_name,customer_email,pickup_address,"
    "total_weight_kg,total_value,customer_id,collector_id,created_by"
)
SUCCESSFUL_STATUSES = ("approved", "completed")
REQUEST_STATUSES = ("pending", "submitted")
RECENT_PICKUPS_LIMIT = 5
PICKUP_REQUESTS_LIMIT = 10
ROSTER_LIMIT = 50


class DashboardState(str, Enum):
    IDLE = "idle"
    LOADING = "loading"
    READY = "ready"
    TIMED_OUT = "timed_out"


@dataclass(frozen=True)
class PickupSummary:
    id: str
    customer: str
    address: str
    time: str
    status: str
    raw_status: str
    total_kg: Optional[float] = None
    total_value: float = 0.0
    started_at: Optional[str] = None

    @classmethod
    def from_record(cls, record: CollectionRecord) -> "PickupSummary":
        created_at = record.created_at.isoformat() if record.created_at else None
        return cls(
            id=record.id,
            customer=record.customer_name or "Customer",
            address=record.pickup_address or "",
            time=format_time(record.actual_time or record.created_at),
            status=format_status(record.status),
            raw_status=record.status,
            total_kg=record.total_weight_kg,
            total_value=record.value,
            started_at=record.actual_date or created_at,
        )

    @property
    def points(self) -> float:
        # One point per kilogram.
        return self.total_kg or 0.0


@dataclass
class DashboardStats:
    collector_name: str = "User"
    collector_role: str = ""
    today_pickups: int = 0
    total_customers: int = 0
    collection_rate: float = 0.0
    wallet_balance: float = 0.0
    total_weight: float = 0.0
    recent_pickups: List[PickupSummary] = field(default_factory=list)
    pickup_requests: List[PickupSummary] = field(default_factory=list)
    customers: List[UserRecord] = field(default_factory=list)
    state: DashboardState = DashboardState.IDLE


def collection_rate(collections: Iterable[CollectionRecord]) -> float:
    """Percentage of collections that were approved or completed."""

    total = 0
    successful = 0
    for collection in collections:
        total += 1
        if collection.is_successful:
            successful += 1
    return (successful / total) * 100 if total else 0.0


def _collections(columns: str) -> TableQuery:
    return TableQuery(COLLECTIONS_TABLE, columns)


def _handled_by(query: TableQuery, actor_id: str) -> TableQuery:
    return query.or_(("collector_id", "eq", actor_id), ("created_by", "eq", actor_id))


def _summaries(rows: Iterable[Any]) -> List[PickupSummary]:
    summaries = []
    for row in rows:
        try:
            summaries.append(PickupSummary.from_record(CollectionRecord.from_row(row)))
        except RecordError as exc:
            logger.warning("Dropping %s row: %s", COLLECTIONS_TABLE, exc)
    return summaries


class DashboardAggregator:
    """Loads a collector's dashboard.

    The four headline reads run concurrently and each is guarded on its own:
    a failed or slow source zeroes its metric and nothing else. The whole load
    is bounded by the page timeout, after which whatever has arrived is
    returned.
    """

    def __init__(
        self,
        store: Any,
        roles: RoleResolver,
        read_timeout: Optional[float] = None,
        page_timeout: Optional[float] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self.store = store
        self.roles = roles
        self.read_timeout = read_timeout
        self.page_timeout = settings.DASHBOARD_LOAD_TIMEOUT if page_timeout is None else page_timeout
        self.clock = clock or timezone.localtime
        self.customers = CustomerSearch(store, roles, read_timeout)

    def _today(self) -> Tuple[datetime, datetime]:
        """Local midnight to the next local midnight, which is not always 24 hours."""

        now = self.clock()
        tz = now.tzinfo or timezone.get_current_timezone()
        today = now.date()
        start = timezone.make_aware(datetime.combine(today, time.min), tz)
        end = timezone.make_aware(datetime.combine(today + timedelta(days=1), time.min), tz)
        return start, end

    async def _paged(self, query: TableQuery) -> FetchResult[List[CollectionRecord]]:
        result = await guarded(
            read_all_pages(self.store, query, parse=CollectionRecord.from_row),
            self.read_timeout,
        )
        if not result.ok:
            return FetchResult(error=result.error)
        return result.data

    async def _today_pickups(self, session: CollectorSession, stats: DashboardStats) -> None:
        start, end = self._today()
        query = (
            _collections("id")
            .gte("created_at", start)
            .lt("created_at", end)
            .eq("collector_id", session.actor_id)
        )
        result = await guarded(self.store.count(query), self.read_timeout)
        stats.today_pickups = result.unwrap_or(0)

    async def _load_roster(self) -> Tuple[int, List[UserRecord]]:
        role_ids = await self.roles.customer_role_ids()
        count, listing = await asyncio.gather(
            guarded(self.customers.count_active_customers(role_ids), self.read_timeout),
            guarded(self.customers.recent_customers(role_ids, ROSTER_LIMIT), self.read_timeout),
        )
        if not count.ok and not listing.ok:
            raise StoreError(count.error or "Customer roster unavailable")
        customers = listing.unwrap_or([])
        return (count.data if count.ok else len(customers)), customers

    async def _customer_roster(self, stats: DashboardStats) -> None:
        result = await guarded(self._load_roster(), self.read_timeout)
        if result.ok:
            stats.total_customers, stats.customers = result.data

    async def _recent_pickups(self, session: CollectorSession, stats: DashboardStats) -> None:
        query = (
            _collections(PICKUP_COLUMNS)
            .eq("collector_id", session.actor_id)
            .order("created_at", descending=True)
            .limit(RECENT_PICKUPS_LIMIT)
        )
        result = await guarded(self.store.select(query), self.read_timeout)
        if result.ok:
            stats.recent_pickups = _summaries(result.data or [])

    async def _totals(self, session: CollectorSession, stats: DashboardStats) -> None:
        query = (
            _collections("id,status,total_weight_kg,total_value")
            .eq("collector_id", session.actor_id)
            .in_("status", SUCCESSFUL_STATUSES)
        )
        result = await self._paged(query)
        collections = result.unwrap_or([])
        stats.wallet_balance = sum(collection.value for collection in collections)
        stats.total_weight = sum(collection.weight for collection in collections)

    async def _collection_rate(self, session: CollectorSession) -> float:
        # The approved/completed totals cannot supply a denominator, so a
        # failure here leaves the rate at zero.
        result = await self._paged(_collections("id,status").eq("collector_id", session.actor_id))
        if not result.ok:
            logger.warning("Collection rate unavailable for %s: %s", session.actor_id, result.error)
            return 0.0
        return collection_rate(result.data or [])

    async def _pickup_requests(self, session: CollectorSession) -> List[PickupSummary]:
        query = (
            _handled_by(_collections(PICKUP_COLUMNS), session.actor_id)
            .in_("status", REQUEST_STATUSES)
            .order("created_at", descending=True)
            .limit(PICKUP_REQUESTS_LIMIT)
        )
        result = await guarded(self.store.select(query), self.read_timeout)
        if not result.ok:
            logger.warning("Pickup requests unavailable for %s: %s", session.actor_id, result.error)
            return []
        return _summaries(result.data or [])

    async def _populate(self, session: CollectorSession, stats: DashboardStats) -> None:
        await asyncio.gather(
            self._today_pickups(session, stats),
            self._customer_roster(stats),
            self._recent_pickups(session, stats),
            self._totals(session, stats),
        )
        stats.collection_rate = await self._collection_rate(session)
        stats.pickup_requests = await self._pickup_requests(session)

    async def load_dashboard(self, session: CollectorSession) -> DashboardStats:
        stats = DashboardStats(
            collector_name=session.display_name,
            collector_role=session.role,
            state=DashboardState.LOADING,
        )
        try:
            await asyncio.wait_for(self._populate(session, stats), self.page_timeout)
        except asyncio.TimeoutError:
            logger.warning(
                "Dashboard for %s still loading after %.1fs; returning partial data",
                session.actor_id,
                self.page_timeout,
            )
            stats.state = DashboardState.TIMED_OUT
            return stats

        stats.state = DashboardState.READY
        logger.info(
            "Dashboard for %s: %d today, %d customers, %.1f%% collected",
            session.actor_id,
            stats.today_pickups,
            stats.total_customers,
            stats.collection_rate,
        )
        return stats

    async def load_pickups(self, session: CollectorSession) -> FetchResult[List[PickupSummary]]:
        """Every collection the actor collected or created, newest first."""

        query = _handled_by(_collections(HISTORY_COLUMNS), session.actor_id).order("created_at", descending=True)
        result = await self._paged(query)
        if not result.ok:
            return FetchResult(error=result.error)
        return FetchResult(data=[PickupSummary.from_record(record) for record in result.data or []])
