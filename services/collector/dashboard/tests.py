"""Tests for the collector dashboard."""
from __future__ import annotations

from datetime import datetime, timedelta, timezone
from unittest import mock
from zoneinfo import ZoneInfo

from django.test import SimpleTestCase, override_settings
from django.urls import reverse
from rest_framework.test import APIClient

from customers.roles import RoleResolver
from datastore.client import StoreError
from datastore.records import CollectionRecord
from datastore.testing import MemoryStore

from .aggregator import COLLECTIONS_TABLE, DashboardAggregator, DashboardState, collection_rate
from .formatting import format_status, format_time
from .session import CollectorSession, load_session

RESIDENT = "11111111-aaaa-4000-8000-000000000001"
COLLECTOR = "33333333-cccc-4000-8000-000000000003"
NOW = datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc)


def _collection(collection_id, status, created_at, collector_id="c1", **fields):
    row = {
        "id": collection_id,
        "collector_id": collector_id,
        "created_by": collector_id,
        "customer_name": "Thabo Mokoena",
        "pickup_address": "4 Vilakazi St",
        "status": status,
        "total_weight_kg": 0,
        "total_value": 0,
        "created_at": created_at,
    }
    row.update(fields)
    return row


def _tables():
    return {
        "roles": [
            {"id": RESIDENT, "name": "resident"},
            {"id": COLLECTOR, "name": "collector"},
        ],
        "users": [
            {"id": "c1", "first_name": "Nomsa", "last_name": "Zulu", "role_id": COLLECTOR, "status": "active"},
            {"id": "u1", "first_name": "Thabo", "last_name": "Mokoena", "role_id": RESIDENT, "status": "active",
             "created_at": "2026-10-01T08:00:00+00:00"},
            {"id": "u2", "first_name": "Lerato", "last_name": "Mokoena", "role_id": RESIDENT, "status": "active",
             "created_at": "2026-10-05T08:00:00+00:00"},
        ],
        COLLECTIONS_TABLE: [
            _collection("k1", "approved", "2026-10-19T09:00:00+00:00", total_weight_kg=10, total_value=50,
                        actual_time="09:15:00"),
            _collection("k2", "completed", "2026-10-18T10:00:00+00:00", total_weight_kg=5, total_value=25),
            _collection("k3", "pending", "2026-10-19T11:00:00+00:00", total_weight_kg=2),
            _collection("k4", "rejected", "2026-10-17T10:00:00+00:00"),
            _collection("k5", "approved", "2026-10-16T10:00:00+00:00", total_weight_kg=1, total_value=5),
            _collection("k6", "submitted", "2026-10-19T08:00:00+00:00", collector_id="c2", created_by="c1"),
            _collection("k7", "pending", "2026-10-19T10:00:00+00:00", collector_id="c2"),
        ],
    }


class RejectingRequestsStore(MemoryStore):
    """Refuses reads that match on collector or creator."""

    async def select(self, query):
        if query.table == COLLECTIONS_TABLE and query.any_of:
            self.calls.append(query)
            raise StoreError("permission denied for unified_collections")
        return await super().select(query)


def _session():
    return CollectorSession(actor_id="c1", role="collector")


@override_settings(TIME_ZONE="UTC")
class DashboardAggregatorTests(SimpleTestCase):
    def _aggregator(self, store, read_timeout=1.0, page_timeout=2.0):
        return DashboardAggregator(
            store,
            RoleResolver(store),
            read_timeout=read_timeout,
            page_timeout=page_timeout,
            clock=lambda: NOW,
        )

    async def test_full_dashboard(self) -> None:
        store = MemoryStore(_tables())

        stats = await self._aggregator(store).load_dashboard(_session())

        self.assertEqual(stats.state, DashboardState.READY)
        self.assertEqual(stats.today_pickups, 2)
        self.assertEqual(stats.total_customers, 2)
        self.assertEqual([user.id for user in stats.customers], ["u2", "u1"])
        self.assertEqual(stats.collection_rate, 60.0)
        self.assertEqual(stats.wallet_balance, 80.0)
        self.assertEqual(stats.total_weight, 16.0)
        self.assertEqual([pickup.id for pickup in stats.recent_pickups], ["k3", "k1", "k2", "k4", "k5"])
        self.assertEqual([pickup.id for pickup in stats.pickup_requests], ["k3", "k6"])

    async def test_pickup_summary_formatting(self) -> None:
        store = MemoryStore(_tables())

        stats = await self._aggregator(store).load_dashboard(_session())

        by_id = {pickup.id: pickup for pickup in stats.recent_pickups}
        self.assertEqual(by_id["k1"].time, "09:15")
        self.assertEqual(by_id["k1"].status, "Approved")
        self.assertEqual(by_id["k3"].time, "11:00")
        self.assertEqual(by_id["k3"].raw_status, "pending")

    async def test_slow_roster_only_zeroes_customers(self) -> None:
        store = MemoryStore(_tables())
        store.hang.add("users")

        stats = await self._aggregator(store, read_timeout=0.05).load_dashboard(_session())

        self.assertEqual(stats.state, DashboardState.READY)
        self.assertEqual(stats.total_customers, 0)
        self.assertEqual(stats.customers, [])
        self.assertEqual(len(stats.recent_pickups), 5)
        self.assertEqual(stats.today_pickups, 2)

    async def test_roster_count_falls_back_to_listing(self) -> None:
        store = MemoryStore(_tables())

        async def no_count(query):
            raise StoreError("count unavailable")

        with mock.patch.object(store, "count", no_count):
            stats = await self._aggregator(store).load_dashboard(_session())

        self.assertEqual(stats.total_customers, 2)
        self.assertEqual(stats.today_pickups, 0)

    async def test_page_timeout_keeps_partial_metrics(self) -> None:
        store = MemoryStore(_tables())
        store.hang.add(COLLECTIONS_TABLE)

        with self.assertLogs("dashboard.aggregator", level="WARNING"):
            stats = await self._aggregator(store, read_timeout=5, page_timeout=0.1).load_dashboard(_session())

        self.assertEqual(stats.state, DashboardState.TIMED_OUT)
        self.assertEqual(stats.total_customers, 2)
        self.assertEqual(stats.today_pickups, 0)
        self.assertEqual(stats.recent_pickups, [])

    async def test_failed_requests_yield_empty_list(self) -> None:
        store = RejectingRequestsStore(_tables())

        with self.assertLogs("dashboard.aggregator", level="WARNING"):
            stats = await self._aggregator(store).load_dashboard(_session())

        self.assertEqual(stats.state, DashboardState.READY)
        self.assertEqual(stats.pickup_requests, [])
        self.assertEqual(stats.collection_rate, 60.0)

    async def test_unreachable_store_renders_empty_stats(self) -> None:
        store = MemoryStore(_tables())
        for table in ("roles", "users", COLLECTIONS_TABLE):
            store.errors[table] = StoreError("service unavailable", status_code=503)

        stats = await self._aggregator(store).load_dashboard(_session())

        self.assertEqual(stats.state, DashboardState.READY)
        self.assertEqual(
            (stats.today_pickups, stats.total_customers, stats.collection_rate, stats.wallet_balance),
            (0, 0, 0.0, 0.0),
        )
        self.assertEqual(stats.recent_pickups, [])

    async def test_load_pickups(self) -> None:
        store = MemoryStore(_tables())

        result = await self._aggregator(store).load_pickups(_session())

        self.assertEqual([pickup.id for pickup in result.data], ["k3", "k1", "k6", "k2", "k4", "k5"])
        self.assertEqual(result.data[1].points, 10.0)
        self.assertEqual(result.data[1].total_value, 50.0)

    async def test_load_pickups_reports_failure(self) -> None:
        store = MemoryStore(_tables())
        store.errors[COLLECTIONS_TABLE] = StoreError("JWT expired", status_code=401)

        result = await self._aggregator(store).load_pickups(_session())

        self.assertFalse(result.ok)
        self.assertEqual(result.error, "JWT expired")

    def test_today_spans_local_calendar_day_across_clock_change(self) -> None:
        london = ZoneInfo("Europe/London")
        store = MemoryStore(_tables())
        aggregator = DashboardAggregator(
            store, RoleResolver(store), clock=lambda: datetime(2026, 10, 25, 12, 0, tzinfo=london)
        )

        start, end = aggregator._today()

        self.assertEqual(start.isoformat(), "2026-10-25T00:00:00+01:00")
        self.assertEqual(end.isoformat(), "2026-10-26T00:00:00+00:00")
        self.assertEqual(end.astimezone(timezone.utc) - start.astimezone(timezone.utc), timedelta(hours=25))

    def test_collection_rate(self) -> None:
        statuses = ["approved"] * 4 + ["completed"] * 2 + ["pending", "rejected", "submitted", "in_progress"]
        collections = [CollectionRecord(id=str(index), status=status) for index, status in enumerate(statuses)]

        self.assertEqual(collection_rate(collections), 60.0)
        self.assertEqual(collection_rate([]), 0.0)


class SessionTests(SimpleTestCase):
    async def test_session_resolves_role_and_name(self) -> None:
        store = MemoryStore(_tables())

        session = await load_session(store, RoleResolver(store), "c1")

        self.assertEqual(session.role, "collector")
        self.assertEqual(session.display_name, "Nomsa Zulu")
        self.assertTrue(session.may_collect)

    async def test_unknown_actor_gets_default_session(self) -> None:
        store = MemoryStore(_tables())

        session = await load_session(store, RoleResolver(store), "nobody")

        self.assertEqual(session.role, "collector")
        self.assertEqual(session.display_name, "User")
        self.assertIsNone(session.profile)

    async def test_unreadable_profile_gets_default_session(self) -> None:
        store = MemoryStore(_tables())
        store.errors["users"] = StoreError("timeout")

        session = await load_session(store, RoleResolver(store), "c1")

        self.assertEqual(session.role, "collector")

    async def test_role_name_in_profile_is_used_directly(self) -> None:
        store = MemoryStore({"users": [{"id": "a1", "email": "ops.lead@example.com", "role_id": "Admin"}]})

        session = await load_session(store, RoleResolver(store), "a1")

        self.assertEqual(session.role, "admin")
        self.assertEqual(session.display_name, "ops.lead")
        self.assertEqual(store.calls_to("roles"), [])

    async def test_customers_may_not_collect(self) -> None:
        store = MemoryStore(_tables())

        session = await load_session(store, RoleResolver(store), "u1")

        self.assertEqual(session.role, "resident")
        self.assertFalse(session.may_collect)


@override_settings(TIME_ZONE="UTC")
class FormattingTests(SimpleTestCase):
    def test_format_status(self) -> None:
        self.assertEqual(format_status("in_progress"), "In progress")
        self.assertEqual(format_status("picked_up_late"), "Picked up_late")
        self.assertEqual(format_status(None), "")

    def test_format_time(self) -> None:
        self.assertEqual(format_time("14:05:33"), "14:05")
        self.assertEqual(format_time("2026-10-19T06:30:00+00:00"), "06:30")
        self.assertEqual(format_time("not a time"), "")
        self.assertEqual(format_time(None), "")


class DashboardApiTests(SimpleTestCase):
    def setUp(self) -> None:
        self.client = APIClient()
        self.store = MemoryStore(_tables())
        patcher = mock.patch("dashboard.access.get_store", return_value=self.store)
        patcher.start()
        self.addCleanup(patcher.stop)

    def test_health(self) -> None:
        response = self.client.get(reverse("collector-health"))

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data, {"status": "ok"})

    def test_dashboard_requires_actor(self) -> None:
        response = self.client.get(reverse("collector-dashboard"))

        self.assertEqual(response.status_code, 400)

    def test_dashboard(self) -> None:
        response = self.client.get(reverse("collector-dashboard"), HTTP_X_ACTOR_ID="c1")

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data["state"], "ready")
        self.assertEqual(response.data["collectorName"], "Nomsa Zulu")
        self.assertEqual(response.data["collectorRole"], "collector")
        self.assertEqual(response.data["totalCustomers"], 2)
        self.assertEqual(response.data["collectionRate"], 60.0)
        self.assertEqual(response.data["walletBalance"], 80.0)
        self.assertEqual(response.data["recentPickups"][0]["id"], "k3")
        self.assertEqual([pickup["id"] for pickup in response.data["pickupRequests"]], ["k3", "k6"])
        self.assertEqual(response.data["customers"][0]["display_name"], "Lerato Mokoena")

    def test_dashboard_survives_unreadable_profile(self) -> None:
        self.store.errors["users"] = StoreError("service unavailable", status_code=503)

        response = self.client.get(reverse("collector-dashboard"), HTTP_X_ACTOR_ID="c1")

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data["collectorName"], "User")
        self.assertEqual(response.data["totalCustomers"], 0)

    def test_residents_are_forbidden(self) -> None:
        response = self.client.get(reverse("collector-dashboard"), HTTP_X_ACTOR_ID="u1")

        self.assertEqual(response.status_code, 403)

    def test_pickups(self) -> None:
        response = self.client.get(reverse("collector-pickups"), HTTP_X_ACTOR_ID="c1")

        self.assertEqual(response.status_code, 200)
        first = response.data["results"][0]
        self.assertEqual(first["id"], "k3")
        self.assertEqual(first["rawStatus"], "pending")
        self.assertEqual(first["points"], 2.0)

    def test_pickups_unavailable(self) -> None:
        self.store.errors[COLLECTIONS_TABLE] = StoreError("JWT expired", status_code=401)

        response = self.client.get(reverse("collector-pickups"), HTTP_X_ACTOR_ID="c1")

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data["results"], [])
        self.assertIn("JWT expired", response.data["detail"])
