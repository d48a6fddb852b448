"""Tests for the store client and the read guards."""
from __future__ import annotations

from unittest import mock

import requests
from django.conf import settings
from django.test import SimpleTestCase

from .client import StoreClient, StoreError, TableQuery, contains, sanitize_term
from .guarded import TIMEOUT_ERROR, FetchResult, guarded
from .paging import read_all_pages
from .records import CollectionRecord, RecordError, UserRecord
from .testing import MemoryStore


def _user(index: int, **fields):
    row = {
        "id": f"user-{index:04d}",
        "first_name": f"First{index}",
        "last_name": f"Last{index}",
        "status": "active",
        "created_at": "2026-10-01T08:00:00+00:00",
    }
    row.update(fields)
    return row


def _response(status_code=200, payload=None, headers=None):
    response = mock.Mock()
    response.status_code = status_code
    response.headers = headers or {}
    if isinstance(payload, Exception):
        response.json.side_effect = payload
    else:
        response.json.return_value = payload
    return response


class TableQueryTests(SimpleTestCase):
    def test_params_render_filters_in_order(self) -> None:
        query = (
            TableQuery("users", "id,first_name")
            .eq("status", "active")
            .in_("role_id", ["role-1", "b,2"])
            .or_(("full_name", "ilike", "*jo an*"), ("first_name", "ilike", "*jo*"))
            .order("created_at", descending=True)
            .range(1000, 1999)
        )

        self.assertEqual(
            query.params(),
            [
                ("select", "id,first_name"),
                ("status", "eq.active"),
                ("role_id", 'in.(role-1,"b,2")'),
                ("or", '(full_name.ilike."*jo an*",first_name.ilike.*jo*)'),
                ("order", "created_at.desc"),
                ("limit", "1000"),
                ("offset", "1000"),
            ],
        )

    def test_builders_do_not_mutate_the_base_query(self) -> None:
        base = TableQuery("users").eq("status", "active")
        page = base.range(0, 9)

        self.assertEqual(base.row_limit, None)
        self.assertEqual(page.row_limit, 10)
        self.assertEqual(len(base.filters), 1)
        self.assertEqual(len(base.limit(5).eq("id", "x").filters), 2)

    def test_search_terms_are_stripped_of_pattern_characters(self) -> None:
        self.assertEqual(sanitize_term(" jo*(an), "), "jo  an")
        self.assertEqual(contains("ann%"), "*ann*")


class StoreClientTests(SimpleTestCase):
    def setUp(self) -> None:
        self.client = StoreClient("http://store.local/", api_key="anon-key", timeout=4.0)

    @mock.patch("datastore.client.requests.request")
    async def test_select_sends_query_and_auth_headers(self, mock_request: mock.Mock) -> None:
        mock_request.return_value = _response(payload=[{"id": "a"}, "junk"])

        rows = await self.client.select(TableQuery("roles", "id,name").limit(1))

        self.assertEqual(rows, [{"id": "a"}])
        args, kwargs = mock_request.call_args
        self.assertEqual(args, ("GET", "http://store.local/rest/v1/roles"))
        self.assertEqual(kwargs["params"], [("select", "id,name"), ("limit", "1")])
        self.assertEqual(kwargs["headers"]["apikey"], "anon-key")
        self.assertEqual(kwargs["headers"]["Authorization"], "Bearer anon-key")
        self.assertEqual(kwargs["timeout"], 4.0)

    @mock.patch("datastore.client.requests.request")
    async def test_count_reads_content_range(self, mock_request: mock.Mock) -> None:
        mock_request.return_value = _response(headers={"Content-Range": "*/42"})

        total = await self.client.count(TableQuery("users", "id"))

        self.assertEqual(total, 42)
        args, kwargs = mock_request.call_args
        self.assertEqual(args[0], "HEAD")
        self.assertEqual(kwargs["headers"]["Prefer"], "count=exact")

    @mock.patch("datastore.client.requests.request")
    async def test_count_without_total_is_an_error(self, mock_request: mock.Mock) -> None:
        mock_request.return_value = _response(headers={"Content-Range": "0-9/*"})

        with self.assertRaises(StoreError):
            await self.client.count(TableQuery("users", "id"))

    @mock.patch("datastore.client.requests.request")
    async def test_rejection_uses_store_message(self, mock_request: mock.Mock) -> None:
        mock_request.return_value = _response(status_code=401, payload={"message": "JWT expired"})

        with self.assertRaises(StoreError) as caught:
            await self.client.select(TableQuery("users"))

        self.assertEqual(caught.exception.message, "JWT expired")
        self.assertEqual(caught.exception.status_code, 401)

    @mock.patch("datastore.client.requests.request")
    async def test_rejection_without_json_body(self, mock_request: mock.Mock) -> None:
        mock_request.return_value = _response(status_code=503, payload=ValueError("no json"))

        with self.assertRaises(StoreError) as caught:
            await self.client.select(TableQuery("users"))

        self.assertEqual(caught.exception.message, "Store responded with HTTP 503")

    @mock.patch("datastore.client.requests.request")
    async def test_transport_failure_becomes_store_error(self, mock_request: mock.Mock) -> None:
        mock_request.side_effect = requests.ConnectionError("connection refused")

        with self.assertRaises(StoreError) as caught:
            await self.client.select(TableQuery("users"))

        self.assertTrue(caught.exception.message.startswith("Upstream request failed"))


class GuardedTests(SimpleTestCase):
    async def test_returns_data_when_read_completes(self) -> None:
        store = MemoryStore({"roles": [{"id": "r-1", "name": "collector"}]})

        result = await guarded(store.select(TableQuery("roles")), timeout=1)

        self.assertTrue(result.ok)
        self.assertEqual(result.data, [{"id": "r-1", "name": "collector"}])

    async def test_slow_read_times_out(self) -> None:
        store = MemoryStore({"roles": []})
        store.hang.add("roles")

        result = await guarded(store.select(TableQuery("roles")), timeout=0.01)

        self.assertFalse(result.ok)
        self.assertEqual(result.error, TIMEOUT_ERROR)
        self.assertIsNone(result.data)

    async def test_rejection_carries_message(self) -> None:
        store = MemoryStore({"roles": []})
        store.errors["roles"] = StoreError("permission denied for table roles", status_code=401)

        result = await guarded(store.select(TableQuery("roles")), timeout=1)

        self.assertEqual(result.error, "permission denied for table roles")

    async def test_default_timeout_comes_from_settings(self) -> None:
        store = MemoryStore({"roles": []})
        store.hang.add("roles")

        with self.settings(STORE_READ_TIMEOUT=0.01):
            result = await guarded(store.select(TableQuery("roles")))

        self.assertEqual(result.error, TIMEOUT_ERROR)

    def test_unwrap_or(self) -> None:
        self.assertEqual(FetchResult(data=3).unwrap_or(0), 3)
        self.assertEqual(FetchResult(error="Timeout").unwrap_or(0), 0)
        self.assertEqual(FetchResult().unwrap_or([]), [])


class PagedReadTests(SimpleTestCase):
    async def test_reads_until_a_short_page(self) -> None:
        store = MemoryStore({"users": [_user(i) for i in range(5)]})

        result = await read_all_pages(store, TableQuery("users").order("id"), page_size=2)

        self.assertEqual([row["id"] for row in result.data], [f"user-{i:04d}" for i in range(5)])
        self.assertEqual([(q.row_offset, q.row_limit) for q in store.calls], [(0, 2), (2, 2), (4, 2)])

    async def test_full_last_page_costs_one_empty_read(self) -> None:
        store = MemoryStore({"users": [_user(i) for i in range(4)]})

        result = await read_all_pages(store, TableQuery("users"), page_size=2)

        self.assertEqual([row["id"] for row in result.data], [f"user-{i:04d}" for i in range(4)])
        self.assertEqual(len(store.calls), 3)

    async def test_error_on_later_page_fails_whole_read(self) -> None:
        store = MemoryStore({"users": [_user(i) for i in range(5)]})
        store.fail_after["users"] = 1

        result = await read_all_pages(store, TableQuery("users"), page_size=2)

        self.assertFalse(result.ok)
        self.assertIsNone(result.data)
        self.assertEqual(result.error, "users page unavailable")

    async def test_stops_at_row_ceiling(self) -> None:
        store = MemoryStore({"users": [_user(i) for i in range(10)]})

        with self.assertLogs("datastore.paging", level="WARNING"):
            result = await read_all_pages(store, TableQuery("users"), page_size=2, max_rows=4)

        self.assertEqual(len(result.data), 4)
        self.assertEqual(len(store.calls), 2)

    async def test_ceiling_not_a_multiple_of_page_size(self) -> None:
        store = MemoryStore({"users": [_user(i) for i in range(10)]})

        with self.assertLogs("datastore.paging", level="WARNING"):
            result = await read_all_pages(store, TableQuery("users"), page_size=3, max_rows=4)

        self.assertEqual([row["id"] for row in result.data], [f"user-{i:04d}" for i in range(4)])
        self.assertEqual([(q.row_offset, q.row_limit) for q in store.calls], [(0, 3), (3, 1)])

    async def test_invalid_rows_are_dropped(self) -> None:
        rows = [_user(1), {"first_name": "No id"}, _user(2, status="archived"), _user(3)]
        store = MemoryStore({"users": rows})

        result = await read_all_pages(store, TableQuery("users"), page_size=10, parse=UserRecord.from_row)

        self.assertEqual([user.id for user in result.data], ["user-0001", "user-0003"])


class RecordTests(SimpleTestCase):
    def test_user_record_display_fields(self) -> None:
        user = UserRecord.from_row(
            {
                "id": "u-1",
                "first_name": "Thandi",
                "last_name": None,
                "email": "thandi@example.com",
                "street_addr": "12 Main Rd",
                "city": "Soweto",
                "roles": {"name": "Resident"},
            }
        )

        self.assertEqual(user.display_name, "Thandi")
        self.assertEqual(user.address, "12 Main Rd, Soweto")
        self.assertTrue(user.has_address)
        self.assertEqual(user.role_name, "Resident")
        self.assertEqual(user.status, "active")

    def test_user_without_names_falls_back_to_email(self) -> None:
        user = UserRecord.from_row({"id": "u-2", "email": "sipho.d@example.com"})

        self.assertEqual(user.display_name, "sipho.d")
        self.assertEqual(user.address, "Address not provided")
        self.assertFalse(user.has_address)

    def test_collection_record_rejects_bad_weight(self) -> None:
        with self.assertRaises(RecordError):
            CollectionRecord.from_row({"id": "c-1", "total_weight_kg": "heavy"})

    def test_collection_record_amounts(self) -> None:
        record = CollectionRecord.from_row(
            {"id": "c-1", "status": "approved", "total_weight_kg": "12.5", "total_value": None}
        )

        self.assertTrue(record.is_successful)
        self.assertEqual(record.weight, 12.5)
        self.assertEqual(record.value, 0.0)


class SettingsTests(SimpleTestCase):
    def test_framework_tables_use_local_sqlite(self) -> None:
        database = settings.DATABASES["default"]

        self.assertEqual(database["ENGINE"], "django.db.backends.sqlite3")
        self.assertTrue(database["NAME"].endswith("db.sqlite3"))
