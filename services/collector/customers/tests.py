"""Tests for customer lookup."""
from __future__ import annotations

import asyncio
from unittest import mock

from django.test import SimpleTestCase
from django.urls import reverse
from rest_framework.test import APIClient

from datastore.client import StoreError
from datastore.guarded import FetchResult
from datastore.records import UserRecord
from datastore.testing import MemoryStore

from .debounce import Debouncer
from .matching import match, substring_match
from .roles import RoleResolver, is_customer_role
from .search import CustomerSearch
from .serializers import mask_email

RESIDENT = "11111111-aaaa-4000-8000-000000000001"
CUSTOMER = "22222222-bbbb-4000-8000-000000000002"
COLLECTOR = "33333333-cccc-4000-8000-000000000003"

ROLES = [
    {"id": RESIDENT, "name": "resident"},
    {"id": CUSTOMER, "name": "Customer"},
    {"id": COLLECTOR, "name": "collector"},
]


def _user(user_id, first, last, role_id, status="active", created_at="2026-10-01T08:00:00+00:00", **fields):
    row = {
        "id": user_id,
        "first_name": first,
        "last_name": last,
        "full_name": f"{first} {last}",
        "email": f"{first.lower()}@example.com",
        "role_id": role_id,
        "status": status,
        "created_at": created_at,
    }
    row.update(fields)
    return row


def _users():
    return [
        _user("u1", "Thabo", "Mokoena", RESIDENT, street_addr="4 Vilakazi St", city="Soweto"),
        _user("u2", "Lerato", "Mokoena", CUSTOMER, created_at="2026-10-05T08:00:00+00:00"),
        _user("u3", "Thabo", "Khumalo", COLLECTOR),
        _user("u4", "Thabo", "Dube", RESIDENT, status="inactive"),
    ]


def _store():
    return MemoryStore({"roles": list(ROLES), "users": _users()})


class RoleResolverTests(SimpleTestCase):
    async def test_plain_names_skip_the_lookup(self) -> None:
        store = _store()
        resolver = RoleResolver(store)

        self.assertEqual(await resolver.resolve_role_name("Admin"), "admin")
        self.assertEqual(store.calls, [])

    async def test_identifier_is_looked_up_once(self) -> None:
        store = _store()
        resolver = RoleResolver(store)

        self.assertEqual(await resolver.resolve_role_name(COLLECTOR), "collector")
        self.assertEqual(await resolver.resolve_role_name(COLLECTOR), "collector")
        self.assertEqual(len(store.calls_to("roles")), 1)

    async def test_empty_reference_uses_default(self) -> None:
        resolver = RoleResolver(_store())

        self.assertEqual(await resolver.resolve_role_name(None), "collector")
        self.assertEqual(await resolver.resolve_role_name("  ", default="resident"), "resident")

    async def test_failed_lookup_uses_default(self) -> None:
        store = _store()
        store.errors["roles"] = StoreError("permission denied", status_code=401)
        resolver = RoleResolver(store)

        self.assertEqual(await resolver.resolve_role_name(RESIDENT), "collector")

    async def test_unknown_identifier_uses_default(self) -> None:
        resolver = RoleResolver(_store())

        name = await resolver.resolve_role_name("99999999-dddd-4000-8000-000000000009", default="resident")

        self.assertEqual(name, "resident")

    async def test_missing_customer_roles_are_omitted(self) -> None:
        resolver = RoleResolver(_store())

        roles = await resolver.customer_roles()

        self.assertEqual(sorted(role.id for role in roles), [RESIDENT, CUSTOMER])
        self.assertEqual(resolver.role_name_for(UserRecord(id="x", role_id=CUSTOMER)), "customer")

    async def test_customer_roles_survive_unreadable_table(self) -> None:
        store = _store()
        store.errors["roles"] = StoreError("boom")

        self.assertEqual(await RoleResolver(store).customer_role_ids(), [])

    def test_customer_role_names(self) -> None:
        self.assertTrue(is_customer_role(" Member "))
        self.assertFalse(is_customer_role("collector"))
        self.assertFalse(is_customer_role(None))


class MatchingTests(SimpleTestCase):
    def setUp(self) -> None:
        self.records = [
            UserRecord(id="1", first_name="Thabo", last_name="Mokoena", full_name="Thabo Mokoena"),
            UserRecord(id="2", first_name="Anna", last_name="Thabethe"),
            UserRecord(id="3", first_name="Zanele", last_name="Thabo"),
            UserRecord(id="4", first_name="Sipho", last_name="Ndlovu", email="thabo@example.com"),
            UserRecord(id="5", first_name="Annabel", last_name="Smith"),
            UserRecord(id="6", first_name="Zoe", last_name="Anna"),
            UserRecord(id="7", full_name="Grace van Wyk"),
        ]

    def _ids(self, results):
        return [result.record.id for result in results]

    def test_single_token_matches_first_or_last_name(self) -> None:
        self.assertEqual(self._ids(match(self.records, "thab")), ["2", "1", "3"])

    def test_email_is_never_searched(self) -> None:
        self.assertNotIn("4", self._ids(match(self.records, "thabo")))

    def test_exact_matches_rank_first(self) -> None:
        results = match(self.records, "Anna")

        self.assertEqual(self._ids(results), ["2", "6", "5"])
        self.assertEqual([result.is_exact for result in results], [True, True, False])

    def test_two_tokens_match_in_either_order(self) -> None:
        self.assertEqual(self._ids(match(self.records, "thabo mokoena")), ["1"])
        self.assertEqual(self._ids(match(self.records, "Mokoena  Thabo")), ["1"])
        self.assertEqual(self._ids(match(self.records, "sipho ndl")), ["4"])

    def test_two_tokens_match_swapped_names(self) -> None:
        records = [
            UserRecord(id="ab", first_name="Naledi", last_name="Sithole"),
            UserRecord(id="ba", first_name="Sithole", last_name="Naledi"),
            UserRecord(id="no", first_name="Naledi", last_name="Khoza"),
        ]

        self.assertEqual(sorted(self._ids(match(records, "naledi sithole"))), ["ab", "ba"])

    def test_two_tokens_match_full_name(self) -> None:
        self.assertEqual(self._ids(match(self.records, "van wyk")), ["7"])

    def test_short_queries_return_nothing(self) -> None:
        self.assertEqual(match(self.records, " a "), [])
        self.assertEqual(match(self.records, None), [])
        self.assertEqual(substring_match(self.records, "z"), [])

    def test_substring_match_covers_full_name(self) -> None:
        self.assertEqual(self._ids(substring_match(self.records, "an w")), ["7"])


class DebouncerTests(SimpleTestCase):
    async def test_only_last_submission_runs(self) -> None:
        calls = []

        async def record(text):
            calls.append(text)
            return text.upper()

        debouncer = Debouncer(record, delay=0.01)
        debouncer.submit("t")
        debouncer.submit("th")
        debouncer.submit("tha")

        self.assertEqual(await debouncer.result(), "THA")
        self.assertEqual(calls, ["tha"])

    async def test_cancel_drops_pending_call(self) -> None:
        calls = []

        async def record(text):
            calls.append(text)

        debouncer = Debouncer(record, delay=0.01)
        debouncer.submit("thabo")
        debouncer.cancel()
        await asyncio.sleep(0.03)

        self.assertIsNone(await debouncer.result())
        self.assertEqual(calls, [])

    def test_default_delay_from_settings(self) -> None:
        async def noop():
            return None

        with self.settings(SEARCH_DEBOUNCE_SECONDS=0.5):
            self.assertEqual(Debouncer(noop).delay, 0.5)


class CustomerSearchTests(SimpleTestCase):
    def setUp(self) -> None:
        self.store = _store()
        self.lookup = CustomerSearch(self.store, RoleResolver(self.store), timeout=1)

    async def test_search_only_returns_active_customers(self) -> None:
        outcome = await self.lookup.search("thabo")

        self.assertFalse(outcome.degraded)
        self.assertEqual([result.record.id for result in outcome.results], ["u1"])
        self.assertEqual(outcome.results[0].record.role_name, "resident")

    async def test_short_query_skips_the_store(self) -> None:
        outcome = await self.lookup.search(" t ")

        self.assertEqual(outcome.results, [])
        self.assertEqual(self.store.calls, [])

    async def test_no_customer_roles_means_no_results(self) -> None:
        self.store.tables["roles"] = [{"id": COLLECTOR, "name": "collector"}]

        outcome = await self.lookup.search("thabo")

        self.assertEqual(outcome.results, [])
        self.assertEqual(self.store.calls_to("users"), [])

    async def test_unreadable_roster_falls_back_to_server_filter(self) -> None:
        roster = mock.AsyncMock(return_value=FetchResult(error="Timeout"))
        with mock.patch.object(self.lookup, "active_customers", roster):
            outcome = await self.lookup.search("Mokoena")

        self.assertTrue(outcome.degraded)
        self.assertEqual(sorted(result.record.id for result in outcome.results), ["u1", "u2"])
        fallback = self.store.calls_to("users")[-1]
        self.assertEqual(fallback.row_limit, 100)
        self.assertEqual([column for column, _, _ in fallback.any_of[0]], ["full_name", "first_name", "last_name"])

    async def test_failed_fallback_reports_error(self) -> None:
        self.store.errors["users"] = StoreError("connection reset")
        roster = mock.AsyncMock(return_value=FetchResult(error="Timeout"))
        with mock.patch.object(self.lookup, "active_customers", roster):
            outcome = await self.lookup.search("Mokoena")

        self.assertTrue(outcome.degraded)
        self.assertEqual(outcome.results, [])
        self.assertEqual(outcome.error, "connection reset")

    async def test_stalled_roster_degrades_within_read_budget(self) -> None:
        self.store.hang.add("users")
        lookup = CustomerSearch(self.store, RoleResolver(self.store), timeout=0.05)

        outcome = await asyncio.wait_for(lookup.search("thabo"), 1.0)

        self.assertTrue(outcome.degraded)
        self.assertEqual(outcome.results, [])
        self.assertEqual(outcome.error, "Timeout")

    async def test_stalled_user_stats_time_out(self) -> None:
        self.store.hang.add("users")
        lookup = CustomerSearch(self.store, RoleResolver(self.store), timeout=0.05)

        result = await asyncio.wait_for(lookup.user_stats(), 1.0)

        self.assertFalse(result.ok)
        self.assertEqual(result.error, "Timeout")

    async def test_typeahead_searches_last_text(self) -> None:
        typeahead = self.lookup.typeahead(delay=0.01)
        typeahead.submit("le")
        typeahead.submit("lerato")

        outcome = await typeahead.result()

        self.assertEqual([result.record.id for result in outcome.results], ["u2"])

    async def test_roster_count_and_recent(self) -> None:
        role_ids = await self.lookup.roles.customer_role_ids()

        self.assertEqual(await self.lookup.count_active_customers(role_ids), 2)
        recent = await self.lookup.recent_customers(role_ids, limit=1)
        self.assertEqual([user.id for user in recent], ["u2"])
        self.assertEqual(await self.lookup.count_active_customers([]), 0)

    async def test_listing_filters_by_customer_role(self) -> None:
        result = await self.lookup.list_customers(role="Resident")

        self.assertEqual([user.id for user in result.data], ["u1"])

    async def test_listing_rejects_non_customer_role(self) -> None:
        result = await self.lookup.list_customers(role="collector")

        self.assertEqual(result.data, [])
        self.assertEqual(self.store.calls_to("users"), [])

    async def test_listing_by_status_and_name(self) -> None:
        inactive = await self.lookup.list_customers(status="inactive")
        named = await self.lookup.list_customers(term="mokoena")

        self.assertEqual([user.id for user in inactive.data], ["u4"])
        self.assertEqual([user.id for user in named.data], ["u2", "u1"])

    async def test_user_stats(self) -> None:
        result = await self.lookup.user_stats()

        self.assertEqual(result.data.total, 4)
        self.assertEqual(result.data.by_role, {"resident": 2, "customer": 1, "collector": 1})
        self.assertEqual(result.data.by_status, {"active": 3, "inactive": 1})


class MaskEmailTests(SimpleTestCase):
    def test_masks_local_part(self) -> None:
        self.assertEqual(mask_email("thabo@example.com"), "t***o@example.com")
        self.assertEqual(mask_email("jo@example.com"), "j*@example.com")
        self.assertEqual(mask_email(None), "")
        self.assertEqual(mask_email("no-at-sign"), "***")


class CustomerApiTests(SimpleTestCase):
    def setUp(self) -> None:
        self.client = APIClient()
        self.store = _store()
        self.store.tables["users"].append(_user("c1", "Nomsa", "Zulu", COLLECTOR))
        patcher = mock.patch("dashboard.access.get_store", return_value=self.store)
        patcher.start()
        self.addCleanup(patcher.stop)

    def test_search_requires_actor(self) -> None:
        response = self.client.get(reverse("customer-search"), {"q": "thabo"})

        self.assertEqual(response.status_code, 400)

    def test_search_returns_ranked_customers(self) -> None:
        response = self.client.get(reverse("customer-search"), {"q": "thabo"}, HTTP_X_ACTOR_ID="c1")

        self.assertEqual(response.status_code, 200)
        self.assertFalse(response.data["degraded"])
        self.assertEqual(len(response.data["results"]), 1)
        result = response.data["results"][0]
        self.assertTrue(result["exact"])
        self.assertEqual(result["customer"]["id"], "u1")
        self.assertEqual(result["customer"]["role"], "resident")
        self.assertEqual(result["customer"]["address"], "4 Vilakazi St, Soweto")

    def test_listing_masks_contact_details(self) -> None:
        response = self.client.get(reverse("customer-list"), {"role": "resident"}, HTTP_X_ACTOR_ID="c1")

        self.assertEqual(response.status_code, 200)
        customer = response.data["results"][0]
        self.assertEqual(customer["email"], "t***o@example.com")
        self.assertEqual(customer["address"], "* ******** **, ******")

    def test_listing_validates_limit(self) -> None:
        response = self.client.get(reverse("customer-list"), {"limit": "500"}, HTTP_X_ACTOR_ID="c1")

        self.assertEqual(response.status_code, 400)

    def test_stats(self) -> None:
        response = self.client.get(reverse("customer-stats"), HTTP_X_ACTOR_ID="c1")

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data["total"], 5)
        self.assertEqual(response.data["byRole"]["collector"], 2)
        self.assertEqual(response.data["byStatus"], {"active": 4, "inactive": 1})

    def test_customers_may_not_use_lookup(self) -> None:
        response = self.client.get(reverse("customer-search"), {"q": "thabo"}, HTTP_X_ACTOR_ID="u1")

        self.assertEqual(response.status_code, 403)
