"""Customer lookup over the users table."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Sequence

from datastore.client import TableQuery, contains
from datastore.guarded import FetchResult, guarded
from datastore.paging import read_all_pages
from datastore.records import RecordError, UserRecord

from .debounce import Debouncer
from .matching import MIN_QUERY_LENGTH, SearchResult, match, normalize, substring_match
from .roles import RoleResolver

logger = logging.getLogger(__name__)

USER_COLUMNS = (
    "id,email,full_name,first_name,last_name,phone,role_id,status,created_at,updated_at,"
    "street_addr,township_id,subdivision,suburb,city,postal_code"
)
DEGRADED_SEARCH_LIMIT = 100
LISTING_LIMIT = 20


@dataclass(frozen=True)
class SearchOutcome:
    results: List[SearchResult] = field(default_factory=list)
    degraded: bool = False
    error: Optional[str] = None


@dataclass(frozen=True)
class UserStats:
    total: int = 0
    by_role: Dict[str, int] = field(default_factory=dict)
    by_status: Dict[str, int] = field(default_factory=dict)


def customers_query(role_ids: Sequence[str], status: str = "active") -> TableQuery:
    return (
        TableQuery("users", USER_COLUMNS)
        .eq("status", status)
        .in_("role_id", role_ids)
        .order("created_at", descending=True)
    )


def with_name_filter(query: TableQuery, term: str) -> TableQuery:
    """Server-side substring filter on name fields only (never email or phone)."""

    pattern = contains(term)
    return query.or_(
        ("full_name", "ilike", pattern),
        ("first_name", "ilike", pattern),
        ("last_name", "ilike", pattern),
    )


def parse_users(rows: Iterable[Dict[str, Any]]) -> List[UserRecord]:
    users = []
    for row in rows:
        try:
            users.append(UserRecord.from_row(row))
        except RecordError as exc:
            logger.warning("Dropping users row: %s", exc)
    return users


class CustomerSearch:
    def __init__(self, store: Any, roles: RoleResolver, timeout: Optional[float] = None) -> None:
        self.store = store
        self.roles = roles
        self.timeout = timeout

    async def _paged_users(self, query: TableQuery) -> FetchResult[List[UserRecord]]:
        result = await guarded(
            read_all_pages(self.store, query, parse=UserRecord.from_row),
            self.timeout,
        )
        if not result.ok:
            return FetchResult(error=result.error)
        return result.data

    async def active_customers(self, role_ids: Sequence[str]) -> FetchResult[List[UserRecord]]:
        """Every active customer-facing user, newest first."""

        result = await self._paged_users(customers_query(role_ids))
        if not result.ok:
            return result
        return FetchResult(data=self.roles.normalize(result.data or []))

    async def search(self, query_text: Optional[str]) -> SearchOutcome:
        """Rank active customers by name against ``query_text``.

        Matching runs over the full roster. When the roster cannot be read, a
        smaller server-filtered candidate set is matched by plain substring.
        """

        if len(normalize(query_text)) < MIN_QUERY_LENGTH:
            return SearchOutcome()

        role_ids = await self.roles.customer_role_ids()
        if not role_ids:
            logger.warning("No customer-facing roles found; search returns nothing")
            return SearchOutcome()

        roster = await self.active_customers(role_ids)
        if roster.ok:
            return SearchOutcome(results=match(roster.data or [], query_text))

        logger.warning("Customer roster unavailable (%s), falling back to server-side search", roster.error)
        query = with_name_filter(customers_query(role_ids), normalize(query_text)).limit(DEGRADED_SEARCH_LIMIT)
        fallback = await guarded(self.store.select(query), self.timeout)
        if not fallback.ok:
            return SearchOutcome(degraded=True, error=fallback.error)
        candidates = self.roles.normalize(parse_users(fallback.data or []))
        return SearchOutcome(results=substring_match(candidates, query_text), degraded=True)

    def typeahead(self, delay: Optional[float] = None) -> Debouncer:
        """A debouncer that runs ``search`` for the last submitted text."""

        return Debouncer(self.search, delay)

    async def count_active_customers(self, role_ids: Sequence[str]) -> int:
        if not role_ids:
            return 0
        return await self.store.count(customers_query(role_ids).select("id"))

    async def recent_customers(self, role_ids: Sequence[str], limit: int = 50) -> List[UserRecord]:
        if not role_ids:
            return []
        rows = await self.store.select(customers_query(role_ids).limit(limit))
        return self.roles.normalize(parse_users(rows))

    async def list_customers(
        self,
        term: Optional[str] = None,
        role: Optional[str] = None,
        status: Optional[str] = None,
        limit: int = LISTING_LIMIT,
    ) -> FetchResult[List[UserRecord]]:
        """Customer listing with optional role, status and name filters."""

        roles = await self.roles.customer_roles()
        if role and role != "all":
            roles = [candidate for candidate in roles if candidate.name.lower() == role.lower()]
        if not roles:
            return FetchResult(data=[])

        query = customers_query([candidate.id for candidate in roles], status=status or "active").limit(limit)
        if term and term.strip():
            query = with_name_filter(query, term.strip())
        result = await guarded(self.store.select(query), self.timeout)
        if not result.ok:
            return FetchResult(error=result.error)
        return FetchResult(data=self.roles.normalize(parse_users(result.data or [])))

    async def user_stats(self) -> FetchResult[UserStats]:
        """Totals of all users by role name and by status."""

        await self.roles.load_roles()
        result = await self._paged_users(TableQuery("users", "id,role_id,status").order("id"))
        if not result.ok:
            return FetchResult(error=result.error)

        by_role: Dict[str, int] = {}
        by_status: Dict[str, int] = {}
        for user in result.data or []:
            role_name = self.roles.role_name_for(user) or user.role_id or "unassigned"
            by_role[role_name] = by_role.get(role_name, 0) + 1
            by_status[user.status] = by_status.get(user.status, 0) + 1
        return FetchResult(data=UserStats(total=len(result.data or []), by_role=by_role, by_status=by_status))
