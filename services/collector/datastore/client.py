"""HTTP client for the remote data store (PostgREST dialect)."""
from __future__ import annotations

import asyncio
import copy
import re
from datetime import date, datetime
from typing import Any, Dict, Iterable, List, Optional, Tuple

import requests
from django.conf import settings

Condition = Tuple[str, str, Any]

_RESERVED = re.compile(r'[,.:()"\s]')
_CONTENT_RANGE = re.compile(r"^(?:\d+-\d+|\*)/(\d+|\*)$")


class StoreError(Exception):
    """A read against the store failed or was rejected."""

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code


def _format_value(value: Any) -> str:
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, bool):
        return "true" if value else "false"
    if value is None:
        return "null"
    return str(value)


def _quote(value: Any) -> str:
    text = _format_value(value)
    if _RESERVED.search(text):
        escaped = text.replace("\\", "\\\\").replace('"', '\\"')
        return f'"{escaped}"'
    return text


def _render_condition(column: str, operator: str, value: Any, quote: bool) -> Tuple[str, str]:
    if operator == "in":
        rendered = "(" + ",".join(_quote(item) for item in value) + ")"
    elif quote:
        rendered = _quote(value)
    else:
        rendered = _format_value(value)
    return column, f"{operator}.{rendered}"


class TableQuery:
    """An immutable description of a read against one table.

    Every builder method returns a new query, so a base query can be reused
    for each page of a paged read.
    """

    def __init__(self, table: str, columns: str = "*") -> None:
        self.table = table
        self.columns = columns
        self.filters: List[Condition] = []
        self.any_of: List[List[Condition]] = []
        self.ordering: List[Tuple[str, bool]] = []
        self.row_limit: Optional[int] = None
        self.row_offset: Optional[int] = None

    def _clone(self) -> "TableQuery":
        clone = copy.copy(self)
        clone.filters = list(self.filters)
        clone.any_of = [list(group) for group in self.any_of]
        clone.ordering = list(self.ordering)
        return clone

    def _filter(self, column: str, operator: str, value: Any) -> "TableQuery":
        clone = self._clone()
        clone.filters.append((column, operator, value))
        return clone

    def select(self, columns: str) -> "TableQuery":
        clone = self._clone()
        clone.columns = columns
        return clone

    def eq(self, column: str, value: Any) -> "TableQuery":
        return self._filter(column, "eq", value)

    def neq(self, column: str, value: Any) -> "TableQuery":
        return self._filter(column, "neq", value)

    def gte(self, column: str, value: Any) -> "TableQuery":
        return self._filter(column, "gte", value)

    def lt(self, column: str, value: Any) -> "TableQuery":
        return self._filter(column, "lt", value)

    def in_(self, column: str, values: Iterable[Any]) -> "TableQuery":
        return self._filter(column, "in", list(values))

    def ilike(self, column: str, pattern: str) -> "TableQuery":
        """Case-insensitive match; ``*`` is the wildcard."""

        return self._filter(column, "ilike", pattern)

    def or_(self, *conditions: Condition) -> "TableQuery":
        """Match rows satisfying any of ``(column, operator, value)``."""

        clone = self._clone()
        clone.any_of.append(list(conditions))
        return clone

    def order(self, column: str, descending: bool = False) -> "TableQuery":
        clone = self._clone()
        clone.ordering.append((column, descending))
        return clone

    def limit(self, count: int) -> "TableQuery":
        clone = self._clone()
        clone.row_limit = count
        return clone

    def range(self, start: int, end: int) -> "TableQuery":
        """Restrict to rows ``start`` through ``end`` inclusive."""

        clone = self._clone()
        clone.row_offset = start
        clone.row_limit = end - start + 1
        return clone

    def params(self) -> List[Tuple[str, str]]:
        params: List[Tuple[str, str]] = [("select", self.columns)]
        for column, operator, value in self.filters:
            params.append(_render_condition(column, operator, value, quote=False))
        for group in self.any_of:
            parts = []
            for column, operator, value in group:
                key, rendered = _render_condition(column, operator, value, quote=True)
                parts.append(f"{key}.{rendered}")
            params.append(("or", "(" + ",".join(parts) + ")"))
        if self.ordering:
            params.append(
                (
                    "order",
                    ",".join(f"{column}.{'desc' if desc else 'asc'}" for column, desc in self.ordering),
                )
            )
        if self.row_limit is not None:
            params.append(("limit", str(self.row_limit)))
        if self.row_offset:
            params.append(("offset", str(self.row_offset)))
        return params

    def __repr__(self) -> str:
        return f"<TableQuery {self.table} {self.params()!r}>"


class StoreClient:
    """Issues reads against the store.

    ``requests`` is blocking, so each call runs in a worker thread and carries
    the read budget as its socket timeout; an abandoned call stops on its own
    instead of lingering after the caller has given up on it.
    """

    def __init__(self, base_url: str, api_key: str = "", timeout: float = 10.0) -> None:
        self.base_url = base_url.rstrip("/") + "/rest/v1/"
        self.api_key = api_key
        self.timeout = timeout

    def _headers(self, extra: Optional[Dict[str, str]] = None) -> Dict[str, str]:
        headers = {"Accept": "application/json"}
        if self.api_key:
            headers["apikey"] = self.api_key
            headers["Authorization"] = f"Bearer {self.api_key}"
        if extra:
            headers.update(extra)
        return headers

    def _request(
        self,
        method: str,
        query: TableQuery,
        headers: Optional[Dict[str, str]] = None,
    ) -> requests.Response:
        try:
            response = requests.request(
                method,
                self.base_url + query.table,
                params=query.params(),
                headers=self._headers(headers),
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            raise StoreError(f"Upstream request failed: {exc}") from exc

        if response.status_code >= 400:
            message = f"Store responded with HTTP {response.status_code}"
            try:
                payload = response.json()
            except ValueError:
                payload = None
            if isinstance(payload, dict) and payload.get("message"):
                message = str(payload["message"])
            raise StoreError(message, status_code=response.status_code)
        return response

    def _select(self, query: TableQuery) -> List[Dict[str, Any]]:
        response = self._request("GET", query)
        try:
            payload = response.json()
        except ValueError as exc:
            raise StoreError("Store returned a non-JSON body") from exc
        if not isinstance(payload, list):
            raise StoreError("Store returned an unexpected payload")
        return [row for row in payload if isinstance(row, dict)]

    def _count(self, query: TableQuery) -> int:
        response = self._request("HEAD", query, headers={"Prefer": "count=exact"})
        content_range = response.headers.get("Content-Range", "")
        match = _CONTENT_RANGE.match(content_range.strip())
        if not match or match.group(1) == "*":
            raise StoreError(f"Store returned no row count (Content-Range: {content_range!r})")
        return int(match.group(1))

    async def select(self, query: TableQuery) -> List[Dict[str, Any]]:
        return await asyncio.to_thread(self._select, query)

    async def count(self, query: TableQuery) -> int:
        return await asyncio.to_thread(self._count, query)


def get_store() -> StoreClient:
    return StoreClient(
        settings.DATA_STORE_URL,
        api_key=settings.DATA_STORE_API_KEY,
        timeout=settings.STORE_READ_TIMEOUT,
    )


def sanitize_term(term: str) -> str:
    """Strip characters that would change the meaning of a pattern."""

    return re.sub(r"[*%,()]", " ", term or "").strip()


def contains(term: str) -> str:
    return f"*{sanitize_term(term)}*"
