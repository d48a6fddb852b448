"""In-memory stand-in for the store, for tests."""
from __future__ import annotations

import asyncio
import re
from datetime import date, datetime
from typing import Any, Dict, Iterable, List, Optional, Set

from .client import Condition, StoreError, TableQuery


def _comparable(value: Any) -> Any:
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return value


def _ilike(value: Any, pattern: str) -> bool:
    if value is None:
        return False
    regex = ".*".join(re.escape(part) for part in str(pattern).split("*"))
    return re.fullmatch(regex, str(value), flags=re.IGNORECASE | re.DOTALL) is not None


def _holds(row: Dict[str, Any], condition: Condition) -> bool:
    column, operator, expected = condition
    actual = row.get(column)
    if operator == "eq":
        return actual is not None and str(actual) == str(_comparable(expected))
    if operator == "neq":
        return actual is None or str(actual) != str(_comparable(expected))
    if operator == "in":
        return actual is not None and str(actual) in {str(item) for item in expected}
    if operator == "ilike":
        return _ilike(actual, expected)
    if operator in {"gte", "lt"}:
        if actual is None:
            return False
        left, right = str(_comparable(actual)), str(_comparable(expected))
        return left >= right if operator == "gte" else left < right
    raise ValueError(f"unsupported operator {operator!r}")


class MemoryStore:
    """Evaluates ``TableQuery`` filters against lists of row dicts.

    ``errors`` fails every read of a table, ``fail_after`` fails a table's
    reads once that many have succeeded, and ``hang`` makes a table's reads
    never complete. Every query is recorded in ``calls``.
    """

    def __init__(self, tables: Optional[Dict[str, List[Dict[str, Any]]]] = None) -> None:
        self.tables: Dict[str, List[Dict[str, Any]]] = {
            name: list(rows) for name, rows in (tables or {}).items()
        }
        self.errors: Dict[str, StoreError] = {}
        self.fail_after: Dict[str, int] = {}
        self.hang: Set[str] = set()
        self.calls: List[TableQuery] = []
        self.count_calls: List[TableQuery] = []

    def calls_to(self, table: str) -> List[TableQuery]:
        return [query for query in self.calls if query.table == table]

    async def _gate(self, query: TableQuery) -> None:
        if query.table in self.hang:
            await asyncio.Event().wait()
        if query.table in self.errors:
            raise self.errors[query.table]
        if query.table in self.fail_after:
            served = len(self.calls_to(query.table)) - 1
            if served >= self.fail_after[query.table]:
                raise StoreError(f"{query.table} page unavailable", status_code=503)

    def _matching(self, query: TableQuery) -> List[Dict[str, Any]]:
        rows: Iterable[Dict[str, Any]] = self.tables.get(query.table, [])
        rows = [row for row in rows if all(_holds(row, condition) for condition in query.filters)]
        for group in query.any_of:
            rows = [row for row in rows if any(_holds(row, condition) for condition in group)]
        for column, descending in reversed(query.ordering):
            rows.sort(key=lambda row: (row.get(column) is None, str(_comparable(row.get(column)) or "")), reverse=descending)
        return list(rows)

    async def select(self, query: TableQuery) -> List[Dict[str, Any]]:
        self.calls.append(query)
        await self._gate(query)
        rows = self._matching(query)
        start = query.row_offset or 0
        if query.row_limit is not None:
            return rows[start:start + query.row_limit]
        return rows[start:]

    async def count(self, query: TableQuery) -> int:
        self.count_calls.append(query)
        await self._gate(query)
        return len(self._matching(query))
