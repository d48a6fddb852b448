"""Full-table reads assembled from capped pages."""
from __future__ import annotations

import logging
from typing import Any, Callable, Dict, List, Optional, TypeVar

from django.conf import settings

from .client import StoreError, TableQuery
from .guarded import FetchResult
from .records import RecordError

logger = logging.getLogger(__name__)

T = TypeVar("T")


async def read_all_pages(
    store: Any,
    query: TableQuery,
    page_size: Optional[int] = None,
    max_rows: Optional[int] = None,
    parse: Optional[Callable[[Dict[str, Any]], T]] = None,
) -> FetchResult[List[Any]]:
    """Read every row matching ``query``, one page at a time.

    The store caps each response, so pages of ``page_size`` rows are requested
    until one comes back short. ``max_rows`` bounds the scan. An error on any
    page fails the whole read: a partial roster would silently hide customers.
    Rows rejected by ``parse`` are dropped.
    """

    page_size = page_size or settings.STORE_PAGE_SIZE
    max_rows = max_rows or settings.STORE_MAX_ROWS

    rows: List[Dict[str, Any]] = []
    page = 0
    while page * page_size < max_rows:
        start = page * page_size
        # The last page is cut short so the total never passes max_rows.
        size = min(page_size, max_rows - start)
        try:
            chunk = await store.select(query.range(start, start + size - 1))
        except StoreError as exc:
            logger.warning("Paged read of %s failed on page %d: %s", query.table, page, exc.message)
            return FetchResult(error=exc.message)
        rows.extend(chunk[:size])
        if len(chunk) < size:
            break
        page += 1
    else:
        logger.warning("Paged read of %s stopped at the %d row ceiling", query.table, max_rows)

    if parse is None:
        return FetchResult(data=rows)

    parsed: List[T] = []
    for row in rows:
        try:
            parsed.append(parse(row))
        except RecordError as exc:
            logger.warning("Dropping %s row: %s", query.table, exc)
    return FetchResult(data=parsed)
