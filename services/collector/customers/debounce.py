"""Restartable delay for typeahead input."""
from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable, Optional

from django.conf import settings


class Debouncer:
    """Runs ``callback`` only for the last of a burst of submissions.

    Each ``submit`` cancels the pending call and schedules a new one after
    ``delay`` seconds.
    """

    def __init__(self, callback: Callable[..., Awaitable[Any]], delay: Optional[float] = None) -> None:
        self.callback = callback
        self.delay = settings.SEARCH_DEBOUNCE_SECONDS if delay is None else delay
        self._pending: Optional[asyncio.Task] = None

    async def _run(self, args: tuple) -> Any:
        await asyncio.sleep(self.delay)
        return await self.callback(*args)

    def submit(self, *args: Any) -> asyncio.Task:
        self.cancel()
        self._pending = asyncio.get_running_loop().create_task(self._run(args))
        return self._pending

    def cancel(self) -> None:
        if self._pending is not None and not self._pending.done():
            self._pending.cancel()
        self._pending = None

    async def result(self) -> Any:
        """Wait for the pending call; ``None`` when nothing is pending."""

        if self._pending is None:
            return None
        return await self._pending
