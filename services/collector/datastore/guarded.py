"""Timeout guard for remote reads."""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Generic, Optional, TypeVar

from django.conf import settings

logger = logging.getLogger(__name__)

T = TypeVar("T")

TIMEOUT_ERROR = "Timeout"


@dataclass(frozen=True)
class FetchResult(Generic[T]):
    """The outcome of a read: either ``data`` or an ``error`` message."""

    data: Optional[T] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def unwrap_or(self, default: T) -> T:
        if self.error is not None or self.data is None:
            return default
        return self.data


async def guarded(operation: Awaitable[T], timeout: Optional[float] = None) -> FetchResult[T]:
    """Await ``operation`` for at most ``timeout`` seconds.

    Never raises for a failed read: a timeout yields ``error="Timeout"`` and
    any other failure yields its message. The operation is cancelled when the
    timer wins.
    """

    budget = settings.STORE_READ_TIMEOUT if timeout is None else timeout
    try:
        data = await asyncio.wait_for(operation, budget)
    except asyncio.TimeoutError:
        logger.warning("Read abandoned after %.1fs", budget)
        return FetchResult(error=TIMEOUT_ERROR)
    except Exception as exc:
        logger.warning("Read failed: %s", exc)
        return FetchResult(error=str(exc) or exc.__class__.__name__)
    return FetchResult(data=data)
