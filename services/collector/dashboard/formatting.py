"""Display helpers for pickup rows."""
from __future__ import annotations

import re
from datetime import datetime
from typing import Optional, Union

from django.utils import timezone
from django.utils.dateparse import parse_datetime

_CLOCK_TIME = re.compile(r"^\d{2}:\d{2}")


def format_status(status: Optional[str]) -> str:
    """``in_progress`` -> ``In progress``."""

    text = (status or "").replace("_", " ", 1)
    return text[:1].upper() + text[1:]


def format_time(value: Union[str, datetime, None]) -> str:
    """Local ``HH:MM`` for a timestamp or a bare ``HH:MM:SS`` time."""

    if not value:
        return ""
    if isinstance(value, str):
        if _CLOCK_TIME.match(value):
            return value[:5]
        try:
            parsed = parse_datetime(value)
        except ValueError:
            parsed = None
        if parsed is None:
            return ""
        value = parsed
    if timezone.is_aware(value):
        value = timezone.localtime(value)
    return value.strftime("%H:%M")

