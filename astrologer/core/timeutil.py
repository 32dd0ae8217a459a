from __future__ import annotations

from datetime import datetime

import pytz


DEFAULT_TIMEZONE = "UTC"


def is_known_timezone(name: str) -> bool:
    return bool(name) and name in pytz.all_timezones_set


def compose_utc_instant(date: str, time: str, timezone_id: str) -> datetime:
    """Interpret ``date`` (YYYY-MM-DD) and ``time`` (HH:mm) as wall-clock time
    in ``timezone_id`` and return the matching aware UTC datetime.

    Raises ``ValueError`` for unparsable input and
    ``pytz.UnknownTimeZoneError`` for an unknown zone.
    """
    local_tz = pytz.timezone(timezone_id)
    naive_local = datetime.strptime(f"{date} {time}", "%Y-%m-%d %H:%M")
    aware_local = local_tz.localize(naive_local)
    return aware_local.astimezone(pytz.UTC)


def format_chart_datetime(instant: datetime) -> str:
    return instant.astimezone(pytz.UTC).strftime("%Y-%m-%dT%H:%M:%SZ")
