from __future__ import annotations

from datetime import datetime
from typing import Optional


def parse_timestamp(value: datetime | str | None) -> Optional[datetime]:
    """Turn an API timestamp (ISO 8601, possibly with offset) into a datetime."""

    if value is None or value == "":
        return None

    if isinstance(value, datetime):
        return value

    if isinstance(value, str):
        candidate = value.strip().replace(" ", "T", 1)
        if candidate.endswith("Z"):
            candidate = candidate[:-1] + "+00:00"
        try:
            return datetime.fromisoformat(candidate)
        except ValueError:
            for fmt in ("%Y-%m-%d %H:%M:%S", "%Y-%m-%d %H:%M:%S.%f"):
                try:
                    return datetime.strptime(value, fmt)
                except ValueError:
                    continue

    raise ValueError(f"Unsupported datetime value: {value!r}")


def format_check_in_time(value: datetime | str | None) -> str:
    moment = parse_timestamp(value)
    if moment is None:
        return ""
    return f"{moment.hour}:{moment.minute:02d} on {moment.day}.{moment.month}.{moment.year}"


def format_remaining_time(end_time: datetime | str | None, *, now: datetime | None = None) -> str:
    moment = parse_timestamp(end_time)
    if moment is None:
        return ""

    reference = now or (datetime.now(moment.tzinfo) if moment.tzinfo else datetime.now())
    total_seconds = int((moment - reference).total_seconds())

    if total_seconds <= 0:
        return "expired"
    if total_seconds < 60:
        return "less than a minute left"

    minutes = total_seconds // 60
    if minutes == 1:
        return "1 minute left"
    if minutes < 60:
        return f"{minutes} minutes left"

    hours = minutes // 60
    if hours == 1:
        return "1 hour left"
    return f"{hours} hours left"
