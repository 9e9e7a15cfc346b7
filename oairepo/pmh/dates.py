from __future__ import annotations

import re
from datetime import datetime, time, timedelta, timezone
from enum import Enum
from typing import Optional

OAI_DATE_FORMAT = "%Y-%m-%dT%H:%M:%SZ"
OAI_GRANULARITY_STRING = "YYYY-MM-DDThh:mm:ssZ"

_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")
_DATETIME_RE = re.compile(r"^\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}Z$")

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


class Granularity(Enum):
    DATE = 1
    DATETIME = 2


def granularity(value: Optional[str]) -> Optional[Granularity]:
    """Return the granularity of a utcDateTime argument, or None when it is not one."""
    if not value:
        return None
    if _DATE_RE.match(value):
        granule = Granularity.DATE
    elif _DATETIME_RE.match(value):
        granule = Granularity.DATETIME
    else:
        return None
    try:
        _parse(value, granule)
    except ValueError:
        return None
    return granule


def _parse(value: str, granule: Granularity) -> datetime:
    if granule is Granularity.DATE:
        parsed = datetime.strptime(value, "%Y-%m-%d")
    else:
        parsed = datetime.strptime(value, OAI_DATE_FORMAT)
    return parsed.replace(tzinfo=timezone.utc)


def parse_lower_bound(value: str) -> datetime:
    granule = granularity(value)
    if granule is None:
        raise ValueError(f"not an OAI-PMH date: {value!r}")
    return _parse(value, granule)


def parse_upper_bound(value: str) -> datetime:
    """Parse an `until` argument; a bare date covers the whole day."""
    granule = granularity(value)
    if granule is None:
        raise ValueError(f"not an OAI-PMH date: {value!r}")
    parsed = _parse(value, granule)
    if granule is Granularity.DATE:
        parsed = datetime.combine(parsed.date(), time(23, 59, 59), tzinfo=timezone.utc)
    return parsed


def as_utc(value: datetime) -> datetime:
    # Naive datetimes from the record store are taken as UTC.
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def to_utc_string(value: datetime) -> str:
    return as_utc(value).strftime(OAI_DATE_FORMAT)


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(microsecond=0)


def minutes_from(start: datetime, minutes: int) -> datetime:
    return start + timedelta(minutes=minutes)
