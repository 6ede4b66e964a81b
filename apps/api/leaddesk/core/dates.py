from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone

from leaddesk.core.errors import InvalidRequestError


def to_utc(value: datetime, field_name: str) -> datetime:
    """Normalize a caller-supplied instant to UTC; naive values are rejected."""

    if value.tzinfo is None or value.tzinfo.utcoffset(value) is None:
        raise InvalidRequestError(f"{field_name} must be timezone-aware", details={"field": field_name})
    return value.astimezone(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Attach UTC to values read back from stores that drop the offset."""

    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


@dataclass(frozen=True, slots=True)
class DateRange:
    date_from: datetime
    date_to: datetime

    @classmethod
    def of(cls, date_from: datetime, date_to: datetime) -> DateRange:
        start = to_utc(date_from, "date_from")
        end = to_utc(date_to, "date_to")
        if start > end:
            raise InvalidRequestError(
                "date_from must not be after date_to",
                details={"date_from": start.isoformat(), "date_to": end.isoformat()},
            )
        return cls(date_from=start, date_to=end)
