# Calendar period types used by the rate and availability editor
from dataclasses import dataclass, replace
from datetime import date, datetime, timedelta
from enum import Enum
from typing import Iterator, Optional, Union

ONE_DAY = timedelta(days=1)

# Adjacent periods (end + 1 day == start) count as touching when merging
DEFAULT_TOLERANCE_DAYS = 1

# Stored in smallint columns
MIN_RATE = 1
MAX_RATE = 32767


class PeriodKind(Enum):
    """Which table a period lives in. Values are the table names."""
    RATE = "rates"
    OPEN = "open_dates"


def to_calendar_date(value: Union[date, datetime, str]) -> date:
    """
    Normalize a date-like value to a calendar day.

    Accepts date objects, datetimes (their own calendar day, no timezone shifting) and ISO strings,
    either plain 'YYYY-MM-DD' or a full timestamp with an optional trailing 'Z'.
    """
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        value = value.strip()
        try:
            return date.fromisoformat(value)
        except ValueError:
            return datetime.fromisoformat(value.replace("Z", "+00:00")).date()
    raise TypeError(f"Cannot convert {value!r} to a calendar date")


@dataclass(frozen=True)
class DateRange:
    """Inclusive range of calendar days."""
    start: date
    end: date

    def __post_init__(self):
        if self.start > self.end:
            raise ValueError(f"Range start {self.start} is after end {self.end}")

    @property
    def span(self) -> "DateRange":
        return self

    @property
    def days(self) -> int:
        return (self.end - self.start).days + 1

    def dates(self) -> Iterator[date]:
        current = self.start
        while current <= self.end:
            yield current
            current += ONE_DAY

    def contains(self, other) -> bool:
        other = other.span
        return self.start <= other.start and other.end <= self.end

    def __contains__(self, day: date) -> bool:
        return self.start <= day <= self.end


@dataclass(frozen=True)
class Period:
    """
    A stored calendar period for one listing.

    Rate periods carry a nightly rate, open periods leave it as None. Periods are never edited in place,
    changes are a delete plus an insert, so unsaved periods have no id yet.
    """
    id: Optional[int]
    listing_id: str
    start_date: date
    end_date: date
    rate: Optional[int] = None
    created_at: Optional[datetime] = None

    def __post_init__(self):
        if self.start_date > self.end_date:
            raise ValueError(f"Period start {self.start_date} is after end {self.end_date}")

    @property
    def kind(self) -> PeriodKind:
        return PeriodKind.OPEN if self.rate is None else PeriodKind.RATE

    @property
    def span(self) -> DateRange:
        return DateRange(self.start_date, self.end_date)

    def contains(self, other) -> bool:
        return self.span.contains(other)

    def trimmed(self, start: date, end: date) -> "Period":
        """Unsaved copy covering start..end with the same payload."""
        return replace(self, id=None, start_date=start, end_date=end, created_at=None)

    def to_dict(self):
        data = {
            "id": self.id,
            "listing_id": self.listing_id,
            "start_date": self.start_date.isoformat(),
            "end_date": self.end_date.isoformat(),
        }
        if self.rate is not None:
            data["rate"] = self.rate
        if self.created_at is not None:
            data["created_at"] = self.created_at.isoformat()
        return data


def periods_overlap(first, second, tolerance_days: int = DEFAULT_TOLERANCE_DAYS) -> bool:
    """
    Check if two periods (or date ranges) intersect or lie within tolerance_days of each other.

    With the default tolerance of 1 day, [Jan 1, Jan 5] and [Jan 6, Jan 10] overlap.
    Pass tolerance_days=0 for a plain intersection test.
    """
    a, b = first.span, second.span
    if a.start <= b.end and a.end >= b.start:
        return True
    return (abs((a.end - b.start).days) <= tolerance_days
            or abs((b.end - a.start).days) <= tolerance_days)
