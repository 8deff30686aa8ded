"""
Admin calendar for a listing.

The calendar widget (the "surface") owns the date selection and the display. It needs to offer:
    selected_dates      the dates the admin picked
    set_config(snap)    take a fresh CalendarSnapshot
    clear()             drop the selection
    redraw()            repaint from the current snapshot

CalendarEditor sits between the surface and the period store: it reads the selection, runs the edit
through the reconciliation engine and hands the surface a fresh snapshot once the edit is committed.
"""
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Iterable, List, Optional, Tuple
import logging

from .error_utils import StoreError
from .period import DateRange, Period, PeriodKind, to_calendar_date
from .reconciliation import Operation, run_bulk_operation

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Booking:
    id: Optional[int]
    listing_id: str
    check_in: date
    check_out: date
    guest_name: Optional[str] = None

    def to_dict(self):
        return {
            "id": self.id,
            "listing_id": self.listing_id,
            "check_in": self.check_in.isoformat(),
            "check_out": self.check_out.isoformat(),
            "guest_name": self.guest_name,
        }


@dataclass(frozen=True)
class ListingSettings:
    base_rate: Optional[int] = None
    gap_days: int = 0


@dataclass(frozen=True)
class DisabledRange:
    start: date
    end: date

    def to_dict(self):
        return {"from": self.start.isoformat(), "to": self.end.isoformat()}


def project_disabled_dates(bookings: Iterable[Booking], gap_days: int) -> List[DisabledRange]:
    """
    Builds the list of date ranges the calendar should show as unavailable.

    For every booking: the stay itself, plus gap_days of buffer before check-in and from check-out on
    when gap_days is positive. Ranges may overlap, the calendar only uses them as a mask.
    """
    disabled = []
    for booking in bookings:
        check_in = to_calendar_date(booking.check_in)
        check_out = to_calendar_date(booking.check_out)
        if gap_days > 0:
            disabled.append(DisabledRange(check_in - timedelta(days=gap_days), check_in - timedelta(days=1)))
            disabled.append(DisabledRange(check_out, check_out + timedelta(days=gap_days - 1)))
        disabled.append(DisabledRange(check_in, check_out))
    return disabled


@dataclass(frozen=True)
class DayView:
    day: date
    rate: Optional[int]
    rate_source: str
    is_open: bool
    booking_marker: Optional[str] = None
    guest_name: Optional[str] = None

    def to_dict(self):
        return {
            "date": self.day.isoformat(),
            "rate": self.rate,
            "rate_source": self.rate_source,
            "is_open": self.is_open,
            "booking": self.booking_marker,
            "guest_name": self.guest_name,
        }


@dataclass(frozen=True)
class CalendarSnapshot:
    """Read-only copy of everything the calendar displays for one listing."""
    listing_id: str
    base_rate: Optional[int] = None
    gap_days: int = 0
    rates: Tuple[Period, ...] = ()
    open_periods: Tuple[Period, ...] = ()
    bookings: Tuple[Booking, ...] = ()
    disabled: Tuple[DisabledRange, ...] = ()

    def day_view(self, day) -> DayView:
        """
        What the calendar shows for a single day.

        The rate comes from a custom rate period covering the day, falling back to the listing's base rate.
        A day is open only if an open period covers it.
        """
        day = to_calendar_date(day)
        custom = next((p for p in self.rates if day in p.span), None)
        if custom is not None:
            rate, rate_source = custom.rate, "custom"
        elif self.base_rate is not None:
            rate, rate_source = self.base_rate, "base"
        else:
            rate, rate_source = None, "none"

        is_open = any(day in p.span for p in self.open_periods)

        marker, guest_name = None, None
        booking = next((b for b in self.bookings if b.check_in <= day <= b.check_out), None)
        if booking is not None:
            if day == booking.check_in:
                marker, guest_name = "check-in", booking.guest_name
            elif day == booking.check_out:
                marker = "check-out"
            else:
                marker = "stay"
        return DayView(day, rate, rate_source, is_open, marker, guest_name)

    def day_views(self, date_range: DateRange) -> List[DayView]:
        return [self.day_view(day) for day in date_range.dates()]

    def to_dict(self):
        return {
            "listing_id": self.listing_id,
            "base_rate": self.base_rate,
            "gap_days": self.gap_days,
            "rates": [p.to_dict() for p in self.rates],
            "open_periods": [p.to_dict() for p in self.open_periods],
            "bookings": [b.to_dict() for b in self.bookings],
            "disabled": [d.to_dict() for d in self.disabled],
        }


def load_snapshot(store, listing_id: str) -> CalendarSnapshot:
    """Re-reads settings, periods and bookings for a listing from the store."""
    settings = store.retrieve_listing_settings(listing_id)
    bookings = tuple(store.retrieve_bookings(listing_id))
    return CalendarSnapshot(
        listing_id=listing_id,
        base_rate=settings.base_rate,
        gap_days=settings.gap_days,
        rates=tuple(store.retrieve_periods(listing_id, PeriodKind.RATE)),
        open_periods=tuple(store.retrieve_periods(listing_id, PeriodKind.OPEN)),
        bookings=bookings,
        disabled=tuple(project_disabled_dates(bookings, settings.gap_days)),
    )


class CalendarEditor:
    """Connects the calendar surface's buttons to the reconciliation engine."""

    def __init__(self, store, listing_id: str, surface):
        self._store = store
        self._listing_id = listing_id
        self._surface = surface

    @property
    def listing_id(self):
        return self._listing_id

    def apply_rate(self, raw_rate):
        return self._run(Operation.APPLY_RATE, raw_rate)

    def reset_rate(self):
        return self._run(Operation.RESET_RATE)

    def open_dates(self):
        return self._run(Operation.OPEN)

    def close_dates(self):
        return self._run(Operation.CLOSE)

    def refresh(self) -> CalendarSnapshot:
        snapshot = load_snapshot(self._store, self._listing_id)
        self._surface.set_config(snapshot)
        self._surface.clear()
        self._surface.redraw()
        return snapshot

    def _run(self, operation: Operation, rate=None) -> CalendarSnapshot:
        # ValidationError is raised before the store is touched, StoreError leaves the surface as it was
        try:
            run_bulk_operation(self._store, self._listing_id, operation, self._surface.selected_dates, rate)
        except StoreError:
            logger.error(f"Calendar left partially updated for listing {self._listing_id}. Reload to see current state.")
            raise
        return self.refresh()
