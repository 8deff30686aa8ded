# In-memory period store with the same interface as DatabasePersistence.
# Used by the test suite and for running the app locally without Postgres (CALENDAR_STORE=memory).
from dataclasses import replace
from datetime import datetime, timedelta, timezone
from itertools import count
import logging
from typing import Dict, List

from .calendar import Booking, ListingSettings
from .error_utils import StoreError
from .period import DateRange, Period, PeriodKind

logger = logging.getLogger(__name__)


class InMemoryPeriodStore:

    def __init__(self):
        self._periods: Dict[PeriodKind, Dict[int, Period]] = {kind: {} for kind in PeriodKind}
        self._bookings: List[Booking] = []
        self._settings: Dict[str, ListingSettings] = {}
        self._ids = count(1)

    def query_periods(self, listing_id: str, kind: PeriodKind, overlapping: DateRange,
                      tolerance_days: int = 0) -> List[Period]:
        slack = timedelta(days=tolerance_days)
        start, end = overlapping.start - slack, overlapping.end + slack
        matches = [p for p in self._periods[kind].values()
                   if p.listing_id == listing_id and p.end_date >= start and p.start_date <= end]
        return sorted(matches, key=lambda p: p.start_date)

    def retrieve_periods(self, listing_id: str, kind: PeriodKind) -> List[Period]:
        matches = [p for p in self._periods[kind].values() if p.listing_id == listing_id]
        return sorted(matches, key=lambda p: p.start_date)

    def insert_period(self, period: Period) -> int:
        period_id = next(self._ids)
        stored = replace(period, id=period_id, created_at=period.created_at or datetime.now(timezone.utc))
        self._periods[period.kind][period_id] = stored
        logger.info("Inserted %s period %s: %s to %s", period.kind.value, period_id,
                    period.start_date, period.end_date)
        return period_id

    def delete_period(self, period_id: int, kind: PeriodKind) -> bool:
        if self._periods[kind].pop(period_id, None) is None:
            logger.error(f"Period deletion failed: no {kind.value} period with id {period_id}")
            raise StoreError(f"Period {period_id} not found")
        logger.info("Deleted %s period %s", kind.value, period_id)
        return True

    def retrieve_bookings(self, listing_id: str) -> List[Booking]:
        return sorted((b for b in self._bookings if b.listing_id == listing_id), key=lambda b: b.check_in)

    def retrieve_listing_settings(self, listing_id: str) -> ListingSettings:
        return self._settings.get(listing_id, ListingSettings())

    # Seeding helpers, bookings and settings are managed outside the calendar editor

    def add_booking(self, booking: Booking) -> Booking:
        stored = replace(booking, id=next(self._ids))
        self._bookings.append(stored)
        return stored

    def save_listing_settings(self, listing_id: str, settings: ListingSettings):
        self._settings[listing_id] = settings
