import unittest
import os
import sys
from datetime import date
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))
from listing_calendar.booking.calendar import (Booking, CalendarEditor, CalendarSnapshot, DisabledRange,
                                               ListingSettings, load_snapshot, project_disabled_dates)
from listing_calendar.booking.error_utils import StoreError, ValidationError
from listing_calendar.booking.memory_store import InMemoryPeriodStore
from listing_calendar.booking.period import DateRange, Period, PeriodKind

LISTING = 'listing-1'


def march(day):
    return date(2024, 3, day)


class DisabledDateTest(unittest.TestCase):

    def test_gap_days_block_both_sides_of_a_stay(self):
        booking = Booking(1, LISTING, march(10), march(14))
        self.assertEqual(project_disabled_dates([booking], 2), [
            DisabledRange(march(8), march(9)),
            DisabledRange(march(14), march(15)),
            DisabledRange(march(10), march(14)),
        ])

    def test_no_gap_days(self):
        booking = Booking(1, LISTING, march(10), march(14))
        self.assertEqual(project_disabled_dates([booking], 0), [DisabledRange(march(10), march(14))])

    def test_no_bookings(self):
        self.assertEqual(project_disabled_dates([], 3), [])

    def test_serializes_as_from_to(self):
        self.assertEqual(DisabledRange(march(1), march(2)).to_dict(), {"from": "2024-03-01", "to": "2024-03-02"})


class DayViewTest(unittest.TestCase):

    def setUp(self):
        self.snapshot = CalendarSnapshot(
            listing_id=LISTING,
            base_rate=100,
            rates=(Period(1, LISTING, march(1), march(5), rate=150),),
            open_periods=(Period(2, LISTING, march(1), march(31)),),
            bookings=(Booking(3, LISTING, march(10), march(12), guest_name="Ana"),),
        )

    def test_custom_rate_then_base_rate(self):
        self.assertEqual(self.snapshot.day_view(march(3)).rate, 150)
        self.assertEqual(self.snapshot.day_view(march(3)).rate_source, "custom")
        self.assertEqual(self.snapshot.day_view(march(7)).rate, 100)
        self.assertEqual(self.snapshot.day_view(march(7)).rate_source, "base")

    def test_no_rate_without_base_rate(self):
        view = CalendarSnapshot(listing_id=LISTING).day_view(march(7))
        self.assertIsNone(view.rate)
        self.assertEqual(view.rate_source, "none")

    def test_days_outside_open_periods_are_blocked(self):
        self.assertTrue(self.snapshot.day_view(march(31)).is_open)
        self.assertFalse(self.snapshot.day_view("2024-04-01").is_open)

    def test_booking_markers(self):
        views = self.snapshot.day_views(DateRange(march(9), march(13)))
        self.assertEqual([view.booking_marker for view in views], [None, "check-in", "stay", "check-out", None])
        self.assertEqual(views[1].guest_name, "Ana")
        self.assertIsNone(views[2].guest_name)
        self.assertEqual(views[1].to_dict()["date"], "2024-03-10")


class RecordingSurface:
    def __init__(self, selected_dates):
        self.selected_dates = selected_dates
        self.config = None
        self.calls = []

    def set_config(self, snapshot):
        self.config = snapshot
        self.calls.append('set_config')

    def clear(self):
        self.selected_dates = set()
        self.calls.append('clear')

    def redraw(self):
        self.calls.append('redraw')


class CalendarEditorTest(unittest.TestCase):

    def setUp(self):
        self.store = InMemoryPeriodStore()
        self.store.save_listing_settings(LISTING, ListingSettings(base_rate=90, gap_days=1))
        self.store.add_booking(Booking(None, LISTING, march(20), march(22), guest_name="Sam"))

    def test_load_snapshot(self):
        self.store.insert_period(Period(None, LISTING, march(1), march(5), rate=150))
        self.store.insert_period(Period(None, LISTING, march(1), march(31)))
        snapshot = load_snapshot(self.store, LISTING)
        self.assertEqual(snapshot.base_rate, 90)
        self.assertEqual(len(snapshot.rates), 1)
        self.assertEqual(len(snapshot.open_periods), 1)
        self.assertIn(DisabledRange(march(19), march(19)), snapshot.disabled)
        self.assertIn(DisabledRange(march(22), march(22)), snapshot.disabled)
        self.assertEqual(snapshot.to_dict()["bookings"][0]["guest_name"], "Sam")

    def test_apply_rate_refreshes_surface(self):
        surface = RecordingSurface({march(1), march(2), march(3)})
        snapshot = CalendarEditor(self.store, LISTING, surface).apply_rate('175')
        self.assertEqual(surface.calls, ['set_config', 'clear', 'redraw'])
        self.assertIs(surface.config, snapshot)
        self.assertEqual(surface.selected_dates, set())
        self.assertEqual([(p.start_date, p.end_date, p.rate) for p in snapshot.rates],
                         [(march(1), march(3), 175)])

    def test_open_then_close(self):
        surface = RecordingSurface({march(d) for d in range(1, 11)})
        editor = CalendarEditor(self.store, LISTING, surface)
        editor.open_dates()
        surface.selected_dates = {march(5)}
        snapshot = editor.close_dates()
        self.assertEqual([(p.start_date, p.end_date) for p in snapshot.open_periods],
                         [(march(1), march(4)), (march(6), march(10))])

    def test_reset_rate(self):
        self.store.insert_period(Period(None, LISTING, march(1), march(10), rate=150))
        surface = RecordingSurface({march(10)})
        snapshot = CalendarEditor(self.store, LISTING, surface).reset_rate()
        self.assertEqual([(p.start_date, p.end_date) for p in snapshot.rates], [(march(1), march(9))])

    def test_validation_error_leaves_surface_alone(self):
        surface = RecordingSurface({march(1)})
        with self.assertRaises(ValidationError):
            CalendarEditor(self.store, LISTING, surface).apply_rate('0')
        with self.assertRaises(ValidationError):
            CalendarEditor(self.store, LISTING, RecordingSurface(set())).open_dates()
        self.assertEqual(surface.calls, [])
        self.assertEqual(self.store.retrieve_periods(LISTING, PeriodKind.RATE), [])

    def test_store_error_leaves_surface_alone(self):
        surface = RecordingSurface({march(1)})

        class BrokenStore(InMemoryPeriodStore):
            def query_periods(self, *args, **kwargs):
                raise StoreError("timeout")

        with self.assertRaises(StoreError):
            CalendarEditor(BrokenStore(), LISTING, surface).open_dates()
        self.assertEqual(surface.calls, [])
        self.assertEqual(surface.selected_dates, {march(1)})


if __name__ == '__main__':
    unittest.main()
