import unittest
import os
import sys
from datetime import date, datetime
from werkzeug.datastructures import MultiDict
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))
from listing_calendar.booking import booking_utils as util
from listing_calendar.booking.error_utils import ValidationError
from listing_calendar.booking.period import DateRange


def jan(day):
    return date(2024, 1, day)


class BuildDateRangesTest(unittest.TestCase):

    def test_empty_selection(self):
        self.assertEqual(util.build_date_ranges([]), [])

    def test_single_date(self):
        self.assertEqual(util.build_date_ranges({jan(4)}), [DateRange(jan(4), jan(4))])

    def test_unsorted_dates_collapse_into_contiguous_ranges(self):
        dates = [jan(9), jan(2), jan(1), jan(3), jan(12), jan(10), jan(20)]
        self.assertEqual(util.build_date_ranges(dates), [
            DateRange(jan(1), jan(3)),
            DateRange(jan(9), jan(10)),
            DateRange(jan(12), jan(12)),
            DateRange(jan(20), jan(20)),
        ])

    def test_ranges_cross_month_boundary(self):
        dates = [jan(31), date(2024, 2, 1), datetime(2024, 1, 30, 18, 0)]
        self.assertEqual(util.build_date_ranges(dates), [DateRange(jan(30), date(2024, 2, 1))])

    def test_duplicates_in_different_forms(self):
        self.assertEqual(util.build_date_ranges([jan(5), "2024-01-05", jan(6)]), [DateRange(jan(5), jan(6))])

    def test_ranges_cover_exactly_the_input(self):
        dates = {jan(1), jan(2), jan(4), jan(7), jan(8), jan(9), jan(15)}
        ranges = util.build_date_ranges(dates)
        covered = [day for date_range in ranges for day in date_range.dates()]
        self.assertEqual(sorted(covered), sorted(dates))
        # Maximal: neighbouring ranges never touch
        for first, second in zip(ranges, ranges[1:]):
            self.assertGreater((second.start - first.end).days, 1)


class ValidateRateTest(unittest.TestCase):

    def test_accepts_bounds(self):
        self.assertEqual(util.validate_rate('1'), 1)
        self.assertEqual(util.validate_rate(' 32767 '), 32767)
        self.assertEqual(util.validate_rate(150), 150)

    def test_rejects_out_of_range_and_non_numeric(self):
        for raw_rate in ('0', '32768', 0, 32768, '-5', '12.5', 'abc', '12abc', '', None, True, 80.0):
            with self.assertRaises(ValidationError, msg=repr(raw_rate)) as cm:
                util.validate_rate(raw_rate)
            self.assertIn("between 1 and 32767", cm.exception.message)


class SelectionTest(unittest.TestCase):

    def test_empty_selection_is_rejected(self):
        with self.assertRaises(ValidationError) as cm:
            util.ensure_selection(set())
        self.assertEqual(cm.exception.message, "No dates selected.")

    def test_parse_repeated_and_comma_separated_dates(self):
        form = MultiDict([('dates', '2024-01-01, 2024-01-02'), ('dates', '2024-01-05'), ('dates', '')])
        self.assertEqual(util.parse_selected_dates(form), {jan(1), jan(2), jan(5)})

    def test_parse_missing_field(self):
        self.assertEqual(util.parse_selected_dates(MultiDict()), set())

    def test_parse_rejects_malformed_date(self):
        with self.assertRaises(ValidationError) as cm:
            util.parse_selected_dates(MultiDict([('dates', '2024-01-01,2024-13-40')]))
        self.assertIn("2024-13-40", cm.exception.message)


class ParseDayRangeTest(unittest.TestCase):

    def test_valid_range(self):
        self.assertEqual(util.parse_day_range('2024-01-01', '2024-01-31'), DateRange(jan(1), jan(31)))

    def test_invalid_ranges(self):
        for start, end in (('', '2024-01-02'), ('2024-01-05', '2024-01-01'), ('soon', '2024-01-02'),
                           ('2024-01-01', '2025-06-01')):
            with self.assertRaises(ValidationError):
                util.parse_day_range(start, end)


if __name__ == '__main__':
    unittest.main()
