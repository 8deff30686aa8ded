# Utility functions for calendar editing functionality
# Import MultiDict for form input handling
from werkzeug.datastructures import MultiDict
import re
from datetime import date
from typing import Iterable, List, Set
from .error_utils import ValidationError
from .period import DateRange, MAX_RATE, MIN_RATE, ONE_DAY, to_calendar_date

# Digits only, no sign or decimal point
RATE_PATTERN = re.compile(r'^[0-9]+$')

# Date picker posts multiple dates in one field joined by a comma
DATE_SEPARATOR = ','

# Largest span the day view endpoint will expand in one request
MAX_DAY_VIEW_SPAN = 366


def build_date_ranges(dates: Iterable) -> List[DateRange]:
    """
    Collapses individually selected calendar dates into the minimal list of contiguous date ranges.

    Input: any iterable of date, datetime or ISO string values. Duplicates are ignored.

    Returns: list of DateRange sorted by start date. Empty input returns an empty list.
    """
    sorted_dates = sorted({to_calendar_date(d) for d in dates})
    if not sorted_dates:
        return []

    ranges = []
    range_start = sorted_dates[0]
    for previous_date, current_date in zip(sorted_dates, sorted_dates[1:]):
        # A gap of more than one day closes the current range
        if (current_date - previous_date) > ONE_DAY:
            ranges.append(DateRange(range_start, previous_date))
            range_start = current_date
    ranges.append(DateRange(range_start, sorted_dates[-1]))
    return ranges


def validate_rate(raw_rate) -> int:
    """
    Validates nightly rate input from the admin calendar.

    Input: int or string. Strings may carry surrounding whitespace but must otherwise be plain digits.

    Returns: the rate as an int. Raises ValidationError for anything non-numeric or outside 1 - 32767.
    """
    message = f"Please enter a valid rate between {MIN_RATE} and {MAX_RATE}"
    # bool is a subclass of int
    if isinstance(raw_rate, bool):
        raise ValidationError(message)
    if isinstance(raw_rate, int):
        rate = raw_rate
    elif isinstance(raw_rate, str) and RATE_PATTERN.fullmatch(raw_rate.strip()):
        rate = int(raw_rate.strip())
    else:
        raise ValidationError(message)

    if rate < MIN_RATE or rate > MAX_RATE:
        raise ValidationError(message)
    return rate


def ensure_selection(dates) -> None:
    if not dates:
        raise ValidationError("No dates selected.")


def parse_selected_dates(form: MultiDict, field: str = 'dates') -> Set[date]:
    """
    Reads the selected calendar dates out of a submitted form.

    The field may be repeated, and each value may hold several dates separated by commas.
    Blank entries are skipped.

    Returns: set of dates. Raises ValidationError if any entry is not a valid ISO date.
    """
    selected = set()
    for value in form.getlist(field):
        for raw_date in value.split(DATE_SEPARATOR):
            raw_date = raw_date.strip()
            if not raw_date:
                continue
            try:
                selected.add(to_calendar_date(raw_date))
            except ValueError:
                raise ValidationError(f"{raw_date} is not a valid date.")
    return selected


def parse_day_range(start: str, end: str) -> DateRange:
    """
    Parses query string bounds for the day view.

    Raises ValidationError if either bound is missing or malformed, if start is after end,
    or if the range is longer than MAX_DAY_VIEW_SPAN days.
    """
    if not start or not end:
        raise ValidationError("Both start and end dates are required.")
    try:
        date_range = DateRange(to_calendar_date(start), to_calendar_date(end))
    except ValueError:
        raise ValidationError(f"Invalid date range: {start} to {end}.")
    if date_range.days > MAX_DAY_VIEW_SPAN:
        raise ValidationError(f"Date range can cover at most {MAX_DAY_VIEW_SPAN} days.")
    return date_range
