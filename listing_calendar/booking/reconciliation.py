"""
Period reconciliation for the admin calendar.

Takes a target date range, an edit (apply rate, reset rate, open, close) and the listing's existing periods,
and works out which stored periods to delete and which to insert so that the periods of each kind stay
non-overlapping and adjacent rate periods with the same rate stay merged.

Planning is pure. The store is only touched by apply_diff / reconcile_range / run_bulk_operation,
which process one range at a time so later ranges see the writes of earlier ones.
"""
from dataclasses import dataclass
from enum import Enum
from typing import Iterable, List, Optional, Sequence, Tuple
import logging

from .booking_utils import build_date_ranges, ensure_selection, validate_rate
from .error_utils import StoreError
from .period import (DEFAULT_TOLERANCE_DAYS, ONE_DAY, DateRange, Period, PeriodKind,
                     periods_overlap)

logger = logging.getLogger(__name__)


class Operation(Enum):
    APPLY_RATE = "apply-rate"
    RESET_RATE = "reset-rate"
    OPEN = "open"
    CLOSE = "close"

    @property
    def kind(self) -> PeriodKind:
        if self in (Operation.APPLY_RATE, Operation.RESET_RATE):
            return PeriodKind.RATE
        return PeriodKind.OPEN

    @property
    def tolerance_days(self) -> int:
        """How far around the target range candidate periods are queried."""
        if self in (Operation.APPLY_RATE, Operation.OPEN):
            return DEFAULT_TOLERANCE_DAYS
        return 0


@dataclass(frozen=True)
class PeriodDiff:
    to_delete: Tuple[int, ...] = ()
    to_insert: Tuple[Period, ...] = ()
    strategy: str = "noop"

    @property
    def is_empty(self) -> bool:
        return not self.to_delete and not self.to_insert


def trim_and_reinsert(listing_id: str, target: DateRange, candidates: Sequence[Period],
                      absorb: Sequence[Period] = (), new_rate: Optional[int] = None,
                      insert_new: bool = False, strategy: str = "split") -> PeriodDiff:
    """
    Shared primitive behind every edit.

    Every candidate that intersects the target is deleted. Candidates listed in absorb are deleted outright
    and their span is folded into the new period. The rest keep whatever part lies outside the target:
    a "before" remnant if they start before it, an "after" remnant if they end after it, with their
    original rate.

    If insert_new is set, one period spanning the target plus all absorbed periods is inserted with
    new_rate (None for open periods).
    """
    absorbed_ids = {period.id for period in absorb}
    to_delete = []
    to_insert = []

    for period in candidates:
        if period.id in absorbed_ids:
            to_delete.append(period.id)
            continue
        # Candidate queries may be wider than the target, re-check before touching anything
        if not periods_overlap(period, target, tolerance_days=0):
            continue
        to_delete.append(period.id)
        if period.start_date < target.start:
            to_insert.append(period.trimmed(period.start_date, target.start - ONE_DAY))
        if period.end_date > target.end:
            to_insert.append(period.trimmed(target.end + ONE_DAY, period.end_date))

    if insert_new:
        start = min([target.start] + [period.start_date for period in absorb])
        end = max([target.end] + [period.end_date for period in absorb])
        to_insert.append(Period(None, listing_id, start, end, rate=new_rate))

    if not to_delete and not to_insert:
        strategy = "noop"
    return PeriodDiff(tuple(to_delete), tuple(to_insert), strategy)


def plan_apply_rate(listing_id: str, target: DateRange, candidates: Sequence[Period], rate: int) -> PeriodDiff:
    """
    candidates should be the rate periods within one day of the target.

    - Merge: a period with the same rate overlaps or touches the target, so the new period grows to cover it.
      Periods with other rates crossing the target are still cut back.
    - Full override: every period intersecting the target lies inside it, so they are all replaced.
    - Split: otherwise periods crossing the target edges are cut back and the new period goes in between.
    """
    nearby = [period for period in candidates if periods_overlap(period, target, tolerance_days=0)]
    same_rate = [period for period in candidates
                 if period.rate == rate and periods_overlap(period, target)]

    if same_rate:
        strategy = "merge"
    elif all(target.contains(period) for period in nearby):
        strategy = "override"
    else:
        strategy = "split"

    return trim_and_reinsert(listing_id, target, candidates, absorb=same_rate,
                             new_rate=rate, insert_new=True, strategy=strategy)


def plan_reset_rate(listing_id: str, target: DateRange, candidates: Sequence[Period]) -> PeriodDiff:
    # Dates in the target fall back to the listing's base rate
    return trim_and_reinsert(listing_id, target, candidates, strategy="reset")


def plan_open(listing_id: str, target: DateRange, candidates: Sequence[Period]) -> PeriodDiff:
    # Open periods have no payload so anything touching the target merges
    touching = [period for period in candidates if periods_overlap(period, target)]
    return trim_and_reinsert(listing_id, target, candidates, absorb=touching,
                             insert_new=True, strategy="open")


def plan_close(listing_id: str, target: DateRange, candidates: Sequence[Period]) -> PeriodDiff:
    return trim_and_reinsert(listing_id, target, candidates, strategy="close")


def plan_operation(operation: Operation, listing_id: str, target: DateRange,
                   candidates: Sequence[Period], rate: Optional[int] = None) -> PeriodDiff:
    match operation:
        case Operation.APPLY_RATE:
            return plan_apply_rate(listing_id, target, candidates, rate)
        case Operation.RESET_RATE:
            return plan_reset_rate(listing_id, target, candidates)
        case Operation.OPEN:
            return plan_open(listing_id, target, candidates)
        case Operation.CLOSE:
            return plan_close(listing_id, target, candidates)
    raise ValueError(f"Unknown operation: {operation}")


def apply_diff(store, kind: PeriodKind, diff: PeriodDiff) -> List[int]:
    """
    Writes a diff to the store, deletes first, one call at a time.

    Returns: ids of the inserted periods. StoreError propagates and leaves earlier writes in place.
    """
    for period_id in diff.to_delete:
        store.delete_period(period_id, kind)
    return [store.insert_period(period) for period in diff.to_insert]


def reconcile_range(store, listing_id: str, operation: Operation, target: DateRange,
                    rate: Optional[int] = None) -> PeriodDiff:
    """Query, plan and write one range."""
    candidates = store.query_periods(listing_id, operation.kind, target,
                                     tolerance_days=operation.tolerance_days)
    diff = plan_operation(operation, listing_id, target, candidates, rate)
    logger.info("%s %s to %s for listing %s: %s (deleting %d, inserting %d)",
                operation.value, target.start, target.end, listing_id,
                diff.strategy, len(diff.to_delete), len(diff.to_insert))
    apply_diff(store, operation.kind, diff)
    return diff


def run_bulk_operation(store, listing_id: str, operation: Operation, dates: Iterable,
                       rate=None) -> List[PeriodDiff]:
    """
    Applies an edit to every contiguous range in the selected dates.

    Input is validated before the store is touched: the selection must not be empty and apply-rate needs
    a valid rate. Ranges are processed in order, each one re-querying the store.

    If the store fails, the error is logged and re-raised and the remaining ranges are skipped.
    Ranges that already went through stay committed.

    Returns: list of PeriodDiff, one per range.
    """
    dates = list(dates)
    ensure_selection(dates)
    if operation is Operation.APPLY_RATE:
        rate = validate_rate(rate)
    else:
        rate = None

    date_ranges = build_date_ranges(dates)
    logger.info("Processing %s over %d range(s) for listing %s", operation.value, len(date_ranges), listing_id)

    diffs = []
    for date_range in date_ranges:
        try:
            diffs.append(reconcile_range(store, listing_id, operation, date_range, rate))
        except StoreError as e:
            logger.error(f"{operation.value} failed on {date_range.start} to {date_range.end} for listing {listing_id} "
                         f"after {len(diffs)} of {len(date_ranges)} range(s): {e.message}")
            raise
    return diffs
