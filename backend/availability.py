"""
Availability checks for bookings.

Two inclusive date ranges overlap when they share at least one calendar day.
The predicate is written as the same three clauses the booking queries use:

    (s1 <= s2 and e1 >= s2)     candidate covers the existing start
    or (s1 <= e2 and e1 >= e2)  candidate covers the existing end
    or (s1 >= s2 and e1 <= e2)  candidate lies inside the existing range

which is equivalent to "not (e1 < s2 or s1 > e2)".
"""
from datetime import date
from typing import Iterable, Mapping, Optional

from sqlalchemy import and_, or_

from models import DateRange


def ranges_overlap(candidate: DateRange, existing: DateRange) -> bool:
    """Check whether two inclusive date ranges share at least one day."""
    s1, e1 = candidate.start, candidate.end
    s2, e2 = existing.start, existing.end
    return (
        (s1 <= s2 and e1 >= s2)
        or (s1 <= e2 and e1 >= e2)
        or (s1 >= s2 and e1 <= e2)
    )


def has_overlap(candidate: DateRange, existing: Iterable[DateRange]) -> bool:
    """
    Check a candidate range against existing bookings.

    Args:
        candidate: The requested range
        existing: Ranges already booked (for one user or one car)

    Returns:
        True if any existing range overlaps the candidate, False otherwise
        (including when there are no existing ranges)
    """
    return any(ranges_overlap(candidate, booked) for booked in existing)


def find_conflicts(candidate: DateRange, existing: Iterable) -> list:
    """
    Return the existing entries that overlap the candidate, in input order.

    Entries may be DateRange values or anything with start_date/end_date
    attributes (such as Booking rows), so callers can report the bookings
    that caused a conflict.
    """
    return [item for item in existing if ranges_overlap(candidate, as_date_range(item))]


def find_free_unit(
    candidate: DateRange,
    bookings_by_unit: Mapping[int, Iterable[DateRange]],
    preferred: Optional[int] = None
) -> Optional[int]:
    """
    Find a car unit that is free for the whole candidate range.

    Args:
        candidate: The requested range
        bookings_by_unit: Booked ranges per car id; every unit of the model
            must be present, with an empty list if it has no bookings
        preferred: Car id to return if it is free

    Returns:
        The preferred car id if free, otherwise the lowest free car id,
        or None when every unit is booked on at least one requested day
    """
    if preferred is not None and preferred in bookings_by_unit:
        if not has_overlap(candidate, bookings_by_unit[preferred]):
            return preferred

    for car_id in sorted(bookings_by_unit):
        if not has_overlap(candidate, bookings_by_unit[car_id]):
            return car_id

    return None


def as_date_range(item) -> DateRange:
    """Read a DateRange from a DateRange or a row with start_date/end_date."""
    if isinstance(item, DateRange):
        return item
    return DateRange(start=item.start_date, end=item.end_date)


def overlap_clause(start_column, end_column, start: date, end: date):
    """
    SQLAlchemy filter matching rows whose [start_column, end_column] range
    overlaps [start, end].

    Rows are the existing bookings here, so the clauses are those of
    ranges_overlap with the two roles swapped.
    """
    return or_(
        and_(start_column <= start, end_column >= start),
        and_(start_column <= end, end_column >= end),
        and_(start_column >= start, end_column <= end),
    )
