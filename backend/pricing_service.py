"""
Seasonal pricing for car rentals.

A rental is priced day by day: every calendar day in the inclusive range is
classified into a season by its month and day only (the year never matters),
and the car model's daily rate for that season is added to the total.

Seasons:
- Peak: June 1 - September 15
- Mid:  September 15 - October 31, March 1 - May 31
- Off:  everything else (November 1 - end of February, leap day included)

September 15 belongs to both Peak and Mid; Peak is checked first and wins.
"""
from datetime import date, datetime, timedelta
from decimal import Decimal, ROUND_HALF_UP
from typing import Union

from errors import InvalidDateFormat
from models import DateRange, PricingResult, RateCard, Season


DateInput = Union[str, date, datetime]

# (month, day) boundaries, inclusive
PEAK_SEASON = ((6, 1), (9, 15))
MID_SEASONS = (
    ((9, 15), (10, 31)),
    ((3, 1), (5, 31)),
)

CENTS = Decimal("0.01")


def parse_date(value: DateInput) -> date:
    """
    Parse a calendar date.

    Accepts date and datetime values, "YYYY-MM-DD" strings and ISO datetime
    strings (the date part is used).

    Raises:
        InvalidDateFormat: If the value is not a valid calendar date
    """
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        text = value.strip()
        try:
            return datetime.strptime(text, "%Y-%m-%d").date()
        except ValueError:
            pass
        try:
            return datetime.fromisoformat(text).date()
        except ValueError:
            pass
    raise InvalidDateFormat("Invalid date format")


def parse_date_range(start: DateInput, end: DateInput) -> DateRange:
    """
    Parse and validate a date range.

    Raises:
        InvalidDateFormat: If either end does not parse
        InvalidDateRange: If end is before start
    """
    return DateRange(start=parse_date(start), end=parse_date(end))


def _in_range(month_day: tuple, bounds: tuple) -> bool:
    low, high = bounds
    return low <= month_day <= high


def determine_season(day: date) -> Season:
    """Classify a calendar day into its pricing season."""
    month_day = (day.month, day.day)

    if _in_range(month_day, PEAK_SEASON):
        return Season.PEAK

    if any(_in_range(month_day, bounds) for bounds in MID_SEASONS):
        return Season.MID

    return Season.OFF


def get_season_name(value: DateInput) -> str:
    """Capitalised season name of a date, for display ("Peak", "Mid", "Off")."""
    return determine_season(parse_date(value)).value.capitalize()


def get_daily_price(season: Season, rate_card: RateCard) -> Decimal:
    """Rate charged for one day in the given season."""
    if season == Season.PEAK:
        return rate_card.peak
    if season == Season.OFF:
        return rate_card.off
    return rate_card.mid


def round_money(amount: Decimal) -> Decimal:
    """Round to cents, half up."""
    return amount.quantize(CENTS, rounding=ROUND_HALF_UP)


def calculate_pricing(
    start: DateInput,
    end: DateInput,
    rate_card: RateCard
) -> PricingResult:
    """
    Calculate the price of renting a car over an inclusive date range.

    Args:
        start: First rental day
        end: Last rental day (same as start for a one-day rental)
        rate_card: Daily rates of the car model

    Returns:
        PricingResult with total and average (both rounded half up to
        2 decimal places) and the number of days

    Raises:
        InvalidDateFormat: If either date does not parse
        InvalidDateRange: If end is before start

    Examples:
        - 2024-07-01..2024-07-03 with peak 100: 3 days, total 300, average 100
        - 2024-02-29..2024-03-02 with mid 80 / off 60:
          60 + 80 + 80 = 220 over 3 days, average 73.33
    """
    date_range = parse_date_range(start, end)

    total = Decimal("0")
    days = 0
    current = date_range.start

    while current <= date_range.end:
        total += get_daily_price(determine_season(current), rate_card)
        days += 1
        current += timedelta(days=1)

    average = total / days

    return PricingResult(
        total_price=float(round_money(total)),
        average_price=float(round_money(average)),
        days=days,
    )


def prices_match(
    calculated: PricingResult,
    total_price: float,
    average_price: float,
    tolerance: float = 0.01
) -> bool:
    """
    Check a client-supplied quote against the recomputed price.

    Both total and average must be within the absolute tolerance.
    """
    limit = Decimal(str(tolerance))
    total_diff = abs(Decimal(str(calculated.total_price)) - Decimal(str(total_price)))
    average_diff = abs(Decimal(str(calculated.average_price)) - Decimal(str(average_price)))
    return total_diff <= limit and average_diff <= limit
