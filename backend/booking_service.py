"""
Booking service for the car rental system.

Runs the availability search and the booking-creation flow on top of the
pure pricing and availability checks. A booking request is validated in
this order:

1. the date range (format, order, maximum advance booking window)
2. the driving licence covers the whole rental
3. the user has no booking overlapping the range
4. a unit of the requested car model is free for the whole range
5. the client's quote matches the recomputed price
"""
import logging
from collections import defaultdict
from datetime import date, datetime, time
from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

import db_service
from availability import as_date_range, find_conflicts, find_free_unit
from config import Settings, get_settings
from db_models import Booking, Car, User
from errors import (
    BookingConflict,
    BookingNotFound,
    CancellationNotAllowed,
    CarNotFound,
    InvalidDateRange,
    InvalidLicenseDate,
    PriceMismatch,
    UserNotFound,
)
from models import (
    AvailableCar,
    BookingStatistics,
    CarStatistics,
    CreateBookingRequest,
    DateRange,
    PricingResult,
    RateCard,
    SearchAvailableCarsRequest,
    booking_to_out,
)
from pricing_service import calculate_pricing, parse_date_range, prices_match

logger = logging.getLogger(__name__)

USER_CONFLICT_MESSAGE = "You already have a booking for these dates"
CAR_UNAVAILABLE_MESSAGE = "This car is not available for the selected dates"
PRICE_MISMATCH_MESSAGE = "Price validation failed. Please refresh and try again."


def _bookings_json(bookings) -> list[dict]:
    return [booking_to_out(b).model_dump(mode="json") for b in bookings]


class BookingService:
    """
    Service for searching cars and managing bookings.

    Works on the SQLAlchemy session it is given; one instance per request.
    """

    def __init__(self, db: Session, settings: Optional[Settings] = None):
        """
        Initialize the booking service.

        Args:
            db: Database session for this request
            settings: Booking policy settings (defaults to the app settings)
        """
        self.db = db
        self.settings = settings or get_settings()

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    def validate_date_range(self, start, end, today=None) -> DateRange:
        """
        Validate a requested booking range.

        The advance window is counted in whole days from the current time
        to the start of the first rental day, so with the default window a
        start 366 days from today is still accepted during the day. A plain
        date for today is taken as its midnight.

        Raises:
            InvalidDateFormat: If a date does not parse
            InvalidDateRange: If end is before start, or start is further
                ahead than the advance booking window
        """
        date_range = parse_date_range(start, end)

        now = today or datetime.now()
        if not isinstance(now, datetime):
            now = datetime.combine(now, time.min)

        max_days = self.settings.max_advance_booking_days
        if (datetime.combine(date_range.start, time.min) - now).days > max_days:
            raise InvalidDateRange(
                f"Bookings cannot be made more than {max_days} days in advance"
            )

        return date_range

    @staticmethod
    def validate_license(user: User, end_date: date) -> None:
        """Reject bookings ending after the user's licence expires."""
        if user.expire_date < end_date:
            raise InvalidLicenseDate(
                "Driving license expires before the end of booking period"
            )

    def validate_booking_conflicts(self, user: User, car: Car, date_range: DateRange) -> int:
        """
        Check the user and the car model for overlapping bookings.

        Every unit of the requested car's model is locked and checked; the
        requested unit is kept when free, otherwise another free unit of the
        same model takes its place.

        Returns:
            Id of the car unit to book

        Raises:
            BookingConflict: If the user already has a booking in the range,
                or every unit of the model is booked on some requested day
        """
        user_conflicts = find_conflicts(date_range, user.bookings)
        if user_conflicts:
            logger.info(
                f"User {user.user_id} has {len(user_conflicts)} booking(s) "
                f"overlapping {date_range.start}..{date_range.end}"
            )
            raise BookingConflict(
                USER_CONFLICT_MESSAGE,
                conflicts=user_conflicts,
                data={"conflicts": _bookings_json(user_conflicts)},
            )

        units = db_service.get_cars_by_model(self.db, car.model_id, for_update=True)
        bookings_by_unit = {unit.car_id: [] for unit in units}
        for booking in db_service.get_bookings_for_cars(self.db, list(bookings_by_unit)):
            bookings_by_unit[booking.car_id].append(as_date_range(booking))

        free_car_id = find_free_unit(date_range, bookings_by_unit, preferred=car.car_id)
        if free_car_id is None:
            logger.info(
                f"No unit of model {car.model_id} free for "
                f"{date_range.start}..{date_range.end}"
            )
            raise BookingConflict(CAR_UNAVAILABLE_MESSAGE)

        if free_car_id != car.car_id:
            logger.info(f"Car {car.car_id} is booked, using unit {free_car_id} of the same model")

        return free_car_id

    def validate_pricing(
        self,
        request: CreateBookingRequest,
        car: Car,
        date_range: DateRange
    ) -> PricingResult:
        """
        Recompute the price and compare it with the client's quote.

        Raises:
            PriceMismatch: If total or average differs by more than the
                configured tolerance
        """
        calculated = calculate_pricing(date_range.start, date_range.end, RateCard.from_model(car.model))

        if not prices_match(
            calculated,
            request.total_price,
            request.average_price,
            tolerance=self.settings.price_tolerance,
        ):
            logger.warning(
                f"Stale quote for car {car.car_id}: client {request.total_price}/"
                f"{request.average_price}, calculated {calculated.total_price}/"
                f"{calculated.average_price}"
            )
            raise PriceMismatch(PRICE_MISMATCH_MESSAGE, data=calculated.model_dump())

        return calculated

    # ------------------------------------------------------------------
    # Search
    # ------------------------------------------------------------------

    def find_available_cars(self, date_range: DateRange) -> list[AvailableCar]:
        """
        List car models with at least one unit free for the whole range,
        priced for that range.
        """
        booked = db_service.get_booked_car_ids(self.db, date_range.start, date_range.end)

        free_units = defaultdict(list)
        for car in db_service.get_all_cars(self.db):
            if car.car_id not in booked:
                free_units[(car.model_id, car.brand)].append(car)

        available = []
        for (model_id, brand), cars in sorted(free_units.items()):
            model = cars[0].model
            pricing = calculate_pricing(date_range.start, date_range.end, RateCard.from_model(model))
            available.append(AvailableCar(
                car_id=min(car.car_id for car in cars),
                brand=brand,
                model_name=model.model_name,
                model_id=model_id,
                count=len(cars),
                total_price=f"{pricing.total_price:.2f}",
                average_price=f"{pricing.average_price:.2f}",
            ))

        return available

    def search_available_cars(self, request: SearchAvailableCarsRequest) -> dict:
        """
        Search cars for a customer.

        The customer is looked up by email (and created on first search),
        their licence is checked against the end date and their own bookings
        must not overlap the range.

        Returns:
            Dict with the available cars, the user id and the user's bookings

        Raises:
            BookingConflict: If the user already has a booking in the range;
                the error data carries the user id, the conflicting bookings
                and the full booking list
        """
        date_range = parse_date_range(request.start_date, request.end_date)

        user, is_new = db_service.find_or_create_user(
            self.db,
            email=request.email,
            expire_date=request.expire_date,
            name=self.settings.default_user_name,
        )
        if is_new:
            logger.info(f"Created user {user.user_id} for {user.email}")

        self.validate_license(user, date_range.end)

        conflicts = find_conflicts(date_range, user.bookings)
        if conflicts:
            raise BookingConflict(
                USER_CONFLICT_MESSAGE,
                conflicts=conflicts,
                data={
                    "user_id": user.user_id,
                    "conflicts": _bookings_json(conflicts),
                    "bookings": _bookings_json(user.bookings),
                },
            )

        available = self.find_available_cars(date_range)

        return {
            "available": [car.model_dump() for car in available],
            "user_id": user.user_id,
            "bookings": _bookings_json(user.bookings),
        }

    def get_car_statistics(self, today: Optional[date] = None) -> CarStatistics:
        """Fleet usage for today."""
        today = today or date.today()
        total_cars = db_service.count_cars(self.db)
        available = self.find_available_cars(DateRange(start=today, end=today))
        available_today = sum(car.count for car in available)

        return CarStatistics(
            total_cars=total_cars,
            available_today=available_today,
            booked_today=total_cars - available_today,
        )

    # ------------------------------------------------------------------
    # Bookings
    # ------------------------------------------------------------------

    def create_booking(self, request: CreateBookingRequest, today: Optional[date] = None) -> Booking:
        """
        Create a booking after running every validation step.

        Args:
            request: The booking request with the client's quote
            today: Reference date or time for the advance booking window

        Returns:
            The created Booking row, priced with the recomputed price

        Raises:
            BookingError: The first validation step that fails
        """
        date_range = self.validate_date_range(request.start_date, request.end_date, today)

        user = db_service.get_user_by_id(self.db, request.user_id)
        if not user:
            raise UserNotFound(f"User with ID {request.user_id} not found")

        car = db_service.get_car_by_id(self.db, request.car_id)
        if not car:
            raise CarNotFound(f"Car with ID {request.car_id} not found")

        self.validate_license(user, date_range.end)

        car_id = self.validate_booking_conflicts(user, car, date_range)

        pricing = self.validate_pricing(request, car, date_range)

        try:
            booking = db_service.create_booking(
                self.db,
                user_id=user.user_id,
                car_id=car_id,
                start_date=date_range.start,
                end_date=date_range.end,
                total_price=pricing.total_price,
                average_price=pricing.average_price,
            )
        except IntegrityError as e:
            self.db.rollback()
            logger.warning(f"Duplicate booking rejected by the database: {e.orig}")
            raise BookingConflict(CAR_UNAVAILABLE_MESSAGE, status_code=409)

        logger.info(
            f"Booking {booking.book_id} created: user {user.user_id}, car {car_id}, "
            f"{date_range.start}..{date_range.end}, total {pricing.total_price}"
        )
        return booking

    def get_booking(self, booking_id: int) -> Booking:
        """Retrieve a booking by ID."""
        booking = db_service.get_booking_by_id(self.db, booking_id)
        if not booking:
            raise BookingNotFound(f"Booking with ID {booking_id} not found")
        return booking

    def get_user(self, user_id: int) -> User:
        """Retrieve a user with their bookings."""
        user = db_service.get_user_by_id(self.db, user_id)
        if not user:
            raise UserNotFound(f"User with ID {user_id} not found")
        return user

    def get_user_bookings(self, user_id: int) -> list[Booking]:
        """All bookings of a user, latest start first."""
        return db_service.get_bookings_by_user(self.db, user_id)

    def cancel_booking(self, booking_id: int, user_id: int, today: Optional[date] = None) -> None:
        """
        Cancel a booking.

        Only the owner can cancel, and only before the booking starts.
        """
        booking = self.get_booking(booking_id)

        if booking.user_id != user_id:
            raise CancellationNotAllowed("You can only cancel your own bookings", status_code=403)

        today = today or date.today()
        if booking.start_date <= today:
            raise CancellationNotAllowed("Cannot cancel bookings that have already started")

        db_service.delete_booking(self.db, booking)
        logger.info(f"Booking {booking_id} cancelled by user {user_id}")

    def get_booking_statistics(self, today: Optional[date] = None) -> BookingStatistics:
        """Booking counts relative to today."""
        today = today or date.today()
        return BookingStatistics(
            total_bookings=db_service.count_bookings(self.db),
            active_bookings=db_service.count_active_bookings(self.db, today),
            upcoming_bookings=db_service.count_upcoming_bookings(self.db, today),
            completed_bookings=db_service.count_completed_bookings(self.db, today),
        )
