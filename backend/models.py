"""
Data models for the car rental booking system.

Value types used by the pricing and availability engine, plus the
request/response models of the REST API.
"""
from datetime import date
from decimal import Decimal
from typing import Any, Optional
from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator
from enum import Enum

from errors import InvalidDateRange


class Season(str, Enum):
    """Pricing season of a calendar day."""
    PEAK = "peak"
    MID = "mid"
    OFF = "off"


class DateRange(BaseModel):
    """
    Inclusive range of calendar days.

    Raises InvalidDateRange when end is before start.
    """
    model_config = ConfigDict(frozen=True)

    start: date
    end: date

    def __init__(self, **data):
        super().__init__(**data)
        if self.end < self.start:
            raise InvalidDateRange("End date cannot be before start date")

    @property
    def days(self) -> int:
        return (self.end - self.start).days + 1


class RateCard(BaseModel):
    """Daily price per season for one car model."""
    model_config = ConfigDict(frozen=True)

    peak: Decimal = Field(ge=0)
    mid: Decimal = Field(ge=0)
    off: Decimal = Field(ge=0)

    @classmethod
    def from_model(cls, car_model) -> "RateCard":
        """Build a rate card from a CarModel row (or anything shaped like one)."""
        return cls(
            peak=car_model.price_peak,
            mid=car_model.price_mid,
            off=car_model.price_off,
        )


class PricingResult(BaseModel):
    """Price of a rental over a date range."""
    total_price: float
    average_price: float
    days: int


# ============================================================================
# REQUESTS
# ============================================================================

class SearchAvailableCarsRequest(BaseModel):
    """Search for cars free over a date range."""
    email: EmailStr
    start_date: date
    end_date: date
    expire_date: date  # Driving licence expiry

    @field_validator("email", mode="before")
    @classmethod
    def normalize_email(cls, v):
        if isinstance(v, str):
            return v.strip().lower()
        return v


class CreateBookingRequest(BaseModel):
    """Request to book a car with the price quoted by a search."""
    user_id: int = Field(gt=0)
    car_id: int = Field(gt=0)
    start_date: date
    end_date: date
    total_price: float = Field(gt=0)
    average_price: float = Field(gt=0)


class PriceCalculationRequest(BaseModel):
    """Request to price a date range for a car model."""
    start_date: str  # Parsed by the pricer, which reports INVALID_DATE_FORMAT
    end_date: str
    model_id: int = Field(gt=0)


# ============================================================================
# RESPONSES
# ============================================================================

class ApiResponse(BaseModel):
    """Envelope returned by every endpoint."""
    success: bool
    message: Optional[str] = None
    error: Optional[str] = None
    data: Optional[Any] = None


class BookingOut(BaseModel):
    """A booking as shown to the customer."""
    book_id: int
    user_id: int
    car_id: int
    start_date: date
    end_date: date
    total_price: float
    average_price: float
    brand: Optional[str] = None
    model_name: Optional[str] = None


class UserOut(BaseModel):
    """A customer with their booking history."""
    user_id: int
    email: str
    name: str
    expire_date: date
    bookings: list[BookingOut] = []


class AvailableCar(BaseModel):
    """A car model with at least one unit free for the searched range."""
    car_id: int  # Lowest free unit, used when booking
    brand: str
    model_name: str
    model_id: int
    count: int  # Free units of this model
    total_price: str
    average_price: str


class CarStatistics(BaseModel):
    total_cars: int
    available_today: int
    booked_today: int


class BookingStatistics(BaseModel):
    total_bookings: int
    active_bookings: int
    upcoming_bookings: int
    completed_bookings: int


def booking_to_out(booking) -> BookingOut:
    """Convert a Booking row to its API representation."""
    car = booking.car
    return BookingOut(
        book_id=booking.book_id,
        user_id=booking.user_id,
        car_id=booking.car_id,
        start_date=booking.start_date,
        end_date=booking.end_date,
        total_price=float(booking.total_price),
        average_price=float(booking.average_price),
        brand=car.brand if car else None,
        model_name=car.model.model_name if car and car.model else None,
    )


def user_to_out(user) -> UserOut:
    """Convert a User row and its bookings to the API representation."""
    return UserOut(
        user_id=user.user_id,
        email=user.email,
        name=user.name,
        expire_date=user.expire_date,
        bookings=[booking_to_out(b) for b in user.bookings],
    )
