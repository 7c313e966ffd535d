"""
SQLAlchemy database models for the car rental booking system.
"""
from sqlalchemy import (
    Column, Integer, String, DateTime, Date, Numeric,
    ForeignKey, UniqueConstraint, CheckConstraint
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from database import Base


class CarModel(Base):
    """Vehicle model with its seasonal rate card."""
    __tablename__ = "models"

    model_id = Column(Integer, primary_key=True, index=True)
    model_name = Column(String(100), nullable=False)

    # Daily rates per season
    price_peak = Column(Numeric(10, 2), nullable=False)
    price_mid = Column(Numeric(10, 2), nullable=False)
    price_off = Column(Numeric(10, 2), nullable=False)

    # Relationships
    cars = relationship("Car", back_populates="model")

    def __repr__(self):
        return f"<CarModel {self.model_name} ({self.price_peak}/{self.price_mid}/{self.price_off})>"


class Car(Base):
    """A single physical car available for rent."""
    __tablename__ = "cars"

    car_id = Column(Integer, primary_key=True, index=True)
    brand = Column(String(100), nullable=False)
    model_id = Column(Integer, ForeignKey("models.model_id"), nullable=False, index=True)

    # Relationships
    model = relationship("CarModel", back_populates="cars")
    bookings = relationship("Booking", back_populates="car")

    def __repr__(self):
        return f"<Car {self.car_id} - {self.brand}>"


class User(Base):
    """Customer making bookings."""
    __tablename__ = "users"

    user_id = Column(Integer, primary_key=True, index=True)
    email = Column(String(255), unique=True, nullable=False, index=True)
    name = Column(String(200), nullable=False)

    # Driving licence expiry
    expire_date = Column(Date, nullable=False)

    # Timestamps
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    # Relationships
    bookings = relationship(
        "Booking",
        back_populates="user",
        order_by="Booking.start_date.desc()",
    )

    def __repr__(self):
        return f"<User {self.name} ({self.email})>"


class Booking(Base):
    """A car booked by a user for an inclusive date range."""
    __tablename__ = "bookings"
    __table_args__ = (
        # Storage-level guard against the same unit being booked twice for
        # the same range by racing requests
        UniqueConstraint("car_id", "start_date", "end_date", name="uq_bookings_car_range"),
        CheckConstraint("end_date >= start_date", name="ck_bookings_range_order"),
    )

    book_id = Column(Integer, primary_key=True, index=True)

    user_id = Column(Integer, ForeignKey("users.user_id"), nullable=False, index=True)
    car_id = Column(Integer, ForeignKey("cars.car_id"), nullable=False, index=True)

    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=False)

    total_price = Column(Numeric(10, 2), nullable=False)
    average_price = Column(Numeric(10, 2), nullable=False)

    # Timestamps
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    # Relationships
    user = relationship("User", back_populates="bookings")
    car = relationship("Car", back_populates="bookings")

    def __repr__(self):
        return f"<Booking {self.book_id} - car {self.car_id} {self.start_date}..{self.end_date}>"
