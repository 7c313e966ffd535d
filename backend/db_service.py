"""
Database service layer for CRUD operations.
"""
from sqlalchemy.orm import Session, joinedload, selectinload
from sqlalchemy import and_
from datetime import date
from typing import Optional, List

from db_models import CarModel, Car, User, Booking
from availability import overlap_clause


# ============== USER OPERATIONS ==============

def get_user_by_id(db: Session, user_id: int) -> Optional[User]:
    """Get user by ID, with bookings and their cars loaded."""
    return db.query(User).options(
        selectinload(User.bookings).joinedload(Booking.car).joinedload(Car.model)
    ).filter(User.user_id == user_id).first()


def get_user_by_email(db: Session, email: str) -> Optional[User]:
    """Get user by email address."""
    return db.query(User).options(
        selectinload(User.bookings).joinedload(Booking.car).joinedload(Car.model)
    ).filter(User.email == email).first()


def find_or_create_user(
    db: Session,
    email: str,
    expire_date: date,
    name: str,
) -> tuple[User, bool]:
    """
    Return the user with this email, creating them if needed.

    An existing user's licence expiry is updated when it differs.

    Returns:
        tuple: (User object, is_new: bool) - is_new is True if newly created
    """
    existing = get_user_by_email(db, email)
    if existing:
        if existing.expire_date != expire_date:
            existing.expire_date = expire_date
            db.commit()
            db.refresh(existing)
        return existing, False

    user = User(email=email, name=name, expire_date=expire_date)
    db.add(user)
    db.commit()
    db.refresh(user)
    return user, True


# ============== CAR OPERATIONS ==============

def get_model_by_id(db: Session, model_id: int) -> Optional[CarModel]:
    """Get car model by ID."""
    return db.query(CarModel).filter(CarModel.model_id == model_id).first()


def get_car_by_id(db: Session, car_id: int) -> Optional[Car]:
    """Get car by ID with its model (rate card) loaded."""
    return db.query(Car).options(joinedload(Car.model)).filter(Car.car_id == car_id).first()


def get_cars_by_model(db: Session, model_id: int, for_update: bool = False) -> List[Car]:
    """
    Get every unit of a car model.

    With for_update the rows stay locked until the transaction ends, so
    concurrent bookings of the same model run their checks one at a time
    (no-op on SQLite).
    """
    query = db.query(Car).filter(Car.model_id == model_id).order_by(Car.car_id)
    if for_update:
        query = query.with_for_update()
    return query.all()


def get_all_cars(db: Session) -> List[Car]:
    """Get all cars with their models."""
    return db.query(Car).options(joinedload(Car.model)).order_by(Car.car_id).all()


def count_cars(db: Session) -> int:
    return db.query(Car).count()


def get_booked_car_ids(db: Session, start_date: date, end_date: date) -> set[int]:
    """Ids of cars with at least one booking overlapping the range."""
    rows = db.query(Booking.car_id).filter(
        overlap_clause(Booking.start_date, Booking.end_date, start_date, end_date)
    ).distinct().all()
    return {row.car_id for row in rows}


# ============== BOOKING OPERATIONS ==============

def get_booking_by_id(db: Session, booking_id: int) -> Optional[Booking]:
    """Get booking by ID with user, car and model loaded."""
    return db.query(Booking).options(
        joinedload(Booking.user),
        joinedload(Booking.car).joinedload(Car.model),
    ).filter(Booking.book_id == booking_id).first()


def get_bookings_by_user(db: Session, user_id: int) -> List[Booking]:
    """Get all bookings of a user, latest start date first."""
    return db.query(Booking).options(
        joinedload(Booking.car).joinedload(Car.model)
    ).filter(Booking.user_id == user_id).order_by(Booking.start_date.desc()).all()


def get_bookings_for_cars(db: Session, car_ids: List[int]) -> List[Booking]:
    """Get all bookings of the given cars."""
    if not car_ids:
        return []
    return db.query(Booking).filter(Booking.car_id.in_(car_ids)).all()


def create_booking(
    db: Session,
    user_id: int,
    car_id: int,
    start_date: date,
    end_date: date,
    total_price,
    average_price,
) -> Booking:
    """Create a new booking."""
    booking = Booking(
        user_id=user_id,
        car_id=car_id,
        start_date=start_date,
        end_date=end_date,
        total_price=total_price,
        average_price=average_price,
    )
    db.add(booking)
    db.commit()
    db.refresh(booking)
    return booking


def delete_booking(db: Session, booking: Booking) -> None:
    """Delete a booking."""
    db.delete(booking)
    db.commit()


def count_bookings(db: Session) -> int:
    return db.query(Booking).count()


def count_active_bookings(db: Session, today: date) -> int:
    """Bookings running today."""
    return db.query(Booking).filter(
        and_(Booking.start_date <= today, Booking.end_date >= today)
    ).count()


def count_upcoming_bookings(db: Session, today: date) -> int:
    """Bookings starting after today."""
    return db.query(Booking).filter(Booking.start_date > today).count()


def count_completed_bookings(db: Session, today: date) -> int:
    """Bookings that ended before today."""
    return db.query(Booking).filter(Booking.end_date < today).count()
