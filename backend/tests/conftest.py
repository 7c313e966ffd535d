"""
Pytest configuration and shared fixtures.

This module loads environment variables from .env and provides an
in-memory SQLite database, a seeded car catalogue and an async API client.
"""
import os
import pytest
import pytest_asyncio
from decimal import Decimal
from datetime import date
from pathlib import Path

# Load .env file before any imports that might use settings
from dotenv import load_dotenv

# Load .env from backend directory
backend_dir = Path(__file__).parent.parent
env_file = backend_dir / ".env"
if env_file.exists():
    load_dotenv(env_file)

# Set test database before any imports
TEST_DATABASE_URL = "sqlite://"
os.environ["DATABASE_URL"] = TEST_DATABASE_URL

from httpx import AsyncClient, ASGITransport
from sqlalchemy.orm import sessionmaker

from database import build_engine


def pytest_configure(config):
    """Configure custom markers."""
    config.addinivalue_line(
        "markers", "integration: mark test as integration test (uses the API and database)"
    )


# Shared test database setup - one in-memory SQLite connection
test_engine = build_engine(TEST_DATABASE_URL)
TestSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=test_engine)


def override_get_db():
    """Override database dependency for testing."""
    db = TestSessionLocal()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture(scope="session", autouse=True)
def setup_app_dependency_override():
    """Set up database dependency override for all tests."""
    from database import get_db
    from main import app

    # Override the dependency
    app.dependency_overrides[get_db] = override_get_db
    yield
    # Clean up after all tests
    app.dependency_overrides.clear()


@pytest.fixture(autouse=True)
def setup_test_database():
    """Create fresh tables for every test."""
    from db_models import Base
    Base.metadata.create_all(bind=test_engine)
    yield
    Base.metadata.drop_all(bind=test_engine)


@pytest.fixture
def db_session():
    """Get a test database session."""
    db = TestSessionLocal()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture
def rate_card():
    """Rate card used throughout the pricing tests."""
    from models import RateCard
    return RateCard(peak=100, mid=80, off=60)


@pytest.fixture
def catalog(db_session):
    """
    Seed two car models.

    - Corolla (Toyota): 100 / 80 / 60, two units (cars 1 and 2)
    - Explorer (Ford): 150 / 120 / 90, one unit (car 3)
    """
    from db_models import CarModel, Car

    corolla = CarModel(
        model_id=1,
        model_name="Corolla",
        price_peak=Decimal("100.00"),
        price_mid=Decimal("80.00"),
        price_off=Decimal("60.00"),
    )
    explorer = CarModel(
        model_id=2,
        model_name="Explorer",
        price_peak=Decimal("150.00"),
        price_mid=Decimal("120.00"),
        price_off=Decimal("90.00"),
    )
    db_session.add_all([corolla, explorer])
    db_session.add_all([
        Car(car_id=1, brand="Toyota", model_id=1),
        Car(car_id=2, brand="Toyota", model_id=1),
        Car(car_id=3, brand="Ford", model_id=2),
    ])
    db_session.commit()
    return {"corolla": corolla, "explorer": explorer}


@pytest.fixture
def make_user(db_session):
    """Factory creating users with a licence valid until 2030."""
    from db_models import User

    def _make_user(email="driver@example.com", name="Test Driver", expire_date=date(2030, 12, 31)):
        user = User(email=email, name=name, expire_date=expire_date)
        db_session.add(user)
        db_session.commit()
        db_session.refresh(user)
        return user

    return _make_user


@pytest.fixture
def make_booking(db_session):
    """Factory inserting bookings directly, bypassing validation."""
    from db_models import Booking

    def _make_booking(user_id, car_id, start_date, end_date, total_price="100.00", average_price="100.00"):
        booking = Booking(
            user_id=user_id,
            car_id=car_id,
            start_date=start_date,
            end_date=end_date,
            total_price=Decimal(total_price),
            average_price=Decimal(average_price),
        )
        db_session.add(booking)
        db_session.commit()
        db_session.refresh(booking)
        return booking

    return _make_booking


@pytest_asyncio.fixture
async def client():
    """Create an async test client."""
    from main import app

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
