"""
FastAPI application for the car rental booking system.

Provides REST API endpoints for the frontend to:
- Search cars available over a date range, priced by season
- Create bookings (validated against overlaps and the recomputed price)
- List, inspect and cancel bookings
- Show fleet and booking statistics
"""
import logging
from datetime import datetime, timezone

from fastapi import FastAPI, Depends, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session
from starlette.exceptions import HTTPException as StarletteHTTPException

from booking_service import BookingService
from config import get_settings, is_production
from database import get_db, init_db
from errors import BookingError, CarNotFound
from models import (
    ApiResponse,
    CreateBookingRequest,
    PriceCalculationRequest,
    RateCard,
    SearchAvailableCarsRequest,
    booking_to_out,
    user_to_out,
)
from pricing_service import calculate_pricing, get_season_name
import db_service


settings = get_settings()

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


# Initialize FastAPI app
app = FastAPI(
    title="Car Rental Booking API",
    description="Backend API for searching and booking rental cars",
    version="1.0.0",
)

# Configure CORS for frontend access
app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        settings.frontend_url,
        "http://localhost:5173",  # Vite dev server
        "http://localhost:3001",
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.on_event("startup")
async def startup_event():
    """Create database tables on startup."""
    init_db()
    logger.info(f"Car Rental Booking API started ({settings.environment})")


@app.middleware("http")
async def log_requests(request: Request, call_next):
    """Log every request."""
    logger.info(f"{request.method} {request.url.path}")
    return await call_next(request)


def get_service(db: Session = Depends(get_db)) -> BookingService:
    """Get the booking service for this request."""
    return BookingService(db)


# ============================================================================
# ERROR HANDLERS
# ============================================================================

@app.exception_handler(BookingError)
async def booking_error_handler(request: Request, exc: BookingError):
    """Render domain errors as the API envelope."""
    logger.info(f"{request.method} {request.url.path} rejected: {exc.code} - {exc.message}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_response())


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    """Request body or parameter failed validation."""
    messages = []
    for error in exc.errors():
        field = ".".join(str(part) for part in error.get("loc", ()) if part != "body")
        messages.append(f"{field}: {error.get('msg')}" if field else error.get("msg"))

    return JSONResponse(
        status_code=400,
        content=ApiResponse(
            success=False,
            error="VALIDATION_ERROR",
            message=f"Validation failed: {', '.join(messages)}",
        ).model_dump(),
    )


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    """Unknown routes and other HTTP errors."""
    if exc.status_code == 404:
        message = f"Route {request.url.path} not found"
        error = "NOT_FOUND"
    else:
        message = str(exc.detail)
        error = "HTTP_ERROR"

    return JSONResponse(
        status_code=exc.status_code,
        content=ApiResponse(success=False, error=error, message=message).model_dump(),
    )


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    """Anything else is an internal error."""
    logger.exception(f"Unhandled error on {request.method} {request.url.path}")
    message = "Internal server error" if is_production() else str(exc)
    return JSONResponse(
        status_code=500,
        content=ApiResponse(success=False, error="INTERNAL_ERROR", message=message).model_dump(),
    )


# ============================================================================
# HEALTH
# ============================================================================

@app.get("/")
async def root():
    """Health check endpoint."""
    return {"status": "healthy", "service": "Car Rental Booking API"}


@app.get("/health")
async def health_check():
    """Health check with environment details."""
    return {
        "status": "OK",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "environment": settings.environment,
    }


# ============================================================================
# AVAILABLE CARS
# ============================================================================

@app.post("/api/v1/available-cars", response_model=ApiResponse)
async def search_available_cars(
    request: SearchAvailableCarsRequest,
    service: BookingService = Depends(get_service),
):
    """
    Search cars available for a date range.

    The customer is identified by email and created on first search. Fails
    with BOOKING_CONFLICT when the customer already has a booking in the
    range; the response data then lists their bookings.
    """
    result = service.search_available_cars(request)
    return ApiResponse(success=True, data=result)


@app.get("/api/v1/available-cars/statistics", response_model=ApiResponse)
async def get_car_statistics(service: BookingService = Depends(get_service)):
    """Fleet usage for today."""
    return ApiResponse(success=True, data=service.get_car_statistics())


# ============================================================================
# BOOKINGS
# ============================================================================

@app.post("/api/v1/bookings", response_model=ApiResponse, status_code=201)
async def create_booking(
    request: CreateBookingRequest,
    service: BookingService = Depends(get_service),
):
    """
    Create a new booking.

    The price quoted by the search must still match the recomputed price;
    otherwise the client has to search again.
    """
    service.create_booking(request)
    user = service.get_user(request.user_id)

    return ApiResponse(
        success=True,
        message="Booking created successfully",
        data=user_to_out(user),
    )


@app.get("/api/v1/bookings/user/{user_id}", response_model=ApiResponse)
async def get_user_bookings(user_id: int, service: BookingService = Depends(get_service)):
    """Get all bookings of a user."""
    bookings = service.get_user_bookings(user_id)
    return ApiResponse(success=True, data=[booking_to_out(b) for b in bookings])


@app.get("/api/v1/bookings/statistics", response_model=ApiResponse)
async def get_booking_statistics(service: BookingService = Depends(get_service)):
    """Booking counts: total, active today, upcoming and completed."""
    return ApiResponse(success=True, data=service.get_booking_statistics())


@app.get("/api/v1/bookings/{booking_id}", response_model=ApiResponse)
async def get_booking(booking_id: int, service: BookingService = Depends(get_service)):
    """Retrieve a booking by ID."""
    booking = service.get_booking(booking_id)
    return ApiResponse(success=True, data=booking_to_out(booking))


@app.delete("/api/v1/bookings/{booking_id}", response_model=ApiResponse)
async def cancel_booking(
    booking_id: int,
    user_id: int = Query(..., gt=0, description="Owner of the booking"),
    service: BookingService = Depends(get_service),
):
    """
    Cancel a booking.

    Only the owner can cancel, and only before the rental starts.
    """
    service.cancel_booking(booking_id, user_id)
    return ApiResponse(success=True, message="Booking cancelled successfully")


# ============================================================================
# PRICING
# ============================================================================

@app.post("/api/v1/pricing/calculate", response_model=ApiResponse)
async def calculate_price(request: PriceCalculationRequest, db: Session = Depends(get_db)):
    """
    Price a date range for a car model.

    Every day is charged at the model's peak, mid or off-season rate.
    """
    model = db_service.get_model_by_id(db, request.model_id)
    if not model:
        raise CarNotFound(f"Car model with ID {request.model_id} not found")

    pricing = calculate_pricing(request.start_date, request.end_date, RateCard.from_model(model))
    return ApiResponse(success=True, data=pricing)


@app.get("/api/v1/pricing/season/{day}", response_model=ApiResponse)
async def get_season(day: str):
    """Season name ("Peak", "Mid" or "Off") of a date, for display."""
    return ApiResponse(success=True, data={"date": day, "season": get_season_name(day)})


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host=settings.api_host, port=settings.api_port)
