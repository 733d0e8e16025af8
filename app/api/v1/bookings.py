"""Booking endpoints."""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import (
    get_booking_service,
    get_current_admin,
    get_current_user,
    get_db,
    require_self_or_admin,
)
from app.core.exceptions import AuthorizationError
from app.models.user import User
from app.schemas.booking import (
    AvailabilityResponse,
    BookingConfirm,
    BookingCreate,
    BookingDetailResponse,
    BookingResponse,
    CheckoutResponse,
    EligibilityResponse,
)
from app.schemas.common import ApiResponse, Page
from app.services.availability_service import availability_service
from app.services.booking_service import BookingService

router = APIRouter()


@router.post(
    "",
    response_model=ApiResponse[CheckoutResponse],
    status_code=status.HTTP_201_CREATED,
)
async def create_booking(
    booking_data: BookingCreate,
    current_user: Annotated[User, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db)],
    booking_service: Annotated[BookingService, Depends(get_booking_service)],
) -> ApiResponse[CheckoutResponse]:
    """Create a pending booking and open its checkout session."""
    user_id = booking_data.user_id or current_user.id
    if user_id != current_user.id and not current_user.is_admin:
        raise AuthorizationError("Only admins can book on behalf of another user")

    checkout = await booking_service.create_booking(db, booking_data.activity_id, user_id)
    return ApiResponse(
        message="Booking created; complete payment to confirm",
        data=CheckoutResponse(
            booking_id=checkout.booking_id,
            url=checkout.url,
            session_id=checkout.session_id,
        ),
    )


@router.get("/availability/{activity_id}", response_model=ApiResponse[AvailabilityResponse])
async def check_availability(
    activity_id: UUID,
    current_user: Annotated[User, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> ApiResponse[AvailabilityResponse]:
    """Remaining spots on an activity."""
    availability = await availability_service.check_availability(db, activity_id)
    return ApiResponse(data=AvailabilityResponse(**vars(availability)))


@router.get("/eligibility/{activity_id}", response_model=ApiResponse[EligibilityResponse])
async def check_eligibility(
    activity_id: UUID,
    current_user: Annotated[User, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> ApiResponse[EligibilityResponse]:
    """Whether the current user can book an activity."""
    eligibility = await availability_service.check_eligibility(db, activity_id, current_user.id)
    return ApiResponse(
        data=EligibilityResponse(**vars(eligibility), can_book=eligibility.can_book)
    )


@router.get("/user/{user_id}", response_model=ApiResponse[Page[BookingDetailResponse]])
async def get_user_bookings(
    user_id: UUID,
    current_user: Annotated[User, Depends(require_self_or_admin)],
    db: Annotated[AsyncSession, Depends(get_db)],
    booking_service: Annotated[BookingService, Depends(get_booking_service)],
    page: int = Query(default=1, ge=1),
    page_size: int = Query(default=20, ge=1, le=100),
) -> ApiResponse[Page[BookingDetailResponse]]:
    """A user's bookings, newest first."""
    bookings, total = await booking_service.get_user_bookings(db, user_id, page, page_size)
    return ApiResponse(
        data=Page.build(
            [BookingDetailResponse.model_validate(b) for b in bookings], total, page, page_size
        )
    )


@router.get("/activity/{activity_id}", response_model=ApiResponse[Page[BookingDetailResponse]])
async def get_activity_bookings(
    activity_id: UUID,
    current_user: Annotated[User, Depends(get_current_admin)],
    db: Annotated[AsyncSession, Depends(get_db)],
    booking_service: Annotated[BookingService, Depends(get_booking_service)],
    page: int = Query(default=1, ge=1),
    page_size: int = Query(default=20, ge=1, le=100),
) -> ApiResponse[Page[BookingDetailResponse]]:
    """An activity's bookings, newest first."""
    bookings, total = await booking_service.get_activity_bookings(
        db, activity_id, page, page_size
    )
    return ApiResponse(
        data=Page.build(
            [BookingDetailResponse.model_validate(b) for b in bookings], total, page, page_size
        )
    )


@router.get("/{booking_id}", response_model=ApiResponse[BookingDetailResponse])
async def get_booking(
    booking_id: UUID,
    current_user: Annotated[User, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db)],
    booking_service: Annotated[BookingService, Depends(get_booking_service)],
) -> ApiResponse[BookingDetailResponse]:
    """Get booking details."""
    booking = await booking_service.get_booking(db, booking_id, current_user)
    return ApiResponse(data=BookingDetailResponse.model_validate(booking))


@router.post("/{booking_id}/confirm", response_model=ApiResponse[BookingResponse])
async def confirm_booking(
    booking_id: UUID,
    confirm_data: BookingConfirm,
    current_user: Annotated[User, Depends(get_current_admin)],
    db: Annotated[AsyncSession, Depends(get_db)],
    booking_service: Annotated[BookingService, Depends(get_booking_service)],
) -> ApiResponse[BookingResponse]:
    """Confirm a booking whose payment completed (admin)."""
    outcome = await booking_service.confirm_booking(db, booking_id, confirm_data.payment_status)
    return ApiResponse(
        message="Booking confirmed" if outcome.transitioned else "Booking already confirmed",
        data=BookingResponse.model_validate(outcome.booking),
    )


@router.post("/{booking_id}/cancel", response_model=ApiResponse[BookingResponse])
async def cancel_booking(
    booking_id: UUID,
    current_user: Annotated[User, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db)],
    booking_service: Annotated[BookingService, Depends(get_booking_service)],
) -> ApiResponse[BookingResponse]:
    """Cancel a booking (owner or admin)."""
    booking = await booking_service.cancel_booking(db, booking_id, current_user)
    return ApiResponse(
        message="Booking cancelled",
        data=BookingResponse.model_validate(booking),
    )
