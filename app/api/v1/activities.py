"""Activity endpoints (admin only)."""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_current_admin, get_db
from app.models.user import User
from app.schemas.activity import (
    ActivityCreate,
    ActivityReport,
    ActivityResponse,
    ActivityUpdate,
    AttendanceCreate,
)
from app.schemas.common import ApiResponse, Page
from app.services.activity_service import activity_service

router = APIRouter()


@router.post(
    "",
    response_model=ApiResponse[ActivityResponse],
    status_code=status.HTTP_201_CREATED,
)
async def create_activity(
    activity_data: ActivityCreate,
    current_user: Annotated[User, Depends(get_current_admin)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> ApiResponse[ActivityResponse]:
    """Create a new activity."""
    activity = await activity_service.create_activity(db, activity_data, current_user)
    return ApiResponse(
        message="Activity created successfully",
        data=ActivityResponse.model_validate(activity),
    )


@router.get("", response_model=ApiResponse[Page[ActivityResponse]])
async def list_activities(
    current_user: Annotated[User, Depends(get_current_admin)],
    db: Annotated[AsyncSession, Depends(get_db)],
    page: int = Query(default=1, ge=1),
    page_size: int = Query(default=20, ge=1, le=100),
) -> ApiResponse[Page[ActivityResponse]]:
    """List activities ordered by date."""
    activities, total = await activity_service.list_activities(db, page, page_size)
    return ApiResponse(
        data=Page.build(
            [ActivityResponse.model_validate(a) for a in activities], total, page, page_size
        )
    )


@router.get("/report", response_model=ApiResponse[ActivityReport])
async def activity_report(
    current_user: Annotated[User, Depends(get_current_admin)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> ApiResponse[ActivityReport]:
    """Attendance and booking statistics across activities."""
    return ApiResponse(data=await activity_service.generate_report(db))


@router.get("/{activity_id}", response_model=ApiResponse[ActivityResponse])
async def get_activity(
    activity_id: UUID,
    current_user: Annotated[User, Depends(get_current_admin)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> ApiResponse[ActivityResponse]:
    """Get an activity by ID."""
    activity = await activity_service.get_activity(db, activity_id)
    return ApiResponse(data=ActivityResponse.model_validate(activity))


@router.patch("/{activity_id}", response_model=ApiResponse[ActivityResponse])
async def update_activity(
    activity_id: UUID,
    activity_data: ActivityUpdate,
    current_user: Annotated[User, Depends(get_current_admin)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> ApiResponse[ActivityResponse]:
    """Update an activity's fields."""
    activity = await activity_service.update_activity(db, activity_id, activity_data)
    return ApiResponse(
        message="Activity updated successfully",
        data=ActivityResponse.model_validate(activity),
    )


@router.delete("/{activity_id}", response_model=ApiResponse[None])
async def delete_activity(
    activity_id: UUID,
    current_user: Annotated[User, Depends(get_current_admin)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> ApiResponse[None]:
    """Delete an activity without bookings."""
    await activity_service.delete_activity(db, activity_id)
    return ApiResponse(message="Activity deleted successfully")


@router.post("/{activity_id}/attendance", response_model=ApiResponse[ActivityResponse])
async def track_attendance(
    activity_id: UUID,
    attendance: AttendanceCreate,
    current_user: Annotated[User, Depends(get_current_admin)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> ApiResponse[ActivityResponse]:
    """Add a user to the activity's attendance roster."""
    activity = await activity_service.track_attendance(db, activity_id, attendance.user_id)
    return ApiResponse(
        message="Attendance tracked successfully",
        data=ActivityResponse.model_validate(activity),
    )
