"""API dependencies for authentication and common operations."""

from typing import Annotated
from uuid import UUID

from fastapi import BackgroundTasks, Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import AuthenticationError, AuthorizationError
from app.core.security import verify_token
from app.database import get_db
from app.gateways.base import PaymentGateway
from app.models.user import User
from app.services.booking_service import BookingService
from app.services.gateway_service import get_payment_gateway
from app.services.notification_service import NotificationService, get_notification_service

# Security scheme; missing credentials are reported as 401 below
security = HTTPBearer(auto_error=False)


async def get_current_user(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(security)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> User:
    """Get the current authenticated user from JWT token."""
    if not credentials:
        raise AuthenticationError("Not authenticated")

    payload = verify_token(credentials.credentials, token_type="access")
    try:
        user_id = UUID(payload["sub"])
    except ValueError as e:
        raise AuthenticationError("Invalid token payload") from e

    result = await db.execute(select(User).where(User.id == user_id))
    user = result.scalar_one_or_none()

    if not user:
        raise AuthenticationError("User not found")
    if not user.is_active:
        raise AuthenticationError("User account is deactivated")

    return user


async def get_current_admin(
    current_user: Annotated[User, Depends(get_current_user)],
) -> User:
    """Get current user and verify they are an admin."""
    if not current_user.is_admin:
        raise AuthorizationError("Admin access required")
    return current_user


async def require_self_or_admin(
    user_id: UUID,
    current_user: Annotated[User, Depends(get_current_user)],
) -> User:
    """Allow a user to act on their own resources; admins on anyone's."""
    if current_user.id != user_id and not current_user.is_admin:
        raise AuthorizationError("You can only access your own bookings")
    return current_user


def get_booking_service(
    gateway: Annotated[PaymentGateway, Depends(get_payment_gateway)],
    notifier: Annotated[NotificationService, Depends(get_notification_service)],
    background_tasks: BackgroundTasks,
) -> BookingService:
    """Booking service wired to the configured collaborators.

    Confirmation emails go out on the request's background tasks.
    """
    return BookingService(gateway=gateway, notifier=notifier, background_tasks=background_tasks)

