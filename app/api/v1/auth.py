"""Authentication endpoints."""

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, status
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_current_user, get_db
from app.core.exceptions import AuthenticationError, ConflictError
from app.core.security import create_tokens, get_password_hash, verify_password
from app.models.user import User, utcnow
from app.schemas.common import ApiResponse
from app.schemas.user import TokenResponse, UserCreate, UserLogin, UserResponse

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post(
    "/register",
    response_model=ApiResponse[UserResponse],
    status_code=status.HTTP_201_CREATED,
)
async def register(
    user_data: UserCreate,
    db: Annotated[AsyncSession, Depends(get_db)],
) -> ApiResponse[UserResponse]:
    """Register a new user account."""
    email = user_data.email.lower()
    result = await db.execute(select(User).where(User.email == email))
    if result.scalar_one_or_none():
        raise ConflictError("Email already registered", code="EMAIL_ALREADY_REGISTERED")

    user = User(
        email=email,
        password_hash=get_password_hash(user_data.password),
        role=user_data.role,
    )
    db.add(user)
    try:
        await db.flush()
    except IntegrityError as e:
        raise ConflictError("Email already registered", code="EMAIL_ALREADY_REGISTERED") from e

    logger.info(f"User {user.id} registered with role {user.role}")
    return ApiResponse(
        message="User registered successfully",
        data=UserResponse.model_validate(user),
    )


@router.post("/login", response_model=ApiResponse[TokenResponse])
async def login(
    credentials: UserLogin,
    db: Annotated[AsyncSession, Depends(get_db)],
) -> ApiResponse[TokenResponse]:
    """Login with email and password."""
    result = await db.execute(select(User).where(User.email == credentials.email.lower()))
    user = result.scalar_one_or_none()

    if not user or not verify_password(credentials.password, user.password_hash):
        raise AuthenticationError("Invalid email or password")

    if not user.is_active:
        raise AuthenticationError("User account is deactivated")

    user.last_login_at = utcnow()
    await db.flush()

    tokens = create_tokens(str(user.id), user.role)
    return ApiResponse(
        message="Login successful",
        data=TokenResponse(**tokens, user=UserResponse.model_validate(user)),
    )


@router.get("/me", response_model=ApiResponse[UserResponse])
async def get_me(
    current_user: Annotated[User, Depends(get_current_user)],
) -> ApiResponse[UserResponse]:
    """Get the authenticated user's account."""
    return ApiResponse(data=UserResponse.model_validate(current_user))
