"""Login endpoint — find-or-create an app user by email."""

import logging

from fastapi import APIRouter, Depends, Response, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from planpay.api.deps import get_db, require_admin
from planpay.models.user import User
from planpay.schemas.user import LoginRequest, UserResponse

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/auth", tags=["auth"], dependencies=[Depends(require_admin)])


@router.post("/login", response_model=UserResponse, summary="Find or create a user by email")
async def login(
    body: LoginRequest,
    response: Response,
    db: AsyncSession = Depends(get_db),
) -> UserResponse:
    """Return the user with this email, creating it (201) on first login."""
    email = body.email.lower()
    result = await db.execute(select(User).where(User.email == email))
    user = result.scalar_one_or_none()
    if user is not None:
        return UserResponse.model_validate(user)

    user = User(email=email, username=body.username or email.split("@", 1)[0])
    db.add(user)
    await db.flush()
    await db.refresh(user)
    logger.info("Created user %s for %s", user.id, email)
    response.status_code = status.HTTP_201_CREATED
    return UserResponse.model_validate(user)
