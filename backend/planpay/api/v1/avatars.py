"""Premium avatar catalogue routes."""

import logging

from fastapi import APIRouter, Depends, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from planpay.api.deps import get_db, require_admin
from planpay.models.avatar import Avatar
from planpay.schemas.avatar import AvatarCreate, AvatarResponse

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/avatars", tags=["avatars"], dependencies=[Depends(require_admin)])


@router.get("", response_model=list[AvatarResponse], summary="List avatars")
async def list_avatars(db: AsyncSession = Depends(get_db)) -> list[AvatarResponse]:
    result = await db.execute(select(Avatar).order_by(Avatar.price))
    return [AvatarResponse.model_validate(a) for a in result.scalars().all()]


@router.post(
    "",
    response_model=AvatarResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Add an avatar",
)
async def create_avatar(body: AvatarCreate, db: AsyncSession = Depends(get_db)) -> AvatarResponse:
    avatar = Avatar(**body.model_dump())
    db.add(avatar)
    await db.flush()
    await db.refresh(avatar)
    logger.info("Created avatar %s (%s, price=%s)", avatar.id, avatar.name, avatar.price)
    return AvatarResponse.model_validate(avatar)
