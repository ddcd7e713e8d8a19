"""Plan catalogue routes."""

import logging
import uuid

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from planpay.api.deps import get_db, require_admin
from planpay.models.plan import Plan
from planpay.schemas.plan import PlanCreate, PlanResponse, PlanUpdate
from planpay.services.ledger import find_plan

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/plans", tags=["plans"], dependencies=[Depends(require_admin)])


@router.get("", response_model=list[PlanResponse], summary="List plans")
async def list_plans(db: AsyncSession = Depends(get_db)) -> list[PlanResponse]:
    result = await db.execute(select(Plan).order_by(Plan.price))
    return [PlanResponse.model_validate(p) for p in result.scalars().all()]


@router.post(
    "",
    response_model=PlanResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create a plan",
)
async def create_plan(body: PlanCreate, db: AsyncSession = Depends(get_db)) -> PlanResponse:
    plan = Plan(**body.model_dump())
    db.add(plan)
    await db.flush()
    await db.refresh(plan)
    logger.info("Created plan %s (%s, price=%s, duration=%s)", plan.id, plan.name, plan.price, plan.duration)
    return PlanResponse.model_validate(plan)


@router.get("/{plan_id}", response_model=PlanResponse, summary="Get a plan")
async def get_plan(plan_id: uuid.UUID, db: AsyncSession = Depends(get_db)) -> PlanResponse:
    plan = await find_plan(db, plan_id)
    if plan is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Plan not found")
    return PlanResponse.model_validate(plan)


@router.put("/{plan_id}", response_model=PlanResponse, summary="Update a plan")
async def update_plan(
    plan_id: uuid.UUID,
    body: PlanUpdate,
    db: AsyncSession = Depends(get_db),
) -> PlanResponse:
    """Existing user plans keep the end_date computed at grant time."""
    plan = await find_plan(db, plan_id)
    if plan is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Plan not found")

    for field, value in body.model_dump(exclude_unset=True).items():
        setattr(plan, field, value)

    await db.flush()
    await db.refresh(plan)
    return PlanResponse.model_validate(plan)
