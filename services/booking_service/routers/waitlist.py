"""Waitlist endpoints."""

import uuid

from fastapi import APIRouter, Depends, status
from libs.auth.dependencies import get_current_user
from libs.auth.models import AuthUser
from libs.db.session import get_async_db
from services.booking_service.models import WaitlistEntry
from services.booking_service.schemas import WaitlistEntryResponse, WaitlistJoin
from services.booking_service.services import scheduling
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

router = APIRouter(tags=["waitlist"])


@router.post(
    "/schedules/{schedule_id}/waitlist",
    response_model=WaitlistEntryResponse,
    status_code=status.HTTP_201_CREATED,
)
async def join_waitlist(
    schedule_id: uuid.UUID,
    payload: WaitlistJoin,
    current_user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_db),
):
    return await scheduling.join_waitlist(
        db,
        schedule_id,
        current_user.user_id,
        student_email=payload.email or current_user.email,
    )


@router.get("/waitlist/me", response_model=list[WaitlistEntryResponse])
async def list_my_waitlist_entries(
    current_user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_db),
):
    result = await db.execute(
        select(WaitlistEntry)
        .where(WaitlistEntry.student_id == current_user.user_id)
        .order_by(WaitlistEntry.created_at.desc())
    )
    return result.scalars().all()
