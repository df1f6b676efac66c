"""Schedule management and availability."""

import uuid

from fastapi import APIRouter, Depends, Query, status
from libs.auth.dependencies import require_instructor
from libs.auth.models import AuthUser
from libs.db.session import get_async_db
from services.booking_service.schemas import (
    AvailabilityResponse,
    EnrollmentResponse,
    ScheduleCreate,
    ScheduleResponse,
    ScheduleUpdate,
)
from services.booking_service.services import catalog, enrollment_ops
from sqlalchemy.ext.asyncio import AsyncSession

router = APIRouter(tags=["schedules"])


@router.get("/courses/{course_id}/schedules", response_model=list[ScheduleResponse])
async def list_schedules(
    course_id: uuid.UUID,
    include_past: bool = Query(False),
    db: AsyncSession = Depends(get_async_db),
):
    return await catalog.list_course_schedules(
        db, course_id, upcoming_only=not include_past
    )


@router.post(
    "/courses/{course_id}/schedules",
    response_model=list[ScheduleResponse],
    status_code=status.HTTP_201_CREATED,
)
async def create_schedule(
    course_id: uuid.UUID,
    payload: ScheduleCreate,
    current_user: AuthUser = Depends(require_instructor),
    db: AsyncSession = Depends(get_async_db),
):
    """Create a schedule. Recurring schedules return every created occurrence."""
    return await catalog.create_schedule(
        db,
        course_id,
        user_id=current_user.user_id,
        is_admin=current_user.role == "admin",
        **payload.model_dump(),
    )


@router.patch("/schedules/{schedule_id}", response_model=ScheduleResponse)
async def update_schedule(
    schedule_id: uuid.UUID,
    payload: ScheduleUpdate,
    current_user: AuthUser = Depends(require_instructor),
    db: AsyncSession = Depends(get_async_db),
):
    return await catalog.update_schedule(
        db,
        schedule_id,
        user_id=current_user.user_id,
        is_admin=current_user.role == "admin",
        **payload.model_dump(exclude_unset=True),
    )


@router.delete("/schedules/{schedule_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_schedule(
    schedule_id: uuid.UUID,
    current_user: AuthUser = Depends(require_instructor),
    db: AsyncSession = Depends(get_async_db),
):
    await catalog.delete_schedule(
        db,
        schedule_id,
        user_id=current_user.user_id,
        is_admin=current_user.role == "admin",
    )


@router.get(
    "/schedules/{schedule_id}/availability", response_model=AvailabilityResponse
)
async def get_availability(
    schedule_id: uuid.UUID, db: AsyncSession = Depends(get_async_db)
):
    return await catalog.schedule_availability(db, schedule_id)


@router.get(
    "/schedules/{schedule_id}/enrollments", response_model=list[EnrollmentResponse]
)
async def list_schedule_enrollments(
    schedule_id: uuid.UUID,
    _instructor: AuthUser = Depends(require_instructor),
    db: AsyncSession = Depends(get_async_db),
):
    return await enrollment_ops.list_schedule_enrollments(db, schedule_id)
