"""Student enrollment endpoints and instructor lifecycle actions."""

import uuid

from fastapi import APIRouter, Depends, status
from libs.auth.dependencies import get_current_user, require_instructor
from libs.auth.models import AuthUser
from libs.db.session import get_async_db
from services.booking_service.errors import NotFound
from services.booking_service.schemas import (
    EnrollmentCancel,
    EnrollmentCreate,
    EnrollmentResponse,
)
from services.booking_service.services import enrollment_ops
from sqlalchemy.ext.asyncio import AsyncSession

router = APIRouter(prefix="/enrollments", tags=["enrollments"])


async def _get_visible_enrollment(
    db: AsyncSession, enrollment_id: uuid.UUID, user: AuthUser
):
    enrollment = await enrollment_ops.get_enrollment(db, enrollment_id)
    if enrollment.student_id != user.user_id and not user.is_staff:
        raise NotFound("Enrollment not found")
    return enrollment


@router.post(
    "", response_model=EnrollmentResponse, status_code=status.HTTP_201_CREATED
)
async def create_enrollment(
    payload: EnrollmentCreate,
    current_user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_db),
):
    """Reserve a spot. The enrollment stays pending until payment confirms."""
    student_info = payload.student_info.model_dump() if payload.student_info else None
    if student_info is None and current_user.email:
        student_info = {"name": None, "email": current_user.email, "phone": None}
    return await enrollment_ops.create_enrollment(
        db,
        student_id=current_user.user_id,
        schedule_id=payload.schedule_id,
        payment_option=payload.payment_option,
        student_info=student_info,
    )


@router.get("/me", response_model=list[EnrollmentResponse])
async def list_my_enrollments(
    current_user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_db),
):
    return await enrollment_ops.list_student_enrollments(db, current_user.user_id)


@router.get("/{enrollment_id}", response_model=EnrollmentResponse)
async def get_enrollment(
    enrollment_id: uuid.UUID,
    current_user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_db),
):
    return await _get_visible_enrollment(db, enrollment_id, current_user)


@router.post("/{enrollment_id}/cancel", response_model=EnrollmentResponse)
async def cancel_enrollment(
    enrollment_id: uuid.UUID,
    payload: EnrollmentCancel,
    current_user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_db),
):
    await _get_visible_enrollment(db, enrollment_id, current_user)
    return await enrollment_ops.cancel_enrollment(
        db, enrollment_id, reason=payload.reason
    )


@router.post("/{enrollment_id}/approve", response_model=EnrollmentResponse)
async def approve_enrollment(
    enrollment_id: uuid.UUID,
    current_user: AuthUser = Depends(require_instructor),
    db: AsyncSession = Depends(get_async_db),
):
    """Manual confirmation for schedules that do not auto-confirm."""
    return await enrollment_ops.approve_enrollment(
        db,
        enrollment_id,
        user_id=current_user.user_id,
        is_admin=current_user.role == "admin",
    )


@router.post("/{enrollment_id}/complete", response_model=EnrollmentResponse)
async def complete_enrollment(
    enrollment_id: uuid.UUID,
    current_user: AuthUser = Depends(require_instructor),
    db: AsyncSession = Depends(get_async_db),
):
    return await enrollment_ops.complete_enrollment(
        db,
        enrollment_id,
        user_id=current_user.user_id,
        is_admin=current_user.role == "admin",
    )
