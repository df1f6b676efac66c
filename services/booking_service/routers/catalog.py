"""Public catalog reads and instructor catalog management."""

import uuid

from fastapi import APIRouter, Depends, status
from libs.auth.dependencies import require_admin, require_instructor
from libs.auth.models import AuthUser
from libs.db.session import get_async_db
from services.booking_service.schemas import (
    CategoryCreate,
    CategoryResponse,
    CategoryUpdate,
    CourseCreate,
    CourseDetailResponse,
    CourseResponse,
    CourseUpdate,
)
from services.booking_service.services import catalog
from sqlalchemy.ext.asyncio import AsyncSession

router = APIRouter(tags=["catalog"])


# ---------------------------------------------------------------------------
# Categories
# ---------------------------------------------------------------------------


@router.get("/categories", response_model=list[CategoryResponse])
async def list_categories(db: AsyncSession = Depends(get_async_db)):
    return await catalog.list_categories(db)


@router.post(
    "/categories", response_model=CategoryResponse, status_code=status.HTTP_201_CREATED
)
async def create_category(
    payload: CategoryCreate,
    _admin: AuthUser = Depends(require_admin),
    db: AsyncSession = Depends(get_async_db),
):
    return await catalog.create_category(db, **payload.model_dump())


@router.patch("/categories/{category_id}", response_model=CategoryResponse)
async def update_category(
    category_id: uuid.UUID,
    payload: CategoryUpdate,
    _admin: AuthUser = Depends(require_admin),
    db: AsyncSession = Depends(get_async_db),
):
    return await catalog.update_category(
        db, category_id, **payload.model_dump(exclude_unset=True)
    )


# ---------------------------------------------------------------------------
# Courses
# ---------------------------------------------------------------------------


@router.get("/courses", response_model=list[CourseResponse])
async def list_courses(db: AsyncSession = Depends(get_async_db)):
    """Active courses (cached)."""
    return await catalog.course_listing(db)


@router.get("/courses/{course_id}", response_model=CourseDetailResponse)
async def get_course(course_id: uuid.UUID, db: AsyncSession = Depends(get_async_db)):
    return await catalog.course_detail(db, course_id)


@router.post(
    "/courses", response_model=CourseResponse, status_code=status.HTTP_201_CREATED
)
async def create_course(
    payload: CourseCreate,
    current_user: AuthUser = Depends(require_instructor),
    db: AsyncSession = Depends(get_async_db),
):
    return await catalog.create_course(
        db, instructor_id=current_user.user_id, **payload.model_dump()
    )


@router.patch("/courses/{course_id}", response_model=CourseResponse)
async def update_course(
    course_id: uuid.UUID,
    payload: CourseUpdate,
    current_user: AuthUser = Depends(require_instructor),
    db: AsyncSession = Depends(get_async_db),
):
    return await catalog.update_course(
        db,
        course_id,
        user_id=current_user.user_id,
        is_admin=current_user.role == "admin",
        **payload.model_dump(exclude_unset=True),
    )


@router.delete("/courses/{course_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_course(
    course_id: uuid.UUID,
    current_user: AuthUser = Depends(require_instructor),
    db: AsyncSession = Depends(get_async_db),
):
    await catalog.delete_course(
        db,
        course_id,
        user_id=current_user.user_id,
        is_admin=current_user.role == "admin",
    )
