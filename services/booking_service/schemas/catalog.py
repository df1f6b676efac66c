"""Catalog request/response schemas."""

import uuid
from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator
from services.booking_service.models.enums import RecurrencePattern
from services.booking_service.schemas.common import Money, RequestModel

TIME_PATTERN = r"^([01]\d|2[0-3]):[0-5]\d$"


class CategoryCreate(RequestModel):
    name: str = Field(..., min_length=1, max_length=100)
    description: Optional[str] = None
    sort_order: int = 0
    is_active: bool = True


class CategoryUpdate(RequestModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    description: Optional[str] = None
    sort_order: Optional[int] = None
    is_active: Optional[bool] = None


class CategoryResponse(BaseModel):
    id: uuid.UUID
    name: str
    description: Optional[str] = None
    sort_order: int
    is_active: bool

    model_config = ConfigDict(from_attributes=True)


class CourseCreate(RequestModel):
    title: str = Field(..., min_length=1, max_length=255)
    description: str = ""
    price: Money
    deposit_amount: Optional[Money] = None
    duration: str = ""
    category: str = ""
    category_id: Optional[uuid.UUID] = None
    max_students: int = Field(..., ge=1)
    is_active: bool = True

    @model_validator(mode="after")
    def deposit_below_price(self):
        if self.deposit_amount is not None and self.deposit_amount > self.price:
            raise ValueError("deposit_amount cannot exceed price")
        return self


class CourseUpdate(RequestModel):
    title: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = None
    price: Optional[Money] = None
    deposit_amount: Optional[Money] = None
    duration: Optional[str] = None
    category: Optional[str] = None
    category_id: Optional[uuid.UUID] = None
    max_students: Optional[int] = Field(None, ge=1)
    is_active: Optional[bool] = None


class ScheduleCreate(RequestModel):
    start_date: datetime
    end_date: datetime
    start_time: Optional[str] = Field(None, pattern=TIME_PATTERN)
    end_time: Optional[str] = Field(None, pattern=TIME_PATTERN)
    location: Optional[str] = Field(None, max_length=255)
    max_spots: int = Field(..., ge=1)
    registration_deadline: Optional[datetime] = None
    waitlist_enabled: bool = True
    auto_confirm_registration: bool = True
    notes: Optional[str] = None

    is_recurring: bool = False
    recurrence_pattern: Optional[RecurrencePattern] = None
    recurrence_interval: int = Field(1, ge=1, le=52)
    recurrence_end_date: Optional[datetime] = None
    days_of_week: Optional[list[int]] = None

    @model_validator(mode="after")
    def check_dates(self):
        if self.end_date < self.start_date:
            raise ValueError("end_date must not be before start_date")
        if self.is_recurring:
            if self.recurrence_pattern is None or self.recurrence_end_date is None:
                raise ValueError(
                    "recurring schedules need recurrence_pattern and recurrence_end_date"
                )
            if self.recurrence_end_date < self.start_date:
                raise ValueError("recurrence_end_date must not be before start_date")
        if self.days_of_week and any(d < 0 or d > 6 for d in self.days_of_week):
            raise ValueError("days_of_week values must be between 0 and 6")
        return self


class ScheduleUpdate(RequestModel):
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    start_time: Optional[str] = Field(None, pattern=TIME_PATTERN)
    end_time: Optional[str] = Field(None, pattern=TIME_PATTERN)
    location: Optional[str] = Field(None, max_length=255)
    max_spots: Optional[int] = Field(None, ge=1)
    registration_deadline: Optional[datetime] = None
    waitlist_enabled: Optional[bool] = None
    auto_confirm_registration: Optional[bool] = None
    notes: Optional[str] = None


class ScheduleResponse(BaseModel):
    id: uuid.UUID
    course_id: uuid.UUID
    start_date: datetime
    end_date: datetime
    start_time: Optional[str] = None
    end_time: Optional[str] = None
    location: Optional[str] = None
    max_spots: int
    available_spots: int
    is_recurring: bool
    recurrence_pattern: Optional[RecurrencePattern] = None
    recurrence_interval: int
    recurrence_end_date: Optional[datetime] = None
    days_of_week: Optional[list[int]] = None
    parent_schedule_id: Optional[uuid.UUID] = None
    registration_deadline: Optional[datetime] = None
    waitlist_enabled: bool
    auto_confirm_registration: bool
    notes: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


class CourseResponse(BaseModel):
    id: uuid.UUID
    title: str
    description: str
    price: Decimal
    deposit_amount: Optional[Decimal] = None
    duration: str
    category: str
    category_id: Optional[uuid.UUID] = None
    max_students: int
    instructor_id: str
    is_active: bool
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class CourseDetailResponse(CourseResponse):
    schedules: list[ScheduleResponse] = []


class AvailabilityResponse(BaseModel):
    schedule_id: uuid.UUID
    max_spots: int
    available_spots: int
    held_offers: int
    open_spots: int
    waiting_count: int
    registration_open: bool
    waitlist_enabled: bool

    model_config = ConfigDict(from_attributes=True)
