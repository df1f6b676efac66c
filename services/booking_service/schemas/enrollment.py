"""Enrollment and waitlist request/response schemas."""

import uuid
from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field
from services.booking_service.models.enums import (
    EnrollmentStatus,
    PaymentOption,
    PaymentStatus,
    WaitlistStatus,
)
from services.booking_service.schemas.common import RequestModel


class StudentInfo(RequestModel):
    name: str = Field(..., min_length=1, max_length=255)
    email: EmailStr
    phone: Optional[str] = Field(None, max_length=32)


class EnrollmentCreate(RequestModel):
    schedule_id: uuid.UUID
    payment_option: PaymentOption = PaymentOption.FULL
    student_info: Optional[StudentInfo] = None


class EnrollmentCancel(RequestModel):
    reason: Optional[str] = Field(None, max_length=1000)


class EnrollmentResponse(BaseModel):
    id: uuid.UUID
    student_id: str
    course_id: uuid.UUID
    schedule_id: uuid.UUID
    status: EnrollmentStatus
    payment_status: PaymentStatus
    payment_option: PaymentOption
    payment_intent_id: Optional[str] = None
    student_info: Optional[dict] = None
    subtotal_amount: Decimal
    discount_amount: Decimal
    tax_rate: str
    tax_amount: Decimal
    total_amount: Decimal
    promo_code_applied: Optional[str] = None
    registration_date: datetime
    confirmation_date: Optional[datetime] = None
    completion_date: Optional[datetime] = None
    cancellation_date: Optional[datetime] = None
    cancellation_reason: Optional[str] = None
    refund_requested: bool
    refund_processed: bool
    refund_amount: Optional[Decimal] = None

    model_config = ConfigDict(from_attributes=True)


class WaitlistJoin(RequestModel):
    email: Optional[EmailStr] = None


class WaitlistEntryResponse(BaseModel):
    id: uuid.UUID
    schedule_id: uuid.UUID
    student_id: str
    position: int
    status: WaitlistStatus
    offer_date: Optional[datetime] = None
    offer_expiry_date: Optional[datetime] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)
