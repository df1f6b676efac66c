"""Payment request/response schemas."""

import uuid
from typing import Optional

from pydantic import BaseModel, Field
from services.booking_service.schemas.common import Money, RequestModel
from services.booking_service.schemas.enrollment import EnrollmentResponse


class PaymentIntentCreate(RequestModel):
    enrollment_id: uuid.UUID


class PaymentIntentResponse(BaseModel):
    enrollment: EnrollmentResponse
    payment_intent_id: Optional[str] = None
    client_secret: Optional[str] = None
    amount_cents: int
    currency: str


class PaymentConfirm(RequestModel):
    enrollment_id: uuid.UUID
    payment_intent_id: str = Field(..., min_length=1, max_length=255)


class RefundCreate(RequestModel):
    # Pre-tax amount to refund; defaults to everything paid
    amount: Optional[Money] = None
