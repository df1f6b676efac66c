"""Promo code request/response schemas."""

import uuid
from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator
from services.booking_service.models.enums import DiscountType
from services.booking_service.schemas.common import Money, RequestModel


class CouponCreate(RequestModel):
    code: str = Field(..., min_length=3, max_length=50, pattern=r"^[A-Za-z0-9_-]+$")
    name: str = Field("", max_length=255)
    description: Optional[str] = None
    discount_type: DiscountType
    discount_value: Money
    minimum_order_amount: Optional[Money] = None
    max_usage_total: Optional[int] = Field(None, ge=1)
    max_usage_per_user: Optional[int] = Field(None, ge=1)
    valid_from: Optional[datetime] = None
    valid_until: Optional[datetime] = None
    applicable_course_ids: Optional[list[uuid.UUID]] = None
    is_active: bool = True

    @model_validator(mode="after")
    def check_values(self):
        if self.discount_type == DiscountType.PERCENTAGE and self.discount_value > 100:
            raise ValueError("percentage discounts cannot exceed 100")
        if self.discount_value <= 0:
            raise ValueError("discount_value must be positive")
        if self.valid_from and self.valid_until and self.valid_until < self.valid_from:
            raise ValueError("valid_until must not be before valid_from")
        return self


class CouponUpdate(RequestModel):
    name: Optional[str] = Field(None, max_length=255)
    description: Optional[str] = None
    minimum_order_amount: Optional[Money] = None
    max_usage_total: Optional[int] = Field(None, ge=1)
    max_usage_per_user: Optional[int] = Field(None, ge=1)
    valid_from: Optional[datetime] = None
    valid_until: Optional[datetime] = None
    applicable_course_ids: Optional[list[uuid.UUID]] = None
    is_active: Optional[bool] = None


class CouponResponse(BaseModel):
    id: uuid.UUID
    code: str
    name: str
    description: Optional[str] = None
    discount_type: DiscountType
    discount_value: Decimal
    minimum_order_amount: Optional[Decimal] = None
    max_usage_total: Optional[int] = None
    max_usage_per_user: Optional[int] = None
    current_usage_count: int
    valid_from: Optional[datetime] = None
    valid_until: Optional[datetime] = None
    applicable_course_ids: Optional[list[str]] = None
    is_active: bool
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class PromoValidateRequest(RequestModel):
    code: str = Field(..., min_length=1, max_length=50)
    course_id: uuid.UUID
    amount: Money


class PromoApplyRequest(RequestModel):
    code: str = Field(..., min_length=1, max_length=50)
    enrollment_id: uuid.UUID


class PromoQuoteResponse(BaseModel):
    """Price preview for a validated promo code."""

    code: str
    discount_type: DiscountType
    discount_value: Decimal
    subtotal: Decimal
    discount: Decimal
    tax_rate: str
    tax: Decimal
    total: Decimal
