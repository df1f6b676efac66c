import uuid
from datetime import datetime
from decimal import Decimal
from typing import Optional

from libs.common.datetime_utils import utc_now
from libs.db.base import Base
from services.booking_service.models.catalog import Course, CourseSchedule
from services.booking_service.models.enums import (
    EnrollmentStatus,
    PaymentOption,
    PaymentStatus,
    WaitlistStatus,
    enum_values,
)
from sqlalchemy import JSON, Boolean, DateTime
from sqlalchemy import Enum as SAEnum
from sqlalchemy import ForeignKey, Integer, Numeric, String, Text, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship


class Enrollment(Base):
    __tablename__ = "enrollments"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    student_id: Mapped[str] = mapped_column(String, index=True, nullable=False)
    course_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("courses.id"), index=True, nullable=False
    )
    schedule_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("course_schedules.id"), index=True, nullable=False
    )

    status: Mapped[EnrollmentStatus] = mapped_column(
        SAEnum(
            EnrollmentStatus,
            name="enrollment_status_enum",
            values_callable=enum_values,
            validate_strings=True,
        ),
        default=EnrollmentStatus.PENDING,
        nullable=False,
    )
    payment_status: Mapped[PaymentStatus] = mapped_column(
        SAEnum(
            PaymentStatus,
            name="enrollment_payment_status_enum",
            values_callable=enum_values,
            validate_strings=True,
        ),
        default=PaymentStatus.PENDING,
        nullable=False,
    )
    payment_option: Mapped[PaymentOption] = mapped_column(
        SAEnum(
            PaymentOption,
            name="payment_option_enum",
            values_callable=enum_values,
            validate_strings=True,
        ),
        default=PaymentOption.FULL,
        nullable=False,
    )
    payment_intent_id: Mapped[Optional[str]] = mapped_column(
        String(255), index=True, nullable=True
    )

    # Contact details as entered at booking time
    student_info: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)

    # Amount snapshot in dollars. Recomputed from integer cents on every change.
    subtotal_amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    discount_amount: Mapped[Decimal] = mapped_column(
        Numeric(10, 2), default=Decimal("0.00"), nullable=False
    )
    tax_rate: Mapped[str] = mapped_column(String(10), default="0.0000", nullable=False)
    tax_amount: Mapped[Decimal] = mapped_column(
        Numeric(10, 2), default=Decimal("0.00"), nullable=False
    )
    total_amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    promo_code_applied: Mapped[Optional[str]] = mapped_column(
        String(50), nullable=True
    )

    registration_date: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now
    )
    confirmation_date: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    completion_date: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    cancellation_date: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    cancellation_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    refund_requested: Mapped[bool] = mapped_column(
        Boolean, default=False, nullable=False
    )
    refund_requested_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    refund_processed: Mapped[bool] = mapped_column(
        Boolean, default=False, nullable=False
    )
    refund_processed_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    refund_amount: Mapped[Optional[Decimal]] = mapped_column(
        Numeric(10, 2), nullable=True
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, onupdate=utc_now
    )

    course: Mapped[Course] = relationship()
    schedule: Mapped[CourseSchedule] = relationship()

    def __repr__(self):
        return f"<Enrollment {self.id} {self.status.value}/{self.payment_status.value}>"


class WaitlistEntry(Base):
    __tablename__ = "waitlist_entries"
    __table_args__ = (
        UniqueConstraint(
            "schedule_id", "position", name="uq_waitlist_schedule_position"
        ),
        UniqueConstraint(
            "schedule_id", "student_id", name="uq_waitlist_schedule_student"
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    schedule_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("course_schedules.id", ondelete="CASCADE"),
        index=True,
        nullable=False,
    )
    student_id: Mapped[str] = mapped_column(String, index=True, nullable=False)
    student_email: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    # 1-based, contiguous per schedule; rows are never deleted
    position: Mapped[int] = mapped_column(Integer, nullable=False)

    status: Mapped[WaitlistStatus] = mapped_column(
        SAEnum(
            WaitlistStatus,
            name="waitlist_status_enum",
            values_callable=enum_values,
            validate_strings=True,
        ),
        default=WaitlistStatus.WAITING,
        nullable=False,
    )
    offer_date: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    offer_expiry_date: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, onupdate=utc_now
    )

    schedule: Mapped[CourseSchedule] = relationship(back_populates="waitlist")

    def __repr__(self):
        return f"<WaitlistEntry #{self.position} {self.status.value}>"
