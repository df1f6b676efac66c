import uuid
from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING, Optional

from libs.common.datetime_utils import utc_now
from libs.db.base import Base
from services.booking_service.models.enums import RecurrencePattern, enum_values
from sqlalchemy import JSON, Boolean, CheckConstraint, DateTime
from sqlalchemy import Enum as SAEnum
from sqlalchemy import ForeignKey, Integer, Numeric, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

if TYPE_CHECKING:
    from services.booking_service.models.enrollment import WaitlistEntry


class Category(Base):
    __tablename__ = "categories"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    sort_order: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, onupdate=utc_now
    )

    def __repr__(self):
        return f"<Category {self.name}>"


class Course(Base):
    __tablename__ = "courses"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")

    price: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    # Null means the course can only be paid in full
    deposit_amount: Mapped[Optional[Decimal]] = mapped_column(
        Numeric(10, 2), nullable=True
    )
    duration: Mapped[str] = mapped_column(String(64), nullable=False, default="")

    # Free-text label kept alongside the category link for display
    category: Mapped[str] = mapped_column(String(100), nullable=False, default="")
    category_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid, ForeignKey("categories.id", ondelete="SET NULL"), nullable=True
    )
    max_students: Mapped[int] = mapped_column(Integer, nullable=False)
    instructor_id: Mapped[str] = mapped_column(String, index=True, nullable=False)

    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    deleted_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, onupdate=utc_now
    )

    schedules: Mapped[list["CourseSchedule"]] = relationship(
        back_populates="course", order_by="CourseSchedule.start_date"
    )

    @property
    def is_bookable(self) -> bool:
        return self.is_active and self.deleted_at is None

    def __repr__(self):
        return f"<Course {self.title}>"


class CourseSchedule(Base):
    __tablename__ = "course_schedules"
    __table_args__ = (
        CheckConstraint(
            "available_spots >= 0 AND available_spots <= max_spots",
            name="ck_course_schedules_spots_bounds",
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    course_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("courses.id", ondelete="CASCADE"), index=True, nullable=False
    )

    start_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    end_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    # Wall-clock times as shown to students, e.g. "09:00"
    start_time: Mapped[Optional[str]] = mapped_column(String(5), nullable=True)
    end_time: Mapped[Optional[str]] = mapped_column(String(5), nullable=True)
    location: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    max_spots: Mapped[int] = mapped_column(Integer, nullable=False)
    available_spots: Mapped[int] = mapped_column(Integer, nullable=False)

    is_recurring: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    recurrence_pattern: Mapped[Optional[RecurrencePattern]] = mapped_column(
        SAEnum(
            RecurrencePattern,
            name="recurrence_pattern_enum",
            values_callable=enum_values,
            validate_strings=True,
        ),
        nullable=True,
    )
    recurrence_interval: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    recurrence_end_date: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    # ISO weekdays (0 = Monday) for weekly recurrence
    days_of_week: Mapped[Optional[list[int]]] = mapped_column(JSON, nullable=True)
    parent_schedule_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid, ForeignKey("course_schedules.id", ondelete="CASCADE"), nullable=True
    )

    registration_deadline: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    waitlist_enabled: Mapped[bool] = mapped_column(
        Boolean, default=True, nullable=False
    )
    auto_confirm_registration: Mapped[bool] = mapped_column(
        Boolean, default=True, nullable=False
    )
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    deleted_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, onupdate=utc_now
    )

    course: Mapped["Course"] = relationship(back_populates="schedules")
    waitlist: Mapped[list["WaitlistEntry"]] = relationship(
        back_populates="schedule", order_by="WaitlistEntry.position"
    )

    def __repr__(self):
        return f"<CourseSchedule {self.id} {self.available_spots}/{self.max_spots}>"
