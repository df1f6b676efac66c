"""create_booking_tables

Revision ID: 3f9c2a7d1e04
Revises:
Create Date: 2026-10-12 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '3f9c2a7d1e04'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


recurrence_pattern_enum = sa.Enum(
    'daily', 'weekly', 'monthly', name='recurrence_pattern_enum'
)
enrollment_status_enum = sa.Enum(
    'pending', 'confirmed', 'completed', 'cancelled', name='enrollment_status_enum'
)
enrollment_payment_status_enum = sa.Enum(
    'pending', 'paid', 'failed', 'refunded', name='enrollment_payment_status_enum'
)
payment_option_enum = sa.Enum('full', 'deposit', name='payment_option_enum')
waitlist_status_enum = sa.Enum(
    'waiting', 'offered', 'enrolled', 'expired', name='waitlist_status_enum'
)
discount_type_enum = sa.Enum('percentage', 'fixed', name='discount_type_enum')


def _timestamps():
    return [
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
    ]


def upgrade() -> None:
    """Upgrade schema - Create catalog, enrollment and coupon tables."""

    op.create_table(
        'categories',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('name', sa.String(length=100), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('sort_order', sa.Integer(), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('name'),
    )

    op.create_table(
        'courses',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('title', sa.String(length=255), nullable=False),
        sa.Column('description', sa.Text(), nullable=False),
        sa.Column('price', sa.Numeric(10, 2), nullable=False),
        sa.Column('deposit_amount', sa.Numeric(10, 2), nullable=True),
        sa.Column('duration', sa.String(length=64), nullable=False),
        sa.Column('category', sa.String(length=100), nullable=False),
        sa.Column('category_id', sa.Uuid(), nullable=True),
        sa.Column('max_students', sa.Integer(), nullable=False),
        sa.Column('instructor_id', sa.String(), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('deleted_at', sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(['category_id'], ['categories.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_courses_instructor_id', 'courses', ['instructor_id'])

    op.create_table(
        'course_schedules',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('course_id', sa.Uuid(), nullable=False),
        sa.Column('start_date', sa.DateTime(timezone=True), nullable=False),
        sa.Column('end_date', sa.DateTime(timezone=True), nullable=False),
        sa.Column('start_time', sa.String(length=5), nullable=True),
        sa.Column('end_time', sa.String(length=5), nullable=True),
        sa.Column('location', sa.String(length=255), nullable=True),
        sa.Column('max_spots', sa.Integer(), nullable=False),
        sa.Column('available_spots', sa.Integer(), nullable=False),
        sa.Column('is_recurring', sa.Boolean(), nullable=False),
        sa.Column('recurrence_pattern', recurrence_pattern_enum, nullable=True),
        sa.Column('recurrence_interval', sa.Integer(), nullable=False),
        sa.Column('recurrence_end_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('days_of_week', sa.JSON(), nullable=True),
        sa.Column('parent_schedule_id', sa.Uuid(), nullable=True),
        sa.Column('registration_deadline', sa.DateTime(timezone=True), nullable=True),
        sa.Column('waitlist_enabled', sa.Boolean(), nullable=False),
        sa.Column('auto_confirm_registration', sa.Boolean(), nullable=False),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('deleted_at', sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.CheckConstraint(
            'available_spots >= 0 AND available_spots <= max_spots',
            name='ck_course_schedules_spots_bounds',
        ),
        sa.ForeignKeyConstraint(['course_id'], ['courses.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(
            ['parent_schedule_id'], ['course_schedules.id'], ondelete='CASCADE'
        ),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_course_schedules_course_id', 'course_schedules', ['course_id'])

    op.create_table(
        'enrollments',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('student_id', sa.String(), nullable=False),
        sa.Column('course_id', sa.Uuid(), nullable=False),
        sa.Column('schedule_id', sa.Uuid(), nullable=False),
        sa.Column('status', enrollment_status_enum, nullable=False),
        sa.Column('payment_status', enrollment_payment_status_enum, nullable=False),
        sa.Column('payment_option', payment_option_enum, nullable=False),
        sa.Column('payment_intent_id', sa.String(length=255), nullable=True),
        sa.Column('student_info', sa.JSON(), nullable=True),
        sa.Column('subtotal_amount', sa.Numeric(10, 2), nullable=False),
        sa.Column('discount_amount', sa.Numeric(10, 2), nullable=False),
        sa.Column('tax_rate', sa.String(length=10), nullable=False),
        sa.Column('tax_amount', sa.Numeric(10, 2), nullable=False),
        sa.Column('total_amount', sa.Numeric(10, 2), nullable=False),
        sa.Column('promo_code_applied', sa.String(length=50), nullable=True),
        sa.Column('registration_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('confirmation_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('completion_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('cancellation_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('cancellation_reason', sa.Text(), nullable=True),
        sa.Column('refund_requested', sa.Boolean(), nullable=False),
        sa.Column('refund_requested_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('refund_processed', sa.Boolean(), nullable=False),
        sa.Column('refund_processed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('refund_amount', sa.Numeric(10, 2), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(['course_id'], ['courses.id']),
        sa.ForeignKeyConstraint(['schedule_id'], ['course_schedules.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_enrollments_student_id', 'enrollments', ['student_id'])
    op.create_index('ix_enrollments_course_id', 'enrollments', ['course_id'])
    op.create_index('ix_enrollments_schedule_id', 'enrollments', ['schedule_id'])
    op.create_index(
        'ix_enrollments_payment_intent_id', 'enrollments', ['payment_intent_id']
    )

    op.create_table(
        'waitlist_entries',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('schedule_id', sa.Uuid(), nullable=False),
        sa.Column('student_id', sa.String(), nullable=False),
        sa.Column('student_email', sa.String(), nullable=True),
        sa.Column('position', sa.Integer(), nullable=False),
        sa.Column('status', waitlist_status_enum, nullable=False),
        sa.Column('offer_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('offer_expiry_date', sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(
            ['schedule_id'], ['course_schedules.id'], ondelete='CASCADE'
        ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint(
            'schedule_id', 'position', name='uq_waitlist_schedule_position'
        ),
        sa.UniqueConstraint(
            'schedule_id', 'student_id', name='uq_waitlist_schedule_student'
        ),
    )
    op.create_index(
        'ix_waitlist_entries_schedule_id', 'waitlist_entries', ['schedule_id']
    )
    op.create_index(
        'ix_waitlist_entries_student_id', 'waitlist_entries', ['student_id']
    )

    op.create_table(
        'coupons',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('code', sa.String(length=50), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('discount_type', discount_type_enum, nullable=False),
        sa.Column('discount_value', sa.Numeric(10, 2), nullable=False),
        sa.Column('minimum_order_amount', sa.Numeric(10, 2), nullable=True),
        sa.Column('max_usage_total', sa.Integer(), nullable=True),
        sa.Column('max_usage_per_user', sa.Integer(), nullable=True),
        sa.Column('current_usage_count', sa.Integer(), nullable=False),
        sa.Column('valid_from', sa.DateTime(timezone=True), nullable=True),
        sa.Column('valid_until', sa.DateTime(timezone=True), nullable=True),
        sa.Column('applicable_course_ids', sa.JSON(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('created_by', sa.String(), nullable=True),
        *_timestamps(),
        sa.CheckConstraint(
            'max_usage_total IS NULL OR current_usage_count <= max_usage_total',
            name='ck_coupons_usage_within_limit',
        ),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_coupons_code', 'coupons', ['code'], unique=True)

    op.create_table(
        'coupon_usages',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('coupon_id', sa.Uuid(), nullable=False),
        sa.Column('user_id', sa.String(), nullable=False),
        sa.Column('enrollment_id', sa.Uuid(), nullable=False),
        sa.Column('original_amount', sa.Numeric(10, 2), nullable=False),
        sa.Column('discount_amount', sa.Numeric(10, 2), nullable=False),
        sa.Column('final_amount', sa.Numeric(10, 2), nullable=False),
        sa.Column('payment_intent_id', sa.String(length=255), nullable=True),
        sa.Column('is_finalized', sa.Boolean(), nullable=False),
        sa.Column('finalized_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('used_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['coupon_id'], ['coupons.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(
            ['enrollment_id'], ['enrollments.id'], ondelete='CASCADE'
        ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint(
            'coupon_id',
            'user_id',
            'enrollment_id',
            name='uq_coupon_usage_coupon_user_enrollment',
        ),
    )
    op.create_index('ix_coupon_usages_coupon_id', 'coupon_usages', ['coupon_id'])
    op.create_index('ix_coupon_usages_user_id', 'coupon_usages', ['user_id'])
    op.create_index(
        'ix_coupon_usages_enrollment_id', 'coupon_usages', ['enrollment_id']
    )


def downgrade() -> None:
    """Downgrade schema - Drop booking tables and enum types."""

    op.drop_table('coupon_usages')
    op.drop_table('coupons')
    op.drop_table('waitlist_entries')
    op.drop_table('enrollments')
    op.drop_table('course_schedules')
    op.drop_table('courses')
    op.drop_table('categories')

    bind = op.get_bind()
    for enum_type in (
        discount_type_enum,
        waitlist_status_enum,
        payment_option_enum,
        enrollment_payment_status_enum,
        enrollment_status_enum,
        recurrence_pattern_enum,
    ):
        enum_type.drop(bind, checkfirst=True)
