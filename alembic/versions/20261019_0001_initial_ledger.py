"""initial ledger tables

Revision ID: 20261019_0001
Revises: 
Create Date: 2026-10-19 00:01:00
"""

from alembic import op
import sqlalchemy as sa


revision = '20261019_0001'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        'students',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('name', sa.String(length=160), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
    )
    op.create_index('ix_students_id', 'students', ['id'])

    op.create_table(
        'individual_lessons',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('student_id', sa.Integer(), sa.ForeignKey('students.id'), nullable=True),
        sa.Column('student_name', sa.String(length=160), nullable=False, server_default=''),
        sa.Column('subject', sa.String(length=120), nullable=False, server_default=''),
        sa.Column('duration', sa.Integer(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime(), nullable=False),
    )
    op.create_index('ix_individual_lessons_id', 'individual_lessons', ['id'])
    op.create_index('ix_individual_lessons_student_id', 'individual_lessons', ['student_id'])

    op.create_table(
        'learning_groups',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('name', sa.String(length=160), nullable=False),
        sa.Column('subject', sa.String(length=120), nullable=False, server_default=''),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
    )
    op.create_index('ix_learning_groups_id', 'learning_groups', ['id'])

    op.create_table(
        'payments',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('individual_lesson_id', sa.Integer(), sa.ForeignKey('individual_lessons.id'), nullable=True),
        sa.Column('group_id', sa.Integer(), sa.ForeignKey('learning_groups.id'), nullable=True),
        sa.Column('student_id', sa.Integer(), sa.ForeignKey('students.id'), nullable=True),
        sa.Column('lessons_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('amount', sa.Float(), nullable=False, server_default='0'),
        sa.Column('payment_date', sa.Date(), nullable=True),
        sa.Column('status', sa.String(length=20), nullable=False, server_default='completed'),
        sa.Column('created_at', sa.DateTime(), nullable=False),
    )
    op.create_index('ix_payments_id', 'payments', ['id'])
    op.create_index('ix_payments_status', 'payments', ['status'])
    op.create_index('ix_payments_lesson_created', 'payments', ['individual_lesson_id', 'created_at'])
    op.create_index('ix_payments_group_student', 'payments', ['group_id', 'student_id'])

    op.create_table(
        'individual_lesson_sessions',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('individual_lesson_id', sa.Integer(), sa.ForeignKey('individual_lessons.id'), nullable=False),
        sa.Column('lesson_date', sa.Date(), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False, server_default='scheduled'),
        sa.Column('duration', sa.Integer(), nullable=True),
        sa.Column('payment_id', sa.Integer(), sa.ForeignKey('payments.id'), nullable=True),
        sa.Column('paid_minutes', sa.Integer(), nullable=True, server_default='0'),
        sa.Column('payment_coefficient', sa.Float(), nullable=False, server_default='1'),
        sa.Column('is_additional', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('notes', sa.Text(), nullable=False, server_default=''),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
    )
    op.create_index('ix_individual_lesson_sessions_id', 'individual_lesson_sessions', ['id'])
    op.create_index('ix_individual_lesson_sessions_individual_lesson_id', 'individual_lesson_sessions', ['individual_lesson_id'])
    op.create_index('ix_individual_lesson_sessions_payment_id', 'individual_lesson_sessions', ['payment_id'])
    op.create_index('ix_individual_lesson_sessions_lesson_date', 'individual_lesson_sessions', ['individual_lesson_id', 'lesson_date'])

    op.create_table(
        'course_prices',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('course_name', sa.String(length=120), nullable=False),
        sa.Column('price_per_40_min', sa.Float(), nullable=False),
        sa.Column('price_per_academic_hour', sa.Float(), nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.UniqueConstraint('course_name', name='uq_course_prices_course_name'),
    )
    op.create_index('ix_course_prices_id', 'course_prices', ['id'])
    op.create_index('ix_course_prices_course_name', 'course_prices', ['course_name'])

    op.create_table(
        'group_students',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('group_id', sa.Integer(), sa.ForeignKey('learning_groups.id'), nullable=False),
        sa.Column('student_id', sa.Integer(), sa.ForeignKey('students.id'), nullable=False),
        sa.Column('enrollment_date', sa.Date(), nullable=True),
        sa.UniqueConstraint('group_id', 'student_id', name='uq_group_students_group_student'),
    )
    op.create_index('ix_group_students_id', 'group_students', ['id'])
    op.create_index('ix_group_students_group_id', 'group_students', ['group_id'])
    op.create_index('ix_group_students_student_id', 'group_students', ['student_id'])

    op.create_table(
        'lesson_sessions',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('group_id', sa.Integer(), sa.ForeignKey('learning_groups.id'), nullable=False),
        sa.Column('lesson_date', sa.Date(), nullable=False),
        sa.Column('lesson_number', sa.Integer(), nullable=True),
        sa.Column('status', sa.String(length=20), nullable=False, server_default='scheduled'),
        sa.Column('duration', sa.Integer(), nullable=True),
        sa.Column('start_time', sa.Time(), nullable=True),
        sa.Column('end_time', sa.Time(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
    )
    op.create_index('ix_lesson_sessions_id', 'lesson_sessions', ['id'])
    op.create_index('ix_lesson_sessions_group_id', 'lesson_sessions', ['group_id'])
    op.create_index('ix_lesson_sessions_group_date', 'lesson_sessions', ['group_id', 'lesson_date'])


def downgrade() -> None:
    op.drop_table('lesson_sessions')
    op.drop_table('group_students')
    op.drop_table('course_prices')
    op.drop_table('individual_lesson_sessions')
    op.drop_table('payments')
    op.drop_table('learning_groups')
    op.drop_table('individual_lessons')
    op.drop_table('students')
