from datetime import date, datetime, time
from enum import Enum

from sqlalchemy import Boolean, Date, DateTime, Float, ForeignKey, Index, Integer, String, Text, Time, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from lesson_ledger.core.time_provider import utcnow_naive
from lesson_ledger.db import Base


ACADEMIC_UNIT_MINUTES = 40


class SessionStatus(str, Enum):
    SCHEDULED = 'scheduled'
    COMPLETED = 'completed'
    CANCELLED = 'cancelled'
    FREE = 'free'
    RESCHEDULED = 'rescheduled'


EXCLUDED_SESSION_STATUSES = frozenset({
    SessionStatus.CANCELLED.value,
    SessionStatus.FREE.value,
    SessionStatus.RESCHEDULED.value,
})
KNOWN_SESSION_STATUSES = frozenset(status.value for status in SessionStatus)


class PaymentStatus(str, Enum):
    COMPLETED = 'completed'
    PENDING = 'pending'
    REFUNDED = 'refunded'
    FAILED = 'failed'


class Student(Base):
    __tablename__ = 'students'

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    name: Mapped[str] = mapped_column(String(160))
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow_naive)


class IndividualLesson(Base):
    __tablename__ = 'individual_lessons'

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    student_id: Mapped[int | None] = mapped_column(ForeignKey('students.id'), nullable=True, index=True)
    student_name: Mapped[str] = mapped_column(String(160), default='')
    subject: Mapped[str] = mapped_column(String(120), default='')
    duration: Mapped[int | None] = mapped_column(Integer, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow_naive)

    sessions: Mapped[list['LessonSession']] = relationship('LessonSession', back_populates='lesson')
    payments: Mapped[list['Payment']] = relationship('Payment', back_populates='lesson')


class LessonSession(Base):
    __tablename__ = 'individual_lesson_sessions'
    __table_args__ = (
        Index('ix_individual_lesson_sessions_lesson_date', 'individual_lesson_id', 'lesson_date'),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    individual_lesson_id: Mapped[int] = mapped_column(ForeignKey('individual_lessons.id'), index=True, active_history=True)
    lesson_date: Mapped[date] = mapped_column(Date)
    status: Mapped[str] = mapped_column(String(20), default=SessionStatus.SCHEDULED.value)  # scheduled|completed|cancelled|free|rescheduled
    duration: Mapped[int | None] = mapped_column(Integer, nullable=True)
    payment_id: Mapped[int | None] = mapped_column(ForeignKey('payments.id'), nullable=True, index=True)
    paid_minutes: Mapped[int | None] = mapped_column(Integer, nullable=True, default=0)
    payment_coefficient: Mapped[float] = mapped_column(Float, default=1.0)
    is_additional: Mapped[bool] = mapped_column(Boolean, default=False)
    notes: Mapped[str] = mapped_column(Text, default='')
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow_naive)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow_naive, onupdate=utcnow_naive)

    lesson: Mapped['IndividualLesson'] = relationship('IndividualLesson', back_populates='sessions')
    payment: Mapped['Payment | None'] = relationship('Payment')


class Payment(Base):
    __tablename__ = 'payments'
    __table_args__ = (
        Index('ix_payments_lesson_created', 'individual_lesson_id', 'created_at'),
        Index('ix_payments_group_student', 'group_id', 'student_id'),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    individual_lesson_id: Mapped[int | None] = mapped_column(ForeignKey('individual_lessons.id'), nullable=True, active_history=True)
    group_id: Mapped[int | None] = mapped_column(ForeignKey('learning_groups.id'), nullable=True)
    student_id: Mapped[int | None] = mapped_column(ForeignKey('students.id'), nullable=True)
    lessons_count: Mapped[int] = mapped_column(Integer, default=0)
    amount: Mapped[float] = mapped_column(Float, default=0)
    payment_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    status: Mapped[str] = mapped_column(String(20), default=PaymentStatus.COMPLETED.value, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow_naive)

    lesson: Mapped['IndividualLesson | None'] = relationship('IndividualLesson', back_populates='payments')


class CoursePrice(Base):
    __tablename__ = 'course_prices'
    __table_args__ = (
        UniqueConstraint('course_name', name='uq_course_prices_course_name'),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    course_name: Mapped[str] = mapped_column(String(120), index=True)
    price_per_40_min: Mapped[float] = mapped_column(Float)
    price_per_academic_hour: Mapped[float] = mapped_column(Float, default=0)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow_naive)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow_naive, onupdate=utcnow_naive)


class LearningGroup(Base):
    __tablename__ = 'learning_groups'

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    name: Mapped[str] = mapped_column(String(160))
    subject: Mapped[str] = mapped_column(String(120), default='')
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)

    sessions: Mapped[list['GroupSession']] = relationship('GroupSession', back_populates='group')
    student_links: Mapped[list['GroupStudent']] = relationship('GroupStudent', back_populates='group')


class GroupStudent(Base):
    __tablename__ = 'group_students'
    __table_args__ = (
        UniqueConstraint('group_id', 'student_id', name='uq_group_students_group_student'),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    group_id: Mapped[int] = mapped_column(ForeignKey('learning_groups.id'), index=True)
    student_id: Mapped[int] = mapped_column(ForeignKey('students.id'), index=True)
    enrollment_date: Mapped[date | None] = mapped_column(Date, nullable=True)

    group: Mapped['LearningGroup'] = relationship('LearningGroup', back_populates='student_links')


class GroupSession(Base):
    __tablename__ = 'lesson_sessions'
    __table_args__ = (
        Index('ix_lesson_sessions_group_date', 'group_id', 'lesson_date'),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    group_id: Mapped[int] = mapped_column(ForeignKey('learning_groups.id'), index=True)
    lesson_date: Mapped[date] = mapped_column(Date)
    lesson_number: Mapped[int | None] = mapped_column(Integer, nullable=True)
    status: Mapped[str] = mapped_column(String(20), default=SessionStatus.SCHEDULED.value)
    duration: Mapped[int | None] = mapped_column(Integer, nullable=True)
    start_time: Mapped[time | None] = mapped_column(Time, nullable=True)
    end_time: Mapped[time | None] = mapped_column(Time, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow_naive)

    group: Mapped['LearningGroup'] = relationship('LearningGroup', back_populates='sessions')
