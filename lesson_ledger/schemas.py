from datetime import date, datetime

from pydantic import BaseModel


class LedgerSessionOut(BaseModel):
    id: int
    lesson_date: date
    status: str
    duration: int
    paid_minutes: int
    unpaid_minutes: int
    payment_coefficient: float
    payment_id: int | None = None
    is_additional: bool = False
    notes: str = ''
    created_at: datetime | None = None
    payment_date: date | None = None
    payment_amount: float | None = None
    payment_lessons_count: int | None = None


class LessonLedgerOut(BaseModel):
    lesson_id: int
    default_duration: int
    unallocated_minutes: int
    sessions: list[LedgerSessionOut]


class PaymentStatsOut(BaseModel):
    lesson_id: int
    paid_minutes: float
    paid_amount: float
    used_minutes: float
    used_amount: float
    remaining_minutes: float
    remaining_amount: float
    debt_minutes: float
    debt_amount: float
    total_course_minutes: float
    unpaid_minutes: float
    unpaid_amount: float
    price_per_minute: float
    sessions_used: int
    sessions_total: int


class GroupLedgerSessionOut(BaseModel):
    id: int
    lesson_date: date
    status: str
    lesson_number: int | None = None
    duration: int
    paid_minutes: int
    lesson_time: str | None = None


class GroupLedgerOut(BaseModel):
    group_id: int
    student_id: int
    enrollment_date: date | None = None
    paid_academic_hours: int
    sessions: list[GroupLedgerSessionOut]
