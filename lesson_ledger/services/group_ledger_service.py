from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from datetime import date, datetime, time
from typing import Sequence

from sqlalchemy import func
from sqlalchemy.orm import Session

from lesson_ledger.config import settings
from lesson_ledger.metrics import timed_service
from lesson_ledger.models import ACADEMIC_UNIT_MINUTES, GroupSession, GroupStudent, LearningGroup, Payment, PaymentStatus, SessionStatus


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class GroupSessionRecord:
    id: int
    lesson_date: date
    status: str
    lesson_number: int | None = None
    duration: int | None = None
    start_time: time | None = None
    end_time: time | None = None


@dataclass(frozen=True)
class GroupLedgerRow:
    id: int
    lesson_date: date
    status: str
    lesson_number: int | None
    duration: int
    paid_minutes: int
    lesson_time: str | None

    def as_dict(self) -> dict:
        payload = asdict(self)
        payload['lesson_date'] = self.lesson_date.isoformat()
        return payload


def session_duration(record: GroupSessionRecord, default_duration: int) -> int:
    if record.duration:
        return int(record.duration)
    if record.start_time and record.end_time:
        start = datetime.combine(date.min, record.start_time)
        end = datetime.combine(date.min, record.end_time)
        minutes = int((end - start).total_seconds() // 60)
        if minutes > 0:
            return minutes
    return default_duration


def _lesson_time(record: GroupSessionRecord) -> str | None:
    if record.start_time and record.end_time:
        return f"{record.start_time.strftime('%H:%M')}-{record.end_time.strftime('%H:%M')}"
    return None


def allocate_group_sessions(
    sessions: Sequence[GroupSessionRecord],
    *,
    paid_academic_hours: int,
    enrollment_date: date | None,
    default_duration: int,
) -> list[GroupLedgerRow]:
    """Spread a student's paid group hours over sessions from their enrollment date on.

    Sessions before enrollment are reported as cancelled for that student
    and take nothing from the pool.
    """
    remaining = max(0, int(paid_academic_hours)) * ACADEMIC_UNIT_MINUTES
    ordered = sorted(sessions, key=lambda record: record.lesson_date)
    rows: list[GroupLedgerRow] = []
    for record in ordered:
        duration = session_duration(record, default_duration)
        before_enrollment = enrollment_date is not None and record.lesson_date < enrollment_date
        status = SessionStatus.CANCELLED.value if before_enrollment else (record.status or SessionStatus.SCHEDULED.value)
        paid = 0
        if not before_enrollment and remaining > 0:
            paid = min(duration, remaining)
            remaining -= paid
        rows.append(
            GroupLedgerRow(
                id=record.id,
                lesson_date=record.lesson_date,
                status=status,
                lesson_number=record.lesson_number,
                duration=duration,
                paid_minutes=paid,
                lesson_time=_lesson_time(record),
            )
        )
    return rows


@timed_service('group_ledger')
def get_group_ledger(db: Session, *, group_id: int, student_id: int) -> dict | None:
    link = (
        db.query(GroupStudent)
        .join(LearningGroup, LearningGroup.id == GroupStudent.group_id)
        .filter(GroupStudent.group_id == group_id, GroupStudent.student_id == student_id)
        .first()
    )
    if link is None:
        return None

    paid_hours = (
        db.query(func.coalesce(func.sum(Payment.lessons_count), 0))
        .filter(
            Payment.group_id == group_id,
            Payment.student_id == student_id,
            Payment.status == PaymentStatus.COMPLETED.value,
        )
        .scalar()
    )
    rows = (
        db.query(GroupSession)
        .filter(GroupSession.group_id == group_id)
        .order_by(GroupSession.lesson_date.asc(), GroupSession.id.asc())
        .all()
    )
    records = [
        GroupSessionRecord(
            id=row.id,
            lesson_date=row.lesson_date,
            status=row.status,
            lesson_number=row.lesson_number,
            duration=row.duration,
            start_time=row.start_time,
            end_time=row.end_time,
        )
        for row in rows
    ]
    ledger = allocate_group_sessions(
        records,
        paid_academic_hours=int(paid_hours or 0),
        enrollment_date=link.enrollment_date,
        default_duration=settings.default_session_duration,
    )
    logger.info(
        'group_ledger_built group_id=%s student_id=%s sessions=%s paid_academic_hours=%s',
        group_id,
        student_id,
        len(ledger),
        paid_hours,
    )
    return {
        'group_id': group_id,
        'student_id': student_id,
        'enrollment_date': link.enrollment_date.isoformat() if link.enrollment_date else None,
        'paid_academic_hours': int(paid_hours or 0),
        'sessions': [row.as_dict() for row in ledger],
    }
