"""Allocation of paid minutes across the sessions of an individual lesson.

Payments buy academic units of 40 minutes. Sessions linked to a payment
keep the minutes already recorded on them; every other paid minute is
"floating" and goes to the earliest sessions that still need minutes.

Everything here is pure: inputs are frozen records and each call builds
new ``ReconciledSession`` objects, so two runs over the same input give
equal output.
"""
from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from datetime import date, datetime
from typing import Iterable, Sequence

from lesson_ledger.models import ACADEMIC_UNIT_MINUTES, EXCLUDED_SESSION_STATUSES, KNOWN_SESSION_STATUSES


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SessionRecord:
    id: int
    lesson_date: date
    status: str
    duration: int | None = None
    payment_id: int | None = None
    paid_minutes: int | None = None
    payment_coefficient: float | None = 1.0
    is_additional: bool = False
    notes: str = ''
    created_at: datetime | None = None


@dataclass(frozen=True)
class PaymentRecord:
    id: int
    lessons_count: int
    amount: float = 0.0
    payment_date: date | None = None
    created_at: datetime | None = None

    @property
    def minutes(self) -> int:
        return payment_minutes(self.lessons_count)


@dataclass(frozen=True)
class ReconciledSession:
    id: int
    lesson_date: date
    status: str
    duration: int
    paid_minutes: int
    payment_coefficient: float
    payment_id: int | None = None
    is_additional: bool = False
    notes: str = ''
    created_at: datetime | None = None
    payment_date: date | None = None
    payment_amount: float | None = None
    payment_lessons_count: int | None = None

    @property
    def is_excluded(self) -> bool:
        return is_excluded_status(self.status)

    @property
    def unpaid_minutes(self) -> int:
        if self.is_excluded:
            return 0
        return self.duration - self.paid_minutes

    @property
    def weighted_duration(self) -> float:
        return self.duration * self.payment_coefficient

    def as_dict(self) -> dict:
        payload = asdict(self)
        payload['lesson_date'] = self.lesson_date.isoformat()
        payload['created_at'] = self.created_at.isoformat() if self.created_at else None
        payload['payment_date'] = self.payment_date.isoformat() if self.payment_date else None
        payload['unpaid_minutes'] = self.unpaid_minutes
        return payload


def is_excluded_status(status: str | None) -> bool:
    return (status or '') in EXCLUDED_SESSION_STATUSES


def payment_minutes(lessons_count: int | None) -> int:
    units = int(lessons_count or 0)
    if units < 0:
        raise ValueError(f'lessons_count must not be negative, got {units}')
    return units * ACADEMIC_UNIT_MINUTES


def resolve_duration(session: SessionRecord, default_duration: int) -> int:
    duration = session.duration if session.duration is not None else default_duration
    if duration <= 0:
        raise ValueError(f'session {session.id} has non-positive duration {duration}')
    return int(duration)


def _coefficient(session: SessionRecord) -> float:
    if session.payment_coefficient is None:
        return 1.0
    return float(session.payment_coefficient)


def _explicit_minutes(session: SessionRecord, duration: int) -> int:
    if session.payment_id is None:
        return 0
    return max(0, min(duration, int(session.paid_minutes or 0)))


def processing_order(sessions: Sequence[SessionRecord]) -> list[int]:
    """Indices of ``sessions`` by lesson date, then creation time, then input position."""
    return sorted(
        range(len(sessions)),
        key=lambda idx: (sessions[idx].lesson_date, sessions[idx].created_at or datetime.min),
    )


def _warn_unknown_statuses(sessions: Iterable[SessionRecord]) -> None:
    unknown = {session.status for session in sessions if session.status not in KNOWN_SESSION_STATUSES}
    for status in sorted(unknown, key=str):
        logger.warning('unknown_session_status status=%s treated_as=billable', status)


def allocate(
    sessions: Sequence[SessionRecord],
    payments: Sequence[PaymentRecord],
    *,
    default_duration: int,
) -> tuple[list[ReconciledSession], int]:
    """Run both allocation passes; returns the annotated sessions and the unallocated floating minutes."""
    _warn_unknown_statuses(sessions)
    payments_by_id = {payment.id: payment for payment in payments}
    durations = [resolve_duration(session, default_duration) for session in sessions]
    explicit = [_explicit_minutes(session, duration) for session, duration in zip(sessions, durations)]

    floating = sum(payment.minutes for payment in payments)
    for reserved in explicit:
        floating = max(0, floating - reserved)

    result: list[ReconciledSession] = []
    for idx in processing_order(sessions):
        session = sessions[idx]
        duration = durations[idx]
        paid = explicit[idx]
        if not is_excluded_status(session.status):
            need = max(0, duration - paid)
            if need > 0 and floating > 0:
                allocated = min(floating, need)
                paid += allocated
                floating -= allocated

        linked = payments_by_id.get(session.payment_id) if session.payment_id is not None else None
        result.append(
            ReconciledSession(
                id=session.id,
                lesson_date=session.lesson_date,
                status=session.status,
                duration=duration,
                paid_minutes=paid,
                payment_coefficient=_coefficient(session),
                payment_id=session.payment_id,
                is_additional=bool(session.is_additional),
                notes=session.notes or '',
                created_at=session.created_at,
                payment_date=linked.payment_date if linked else None,
                payment_amount=linked.amount if linked else None,
                payment_lessons_count=linked.lessons_count if linked else None,
            )
        )
    return result, floating


def reconcile_sessions(
    sessions: Sequence[SessionRecord],
    payments: Sequence[PaymentRecord],
    *,
    default_duration: int,
) -> list[ReconciledSession]:
    result, _ = allocate(sessions, payments, default_duration=default_duration)
    return result
