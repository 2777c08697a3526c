from __future__ import annotations

from dataclasses import asdict, dataclass
from datetime import date
from typing import Sequence

from lesson_ledger.models import ACADEMIC_UNIT_MINUTES, SessionStatus
from lesson_ledger.services.session_ledger import PaymentRecord, ReconciledSession


USED = 'used'
FUTURE = 'future'
EXCLUDED = 'excluded'


@dataclass(frozen=True)
class PriceRecord:
    course_name: str
    price_per_40_min: float

    @property
    def price_per_minute(self) -> float:
        return self.price_per_40_min / ACADEMIC_UNIT_MINUTES


@dataclass(frozen=True)
class PaymentStats:
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

    def as_dict(self) -> dict:
        return asdict(self)


EMPTY_STATS = PaymentStats(
    paid_minutes=0,
    paid_amount=0,
    used_minutes=0,
    used_amount=0,
    remaining_minutes=0,
    remaining_amount=0,
    debt_minutes=0,
    debt_amount=0,
    total_course_minutes=0,
    unpaid_minutes=0,
    unpaid_amount=0,
    price_per_minute=0,
    sessions_used=0,
    sessions_total=0,
)


def classify_session(session: ReconciledSession, today: date) -> str:
    if session.is_excluded:
        return EXCLUDED
    if session.lesson_date < today or session.status == SessionStatus.COMPLETED.value:
        return USED
    return FUTURE


def price_per_minute(*, price: PriceRecord | None, paid_amount: float, paid_minutes: float) -> float:
    if price is not None:
        return price.price_per_minute
    return paid_amount / max(paid_minutes, 1)


def derive_payment_stats(
    sessions: Sequence[ReconciledSession],
    payments: Sequence[PaymentRecord],
    *,
    today: date,
    price: PriceRecord | None = None,
) -> PaymentStats:
    """Paid, used, remaining and debt totals for one lesson.

    ``used`` covers sessions dated before ``today`` plus completed ones,
    weighted by each session's payment coefficient. Cancelled, free and
    rescheduled sessions count nowhere. Amounts are minutes priced at the
    course rate, or at the lesson's own average rate when the course has
    no price record. A lesson without sessions has nothing to derive and
    gets all-zero stats.
    """
    if not sessions:
        return EMPTY_STATS

    paid_minutes = sum(payment.minutes for payment in payments)
    paid_amount = sum(float(payment.amount or 0) for payment in payments)

    used_minutes = 0.0
    total_course_minutes = 0.0
    sessions_used = 0
    sessions_total = 0
    for session in sessions:
        bucket = classify_session(session, today)
        if bucket == EXCLUDED:
            continue
        weighted = session.weighted_duration
        total_course_minutes += weighted
        sessions_total += 1
        if bucket == USED:
            used_minutes += weighted
            sessions_used += 1

    rate = price_per_minute(price=price, paid_amount=paid_amount, paid_minutes=paid_minutes)
    used_amount = used_minutes * rate
    unpaid_minutes = max(0.0, total_course_minutes - paid_minutes)

    return PaymentStats(
        paid_minutes=_round(paid_minutes),
        paid_amount=_round(paid_amount),
        used_minutes=_round(used_minutes),
        used_amount=_round(used_amount),
        remaining_minutes=_round(max(0.0, paid_minutes - used_minutes)),
        remaining_amount=_round(max(0.0, paid_amount - used_amount)),
        debt_minutes=_round(max(0.0, used_minutes - paid_minutes)),
        debt_amount=_round(max(0.0, used_amount - paid_amount)),
        total_course_minutes=_round(total_course_minutes),
        unpaid_minutes=_round(unpaid_minutes),
        unpaid_amount=_round(unpaid_minutes * rate),
        price_per_minute=_round(rate, digits=4),
        sessions_used=sessions_used,
        sessions_total=sessions_total,
    )


def _round(value: float, *, digits: int = 2) -> float:
    return round(float(value), digits)
