from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Iterator

from sqlalchemy.orm import Session

from lesson_ledger.cache import cache, cache_key
from lesson_ledger.config import settings
from lesson_ledger.core.time_provider import TimeProvider, default_time_provider
from lesson_ledger.metrics import timed_service
from lesson_ledger.models import CoursePrice, IndividualLesson, LessonSession, Payment, PaymentStatus
from lesson_ledger.services import change_feed
from lesson_ledger.services.payment_stats import PaymentStats, PriceRecord, derive_payment_stats
from lesson_ledger.services.session_ledger import PaymentRecord, ReconciledSession, SessionRecord, allocate


logger = logging.getLogger(__name__)

LEDGER_CACHE_PREFIX = 'lesson_ledger'
STATS_CACHE_PREFIX = 'lesson_payment_stats'


@dataclass(frozen=True)
class LessonRecords:
    lesson_id: int
    default_duration: int
    subject: str
    sessions: tuple[SessionRecord, ...]
    payments: tuple[PaymentRecord, ...]
    price: PriceRecord | None = None


def _session_record(row: LessonSession) -> SessionRecord:
    return SessionRecord(
        id=row.id,
        lesson_date=row.lesson_date,
        status=row.status,
        duration=row.duration,
        payment_id=row.payment_id,
        paid_minutes=row.paid_minutes,
        payment_coefficient=row.payment_coefficient,
        is_additional=bool(row.is_additional),
        notes=row.notes or '',
        created_at=row.created_at,
    )


def _payment_record(row: Payment) -> PaymentRecord:
    return PaymentRecord(
        id=row.id,
        lessons_count=int(row.lessons_count or 0),
        amount=float(row.amount or 0),
        payment_date=row.payment_date,
        created_at=row.created_at,
    )


def load_lesson_records(db: Session, lesson_id: int) -> LessonRecords | None:
    """Fetch everything the ledger needs for one lesson, or None if the lesson does not exist.

    Database errors propagate unchanged; the caller never sees a partial set.
    """
    lesson = db.query(IndividualLesson).filter(IndividualLesson.id == lesson_id).first()
    if lesson is None:
        return None

    sessions = (
        db.query(LessonSession)
        .filter(LessonSession.individual_lesson_id == lesson_id)
        .order_by(LessonSession.lesson_date.asc(), LessonSession.created_at.asc(), LessonSession.id.asc())
        .all()
    )
    payments = (
        db.query(Payment)
        .filter(
            Payment.individual_lesson_id == lesson_id,
            Payment.status == PaymentStatus.COMPLETED.value,
        )
        .order_by(Payment.created_at.asc(), Payment.id.asc())
        .all()
    )
    price = None
    if lesson.subject:
        price_row = db.query(CoursePrice).filter(CoursePrice.course_name == lesson.subject).first()
        if price_row is not None:
            price = PriceRecord(course_name=price_row.course_name, price_per_40_min=float(price_row.price_per_40_min))

    return LessonRecords(
        lesson_id=lesson.id,
        default_duration=int(lesson.duration or settings.default_session_duration),
        subject=lesson.subject or '',
        sessions=tuple(_session_record(row) for row in sessions),
        payments=tuple(_payment_record(row) for row in payments),
        price=price,
    )


def build_ledger(records: LessonRecords) -> tuple[list[ReconciledSession], int]:
    return allocate(records.sessions, records.payments, default_duration=records.default_duration)


def build_stats(records: LessonRecords, ledger: list[ReconciledSession], *, time_provider: TimeProvider) -> PaymentStats:
    return derive_payment_stats(ledger, records.payments, today=time_provider.today(), price=records.price)


def _ledger_key(lesson_id: int) -> str:
    return cache_key(LEDGER_CACHE_PREFIX, lesson_id)


def _stats_key(lesson_id: int, day: str) -> str:
    return cache_key(STATS_CACHE_PREFIX, f'{lesson_id}:{day}')


def _lesson_scope(lesson_id: int) -> str:
    return f'lesson:{lesson_id}'


@timed_service('lesson_ledger')
def get_lesson_ledger(db: Session, lesson_id: int, *, bypass_cache: bool = False) -> dict | None:
    key = _ledger_key(lesson_id)
    if not cache.bypass_cache(bypass_cache):
        cached = cache.get_cached(key)
        if cached is not None:
            return cached

    generation = cache.generation(_lesson_scope(lesson_id))
    records = load_lesson_records(db, lesson_id)
    if records is None:
        return None
    ledger, unallocated = build_ledger(records)
    payload = {
        'lesson_id': records.lesson_id,
        'default_duration': records.default_duration,
        'unallocated_minutes': unallocated,
        'sessions': [row.as_dict() for row in ledger],
    }
    logger.info(
        'ledger_reconciled lesson_id=%s sessions=%s payments=%s unallocated_minutes=%s',
        lesson_id,
        len(records.sessions),
        len(records.payments),
        unallocated,
    )
    cache.set_cached(
        key,
        payload,
        settings.ledger_cache_ttl,
        scope=_lesson_scope(lesson_id),
        generation=generation,
    )
    return payload


@timed_service('lesson_payment_stats')
def get_lesson_payment_stats(
    db: Session,
    lesson_id: int,
    *,
    bypass_cache: bool = False,
    time_provider: TimeProvider = default_time_provider,
) -> dict | None:
    # "used" depends on today's date, so the day is part of the key
    key = _stats_key(lesson_id, time_provider.today().isoformat())
    if not cache.bypass_cache(bypass_cache):
        cached = cache.get_cached(key)
        if cached is not None:
            return cached

    generation = cache.generation(_lesson_scope(lesson_id))
    records = load_lesson_records(db, lesson_id)
    if records is None:
        return None
    ledger, _ = build_ledger(records)
    stats = build_stats(records, ledger, time_provider=time_provider)
    payload = {'lesson_id': records.lesson_id, **stats.as_dict()}
    logger.info(
        'payment_stats_derived lesson_id=%s paid_minutes=%s used_minutes=%s debt_minutes=%s',
        lesson_id,
        stats.paid_minutes,
        stats.used_minutes,
        stats.debt_minutes,
    )
    cache.set_cached(
        key,
        payload,
        settings.ledger_cache_ttl,
        scope=_lesson_scope(lesson_id),
        generation=generation,
    )
    return payload


def reload_lesson(lesson_id: int) -> None:
    # bump first so reads already in flight cannot store what they loaded
    cache.bump_generation(_lesson_scope(lesson_id))
    cache.invalidate(_ledger_key(lesson_id))
    cache.invalidate_prefix(cache_key(STATS_CACHE_PREFIX, f'{lesson_id}:'))


def clear_ledger_cache() -> None:
    cache.bump_all_generations()
    cache.invalidate_prefix(LEDGER_CACHE_PREFIX)
    cache.invalidate_prefix(STATS_CACHE_PREFIX)


def _invalidate_on_change(change: change_feed.LedgerChange) -> None:
    logger.info(
        'ledger_invalidated lesson_id=%s table=%s operation=%s',
        change.lesson_id,
        change.table,
        change.operation,
    )
    reload_lesson(change.lesson_id)


@contextmanager
def cache_invalidation(feed: change_feed.ChangeFeed | None = None) -> Iterator[change_feed.Subscription]:
    """Keep ledger caches in step with committed session/payment changes while the block runs."""
    source = feed or change_feed.feed
    with source.subscribe(_invalidate_on_change) as subscription:
        yield subscription
