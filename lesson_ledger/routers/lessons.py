import logging

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from lesson_ledger.db import get_db
from lesson_ledger.route_logging import EndpointNameRoute
from lesson_ledger.schemas import LessonLedgerOut, PaymentStatsOut
from lesson_ledger.services.ledger_service import get_lesson_ledger, get_lesson_payment_stats, reload_lesson


logger = logging.getLogger(__name__)
router = APIRouter(prefix='/lessons', tags=['Lessons'], route_class=EndpointNameRoute)


def _unavailable(lesson_id: int) -> HTTPException:
    logger.exception('ledger_fetch_failed lesson_id=%s', lesson_id)
    return HTTPException(status_code=503, detail='ledger_unavailable')


@router.get('/{lesson_id}/sessions', response_model=LessonLedgerOut)
def lesson_sessions(lesson_id: int, bypass_cache: bool = False, db: Session = Depends(get_db)):
    try:
        result = get_lesson_ledger(db, lesson_id, bypass_cache=bypass_cache)
    except SQLAlchemyError as exc:
        raise _unavailable(lesson_id) from exc
    if result is None:
        raise HTTPException(status_code=404, detail='Lesson not found')
    return result


@router.get('/{lesson_id}/payment-stats', response_model=PaymentStatsOut)
def lesson_payment_stats(lesson_id: int, bypass_cache: bool = False, db: Session = Depends(get_db)):
    try:
        result = get_lesson_payment_stats(db, lesson_id, bypass_cache=bypass_cache)
    except SQLAlchemyError as exc:
        raise _unavailable(lesson_id) from exc
    if result is None:
        raise HTTPException(status_code=404, detail='Lesson not found')
    return result


@router.post('/{lesson_id}/reload', response_model=PaymentStatsOut)
def reload_lesson_ledger(lesson_id: int, db: Session = Depends(get_db)):
    reload_lesson(lesson_id)
    try:
        result = get_lesson_payment_stats(db, lesson_id)
    except SQLAlchemyError as exc:
        raise _unavailable(lesson_id) from exc
    if result is None:
        raise HTTPException(status_code=404, detail='Lesson not found')
    return result
