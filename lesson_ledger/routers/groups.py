import logging

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from lesson_ledger.db import get_db
from lesson_ledger.route_logging import EndpointNameRoute
from lesson_ledger.schemas import GroupLedgerOut
from lesson_ledger.services.group_ledger_service import get_group_ledger


logger = logging.getLogger(__name__)
router = APIRouter(prefix='/groups', tags=['Groups'], route_class=EndpointNameRoute)


@router.get('/{group_id}/students/{student_id}/sessions', response_model=GroupLedgerOut)
def group_student_sessions(group_id: int, student_id: int, db: Session = Depends(get_db)):
    try:
        result = get_group_ledger(db, group_id=group_id, student_id=student_id)
    except SQLAlchemyError as exc:
        logger.exception('group_ledger_fetch_failed group_id=%s student_id=%s', group_id, student_id)
        raise HTTPException(status_code=503, detail='ledger_unavailable') from exc
    if result is None:
        raise HTTPException(status_code=404, detail='Student is not enrolled in this group')
    return result
