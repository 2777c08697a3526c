"""Row-change notifications for the sessions and payments tables.

Inserts, updates and deletes of ``LessonSession`` and ``Payment`` rows
are staged before each flush, collected after it, and published only once
the SQLAlchemy session commits; a rollback drops them. Subscribers receive a
``LedgerChange`` and are expected to treat it as "lesson data changed",
not as a diff.

Bulk ``query.update()`` / ``query.delete()`` statements bypass the ORM
unit of work and are not observed.
"""
from __future__ import annotations

import itertools
import logging
import threading
from dataclasses import dataclass
from typing import Callable

from sqlalchemy import event, inspect
from sqlalchemy.orm import Session

from lesson_ledger.metrics import record_change_event
from lesson_ledger.models import LessonSession, Payment


logger = logging.getLogger(__name__)

_STAGED_KEY = 'lesson_ledger_staged_changes'
_PENDING_KEY = 'lesson_ledger_pending_changes'
_WATCHED = (LessonSession, Payment)


@dataclass(frozen=True)
class LedgerChange:
    table: str
    operation: str
    lesson_id: int
    row_id: int | None = None


ChangeCallback = Callable[[LedgerChange], None]


class Subscription:
    """Handle returned by ``ChangeFeed.subscribe``; closing it detaches the callback."""

    def __init__(self, feed: 'ChangeFeed', token: int, lesson_id: int | None) -> None:
        self._feed = feed
        self._token = token
        self.lesson_id = lesson_id

    @property
    def active(self) -> bool:
        return self._feed._has(self._token)

    def close(self) -> None:
        self._feed._remove(self._token)

    def __enter__(self) -> 'Subscription':
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


class ChangeFeed:
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._tokens = itertools.count(1)
        self._subscribers: dict[int, tuple[int | None, ChangeCallback]] = {}

    def subscribe(self, callback: ChangeCallback, *, lesson_id: int | None = None) -> Subscription:
        """Register ``callback`` for one lesson, or for every lesson when ``lesson_id`` is None."""
        with self._lock:
            token = next(self._tokens)
            self._subscribers[token] = (lesson_id, callback)
        return Subscription(self, token, lesson_id)

    def publish(self, change: LedgerChange) -> None:
        record_change_event(change.table)
        with self._lock:
            targets = [
                callback
                for lesson_id, callback in self._subscribers.values()
                if lesson_id is None or lesson_id == change.lesson_id
            ]
        for callback in targets:
            try:
                callback(change)
            except Exception:
                logger.exception(
                    'change_subscriber_failed table=%s lesson_id=%s operation=%s',
                    change.table,
                    change.lesson_id,
                    change.operation,
                )

    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subscribers)

    def _has(self, token: int) -> bool:
        with self._lock:
            return token in self._subscribers

    def _remove(self, token: int) -> None:
        with self._lock:
            self._subscribers.pop(token, None)


feed = ChangeFeed()


def subscribe(callback: ChangeCallback, *, lesson_id: int | None = None) -> Subscription:
    return feed.subscribe(callback, lesson_id=lesson_id)


def _lesson_ids(obj) -> set[int]:
    history = inspect(obj).attrs.individual_lesson_id.history
    ids = {obj.individual_lesson_id, *history.added, *history.deleted}
    return {int(lesson_id) for lesson_id in ids if lesson_id is not None}


@event.listens_for(Session, 'before_flush')
def _stage_changes(session: Session, flush_context, instances) -> None:
    # lesson ids are read before the flush so deleted rows can still be loaded
    staged = session.info.setdefault(_STAGED_KEY, [])
    for obj in session.new:
        if isinstance(obj, _WATCHED):
            staged.append((obj, 'insert', _lesson_ids(obj)))
    for obj in session.dirty:
        if isinstance(obj, _WATCHED) and session.is_modified(obj, include_collections=False):
            staged.append((obj, 'update', _lesson_ids(obj)))
    for obj in session.deleted:
        if isinstance(obj, _WATCHED):
            staged.append((obj, 'delete', _lesson_ids(obj)))


@event.listens_for(Session, 'after_flush')
def _collect_changes(session: Session, flush_context) -> None:
    staged = session.info.pop(_STAGED_KEY, None)
    if not staged:
        return
    pending = session.info.setdefault(_PENDING_KEY, [])
    for obj, operation, lesson_ids in staged:
        identity = inspect(obj).identity
        row_id = identity[0] if identity else obj.id
        for lesson_id in sorted(lesson_ids):
            pending.append(LedgerChange(table=obj.__tablename__, operation=operation, lesson_id=lesson_id, row_id=row_id))


@event.listens_for(Session, 'after_commit')
def _publish_changes(session: Session) -> None:
    pending = session.info.pop(_PENDING_KEY, None)
    if not pending:
        return
    seen: set[tuple[str, str, int, int | None]] = set()
    for change in pending:
        marker = (change.table, change.operation, change.lesson_id, change.row_id)
        if marker in seen:
            continue
        seen.add(marker)
        logger.debug('ledger_change table=%s operation=%s lesson_id=%s row_id=%s', *marker)
        feed.publish(change)


@event.listens_for(Session, 'after_rollback')
def _discard_changes(session: Session) -> None:
    session.info.pop(_STAGED_KEY, None)
    session.info.pop(_PENDING_KEY, None)
