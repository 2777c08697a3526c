import random
import unittest
from datetime import date, datetime, timedelta

from lesson_ledger.services.session_ledger import (
    PaymentRecord,
    SessionRecord,
    allocate,
    is_excluded_status,
    reconcile_sessions,
)


BASE_DAY = date(2026, 3, 2)


def _session(session_id, offset_days, status='scheduled', **kwargs):
    return SessionRecord(id=session_id, lesson_date=BASE_DAY + timedelta(days=offset_days), status=status, **kwargs)


def _payment(payment_id, lessons_count, amount=0.0, **kwargs):
    return PaymentRecord(id=payment_id, lessons_count=lessons_count, amount=amount, **kwargs)


def _paid(rows):
    return {row.id: row.paid_minutes for row in rows}


class SessionLedgerTests(unittest.TestCase):
    def test_floating_minutes_fill_earliest_sessions_first(self):
        rows = reconcile_sessions(
            [_session(2, 7), _session(1, 0)],
            [_payment(10, 2, 1600)],
            default_duration=60,
        )
        self.assertEqual([row.id for row in rows], [1, 2])
        self.assertEqual(_paid(rows), {1: 60, 2: 20})
        self.assertEqual([row.duration for row in rows], [60, 60])

    def test_session_duration_overrides_lesson_default(self):
        rows = reconcile_sessions(
            [_session(1, 0, duration=90), _session(2, 7)],
            [_payment(10, 3)],
            default_duration=60,
        )
        self.assertEqual(_paid(rows), {1: 90, 2: 30})

    def test_explicit_link_reserves_minutes_before_floating_pass(self):
        rows = reconcile_sessions(
            [
                _session(1, 0, payment_id=10, paid_minutes=60),
                _session(2, 7),
                _session(3, 14),
            ],
            [_payment(10, 3, 2400, payment_date=date(2026, 2, 28))],
            default_duration=60,
        )
        self.assertEqual(_paid(rows), {1: 60, 2: 60, 3: 0})
        linked = rows[0]
        self.assertEqual(linked.payment_amount, 2400)
        self.assertEqual(linked.payment_lessons_count, 3)
        self.assertEqual(linked.payment_date, date(2026, 2, 28))
        self.assertIsNone(rows[1].payment_amount)

    def test_explicit_minutes_are_clamped_to_duration(self):
        rows = reconcile_sessions(
            [_session(1, 0, payment_id=10, paid_minutes=90), _session(2, 7)],
            [_payment(10, 2)],
            default_duration=60,
        )
        self.assertEqual(_paid(rows), {1: 60, 2: 20})

    def test_partially_linked_session_is_topped_up_from_floating_pool(self):
        rows = reconcile_sessions(
            [_session(1, 0, payment_id=10, paid_minutes=20), _session(2, 7)],
            [_payment(10, 2)],
            default_duration=60,
        )
        self.assertEqual(_paid(rows), {1: 60, 2: 20})

    def test_reservations_never_drive_pool_negative(self):
        rows, unallocated = allocate(
            [
                _session(1, 0, payment_id=10, paid_minutes=60),
                _session(2, 7, payment_id=10, paid_minutes=60),
                _session(3, 14),
            ],
            [_payment(10, 1)],
            default_duration=60,
        )
        self.assertEqual(_paid(rows), {1: 60, 2: 60, 3: 0})
        self.assertEqual(unallocated, 0)

    def test_stored_minutes_without_payment_link_are_ignored(self):
        rows = reconcile_sessions(
            [_session(1, 0, paid_minutes=60), _session(2, 7)],
            [_payment(10, 1)],
            default_duration=60,
        )
        self.assertEqual(_paid(rows), {1: 40, 2: 0})

    def test_excluded_sessions_receive_no_floating_minutes(self):
        rows = reconcile_sessions(
            [
                _session(1, 0, 'cancelled'),
                _session(2, 1, 'free'),
                _session(3, 2, 'rescheduled'),
                _session(4, 3, 'scheduled'),
            ],
            [_payment(10, 1)],
            default_duration=60,
        )
        self.assertEqual(_paid(rows), {1: 0, 2: 0, 3: 0, 4: 40})
        self.assertEqual([row.unpaid_minutes for row in rows], [0, 0, 0, 20])

    def test_excluded_linked_session_keeps_reserved_minutes(self):
        rows = reconcile_sessions(
            [_session(1, 0, 'cancelled', payment_id=10, paid_minutes=30), _session(2, 7)],
            [_payment(10, 2)],
            default_duration=60,
        )
        self.assertEqual(_paid(rows), {1: 30, 2: 50})

    def test_unknown_status_is_billable_and_logged(self):
        with self.assertLogs('lesson_ledger.services.session_ledger', level='WARNING') as captured:
            rows = reconcile_sessions(
                [_session(1, 0, 'absent'), _session(2, 7)],
                [_payment(10, 1)],
                default_duration=60,
            )
        self.assertEqual(_paid(rows), {1: 40, 2: 0})
        self.assertIn('status=absent', captured.output[0])
        self.assertFalse(is_excluded_status('absent'))

    def test_same_day_sessions_ordered_by_creation_time(self):
        later = _session(1, 0, created_at=datetime(2026, 2, 1, 10, 0))
        earlier = _session(2, 0, created_at=datetime(2026, 2, 1, 9, 0))
        rows = reconcile_sessions([later, earlier], [_payment(10, 1)], default_duration=60)
        self.assertEqual([row.id for row in rows], [2, 1])
        self.assertEqual(_paid(rows), {2: 40, 1: 0})

    def test_same_day_sessions_without_creation_time_keep_input_order(self):
        rows = reconcile_sessions([_session(5, 0), _session(3, 0)], [_payment(10, 1)], default_duration=60)
        self.assertEqual([row.id for row in rows], [5, 3])
        self.assertEqual(_paid(rows), {5: 40, 3: 0})

    def test_unallocated_minutes_reported(self):
        _, unallocated = allocate([_session(1, 0)], [_payment(10, 5)], default_duration=60)
        self.assertEqual(unallocated, 140)

    def test_no_payments_leaves_everything_unpaid(self):
        rows = reconcile_sessions([_session(1, 0), _session(2, 7)], [], default_duration=45)
        self.assertEqual(_paid(rows), {1: 0, 2: 0})
        self.assertEqual([row.unpaid_minutes for row in rows], [45, 45])

    def test_rejects_negative_lessons_count(self):
        with self.assertRaises(ValueError):
            reconcile_sessions([_session(1, 0)], [_payment(10, -1)], default_duration=60)

    def test_rejects_non_positive_duration(self):
        with self.assertRaises(ValueError):
            reconcile_sessions([_session(1, 0, duration=0)], [], default_duration=60)

    def test_reconcile_is_repeatable_and_leaves_input_untouched(self):
        sessions = [_session(3, 14), _session(1, 0, payment_id=10, paid_minutes=40), _session(2, 7)]
        payments = [_payment(10, 3, 2400)]
        snapshot = list(sessions)
        first = reconcile_sessions(sessions, payments, default_duration=60)
        second = reconcile_sessions(sessions, payments, default_duration=60)
        self.assertEqual(first, second)
        self.assertEqual(sessions, snapshot)
        self.assertEqual(sessions[1].paid_minutes, 40)

    def test_as_dict_serialises_dates(self):
        row = reconcile_sessions([_session(1, 0)], [_payment(10, 1)], default_duration=60)[0]
        payload = row.as_dict()
        self.assertEqual(payload['lesson_date'], '2026-03-02')
        self.assertEqual(payload['paid_minutes'], 40)
        self.assertEqual(payload['unpaid_minutes'], 20)
        self.assertIsNone(payload['payment_date'])


class AllocationPropertyTests(unittest.TestCase):
    STATUSES = ('scheduled', 'completed', 'cancelled', 'free', 'rescheduled')

    def _random_case(self, rng):
        payment_ids = list(range(100, 100 + rng.randint(0, 3)))
        payments = [_payment(pid, rng.randint(0, 6)) for pid in payment_ids]
        sessions = []
        for idx in range(rng.randint(0, 8)):
            linked = payment_ids and rng.random() < 0.3
            sessions.append(
                _session(
                    idx + 1,
                    rng.randint(0, 30),
                    rng.choice(self.STATUSES),
                    duration=rng.choice((None, 30, 45, 60, 90)),
                    payment_id=rng.choice(payment_ids) if linked else None,
                    paid_minutes=rng.choice((None, 0, 20, 40, 60, 120)),
                )
            )
        return sessions, payments

    def test_invariants_hold_for_generated_ledgers(self):
        rng = random.Random(20261019)
        for _ in range(300):
            sessions, payments = self._random_case(rng)
            rows, unallocated = allocate(sessions, payments, default_duration=60)
            by_id = {session.id: session for session in sessions}

            total_paid = sum(payment.lessons_count * 40 for payment in payments)
            reserved = {}
            for row in rows:
                source = by_id[row.id]
                reserved[row.id] = min(row.duration, source.paid_minutes or 0) if source.payment_id else 0
            floating_used = sum(row.paid_minutes - reserved[row.id] for row in rows)

            for row in rows:
                self.assertGreaterEqual(row.paid_minutes, 0)
                self.assertLessEqual(row.paid_minutes, row.duration)
                if row.is_excluded:
                    self.assertEqual(row.paid_minutes, reserved[row.id])
            self.assertGreaterEqual(unallocated, 0)
            self.assertLessEqual(floating_used, max(0, total_paid - sum(reserved.values())))

            billable = [row for row in rows if not row.is_excluded]
            for earlier, later in zip(billable, billable[1:]):
                if later.lesson_date > earlier.lesson_date and later.paid_minutes > reserved[later.id]:
                    self.assertEqual(earlier.paid_minutes, earlier.duration)


if __name__ == '__main__':
    unittest.main()
