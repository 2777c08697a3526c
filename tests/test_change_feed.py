import unittest

from lesson_ledger.services.change_feed import ChangeFeed, LedgerChange


def _change(lesson_id, table='payments', operation='insert', row_id=1):
    return LedgerChange(table=table, operation=operation, lesson_id=lesson_id, row_id=row_id)


class ChangeFeedTests(unittest.TestCase):
    def setUp(self):
        self.feed = ChangeFeed()

    def test_unscoped_subscriber_sees_every_lesson(self):
        received = []
        self.feed.subscribe(received.append)
        self.feed.publish(_change(1))
        self.feed.publish(_change(2))
        self.assertEqual([change.lesson_id for change in received], [1, 2])

    def test_scoped_subscriber_only_sees_its_lesson(self):
        received = []
        self.feed.subscribe(received.append, lesson_id=2)
        self.feed.publish(_change(1))
        self.feed.publish(_change(2, table='individual_lesson_sessions', operation='update'))
        self.assertEqual(received, [_change(2, table='individual_lesson_sessions', operation='update')])

    def test_close_detaches_subscriber(self):
        received = []
        subscription = self.feed.subscribe(received.append)
        self.assertTrue(subscription.active)
        self.assertEqual(self.feed.subscriber_count(), 1)
        subscription.close()
        subscription.close()
        self.assertFalse(subscription.active)
        self.assertEqual(self.feed.subscriber_count(), 0)
        self.feed.publish(_change(1))
        self.assertEqual(received, [])

    def test_subscription_as_context_manager(self):
        received = []
        with self.feed.subscribe(received.append) as subscription:
            self.feed.publish(_change(1))
        self.assertFalse(subscription.active)
        self.feed.publish(_change(1, row_id=2))
        self.assertEqual(len(received), 1)

    def test_failing_subscriber_is_logged_and_others_still_run(self):
        received = []

        def broken(change):
            raise RuntimeError('boom')

        self.feed.subscribe(broken)
        self.feed.subscribe(received.append)
        with self.assertLogs('lesson_ledger.services.change_feed', level='ERROR') as captured:
            self.feed.publish(_change(5))
        self.assertEqual([change.lesson_id for change in received], [5])
        self.assertIn('change_subscriber_failed', captured.output[0])


if __name__ == '__main__':
    unittest.main()
