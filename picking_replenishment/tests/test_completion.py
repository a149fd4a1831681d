"""
Tests for the wave completion reconciler.
"""
import unittest
from datetime import datetime, timedelta

from picking_replenishment.gateway.base import StockItem
from picking_replenishment.models import (
    ReplenishmentTask, ReplenishmentWave, SyncLogEntry, WaveStatus
)
from picking_replenishment.services.completion_service import WaveCompletionService
from picking_replenishment.services.wave_service import WaveService
from picking_replenishment.tests.fixtures import (
    add_position, get_record, make_db, mock_gateway, seed_company
)
from picking_replenishment.exceptions import GatewayDispatchFailed

SENT_AT = datetime(2024, 3, 15, 10, 0)


class TestWaveCompletion(unittest.TestCase):
    def setUp(self):
        """Set up one sent wave with two tasks."""
        self.db = make_db()
        seed_company(self.db)
        self.short_a = add_position(self.db, 1, '01', 'A-01-01-1', 'P-A', 5, 10, 50, 'A')
        self.short_c = add_position(self.db, 1, '01', 'C-02-01-1', 'P-C', 8, 8, 20, 'C')
        self.healthy = add_position(self.db, 1, '01', 'C-03-01-1', 'P-H', 15, 8, 20, 'C')
        self.wave_id = self._make_wave()
        self.service = WaveCompletionService(self.db, grace_minutes=5)

    def tearDown(self):
        self.db.dispose()

    def _make_wave(self, gateway=None):
        with self.db.session_scope() as session:
            wave = WaveService(session, gateway or mock_gateway()).generate_wave(1, '01', now=SENT_AT)
            wave.sent_at = SENT_AT
            return wave.id

    def test_grace_window(self):
        """Test a wave is only picked up once the grace window has passed."""
        self.assertEqual(self.service.get_overdue_waves(SENT_AT + timedelta(minutes=4)), [])

        overdue = self.service.get_overdue_waves(SENT_AT + timedelta(minutes=6))
        self.assertEqual([w['id'] for w in overdue], [self.wave_id])
        self.assertEqual(overdue[0]['wave_number'], '20240315-01-001')

    def test_complete_overdue_waves(self):
        """Test wave, tasks and stock are closed out together."""
        done_at = SENT_AT + timedelta(minutes=6)

        results = self.service.complete_overdue_waves(done_at)

        self.assertEqual(results['found'], 1)
        self.assertEqual(results['completed'], 1)
        self.assertEqual(results['failed'], 0)
        self.assertEqual(results['waves'], ['20240315-01-001'])

        with self.db.session_scope() as session:
            wave = session.get(ReplenishmentWave, self.wave_id)
            self.assertEqual(wave.status, WaveStatus.COMPLETED.value)
            self.assertEqual(wave.completed_tasks, wave.total_tasks)
            self.assertEqual(wave.completed_at, done_at)

            statuses = {t.status for t in session.query(ReplenishmentTask).filter_by(wave_id=self.wave_id)}
            self.assertEqual(statuses, {'completed'})

            entry = session.query(SyncLogEntry).filter_by(sync_type='wave_complete').one()
            self.assertEqual(entry.records_processed, 2)

        self.assertEqual(get_record(self.db, self.short_a).current_qty, 50)
        self.assertEqual(get_record(self.db, self.short_c).current_qty, 20)
        self.assertEqual(get_record(self.db, self.healthy).current_qty, 15)

    def test_second_pass_is_noop(self):
        done_at = SENT_AT + timedelta(minutes=6)
        self.service.complete_overdue_waves(done_at)

        results = self.service.complete_overdue_waves(done_at + timedelta(minutes=10))

        self.assertEqual(results['found'], 0)
        self.assertEqual(results['completed'], 0)

    def test_failed_waves_are_not_completed(self):
        """Test only sent waves are reconciled."""
        gateway = mock_gateway()
        gateway.send_wave.side_effect = GatewayDispatchFailed("down")
        with self.assertRaises(GatewayDispatchFailed):
            self._make_wave(gateway)

        results = self.service.complete_overdue_waves(SENT_AT + timedelta(hours=1))

        self.assertEqual(results['found'], 1)
        with self.db.session_scope() as session:
            statuses = sorted(w.status for w in session.query(ReplenishmentWave).all())
        self.assertEqual(statuses, ['completed', 'failed'])

    def test_one_failing_wave_does_not_stop_others(self):
        """Test a reconciliation error is counted and the rest continue."""
        gateway = mock_gateway([StockItem(product_code='P-A', current_qty=1)])
        second_id = self._make_wave(gateway)
        real_complete = self.service.complete_wave

        def flaky(wave_id, now=None):
            if wave_id == self.wave_id:
                raise RuntimeError("lock timeout")
            return real_complete(wave_id, now=now)

        self.service.complete_wave = flaky
        results = self.service.complete_overdue_waves(SENT_AT + timedelta(minutes=6))

        self.assertEqual(results['found'], 2)
        self.assertEqual(results['failed'], 1)
        self.assertEqual(results['completed'], 1)
        with self.db.session_scope() as session:
            self.assertEqual(session.get(ReplenishmentWave, self.wave_id).status, 'sent')
            self.assertEqual(session.get(ReplenishmentWave, second_id).status, 'completed')


if __name__ == '__main__':
    unittest.main()
