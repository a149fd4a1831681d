"""
Tests for wave generation, dispatch and queries.
"""
import unittest
from datetime import date, datetime
from unittest.mock import patch

from picking_replenishment.exceptions import (
    GatewayDispatchFailed, NotFoundError, WaveGenerationError
)
from picking_replenishment.gateway.base import WavePayload
from picking_replenishment.models import (
    ReplenishmentTask, ReplenishmentWave, SyncLogEntry, TriggerSource, WaveStatus
)
from picking_replenishment.services.wave_service import WaveService, set_wave_status
from picking_replenishment.tests.fixtures import (
    add_position, make_db, mock_gateway, seed_company
)

NOW = datetime(2024, 3, 15, 10, 0)


class TestWaveGeneration(unittest.TestCase):
    def setUp(self):
        """Set up a company with one A and one C position below minimum."""
        self.db = make_db()
        seed_company(self.db)
        add_position(self.db, 1, '01', 'A-01-01-1', 'P-A', 5, 10, 50, 'A')
        add_position(self.db, 1, '01', 'C-02-01-1', 'P-C', 8, 8, 20, 'C')
        self.gateway = mock_gateway()

    def tearDown(self):
        self.db.dispose()

    def test_generate_wave_orders_tasks(self):
        """Test the A task comes first and quantities fill to max."""
        with self.db.session_scope() as session:
            wave = WaveService(session, self.gateway).generate_wave(1, '01', now=NOW)

            self.assertEqual(wave.wave_number, '20240315-01-001')
            self.assertEqual(wave.status, WaveStatus.SENT.value)
            self.assertEqual(wave.total_tasks, 2)
            self.assertEqual(wave.gateway_response, 'WMS-REF-1')
            self.assertEqual(wave.sent_at, NOW)

            tasks = wave.tasks
            self.assertEqual([t.product_code for t in tasks], ['P-A', 'P-C'])
            self.assertEqual([t.sequence for t in tasks], [1, 2])
            self.assertEqual(tasks[0].priority, 1)
            self.assertEqual(tasks[0].qty_to_replenish, 45)
            self.assertEqual(tasks[1].priority, 3)
            self.assertEqual(tasks[1].qty_to_replenish, 12)

    def test_payload_sent_to_gateway(self):
        with self.db.session_scope() as session:
            WaveService(session, self.gateway).generate_wave(1, '01', now=NOW)

        company_id, payload = self.gateway.send_wave.call_args[0]
        self.assertEqual(company_id, 1)
        self.assertIsInstance(payload, WavePayload)
        self.assertEqual(payload.wave_number, '20240315-01-001')
        self.assertEqual(payload.branch, '01')
        self.assertEqual([t.location_code for t in payload.tasks], ['A-01-01-1', 'C-02-01-1'])

    def test_wave_numbers_increase_within_day(self):
        """Test sequential waves get consecutive numbers per day."""
        numbers = []
        for _ in range(3):
            with self.db.session_scope() as session:
                numbers.append(WaveService(session, self.gateway).generate_wave(1, '01', now=NOW).wave_number)

        self.assertEqual(numbers, ['20240315-01-001', '20240315-01-002', '20240315-01-003'])

        with self.db.session_scope() as session:
            next_day = WaveService(session, self.gateway).generate_wave(
                1, '01', now=datetime(2024, 3, 16, 9, 0)
            )
            self.assertEqual(next_day.wave_number, '20240316-01-001')

    def test_manual_trigger_recorded(self):
        with self.db.session_scope() as session:
            wave = WaveService(session, self.gateway).generate_wave(
                1, '01', triggered_by=TriggerSource.MANUAL, now=NOW
            )
            self.assertEqual(wave.triggered_by, 'manual')

    def test_no_wave_when_nothing_below_minimum(self):
        """Test no wave row is created when every location is healthy."""
        db = make_db()
        seed_company(db)
        add_position(db, 1, '01', 'A-01-01-1', 'P-A', 30, 10, 50, 'A')
        add_position(db, 1, '01', 'A-01-02-1', 'P-Z', 0, 0, 0, 'A')

        with db.session_scope() as session:
            wave = WaveService(session, self.gateway).generate_wave(1, '01', now=NOW)

        self.assertIsNone(wave)
        self.gateway.send_wave.assert_not_called()
        with db.session_scope() as session:
            self.assertEqual(session.query(ReplenishmentWave).count(), 0)
        db.dispose()

    def test_dispatch_failure_keeps_failed_wave(self):
        """Test a rejected wave is stored as failed with its tasks and logged."""
        self.gateway.send_wave.side_effect = GatewayDispatchFailed("connection refused")

        with self.assertRaises(GatewayDispatchFailed):
            with self.db.session_scope() as session:
                WaveService(session, self.gateway).generate_wave(1, '01', now=NOW)

        with self.db.session_scope() as session:
            wave = session.query(ReplenishmentWave).one()
            self.assertEqual(wave.status, WaveStatus.FAILED.value)
            self.assertIn('connection refused', wave.error_message)
            self.assertIsNone(wave.sent_at)
            self.assertEqual(session.query(ReplenishmentTask).filter_by(wave_id=wave.id).count(), 2)

            entry = session.query(SyncLogEntry).filter_by(sync_type='wave_send').one()
            self.assertEqual(entry.status, 'error')
            self.assertIn('connection refused', entry.error_message)

    def test_unexpected_dispatch_error_is_wrapped(self):
        self.gateway.send_wave.side_effect = RuntimeError("socket closed")

        with self.assertRaises(GatewayDispatchFailed):
            with self.db.session_scope() as session:
                WaveService(session, self.gateway).generate_wave(1, '01', now=NOW)

        with self.db.session_scope() as session:
            self.assertEqual(session.query(ReplenishmentWave).one().status, 'failed')

    def test_failed_wave_number_is_not_reused(self):
        self.gateway.send_wave.side_effect = [GatewayDispatchFailed("down"), self.gateway.send_wave.return_value]

        with self.assertRaises(GatewayDispatchFailed):
            with self.db.session_scope() as session:
                WaveService(session, self.gateway).generate_wave(1, '01', now=NOW)

        self.gateway.send_wave.side_effect = None
        with self.db.session_scope() as session:
            wave = WaveService(session, self.gateway).generate_wave(1, '01', now=NOW)
            self.assertEqual(wave.wave_number, '20240315-01-002')

    def test_wave_number_clash_takes_next_number(self):
        """Test a number claimed by a concurrent trigger is retried after a recount."""
        with self.db.session_scope() as session:
            WaveService(session, self.gateway).generate_wave(1, '01', now=NOW)

        # The first count misses the wave above, as a racing trigger would
        with patch.object(WaveService, 'count_waves_generated_on', side_effect=[0, 1]):
            with self.db.session_scope() as session:
                wave = WaveService(session, self.gateway).generate_wave(1, '01', now=NOW)
                self.assertEqual(wave.wave_number, '20240315-01-002')

        with self.db.session_scope() as session:
            numbers = sorted(w.wave_number for w in session.query(ReplenishmentWave).all())
        self.assertEqual(numbers, ['20240315-01-001', '20240315-01-002'])

    def test_wave_number_attempts_exhausted(self):
        with self.db.session_scope() as session:
            WaveService(session, self.gateway).generate_wave(1, '01', now=NOW)

        with patch.object(WaveService, 'count_waves_generated_on', return_value=0) as count:
            with self.assertRaises(WaveGenerationError):
                with self.db.session_scope() as session:
                    WaveService(session, self.gateway).generate_wave(1, '01', now=NOW)

        self.assertEqual(count.call_count, 3)
        self.assertEqual(self.gateway.send_wave.call_count, 1)
        with self.db.session_scope() as session:
            self.assertEqual(session.query(ReplenishmentWave).count(), 1)

    def test_gateway_required(self):
        with self.db.session_scope() as session:
            with self.assertRaises(WaveGenerationError):
                WaveService(session).generate_wave(1, '01', now=NOW)

    def test_illegal_status_change(self):
        wave = ReplenishmentWave(wave_number='20240315-01-001', status=WaveStatus.FAILED.value)

        with self.assertRaises(WaveGenerationError):
            set_wave_status(wave, WaveStatus.SENT)


class TestWaveQueries(unittest.TestCase):
    def setUp(self):
        self.db = make_db()
        seed_company(self.db, branches=('01', '02'))
        add_position(self.db, 1, '01', 'A-01-01-1', 'P-A', 5, 10, 50, 'A')
        add_position(self.db, 1, '02', 'B-01-01-1', 'P-B', 1, 10, 40, 'B')
        gateway = mock_gateway()

        with self.db.session_scope() as session:
            service = WaveService(session, gateway)
            self.first_id = service.generate_wave(1, '01', now=datetime(2024, 3, 14, 9, 0)).id
            service.generate_wave(1, '01', now=NOW)
            service.generate_wave(1, '02', now=NOW)

    def tearDown(self):
        self.db.dispose()

    def test_get_waves_newest_first(self):
        with self.db.session_scope() as session:
            waves = WaveService(session).get_waves(1)
            self.assertEqual(len(waves), 3)
            self.assertEqual(waves[-1].id, self.first_id)

            branch_waves = WaveService(session).get_waves(1, branch='02')
            self.assertEqual([w.branch for w in branch_waves], ['02'])

            self.assertEqual(len(WaveService(session).get_waves(1, status='failed')), 0)
            self.assertEqual(len(WaveService(session).get_waves(1, limit=1)), 1)

    def test_get_wave_detail(self):
        with self.db.session_scope() as session:
            wave = WaveService(session).get_wave(1, self.first_id)
            self.assertEqual(wave.wave_number, '20240314-01-001')
            self.assertEqual(len(wave.tasks), 1)

    def test_get_wave_other_company(self):
        with self.db.session_scope() as session:
            with self.assertRaises(NotFoundError):
                WaveService(session).get_wave(2, self.first_id)

    def test_get_wave_stats(self):
        with self.db.session_scope() as session:
            stats = WaveService(session).get_wave_stats(1, today=date(2024, 3, 15))

        by_branch = {s['branch']: s for s in stats}
        self.assertEqual(by_branch['01']['total_waves'], 2)
        self.assertEqual(by_branch['01']['waves_today'], 1)
        self.assertEqual(by_branch['01']['pending_tasks'], 2)
        self.assertEqual(by_branch['02']['total_waves'], 1)
        self.assertEqual(by_branch['02']['completed_tasks'], 0)

    def test_get_last_wave_time(self):
        with self.db.session_scope() as session:
            self.assertEqual(WaveService(session).get_last_wave_time(1, '01'), NOW)
            self.assertIsNone(WaveService(session).get_last_wave_time(1, '03'))


if __name__ == '__main__':
    unittest.main()
