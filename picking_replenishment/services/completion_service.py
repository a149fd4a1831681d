# picking_replenishment/services/completion_service.py
from datetime import datetime, timedelta
from typing import Dict, List, Optional

from picking_replenishment.config import config
from picking_replenishment.logging_setup import get_logger
from picking_replenishment.models import (
    ReplenishmentTask, ReplenishmentWave, SyncStatus, SyncType,
    TaskStatus, WaveStatus
)
from picking_replenishment.services.stock_service import StockService
from picking_replenishment.services.sync_log_service import SyncLogService
from picking_replenishment.services.wave_service import set_wave_status

logger = get_logger('completion')


class WaveCompletionService:
    """Closes out waves the warehouse system has had time to process.

    The warehouse system sends no completion callback, so a wave that has
    been in ``sent`` longer than the grace window is taken as done and its
    locations as physically refilled.
    """

    def __init__(self, db, grace_minutes: Optional[int] = None):
        """Initialize the completion service.

        Args:
            db: DatabaseConnection; every wave is reconciled in its own session
            grace_minutes: Minutes a wave stays in ``sent`` before completion
        """
        self.db = db
        if grace_minutes is None:
            grace_minutes = config.scheduler_config['completion_grace_minutes']
        self.grace = timedelta(minutes=grace_minutes)

    def get_overdue_waves(self, now: Optional[datetime] = None) -> List[Dict]:
        """Sent waves whose dispatch is older than the grace window."""
        cutoff = (now or datetime.now()) - self.grace

        with self.db.session_scope() as session:
            rows = session.query(
                ReplenishmentWave.id,
                ReplenishmentWave.company_id,
                ReplenishmentWave.branch,
                ReplenishmentWave.wave_number
            ).filter(
                ReplenishmentWave.status == WaveStatus.SENT.value,
                ReplenishmentWave.sent_at < cutoff
            ).order_by(ReplenishmentWave.id).all()

        return [
            {'id': row[0], 'company_id': row[1], 'branch': row[2], 'wave_number': row[3]}
            for row in rows
        ]

    def complete_wave(self, wave_id: int, now: Optional[datetime] = None) -> Dict:
        """Mark one wave and its tasks completed and refill its locations.

        Runs in a single transaction: either the whole wave is closed out or
        nothing about it changes.

        Returns:
            Dictionary with the wave number, task count and refilled records
        """
        now = now or datetime.now()

        with self.db.session_scope() as session:
            wave = session.get(ReplenishmentWave, wave_id)
            if wave is None or wave.status != WaveStatus.SENT.value:
                return {'wave_id': wave_id, 'completed': False}

            set_wave_status(wave, WaveStatus.COMPLETED)
            wave.completed_tasks = wave.total_tasks
            wave.completed_at = now

            session.query(ReplenishmentTask).filter(
                ReplenishmentTask.wave_id == wave.id
            ).update(
                {
                    ReplenishmentTask.status: TaskStatus.COMPLETED.value,
                    ReplenishmentTask.completed_at: now
                },
                synchronize_session=False
            )

            location_codes = [
                row[0] for row in session.query(ReplenishmentTask.location_code).filter(
                    ReplenishmentTask.wave_id == wave.id
                ).distinct().all()
            ]
            refilled = StockService(session).refill_locations(
                wave.company_id, wave.branch, location_codes, now=now
            )

            SyncLogService(session).record(
                wave.company_id, wave.branch, SyncType.WAVE_COMPLETE, SyncStatus.SUCCESS,
                records_processed=wave.total_tasks,
                synced_at=now
            )

            result = {
                'wave_id': wave.id,
                'wave_number': wave.wave_number,
                'completed': True,
                'tasks': wave.total_tasks,
                'refilled_records': refilled
            }

        logger.info(
            f"Wave {result['wave_number']} (branch {wave.branch}) completed, "
            f"{refilled} stock records refilled"
        )
        return result

    def complete_overdue_waves(self, now: Optional[datetime] = None) -> Dict:
        """Reconcile every overdue wave, one at a time.

        A failure on one wave is logged and the rest are still processed.

        Returns:
            Dictionary with found, completed and failed counts
        """
        now = now or datetime.now()
        results = {'found': 0, 'completed': 0, 'failed': 0, 'waves': []}

        for pending in self.get_overdue_waves(now):
            results['found'] += 1
            try:
                outcome = self.complete_wave(pending['id'], now=now)
            except Exception as e:
                results['failed'] += 1
                logger.error(
                    f"Could not complete wave {pending['wave_number']} (id {pending['id']}): {str(e)}",
                    exc_info=True
                )
                continue

            if outcome.get('completed'):
                results['completed'] += 1
                results['waves'].append(outcome['wave_number'])

        return results
