# picking_replenishment/batch/scheduler.py
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Callable, Dict, List, Optional

from picking_replenishment.batch.sync_cycle import sync_branch
from picking_replenishment.config import config
from picking_replenishment.db import DatabaseConnection
from picking_replenishment.exceptions import SettingsUnavailable
from picking_replenishment.gateway import create_gateway
from picking_replenishment.logging_setup import get_logger
from picking_replenishment.models import TriggerSource
from picking_replenishment.services.completion_service import WaveCompletionService
from picking_replenishment.services.settings_service import SettingsService
from picking_replenishment.services.sync_log_service import SyncLogService

logger = get_logger('scheduler')


@dataclass
class SchedulerContext:
    """Everything the scheduler shares between ticks and triggers."""
    db: DatabaseConnection
    stop_event: threading.Event = field(default_factory=threading.Event)


class ReplenishmentScheduler:
    """Drives periodic picking replenishment for every enabled company.

    A single coarse tick reconciles overdue waves and then visits each
    enabled company. Whether a company is due is decided from its last
    successful stock fetch in the sync log rather than from a timer per
    company, so restarts and configuration changes need no bookkeeping.
    """

    def __init__(
        self,
        context: SchedulerContext,
        gateway_factory: Callable = create_gateway,
        tick_seconds: Optional[float] = None,
        startup_delay_seconds: Optional[float] = None,
        max_workers: Optional[int] = None,
        completion_service: Optional[WaveCompletionService] = None
    ):
        scheduler_config = config.scheduler_config
        self.context = context
        self.gateway_factory = gateway_factory
        self.tick_seconds = scheduler_config['tick_seconds'] if tick_seconds is None else tick_seconds
        self.startup_delay_seconds = (
            scheduler_config['startup_delay_seconds'] if startup_delay_seconds is None else startup_delay_seconds
        )
        self.completion_service = completion_service or WaveCompletionService(context.db)
        self._executor = ThreadPoolExecutor(
            max_workers=max_workers or scheduler_config['max_workers'],
            thread_name_prefix='picking-trigger'
        )

    @property
    def db(self) -> DatabaseConnection:
        return self.context.db

    @property
    def stopped(self) -> bool:
        return self.context.stop_event.is_set()

    def start(self):
        """Run the loop until stop() is called.

        Ticks once right after the startup delay and then every
        ``tick_seconds``. Blocks the calling thread.
        """
        logger.info("Replenishment scheduler started")
        stop_event = self.context.stop_event

        if self.startup_delay_seconds > 0 and stop_event.wait(self.startup_delay_seconds):
            logger.info("Replenishment scheduler stopped before first tick")
            return

        while not stop_event.is_set():
            self.tick()
            if stop_event.wait(self.tick_seconds):
                break

        logger.info("Replenishment scheduler stopped")

    def stop(self):
        """Ask the loop to exit; running steps finish first."""
        self.context.stop_event.set()

    def shutdown(self, wait: bool = True):
        """Stop the loop and the manual trigger workers."""
        self.stop()
        self._executor.shutdown(wait=wait)

    def tick(self, now: Optional[datetime] = None) -> Dict:
        """One scheduler pass: reconcile waves, then visit companies."""
        results = {'completion': None, 'companies': []}

        try:
            results['completion'] = self.completion_service.complete_overdue_waves(now)
        except Exception as e:
            logger.error(f"Error completing overdue waves: {str(e)}", exc_info=True)

        results['companies'] = self.run_all_companies(now)
        return results

    def run_all_companies(self, now: Optional[datetime] = None) -> List[Dict]:
        try:
            with self.db.session_scope() as session:
                company_ids = SettingsService(session).get_enabled_company_ids()
        except Exception as e:
            logger.error(f"Error fetching companies: {str(e)}", exc_info=True)
            return []

        results = []
        for company_id in company_ids:
            if self.stopped:
                logger.info("Stop requested, leaving remaining companies for the next run")
                break

            try:
                results.append(self.run_company(company_id, now=now))
            except Exception as e:
                logger.error(f"Error running company {company_id}: {str(e)}", exc_info=True)
                results.append({'company_id': company_id, 'status': 'error', 'error': str(e)})

        return results

    @staticmethod
    def is_sync_due(
        last_sync_at: Optional[datetime],
        interval_minutes: int,
        now: Optional[datetime] = None
    ) -> bool:
        """A company is due when it never synced or its interval has elapsed."""
        if last_sync_at is None:
            return True
        elapsed = (now or datetime.now()) - last_sync_at
        return elapsed >= timedelta(minutes=interval_minutes)

    def run_company(
        self,
        company_id: int,
        force: bool = False,
        triggered_by: TriggerSource = TriggerSource.SCHEDULER,
        branches: Optional[List[str]] = None,
        now: Optional[datetime] = None
    ) -> Dict:
        """Sync every active branch of a company if it is due.

        Args:
            company_id: Company ID
            force: Ignore the sync interval (operator triggers)
            triggered_by: Recorded on generated waves
            branches: Restrict the run to these branches
            now: Reference time for the cadence check

        Returns:
            Dictionary with the company status and per-branch results
        """
        result = {'company_id': company_id, 'status': 'skipped', 'branches': []}

        try:
            with self.db.session_scope() as session:
                settings = SettingsService(session).get_picking_settings(company_id)
                last_sync_at = SyncLogService(session).last_successful_fetch(company_id)
        except SettingsUnavailable as e:
            logger.warning(f"Company {company_id}: cannot load settings: {str(e)}")
            result['reason'] = 'settings_unavailable'
            return result

        if not force and not self.is_sync_due(last_sync_at, settings.sync_interval_minutes, now):
            result['reason'] = 'not_due'
            return result

        gateway = self.gateway_factory(settings, self.db)
        try:
            for branch in branches or settings.active_branches:
                if self.stopped and not force:
                    break

                try:
                    result['branches'].append(
                        sync_branch(self.db, company_id, branch, gateway, triggered_by=triggered_by, now=now)
                    )
                except Exception as e:
                    logger.error(f"Company {company_id} branch {branch}: sync aborted: {str(e)}", exc_info=True)
                    result['branches'].append({'branch': branch, 'success': False, 'error': str(e)})
        finally:
            gateway.close()

        result['status'] = 'synced'
        return result

    def run_now(self, company_id: int) -> Future:
        """Operator trigger: sync a company now, ignoring its cadence.

        Runs on a worker thread and returns immediately.
        """
        logger.info(f"Manual sync requested for company {company_id}")
        return self._executor.submit(
            self.run_company, company_id, force=True, triggered_by=TriggerSource.MANUAL
        )

    def generate_wave_now(self, company_id: int, branch: str) -> Future:
        """Operator trigger: fresh sync and wave generation for one branch."""
        logger.info(f"Manual wave requested for company {company_id} branch {branch}")
        return self._executor.submit(
            self.run_company, company_id, force=True, triggered_by=TriggerSource.MANUAL, branches=[branch]
        )
