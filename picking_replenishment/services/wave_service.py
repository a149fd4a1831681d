# picking_replenishment/services/wave_service.py
import time
from datetime import date, datetime, time as dt_time, timedelta
from typing import Dict, List, Optional

from sqlalchemy import case, func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from picking_replenishment.core.waves import (
    can_transition, format_wave_number, order_tasks
)
from picking_replenishment.exceptions import (
    GatewayDispatchFailed, NotFoundError, WaveGenerationError
)
from picking_replenishment.gateway.base import (
    ReplenishmentGateway, WavePayload, WaveTaskPayload
)
from picking_replenishment.logging_setup import get_logger
from picking_replenishment.models import (
    ReplenishmentTask, ReplenishmentWave, SyncStatus, SyncType,
    TaskStatus, TriggerSource, WaveStatus
)
from picking_replenishment.services.stock_service import StockService
from picking_replenishment.services.sync_log_service import SyncLogService

logger = get_logger('waves')

# Attempts at claiming a wave number when a concurrent trigger took ours
MAX_WAVE_NUMBER_ATTEMPTS = 3


def _day_bounds(day: date):
    start = datetime.combine(day, dt_time.min)
    return start, start + timedelta(days=1)


def set_wave_status(wave: ReplenishmentWave, new_status: WaveStatus):
    """Move a wave to a new status, refusing illegal transitions."""
    new_value = WaveStatus(new_status).value
    if not can_transition(wave.status, new_value):
        raise WaveGenerationError(
            f"Wave {wave.wave_number} cannot move from {wave.status} to {new_value}"
        )
    wave.status = new_value


class WaveService:
    """Builds, dispatches and queries replenishment waves."""

    def __init__(self, session: Session, gateway: Optional[ReplenishmentGateway] = None):
        """Initialize the wave service.

        Args:
            session: Database session
            gateway: Gateway used to dispatch waves (only needed for generation)
        """
        self.session = session
        self.gateway = gateway
        self.stock_service = StockService(session)
        self.sync_log = SyncLogService(session)

    def count_waves_generated_on(self, company_id: int, branch: str, day: date) -> int:
        start, end = _day_bounds(day)
        return self.session.query(func.count(ReplenishmentWave.id)).filter(
            ReplenishmentWave.company_id == company_id,
            ReplenishmentWave.branch == branch,
            ReplenishmentWave.generated_at >= start,
            ReplenishmentWave.generated_at < end
        ).scalar() or 0

    def _insert_wave(
        self,
        company_id: int,
        branch: str,
        total_tasks: int,
        triggered_by: TriggerSource,
        now: datetime
    ) -> ReplenishmentWave:
        """Insert a wave under the next free number of the day.

        The sequence read and the insert are not atomic; when another trigger
        for the same branch claims the number first, the unique constraint
        rejects ours and the recount, which now includes that wave, gives
        the next number.
        """
        for _ in range(MAX_WAVE_NUMBER_ATTEMPTS):
            sequence = self.count_waves_generated_on(company_id, branch, now.date()) + 1
            wave = ReplenishmentWave(
                company_id=company_id,
                branch=branch,
                wave_number=format_wave_number(now.date(), branch, sequence),
                status=WaveStatus.GENERATED.value,
                total_tasks=total_tasks,
                completed_tasks=0,
                triggered_by=TriggerSource(triggered_by).value,
                generated_at=now
            )
            try:
                with self.session.begin_nested():
                    self.session.add(wave)
            except IntegrityError:
                logger.warning(
                    f"Wave number {wave.wave_number} already taken for company {company_id}, retrying"
                )
                continue
            return wave

        raise WaveGenerationError(
            f"Could not allocate a wave number for company {company_id} branch {branch}"
        )

    def generate_wave(
        self,
        company_id: int,
        branch: str,
        triggered_by: TriggerSource = TriggerSource.SCHEDULER,
        now: Optional[datetime] = None
    ) -> Optional[ReplenishmentWave]:
        """Generate, persist and dispatch one wave for a branch.

        Every below-minimum position becomes a task, ordered by ABC priority
        and then by shortage. No wave is created when nothing is short. The
        wave and its tasks are committed before dispatch and kept even when
        dispatch fails.

        Args:
            company_id: Company ID
            branch: Branch code
            triggered_by: Scheduler or manual trigger
            now: Generation time (defaults to the current time)

        Returns:
            The sent wave, or None when no task qualified

        Raises:
            GatewayDispatchFailed: The gateway did not accept the wave; the
                wave is stored with status failed
        """
        if self.gateway is None:
            raise WaveGenerationError("A gateway is required to generate waves")

        now = now or datetime.now()
        candidates = order_tasks(self.stock_service.get_below_minimum_candidates(company_id, branch))

        if not candidates:
            logger.debug(f"company={company_id} branch={branch}: no locations below minimum, no wave")
            return None

        wave = self._insert_wave(company_id, branch, len(candidates), triggered_by, now)

        task_payloads = []
        for sequence, candidate in enumerate(candidates, start=1):
            qty = candidate.qty_to_replenish
            wave.tasks.append(ReplenishmentTask(
                company_id=company_id,
                branch=branch,
                sequence=sequence,
                product_code=candidate.product_code,
                description=candidate.description,
                location_code=candidate.location_code,
                current_qty=candidate.current_qty,
                min_qty=candidate.min_qty,
                qty_to_replenish=qty,
                abc_class=candidate.abc_class,
                priority=candidate.priority,
                status=TaskStatus.PENDING.value,
                created_at=now
            ))
            task_payloads.append(WaveTaskPayload(
                location_code=candidate.location_code,
                product_code=candidate.product_code,
                description=candidate.description,
                qty_to_replenish=qty,
                abc_class=candidate.abc_class,
                priority=candidate.priority
            ))

        self.session.commit()

        payload = WavePayload(
            wave_number=wave.wave_number,
            branch=branch,
            tasks=task_payloads,
            generated_at=now.isoformat()
        )

        start = time.perf_counter()
        try:
            ack = self.gateway.send_wave(company_id, payload)
        except Exception as e:
            duration_ms = int((time.perf_counter() - start) * 1000)
            error = e if isinstance(e, GatewayDispatchFailed) else GatewayDispatchFailed(str(e))

            set_wave_status(wave, WaveStatus.FAILED)
            wave.error_message = str(error)
            self.sync_log.record(
                company_id, branch, SyncType.WAVE_SEND, SyncStatus.ERROR,
                records_processed=len(candidates),
                error_message=str(error),
                duration_ms=duration_ms
            )
            self.session.commit()

            logger.error(f"Wave {wave.wave_number} dispatch failed: {str(error)}")
            if error is e:
                raise
            raise error from e

        duration_ms = int((time.perf_counter() - start) * 1000)

        set_wave_status(wave, WaveStatus.SENT)
        wave.sent_at = now
        wave.gateway_response = ack.reference
        self.sync_log.record(
            company_id, branch, SyncType.WAVE_SEND, SyncStatus.SUCCESS,
            records_processed=len(candidates),
            duration_ms=duration_ms
        )
        self.session.commit()

        logger.info(f"Wave {wave.wave_number} sent with {len(candidates)} tasks: {ack.reference}")
        return wave

    def get_wave(self, company_id: int, wave_id: int) -> ReplenishmentWave:
        """Get a wave with its tasks in picking order.

        Raises:
            NotFoundError: No such wave for this company
        """
        wave = self.session.query(ReplenishmentWave).filter(
            ReplenishmentWave.id == wave_id,
            ReplenishmentWave.company_id == company_id
        ).first()

        if wave is None:
            raise NotFoundError(f"Wave {wave_id} not found for company {company_id}")

        return wave

    def get_waves(
        self,
        company_id: int,
        branch: Optional[str] = None,
        status: Optional[WaveStatus] = None,
        limit: int = 50
    ) -> List[ReplenishmentWave]:
        """Waves of a company, newest first."""
        query = self.session.query(ReplenishmentWave).filter(ReplenishmentWave.company_id == company_id)

        if branch:
            query = query.filter(ReplenishmentWave.branch == branch)

        if status is not None:
            query = query.filter(ReplenishmentWave.status == WaveStatus(status).value)

        return query.order_by(
            ReplenishmentWave.generated_at.desc(),
            ReplenishmentWave.id.desc()
        ).limit(limit).all()

    def get_wave_stats(self, company_id: int, today: Optional[date] = None) -> List[Dict]:
        """Per-branch wave counts and task progress."""
        start, end = _day_bounds(today or date.today())

        generated_today = func.sum(case(
            ((ReplenishmentWave.generated_at >= start) & (ReplenishmentWave.generated_at < end), 1),
            else_=0
        ))
        wave_rows = self.session.query(
            ReplenishmentWave.branch,
            func.count(ReplenishmentWave.id),
            generated_today
        ).filter(
            ReplenishmentWave.company_id == company_id
        ).group_by(ReplenishmentWave.branch).order_by(ReplenishmentWave.branch).all()

        stats = []
        for branch, total_waves, waves_today in wave_rows:
            pending, completed = self.session.query(
                func.sum(case((ReplenishmentTask.status == TaskStatus.PENDING.value, 1), else_=0)),
                func.sum(case((ReplenishmentTask.status == TaskStatus.COMPLETED.value, 1), else_=0))
            ).filter(
                ReplenishmentTask.company_id == company_id,
                ReplenishmentTask.branch == branch
            ).one()

            stats.append({
                'branch': branch,
                'total_waves': total_waves,
                'waves_today': int(waves_today or 0),
                'pending_tasks': int(pending or 0),
                'completed_tasks': int(completed or 0)
            })
        return stats

    def get_last_wave_time(self, company_id: int, branch: str) -> Optional[datetime]:
        return self.session.query(func.max(ReplenishmentWave.generated_at)).filter(
            ReplenishmentWave.company_id == company_id,
            ReplenishmentWave.branch == branch
        ).scalar()
