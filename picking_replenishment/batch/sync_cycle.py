# picking_replenishment/batch/sync_cycle.py
import time
from datetime import datetime
from typing import Dict, Optional

from picking_replenishment.exceptions import GatewayFetchFailed
from picking_replenishment.gateway.base import ReplenishmentGateway
from picking_replenishment.logging_setup import get_logger, logger as log_manager
from picking_replenishment.models import SyncStatus, SyncType, TriggerSource
from picking_replenishment.services.fragmentation_service import FragmentationService
from picking_replenishment.services.stock_service import StockService
from picking_replenishment.services.sync_log_service import SyncLogService
from picking_replenishment.services.wave_service import WaveService

logger = get_logger('sync_cycle')


def sync_branch(
    db,
    company_id: int,
    branch: str,
    gateway: ReplenishmentGateway,
    triggered_by: TriggerSource = TriggerSource.SCHEDULER,
    now: Optional[datetime] = None
) -> Dict:
    """Run one full replenishment cycle for a company branch.

    Steps, each committed on its own:
        1. Fetch stock from the gateway (on failure: log and stop here)
        2. Update current quantities of existing stock rows
        3. Record the fetch in the sync log
        4. Count below-minimum locations
        5. Append a fragmentation sample
        6. Generate and dispatch a wave when anything is below minimum

    Args:
        db: DatabaseConnection
        company_id: Company ID
        branch: Branch code
        gateway: Gateway for this company
        triggered_by: Scheduler or manual trigger, recorded on the wave
        now: Cycle timestamp (defaults to the current time)

    Returns:
        Dictionary with the cycle results
    """
    now = now or datetime.now()
    results = {
        'company_id': company_id,
        'branch': branch,
        'success': False,
        'items': 0,
        'updated': 0,
        'below_min': 0,
        'score': None,
        'wave_number': None,
        'error': None,
        'wave_error': None
    }
    log_info = log_manager.cycle_start_log(f"sync company={company_id} branch={branch}")
    logger.info(f"Syncing company={company_id} branch={branch}")

    # Step 1: Fetch stock
    start = time.perf_counter()
    try:
        items = gateway.fetch_stock(company_id, branch)
    except Exception as e:
        duration_ms = int((time.perf_counter() - start) * 1000)
        error = e if isinstance(e, GatewayFetchFailed) else GatewayFetchFailed(str(e))
        logger.error(f"Stock fetch failed for company={company_id} branch={branch}: {str(error)}")

        with db.session_scope() as session:
            SyncLogService(session).record(
                company_id, branch, SyncType.STOCK_FETCH, SyncStatus.ERROR,
                error_message=str(error),
                duration_ms=duration_ms,
                synced_at=now
            )

        results['error'] = str(error)
        log_manager.cycle_end_log(log_info, success=False, result_info=results)
        return results

    duration_ms = int((time.perf_counter() - start) * 1000)
    results['items'] = len(items)

    # Step 2: Apply stock levels
    with db.session_scope() as session:
        applied = StockService(session).apply_stock_levels(company_id, branch, items, now=now)
    results['updated'] = applied['updated']

    # Step 3: Audit the fetch
    with db.session_scope() as session:
        SyncLogService(session).record(
            company_id, branch, SyncType.STOCK_FETCH, SyncStatus.SUCCESS,
            records_processed=len(items),
            duration_ms=duration_ms,
            synced_at=now
        )

    # Steps 4 and 5: Shortages and fragmentation
    with db.session_scope() as session:
        results['below_min'] = StockService(session).count_below_minimum(company_id, branch)
        sample = FragmentationService(session).record_sample(company_id, branch, recorded_at=now)
        results['score'] = sample.score

    results['success'] = True

    # Step 6: Wave
    if results['below_min'] > 0:
        logger.info(
            f"company={company_id} branch={branch}: {results['below_min']} locations below min, generating wave"
        )
        try:
            with db.session_scope() as session:
                wave = WaveService(session, gateway).generate_wave(
                    company_id, branch, triggered_by=triggered_by, now=now
                )
                if wave is not None:
                    results['wave_number'] = wave.wave_number
        except Exception as e:
            logger.error(f"Wave generation failed for company={company_id} branch={branch}: {str(e)}")
            results['wave_error'] = str(e)
    else:
        logger.info(f"company={company_id} branch={branch}: all locations OK")

    log_manager.cycle_end_log(log_info, success=True, result_info=results)
    return results
