# picking_replenishment/gateway/mock.py
import time
from datetime import datetime
from typing import List, Optional

import numpy as np

from picking_replenishment.config import config
from picking_replenishment.exceptions import GatewayDispatchFailed, GatewayFetchFailed
from picking_replenishment.gateway.base import (
    ReplenishmentGateway, StockItem, WaveAck, WavePayload
)
from picking_replenishment.logging_setup import get_logger
from picking_replenishment.models import PickingLocation, StockRecord

logger = get_logger('gateway')

# Fraction of max_qty consumed between two fetches, per ABC class
DEPLETION_RANGES = {
    'A': (0.10, 0.25),
    'B': (0.05, 0.15),
}
DEFAULT_DEPLETION_RANGE = (0.02, 0.08)


class MockGateway(ReplenishmentGateway):
    """Simulated warehouse system used when no real endpoint is configured.

    Stock is read back from the local picking store with a random depletion
    applied, so successive syncs drive locations below their minimum. Wave
    dispatch fails at a configurable rate to exercise error handling.
    """

    def __init__(
        self,
        db,
        failure_rate: Optional[float] = None,
        latency_ms: Optional[tuple] = None,
        rng: Optional[np.random.Generator] = None
    ):
        gateway_config = config.gateway_config
        self.db = db
        self.failure_rate = gateway_config['mock_failure_rate'] if failure_rate is None else failure_rate
        if latency_ms is None:
            latency_ms = (gateway_config['mock_min_latency_ms'], gateway_config['mock_max_latency_ms'])
        self.latency_ms = latency_ms
        self.rng = rng if rng is not None else np.random.default_rng()

    def _simulate_latency(self):
        low, high = self.latency_ms
        if high <= 0:
            return
        time.sleep(self.rng.uniform(low, high) / 1000.0)

    def _depletion_pct(self, abc_class: Optional[str]) -> float:
        low, high = DEPLETION_RANGES.get((abc_class or '').upper(), DEFAULT_DEPLETION_RANGE)
        return float(self.rng.uniform(low, high))

    def fetch_stock(self, company_id: int, branch: str) -> List[StockItem]:
        try:
            with self.db.session_scope() as session:
                rows = session.query(StockRecord, PickingLocation.location_code).join(
                    PickingLocation, PickingLocation.id == StockRecord.location_id
                ).filter(
                    StockRecord.company_id == company_id,
                    StockRecord.branch == branch
                ).all()

                items = []
                for record, location_code in rows:
                    depleted = record.current_qty - record.max_qty * self._depletion_pct(record.abc_class)
                    items.append(StockItem(
                        product_code=record.product_code,
                        current_qty=max(0.0, depleted),
                        location_code=location_code,
                        description=record.description or '',
                        min_qty=record.min_qty,
                        max_qty=record.max_qty,
                        abc_class=record.abc_class
                    ))
        except Exception as e:
            raise GatewayFetchFailed(f"Mock stock fetch failed: {str(e)}")

        self._simulate_latency()
        logger.debug(f"Mock gateway reported {len(items)} items for company={company_id} branch={branch}")
        return items

    def send_wave(self, company_id: int, payload: WavePayload) -> WaveAck:
        self._simulate_latency()

        if self.rng.random() < self.failure_rate:
            raise GatewayDispatchFailed("Mock gateway timeout: connection refused")

        reference = "WMS-{}-{}-{}".format(
            datetime.now().strftime('%Y%m%d%H%M%S'),
            payload.branch,
            int(self.rng.integers(0, 9999))
        )
        return WaveAck(
            reference=reference,
            message=f"Wave {payload.wave_number} accepted (mock). {len(payload.tasks)} tasks created."
        )
