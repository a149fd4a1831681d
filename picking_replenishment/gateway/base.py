# picking_replenishment/gateway/base.py
from abc import ABC, abstractmethod
from dataclasses import dataclass, field, asdict
from typing import Dict, List, Optional


@dataclass
class StockItem:
    """Stock reported by the warehouse system for one product."""
    product_code: str
    current_qty: float
    location_code: Optional[str] = None
    description: str = ''
    min_qty: Optional[float] = None
    max_qty: Optional[float] = None
    abc_class: Optional[str] = None


@dataclass
class WaveTaskPayload:
    location_code: str
    product_code: str
    description: str
    qty_to_replenish: float
    abc_class: str
    priority: int


@dataclass
class WavePayload:
    wave_number: str
    branch: str
    tasks: List[WaveTaskPayload] = field(default_factory=list)
    generated_at: str = ''

    def to_dict(self) -> Dict:
        return asdict(self)


@dataclass
class WaveAck:
    """Acknowledgement returned when the warehouse system accepts a wave."""
    reference: str
    message: str = ''


class ReplenishmentGateway(ABC):
    """Capability offered by the external warehouse-management system.

    Implementations raise GatewayFetchFailed / GatewayDispatchFailed; callers
    never see transport-specific exceptions.
    """

    @abstractmethod
    def fetch_stock(self, company_id: int, branch: str) -> List[StockItem]:
        """Report current stock for a branch."""
        pass

    @abstractmethod
    def send_wave(self, company_id: int, payload: WavePayload) -> WaveAck:
        """Submit a replenishment wave and return the acknowledgement."""
        pass

    def close(self):
        """Release any resources held by the gateway."""
        pass
