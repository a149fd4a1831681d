# picking_replenishment/core/waves.py
from dataclasses import dataclass
from datetime import date
from typing import Iterable, List, Optional

ABC_PRIORITIES = {
    'A': 1,
    'B': 2,
}
DEFAULT_PRIORITY = 3


@dataclass
class TaskCandidate:
    """A below-minimum stock position about to become a wave task."""
    product_code: str
    description: str
    location_code: str
    current_qty: float
    min_qty: float
    max_qty: float
    abc_class: str
    priority: int = DEFAULT_PRIORITY

    @property
    def shortage(self) -> float:
        return self.min_qty - self.current_qty

    @property
    def qty_to_replenish(self) -> float:
        return calculate_qty_to_replenish(self.current_qty, self.min_qty, self.max_qty)


def abc_priority(abc_class: Optional[str]) -> int:
    """Task priority from ABC class: A=1, B=2, anything else 3."""
    return ABC_PRIORITIES.get((abc_class or '').strip().upper(), DEFAULT_PRIORITY)


def is_below_minimum(current_qty: float, min_qty: float) -> bool:
    """A location is short when it has a minimum and is at or under it."""
    return min_qty > 0 and current_qty <= min_qty


def calculate_qty_to_replenish(current_qty: float, min_qty: float, max_qty: float) -> float:
    """Quantity needed to bring a location back to its maximum.

    When max_qty does not exceed current_qty (bad master data), replenish
    min_qty instead so the task always moves stock.
    """
    qty = max_qty - current_qty
    if qty <= 0:
        qty = min_qty
    return qty


def order_tasks(candidates: Iterable[TaskCandidate]) -> List[TaskCandidate]:
    """Order tasks by priority ascending, then shortage descending.

    The sort is stable, so ties keep their incoming order.
    """
    return sorted(candidates, key=lambda t: (t.priority, -t.shortage))


def format_wave_number(wave_date: date, branch: str, sequence: int) -> str:
    """Build a wave number such as 20240315-01-003."""
    return f"{wave_date.strftime('%Y%m%d')}-{branch}-{sequence:03d}"


# Allowed wave status changes; completed and failed are terminal
WAVE_TRANSITIONS = {
    'generated': {'sent', 'failed'},
    'sent': {'completed', 'failed'},
    'completed': set(),
    'failed': set(),
}


def can_transition(current_status: str, new_status: str) -> bool:
    return new_status in WAVE_TRANSITIONS.get(current_status, set())
