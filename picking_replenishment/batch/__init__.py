# picking_replenishment/batch/__init__.py

from .sync_cycle import sync_branch
from .scheduler import ReplenishmentScheduler, SchedulerContext

__all__ = [
    'sync_branch',
    'ReplenishmentScheduler',
    'SchedulerContext'
]
