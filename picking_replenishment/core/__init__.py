from .fragmentation import (
    FragmentationResult, abc_weight, shortage_pct,
    calculate_fragmentation_score, fragmentation_trend, summarize_scores
)
from .waves import (
    TaskCandidate, abc_priority, is_below_minimum,
    calculate_qty_to_replenish, order_tasks, format_wave_number,
    WAVE_TRANSITIONS, can_transition
)

__all__ = [
    'FragmentationResult',
    'abc_weight',
    'shortage_pct',
    'calculate_fragmentation_score',
    'fragmentation_trend',
    'summarize_scores',
    'TaskCandidate',
    'abc_priority',
    'is_below_minimum',
    'calculate_qty_to_replenish',
    'order_tasks',
    'format_wave_number',
    'WAVE_TRANSITIONS',
    'can_transition'
]
