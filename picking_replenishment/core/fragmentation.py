# picking_replenishment/core/fragmentation.py
from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, List, Optional, Sequence, Tuple

import numpy as np

MAX_SCORE = 100.0

ABC_WEIGHTS = {
    'A': 3.0,
    'B': 2.0,
}
DEFAULT_WEIGHT = 1.0


@dataclass(frozen=True)
class FragmentationResult:
    score: float
    locations_below_min: int
    total_active_locations: int


def abc_weight(abc_class: Optional[str]) -> float:
    """Scoring weight for an ABC class; anything but A or B weighs 1."""
    return ABC_WEIGHTS.get((abc_class or '').strip().upper(), DEFAULT_WEIGHT)


def shortage_pct(current_qty: float, min_qty: float) -> float:
    """Shortage of a location as a percentage of its minimum.

    0 when at or above the minimum, 100 when the location is empty.

    Args:
        current_qty: Quantity currently in the location
        min_qty: Minimum quantity, must be positive

    Returns:
        Shortage percentage in [0, 100]
    """
    if min_qty <= 0:
        return 0.0

    return max(0.0, (min_qty - current_qty) / min_qty) * 100.0


def calculate_fragmentation_score(
    records: Iterable[Tuple[float, float, Optional[str]]]
) -> FragmentationResult:
    """Calculate the weighted fragmentation score of a branch.

    Only records with a positive minimum take part. Each contributes its
    shortage percentage weighted by ABC class (A=3, B=2, other=1); the score
    is the weighted mean, capped at 100. Lower is healthier.

    Args:
        records: Iterable of (current_qty, min_qty, abc_class)

    Returns:
        FragmentationResult with score and location counts
    """
    shortages = []
    weights = []
    below_min = 0

    for current_qty, min_qty, abc_class in records:
        current_qty = float(current_qty or 0.0)
        min_qty = float(min_qty or 0.0)
        if min_qty <= 0:
            continue

        shortages.append(shortage_pct(current_qty, min_qty))
        weights.append(abc_weight(abc_class))
        if current_qty <= min_qty:
            below_min += 1

    if not weights:
        return FragmentationResult(0.0, 0, 0)

    score = float(np.average(shortages, weights=weights))

    return FragmentationResult(
        score=min(score, MAX_SCORE),
        locations_below_min=below_min,
        total_active_locations=len(weights)
    )


def fragmentation_trend(samples: Sequence[Tuple[datetime, float]]) -> float:
    """Least-squares slope of a score series, in score points per day.

    Positive means the branch is getting more depleted. Fewer than two
    samples, or samples all taken at the same instant, give 0.
    """
    if len(samples) < 2:
        return 0.0

    origin = samples[0][0]
    days = np.array([(ts - origin).total_seconds() / 86400.0 for ts, _ in samples])
    scores = np.array([score for _, score in samples], dtype=float)

    if np.ptp(days) == 0:
        return 0.0

    slope, _intercept = np.polyfit(days, scores, 1)
    return float(slope)


def summarize_scores(scores: List[float]) -> dict:
    """Basic statistics over a list of scores for reporting."""
    if not scores:
        return {'samples': 0, 'latest': 0.0, 'mean': 0.0, 'min': 0.0, 'max': 0.0}

    values = np.array(scores, dtype=float)
    return {
        'samples': int(values.size),
        'latest': float(values[-1]),
        'mean': float(values.mean()),
        'min': float(values.min()),
        'max': float(values.max())
    }
