# picking_replenishment/services/fragmentation_service.py
from collections import OrderedDict
from datetime import datetime, timedelta
from typing import Dict, List, Optional

from sqlalchemy.orm import Session

from picking_replenishment.core.fragmentation import (
    calculate_fragmentation_score, fragmentation_trend, summarize_scores
)
from picking_replenishment.logging_setup import get_logger
from picking_replenishment.models import FragmentationSample
from picking_replenishment.services.stock_service import StockService

logger = get_logger('fragmentation')


class FragmentationService:
    """Records and reports the branch fragmentation score."""

    def __init__(self, session: Session):
        self.session = session
        self.stock_service = StockService(session)

    def record_sample(
        self,
        company_id: int,
        branch: str,
        recorded_at: Optional[datetime] = None
    ) -> FragmentationSample:
        """Score the branch from current stock and append a sample.

        Samples are never updated, so the table is a time series.
        """
        result = calculate_fragmentation_score(
            self.stock_service.get_scoring_inputs(company_id, branch)
        )

        sample = FragmentationSample(
            company_id=company_id,
            branch=branch,
            score=result.score,
            locations_below_min=result.locations_below_min,
            total_active_locations=result.total_active_locations,
            recorded_at=recorded_at or datetime.now()
        )
        self.session.add(sample)
        self.session.flush()

        logger.debug(
            f"company={company_id} branch={branch}: fragmentation {sample.score:.1f} "
            f"({sample.locations_below_min}/{sample.total_active_locations} below min)"
        )
        return sample

    def get_latest(self, company_id: int, branch: str) -> Optional[FragmentationSample]:
        return self.session.query(FragmentationSample).filter(
            FragmentationSample.company_id == company_id,
            FragmentationSample.branch == branch
        ).order_by(FragmentationSample.recorded_at.desc(), FragmentationSample.id.desc()).first()

    def get_history(
        self,
        company_id: int,
        branch: Optional[str] = None,
        days: int = 30,
        now: Optional[datetime] = None
    ) -> Dict[str, List[FragmentationSample]]:
        """Samples of the last ``days`` days grouped by branch, oldest first."""
        since = (now or datetime.now()) - timedelta(days=days)

        query = self.session.query(FragmentationSample).filter(
            FragmentationSample.company_id == company_id,
            FragmentationSample.recorded_at > since
        )
        if branch:
            query = query.filter(FragmentationSample.branch == branch)

        samples = query.order_by(
            FragmentationSample.branch,
            FragmentationSample.recorded_at.asc(),
            FragmentationSample.id.asc()
        ).all()

        by_branch = OrderedDict()
        for sample in samples:
            by_branch.setdefault(sample.branch, []).append(sample)
        return by_branch

    def get_trend_report(
        self,
        company_id: int,
        branch: Optional[str] = None,
        days: int = 30,
        now: Optional[datetime] = None
    ) -> List[Dict]:
        """Per-branch score statistics and trend slope (points per day)."""
        report = []
        for branch_code, samples in self.get_history(company_id, branch, days, now).items():
            stats = summarize_scores([s.score for s in samples])
            stats['branch'] = branch_code
            stats['trend_per_day'] = fragmentation_trend([(s.recorded_at, s.score) for s in samples])
            report.append(stats)
        return report
