# picking_replenishment/services/dashboard_service.py
from datetime import datetime
from typing import Dict, Optional

from sqlalchemy.orm import Session

from picking_replenishment.exceptions import SettingsUnavailable
from picking_replenishment.services.fragmentation_service import FragmentationService
from picking_replenishment.services.settings_service import SettingsService
from picking_replenishment.services.stock_service import StockService
from picking_replenishment.services.sync_log_service import SyncLogService
from picking_replenishment.services.wave_service import WaveService


class DashboardService:
    """Per-branch health summary for a company."""

    def __init__(self, session: Session):
        self.session = session

    def next_sync_in_minutes(
        self,
        company_id: int,
        interval_minutes: int,
        now: Optional[datetime] = None
    ) -> float:
        """Minutes until the company is due again, 0 when already due."""
        last_fetch = SyncLogService(self.session).last_successful_fetch(company_id)
        if last_fetch is None:
            return 0.0

        elapsed = ((now or datetime.now()) - last_fetch).total_seconds() / 60.0
        return max(0.0, interval_minutes - elapsed)

    def get_summary(self, company_id: int, now: Optional[datetime] = None) -> Dict:
        """Build the dashboard for a company.

        Returns:
            Dictionary with company level fields and a ``branches`` list
            holding locations, below-min count, health %, latest score and
            last wave time per branch
        """
        try:
            settings = SettingsService(self.session).get_picking_settings(company_id)
            interval = settings.sync_interval_minutes
        except SettingsUnavailable:
            settings = None
            interval = None

        fragmentation = FragmentationService(self.session)
        waves = WaveService(self.session)

        branches = []
        for row in StockService(self.session).get_branch_summary(company_id):
            latest = fragmentation.get_latest(company_id, row['branch'])
            row['score'] = latest.score if latest else None
            row['last_wave_at'] = waves.get_last_wave_time(company_id, row['branch'])
            branches.append(row)

        return {
            'company_id': company_id,
            'has_settings': settings is not None,
            'sync_interval_minutes': interval,
            'next_sync_in_minutes': (
                self.next_sync_in_minutes(company_id, interval, now) if interval is not None else None
            ),
            'branches': branches
        }
