# picking_replenishment/services/settings_service.py
import json
from dataclasses import dataclass, field
from typing import List

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from picking_replenishment.config import config
from picking_replenishment.exceptions import SettingsUnavailable
from picking_replenishment.logging_setup import get_logger
from picking_replenishment.models import CompanySettings

logger = get_logger('settings')


@dataclass
class PickingSettings:
    company_id: int
    sync_interval_minutes: int
    active_branches: List[str] = field(default_factory=list)
    use_mock_gateway: bool = True
    api_url: str = ''
    api_key: str = ''


def parse_branches(raw) -> List[str]:
    """Parse the stored JSON list of branch codes.

    Anything unreadable falls back to the configured default branches.
    """
    defaults = list(config.company_defaults['active_branches'])
    if not raw:
        return defaults

    try:
        branches = json.loads(raw)
    except (TypeError, ValueError):
        logger.warning(f"Invalid active branches value {raw!r}, using defaults")
        return defaults

    if not isinstance(branches, list):
        return defaults

    return [str(b).strip() for b in branches if str(b).strip()]


class SettingsService:
    """Read-only view of the per-company replenishment settings."""

    def __init__(self, session: Session):
        self.session = session

    def get_enabled_company_ids(self) -> List[int]:
        """Companies with picking replenishment switched on."""
        rows = self.session.query(CompanySettings.company_id).filter(
            CompanySettings.picking_enabled.is_(True)
        ).order_by(CompanySettings.company_id).all()
        return [row[0] for row in rows]

    def get_picking_settings(self, company_id: int) -> PickingSettings:
        """Load the cadence and gateway settings of a company.

        Raises:
            SettingsUnavailable: No settings row, or the read failed
        """
        try:
            row = self.session.query(CompanySettings).filter(
                CompanySettings.company_id == company_id
            ).first()
        except SQLAlchemyError as e:
            raise SettingsUnavailable(f"Cannot load settings for company {company_id}: {str(e)}")

        if row is None:
            raise SettingsUnavailable(f"No settings found for company {company_id}")

        defaults = config.company_defaults
        interval = row.sync_interval_minutes
        if interval is None:
            interval = defaults['sync_interval_minutes']

        return PickingSettings(
            company_id=company_id,
            sync_interval_minutes=interval,
            active_branches=parse_branches(row.active_branches),
            use_mock_gateway=True if row.use_mock_gateway is None else row.use_mock_gateway,
            api_url=row.gateway_api_url or '',
            api_key=row.gateway_api_key or ''
        )
