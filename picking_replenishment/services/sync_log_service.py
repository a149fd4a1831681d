# picking_replenishment/services/sync_log_service.py
from datetime import datetime
from typing import List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from picking_replenishment.models import SyncLogEntry, SyncStatus, SyncType


class SyncLogService:
    """Append-only audit trail of scheduler actions."""

    def __init__(self, session: Session):
        self.session = session

    def record(
        self,
        company_id: int,
        branch: str,
        sync_type: SyncType,
        status: SyncStatus,
        records_processed: int = 0,
        error_message: str = '',
        duration_ms: int = 0,
        synced_at: Optional[datetime] = None
    ) -> SyncLogEntry:
        """Append an audit entry; flushed with the caller's session."""
        entry = SyncLogEntry(
            company_id=company_id,
            branch=branch or '',
            sync_type=SyncType(sync_type).value,
            status=SyncStatus(status).value,
            records_processed=records_processed,
            error_message=error_message or '',
            duration_ms=duration_ms,
            synced_at=synced_at or datetime.now()
        )
        self.session.add(entry)
        self.session.flush()
        return entry

    def last_successful_fetch(self, company_id: int) -> Optional[datetime]:
        """Time of the company's last successful stock fetch, if any.

        This is what the scheduler uses as its cadence clock, so restarts
        don't re-trigger syncs that already ran.
        """
        return self.session.query(func.max(SyncLogEntry.synced_at)).filter(
            SyncLogEntry.company_id == company_id,
            SyncLogEntry.sync_type == SyncType.STOCK_FETCH.value,
            SyncLogEntry.status == SyncStatus.SUCCESS.value
        ).scalar()

    def get_recent(
        self,
        company_id: int,
        limit: int = 50,
        sync_type: Optional[SyncType] = None
    ) -> List[SyncLogEntry]:
        query = self.session.query(SyncLogEntry).filter(SyncLogEntry.company_id == company_id)

        if sync_type is not None:
            query = query.filter(SyncLogEntry.sync_type == SyncType(sync_type).value)

        return query.order_by(SyncLogEntry.synced_at.desc(), SyncLogEntry.id.desc()).limit(limit).all()
