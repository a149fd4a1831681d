# picking_replenishment/services/stock_service.py
import csv
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Tuple

from sqlalchemy import and_, case, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from picking_replenishment.core.waves import TaskCandidate, abc_priority, is_below_minimum
from picking_replenishment.exceptions import PersistenceWriteFailed, ValidationError
from picking_replenishment.gateway.base import StockItem
from picking_replenishment.logging_setup import get_logger
from picking_replenishment.models import AbcClass, PickingLocation, StockRecord

logger = get_logger('stock')

IMPORT_COLUMNS = 7


def _below_minimum_filter():
    return and_(StockRecord.current_qty <= StockRecord.min_qty, StockRecord.min_qty > 0)


def parse_location_code(location_code: str) -> Dict:
    """Split a code like ``A-01-02-1`` into aisle, bay, level and position.

    Missing or non-numeric parts keep their defaults (bay 0, level 1,
    position 1).
    """
    parts = location_code.split('-')
    parsed = {'aisle': parts[0] if parts else '', 'bay': 0, 'level': 1, 'position': 1}

    for key, index in (('bay', 1), ('level', 2), ('position', 3)):
        if len(parts) > index:
            try:
                parsed[key] = int(parts[index])
            except ValueError:
                pass

    return parsed


class StockService:
    """Reads and writes the per-location picking stock store."""

    def __init__(self, session: Session):
        self.session = session

    def list_locations(self, company_id: int, branch: Optional[str] = None) -> List[Dict]:
        """Picking positions with their occupancy, A class first.

        Within a class positions are ordered by location code. Occupancy is
        current_qty / max_qty * 100, or 0 for positions without a maximum.

        Args:
            company_id: Company ID
            branch: Optional branch filter

        Returns:
            List of position dictionaries
        """
        class_order = case(
            (StockRecord.abc_class == AbcClass.A.value, 1),
            (StockRecord.abc_class == AbcClass.B.value, 2),
            else_=3
        )
        query = self.session.query(StockRecord, PickingLocation.location_code).join(
            PickingLocation, PickingLocation.id == StockRecord.location_id
        ).filter(StockRecord.company_id == company_id)

        if branch:
            query = query.filter(StockRecord.branch == branch)

        rows = query.order_by(class_order, PickingLocation.location_code, StockRecord.id).all()

        locations = []
        for record, location_code in rows:
            occupancy = record.current_qty / record.max_qty * 100.0 if record.max_qty > 0 else 0.0
            locations.append({
                'id': record.id,
                'location_id': record.location_id,
                'branch': record.branch,
                'location_code': location_code,
                'product_code': record.product_code,
                'description': record.description or '',
                'current_qty': record.current_qty,
                'min_qty': record.min_qty,
                'max_qty': record.max_qty,
                'abc_class': record.abc_class,
                'occupancy_pct': occupancy,
                'below_min': is_below_minimum(record.current_qty, record.min_qty),
                'last_sync_at': record.last_sync_at
            })
        return locations

    def _write_stock_item(self, company_id: int, branch: str, item: StockItem, now: datetime) -> int:
        qty = float(item.current_qty)
        if qty < 0:
            logger.warning(f"Negative quantity {qty} reported for {item.product_code} in branch {branch}, storing 0")
            qty = 0.0

        query = self.session.query(StockRecord).filter(
            StockRecord.company_id == company_id,
            StockRecord.branch == branch,
            StockRecord.product_code == item.product_code
        )

        if item.location_code:
            location_ids = select(PickingLocation.id).where(
                PickingLocation.company_id == company_id,
                PickingLocation.branch == branch,
                PickingLocation.location_code == item.location_code
            )
            query = query.filter(StockRecord.location_id.in_(location_ids))

        return query.update(
            {
                StockRecord.current_qty: qty,
                StockRecord.last_sync_at: now,
                StockRecord.updated_at: now
            },
            synchronize_session=False
        )

    def apply_stock_levels(
        self,
        company_id: int,
        branch: str,
        items: Iterable[StockItem],
        now: Optional[datetime] = None
    ) -> Dict:
        """Store the quantities reported by the gateway.

        Only existing rows are updated; items without a matching stock row
        are skipped. Each row is written in its own savepoint so one failing
        write does not undo the others.

        Args:
            company_id: Company ID
            branch: Branch code
            items: Stock items reported by the gateway
            now: Sync timestamp (defaults to the current time)

        Returns:
            Dictionary with received, updated, skipped and failed counts
        """
        now = now or datetime.now()
        results = {'received': 0, 'updated': 0, 'skipped': 0, 'failed': 0}

        for item in items:
            results['received'] += 1
            try:
                with self.session.begin_nested():
                    updated = self._write_stock_item(company_id, branch, item, now)
            except SQLAlchemyError as e:
                error = PersistenceWriteFailed(
                    f"Stock update failed for product {item.product_code}: {str(e)}",
                    details={'company_id': company_id, 'branch': branch}
                )
                logger.error(str(error))
                results['failed'] += 1
                continue

            if updated:
                results['updated'] += updated
            else:
                results['skipped'] += 1

        return results

    def count_below_minimum(self, company_id: int, branch: str) -> int:
        return self.session.query(func.count(StockRecord.id)).filter(
            StockRecord.company_id == company_id,
            StockRecord.branch == branch,
            _below_minimum_filter()
        ).scalar() or 0

    def get_scoring_inputs(self, company_id: int, branch: str) -> List[Tuple[float, float, str]]:
        """(current_qty, min_qty, abc_class) of every position with a minimum."""
        rows = self.session.query(
            StockRecord.current_qty, StockRecord.min_qty, StockRecord.abc_class
        ).filter(
            StockRecord.company_id == company_id,
            StockRecord.branch == branch,
            StockRecord.min_qty > 0
        ).all()
        return [(row[0], row[1], row[2]) for row in rows]

    def get_below_minimum_candidates(self, company_id: int, branch: str) -> List[TaskCandidate]:
        """Below-minimum positions joined to their location code."""
        rows = self.session.query(StockRecord, PickingLocation.location_code).join(
            PickingLocation, PickingLocation.id == StockRecord.location_id
        ).filter(
            StockRecord.company_id == company_id,
            StockRecord.branch == branch,
            _below_minimum_filter()
        ).order_by(StockRecord.id).all()

        return [
            TaskCandidate(
                product_code=record.product_code,
                description=record.description or '',
                location_code=location_code,
                current_qty=record.current_qty,
                min_qty=record.min_qty,
                max_qty=record.max_qty,
                abc_class=record.abc_class or AbcClass.C.value,
                priority=abc_priority(record.abc_class)
            )
            for record, location_code in rows
        ]

    def refill_locations(
        self,
        company_id: int,
        branch: str,
        location_codes: Iterable[str],
        now: Optional[datetime] = None
    ) -> int:
        """Set every stock record at the given locations back to max_qty.

        Returns:
            Number of stock records refilled
        """
        codes = sorted(set(location_codes))
        if not codes:
            return 0

        now = now or datetime.now()
        location_ids = select(PickingLocation.id).where(
            PickingLocation.company_id == company_id,
            PickingLocation.branch == branch,
            PickingLocation.location_code.in_(codes)
        )

        return self.session.query(StockRecord).filter(
            StockRecord.company_id == company_id,
            StockRecord.branch == branch,
            StockRecord.location_id.in_(location_ids)
        ).update(
            {
                StockRecord.current_qty: StockRecord.max_qty,
                StockRecord.last_sync_at: now,
                StockRecord.updated_at: now
            },
            synchronize_session=False
        )

    def _upsert_location(self, company_id: int, branch: str, location_code: str) -> PickingLocation:
        location = self.session.query(PickingLocation).filter(
            PickingLocation.company_id == company_id,
            PickingLocation.branch == branch,
            PickingLocation.location_code == location_code
        ).first()

        parsed = parse_location_code(location_code)
        if location is None:
            location = PickingLocation(
                company_id=company_id,
                branch=branch,
                location_code=location_code,
                **parsed
            )
            self.session.add(location)
        else:
            for key, value in parsed.items():
                setattr(location, key, value)

        self.session.flush()
        return location

    def upsert_stock(
        self,
        company_id: int,
        branch: str,
        location_code: str,
        product_code: str,
        description: str = '',
        min_qty: float = 0.0,
        max_qty: float = 0.0,
        abc_class: str = 'C',
        now: Optional[datetime] = None
    ) -> StockRecord:
        """Create or update a picking position from master data.

        New positions start full (current_qty = max_qty); existing ones keep
        their current quantity and get the new limits and class.
        """
        if min_qty < 0 or max_qty < 0:
            raise ValidationError(
                f"min_qty and max_qty must be non-negative for {product_code} at {location_code}"
            )

        now = now or datetime.now()
        abc = AbcClass.from_string(abc_class).value
        location = self._upsert_location(company_id, branch, location_code)

        record = self.session.query(StockRecord).filter(
            StockRecord.company_id == company_id,
            StockRecord.branch == branch,
            StockRecord.location_id == location.id,
            StockRecord.product_code == product_code
        ).first()

        if record is None:
            record = StockRecord(
                company_id=company_id,
                branch=branch,
                location_id=location.id,
                product_code=product_code,
                description=description,
                current_qty=max_qty,
                min_qty=min_qty,
                max_qty=max_qty,
                abc_class=abc,
                last_sync_at=now
            )
            self.session.add(record)
        else:
            record.description = description
            record.min_qty = min_qty
            record.max_qty = max_qty
            record.abc_class = abc

        self.session.flush()
        return record

    def import_locations(self, company_id: int, lines: Iterable[str]) -> Dict:
        """Import picking positions from a semicolon separated file.

        Columns: branch; location; product; description; min; max; abc.
        The first line is a header. Bad lines are skipped and reported.

        Returns:
            Dictionary with imported and skipped counts and error messages
        """
        reader = csv.reader(lines, delimiter=';', skipinitialspace=True)
        results = {'imported': 0, 'skipped': 0, 'errors': []}

        header = next(reader, None)
        if header is None:
            results['errors'].append("Empty file")
            return results

        for line_num, record in enumerate(reader, start=2):
            if len(record) < IMPORT_COLUMNS:
                results['skipped'] += 1
                continue

            branch, location_code, product_code, description = (value.strip() for value in record[:4])
            if not branch or not location_code or not product_code:
                results['skipped'] += 1
                continue

            try:
                min_qty = float(record[4].strip().replace(',', '.') or 0)
                max_qty = float(record[5].strip().replace(',', '.') or 0)
            except ValueError:
                results['errors'].append(f"Line {line_num}: invalid quantity")
                results['skipped'] += 1
                continue

            try:
                with self.session.begin_nested():
                    self.upsert_stock(
                        company_id, branch, location_code, product_code,
                        description=description,
                        min_qty=min_qty,
                        max_qty=max_qty,
                        abc_class=record[6]
                    )
            except (SQLAlchemyError, ValidationError) as e:
                results['errors'].append(f"Line {line_num}: {str(e)}")
                results['skipped'] += 1
                continue

            results['imported'] += 1

        logger.info(
            f"Imported {results['imported']} picking positions for company {company_id} "
            f"({results['skipped']} skipped)"
        )
        return results

    def get_branch_summary(self, company_id: int) -> List[Dict]:
        """Location counts and health percentage per branch."""
        below_min = func.sum(case((_below_minimum_filter(), 1), else_=0))
        rows = self.session.query(
            StockRecord.branch,
            func.count(StockRecord.id),
            below_min
        ).filter(
            StockRecord.company_id == company_id
        ).group_by(StockRecord.branch).order_by(StockRecord.branch).all()

        summary = []
        for branch, total, short in rows:
            short = int(short or 0)
            health = (total - short) / total * 100.0 if total else 0.0
            summary.append({
                'branch': branch,
                'total_locations': total,
                'below_min': short,
                'health_pct': health
            })
        return summary
