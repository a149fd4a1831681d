"""
Shared database fixtures for the service-level tests.
"""
import json
from unittest.mock import MagicMock

from picking_replenishment.db import DatabaseConnection
from picking_replenishment.gateway.base import ReplenishmentGateway, WaveAck
from picking_replenishment.models import Company, CompanySettings, StockRecord
from picking_replenishment.services.stock_service import StockService


def make_db():
    """Fresh in-memory SQLite database with all tables."""
    db = DatabaseConnection('sqlite://')
    db.create_all_tables()
    return db


def seed_company(db, company_id=1, enabled=True, interval=30, branches=('01',)):
    with db.session_scope() as session:
        session.add(Company(id=company_id, name=f"Company {company_id}"))
        session.add(CompanySettings(
            company_id=company_id,
            picking_enabled=enabled,
            sync_interval_minutes=interval,
            active_branches=json.dumps(list(branches)),
            use_mock_gateway=True
        ))


def add_position(db, company_id, branch, location_code, product_code,
                 current_qty, min_qty, max_qty, abc_class='C'):
    """Create a picking position and force its current quantity."""
    with db.session_scope() as session:
        record = StockService(session).upsert_stock(
            company_id, branch, location_code, product_code,
            description=f"Product {product_code}",
            min_qty=min_qty,
            max_qty=max_qty,
            abc_class=abc_class
        )
        record.current_qty = current_qty
        return record.id


def get_record(db, record_id):
    with db.session_scope() as session:
        return session.get(StockRecord, record_id)


def mock_gateway(items=None, reference='WMS-REF-1'):
    """Gateway double that reports ``items`` and accepts every wave."""
    gateway = MagicMock(spec=ReplenishmentGateway)
    gateway.fetch_stock.return_value = list(items or [])
    gateway.send_wave.return_value = WaveAck(reference=reference, message='accepted')
    return gateway
