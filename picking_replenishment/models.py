# picking_replenishment/models.py
from sqlalchemy import (
    Column, Integer, String, Float, DateTime, Boolean, ForeignKey, Text,
    Index, UniqueConstraint, CheckConstraint
)
from sqlalchemy.orm import declarative_base, relationship
from datetime import datetime
import enum

Base = declarative_base()


class AbcClass(enum.Enum):
    """ABC turnover classification of a picking position.

    Values:
        A: High turnover, replenished first and weighted 3x in scoring
        B: Medium turnover, weighted 2x
        C: Low turnover (also the default for unclassified rows), weighted 1x
    """
    A = 'A'
    B = 'B'
    C = 'C'

    def __str__(self):
        return self.value

    @classmethod
    def from_string(cls, value) -> 'AbcClass':
        """Normalize free text into a class, defaulting to C."""
        try:
            return cls((value or '').strip().upper())
        except ValueError:
            return cls.C


class WaveStatus(str, enum.Enum):
    GENERATED = 'generated'
    SENT = 'sent'
    COMPLETED = 'completed'
    FAILED = 'failed'


class TaskStatus(str, enum.Enum):
    PENDING = 'pending'
    COMPLETED = 'completed'


class TriggerSource(str, enum.Enum):
    SCHEDULER = 'scheduler'
    MANUAL = 'manual'


class SyncType(str, enum.Enum):
    STOCK_FETCH = 'stock_fetch'
    WAVE_SEND = 'wave_send'
    WAVE_COMPLETE = 'wave_complete'


class SyncStatus(str, enum.Enum):
    SUCCESS = 'success'
    ERROR = 'error'


class Company(Base):
    __tablename__ = 'company'

    id = Column(Integer, primary_key=True)
    name = Column(String(100), nullable=False)

    settings = relationship("CompanySettings", back_populates="company", uselist=False)


class CompanySettings(Base):
    """Per-company replenishment settings, maintained by the application."""
    __tablename__ = 'company_settings'

    id = Column(Integer, primary_key=True)
    company_id = Column(Integer, ForeignKey('company.id'), nullable=False, unique=True)

    picking_enabled = Column(Boolean, default=False)
    sync_interval_minutes = Column(Integer, default=30)
    active_branches = Column(Text, default='["01","02","03"]')  # JSON list of branch codes
    use_mock_gateway = Column(Boolean, default=True)
    gateway_api_url = Column(String(255), default='')
    gateway_api_key = Column(String(255), default='')

    company = relationship("Company", back_populates="settings")


class PickingLocation(Base):
    __tablename__ = 'picking_location'

    id = Column(Integer, primary_key=True)
    company_id = Column(Integer, ForeignKey('company.id'), nullable=False)
    branch = Column(String(5), nullable=False)
    location_code = Column(String(20), nullable=False)

    # Parsed from codes like A-01-02-1
    aisle = Column(String(5), default='')
    bay = Column(Integer, default=0)
    level = Column(Integer, default=1)
    position = Column(Integer, default=1)
    zone = Column(String(20), default='picking')
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime, default=datetime.now)

    stock_records = relationship("StockRecord", back_populates="location", cascade="all, delete-orphan")

    __table_args__ = (
        UniqueConstraint('company_id', 'branch', 'location_code', name='uq_location_code'),
        Index('idx_location_company', 'company_id', 'branch'),
    )


class StockRecord(Base):
    """Inventory of one product at one picking location."""
    __tablename__ = 'picking_stock'

    id = Column(Integer, primary_key=True)
    company_id = Column(Integer, ForeignKey('company.id'), nullable=False)
    branch = Column(String(5), nullable=False)
    location_id = Column(Integer, ForeignKey('picking_location.id', ondelete='CASCADE'), nullable=False)
    product_code = Column(String(50), nullable=False)
    description = Column(String(500), default='')

    current_qty = Column(Float, default=0.0)
    min_qty = Column(Float, default=0.0)
    max_qty = Column(Float, default=0.0)
    abc_class = Column(String(1), default='C')

    last_sync_at = Column(DateTime)
    updated_at = Column(DateTime, default=datetime.now, onupdate=datetime.now)

    location = relationship("PickingLocation", back_populates="stock_records")

    __table_args__ = (
        UniqueConstraint('company_id', 'branch', 'location_id', 'product_code', name='uq_stock_position'),
        CheckConstraint('current_qty >= 0', name='ck_stock_current_qty'),
        CheckConstraint('min_qty >= 0', name='ck_stock_min_qty'),
        CheckConstraint('max_qty >= 0', name='ck_stock_max_qty'),
        Index('idx_stock_company', 'company_id', 'branch'),
        Index('idx_stock_low', 'company_id', 'branch', 'current_qty', 'min_qty'),
    )


class ReplenishmentWave(Base):
    __tablename__ = 'replenishment_wave'

    id = Column(Integer, primary_key=True)
    company_id = Column(Integer, ForeignKey('company.id'), nullable=False)
    branch = Column(String(5), nullable=False)
    wave_number = Column(String(30), nullable=False)

    status = Column(String(20), default=WaveStatus.GENERATED.value, nullable=False)
    total_tasks = Column(Integer, default=0)
    completed_tasks = Column(Integer, default=0)
    triggered_by = Column(String(20), default=TriggerSource.SCHEDULER.value)

    generated_at = Column(DateTime, default=datetime.now)
    sent_at = Column(DateTime)
    completed_at = Column(DateTime)

    gateway_response = Column(Text, default='')
    error_message = Column(Text, default='')

    tasks = relationship(
        "ReplenishmentTask",
        back_populates="wave",
        cascade="all, delete-orphan",
        order_by="ReplenishmentTask.sequence"
    )

    __table_args__ = (
        UniqueConstraint('company_id', 'wave_number', name='uq_wave_number'),
        Index('idx_wave_company', 'company_id', 'branch'),
        Index('idx_wave_status', 'company_id', 'status'),
        Index('idx_wave_generated', 'company_id', 'generated_at'),
    )


class ReplenishmentTask(Base):
    __tablename__ = 'replenishment_task'

    id = Column(Integer, primary_key=True)
    wave_id = Column(Integer, ForeignKey('replenishment_wave.id', ondelete='CASCADE'), nullable=False)
    company_id = Column(Integer, ForeignKey('company.id'), nullable=False)
    branch = Column(String(5), nullable=False)
    sequence = Column(Integer, nullable=False)  # position inside the wave, pickers follow it

    product_code = Column(String(50), nullable=False)
    description = Column(String(500), default='')
    location_code = Column(String(20), nullable=False)
    current_qty = Column(Float, default=0.0)
    min_qty = Column(Float, default=0.0)
    qty_to_replenish = Column(Float, default=0.0)
    abc_class = Column(String(1), default='C')
    priority = Column(Integer, default=3)

    status = Column(String(20), default=TaskStatus.PENDING.value, nullable=False)
    external_task_id = Column(String(50), default='')
    created_at = Column(DateTime, default=datetime.now)
    completed_at = Column(DateTime)

    wave = relationship("ReplenishmentWave", back_populates="tasks")

    __table_args__ = (
        Index('idx_task_wave', 'wave_id'),
        Index('idx_task_company', 'company_id', 'branch'),
    )


class FragmentationSample(Base):
    """Append-only history of branch fragmentation scores."""
    __tablename__ = 'fragmentation_history'

    id = Column(Integer, primary_key=True)
    company_id = Column(Integer, ForeignKey('company.id'), nullable=False)
    branch = Column(String(5), nullable=False)
    score = Column(Float, default=0.0)
    locations_below_min = Column(Integer, default=0)
    total_active_locations = Column(Integer, default=0)
    recorded_at = Column(DateTime, default=datetime.now)

    __table_args__ = (
        Index('idx_frag_history', 'company_id', 'branch', 'recorded_at'),
    )


class SyncLogEntry(Base):
    """Append-only audit record of one scheduler action."""
    __tablename__ = 'sync_log'

    id = Column(Integer, primary_key=True)
    company_id = Column(Integer, ForeignKey('company.id'), nullable=False)
    branch = Column(String(5), default='')
    sync_type = Column(String(30), nullable=False)
    status = Column(String(20), nullable=False)
    records_processed = Column(Integer, default=0)
    error_message = Column(Text, default='')
    duration_ms = Column(Integer, default=0)
    synced_at = Column(DateTime, default=datetime.now)

    __table_args__ = (
        Index('idx_sync_log_company', 'company_id', 'synced_at'),
    )
