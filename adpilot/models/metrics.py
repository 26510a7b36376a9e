"""
Metrics cache models

Daily performance facts per Google Ads entity plus per-entity-type sync
bookkeeping. Dashboard reads are served from here when the sync is fresh.
"""
from sqlalchemy import Column, Integer, String, Float, DateTime, Date, Text, BigInteger, JSON, UniqueConstraint, Index
from datetime import datetime

from adpilot.models.base import Base


ENTITY_TYPES = ("ACCOUNT", "CAMPAIGN", "AD_GROUP", "KEYWORD", "AD")
SYNC_STATUSES = ("PENDING", "IN_PROGRESS", "COMPLETED", "FAILED")


class MetricsFact(Base):
    """One day of metrics for one entity"""
    __tablename__ = "metrics_facts"
    __table_args__ = (
        UniqueConstraint('customer_id', 'entity_type', 'entity_id', 'date', name='uq_metrics_fact_entity_date'),
        Index('ix_metrics_fact_lookup', 'customer_id', 'entity_type', 'date'),
    )

    id = Column(Integer, primary_key=True, index=True)
    customer_id = Column(String(20), nullable=False)
    account_id = Column(Integer, nullable=True, index=True)
    entity_type = Column(String(20), nullable=False)
    entity_id = Column(String(64), nullable=False)
    parent_entity_id = Column(String(64), nullable=True, index=True)
    entity_name = Column(String, nullable=True)
    date = Column(Date, nullable=False)

    impressions = Column(BigInteger, default=0)
    clicks = Column(BigInteger, default=0)
    cost_micros = Column(BigInteger, default=0)
    conversions = Column(Float, default=0.0)
    conversions_value = Column(Float, default=0.0)
    ctr = Column(Float, default=0.0)
    # 0-1 decimal, reported to clients as a percentage
    average_cpc = Column(Float, default=0.0)

    currency_code = Column(String(3), default="USD")
    data_freshness = Column(String(20), default="FRESH")
    synced_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    def __repr__(self):
        return f"<MetricsFact {self.entity_type}:{self.entity_id} {self.date}>"


class SyncMetadata(Base):
    """Last sync outcome per (customer, entity type)"""
    __tablename__ = "sync_metadata"
    __table_args__ = (
        UniqueConstraint('customer_id', 'entity_type', name='uq_sync_metadata_customer_type'),
    )

    id = Column(Integer, primary_key=True, index=True)
    customer_id = Column(String(20), nullable=False, index=True)
    entity_type = Column(String(20), nullable=False)

    last_sync_status = Column(String(20), default="PENDING", nullable=False)
    last_sync_started = Column(DateTime, nullable=True)
    last_sync_completed = Column(DateTime, nullable=True)
    last_synced_date = Column(Date, nullable=True)
    rows_written = Column(Integer, default=0)
    last_sync_error = Column(Text, nullable=True)
    backfill_progress = Column(JSON, nullable=True)
    # {"start": "YYYY-MM-DD", "end": "YYYY-MM-DD", "days": n}

    def __repr__(self):
        return f"<SyncMetadata {self.customer_id}/{self.entity_type} {self.last_sync_status}>"
