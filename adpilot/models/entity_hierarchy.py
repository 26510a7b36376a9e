"""Campaign > ad group > keyword/ad tree, kept current by syncs and live fetches"""
from sqlalchemy import Column, Integer, String, DateTime, UniqueConstraint, Index
from datetime import datetime

from adpilot.models.base import Base


class EntityHierarchy(Base):
    __tablename__ = "entity_hierarchy"
    __table_args__ = (
        UniqueConstraint('customer_id', 'entity_type', 'entity_id', name='uq_entity_hierarchy_entity'),
        Index('ix_entity_hierarchy_parent', 'customer_id', 'entity_type', 'parent_entity_id'),
    )

    id = Column(Integer, primary_key=True, index=True)
    customer_id = Column(String(20), nullable=False, index=True)
    account_id = Column(Integer, nullable=True)
    entity_type = Column(String(20), nullable=False)
    entity_id = Column(String(64), nullable=False)
    entity_name = Column(String, nullable=True)
    status = Column(String(20), nullable=True)

    parent_entity_type = Column(String(20), nullable=True)
    parent_entity_id = Column(String(64), nullable=True)
    campaign_id = Column(String(64), nullable=True, index=True)
    ad_group_id = Column(String(64), nullable=True, index=True)

    last_updated = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def to_dict(self) -> dict:
        return {
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "entity_name": self.entity_name,
            "status": self.status,
            "parent_entity_type": self.parent_entity_type,
            "parent_entity_id": self.parent_entity_id,
            "campaign_id": self.campaign_id,
            "ad_group_id": self.ad_group_id,
            "last_updated": self.last_updated.isoformat() if self.last_updated else None,
        }
