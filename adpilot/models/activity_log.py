"""Audit trail of changes pushed to Google Ads"""
from sqlalchemy import Column, Integer, String, DateTime, JSON, Text, Index
from sqlalchemy.sql import func

from adpilot.models.base import Base


class ActivityLog(Base):
    __tablename__ = "activity_logs"
    __table_args__ = (
        Index('ix_activity_logs_account_created', 'account_id', 'created_at'),
    )

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, nullable=True, index=True)
    account_id = Column(Integer, nullable=True)
    action_type = Column(String(50), nullable=False)
    # pause_campaign, enable_campaign, update_budget, add_keywords, ...
    entity_type = Column(String(20), nullable=True)
    entity_id = Column(String(64), nullable=True)
    entity_name = Column(String, nullable=True)
    before_value = Column(JSON, nullable=True)
    after_value = Column(JSON, nullable=True)
    status = Column(String(20), default="success", nullable=False)
    error_message = Column(Text, nullable=True)
    source = Column(String(20), default="manual", nullable=False)
    # manual, rule, ai
    created_at = Column(DateTime, server_default=func.now(), nullable=False)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "account_id": self.account_id,
            "action_type": self.action_type,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "entity_name": self.entity_name,
            "before_value": self.before_value,
            "after_value": self.after_value,
            "status": self.status,
            "error_message": self.error_message,
            "source": self.source,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
