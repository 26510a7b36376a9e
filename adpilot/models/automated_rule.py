"""
Automated rule models

Rules (conditions + actions on a schedule), their execution history and the
per-user guardrail settings applied before any change reaches Google Ads.
"""
from sqlalchemy import Column, Integer, String, Float, Boolean, DateTime, ForeignKey, JSON, Text
from sqlalchemy.sql import func
from datetime import datetime

from adpilot.models.base import Base


class AutomatedRule(Base):
    __tablename__ = "automated_rules"

    id = Column(Integer, primary_key=True, index=True)
    account_id = Column(Integer, ForeignKey("google_ads_accounts.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)

    name = Column(String(200), nullable=False)
    description = Column(Text, nullable=True)
    entity_type = Column(String(20), nullable=False)
    # campaign, ad_group, keyword
    entity_filter = Column(JSON, nullable=True)
    # {"ids": [...], "name_contains": "...", "status_in": [...]}
    conditions = Column(JSON, nullable=False)
    actions = Column(JSON, nullable=False)
    schedule = Column(String(20), nullable=False, default="daily")

    enabled = Column(Boolean, default=True)
    status = Column(String(20), default="active", nullable=False)
    # active, paused, error
    last_error = Column(Text, nullable=True)
    last_run = Column(DateTime, nullable=True)
    next_run = Column(DateTime, nullable=True, index=True)
    run_count = Column(Integer, default=0)

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "account_id": self.account_id,
            "name": self.name,
            "description": self.description,
            "entity_type": self.entity_type,
            "entity_filter": self.entity_filter,
            "conditions": self.conditions or [],
            "actions": self.actions or [],
            "schedule": self.schedule,
            "enabled": bool(self.enabled),
            "status": self.status,
            "last_error": self.last_error,
            "last_run": self.last_run.isoformat() if self.last_run else None,
            "next_run": self.next_run.isoformat() if self.next_run else None,
            "run_count": self.run_count or 0,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }


class RuleExecutionRecord(Base):
    __tablename__ = "rule_executions"

    id = Column(Integer, primary_key=True, index=True)
    rule_id = Column(Integer, ForeignKey("automated_rules.id", ondelete="CASCADE"), nullable=False, index=True)
    executed_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    status = Column(String(20), nullable=False)
    # success, partial_success, failed
    entities_evaluated = Column(Integer, default=0)
    entities_matched = Column(Integer, default=0)
    actions_taken = Column(JSON, default=list)
    errors = Column(JSON, default=list)
    dry_run = Column(Boolean, default=False)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "rule_id": self.rule_id,
            "executed_at": self.executed_at.isoformat() if self.executed_at else None,
            "status": self.status,
            "entities_evaluated": self.entities_evaluated or 0,
            "entities_matched": self.entities_matched or 0,
            "actions_taken": self.actions_taken or [],
            "errors": self.errors or [],
            "dry_run": bool(self.dry_run),
        }


class GuardrailSetting(Base):
    """Per-user overrides of the default guardrail settings"""
    __tablename__ = "guardrail_settings"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, unique=True)
    enabled = Column(Boolean, default=True)
    allow_pause_all = Column(Boolean, default=False)
    allow_zero_budget = Column(Boolean, default=False)
    max_budget_change_percent = Column(Float, default=50.0)
    warn_on_high_performer_pause = Column(Boolean, default=True)
    high_performer_threshold = Column(Float, default=80.0)
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())
