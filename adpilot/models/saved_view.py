"""Saved table views (filters, sorting, columns) per user"""
from sqlalchemy import Column, Integer, String, Boolean, DateTime, ForeignKey, JSON, UniqueConstraint
from sqlalchemy.sql import func

from adpilot.models.base import Base


DEFAULT_SORTING = {"column": "spend", "direction": "desc"}
DEFAULT_COLUMNS = ["name", "status", "spend", "conversions", "cpa"]


class SavedView(Base):
    __tablename__ = "saved_views"
    __table_args__ = (
        UniqueConstraint('user_id', 'name', 'entity_type', name='uq_saved_view_user_name_type'),
    )

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    account_id = Column(Integer, ForeignKey("google_ads_accounts.id", ondelete="CASCADE"), nullable=True)
    # NULL means the view applies to every account
    name = Column(String(100), nullable=False)
    entity_type = Column(String(20), default="campaign", nullable=False)

    filters = Column(JSON, default=dict)
    sorting = Column(JSON, default=lambda: dict(DEFAULT_SORTING))
    columns = Column(JSON, default=lambda: list(DEFAULT_COLUMNS))
    date_preset = Column(String(20), nullable=True)

    is_default = Column(Boolean, default=False)
    is_pinned = Column(Boolean, default=False)
    icon = Column(String(50), nullable=True)
    color = Column(String(20), nullable=True)

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "entity_type": self.entity_type,
            "account_id": self.account_id,
            "filters": self.filters or {},
            "sorting": self.sorting or dict(DEFAULT_SORTING),
            "columns": self.columns or list(DEFAULT_COLUMNS),
            "date_preset": self.date_preset,
            "is_default": bool(self.is_default),
            "is_pinned": bool(self.is_pinned),
            "icon": self.icon,
            "color": self.color,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }
