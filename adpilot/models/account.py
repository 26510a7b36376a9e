"""
Google Ads account connections

One row per (user, Google Ads customer). OAuth tokens are stored per account
so a single user can manage accounts under different Google logins.
"""
from sqlalchemy import Column, Integer, String, Boolean, DateTime, ForeignKey, Text, UniqueConstraint
from sqlalchemy.sql import func

from adpilot.models.base import Base


class GoogleAdsAccount(Base):
    __tablename__ = "google_ads_accounts"
    __table_args__ = (
        UniqueConstraint('user_id', 'google_account_id', name='uq_google_ads_account_user'),
    )

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)

    google_account_id = Column(String(20), nullable=False, index=True)
    # Customer id without dashes, e.g. 1234567890
    account_name = Column(String, nullable=True)
    currency_code = Column(String(3), default="USD")
    is_manager = Column(Boolean, default=False)
    parent_manager_id = Column(String(20), nullable=True)
    # MCC used as login-customer-id for this account

    access_token = Column(Text, nullable=True)
    refresh_token = Column(Text, nullable=True)
    token_expires_at = Column(DateTime, nullable=True)

    status = Column(String(20), default="active", nullable=False)
    # active, disconnected
    last_sync_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    def __repr__(self):
        return f"<GoogleAdsAccount {self.google_account_id} ({self.account_name})>"
