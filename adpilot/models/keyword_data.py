"""
Keyword research caches

- KeywordMetricsCache: volume/CPC/difficulty per keyword from Google Ads
  Keyword Planner, DataForSEO and Moz, with a popularity based TTL
- KeywordSerpFeatures: SERP composition per keyword (30 day TTL)
"""
from sqlalchemy import Column, Integer, String, Float, Boolean, DateTime, JSON, Text, BigInteger, UniqueConstraint, Index
from sqlalchemy.sql import func
from datetime import datetime

from adpilot.models.base import Base


class KeywordMetricsCache(Base):
    __tablename__ = "keyword_metrics"
    __table_args__ = (
        UniqueConstraint('keyword_normalized', 'locale', 'device', 'location_id', name='uq_keyword_metrics_key'),
        Index('ix_keyword_metrics_expires', 'expires_at'),
    )

    id = Column(Integer, primary_key=True, index=True)
    keyword = Column(String, nullable=False)
    keyword_normalized = Column(String, nullable=False)
    locale = Column(String(10), default="en-US", nullable=False)
    device = Column(String(10), default="desktop", nullable=False)
    location_id = Column(String(10), default="2840", nullable=False)

    # Google Ads Keyword Planner
    gads_search_volume = Column(Integer, nullable=True)
    gads_avg_cpc_micros = Column(BigInteger, nullable=True)
    gads_competition = Column(String(10), nullable=True)
    # LOW, MEDIUM, HIGH
    gads_competition_index = Column(Float, nullable=True)
    gads_fetched_at = Column(DateTime, nullable=True)
    gads_status = Column(String(20), nullable=True)
    # success, not_found, error, quota_exceeded
    gads_error = Column(Text, nullable=True)

    # Moz
    moz_volume = Column(Integer, nullable=True)
    moz_difficulty = Column(Integer, nullable=True)
    moz_organic_ctr = Column(Float, nullable=True)
    moz_priority = Column(Integer, nullable=True)
    moz_fetched_at = Column(DateTime, nullable=True)
    moz_status = Column(String(20), nullable=True)
    moz_error = Column(Text, nullable=True)

    # DataForSEO
    dataforseo_search_volume = Column(Integer, nullable=True)
    dataforseo_cpc = Column(Float, nullable=True)
    dataforseo_competition = Column(Float, nullable=True)
    dataforseo_trends = Column(JSON, nullable=True)
    dataforseo_fetched_at = Column(DateTime, nullable=True)
    dataforseo_status = Column(String(20), nullable=True)
    dataforseo_error = Column(Text, nullable=True)
    dataforseo_kd = Column(Integer, nullable=True)
    # DataForSEO Labs keyword difficulty (0-100)
    dataforseo_kd_fetched_at = Column(DateTime, nullable=True)
    # Labs search intent: informational, navigational, commercial or transactional
    dataforseo_intent = Column(String(20), nullable=True)
    dataforseo_intent_probability = Column(Float, nullable=True)
    dataforseo_intent_fetched_at = Column(DateTime, nullable=True)

    # Best available across providers (Google Ads > DataForSEO > Moz)
    best_search_volume = Column(Integer, nullable=True)
    best_cpc = Column(Float, nullable=True)
    best_difficulty = Column(Integer, nullable=True)
    best_source = Column(String(20), nullable=True)

    cache_hit_count = Column(Integer, default=0, nullable=False)
    last_accessed_at = Column(DateTime, nullable=True)
    ttl_days = Column(Integer, default=30, nullable=False)
    expires_at = Column(DateTime, nullable=False)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def __repr__(self):
        return f"<KeywordMetricsCache '{self.keyword_normalized}' {self.locale}/{self.device}>"


class KeywordSerpFeatures(Base):
    __tablename__ = "keyword_serp_features"
    __table_args__ = (
        UniqueConstraint('keyword_normalized', 'location_id', 'device', name='uq_keyword_serp_key'),
    )

    id = Column(Integer, primary_key=True, index=True)
    keyword = Column(String, nullable=False)
    keyword_normalized = Column(String, nullable=False, index=True)
    location_id = Column(String(10), default="2840", nullable=False)
    device = Column(String(10), default="desktop", nullable=False)

    has_featured_snippet = Column(Boolean, default=False)
    has_knowledge_panel = Column(Boolean, default=False)
    has_local_pack = Column(Boolean, default=False)
    has_people_also_ask = Column(Boolean, default=False)
    has_shopping_results = Column(Boolean, default=False)
    has_related_searches = Column(Boolean, default=False)
    top_ads_count = Column(Integer, default=0)
    bottom_ads_count = Column(Integer, default=0)
    total_ads_count = Column(Integer, default=0)
    organic_results_count = Column(Integer, default=0)
    first_organic_domain = Column(String, nullable=True)
    organic_domains = Column(JSON, nullable=True)

    serp_difficulty = Column(Integer, default=0)
    checked_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    expires_at = Column(DateTime, nullable=False, index=True)
