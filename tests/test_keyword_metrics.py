"""
Keyword metrics enrichment tests.

Guards against:
1. Paying a provider twice for a keyword that is already cached
2. DataForSEO or Moz numbers overriding Google Ads Keyword Planner data
3. Failed lookups being served as cache hits
4. Enrichment proceeding past the Google Ads or DataForSEO quota
5. Popular keywords expiring before the background refresh picks them up
"""
import asyncio
from datetime import datetime, timedelta

import pytest

from conftest import FakeDataForSEO, FakeGoogleAds, FakeMoz

from adpilot.models.keyword_data import KeywordMetricsCache
from adpilot.services.keyword_metrics import (
    KeywordMetricsService,
    QuotaTracker,
    calculate_opportunity_score,
    dynamic_ttl_days,
)
from adpilot.utils.response_cache import response_cache

PLANNER = {
    "running shoes": {
        "search_volume": 5000,
        "avg_cpc_micros": 2_500_000,
        "competition": "LOW",
        "competition_index": 20,
    }
}


def _service(db, google_ads=None, dataforseo=None, moz=None):
    return KeywordMetricsService(db, google_ads, dataforseo or FakeDataForSEO(), moz or FakeMoz())


# ---------------------------------------------------------------------------
# Scoring and TTL
# ---------------------------------------------------------------------------

def test_opportunity_score():
    assert calculate_opportunity_score(
        {"search_volume": 5000, "competition": "LOW", "difficulty": 25, "cpc": 2.5}
    ) == 90
    assert calculate_opportunity_score(
        {"search_volume": 50000, "competition": "HIGH", "difficulty": 80, "cpc": 0.2}
    ) == 55
    assert calculate_opportunity_score({}) == 0


def test_dynamic_ttl():
    assert dynamic_ttl_days(0) == 30
    assert dynamic_ttl_days(5) == 14
    assert dynamic_ttl_days(10) == 14
    assert dynamic_ttl_days(11) == 7


# ---------------------------------------------------------------------------
# Enrichment
# ---------------------------------------------------------------------------

def test_google_ads_enrichment_is_cached(db):
    google_ads = FakeGoogleAds(planner=PLANNER)
    service = _service(db, google_ads)

    first = asyncio.run(service.enrich(["running shoes"]))
    entry = first["enriched"]["running shoes"]
    assert entry["metrics"]["search_volume"] == 5000
    assert entry["metrics"]["cpc"] == 2.5
    assert entry["metrics"]["competition"] == "LOW"
    assert entry["metrics"]["data_source"] == "google_ads"
    assert entry["opportunity_score"] == 70
    assert first["stats"]["google_fetched"] == 1

    second = asyncio.run(service.enrich(["running shoes"]))
    assert second["stats"]["cached"] == 1
    assert len([c for c in google_ads.calls if c[0] == "fetch_keyword_planner_metrics"]) == 1


def test_database_tier_counts_hits(db):
    service = _service(db, FakeGoogleAds(planner=PLANNER))
    asyncio.run(service.enrich(["running shoes"]))
    response_cache.clear()

    hits, misses = service.lookup_cache(["Running Shoes", "trail shoes"])
    assert list(hits) == ["Running Shoes"]
    assert misses == ["trail shoes"]
    row = db.query(KeywordMetricsCache).one()
    assert row.cache_hit_count == 1


def test_dataforseo_fills_in_without_google_ads(db):
    dataforseo = FakeDataForSEO(volumes={"trail shoes": {"search_volume": 800, "cpc": 1.2, "competition": 0.5}})
    service = _service(db, None, dataforseo)

    result = asyncio.run(service.enrich(["trail shoes", "unknown phrase"], ["google_ads", "dataforseo"]))
    metrics = result["enriched"]["trail shoes"]["metrics"]
    assert metrics["data_source"] == "dataforseo"
    assert metrics["competition"] == "MEDIUM"
    assert result["stats"]["dataforseo_fetched"] == 1
    assert result["stats"]["failed"] == 1
    assert result["stats"]["errors"][0] == {"provider": "google_ads", "error": "No Google Ads account connected"}


def test_provider_precedence(db):
    service = _service(db)
    service.store("running shoes", {"moz": {"volume": 100, "difficulty": 45}})
    entry = service.store("running shoes", {"dataforseo": {"search_volume": 900, "cpc": 1.1, "competition": 0.2}})
    assert entry["metrics"]["data_source"] == "dataforseo"
    assert entry["metrics"]["search_volume"] == 900
    assert entry["metrics"]["difficulty"] == 45

    entry = service.store("running shoes", {"google_ads": PLANNER["running shoes"]})
    assert entry["metrics"]["data_source"] == "google_ads"
    assert entry["metrics"]["search_volume"] == 5000


def test_failures_are_not_cache_hits(db):
    service = _service(db)
    service.record_failure("running shoes", "google_ads", "quota exceeded")
    hits, misses = service.lookup_cache(["running shoes"])
    assert hits == {}
    assert misses == ["running shoes"]
    assert db.query(KeywordMetricsCache).one().gads_error == "quota exceeded"


def test_keyword_difficulty_is_cached(db):
    dataforseo = FakeDataForSEO(difficulty={"running shoes": 42})
    service = _service(db, dataforseo=dataforseo)

    first = asyncio.run(service.get_keyword_difficulty(["Running Shoes", "nothing here"]))
    assert first["results"]["Running Shoes"] == {"keyword": "Running Shoes", "difficulty": 42, "cached": False}
    assert first["results"]["nothing here"]["error"] == "No data"
    assert first["stats"]["fetched"] == 1
    assert first["stats"]["failed"] == 1

    second = asyncio.run(service.get_keyword_difficulty(["Running Shoes"]))
    assert second["results"]["Running Shoes"]["cached"] is True
    assert second["stats"]["estimated_cost"] == 0
    assert len(dataforseo.calls) == 1


def test_cleanup_keeps_difficulty_rows(db):
    past = datetime.utcnow() - timedelta(days=1)
    db.add(KeywordMetricsCache(keyword="a", keyword_normalized="a", expires_at=past))
    db.add(KeywordMetricsCache(keyword="b", keyword_normalized="b", expires_at=past, dataforseo_kd=30))
    db.commit()
    assert _service(db).cleanup_expired() == 1


def _cached_row(db, keyword, hits, expires_in):
    row = KeywordMetricsCache(keyword=keyword, keyword_normalized=keyword, cache_hit_count=hits,
                              expires_at=datetime.utcnow() + expires_in)
    db.add(row)
    db.commit()
    return row


# ---------------------------------------------------------------------------
# Popular keyword refresh and search intent
# ---------------------------------------------------------------------------

def test_keywords_due_for_refresh_are_popular_and_expiring(db):
    _cached_row(db, "trail shoes", 6, timedelta(days=1))
    _cached_row(db, "rarely used", 2, timedelta(days=1))
    _cached_row(db, "not yet due", 9, timedelta(days=5))
    _cached_row(db, "already expired", 8, timedelta(hours=-1))
    _cached_row(db, "running shoes", 10, timedelta(hours=12))

    due = _service(db).keywords_due_for_refresh()
    assert [r.keyword for r in due] == ["running shoes", "trail shoes"]


def test_refresh_popular_refetches_and_keeps_hit_counts(db):
    _cached_row(db, "trail shoes", 6, timedelta(days=1))
    _cached_row(db, "road shoes", 5, timedelta(days=1))
    dataforseo = FakeDataForSEO(volumes={"trail shoes": {"search_volume": 800, "cpc": 1.2, "competition": 0.5}})

    result = asyncio.run(_service(db, dataforseo=dataforseo).refresh_popular())

    assert result == {"candidates": 2, "refreshed": 1, "failed": 1}
    assert dataforseo.calls == [("fetch_search_volume", ("trail shoes", "road shoes"))]
    row = db.query(KeywordMetricsCache).filter_by(keyword="trail shoes").one()
    assert row.cache_hit_count == 6
    assert row.best_source == "dataforseo"
    assert row.expires_at > datetime.utcnow() + timedelta(days=13)


def test_refresh_popular_with_nothing_due(db):
    dataforseo = FakeDataForSEO()
    assert asyncio.run(_service(db, dataforseo=dataforseo).refresh_popular()) == {
        "candidates": 0, "refreshed": 0, "failed": 0,
    }
    assert dataforseo.calls == []


def test_intent_is_cached_without_becoming_a_metrics_hit(db):
    dataforseo = FakeDataForSEO(intents={"trail shoes": {"intent": "commercial", "probability": 0.7, "secondary": []}})
    service = _service(db, dataforseo=dataforseo)

    first = asyncio.run(service.classify_intent(["trail shoes"]))
    assert first["stats"]["fetched"] == 1
    assert first["stats"]["estimated_cost"] == 0.00002

    second = asyncio.run(service.classify_intent(["Trail Shoes"]))
    assert second["results"]["Trail Shoes"]["cached"] is True
    assert len(dataforseo.calls) == 1

    hits, misses = service.lookup_cache(["trail shoes"])
    assert hits == {}
    assert misses == ["trail shoes"]


def test_stale_intent_is_fetched_again(db):
    dataforseo = FakeDataForSEO(intents={"trail shoes": {"intent": "commercial", "probability": 0.7, "secondary": []}})
    service = _service(db, dataforseo=dataforseo)
    asyncio.run(service.classify_intent(["trail shoes"]))
    row = db.query(KeywordMetricsCache).one()
    row.dataforseo_intent_fetched_at = datetime.utcnow() - timedelta(days=31)
    db.commit()

    result = asyncio.run(service.classify_intent(["trail shoes"]))
    assert result["results"]["trail shoes"]["cached"] is False
    assert len(dataforseo.calls) == 2


# ---------------------------------------------------------------------------
# Quota
# ---------------------------------------------------------------------------

def test_estimate_cost_breakdown():
    cost = QuotaTracker.estimate_cost(100, ["google_ads", "moz", "dataforseo"])
    assert cost["moz"] == 100
    assert cost["dataforseo"] == pytest.approx(0.2)
    assert cost["total"] == pytest.approx(100.2)
    assert cost["breakdown"] == "Google Ads: Free, Moz: 100 credits, DataForSEO: $0.20"


def test_quota_blocks_oversized_requests(db):
    tracker = QuotaTracker(db, FakeDataForSEO(balance=0.05))
    result = asyncio.run(tracker.check_quota_availability(50, ["dataforseo"]))
    assert result["can_proceed"] is False
    assert "Estimated 25 keywords available, but 50 requested." in result["warnings"][0]

    result = asyncio.run(tracker.check_quota_availability(20000, ["google_ads"]))
    assert result["can_proceed"] is False
    assert result["warnings"][0].startswith("Google Ads: Insufficient quota (10000/10000 remaining)")


def test_quota_status_counts_monthly_usage(db):
    _service(db).store("running shoes", {"google_ads": PLANNER["running shoes"]})
    status = asyncio.run(QuotaTracker(db, FakeDataForSEO(balance=2.0)).get_quota_status())
    assert status["google_ads"]["used"] == 1
    assert status["dataforseo"]["balance"] == 2.0
    assert status["dataforseo"]["limit"] == pytest.approx(1000)
