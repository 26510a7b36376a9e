"""
Metrics cache, sync and entity hierarchy tests.

Guards against:
1. CTR double-scaling (ctr is stored 0-1 and reported as a percentage exactly once)
2. Stale syncs (over 4 hours) being served as cache hits
3. Re-syncing the same day duplicating fact rows instead of overwriting them
4. One failing entity type aborting the whole account sync
5. A short live write-back being served as a hit for a wider range
6. Keyword criterion ids shared across ad groups colliding in the cache
7. A database error leaving a sync stuck IN_PROGRESS
"""
import asyncio
from datetime import date, datetime, timedelta

import pytest
from sqlalchemy.exc import IntegrityError

from conftest import FakeGoogleAds, daily_rows

from adpilot.models.metrics import MetricsFact, SyncMetadata
from adpilot.services.activity_log_service import list_activity, log_activity
from adpilot.services.entity_hierarchy_service import EntityHierarchyService
from adpilot.services.metrics_service import MetricsService, freshness_level, is_fresh, summarize_totals
from adpilot.services.sync_service import SyncService

CID = "1234567890"
YESTERDAY = date.today() - timedelta(days=1)


# ---------------------------------------------------------------------------
# Metrics service
# ---------------------------------------------------------------------------

def test_summarize_totals_scales_ctr_once():
    totals = summarize_totals(2000, 100, 50_000_000, 4, 200)
    assert totals == {
        "impressions": 2000,
        "clicks": 100,
        "spend": 50.0,
        "conversions": 4,
        "conversions_value": 200,
        "ctr": 5.0,
        "average_cpc": 0.5,
        "cpa": 12.5,
        "roas": 4.0,
    }
    assert summarize_totals(0, 0, 0, 0, 0)["cpa"] == 0


def test_freshness_levels():
    now = datetime(2024, 5, 1, 12, 0)
    assert freshness_level(None, now) == "EXPIRED"
    assert freshness_level(now - timedelta(minutes=30), now) == "FRESH"
    assert freshness_level(now - timedelta(hours=2), now) == "ACCEPTABLE"
    assert freshness_level(now - timedelta(hours=5), now) == "STALE"
    assert freshness_level(now - timedelta(hours=30), now) == "EXPIRED"
    assert is_fresh(now - timedelta(hours=3), now)
    assert not is_fresh(now - timedelta(hours=4), now)


def test_cache_metrics_upserts_and_serves_fresh_data(db):
    service = MetricsService(db)
    rows = daily_rows("111", "Brand", days=2)
    assert service.cache_metrics(CID, "CAMPAIGN", rows, account_id=1) == 2
    assert service.cache_metrics(CID, "CAMPAIGN", rows, account_id=1) == 2
    assert db.query(MetricsFact).count() == 2

    fact = db.query(MetricsFact).first()
    assert fact.ctr == 0.05

    result = service.get_campaign_metrics(CID, YESTERDAY - timedelta(days=1), YESTERDAY)
    assert result["meta"]["source"] == "cache"
    assert result["meta"]["freshness"]["level"] == "FRESH"
    assert result["meta"]["freshness"]["data_as_of"] == YESTERDAY.isoformat()
    campaign = result["data"][0]
    assert campaign["id"] == "111"
    assert campaign["name"] == "Brand"
    assert campaign["days"] == 2
    assert campaign["spend"] == 50.0
    assert campaign["ctr"] == 5.0
    assert campaign["roas"] == 4.0


def test_stale_sync_is_a_cache_miss(db):
    service = MetricsService(db)
    service.cache_metrics(CID, "CAMPAIGN", daily_rows("111", "Brand"))
    meta = db.query(SyncMetadata).one()
    meta.last_sync_completed = datetime.utcnow() - timedelta(hours=5)
    db.commit()

    assert service.get_campaign_metrics(CID, YESTERDAY - timedelta(days=1), YESTERDAY) is None
    # rules and aggregates still read whatever is cached
    assert len(service.get_entity_metrics(CID, "CAMPAIGN", YESTERDAY - timedelta(days=6), YESTERDAY)) == 1


def test_ad_group_filter_and_aggregates(db):
    service = MetricsService(db)
    service.cache_metrics(CID, "AD_GROUP", daily_rows("21", "Shoes", days=1, parent_entity_id="111")
                          + daily_rows("22", "Boots", days=1, parent_entity_id="222", cost_micros=5_000_000))
    result = service.get_ad_group_metrics(CID, YESTERDAY, YESTERDAY, campaign_id="111")
    assert [g["id"] for g in result["data"]] == ["21"]

    totals = service.get_aggregated_metrics(CID, "AD_GROUP", YESTERDAY, YESTERDAY)
    assert totals["impressions"] == 2000
    assert totals["spend"] == 30.0


def test_has_cached_data_lists_missing_dates(db):
    service = MetricsService(db)
    service.cache_metrics(CID, "CAMPAIGN", daily_rows("111", "Brand", days=2))
    start = YESTERDAY - timedelta(days=2)
    result = service.has_cached_data(CID, "CAMPAIGN", start, YESTERDAY)
    assert result == {"has_data": False, "missing_dates": [start.isoformat()]}


def test_partial_write_back_does_not_cover_a_wider_range(db):
    service = MetricsService(db)
    service.cache_metrics(CID, "CAMPAIGN", daily_rows("111", "Brand", days=7))

    week = service.get_campaign_metrics(CID, YESTERDAY - timedelta(days=6), YESTERDAY)
    assert week["meta"]["source"] == "cache"
    assert service.get_campaign_metrics(CID, YESTERDAY - timedelta(days=29), YESTERDAY) is None


def test_old_rows_in_range_are_a_cache_miss(db):
    service = MetricsService(db)
    service.cache_metrics(CID, "CAMPAIGN", daily_rows("111", "Brand", days=2))
    oldest = db.query(MetricsFact).filter(MetricsFact.date == YESTERDAY - timedelta(days=1)).one()
    oldest.synced_at = datetime.utcnow() - timedelta(hours=5)
    db.commit()

    assert service.get_campaign_metrics(CID, YESTERDAY, YESTERDAY)["meta"]["source"] == "cache"
    assert service.get_campaign_metrics(CID, YESTERDAY - timedelta(days=1), YESTERDAY) is None


def test_cache_metrics_keeps_last_duplicate_row_in_a_batch(db):
    service = MetricsService(db)
    first = daily_rows("111", "Brand", days=1, clicks=10)
    last = daily_rows("111", "Brand", days=1, clicks=40)
    assert service.cache_metrics(CID, "CAMPAIGN", first + last) == 1
    assert db.query(MetricsFact).one().clicks == 40


def test_compare_periods_against_previous_window(db):
    service = MetricsService(db)
    current_end = YESTERDAY
    previous_end = YESTERDAY - timedelta(days=2)
    service.cache_metrics(CID, "CAMPAIGN", daily_rows("111", "Brand", days=2, end=current_end)
                          + daily_rows("111", "Brand", days=2, end=previous_end, cost_micros=10_000_000)
                          + daily_rows("222", "Generic", days=2, end=current_end))

    result = service.compare_periods(CID, YESTERDAY - timedelta(days=1), YESTERDAY)
    assert result["current_period"]["days"] == 2
    assert result["compare_period"] == {
        "start": (YESTERDAY - timedelta(days=3)).isoformat(),
        "end": previous_end.isoformat(),
        "days": 2,
    }

    by_id = {c["campaign_id"]: c["comparison"] for c in result["comparisons"]}
    assert by_id["111"]["previous_spend"] == 20.0
    assert by_id["111"]["spend_delta"] == 150.0
    assert by_id["111"]["clicks_delta"] == 0.0
    assert by_id["222"]["previous_spend"] == 0
    assert by_id["222"]["spend_delta"] == 100


# ---------------------------------------------------------------------------
# Sync service
# ---------------------------------------------------------------------------

def _fake_for_sync(**kwargs):
    return FakeGoogleAds(daily={
        "CAMPAIGN": daily_rows("111", "Brand", days=2),
        "AD_GROUP": [
            {**r, "campaign_id": "111"} for r in daily_rows("21", "Shoes", days=2, parent_entity_id="111")
        ],
        "KEYWORD": [
            {**r, "campaign_id": "111", "ad_group_id": "21"}
            for r in daily_rows("21~31", "running shoes", days=2, parent_entity_id="21")
        ],
    }, **kwargs)


def test_sync_account_caches_metrics_and_hierarchy(db):
    fake = _fake_for_sync()
    result = asyncio.run(SyncService(db, lambda cid: fake).sync_account(CID, account_id=1, backfill_days=7))

    assert result["success"] is True
    assert result["end_date"] == YESTERDAY.isoformat()
    assert result["start_date"] == (YESTERDAY - timedelta(days=6)).isoformat()
    assert result["results"]["KEYWORD"] == {"success": True, "rows_written": 2}
    assert fake.calls[0] == ("fetch_daily_metrics", "CAMPAIGN", YESTERDAY - timedelta(days=6), YESTERDAY)

    counts = EntityHierarchyService(db).get_entity_counts(CID)
    assert counts == {"ACCOUNT": 0, "CAMPAIGN": 1, "AD_GROUP": 1, "KEYWORD": 1, "AD": 0}

    tree = EntityHierarchyService(db).get_campaign_hierarchy(CID, "111")
    assert tree["campaign"]["entity_name"] == "Brand"
    assert tree["ad_groups"][0]["entity_id"] == "21"
    assert tree["ad_groups"][0]["keywords"][0]["entity_name"] == "running shoes"


def test_failing_entity_type_does_not_abort_sync(db):
    service = SyncService(db, lambda cid: _fake_for_sync(fail_types=["KEYWORD"]))
    result = asyncio.run(service.sync_account(CID, backfill_days=7))

    assert result["success"] is False
    assert result["results"]["CAMPAIGN"]["success"] is True
    assert result["results"]["KEYWORD"]["error"] == "Google Ads: KEYWORD report failed"

    status = service.get_sync_status(CID)
    assert status["CAMPAIGN"]["status"] == "COMPLETED"
    assert status["KEYWORD"]["status"] == "FAILED"
    assert service.needs_sync(CID, "CAMPAIGN") is False
    assert service.needs_sync(CID, "KEYWORD") is True


def test_shared_criterion_id_across_ad_groups_syncs(db):
    fake = FakeGoogleAds(daily={"KEYWORD": [
        {**r, "campaign_id": "111", "ad_group_id": r["parent_entity_id"]}
        for r in daily_rows("21~77", "running shoes", days=2, parent_entity_id="21")
        + daily_rows("22~77", "trail shoes", days=2, parent_entity_id="22")
    ]})
    service = SyncService(db, lambda cid: fake)
    result = asyncio.run(service.sync_account(CID, backfill_days=2, entity_types=("KEYWORD",)))

    assert result["success"] is True
    assert result["results"]["KEYWORD"]["rows_written"] == 4
    assert service.get_sync_status(CID)["KEYWORD"]["status"] == "COMPLETED"
    assert EntityHierarchyService(db).get_entity_counts(CID)["KEYWORD"] == 2


def test_database_error_marks_entity_type_failed(db, monkeypatch):
    original = MetricsService.cache_metrics

    def cache_metrics(self, customer_id, entity_type, rows, **kwargs):
        if entity_type == "KEYWORD":
            raise IntegrityError("INSERT INTO metrics_fact", {}, Exception("UNIQUE constraint failed"))
        return original(self, customer_id, entity_type, rows, **kwargs)

    monkeypatch.setattr(MetricsService, "cache_metrics", cache_metrics)
    service = SyncService(db, lambda cid: _fake_for_sync())
    result = asyncio.run(service.sync_account(CID, backfill_days=2))

    assert result["success"] is False
    assert result["results"]["KEYWORD"]["error"] == "Database error: IntegrityError"
    assert result["results"]["CAMPAIGN"]["success"] is True

    status = service.get_sync_status(CID)
    assert status["KEYWORD"]["status"] == "FAILED"
    assert status["KEYWORD"]["error"] == "Database error: IntegrityError"
    assert status["CAMPAIGN"]["status"] == "COMPLETED"


def test_sync_account_accepts_explicit_end_date(db):
    fake = FakeGoogleAds(daily={"AD": daily_rows("901", "Spring sale", days=1, parent_entity_id="21",
                                                 end=YESTERDAY - timedelta(days=3))})
    end = YESTERDAY - timedelta(days=3)
    result = asyncio.run(SyncService(db, lambda cid: fake).sync_account(
        CID, backfill_days=1, entity_types=("AD",), end_date=end))

    assert result["start_date"] == result["end_date"] == end.isoformat()
    assert fake.calls == [("fetch_daily_metrics", "AD", end, end)]
    assert EntityHierarchyService(db).get_entity_counts(CID)["AD"] == 1


def test_incremental_sync_covers_last_three_days(db):
    fake = _fake_for_sync()
    result = asyncio.run(SyncService(db, lambda cid: fake).incremental_sync(CID))
    assert result["end_date"] == date.today().isoformat()
    assert result["start_date"] == (date.today() - timedelta(days=2)).isoformat()


def test_sync_without_connector_raises(db):
    with pytest.raises(ValueError):
        asyncio.run(SyncService(db).sync_account(CID))


def test_status_defaults_and_backfill_progress(db):
    service = SyncService(db)
    assert service.get_sync_status(CID)["CAMPAIGN"]["status"] == "PENDING"
    assert service.needs_sync(CID) is True
    assert service.get_backfill_progress(CID)["is_backfilling"] is False

    progress = {"start": "2024-01-01", "end": "2024-03-30", "days": 90}
    service.metrics.mark_sync(CID, "CAMPAIGN", "COMPLETED", backfill_progress={**progress, "percent": 100})
    service.metrics.mark_sync(CID, "AD_GROUP", "IN_PROGRESS", backfill_progress={**progress, "percent": 0})

    backfill = service.get_backfill_progress(CID)
    assert backfill["is_backfilling"] is True
    assert backfill["progress"] == 50.0
    assert backfill["days_remaining"] == 45

    assert service.cancel_sync(CID) == 1
    assert service.get_sync_status(CID)["AD_GROUP"]["error"] == "Cancelled by user"


# ---------------------------------------------------------------------------
# Entity hierarchy
# ---------------------------------------------------------------------------

def test_upsert_keeps_known_names_and_links_parents(db):
    service = EntityHierarchyService(db)
    service.upsert_entity(CID, {"entity_type": "KEYWORD", "entity_id": 31, "entity_name": "shoes",
                                "parent_entity_id": "21", "status": "ENABLED"})
    entity = service.upsert_entity(CID, {"entity_type": "KEYWORD", "entity_id": "31", "status": "PAUSED"})

    assert entity.entity_name == "shoes"
    assert entity.status == "PAUSED"
    assert entity.parent_entity_id is None
    assert entity.ad_group_id == "21"

    ad_group = service.upsert_entity(CID, {"entity_type": "AD_GROUP", "entity_id": "21", "parent_entity_id": "111"})
    assert ad_group.parent_entity_type == "CAMPAIGN"
    assert ad_group.campaign_id == "111"


def test_batch_upsert_skips_duplicates_and_delete_removed(db):
    service = EntityHierarchyService(db)
    written = service.batch_upsert_entities(CID, [
        {"entity_type": "CAMPAIGN", "entity_id": "1", "entity_name": "A"},
        {"entity_type": "CAMPAIGN", "entity_id": "1", "entity_name": "A again"},
        {"entity_type": "CAMPAIGN", "entity_id": "2", "entity_name": "B"},
    ])
    assert written == 2
    assert service.get_entity_name(CID, "CAMPAIGN", "1") == "A"

    assert service.delete_removed_entities(CID, "CAMPAIGN", ["2"]) == 1
    assert [e.entity_id for e in service.get_entities(CID, "CAMPAIGN")] == ["2"]
    assert service.get_campaign_hierarchy(CID, "1") is None


# ---------------------------------------------------------------------------
# Activity log
# ---------------------------------------------------------------------------

def test_activity_log_newest_first_and_filtered(db):
    log_activity(db, "pause_campaign", account_id=1, entity_type="campaign", entity_id=111,
                 before_value={"status": "ENABLED"}, after_value={"status": "PAUSED"})
    log_activity(db, "update_budget", account_id=1, entity_type="campaign", entity_id="111",
                 status="failed", error_message="Quota exceeded")
    log_activity(db, "pause_keyword", account_id=2, entity_type="keyword", entity_id="31")

    entries = list_activity(db, account_id=1)
    assert [e.action_type for e in entries] == ["update_budget", "pause_campaign"]
    assert entries[1].entity_id == "111"
    assert entries[1].after_value == {"status": "PAUSED"}
    assert [e.action_type for e in list_activity(db, entity_type="keyword")] == ["pause_keyword"]
    assert len(list_activity(db, limit=0)) == 1
