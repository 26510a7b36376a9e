"""
Google Ads API tests.

Guards against:
1. Fresh cached metrics being ignored in favour of a live Google Ads call
2. Pausing the last active campaign from the dashboard
3. Large budget changes going through without confirmation
4. Mutations that leave no activity log entry
5. Refresh requests accepted while the queue is not running
6. A short write-back answering a wider date range from the cache
7. Malformed bids, budgets and statuses surfacing as server errors
"""
from datetime import date, timedelta

from conftest import daily_rows

from adpilot import scheduler
from adpilot.models.activity_log import ActivityLog
from adpilot.models.account import GoogleAdsAccount
from adpilot.services.entity_hierarchy_service import EntityHierarchyService
from adpilot.services.metrics_service import MetricsService

YESTERDAY = date.today() - timedelta(days=1)
TWO_DAYS = {"start_date": (YESTERDAY - timedelta(days=1)).isoformat(), "end_date": YESTERDAY.isoformat()}

CAMPAIGNS = [
    {"id": "111", "name": "Brand", "status": "ENABLED", "type": "SEARCH",
     "impressions": 1000, "clicks": 50, "spend": 50.0, "conversions": 2, "conversions_value": 100.0},
]


def _seed_hierarchy(db, statuses):
    EntityHierarchyService(db).batch_upsert_entities("1234567890", [
        {"entity_type": "CAMPAIGN", "entity_id": cid, "entity_name": f"Campaign {cid}", "status": status}
        for cid, status in statuses.items()
    ])


# ---------------------------------------------------------------------------
# Campaign reads
# ---------------------------------------------------------------------------

def test_campaigns_served_from_fresh_cache(client, db, account, fake_ads):
    MetricsService(db).cache_metrics("1234567890", "CAMPAIGN", daily_rows("111", "Brand"), account_id=account.id)

    response = client.get("/api/google-ads/campaigns", params={"account_id": "1234567890", **TWO_DAYS})

    assert response.status_code == 200
    body = response.json()
    assert body["meta"]["source"] == "cache"
    assert body["campaigns"][0]["id"] == "111"
    assert body["campaigns"][0]["spend"] == 50.0
    assert "ai_score" in body["campaigns"][0]
    assert fake_ads.calls == []


def test_cache_miss_fetches_live_and_fills_cache(client, account, fake_ads):
    fake_ads.campaigns = CAMPAIGNS
    fake_ads.daily = {"CAMPAIGN": daily_rows("111", "Brand")}

    first = client.get("/api/google-ads/campaigns", params={"account_id": account.id, **TWO_DAYS}).json()
    assert first["meta"]["source"] == "api"
    assert first["campaigns"][0]["name"] == "Brand"

    second = client.get("/api/google-ads/campaigns", params={"account_id": account.id, **TWO_DAYS}).json()
    assert second["meta"]["source"] == "cache"
    assert [c[0] for c in fake_ads.calls] == ["fetch_campaigns", "fetch_daily_metrics"]


def test_short_write_back_does_not_answer_a_wider_range(client, account, fake_ads):
    fake_ads.campaigns = CAMPAIGNS
    fake_ads.daily = {"CAMPAIGN": daily_rows("111", "Brand", days=7)}
    week = {"start_date": (YESTERDAY - timedelta(days=6)).isoformat(), "end_date": YESTERDAY.isoformat()}
    month = {"start_date": (YESTERDAY - timedelta(days=29)).isoformat(), "end_date": YESTERDAY.isoformat()}

    assert client.get("/api/google-ads/campaigns", params={"account_id": account.id, **week}).json()[
        "meta"]["source"] == "api"
    assert client.get("/api/google-ads/campaigns", params={"account_id": account.id, **month}).json()[
        "meta"]["source"] == "api"
    assert client.get("/api/google-ads/campaigns", params={"account_id": account.id, **week}).json()[
        "meta"]["source"] == "cache"
    assert [c[0] for c in fake_ads.calls].count("fetch_campaigns") == 2


def test_compare_campaigns_with_previous_period(client, db, account):
    metrics = MetricsService(db)
    metrics.cache_metrics("1234567890", "CAMPAIGN", daily_rows("111", "Brand", days=4, clicks=10)
                          + daily_rows("111", "Brand", days=2, clicks=20))

    response = client.get("/api/google-ads/campaigns/compare", params={"account_id": account.id, **TWO_DAYS})

    body = response.json()
    assert body["success"] is True
    assert body["compare_period"]["end"] == (YESTERDAY - timedelta(days=2)).isoformat()
    comparison = body["comparisons"][0]["comparison"]
    assert comparison["previous_clicks"] == 20
    assert comparison["clicks_delta"] == 100.0

    missing = client.get("/api/google-ads/campaigns/compare", params={"account_id": account.id})
    assert missing.status_code == 400
    assert missing.json()["detail"] == "account_id, start_date, and end_date are required"


def test_campaign_request_validation(client, db, user, account, fake_ads):
    assert client.get("/api/google-ads/campaigns").status_code == 400
    assert client.get("/api/google-ads/campaigns", params={"account_id": "5555555555"}).status_code == 404

    bad_range = client.get("/api/google-ads/campaigns", params={
        "account_id": account.id, "start_date": "2024-02-01", "end_date": "2024-01-01",
    })
    assert bad_range.status_code == 400

    db.add(GoogleAdsAccount(user_id=user.id, google_account_id="2222222222", is_manager=True,
                            refresh_token="token", status="active"))
    db.commit()
    manager = client.get("/api/google-ads/campaigns", params={"account_id": "2222222222"})
    assert manager.status_code == 400
    assert "manager account" in manager.json()["detail"]


# ---------------------------------------------------------------------------
# Campaign writes
# ---------------------------------------------------------------------------

def test_pause_campaign_logs_activity(client, db, account, fake_ads):
    _seed_hierarchy(db, {"111": "ENABLED", "222": "ENABLED"})

    response = client.patch("/api/google-ads/campaigns", json={
        "account_id": account.id, "campaign_id": "111", "updates": {"status": "PAUSED"},
    })

    assert response.json() == {"success": True}
    assert fake_ads.calls == [("update_campaign_status", "111", "PAUSED")]
    entry = db.query(ActivityLog).one()
    assert entry.action_type == "pause_campaign"
    assert entry.before_value == {"status": "ENABLED"}
    assert entry.source == "manual"
    assert EntityHierarchyService(db).get_entity("1234567890", "CAMPAIGN", "111").status == "PAUSED"


def test_pausing_last_active_campaign_is_blocked(client, db, account, fake_ads):
    _seed_hierarchy(db, {"111": "ENABLED", "222": "PAUSED"})

    response = client.patch("/api/google-ads/campaigns", json={
        "account_id": account.id, "campaign_id": "111", "updates": {"status": "PAUSED"},
    })

    assert response.status_code == 400
    detail = response.json()["detail"]
    assert detail["error"] == "Blocked by guardrails"
    assert detail["guardrails"]["risk_level"] == "high"
    assert fake_ads.calls == []


def test_large_budget_change_needs_confirmation(client, db, account, fake_ads):
    fake_ads.budgets = {"111": 50.0}
    body = {"account_id": account.id, "campaign_id": "111", "updates": {"budget": 100}}

    pending = client.patch("/api/google-ads/campaigns", json=body).json()
    assert pending["requires_confirmation"] is True
    assert pending["guardrails"]["warnings"] == ["Large budget increase: 100% change detected."]
    assert fake_ads.calls == []

    confirmed = client.patch("/api/google-ads/campaigns", json={**body, "confirmed": True})
    assert confirmed.json() == {"success": True}
    assert fake_ads.calls == [("update_campaign_budget", "111", 100.0)]
    entry = db.query(ActivityLog).one()
    assert entry.before_value == {"budget": 50.0}


def test_campaign_update_validation(client, account, fake_ads):
    empty = client.patch("/api/google-ads/campaigns", json={"account_id": account.id, "campaign_id": "111"})
    assert empty.status_code == 400
    assert empty.json()["detail"] == "No updates provided"

    bad_status = client.patch("/api/google-ads/campaigns", json={
        "account_id": account.id, "campaign_id": "111", "updates": {"status": "REMOVED"},
    })
    assert bad_status.status_code == 400

    missing_budget = client.patch("/api/google-ads/campaigns", json={
        "account_id": account.id, "campaign_id": "111", "updates": {"budget": 20},
    })
    assert missing_budget.status_code == 404


def test_failed_mutation_is_logged_and_reported(client, db, account, fake_ads):
    fake_ads.mutate_error = "CAMPAIGN_NOT_FOUND"
    response = client.patch("/api/google-ads/ad-groups", json={
        "account_id": account.id, "ad_group_id": "55", "status": "PAUSED",
    })
    assert response.status_code == 500
    assert response.json()["detail"] == "CAMPAIGN_NOT_FOUND"
    entry = db.query(ActivityLog).one()
    assert entry.status == "failed"
    assert entry.error_message == "CAMPAIGN_NOT_FOUND"


# ---------------------------------------------------------------------------
# Ad groups and keywords
# ---------------------------------------------------------------------------

def test_ad_groups_require_campaign(client, account, fake_ads):
    response = client.get("/api/google-ads/ad-groups", params={"account_id": account.id})
    assert response.status_code == 400
    assert response.json()["detail"] == "campaign_id is required"


def test_ad_groups_fetched_live(client, account, fake_ads):
    fake_ads.ad_groups = [{"id": "55", "name": "Shoes", "status": "ENABLED", "campaign_id": "111"}]
    body = client.get("/api/google-ads/ad-groups", params={"account_id": account.id, "campaign_id": "111"}).json()
    assert body["ad_groups"][0]["id"] == "55"
    assert body["meta"]["source"] == "api"


def test_keywords_get_predicted_quality_score(client, account, fake_ads):
    fake_ads.keywords = [
        {"id": "k1", "text": "buy running shoes", "match_type": "EXACT", "status": "ENABLED",
         "impressions": 0, "ctr": 0, "quality_score": None},
        {"id": "k2", "text": "shoes", "match_type": "BROAD", "status": "ENABLED",
         "impressions": 100, "ctr": 2.0, "quality_score": 7},
    ]
    keywords = client.get("/api/google-ads/keywords", params={"account_id": account.id, "ad_group_id": "55"}).json()[
        "keywords"]
    assert "predicted_quality_score" in keywords[0]
    assert keywords[0]["predicted_quality_score"]["confidence"] < 0.95
    assert "predicted_quality_score" not in keywords[1]


def test_add_update_and_remove_keywords(client, db, account, fake_ads):
    created = client.post("/api/google-ads/keywords", json={
        "account_id": account.id, "ad_group_id": "55",
        "keywords": [{"text": " trail shoes ", "match_type": "phrase"}, {"text": "   "}],
    })
    assert created.json() == {"success": True, "keyword_ids": ["900"]}
    assert fake_ads.calls[0] == ("create_keywords", "55", [{"text": "trail shoes", "match_type": "PHRASE"}])

    bad_bid = client.patch("/api/google-ads/keywords", json={
        "account_id": account.id, "ad_group_id": "55", "keyword_id": "900", "updates": {"cpc_bid": 0},
    })
    assert bad_bid.status_code == 400

    bid = client.patch("/api/google-ads/keywords", json={
        "account_id": account.id, "ad_group_id": "55", "keyword_id": "900", "updates": {"cpc_bid": 1.5},
    })
    assert bid.json() == {"success": True}

    removed = client.delete("/api/google-ads/keywords", params={
        "account_id": account.id, "ad_group_id": "55", "keyword_id": "900",
    })
    assert removed.json() == {"success": True}

    actions = [a["action_type"] for a in client.get("/api/activity", params={"account_id": account.id}).json()[
        "activities"]]
    assert actions == ["remove_keyword", "update_bid", "add_keywords"]


def test_add_keywords_requires_text(client, account, fake_ads):
    response = client.post("/api/google-ads/keywords", json={
        "account_id": account.id, "ad_group_id": "55", "keywords": [],
    })
    assert response.status_code == 400


def test_malformed_keyword_and_budget_updates_are_rejected(client, account, fake_ads):
    keyword = {"account_id": account.id, "ad_group_id": "55", "keyword_id": "900"}

    not_a_number = client.patch("/api/google-ads/keywords", json={**keyword, "updates": {"cpc_bid": "abc"}})
    assert not_a_number.status_code == 400
    assert not_a_number.json()["detail"] == "cpc_bid must be a number"

    negative = client.patch("/api/google-ads/keywords", json={**keyword, "updates": {"cpc_bid": -1}})
    assert negative.status_code == 400

    bad_status = client.patch("/api/google-ads/keywords", json={**keyword, "updates": {"status": "DELETED"}})
    assert bad_status.status_code == 400
    assert bad_status.json()["detail"] == "status must be ENABLED or PAUSED"

    budget = client.patch("/api/google-ads/campaigns", json={
        "account_id": account.id, "campaign_id": "111", "updates": {"budget": "lots"},
    })
    assert budget.status_code == 400
    assert budget.json()["detail"] == "budget must be a number"
    assert fake_ads.calls == []


# ---------------------------------------------------------------------------
# Ads
# ---------------------------------------------------------------------------

RSA = {
    "headlines": ["Trail Shoes", "Free Returns", "Shop Today"],
    "descriptions": ["Light shoes for long runs.", "Order by noon for same-day dispatch."],
    "final_urls": ["https://example.com/trail"],
}


def test_ads_listed_and_added_to_hierarchy(client, db, account, fake_ads):
    fake_ads.ads = [{"id": "901", "ad_group_id": "55", "campaign_id": "111", "type": "RESPONSIVE_SEARCH_AD",
                     "status": "ENABLED", "headlines": ["Trail Shoes"], "descriptions": [], "final_urls": []}]

    body = client.get("/api/google-ads/ads", params={"account_id": account.id, "ad_group_id": "55"}).json()

    assert body["ads"][0]["id"] == "901"
    node = EntityHierarchyService(db).get_entity("1234567890", "AD", "901")
    assert node.entity_name == "Trail Shoes"
    assert node.ad_group_id == "55"


def test_create_ad_validates_and_logs(client, db, account, fake_ads):
    missing = client.post("/api/google-ads/ads", json={"account_id": account.id, "ad_group_id": "55"})
    assert missing.status_code == 400
    assert missing.json()["detail"] == "Ad headlines, descriptions, and final_urls are required"

    too_few = client.post("/api/google-ads/ads", json={
        "account_id": account.id, "ad_group_id": "55", "ad": {**RSA, "headlines": ["One", "Two"]},
    })
    assert too_few.status_code == 400

    too_long = client.post("/api/google-ads/ads", json={
        "account_id": account.id, "ad_group_id": "55", "ad": {**RSA, "headlines": RSA["headlines"] + ["x" * 31]},
    })
    assert too_long.status_code == 400
    assert too_long.json()["detail"]["too_long"] == ["x" * 31]
    assert fake_ads.calls == []

    created = client.post("/api/google-ads/ads", json={"account_id": account.id, "ad_group_id": "55", "ad": RSA})
    assert created.json() == {"success": True, "ad_id": "555"}
    assert fake_ads.calls[0][:2] == ("create_responsive_search_ad", "55")

    entry = db.query(ActivityLog).one()
    assert entry.action_type == "create_ad"
    assert entry.entity_id == "555"
    assert entry.after_value["headlines"] == RSA["headlines"]


def test_pause_ad(client, db, account, fake_ads):
    bad = client.patch("/api/google-ads/ads", json={"account_id": account.id, "ad_group_id": "55", "ad_id": "901"})
    assert bad.status_code == 400

    response = client.patch("/api/google-ads/ads", json={
        "account_id": account.id, "ad_group_id": "55", "ad_id": "901", "status": "PAUSED",
    })
    assert response.json() == {"success": True}
    assert fake_ads.calls == [("update_ad_status", "55", "901", "PAUSED")]
    assert db.query(ActivityLog).one().action_type == "pause_ad"


# ---------------------------------------------------------------------------
# Negative keywords
# ---------------------------------------------------------------------------

def test_list_negative_keywords(client, account, fake_ads):
    fake_ads.negatives = [
        {"id": "1", "campaign_id": "111", "text": "free", "match_type": "BROAD"},
        {"id": "2", "campaign_id": "222", "text": "jobs", "match_type": "PHRASE"},
    ]
    fake_ads.shared_lists = [{"id": "777", "name": "Account negatives", "keyword_count": 12}]

    body = client.get("/api/google-ads/negative-keywords", params={
        "account_id": account.id, "campaign_id": "111",
    }).json()

    assert [n["text"] for n in body["negative_keywords"]] == ["free"]
    assert body["shared_lists"][0]["keyword_count"] == 12


def test_add_negative_keywords(client, db, account, fake_ads):
    no_keywords = client.post("/api/google-ads/negative-keywords", json={"account_id": account.id, "keywords": [" "]})
    assert no_keywords.status_code == 400
    assert no_keywords.json()["detail"] == "At least one keyword is required"

    no_campaign = client.post("/api/google-ads/negative-keywords", json={
        "account_id": account.id, "keywords": ["free"], "level": "campaign",
    })
    assert no_campaign.status_code == 400
    assert no_campaign.json()["detail"] == "Invalid level or missing campaign_id/ad_group_id"

    bad_match = client.post("/api/google-ads/negative-keywords", json={
        "account_id": account.id, "keywords": ["free"], "campaign_id": "111", "match_type": "fuzzy",
    })
    assert bad_match.status_code == 400

    added = client.post("/api/google-ads/negative-keywords", json={
        "account_id": account.id, "keywords": ["free", " free ", "jobs"], "campaign_id": "111", "match_type": "phrase",
    })
    assert added.json() == {"success": True, "added": 2}
    assert fake_ads.calls == [("add_negative_keywords", "campaign", ["free", "jobs"], "PHRASE", "111", None)]

    shared = client.post("/api/google-ads/negative-keywords", json={
        "account_id": account.id, "keywords": ["cheap"], "level": "account", "list_name": "Account negatives",
    })
    assert shared.json()["list"] == "777"

    entries = db.query(ActivityLog).order_by(ActivityLog.id).all()
    assert [(e.entity_type, e.entity_id) for e in entries] == [("campaign", "111"), ("account", "777")]


def test_remove_negative_keyword(client, db, account, fake_ads):
    missing = client.delete("/api/google-ads/negative-keywords", params={"account_id": account.id, "campaign_id": "111"})
    assert missing.status_code == 400

    response = client.delete("/api/google-ads/negative-keywords", params={
        "account_id": account.id, "campaign_id": "111", "criterion_id": "42",
    })
    assert response.json() == {"success": True}
    assert fake_ads.calls == [("remove_negative_keyword", "111", "42")]
    assert db.query(ActivityLog).one().before_value == {"criterion_id": "42"}


# ---------------------------------------------------------------------------
# Refresh queue
# ---------------------------------------------------------------------------

def test_refresh_unavailable_without_scheduler(client, account):
    response = client.post("/api/google-ads/refresh", json={"account_id": account.id, "entity_type": "campaigns"})
    assert response.status_code == 503


def test_refresh_queues_job(monkeypatch, client, account):
    monkeypatch.setattr(scheduler.settings, "enable_scheduler", True)

    response = client.post("/api/google-ads/refresh", json={
        "account_id": account.id, "entity_type": "campaigns",
        "start_date": "2024-01-01", "end_date": "2024-01-07",
    })

    assert response.status_code == 200
    assert response.json()["status"] == "queued"
    assert response.json()["job_id"] == "refresh_campaigns_1234567890_root_2024-01-01_2024-01-07"


def test_refresh_validation(monkeypatch, client, account):
    monkeypatch.setattr(scheduler.settings, "enable_scheduler", True)

    unknown = client.post("/api/google-ads/refresh", json={"account_id": account.id, "entity_type": "budgets"})
    assert unknown.status_code == 400

    orphan = client.post("/api/google-ads/refresh", json={"account_id": account.id, "entity_type": "ad-groups"})
    assert orphan.status_code == 400
    assert orphan.json()["detail"] == "parent_entity_id (campaign id) is required for ad-groups"


# ---------------------------------------------------------------------------
# Activity
# ---------------------------------------------------------------------------

def test_activity_limit_is_validated(client):
    assert client.get("/api/activity", params={"limit": 0}).status_code == 422
    assert client.get("/api/activity", params={"limit": 500}).json() == {"activities": []}
