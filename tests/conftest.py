"""
Shared fixtures: a throwaway SQLite database, a logged-in API client and
in-memory fakes for the Google Ads, DataForSEO and Moz connectors.

Settings are read once at import time, so the environment is set up before
anything from adpilot is imported.
"""
import os
import tempfile

_DB_DIR = tempfile.mkdtemp(prefix="adpilot-tests-")
os.environ["DATABASE_URL"] = f"sqlite:///{os.path.join(_DB_DIR, 'test.db')}"
os.environ["ENABLE_SCHEDULER"] = "false"
os.environ["ANTHROPIC_API_KEY"] = ""
os.environ["DATAFORSEO_LOGIN"] = ""
os.environ["DATAFORSEO_PASSWORD"] = ""
os.environ["MOZ_API_TOKEN"] = ""
os.environ["GOOGLE_ADS_REFRESH_TOKEN"] = ""
os.environ["INITIAL_ADMIN_EMAIL"] = ""

from datetime import date, timedelta

import pytest
from fastapi.testclient import TestClient

from adpilot.connectors.base_connector import ConnectorError
from adpilot.models.account import GoogleAdsAccount
from adpilot.models.base import SessionLocal, drop_db, init_db
from adpilot.services import auth_service
from adpilot.utils.response_cache import response_cache
from adpilot import scheduler


# ---------------------------------------------------------------------------
# Fakes
# ---------------------------------------------------------------------------

class FakeGoogleAds:
    """Records every call; reads come from the lists given at construction"""

    def __init__(self, campaigns=None, ad_groups=None, keywords=None, daily=None, budgets=None,
                 planner=None, fail_types=(), mutate_error=None, ads=None, negatives=None, shared_lists=None):
        self.campaigns = campaigns or []
        self.ad_groups = ad_groups or []
        self.keywords = keywords or []
        self.daily = daily or {}
        self.budgets = budgets or {}
        self.planner = planner or {}
        self.fail_types = set(fail_types)
        self.mutate_error = mutate_error
        self.ads = ads or []
        self.negatives = negatives or []
        self.shared_lists = shared_lists or []
        self.calls = []

    def _mutation(self, name, *args):
        self.calls.append((name,) + args)
        if self.mutate_error:
            return {"success": False, "error": self.mutate_error}
        return {"success": True}

    async def fetch_campaigns(self, start_date, end_date):
        self.calls.append(("fetch_campaigns", start_date, end_date))
        return [dict(c) for c in self.campaigns]

    async def fetch_ad_groups(self, campaign_id, start_date, end_date):
        self.calls.append(("fetch_ad_groups", campaign_id))
        return [dict(g) for g in self.ad_groups]

    async def fetch_keywords(self, ad_group_id, start_date, end_date):
        self.calls.append(("fetch_keywords", ad_group_id))
        return [dict(k) for k in self.keywords]

    async def fetch_daily_metrics(self, entity_type, start_date, end_date):
        self.calls.append(("fetch_daily_metrics", entity_type, start_date, end_date))
        if entity_type in self.fail_types:
            raise ConnectorError("Google Ads", f"{entity_type} report failed")
        return [dict(r) for r in self.daily.get(entity_type, [])]

    async def fetch_keyword_planner_metrics(self, keywords, location_id="2840", language="en"):
        self.calls.append(("fetch_keyword_planner_metrics", tuple(keywords), location_id))
        return dict(self.planner)

    async def get_campaign_budget(self, campaign_id):
        amount = self.budgets.get(str(campaign_id))
        if amount is None:
            return None
        return {"campaign_id": str(campaign_id), "campaign_name": "", "resource_name": "budget", "amount": amount}

    async def update_campaign_status(self, campaign_id, status):
        return self._mutation("update_campaign_status", campaign_id, status)

    async def update_ad_group_status(self, ad_group_id, status):
        return self._mutation("update_ad_group_status", ad_group_id, status)

    async def update_keyword_status(self, ad_group_id, keyword_id, status):
        return self._mutation("update_keyword_status", ad_group_id, keyword_id, status)

    async def update_campaign_budget(self, campaign_id, amount):
        return self._mutation("update_campaign_budget", campaign_id, amount)

    async def update_keyword_bid(self, ad_group_id, keyword_id, cpc_bid):
        return self._mutation("update_keyword_bid", ad_group_id, keyword_id, cpc_bid)

    async def create_keywords(self, ad_group_id, keywords):
        self.calls.append(("create_keywords", ad_group_id, keywords))
        return {"success": True, "keyword_ids": [str(900 + i) for i in range(len(keywords))]}

    async def remove_keyword(self, ad_group_id, keyword_id):
        return self._mutation("remove_keyword", ad_group_id, keyword_id)

    async def fetch_ads(self, ad_group_id, start_date, end_date):
        self.calls.append(("fetch_ads", ad_group_id))
        return [dict(a) for a in self.ads]

    async def update_ad_status(self, ad_group_id, ad_id, status):
        return self._mutation("update_ad_status", ad_group_id, ad_id, status)

    async def create_responsive_search_ad(self, ad_group_id, headlines, descriptions, final_urls,
                                          path1=None, path2=None, status="PAUSED"):
        result = self._mutation("create_responsive_search_ad", ad_group_id, headlines, descriptions, final_urls)
        if result["success"]:
            result["ad_id"] = "555"
        return result

    async def fetch_negative_keywords(self, campaign_id=None):
        self.calls.append(("fetch_negative_keywords", campaign_id))
        campaign = [n for n in self.negatives if not campaign_id or n["campaign_id"] == campaign_id]
        return {"campaign": campaign, "shared_lists": list(self.shared_lists)}

    async def add_negative_keywords(self, level, keywords, match_type="EXACT", campaign_id=None,
                                    ad_group_id=None, list_id=None, list_name=None):
        result = self._mutation("add_negative_keywords", level, keywords, match_type, campaign_id, ad_group_id)
        if result["success"]:
            result["added"] = len(keywords)
            if level == "account":
                result["list"] = list_id or "777"
        return result

    async def remove_negative_keyword(self, campaign_id, criterion_id):
        return self._mutation("remove_negative_keyword", campaign_id, criterion_id)


class FakeDataForSEO:
    def __init__(self, serp=None, volumes=None, difficulty=None, balance=100.0, configured=True, error=None,
                 intents=None):
        self.serp = serp or {}
        self.intents = intents or {}
        self.volumes = volumes or {}
        self.difficulty = difficulty or {}
        self.balance = balance
        self.configured = configured
        self.error = error
        self.calls = []

    @property
    def is_configured(self):
        return self.configured

    async def fetch_serp(self, keyword, location_code=2840, device="desktop", **kwargs):
        self.calls.append(("fetch_serp", keyword))
        if self.error:
            raise ConnectorError("DataForSEO", self.error)
        return self.serp.get(keyword)

    async def fetch_search_volume(self, keywords, location_code=2840, language="en"):
        self.calls.append(("fetch_search_volume", tuple(keywords)))
        if self.error:
            raise ConnectorError("DataForSEO", self.error)
        return dict(self.volumes)

    async def fetch_keyword_difficulty(self, keywords, location_code=2840, **kwargs):
        self.calls.append(("fetch_keyword_difficulty", tuple(keywords)))
        if self.error:
            raise ConnectorError("DataForSEO", self.error)
        return {k: v for k, v in self.difficulty.items() if k in {kw.lower() for kw in keywords}}

    async def fetch_search_intent(self, keywords, language_code="en"):
        self.calls.append(("fetch_search_intent", tuple(keywords)))
        if self.error:
            raise ConnectorError("DataForSEO", self.error)
        return {k: v for k, v in self.intents.items() if k in {kw.lower() for kw in keywords}}

    async def get_balance(self):
        return self.balance


class FakeMoz:
    def __init__(self, keywords=None, configured=False):
        self.keywords = keywords or {}
        self.configured = configured

    @property
    def is_configured(self):
        return self.configured

    async def fetch_keyword_metrics(self, keyword, locale="en-US", device="desktop"):
        if not self.configured or keyword not in self.keywords:
            raise ConnectorError("Moz", "Moz API token not configured")
        return self.keywords[keyword]

    async def fetch_url_metrics(self, urls):
        return []


def daily_rows(entity_id, name, days=2, impressions=1000, clicks=50, cost_micros=25_000_000,
               conversions=2.0, conversions_value=100.0, parent_entity_id=None, status="ENABLED", end=None):
    """Daily report rows shaped like GoogleAdsConnector.fetch_daily_metrics"""
    end = end or date.today() - timedelta(days=1)
    return [
        {
            "entity_id": str(entity_id),
            "entity_name": name,
            "status": status,
            "parent_entity_id": parent_entity_id,
            "date": (end - timedelta(days=i)).isoformat(),
            "impressions": impressions,
            "clicks": clicks,
            "cost_micros": cost_micros,
            "conversions": conversions,
            "conversions_value": conversions_value,
        }
        for i in range(days)
    ]


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture(autouse=True)
def fresh_state():
    drop_db()
    init_db()
    response_cache.clear()
    scheduler.reset_queue_state()
    yield
    scheduler.scheduler.remove_all_jobs()


@pytest.fixture
def db():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def user(db):
    return auth_service.create_user(db, "owner@example.com", "correct-horse", "Owner")


@pytest.fixture
def account(db, user):
    row = GoogleAdsAccount(
        user_id=user.id,
        google_account_id="1234567890",
        account_name="Main account",
        currency_code="USD",
        refresh_token="refresh-token",
        status="active",
    )
    db.add(row)
    db.commit()
    db.refresh(row)
    return row


@pytest.fixture
def app():
    from adpilot.main import app as fastapi_app
    yield fastapi_app
    fastapi_app.dependency_overrides.clear()


@pytest.fixture
def anon_client(app):
    return TestClient(app)


@pytest.fixture
def client(app, db, user):
    token = auth_service.create_session(db, user.id)
    test_client = TestClient(app)
    test_client.cookies.set("session_token", token)
    return test_client


@pytest.fixture
def fake_ads(app):
    """Google Ads connector returned for every account"""
    from adpilot.api.accounts import get_connector_factory

    connector = FakeGoogleAds()
    app.dependency_overrides[get_connector_factory] = lambda: (lambda account: connector)
    return connector


@pytest.fixture
def fake_dataforseo(app):
    from adpilot.api.deps import get_dataforseo_connector

    connector = FakeDataForSEO()
    app.dependency_overrides[get_dataforseo_connector] = lambda: connector
    return connector


@pytest.fixture
def fake_moz(app):
    from adpilot.api.deps import get_moz_connector

    connector = FakeMoz()
    app.dependency_overrides[get_moz_connector] = lambda: connector
    return connector
