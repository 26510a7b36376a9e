"""
Google Ads API

Campaign, ad group, keyword, ad and negative keyword endpoints. Reads go
through the metrics cache when it is fresh; writes go to Google Ads through
the guardrails and leave an activity log entry.
"""
from fastapi import APIRouter, Depends, HTTPException, Query
from typing import Callable, Dict, List, Optional
from pydantic import BaseModel
from sqlalchemy.orm import Session

from adpilot.api.accounts import get_connector_factory, resolve_account
from adpilot.api.auth import require_user
from adpilot.models.base import get_db
from adpilot.models.user import User
from adpilot.services import guardrails
from adpilot.services.activity_log_service import log_activity
from adpilot.services.ai_score import score_campaigns
from adpilot.services.entity_hierarchy_service import EntityHierarchyService
from adpilot.services.metrics_service import MetricsService
from adpilot.services.quality_score import predict_quality_score
from adpilot import scheduler
from adpilot.utils.helpers import keyword_entity_id, parse_date, resolve_date_range
from adpilot.utils.logger import log

router = APIRouter(prefix="/api/google-ads", tags=["google-ads"])

PARENT_REQUIRED = {
    "ad-groups": "campaign",
    "keywords": "ad group",
    "ads": "ad group",
}


def _date_range(start_date: Optional[str], end_date: Optional[str]):
    try:
        return resolve_date_range(start_date, end_date)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


def _require(value, name: str):
    if value is None or str(value).strip() == "":
        raise HTTPException(status_code=400, detail=f"{name} is required")
    return str(value).strip()


def _number(value, name: str) -> float:
    if isinstance(value, bool):
        raise HTTPException(status_code=400, detail=f"{name} must be a number")
    try:
        return float(value)
    except (TypeError, ValueError):
        raise HTTPException(status_code=400, detail=f"{name} must be a number")


def _status(value: Optional[str]) -> Optional[str]:
    if value is not None and value not in ("ENABLED", "PAUSED"):
        raise HTTPException(status_code=400, detail="status must be ENABLED or PAUSED")
    return value


def _guardrail_response(check: Dict, confirmed: bool) -> Optional[Dict]:
    """Error -> 400; unconfirmed warnings -> confirmation payload; otherwise None"""
    if not check["allowed"]:
        raise HTTPException(status_code=400, detail={"error": "Blocked by guardrails", "guardrails": check})
    if check["warnings"] and not confirmed:
        return {"success": False, "requires_confirmation": True, "guardrails": check}
    return None


def _daily_rows_for_cache(rows: List[Dict]) -> List[Dict]:
    return [r for r in rows if r.get("entity_id") and r.get("date")]


# ---------------------------------------------------------------------------
# Campaigns
# ---------------------------------------------------------------------------

@router.get("/campaigns")
async def get_campaigns(
    account_id: Optional[str] = Query(None),
    start_date: Optional[str] = Query(None, description="YYYY-MM-DD"),
    end_date: Optional[str] = Query(None, description="YYYY-MM-DD"),
    db: Session = Depends(get_db),
    user: User = Depends(require_user),
    connector_factory: Callable = Depends(get_connector_factory),
):
    """
    Campaigns with metrics and AI score for the date range

    Served from the metrics cache while its last sync is fresh; otherwise
    fetched live and written back to the cache.
    """
    _require(account_id, "account_id")
    account = resolve_account(db, user, account_id)
    if account.is_manager:
        raise HTTPException(
            status_code=400,
            detail="Cannot fetch campaigns for a manager account. Please select a client account.",
        )
    start, end = _date_range(start_date, end_date)
    customer_id = account.google_account_id

    try:
        metrics = MetricsService(db)
        cached = metrics.get_campaign_metrics(customer_id, start, end)
        if cached:
            return {"campaigns": score_campaigns(cached["data"]), "meta": cached["meta"]}

        connector = connector_factory(account)
        campaigns = await connector.fetch_campaigns(start, end)

        try:
            daily = await connector.fetch_daily_metrics("CAMPAIGN", start, end)
            metrics.cache_metrics(customer_id, "CAMPAIGN", _daily_rows_for_cache(daily),
                                  account_id=account.id, currency_code=account.currency_code or "USD")
        except Exception as e:
            log.warning(f"Could not cache campaign metrics for {customer_id}: {str(e)}")

        EntityHierarchyService(db).batch_upsert_entities(customer_id, [
            {"entity_type": "CAMPAIGN", "entity_id": c["id"], "entity_name": c["name"], "status": c["status"]}
            for c in campaigns
        ], account_id=account.id)

        sync_meta = metrics.get_sync_metadata(customer_id, "CAMPAIGN")
        return {
            "campaigns": score_campaigns(campaigns),
            "meta": {"source": "api", "freshness": metrics.get_freshness_info(sync_meta, end)},
        }

    except HTTPException:
        raise
    except Exception as e:
        log.error(f"Error fetching campaigns for {customer_id}: {str(e)}")
        raise HTTPException(status_code=500, detail=str(e))


@router.get("/campaigns/compare")
async def compare_campaigns(
    account_id: Optional[str] = Query(None),
    start_date: Optional[str] = Query(None),
    end_date: Optional[str] = Query(None),
    db: Session = Depends(get_db),
    user: User = Depends(require_user),
):
    """Cached campaign metrics against the previous period of the same length"""
    if not account_id or not start_date or not end_date:
        raise HTTPException(status_code=400, detail="account_id, start_date, and end_date are required")
    account = resolve_account(db, user, account_id, require_token=False)
    start, end = _date_range(start_date, end_date)
    return {"success": True, **MetricsService(db).compare_periods(account.google_account_id, start, end)}


class CampaignUpdate(BaseModel):
    account_id: Optional[str] = None
    campaign_id: Optional[str] = None
    updates: Dict = {}
    confirmed: bool = False


@router.patch("/campaigns")
async def update_campaign(
    body: CampaignUpdate,
    db: Session = Depends(get_db),
    user: User = Depends(require_user),
    connector_factory: Callable = Depends(get_connector_factory),
):
    """Pause/enable a campaign or change its daily budget"""
    _require(body.account_id, "account_id")
    campaign_id = _require(body.campaign_id, "campaign_id")
    status = body.updates.get("status")
    budget = body.updates.get("budget")
    if status is None and budget is None:
        raise HTTPException(status_code=400, detail="No updates provided")
    _status(status)
    if budget is not None:
        budget = _number(budget, "budget")

    account = resolve_account(db, user, body.account_id)
    customer_id = account.google_account_id
    settings = guardrails.get_guardrail_settings(db, user.id)
    hierarchy = EntityHierarchyService(db)
    node = hierarchy.get_entity(customer_id, "CAMPAIGN", campaign_id)
    name = node.entity_name if node else None

    try:
        connector = connector_factory(account)

        if status == "PAUSED":
            campaigns = [
                {"id": n.entity_id, "status": n.status}
                for n in hierarchy.get_entities(customer_id, "CAMPAIGN")
            ]
            if not campaigns:
                start, end = resolve_date_range(None, None)
                campaigns = await connector.fetch_campaigns(start, end)
            check = guardrails.check_pause_guardrails(
                [{"id": campaign_id, "ai_score": body.updates.get("ai_score")}], campaigns, settings
            )
            pending = _guardrail_response(check, body.confirmed)
            if pending:
                return pending

        current_budget = None
        if budget is not None:
            current = await connector.get_campaign_budget(campaign_id)
            if not current:
                raise HTTPException(status_code=404, detail="Campaign budget not found")
            current_budget = current["amount"]
            check = guardrails.check_budget_guardrails(
                {"id": campaign_id, "budget": current_budget}, float(budget), settings
            )
            pending = _guardrail_response(check, body.confirmed)
            if pending:
                return pending

        results = []
        if status is not None:
            result = await connector.update_campaign_status(campaign_id, status)
            log_activity(
                db, "pause_campaign" if status == "PAUSED" else "enable_campaign",
                user_id=user.id, account_id=account.id, entity_type="campaign",
                entity_id=campaign_id, entity_name=name,
                before_value={"status": node.status if node else None}, after_value={"status": status},
                status="success" if result["success"] else "failed", error_message=result.get("error"),
            )
            if result["success"]:
                hierarchy.upsert_entity(customer_id, {"entity_type": "CAMPAIGN", "entity_id": campaign_id,
                                                      "status": status}, account_id=account.id)
            results.append(result)

        if budget is not None:
            result = await connector.update_campaign_budget(campaign_id, float(budget))
            log_activity(
                db, "update_budget",
                user_id=user.id, account_id=account.id, entity_type="campaign",
                entity_id=campaign_id, entity_name=name,
                before_value={"budget": current_budget}, after_value={"budget": float(budget)},
                status="success" if result["success"] else "failed", error_message=result.get("error"),
            )
            results.append(result)

        errors = [r["error"] for r in results if not r["success"]]
        if errors:
            raise HTTPException(status_code=500, detail="; ".join(errors))
        return {"success": True}

    except HTTPException:
        raise
    except Exception as e:
        log.error(f"Error updating campaign {campaign_id}: {str(e)}")
        raise HTTPException(status_code=500, detail=str(e))


# ---------------------------------------------------------------------------
# Ad groups
# ---------------------------------------------------------------------------

@router.get("/ad-groups")
async def get_ad_groups(
    account_id: Optional[str] = Query(None),
    campaign_id: Optional[str] = Query(None),
    start_date: Optional[str] = Query(None),
    end_date: Optional[str] = Query(None),
    db: Session = Depends(get_db),
    user: User = Depends(require_user),
    connector_factory: Callable = Depends(get_connector_factory),
):
    _require(account_id, "account_id")
    campaign_id = _require(campaign_id, "campaign_id")
    account = resolve_account(db, user, account_id)
    start, end = _date_range(start_date, end_date)
    customer_id = account.google_account_id

    try:
        metrics = MetricsService(db)
        cached = metrics.get_ad_group_metrics(customer_id, start, end, campaign_id=campaign_id)
        if cached:
            ad_groups = [{**g, "campaign_id": campaign_id} for g in cached["data"]]
            return {"ad_groups": ad_groups, "meta": cached["meta"]}

        connector = connector_factory(account)
        ad_groups = await connector.fetch_ad_groups(campaign_id, start, end)
        EntityHierarchyService(db).batch_upsert_entities(customer_id, [
            {"entity_type": "AD_GROUP", "entity_id": g["id"], "entity_name": g["name"],
             "status": g["status"], "parent_entity_id": campaign_id}
            for g in ad_groups
        ], account_id=account.id)

        sync_meta = metrics.get_sync_metadata(customer_id, "AD_GROUP")
        return {
            "ad_groups": ad_groups,
            "meta": {"source": "api", "freshness": metrics.get_freshness_info(sync_meta, end)},
        }

    except HTTPException:
        raise
    except Exception as e:
        log.error(f"Error fetching ad groups for campaign {campaign_id}: {str(e)}")
        raise HTTPException(status_code=500, detail=str(e))


class AdGroupUpdate(BaseModel):
    account_id: Optional[str] = None
    ad_group_id: Optional[str] = None
    status: Optional[str] = None


@router.patch("/ad-groups")
async def update_ad_group(
    body: AdGroupUpdate,
    db: Session = Depends(get_db),
    user: User = Depends(require_user),
    connector_factory: Callable = Depends(get_connector_factory),
):
    _require(body.account_id, "account_id")
    ad_group_id = _require(body.ad_group_id, "ad_group_id")
    if _status(body.status) is None:
        raise HTTPException(status_code=400, detail="status must be ENABLED or PAUSED")
    account = resolve_account(db, user, body.account_id)

    try:
        hierarchy = EntityHierarchyService(db)
        node = hierarchy.get_entity(account.google_account_id, "AD_GROUP", ad_group_id)
        result = await connector_factory(account).update_ad_group_status(ad_group_id, body.status)
        log_activity(
            db, "pause_ad_group" if body.status == "PAUSED" else "enable_ad_group",
            user_id=user.id, account_id=account.id, entity_type="ad_group",
            entity_id=ad_group_id, entity_name=node.entity_name if node else None,
            before_value={"status": node.status if node else None}, after_value={"status": body.status},
            status="success" if result["success"] else "failed", error_message=result.get("error"),
        )
        if not result["success"]:
            raise HTTPException(status_code=500, detail=result.get("error"))
        return {"success": True}

    except HTTPException:
        raise
    except Exception as e:
        log.error(f"Error updating ad group {ad_group_id}: {str(e)}")
        raise HTTPException(status_code=500, detail=str(e))


# ---------------------------------------------------------------------------
# Keywords
# ---------------------------------------------------------------------------

def _with_predicted_quality_score(keyword: Dict) -> Dict:
    if keyword.get("quality_score"):
        return keyword
    actual_ctr = keyword.get("ctr") if (keyword.get("impressions") or 0) > 0 else None
    prediction = predict_quality_score(
        keyword.get("text") or "",
        match_type=keyword.get("match_type"),
        actual_ctr=actual_ctr,
    )
    return {**keyword, "predicted_quality_score": prediction}


@router.get("/keywords")
async def get_keywords(
    account_id: Optional[str] = Query(None),
    ad_group_id: Optional[str] = Query(None),
    start_date: Optional[str] = Query(None),
    end_date: Optional[str] = Query(None),
    db: Session = Depends(get_db),
    user: User = Depends(require_user),
    connector_factory: Callable = Depends(get_connector_factory),
):
    _require(account_id, "account_id")
    ad_group_id = _require(ad_group_id, "ad_group_id")
    account = resolve_account(db, user, account_id)
    start, end = _date_range(start_date, end_date)

    try:
        keywords = await connector_factory(account).fetch_keywords(ad_group_id, start, end)
        EntityHierarchyService(db).batch_upsert_entities(account.google_account_id, [
            {"entity_type": "KEYWORD", "entity_id": keyword_entity_id(ad_group_id, k["id"]),
             "entity_name": k["text"], "status": k["status"],
             "parent_entity_id": ad_group_id, "campaign_id": k.get("campaign_id")}
            for k in keywords
        ], account_id=account.id)
        return {"keywords": [_with_predicted_quality_score(k) for k in keywords]}

    except HTTPException:
        raise
    except Exception as e:
        log.error(f"Error fetching keywords for ad group {ad_group_id}: {str(e)}")
        raise HTTPException(status_code=500, detail=str(e))


class NewKeyword(BaseModel):
    text: str
    match_type: str = "BROAD"


class KeywordCreate(BaseModel):
    account_id: Optional[str] = None
    ad_group_id: Optional[str] = None
    keywords: List[NewKeyword] = []


@router.post("/keywords")
async def create_keywords(
    body: KeywordCreate,
    db: Session = Depends(get_db),
    user: User = Depends(require_user),
    connector_factory: Callable = Depends(get_connector_factory),
):
    _require(body.account_id, "account_id")
    ad_group_id = _require(body.ad_group_id, "ad_group_id")
    keywords = [k for k in body.keywords if k.text.strip()]
    if not keywords:
        raise HTTPException(status_code=400, detail="At least one keyword is required")
    account = resolve_account(db, user, body.account_id)

    try:
        payload = [{"text": k.text.strip(), "match_type": k.match_type.upper()} for k in keywords]
        result = await connector_factory(account).create_keywords(ad_group_id, payload)
        log_activity(
            db, "add_keywords",
            user_id=user.id, account_id=account.id, entity_type="keyword",
            entity_id=ad_group_id, after_value={"keywords": payload},
            status="success" if result["success"] else "failed", error_message=result.get("error"),
        )
        if not result["success"]:
            raise HTTPException(status_code=500, detail=result.get("error"))
        return {"success": True, "keyword_ids": result["keyword_ids"]}

    except HTTPException:
        raise
    except Exception as e:
        log.error(f"Error creating keywords in ad group {ad_group_id}: {str(e)}")
        raise HTTPException(status_code=500, detail=str(e))


class KeywordUpdate(BaseModel):
    account_id: Optional[str] = None
    ad_group_id: Optional[str] = None
    keyword_id: Optional[str] = None
    updates: Dict = {}


@router.patch("/keywords")
async def update_keyword(
    body: KeywordUpdate,
    db: Session = Depends(get_db),
    user: User = Depends(require_user),
    connector_factory: Callable = Depends(get_connector_factory),
):
    _require(body.account_id, "account_id")
    ad_group_id = _require(body.ad_group_id, "ad_group_id")
    keyword_id = _require(body.keyword_id, "keyword_id")
    status = body.updates.get("status")
    cpc_bid = body.updates.get("cpc_bid")
    if status is None and cpc_bid is None:
        raise HTTPException(status_code=400, detail="No updates provided")
    _status(status)
    if cpc_bid is not None:
        cpc_bid = _number(cpc_bid, "cpc_bid")
        if not cpc_bid > 0:
            raise HTTPException(status_code=400, detail="cpc_bid must be greater than 0")
    account = resolve_account(db, user, body.account_id)

    try:
        connector = connector_factory(account)
        node = EntityHierarchyService(db).get_entity(
            account.google_account_id, "KEYWORD", keyword_entity_id(ad_group_id, keyword_id)
        )
        name = node.entity_name if node else None
        errors = []

        if status is not None:
            result = await connector.update_keyword_status(ad_group_id, keyword_id, status)
            log_activity(
                db, "pause_keyword" if status == "PAUSED" else "enable_keyword",
                user_id=user.id, account_id=account.id, entity_type="keyword",
                entity_id=keyword_id, entity_name=name,
                before_value={"status": node.status if node else None}, after_value={"status": status},
                status="success" if result["success"] else "failed", error_message=result.get("error"),
            )
            if not result["success"]:
                errors.append(result.get("error"))

        if cpc_bid is not None:
            result = await connector.update_keyword_bid(ad_group_id, keyword_id, float(cpc_bid))
            log_activity(
                db, "update_bid",
                user_id=user.id, account_id=account.id, entity_type="keyword",
                entity_id=keyword_id, entity_name=name, after_value={"cpc_bid": float(cpc_bid)},
                status="success" if result["success"] else "failed", error_message=result.get("error"),
            )
            if not result["success"]:
                errors.append(result.get("error"))

        if errors:
            raise HTTPException(status_code=500, detail="; ".join(str(e) for e in errors))
        return {"success": True}

    except HTTPException:
        raise
    except Exception as e:
        log.error(f"Error updating keyword {keyword_id}: {str(e)}")
        raise HTTPException(status_code=500, detail=str(e))


@router.delete("/keywords")
async def delete_keyword(
    account_id: Optional[str] = Query(None),
    ad_group_id: Optional[str] = Query(None),
    keyword_id: Optional[str] = Query(None),
    db: Session = Depends(get_db),
    user: User = Depends(require_user),
    connector_factory: Callable = Depends(get_connector_factory),
):
    _require(account_id, "account_id")
    ad_group_id = _require(ad_group_id, "ad_group_id")
    keyword_id = _require(keyword_id, "keyword_id")
    account = resolve_account(db, user, account_id)

    try:
        node = EntityHierarchyService(db).get_entity(
            account.google_account_id, "KEYWORD", keyword_entity_id(ad_group_id, keyword_id)
        )
        result = await connector_factory(account).remove_keyword(ad_group_id, keyword_id)
        log_activity(
            db, "remove_keyword",
            user_id=user.id, account_id=account.id, entity_type="keyword",
            entity_id=keyword_id, entity_name=node.entity_name if node else None,
            before_value={"status": node.status if node else None}, after_value={"status": "REMOVED"},
            status="success" if result["success"] else "failed", error_message=result.get("error"),
        )
        if not result["success"]:
            raise HTTPException(status_code=500, detail=result.get("error"))
        return {"success": True}

    except HTTPException:
        raise
    except Exception as e:
        log.error(f"Error removing keyword {keyword_id}: {str(e)}")
        raise HTTPException(status_code=500, detail=str(e))


# ---------------------------------------------------------------------------
# Ads
# ---------------------------------------------------------------------------

# Responsive search ad limits enforced by Google Ads
MAX_HEADLINES, MIN_HEADLINES, HEADLINE_LENGTH = 15, 3, 30
MAX_DESCRIPTIONS, MIN_DESCRIPTIONS, DESCRIPTION_LENGTH = 4, 2, 90


@router.get("/ads")
async def get_ads(
    account_id: Optional[str] = Query(None),
    ad_group_id: Optional[str] = Query(None),
    start_date: Optional[str] = Query(None),
    end_date: Optional[str] = Query(None),
    db: Session = Depends(get_db),
    user: User = Depends(require_user),
    connector_factory: Callable = Depends(get_connector_factory),
):
    _require(account_id, "account_id")
    ad_group_id = _require(ad_group_id, "ad_group_id")
    account = resolve_account(db, user, account_id)
    start, end = _date_range(start_date, end_date)

    try:
        ads = await connector_factory(account).fetch_ads(ad_group_id, start, end)
        EntityHierarchyService(db).batch_upsert_entities(account.google_account_id, [
            {"entity_type": "AD", "entity_id": a["id"], "entity_name": (a["headlines"] or [a["type"]])[0],
             "status": a["status"], "parent_entity_id": ad_group_id, "campaign_id": a.get("campaign_id")}
            for a in ads
        ], account_id=account.id)
        return {"ads": ads}

    except HTTPException:
        raise
    except Exception as e:
        log.error(f"Error fetching ads for ad group {ad_group_id}: {str(e)}")
        raise HTTPException(status_code=500, detail=str(e))


class NewAd(BaseModel):
    headlines: List[str] = []
    descriptions: List[str] = []
    final_urls: List[str] = []
    path1: Optional[str] = None
    path2: Optional[str] = None


class AdCreate(BaseModel):
    account_id: Optional[str] = None
    ad_group_id: Optional[str] = None
    ad: Optional[NewAd] = None


def _validate_ad(ad: Optional[NewAd]) -> NewAd:
    if ad is None:
        raise HTTPException(status_code=400, detail="Ad headlines, descriptions, and final_urls are required")
    headlines = [h.strip() for h in ad.headlines if h.strip()]
    descriptions = [d.strip() for d in ad.descriptions if d.strip()]
    final_urls = [u.strip() for u in ad.final_urls if u.strip()]
    if not headlines or not descriptions or not final_urls:
        raise HTTPException(status_code=400, detail="Ad headlines, descriptions, and final_urls are required")
    if not MIN_HEADLINES <= len(headlines) <= MAX_HEADLINES:
        raise HTTPException(status_code=400, detail=f"Between {MIN_HEADLINES} and {MAX_HEADLINES} headlines are required")
    if not MIN_DESCRIPTIONS <= len(descriptions) <= MAX_DESCRIPTIONS:
        raise HTTPException(status_code=400,
                            detail=f"Between {MIN_DESCRIPTIONS} and {MAX_DESCRIPTIONS} descriptions are required")
    too_long = [h for h in headlines if len(h) > HEADLINE_LENGTH]
    too_long += [d for d in descriptions if len(d) > DESCRIPTION_LENGTH]
    if too_long:
        raise HTTPException(status_code=400, detail={
            "error": f"Headlines are limited to {HEADLINE_LENGTH} characters and descriptions to {DESCRIPTION_LENGTH}",
            "too_long": too_long,
        })
    return NewAd(headlines=headlines, descriptions=descriptions, final_urls=final_urls,
                 path1=ad.path1, path2=ad.path2)


@router.post("/ads")
async def create_ad(
    body: AdCreate,
    db: Session = Depends(get_db),
    user: User = Depends(require_user),
    connector_factory: Callable = Depends(get_connector_factory),
):
    """Create a responsive search ad; it starts paused"""
    _require(body.account_id, "account_id")
    ad_group_id = _require(body.ad_group_id, "ad_group_id")
    ad = _validate_ad(body.ad)
    account = resolve_account(db, user, body.account_id)

    try:
        result = await connector_factory(account).create_responsive_search_ad(
            ad_group_id, ad.headlines, ad.descriptions, ad.final_urls, path1=ad.path1, path2=ad.path2,
        )
        log_activity(
            db, "create_ad",
            user_id=user.id, account_id=account.id, entity_type="ad",
            entity_id=result.get("ad_id") or ad_group_id, entity_name=ad.headlines[0],
            after_value=ad.model_dump(),
            status="success" if result["success"] else "failed", error_message=result.get("error"),
        )
        if not result["success"]:
            raise HTTPException(status_code=500, detail=result.get("error"))
        return {"success": True, "ad_id": result["ad_id"]}

    except HTTPException:
        raise
    except Exception as e:
        log.error(f"Error creating ad in ad group {ad_group_id}: {str(e)}")
        raise HTTPException(status_code=500, detail=str(e))


class AdUpdate(BaseModel):
    account_id: Optional[str] = None
    ad_group_id: Optional[str] = None
    ad_id: Optional[str] = None
    status: Optional[str] = None


@router.patch("/ads")
async def update_ad(
    body: AdUpdate,
    db: Session = Depends(get_db),
    user: User = Depends(require_user),
    connector_factory: Callable = Depends(get_connector_factory),
):
    _require(body.account_id, "account_id")
    ad_group_id = _require(body.ad_group_id, "ad_group_id")
    ad_id = _require(body.ad_id, "ad_id")
    if _status(body.status) is None:
        raise HTTPException(status_code=400, detail="status must be ENABLED or PAUSED")
    account = resolve_account(db, user, body.account_id)

    try:
        hierarchy = EntityHierarchyService(db)
        node = hierarchy.get_entity(account.google_account_id, "AD", ad_id)
        result = await connector_factory(account).update_ad_status(ad_group_id, ad_id, body.status)
        log_activity(
            db, "pause_ad" if body.status == "PAUSED" else "enable_ad",
            user_id=user.id, account_id=account.id, entity_type="ad",
            entity_id=ad_id, entity_name=node.entity_name if node else None,
            before_value={"status": node.status if node else None}, after_value={"status": body.status},
            status="success" if result["success"] else "failed", error_message=result.get("error"),
        )
        if not result["success"]:
            raise HTTPException(status_code=500, detail=result.get("error"))
        if node:
            hierarchy.upsert_entity(account.google_account_id, {
                "entity_type": "AD", "entity_id": ad_id, "status": body.status, "parent_entity_id": ad_group_id,
            }, account_id=account.id)
        return {"success": True}

    except HTTPException:
        raise
    except Exception as e:
        log.error(f"Error updating ad {ad_id}: {str(e)}")
        raise HTTPException(status_code=500, detail=str(e))


# ---------------------------------------------------------------------------
# Negative keywords
# ---------------------------------------------------------------------------

NEGATIVE_LEVELS = ("account", "campaign", "ad_group")
MATCH_TYPES = ("EXACT", "PHRASE", "BROAD")


@router.get("/negative-keywords")
async def get_negative_keywords(
    account_id: Optional[str] = Query(None),
    campaign_id: Optional[str] = Query(None),
    db: Session = Depends(get_db),
    user: User = Depends(require_user),
    connector_factory: Callable = Depends(get_connector_factory),
):
    """Campaign-level negatives and shared negative keyword lists"""
    _require(account_id, "account_id")
    account = resolve_account(db, user, account_id)

    try:
        negatives = await connector_factory(account).fetch_negative_keywords(campaign_id)
        return {"negative_keywords": negatives["campaign"], "shared_lists": negatives["shared_lists"]}

    except HTTPException:
        raise
    except Exception as e:
        log.error(f"Error fetching negative keywords for {account.google_account_id}: {str(e)}")
        raise HTTPException(status_code=500, detail=str(e))


class NegativeKeywordCreate(BaseModel):
    account_id: Optional[str] = None
    keywords: List[str] = []
    level: str = "campaign"
    match_type: str = "EXACT"
    campaign_id: Optional[str] = None
    ad_group_id: Optional[str] = None
    list_id: Optional[str] = None
    list_name: Optional[str] = None


@router.post("/negative-keywords")
async def add_negative_keywords(
    body: NegativeKeywordCreate,
    db: Session = Depends(get_db),
    user: User = Depends(require_user),
    connector_factory: Callable = Depends(get_connector_factory),
):
    """
    Add negatives to a shared list (level=account), a campaign or an ad group.

    Account level adds to list_id, or creates a list named list_name and
    attaches it to every enabled campaign.
    """
    _require(body.account_id, "account_id")
    keywords = list(dict.fromkeys(k.strip() for k in body.keywords if k.strip()))
    if not keywords:
        raise HTTPException(status_code=400, detail="At least one keyword is required")
    match_type = body.match_type.upper()
    if match_type not in MATCH_TYPES:
        raise HTTPException(status_code=400, detail=f"match_type must be one of: {', '.join(MATCH_TYPES)}")
    if (body.level not in NEGATIVE_LEVELS
            or (body.level == "campaign" and not body.campaign_id)
            or (body.level == "ad_group" and not body.ad_group_id)):
        raise HTTPException(status_code=400, detail="Invalid level or missing campaign_id/ad_group_id")
    account = resolve_account(db, user, body.account_id)

    try:
        result = await connector_factory(account).add_negative_keywords(
            body.level, keywords, match_type,
            campaign_id=body.campaign_id, ad_group_id=body.ad_group_id,
            list_id=body.list_id, list_name=body.list_name,
        )
        target = {"account": body.list_id or result.get("list"), "campaign": body.campaign_id,
                  "ad_group": body.ad_group_id}[body.level]
        log_activity(
            db, "add_negative_keywords",
            user_id=user.id, account_id=account.id, entity_type=body.level,
            entity_id=target, entity_name=body.list_name,
            after_value={"keywords": keywords, "match_type": match_type},
            status="success" if result["success"] else "failed", error_message=result.get("error"),
        )
        if not result["success"]:
            raise HTTPException(status_code=500, detail=result.get("error"))
        return result

    except HTTPException:
        raise
    except Exception as e:
        log.error(f"Error adding negative keywords for {account.google_account_id}: {str(e)}")
        raise HTTPException(status_code=500, detail=str(e))


@router.delete("/negative-keywords")
async def remove_negative_keyword(
    account_id: Optional[str] = Query(None),
    campaign_id: Optional[str] = Query(None),
    criterion_id: Optional[str] = Query(None),
    db: Session = Depends(get_db),
    user: User = Depends(require_user),
    connector_factory: Callable = Depends(get_connector_factory),
):
    _require(account_id, "account_id")
    campaign_id = _require(campaign_id, "campaign_id")
    criterion_id = _require(criterion_id, "criterion_id")
    account = resolve_account(db, user, account_id)

    try:
        result = await connector_factory(account).remove_negative_keyword(campaign_id, criterion_id)
        log_activity(
            db, "remove_negative_keyword",
            user_id=user.id, account_id=account.id, entity_type="campaign",
            entity_id=campaign_id, before_value={"criterion_id": criterion_id},
            status="success" if result["success"] else "failed", error_message=result.get("error"),
        )
        if not result["success"]:
            raise HTTPException(status_code=500, detail=result.get("error"))
        return {"success": True}

    except HTTPException:
        raise
    except Exception as e:
        log.error(f"Error removing negative keyword {criterion_id}: {str(e)}")
        raise HTTPException(status_code=500, detail=str(e))


# ---------------------------------------------------------------------------
# Refresh queue
# ---------------------------------------------------------------------------

class RefreshRequest(BaseModel):
    account_id: Optional[str] = None
    entity_type: Optional[str] = None
    parent_entity_id: Optional[str] = None
    start_date: Optional[str] = None
    end_date: Optional[str] = None


@router.post("/refresh")
async def refresh(body: RefreshRequest, db: Session = Depends(get_db), user: User = Depends(require_user)):
    """Queue a background refresh of one entity level"""
    _require(body.account_id, "account_id")
    if body.entity_type not in scheduler.REFRESH_ENTITY_TYPES:
        raise HTTPException(
            status_code=400,
            detail=f"entity_type must be one of: {', '.join(scheduler.REFRESH_ENTITY_TYPES)}",
        )
    parent = PARENT_REQUIRED.get(body.entity_type)
    if parent and not body.parent_entity_id:
        raise HTTPException(status_code=400, detail=f"parent_entity_id ({parent} id) is required for {body.entity_type}")
    if not scheduler.is_queue_available():
        raise HTTPException(status_code=503, detail="Refresh queue is not available")

    account = resolve_account(db, user, body.account_id)
    try:
        if body.start_date or body.end_date:
            start = parse_date(body.start_date or body.end_date)
            end = parse_date(body.end_date or body.start_date)
            if start > end:
                raise ValueError("start_date must be on or before end_date")
        else:
            start, end = resolve_date_range(None, None)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    try:
        return scheduler.enqueue_refresh(account, body.entity_type, start, end, body.parent_entity_id)
    except Exception as e:
        log.error(f"Error queueing refresh for {account.google_account_id}: {str(e)}")
        raise HTTPException(status_code=500, detail=str(e))
