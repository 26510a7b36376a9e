"""
Keyword research API

Quality Score prediction, ROI projection, SERP feature analysis, keyword
difficulty, search intent and search-term negative suggestions.
"""
import time
from fastapi import APIRouter, Depends, HTTPException, Query
from typing import Dict, List, Optional
from pydantic import BaseModel
from sqlalchemy.orm import Session

from adpilot.api.auth import require_user
from adpilot.api.deps import get_dataforseo_connector
from adpilot.connectors.dataforseo import DataForSEOConnector
from adpilot.models.base import get_db
from adpilot.models.user import User
from adpilot.services.keyword_factory import suggest_search_term_negatives
from adpilot.services.keyword_metrics import DIFFICULTY_MAX_KEYWORDS, KeywordMetricsService
from adpilot.services.quality_score import batch_predict_quality_scores
from adpilot.services.roi_calculator import batch_calculate_roi, classify_roi, recommend_budget
from adpilot.services.serp_analyzer import COST_PER_CALL, SerpAnalyzer, estimate_serp_cost, location_code
from adpilot.utils.helpers import round_half_up
from adpilot.utils.logger import log

router = APIRouter(prefix="/api/keywords", tags=["keywords"])

MAX_SERP_KEYWORDS = 100


class QualityScoreInput(BaseModel):
    keyword: str
    match_type: Optional[str] = None
    intent: Optional[str] = None
    competition: Optional[str] = None
    actual_ctr: Optional[float] = None
    avg_position: Optional[float] = None
    historical_quality_score: Optional[int] = None
    serp_ads_count: Optional[int] = None
    has_landing_page: Optional[bool] = None
    page_load_time: Optional[float] = None
    mobile_optimized: Optional[bool] = None
    is_brand_keyword: Optional[bool] = None


class QualityScoreRequest(BaseModel):
    keywords: List[QualityScoreInput] = []


class RoiInput(BaseModel):
    keyword: str
    search_volume: Optional[float] = None
    cpc: Optional[float] = None
    difficulty: Optional[float] = None
    competition: Optional[str] = None
    intent: Optional[str] = None
    quality_score: Optional[int] = None
    avg_position: Optional[float] = None


class RoiRequest(BaseModel):
    keywords: List[RoiInput] = []
    total_budget: Optional[float] = None
    assumptions: Optional[Dict] = None


class SerpRequest(BaseModel):
    keywords: List[str] = []
    location_id: str = "2840"
    device: str = "desktop"
    force_refresh: bool = False


class DifficultyRequest(BaseModel):
    keywords: List[str] = []
    location_code: int = 2840


@router.post("/quality-score")
async def quality_score(body: QualityScoreRequest, user: User = Depends(require_user)):
    if not body.keywords:
        raise HTTPException(status_code=400, detail="Keywords array is required and must not be empty")
    try:
        predictions = batch_predict_quality_scores([k.model_dump(exclude_none=True) for k in body.keywords])
        scores = [p["predicted_score"] for p in predictions.values()]
        return {
            "predictions": predictions,
            "summary": {
                "total_keywords": len(predictions),
                "avg_predicted_score": round(sum(scores) / len(scores), 1) if scores else 0,
                "low_score_count": sum(1 for s in scores if s <= 4),
            },
        }
    except Exception as e:
        log.error(f"Quality Score prediction failed: {str(e)}")
        raise HTTPException(status_code=500, detail=str(e))


@router.post("/roi")
async def roi(body: RoiRequest, user: User = Depends(require_user)):
    if not body.keywords:
        raise HTTPException(status_code=400, detail="Keywords array is required and must not be empty")
    if body.total_budget is not None and body.total_budget < 0:
        raise HTTPException(status_code=400, detail="total_budget must not be negative")
    try:
        estimates = batch_calculate_roi([k.model_dump(exclude_none=True) for k in body.keywords], body.assumptions)
        results = {}
        for keyword, estimate in estimates.items():
            entry = {**estimate, "classification": classify_roi(estimate)}
            if body.total_budget:
                entry["budget_recommendation"] = recommend_budget(estimate, body.total_budget)
            results[keyword] = entry

        rois = [e["projections"]["roi"] for e in estimates.values()]
        return {
            "results": results,
            "summary": {
                "total_keywords": len(results),
                "avg_roi": round(sum(rois) / len(rois), 1) if rois else 0,
                "profitable_keywords": sum(1 for r in rois if r > 0),
            },
        }
    except Exception as e:
        log.error(f"ROI calculation failed: {str(e)}")
        raise HTTPException(status_code=500, detail=str(e))


@router.post("/serp-features")
async def serp_features(
    body: SerpRequest,
    db: Session = Depends(get_db),
    user: User = Depends(require_user),
    connector: DataForSEOConnector = Depends(get_dataforseo_connector),
):
    keywords = [k.strip() for k in body.keywords if k and k.strip()]
    if not keywords:
        raise HTTPException(status_code=400, detail="Keywords array is required and must not be empty")
    if len(keywords) > MAX_SERP_KEYWORDS:
        raise HTTPException(
            status_code=400,
            detail=f"Too many keywords. Maximum {MAX_SERP_KEYWORDS} keywords per request.",
        )
    if body.device not in ("desktop", "mobile"):
        raise HTTPException(status_code=400, detail='Device must be either "desktop" or "mobile"')
    try:
        location_code(body.location_id)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    if not connector.is_configured:
        raise HTTPException(status_code=503, detail="SERP analysis unavailable - DataForSEO API not configured")

    try:
        started = time.monotonic()
        analyzer = SerpAnalyzer(db, connector)
        if len(keywords) == 1:
            results = [await analyzer.get_serp_features(keywords[0], body.location_id, body.device,
                                                        force_refresh=body.force_refresh)]
        else:
            batch = await analyzer.analyze_batch(keywords, body.location_id, body.device,
                                                 force_refresh=body.force_refresh)
            results = list(batch.values())

        cached = sum(1 for r in results if r["cached"])
        fetched = len(results) - cached
        scores = [r["difficulty"]["score"] for r in results]
        return {
            "results": results,
            "summary": {
                "total_keywords": len(keywords),
                "cached": cached,
                "fetched": fetched,
                "estimated_cost": round_half_up(fetched * COST_PER_CALL, 2),
                "avg_difficulty": round(sum(scores) / len(scores), 1) if scores else 0,
                "duration_ms": int((time.monotonic() - started) * 1000),
            },
        }
    except Exception as e:
        log.error(f"SERP features analysis failed: {str(e)}")
        raise HTTPException(status_code=500, detail=str(e))


@router.get("/serp-features/cost")
async def serp_cost(count: int = Query(..., ge=1, le=MAX_SERP_KEYWORDS), user: User = Depends(require_user)):
    return estimate_serp_cost(count)


@router.post("/difficulty")
async def keyword_difficulty(
    body: DifficultyRequest,
    db: Session = Depends(get_db),
    user: User = Depends(require_user),
    connector: DataForSEOConnector = Depends(get_dataforseo_connector),
):
    keywords = list(dict.fromkeys(k.strip() for k in body.keywords if k and k.strip()))
    if not keywords:
        raise HTTPException(status_code=400, detail="Keywords array is required and must not be empty")
    if len(keywords) > DIFFICULTY_MAX_KEYWORDS:
        raise HTTPException(
            status_code=400,
            detail=f"Too many keywords. Maximum {DIFFICULTY_MAX_KEYWORDS} keywords per request.",
        )
    try:
        service = KeywordMetricsService(db, dataforseo=connector)
        return await service.get_keyword_difficulty(keywords, location_code=body.location_code)
    except Exception as e:
        log.error(f"Keyword difficulty lookup failed: {str(e)}")
        raise HTTPException(status_code=500, detail=str(e))


class IntentRequest(BaseModel):
    keywords: List[str] = []
    language: str = "en"


@router.post("/classify-intent")
async def classify_intent(
    body: IntentRequest,
    db: Session = Depends(get_db),
    user: User = Depends(require_user),
    connector: DataForSEOConnector = Depends(get_dataforseo_connector),
):
    """Search intent per keyword, DataForSEO first with a heuristic fallback"""
    if not [k for k in body.keywords if k and k.strip()]:
        raise HTTPException(status_code=400, detail="Keywords array required")
    try:
        service = KeywordMetricsService(db, dataforseo=connector)
        return await service.classify_intent(body.keywords, language=body.language)
    except Exception as e:
        log.error(f"Intent classification failed: {str(e)}")
        raise HTTPException(status_code=500, detail=str(e))


class SearchTermInput(BaseModel):
    search_term: str
    cost: float = 0
    conversions: float = 0
    clicks: int = 0
    impressions: int = 0
    campaign_id: Optional[str] = None
    ad_group_id: Optional[str] = None


class NegativeSuggestRequest(BaseModel):
    search_terms: Optional[List[SearchTermInput]] = None


@router.post("/negative-suggest")
async def negative_suggest(body: NegativeSuggestRequest, user: User = Depends(require_user)):
    """Negative keyword candidates among search terms that spend without converting"""
    if body.search_terms is None:
        raise HTTPException(status_code=400, detail="search_terms array is required")
    result = suggest_search_term_negatives([t.model_dump() for t in body.search_terms])
    if not result["summary"]["wasters_found"]:
        result["message"] = "No wasteful search terms found"
    return result
