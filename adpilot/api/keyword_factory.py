"""
Keyword Factory API

Generates keyword ideas from seed keywords and optionally enriches them with
search volume, CPC and difficulty from the configured providers.
"""
from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import JSONResponse
from typing import Callable, Dict, List, Optional
from pydantic import BaseModel
from sqlalchemy.orm import Session

from adpilot.api.accounts import get_connector_factory, resolve_account
from adpilot.api.auth import require_user
from adpilot.api.deps import get_dataforseo_connector, get_moz_connector
from adpilot.connectors.dataforseo import DataForSEOConnector
from adpilot.connectors.moz import MozConnector
from adpilot.models.base import get_db
from adpilot.models.user import User
from adpilot.services.keyword_factory import (
    CAPABILITIES,
    DEFAULT_OPTIONS,
    apply_enrichment,
    build_stats,
    cluster_keywords,
    generate_keywords,
    geo_code_for,
    prioritize_for_enrichment,
)
from adpilot.services.keyword_metrics import PROVIDERS, KeywordMetricsService, QuotaTracker
from adpilot.utils.logger import log

router = APIRouter(prefix="/api/keyword-factory", tags=["keyword-factory"])


def _int_option(options: Dict, name: str) -> int:
    value = options[name]
    try:
        number = None if isinstance(value, bool) else int(value)
    except (TypeError, ValueError):
        number = None
    if number is None or number < 0:
        raise HTTPException(status_code=400, detail=f"options.{name} must be a non-negative integer")
    return number


class KeywordFactoryRequest(BaseModel):
    seed_keywords: List[str] = []
    options: Dict = {}
    account_id: Optional[str] = None


@router.post("")
async def generate(
    body: KeywordFactoryRequest,
    db: Session = Depends(get_db),
    user: User = Depends(require_user),
    connector_factory: Callable = Depends(get_connector_factory),
    dataforseo: DataForSEOConnector = Depends(get_dataforseo_connector),
    moz: MozConnector = Depends(get_moz_connector),
):
    seeds = [s for s in body.seed_keywords if s and s.strip()]
    if not seeds:
        raise HTTPException(status_code=400, detail="At least one seed keyword is required")

    options = {**DEFAULT_OPTIONS, **body.options}
    max_to_enrich = _int_option(options, "max_keywords_to_enrich")
    min_search_volume = _int_option(options, "min_search_volume")
    providers = [p for p in options["metrics_providers"] or [] if p in PROVIDERS] or ["google_ads"]

    try:
        result = generate_keywords(seeds, options)
    except Exception as e:
        log.error(f"Keyword generation failed: {str(e)}")
        raise HTTPException(status_code=500, detail=str(e))

    if not options["enrich_with_metrics"]:
        return {"success": True, **result}

    warnings: List[str] = []
    to_enrich = prioritize_for_enrichment(result["keywords"], max_to_enrich)

    quota = await QuotaTracker(db, dataforseo).check_quota_availability(len(to_enrich), providers)
    if not quota["can_proceed"]:
        return JSONResponse(status_code=429, content={
            "error": "Insufficient quota for enrichment",
            "warnings": quota["warnings"],
        })
    warnings += quota["warnings"]

    google_ads = None
    if "google_ads" in providers and body.account_id:
        google_ads = connector_factory(resolve_account(db, user, body.account_id))

    try:
        service = KeywordMetricsService(db, google_ads=google_ads, dataforseo=dataforseo, moz=moz)
        enrichment = await service.enrich(
            to_enrich,
            providers=providers,
            location_id=geo_code_for(options["target_location"]),
            language=options["language"],
        )
        keywords = apply_enrichment(
            result["keywords"],
            enrichment["enriched"],
            min_search_volume=min_search_volume,
            sort_by_metrics=bool(options["sort_by_metrics"]),
        )
        clusters = cluster_keywords([k for k in keywords if not k.get("negative_candidate")])
        stats = {
            **build_stats(keywords, result["negative_keywords"], clusters),
            "enrichment": enrichment["stats"],
        }
        for error in enrichment["stats"]["errors"]:
            if "keyword" not in error:
                warnings.append(f"{error['provider']}: {error['error']}")
        result = {**result, "keywords": keywords, "clusters": clusters, "stats": stats}

    except HTTPException:
        raise
    except Exception as e:
        log.warning(f"Keyword enrichment failed, returning generated keywords only: {str(e)}")
        warnings.append(f"Enrichment failed: {str(e)}")

    response = {"success": True, **result}
    if warnings:
        response["warnings"] = warnings
    return response


@router.get("")
async def capabilities(user: User = Depends(require_user)):
    return CAPABILITIES
