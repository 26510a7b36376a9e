"""Landing page analysis endpoint"""
from fastapi import APIRouter, Depends, HTTPException
from typing import List, Optional
from pydantic import BaseModel

from adpilot.api.auth import require_user
from adpilot.api.deps import get_moz_connector
from adpilot.connectors.moz import MozConnector
from adpilot.models.user import User
from adpilot.services.landing_page_analyzer import LandingPageAnalyzer, normalize_url
from adpilot.utils.logger import log

router = APIRouter(prefix="/api/analyzer", tags=["analyzer"])


class LandingPageRequest(BaseModel):
    url: Optional[str] = None
    keywords: List[str] = []


@router.post("/landing-page")
async def analyze_landing_page(
    body: LandingPageRequest,
    user: User = Depends(require_user),
    moz: MozConnector = Depends(get_moz_connector),
):
    """
    Score a landing page on speed, mobile, content, keyword relevance, CTAs
    and security, with prioritized recommendations.
    """
    try:
        url = normalize_url(body.url or "")
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    try:
        return await LandingPageAnalyzer(moz).analyze(url, body.keywords)
    except Exception as e:
        log.error(f"Landing page analysis failed for {url}: {str(e)}")
        raise HTTPException(status_code=500, detail=str(e))
