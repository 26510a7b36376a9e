"""
SERP Analyzer

Detects ads and SERP features for a keyword via DataForSEO and turns them
into an organic difficulty score (0-100). Results are cached per
(keyword, location, device) for 30 days.
"""
import asyncio
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional
from sqlalchemy.orm import Session

from adpilot.connectors.base_connector import ConnectorError
from adpilot.connectors.dataforseo import DataForSEOConnector
from adpilot.models.keyword_data import KeywordSerpFeatures
from adpilot.utils.helpers import chunk_list, clamp, normalize_keyword, round_half_up
from adpilot.utils.logger import log

CACHE_TTL_DAYS = 30
BATCH_SIZE = 10
BATCH_PAUSE_SECONDS = 1.0
COST_PER_CALL = 0.0075
DEFAULT_CACHE_HIT_RATE = 0.7
TOP_AD_MAX_RANK = 4

DIFFICULTY_CLASSES = [
    (80, "Extremely Hard", "red",
     "Very difficult to rank organically - SERP dominated by ads and features"),
    (60, "Hard", "orange",
     "Challenging to rank - multiple ads and SERP features present"),
    (40, "Moderate", "yellow",
     "Moderate difficulty - some ads and features competing for attention"),
    (20, "Easy", "green",
     "Good opportunity - limited ads and SERP features"),
    (0, "Very Easy", "emerald",
     "Excellent opportunity - minimal competition for organic visibility"),
]


def location_code(location_id) -> int:
    """DataForSEO location codes are numeric (2840 = United States)"""
    code = str(location_id).strip()
    if not code.isdigit():
        raise ValueError(f"Invalid location_id '{location_id}', expected a numeric location code")
    return int(code)


def empty_features(keyword: str, location_id: str = "2840", device: str = "desktop") -> Dict:
    return {
        "keyword": keyword,
        "location_id": str(location_id),
        "device": device,
        "features": {
            "featured_snippet": False,
            "knowledge_panel": False,
            "local_pack": False,
            "people_also_ask": False,
            "related_searches": False,
        },
        "ads": {"total_count": 0, "top_count": 0, "bottom_count": 0, "has_shopping_ads": False},
        "organic": {"result_count": 0, "first_result_domain": "", "domains": []},
    }


def calculate_serp_difficulty(features: Dict) -> int:
    """Higher score = harder to win organic clicks"""
    ads = features.get("ads", {})
    flags = features.get("features", {})

    score = (ads.get("total_count") or 0) * 5

    top_count = ads.get("top_count") or 0
    if top_count >= 4:
        score += 20
    elif top_count >= 2:
        score += 10

    if flags.get("featured_snippet"):
        score += 15
    if flags.get("knowledge_panel"):
        score += 20
    if flags.get("local_pack"):
        score += 10
    if ads.get("has_shopping_ads"):
        score += 10
    if flags.get("people_also_ask"):
        score += 5

    return int(clamp(score, 0, 100))


def classify_serp_difficulty(score: float) -> Dict[str, str]:
    for threshold, label, color, description in DIFFICULTY_CLASSES:
        if score >= threshold:
            return {"label": label, "color": color, "description": description}
    return {"label": "Very Easy", "color": "emerald", "description": DIFFICULTY_CLASSES[-1][3]}


def parse_serp_result(data: Dict[str, Any], keyword: str, location_id: str = "2840",
                      device: str = "desktop") -> Dict:
    """Convert a DataForSEO advanced SERP result into feature flags and ad counts"""
    items = data.get("items") or []
    types = [item.get("type") for item in items]

    paid = [item for item in items if item.get("type") == "paid"]
    top_ads = [item for item in paid if item.get("rank_group") and item["rank_group"] <= TOP_AD_MAX_RANK]
    bottom_ads = [item for item in paid if item.get("rank_group") and item["rank_group"] > TOP_AD_MAX_RANK]
    shopping = [item for item in items if item.get("type") == "shopping"]
    organic = [item for item in items if item.get("type") == "organic"]

    features = empty_features(data.get("keyword") or keyword, data.get("location_code") or location_id, device)
    features["features"] = {
        "featured_snippet": "featured_snippet" in types,
        "knowledge_panel": "knowledge_graph" in types or "knowledge_panel" in types,
        "local_pack": "local_pack" in types,
        "people_also_ask": "people_also_ask" in types,
        "related_searches": "related_searches" in types,
    }
    features["ads"] = {
        "total_count": len(paid) + len(shopping),
        "top_count": len(top_ads),
        "bottom_count": len(bottom_ads),
        "has_shopping_ads": bool(shopping),
    }
    features["organic"] = {
        "result_count": len(organic),
        "first_result_domain": organic[0].get("domain") or "" if organic else "",
        "domains": [item.get("domain") for item in organic if item.get("domain")],
    }
    return features


def difficulty_reasoning(features: Dict) -> str:
    present = []
    if features["features"].get("featured_snippet"):
        present.append("featured snippet")
    if features["features"].get("knowledge_panel"):
        present.append("knowledge panel")
    if features["features"].get("local_pack"):
        present.append("local pack")
    if features["ads"].get("total_count"):
        present.append(f"{features['ads']['total_count']} ads")
    return f"SERP includes: {', '.join(present)}" if present else "Clean SERP with minimal features"


def estimate_serp_cost(keyword_count: int, cache_hit_rate: float = DEFAULT_CACHE_HIT_RATE) -> Dict:
    cached = round_half_up(keyword_count * cache_hit_rate)
    api_calls = keyword_count - cached
    cost = api_calls * COST_PER_CALL
    return {
        "total_keywords": keyword_count,
        "cached_keywords": cached,
        "api_calls": api_calls,
        "estimated_cost": round_half_up(cost, 2),
        "cost_per_keyword": round_half_up(cost / keyword_count, 4) if keyword_count else 0.0,
    }


def _result(keyword: str, features: Dict, score: int, cached: bool, checked_at: datetime,
            reasoning: str = "") -> Dict:
    return {
        "keyword": keyword,
        "features": features,
        "difficulty": {"score": score, "reasoning": reasoning, **classify_serp_difficulty(score)},
        "cached": cached,
        "checked_at": checked_at.isoformat(),
    }


def unavailable_result(keyword: str, location_id: str, device: str) -> Dict:
    return {
        "keyword": keyword,
        "features": empty_features(keyword, location_id, device),
        "difficulty": {
            "score": 50,
            "reasoning": "SERP data unavailable - using default",
            "label": "Unknown",
            "color": "gray",
            "description": "SERP analysis unavailable - DataForSEO API not configured",
        },
        "cached": False,
        "checked_at": datetime.utcnow().isoformat(),
    }


class SerpAnalyzer:
    """DB-cached SERP feature lookups"""

    def __init__(self, db: Session, connector: Optional[DataForSEOConnector] = None):
        self.db = db
        self.connector = connector or DataForSEOConnector()

    def _get_cached(self, keyword: str, location_id: str, device: str) -> Optional[Dict]:
        row = self.db.query(KeywordSerpFeatures).filter(
            KeywordSerpFeatures.keyword_normalized == normalize_keyword(keyword),
            KeywordSerpFeatures.location_id == str(location_id),
            KeywordSerpFeatures.device == device,
            KeywordSerpFeatures.expires_at > datetime.utcnow(),
        ).first()
        if not row:
            return None

        features = empty_features(keyword, location_id, device)
        features["features"].update({
            "featured_snippet": bool(row.has_featured_snippet),
            "knowledge_panel": bool(row.has_knowledge_panel),
            "local_pack": bool(row.has_local_pack),
            "people_also_ask": bool(row.has_people_also_ask),
            "related_searches": bool(row.has_related_searches),
        })
        features["ads"] = {
            "total_count": row.total_ads_count or 0,
            "top_count": row.top_ads_count or 0,
            "bottom_count": row.bottom_ads_count or 0,
            "has_shopping_ads": bool(row.has_shopping_results),
        }
        features["organic"] = {
            "result_count": row.organic_results_count or 0,
            "first_result_domain": row.first_organic_domain or "",
            "domains": list(row.organic_domains or []),
        }
        return _result(keyword, features, row.serp_difficulty or 0, True, row.checked_at,
                       difficulty_reasoning(features))

    def _store(self, features: Dict, score: int, location_id: str, device: str) -> None:
        normalized = normalize_keyword(features["keyword"])
        row = self.db.query(KeywordSerpFeatures).filter(
            KeywordSerpFeatures.keyword_normalized == normalized,
            KeywordSerpFeatures.location_id == str(location_id),
            KeywordSerpFeatures.device == device,
        ).first()
        if not row:
            row = KeywordSerpFeatures(keyword_normalized=normalized, location_id=str(location_id), device=device)
            self.db.add(row)

        now = datetime.utcnow()
        row.keyword = features["keyword"]
        row.has_featured_snippet = features["features"]["featured_snippet"]
        row.has_knowledge_panel = features["features"]["knowledge_panel"]
        row.has_local_pack = features["features"]["local_pack"]
        row.has_people_also_ask = features["features"]["people_also_ask"]
        row.has_related_searches = features["features"]["related_searches"]
        row.has_shopping_results = features["ads"]["has_shopping_ads"]
        row.top_ads_count = features["ads"]["top_count"]
        row.bottom_ads_count = features["ads"]["bottom_count"]
        row.total_ads_count = features["ads"]["total_count"]
        row.organic_results_count = features["organic"]["result_count"]
        row.first_organic_domain = features["organic"]["first_result_domain"] or None
        row.organic_domains = features["organic"].get("domains") or []
        row.serp_difficulty = score
        row.checked_at = now
        row.expires_at = now + timedelta(days=CACHE_TTL_DAYS)
        self.db.commit()

    async def get_serp_features(self, keyword: str, location_id: str = "2840", device: str = "desktop",
                                force_refresh: bool = False) -> Dict:
        """Cached analysis if fresh, otherwise a live DataForSEO lookup"""
        code = location_code(location_id)
        if not force_refresh:
            cached = self._get_cached(keyword, location_id, device)
            if cached:
                return cached

        if not self.connector.is_configured:
            return unavailable_result(keyword, location_id, device)

        try:
            data = await self.connector.fetch_serp(keyword, location_code=code, device=device)
        except ConnectorError as e:
            log.error(f"SERP lookup failed for '{keyword}': {e}")
            return unavailable_result(keyword, location_id, device)

        if not data:
            return unavailable_result(keyword, location_id, device)

        features = parse_serp_result(data, keyword, location_id, device)
        features["keyword"] = keyword
        score = calculate_serp_difficulty(features)
        self._store(features, score, location_id, device)

        return _result(keyword, features, score, False, datetime.utcnow(), difficulty_reasoning(features))

    async def analyze_batch(self, keywords: List[str], location_id: str = "2840", device: str = "desktop",
                            force_refresh: bool = False) -> Dict[str, Dict]:
        """
        Analyze many keywords: cache hits first, then live lookups in groups
        of 10 with a one second pause between groups.

        Returns:
            {keyword_normalized: result}
        """
        results = {}
        uncached = []
        for keyword in keywords:
            cached = None if force_refresh else self._get_cached(keyword, location_id, device)
            if cached:
                results[normalize_keyword(keyword)] = cached
            else:
                uncached.append(keyword)

        batches = chunk_list(uncached, BATCH_SIZE)
        for i, batch in enumerate(batches):
            for keyword in batch:
                results[normalize_keyword(keyword)] = await self.get_serp_features(
                    keyword, location_id, device, force_refresh=True
                )
            log.info(f"SERP analysis progress: {min(len(results), len(keywords))}/{len(keywords)}")
            if i < len(batches) - 1:
                await asyncio.sleep(BATCH_PAUSE_SECONDS)

        return results

    def cleanup_expired(self) -> int:
        deleted = self.db.query(KeywordSerpFeatures).filter(
            KeywordSerpFeatures.expires_at <= datetime.utcnow()
        ).delete(synchronize_session=False)
        self.db.commit()
        return deleted
