"""
Keyword metrics enrichment

Search volume, CPC, competition and difficulty for keywords, merged from
Google Ads Keyword Planner, DataForSEO and Moz.

Lookup order:
1. In-memory ResponseCache (1 hour)
2. keyword_metrics table (7/14/30 day TTL, shorter for popular keywords)
3. Provider APIs, results written back to both tiers
"""
from datetime import datetime, timedelta
from typing import Dict, List, Optional, Tuple
from sqlalchemy import func as sa_func
from sqlalchemy.orm import Session

from adpilot.config import get_settings
from adpilot.connectors.base_connector import ConnectorError
from adpilot.connectors.dataforseo import DataForSEOConnector
from adpilot.connectors.moz import MozConnector
from adpilot.models.keyword_data import KeywordMetricsCache
from adpilot.services.keyword_factory import estimate_intent
from adpilot.utils.helpers import chunk_list, normalize_keyword, round_half_up
from adpilot.utils.logger import log
from adpilot.utils.response_cache import response_cache

settings = get_settings()

PROVIDERS = ("google_ads", "dataforseo", "moz")
MOZ_COST_PER_KEYWORD = 1
DATAFORSEO_COST_PER_KEYWORD = 0.002
KEYWORD_DIFFICULTY_COST_PER_KEYWORD = 0.0003
GOOGLE_ADS_WARNING_PERCENT = 80
MOZ_WARNING_KEYWORDS = 100
DIFFICULTY_MAX_KEYWORDS = 500
DIFFICULTY_TTL_DAYS = 30
INTENT_MAX_KEYWORDS = 1000
INTENT_TTL_DAYS = 30
SEARCH_INTENT_COST_PER_KEYWORD = 0.00002

# Background refresh of popular keywords
REFRESH_MIN_HITS = 5
REFRESH_WITHIN_DAYS = 2
REFRESH_BATCH_SIZE = 50
REFRESH_MAX_KEYWORDS = 200

STATUS_FIELDS = {
    "google_ads": "gads_status",
    "moz": "moz_status",
    "dataforseo": "dataforseo_status",
}


def dynamic_ttl_days(cache_hit_count: int) -> int:
    """Popular keywords refresh weekly, long tail monthly"""
    if cache_hit_count > 10:
        return 7
    if cache_hit_count >= 5:
        return 14
    return 30


def calculate_opportunity_score(metrics: Dict) -> int:
    """0-100 from volume, competition, difficulty and CPC"""
    score = 0

    volume = metrics.get("search_volume")
    if volume:
        if volume >= 10000:
            score += 40
        elif volume >= 1000:
            score += 30
        elif volume >= 100:
            score += 20
        else:
            score += 10

    competition = metrics.get("competition")
    if competition:
        if competition == "LOW":
            score += 20
        elif competition == "MEDIUM":
            score += 10
        else:
            score += 5

    difficulty = metrics.get("difficulty")
    if difficulty is not None:
        if difficulty < 30:
            score += 20
        elif difficulty < 50:
            score += 15
        elif difficulty < 70:
            score += 10
        else:
            score += 5

    cpc = metrics.get("cpc")
    if cpc:
        if 1 <= cpc <= 5:
            score += 20
        elif cpc > 5:
            score += 15
        elif cpc > 0.5:
            score += 10
        else:
            score += 5

    return min(100, score)


def _competition_label(value) -> Optional[str]:
    """DataForSEO reports competition as 0-1; Google Ads as LOW/MEDIUM/HIGH"""
    if value is None or isinstance(value, str):
        return value
    if value < 0.34:
        return "LOW"
    if value < 0.67:
        return "MEDIUM"
    return "HIGH"


def _memory_key(keyword: str, locale: str, device: str, location_id: str) -> str:
    return f"kwm:{normalize_keyword(keyword)}:{locale}:{device}:{location_id}"


def row_to_metrics(row: KeywordMetricsCache) -> Dict:
    updated = row.updated_at or row.created_at or datetime.utcnow()
    return {
        "search_volume": row.best_search_volume,
        "cpc": row.best_cpc,
        "competition": row.gads_competition or _competition_label(row.dataforseo_competition),
        "difficulty": row.best_difficulty if row.best_difficulty is not None else row.moz_difficulty,
        "organic_ctr": row.moz_organic_ctr,
        "priority": row.moz_priority,
        "data_source": row.best_source or "unavailable",
        "last_updated": updated.isoformat(),
        "cache_age": (datetime.utcnow() - updated).days,
    }


def _enriched(keyword: str, metrics: Dict) -> Dict:
    return {"keyword": keyword, "metrics": metrics, "opportunity_score": calculate_opportunity_score(metrics)}


class KeywordMetricsService:
    """Cache-first enrichment of keywords with provider metrics"""

    def __init__(self, db: Session, google_ads=None, dataforseo: Optional[DataForSEOConnector] = None,
                 moz: Optional[MozConnector] = None):
        self.db = db
        self.google_ads = google_ads
        self.dataforseo = dataforseo or DataForSEOConnector()
        self.moz = moz or MozConnector()

    # ------------------------------------------------------------------
    # Cache
    # ------------------------------------------------------------------

    def _get_row(self, keyword: str, locale: str, device: str, location_id: str) -> Optional[KeywordMetricsCache]:
        return self.db.query(KeywordMetricsCache).filter(
            KeywordMetricsCache.keyword_normalized == normalize_keyword(keyword),
            KeywordMetricsCache.locale == locale,
            KeywordMetricsCache.device == device,
            KeywordMetricsCache.location_id == str(location_id),
        ).first()

    def lookup_cache(self, keywords: List[str], locale: str = "en-US", device: str = "desktop",
                     location_id: str = "2840") -> Tuple[Dict[str, Dict], List[str]]:
        """
        Returns:
            (hits {keyword: enriched}, misses [keyword]); expired rows count as misses
        """
        hits, misses = {}, []
        now = datetime.utcnow()

        for keyword in keywords:
            key = _memory_key(keyword, locale, device, location_id)
            cached = response_cache.get(key)
            if cached is not None:
                hits[keyword] = cached
                continue

            row = self._get_row(keyword, locale, device, location_id)
            if not row or row.expires_at <= now or row.best_source is None:
                misses.append(keyword)
                continue

            row.cache_hit_count = (row.cache_hit_count or 0) + 1
            row.last_accessed_at = now
            row.ttl_days = dynamic_ttl_days(row.cache_hit_count)
            row.expires_at = (row.updated_at or now) + timedelta(days=row.ttl_days)

            enriched = _enriched(keyword, row_to_metrics(row))
            hits[keyword] = enriched
            response_cache.set(key, enriched, ttl=settings.keyword_cache_memory_ttl_seconds)

        self.db.commit()
        return hits, misses

    def store(self, keyword: str, provider_data: Dict[str, Dict], locale: str = "en-US", device: str = "desktop",
              location_id: str = "2840") -> Dict:
        """
        Write provider results for one keyword and return its enriched entry.

        provider_data: {"google_ads": {...}, "dataforseo": {...}, "moz": {...}}, any subset
        """
        now = datetime.utcnow()
        row = self._get_row(keyword, locale, device, location_id)
        if not row:
            row = KeywordMetricsCache(
                keyword=keyword,
                keyword_normalized=normalize_keyword(keyword),
                locale=locale,
                device=device,
                location_id=str(location_id),
                cache_hit_count=0,
            )
            self.db.add(row)

        gads = provider_data.get("google_ads")
        if gads:
            row.gads_search_volume = gads.get("search_volume")
            row.gads_avg_cpc_micros = gads.get("avg_cpc_micros")
            row.gads_competition = gads.get("competition")
            row.gads_competition_index = gads.get("competition_index")
            row.gads_fetched_at = now
            row.gads_status = "success"

        dfs = provider_data.get("dataforseo")
        if dfs:
            row.dataforseo_search_volume = dfs.get("search_volume")
            row.dataforseo_cpc = dfs.get("cpc")
            row.dataforseo_competition = dfs.get("competition")
            row.dataforseo_trends = dfs.get("monthly_searches")
            row.dataforseo_fetched_at = now
            row.dataforseo_status = "success"

        moz = provider_data.get("moz")
        if moz:
            row.moz_volume = moz.get("volume")
            row.moz_difficulty = moz.get("difficulty")
            row.moz_organic_ctr = moz.get("organic_ctr")
            row.moz_priority = moz.get("priority")
            row.moz_fetched_at = now
            row.moz_status = "success"

        # Google Ads > DataForSEO > Moz
        if row.gads_status == "success" and row.gads_search_volume is not None:
            row.best_search_volume = row.gads_search_volume
            row.best_cpc = row.gads_avg_cpc_micros / 1_000_000 if row.gads_avg_cpc_micros else None
            row.best_source = "google_ads"
        elif row.dataforseo_status == "success" and row.dataforseo_search_volume is not None:
            row.best_search_volume = row.dataforseo_search_volume
            row.best_cpc = row.dataforseo_cpc
            row.best_source = "dataforseo"
        elif row.moz_status == "success":
            row.best_search_volume = row.moz_volume
            row.best_source = "moz"
        if row.moz_difficulty is not None:
            row.best_difficulty = row.moz_difficulty

        row.ttl_days = dynamic_ttl_days(row.cache_hit_count or 0)
        row.updated_at = now
        row.expires_at = now + timedelta(days=row.ttl_days)
        self.db.commit()

        enriched = _enriched(keyword, row_to_metrics(row))
        response_cache.set(_memory_key(keyword, locale, device, location_id), enriched,
                           ttl=settings.keyword_cache_memory_ttl_seconds)
        return enriched

    def record_failure(self, keyword: str, provider: str, error: str, locale: str = "en-US",
                       device: str = "desktop", location_id: str = "2840") -> None:
        row = self._get_row(keyword, locale, device, location_id)
        if not row:
            row = KeywordMetricsCache(
                keyword=keyword,
                keyword_normalized=normalize_keyword(keyword),
                locale=locale,
                device=device,
                location_id=str(location_id),
                cache_hit_count=0,
                expires_at=datetime.utcnow(),
            )
            self.db.add(row)
        prefix = {"google_ads": "gads", "dataforseo": "dataforseo", "moz": "moz"}[provider]
        setattr(row, f"{prefix}_status", "error")
        setattr(row, f"{prefix}_error", error[:500])
        self.db.commit()

    # ------------------------------------------------------------------
    # Enrichment
    # ------------------------------------------------------------------

    async def enrich(self, keywords: List[str], providers: Optional[List[str]] = None, locale: str = "en-US",
                     device: str = "desktop", location_id: str = "2840", language: str = "en",
                     force_refresh: bool = False) -> Dict:
        """
        Returns:
            {enriched: {keyword: {keyword, metrics, opportunity_score}}, stats}
        """
        providers = providers or ["google_ads"]
        stats = {
            "total_requested": len(keywords),
            "cached": 0,
            "google_fetched": 0,
            "moz_fetched": 0,
            "dataforseo_fetched": 0,
            "failed": 0,
            "errors": [],
        }

        if force_refresh:
            enriched, to_fetch = {}, list(keywords)
        else:
            enriched, to_fetch = self.lookup_cache(keywords, locale, device, location_id)
            stats["cached"] = len(enriched)
        log.info(f"Keyword enrichment: {len(enriched)} cached, {len(to_fetch)} to fetch via {providers}")

        if not to_fetch:
            return {"enriched": enriched, "stats": stats}

        fetched: Dict[str, Dict[str, Dict]] = {kw: {} for kw in to_fetch}

        if "google_ads" in providers:
            if self.google_ads is None:
                stats["errors"].append({"provider": "google_ads", "error": "No Google Ads account connected"})
            else:
                try:
                    planner = await self.google_ads.fetch_keyword_planner_metrics(to_fetch, location_id, language)
                    for kw in to_fetch:
                        data = planner.get(kw.lower())
                        if data:
                            fetched[kw]["google_ads"] = data
                            stats["google_fetched"] += 1
                        else:
                            extra = {k: v for k, v in planner.items() if k not in {x.lower() for x in to_fetch}}
                            for suggestion, suggestion_data in extra.items():
                                fetched.setdefault(suggestion, {})["google_ads"] = suggestion_data
                except ConnectorError as e:
                    log.error(f"Keyword Planner enrichment failed: {e}")
                    stats["errors"].append({"provider": "google_ads", "error": e.message})

        if "dataforseo" in providers:
            missing = [kw for kw in to_fetch if "google_ads" not in fetched[kw]]
            if missing:
                try:
                    volumes = await self.dataforseo.fetch_search_volume(missing, int(location_id), language)
                    for kw in missing:
                        data = volumes.get(kw.lower())
                        if data:
                            fetched[kw]["dataforseo"] = data
                            stats["dataforseo_fetched"] += 1
                except ConnectorError as e:
                    log.error(f"DataForSEO enrichment failed: {e}")
                    stats["errors"].append({"provider": "dataforseo", "error": e.message})

        if "moz" in providers:
            for kw in to_fetch:
                try:
                    fetched[kw]["moz"] = await self.moz.fetch_keyword_metrics(kw, locale=locale, device=device)
                    stats["moz_fetched"] += 1
                except ConnectorError as e:
                    stats["errors"].append({"keyword": kw, "provider": "moz", "error": e.message})
                    if not self.moz.is_configured:
                        break

        for kw, provider_data in fetched.items():
            if provider_data:
                enriched[kw] = self.store(kw, provider_data, locale, device, location_id)
            else:
                stats["failed"] += 1

        return {"enriched": enriched, "stats": stats}

    async def get_keyword_difficulty(self, keywords: List[str], location_code: int = 2840,
                                     locale: str = "en-US") -> Dict:
        """
        DataForSEO Labs keyword difficulty, cached for 30 days per keyword.

        Returns:
            {results: {keyword: {keyword, difficulty, cached, error?}}, stats}
        """
        keywords = keywords[:DIFFICULTY_MAX_KEYWORDS]
        cutoff = datetime.utcnow() - timedelta(days=DIFFICULTY_TTL_DAYS)
        results: Dict[str, Dict] = {}

        normalized = {normalize_keyword(kw): kw for kw in keywords}
        rows = self.db.query(KeywordMetricsCache).filter(
            KeywordMetricsCache.keyword_normalized.in_(list(normalized)),
            KeywordMetricsCache.dataforseo_kd.isnot(None),
            KeywordMetricsCache.dataforseo_kd_fetched_at > cutoff,
        ).all()
        for row in rows:
            original = normalized.get(row.keyword_normalized)
            if original and original not in results:
                results[original] = {"keyword": original, "difficulty": row.dataforseo_kd, "cached": True}

        to_fetch = [kw for kw in keywords if kw not in results]
        fetched = failed = 0

        if to_fetch:
            try:
                difficulties = await self.dataforseo.fetch_keyword_difficulty(to_fetch, location_code)
            except ConnectorError as e:
                log.error(f"Keyword difficulty fetch failed: {e}")
                difficulties = {}
                for kw in to_fetch:
                    results[kw] = {"keyword": kw, "difficulty": None, "cached": False, "error": e.message}
                failed = len(to_fetch)
                to_fetch_ok = []
            else:
                to_fetch_ok = to_fetch

            now = datetime.utcnow()
            for kw in to_fetch_ok:
                kd = difficulties.get(kw.lower())
                if kd is None:
                    results[kw] = {"keyword": kw, "difficulty": None, "cached": False, "error": "No data"}
                    failed += 1
                    continue

                row = self._get_row(kw, locale, "desktop", str(location_code))
                if not row:
                    row = KeywordMetricsCache(
                        keyword=kw,
                        keyword_normalized=normalize_keyword(kw),
                        locale=locale,
                        device="desktop",
                        location_id=str(location_code),
                        cache_hit_count=0,
                        ttl_days=DIFFICULTY_TTL_DAYS,
                        expires_at=now + timedelta(days=DIFFICULTY_TTL_DAYS),
                    )
                    self.db.add(row)
                row.dataforseo_kd = kd
                row.dataforseo_kd_fetched_at = now
                row.best_difficulty = kd
                results[kw] = {"keyword": kw, "difficulty": kd, "cached": False}
                fetched += 1
            self.db.commit()

        cached = sum(1 for r in results.values() if r["cached"])
        return {
            "results": results,
            "stats": {
                "total": len(keywords),
                "with_kd": sum(1 for r in results.values() if r["difficulty"] is not None),
                "cached": cached,
                "fetched": fetched,
                "failed": failed,
                "estimated_cost": round_half_up(len(to_fetch) * KEYWORD_DIFFICULTY_COST_PER_KEYWORD, 4),
            },
        }

    async def classify_intent(self, keywords: List[str], language: str = "en", locale: str = "en-US") -> Dict:
        """
        Search intent per keyword, cached for 30 days.

        Keywords DataForSEO cannot classify fall back to the keyword factory's
        modifier heuristic and are marked source="heuristic".

        Returns:
            {results: {keyword: {keyword, intent, confidence, cached, source}}, stats}
        """
        keywords = list(dict.fromkeys(kw.strip() for kw in keywords if kw.strip()))[:INTENT_MAX_KEYWORDS]
        cutoff = datetime.utcnow() - timedelta(days=INTENT_TTL_DAYS)
        results: Dict[str, Dict] = {}

        normalized = {}
        for kw in keywords:
            normalized.setdefault(normalize_keyword(kw), kw)
        rows = self.db.query(KeywordMetricsCache).filter(
            KeywordMetricsCache.keyword_normalized.in_(list(normalized)),
            KeywordMetricsCache.dataforseo_intent.isnot(None),
            KeywordMetricsCache.dataforseo_intent_fetched_at > cutoff,
        ).all()
        for row in rows:
            original = normalized.get(row.keyword_normalized)
            if original and original not in results:
                results[original] = {"keyword": original, "intent": row.dataforseo_intent,
                                     "confidence": row.dataforseo_intent_probability,
                                     "cached": True, "source": "dataforseo"}

        to_fetch = [kw for kw in normalized.values() if kw not in results]
        fetched = 0
        intents: Dict[str, Dict] = {}
        if to_fetch and self.dataforseo.is_configured:
            try:
                intents = await self.dataforseo.fetch_search_intent(to_fetch, language)
            except ConnectorError as e:
                log.error(f"Search intent fetch failed: {e}")

        now = datetime.utcnow()
        for kw in to_fetch:
            data = intents.get(kw.lower())
            if not data:
                results[kw] = {"keyword": kw, "intent": estimate_intent(kw), "confidence": None,
                               "cached": False, "source": "heuristic"}
                continue

            row = self._get_row(kw, locale, "desktop", "2840")
            if not row:
                row = KeywordMetricsCache(
                    keyword=kw,
                    keyword_normalized=normalize_keyword(kw),
                    locale=locale,
                    device="desktop",
                    location_id="2840",
                    cache_hit_count=0,
                    ttl_days=INTENT_TTL_DAYS,
                    expires_at=now + timedelta(days=INTENT_TTL_DAYS),
                )
                self.db.add(row)
            row.dataforseo_intent = data["intent"]
            row.dataforseo_intent_probability = data["probability"]
            row.dataforseo_intent_fetched_at = now
            results[kw] = {"keyword": kw, "intent": data["intent"], "confidence": data["probability"],
                           "cached": False, "source": "dataforseo"}
            fetched += 1
        self.db.commit()

        return {
            "results": results,
            "stats": {
                "total": len(keywords),
                "cached": sum(1 for r in results.values() if r["cached"]),
                "fetched": fetched,
                "heuristic": sum(1 for r in results.values() if r["source"] == "heuristic"),
                "estimated_cost": round_half_up(fetched * SEARCH_INTENT_COST_PER_KEYWORD, 5),
            },
        }

    def keywords_due_for_refresh(self, now: Optional[datetime] = None) -> List[KeywordMetricsCache]:
        """Popular keywords whose cache entry expires within REFRESH_WITHIN_DAYS, most used first"""
        now = now or datetime.utcnow()
        return self.db.query(KeywordMetricsCache).filter(
            KeywordMetricsCache.cache_hit_count >= REFRESH_MIN_HITS,
            KeywordMetricsCache.expires_at > now,
            KeywordMetricsCache.expires_at <= now + timedelta(days=REFRESH_WITHIN_DAYS),
        ).order_by(KeywordMetricsCache.cache_hit_count.desc()).limit(REFRESH_MAX_KEYWORDS).all()

    async def refresh_popular(self, providers: Optional[List[str]] = None, now: Optional[datetime] = None) -> Dict:
        """
        Re-fetch popular keywords before they expire so their next lookup is a cache hit.

        Keywords are grouped by locale/device/location and sent in batches of
        REFRESH_BATCH_SIZE. Hit counts are kept, so the dynamic TTL still applies.
        """
        providers = providers or ["dataforseo"]
        due = self.keywords_due_for_refresh(now)
        result = {"candidates": len(due), "refreshed": 0, "failed": 0}
        if not due:
            log.info("Keyword refresh: nothing due")
            return result

        groups: Dict[Tuple[str, str, str], List[str]] = {}
        for row in due:
            groups.setdefault((row.locale, row.device, row.location_id), []).append(row.keyword)

        for (locale, device, location_id), keywords in groups.items():
            for batch in chunk_list(keywords, REFRESH_BATCH_SIZE):
                outcome = await self.enrich(batch, providers=providers, locale=locale, device=device,
                                            location_id=location_id, force_refresh=True)
                refreshed = len([kw for kw in batch if kw in outcome["enriched"]])
                result["refreshed"] += refreshed
                result["failed"] += len(batch) - refreshed

        log.info(f"Keyword refresh: {result['refreshed']}/{result['candidates']} refreshed via {providers}")
        return result

    def cleanup_expired(self) -> int:
        deleted = self.db.query(KeywordMetricsCache).filter(
            KeywordMetricsCache.expires_at <= datetime.utcnow(),
            KeywordMetricsCache.dataforseo_kd.is_(None),
        ).delete(synchronize_session=False)
        self.db.commit()
        return deleted


class QuotaTracker:
    """Monthly provider usage and pre-flight quota checks"""

    def __init__(self, db: Session, dataforseo: Optional[DataForSEOConnector] = None):
        self.db = db
        self.dataforseo = dataforseo or DataForSEOConnector()

    def monthly_usage(self, provider: str, now: Optional[datetime] = None) -> int:
        """Keywords successfully fetched from a provider this calendar month"""
        now = now or datetime.utcnow()
        month_start = now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)
        status_column = getattr(KeywordMetricsCache, STATUS_FIELDS[provider])
        return self.db.query(sa_func.count(KeywordMetricsCache.id)).filter(
            status_column == "success",
            KeywordMetricsCache.created_at >= month_start,
        ).scalar() or 0

    async def dataforseo_balance(self) -> float:
        if not self.dataforseo.is_configured:
            return 0.0
        try:
            return await self.dataforseo.get_balance()
        except ConnectorError as e:
            log.error(f"Failed to read DataForSEO balance: {e}")
            return 0.0

    async def get_quota_status(self) -> Dict:
        google_used = self.monthly_usage("google_ads")
        moz_used = self.monthly_usage("moz")
        dfs_used = self.monthly_usage("dataforseo")
        balance = await self.dataforseo_balance()
        return {
            "google_ads": {"used": google_used, "limit": settings.google_ads_monthly_quota, "cost_per_unit": 0},
            "moz": {"used": moz_used, "limit": None, "cost_per_unit": MOZ_COST_PER_KEYWORD},
            "dataforseo": {
                "used": dfs_used,
                "limit": balance / DATAFORSEO_COST_PER_KEYWORD,
                "balance": balance,
                "cost_per_unit": DATAFORSEO_COST_PER_KEYWORD,
            },
            "total_estimated_cost": moz_used * MOZ_COST_PER_KEYWORD + dfs_used * DATAFORSEO_COST_PER_KEYWORD,
        }

    @staticmethod
    def estimate_cost(keyword_count: int, providers: List[str]) -> Dict:
        moz = keyword_count * MOZ_COST_PER_KEYWORD if "moz" in providers else 0
        dataforseo = keyword_count * DATAFORSEO_COST_PER_KEYWORD if "dataforseo" in providers else 0

        breakdown = []
        if "google_ads" in providers:
            breakdown.append("Google Ads: Free")
        if "moz" in providers:
            breakdown.append(f"Moz: {moz} credits")
        if "dataforseo" in providers:
            breakdown.append(f"DataForSEO: ${dataforseo:.2f}")

        return {
            "google_ads": 0,
            "moz": moz,
            "dataforseo": dataforseo,
            "total": moz + dataforseo,
            "breakdown": ", ".join(breakdown),
        }

    async def check_quota_availability(self, keyword_count: int, providers: List[str]) -> Dict:
        """
        Returns:
            {can_proceed, warnings, estimated_cost}
        """
        warnings = []
        can_proceed = True
        cost = self.estimate_cost(keyword_count, providers)

        if "google_ads" in providers:
            limit = settings.google_ads_monthly_quota
            used = self.monthly_usage("google_ads")
            remaining = limit - used
            percent_used = used / limit * 100 if limit else 100
            if keyword_count > remaining:
                warnings.append(
                    f"Google Ads: Insufficient quota ({remaining}/{limit} remaining). Request would exceed limit."
                )
                can_proceed = False
            elif percent_used > GOOGLE_ADS_WARNING_PERCENT:
                warnings.append(
                    f"Google Ads: {round_half_up(percent_used)}% of monthly quota used ({used}/{limit})"
                )

        if "dataforseo" in providers:
            available = await self.dataforseo_balance() / DATAFORSEO_COST_PER_KEYWORD
            if keyword_count > available:
                warnings.append(
                    f"DataForSEO: Insufficient balance. Estimated {int(available)} keywords available, "
                    f"but {keyword_count} requested."
                )
                can_proceed = False
            elif available < 100:
                warnings.append(f"DataForSEO: Low balance. Only ~{int(available)} keywords remaining.")

        if "moz" in providers and keyword_count > MOZ_WARNING_KEYWORDS:
            warnings.append(f"Moz: High credit usage. This request will use {cost['moz']} credits.")

        return {"can_proceed": can_proceed, "warnings": warnings, "estimated_cost": cost["total"]}
