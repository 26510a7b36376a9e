"""
Metrics Service

DB-first metrics retrieval:
1. Read MetricsFact rows for the requested range
2. Serve them when the last sync is fresh (under 4 hours)
3. Otherwise return None; the caller fetches live and calls cache_metrics()

A range is only a hit when every day in it has rows and the oldest of those
rows was written within the freshness window. Live write-backs cover just the
range that was requested, so wider ranges fall through to the API.
"""
from datetime import date, datetime, timedelta
from typing import Dict, List, Optional
from sqlalchemy import func
from sqlalchemy.orm import Session

from adpilot.models.entity_hierarchy import EntityHierarchy
from adpilot.models.metrics import MetricsFact, SyncMetadata
from adpilot.utils.helpers import parse_date, round_half_up, safe_divide
from adpilot.utils.logger import log

MICROS = 1_000_000

# Hours since the last completed sync
FRESHNESS_THRESHOLDS = {
    "FRESH": 1,
    "ACCEPTABLE": 4,
    "STALE": 24,
}

PARENT_ENTITY_TYPES = {
    "AD_GROUP": "CAMPAIGN",
    "KEYWORD": "AD_GROUP",
    "AD": "AD_GROUP",
}

COMPARE_METRICS = ("spend", "clicks", "impressions", "conversions", "cpa", "ctr", "roas")


def get_parent_entity_type(entity_type: str) -> Optional[str]:
    return PARENT_ENTITY_TYPES.get(entity_type)


def _hours_since(synced_at: datetime, now: Optional[datetime] = None) -> float:
    return ((now or datetime.utcnow()) - synced_at).total_seconds() / 3600


def freshness_level(synced_at: Optional[datetime], now: Optional[datetime] = None) -> str:
    if not synced_at:
        return "EXPIRED"
    hours = _hours_since(synced_at, now)
    if hours < FRESHNESS_THRESHOLDS["FRESH"]:
        return "FRESH"
    if hours < FRESHNESS_THRESHOLDS["ACCEPTABLE"]:
        return "ACCEPTABLE"
    if hours < FRESHNESS_THRESHOLDS["STALE"]:
        return "STALE"
    return "EXPIRED"


def is_fresh(synced_at: Optional[datetime], now: Optional[datetime] = None) -> bool:
    return bool(synced_at) and _hours_since(synced_at, now) < FRESHNESS_THRESHOLDS["ACCEPTABLE"]


def summarize_totals(impressions: float, clicks: float, cost_micros: float, conversions: float,
                     conversions_value: float) -> Dict:
    """Derived metrics from summed raw counters"""
    spend = cost_micros / MICROS
    return {
        "impressions": int(impressions),
        "clicks": int(clicks),
        "spend": round_half_up(spend, 2),
        "conversions": round_half_up(conversions, 2),
        "conversions_value": round_half_up(conversions_value, 2),
        "ctr": round_half_up(safe_divide(clicks, impressions) * 100, 2),
        "average_cpc": round_half_up(safe_divide(spend, clicks), 2),
        "cpa": round_half_up(safe_divide(spend, conversions), 2),
        "roas": round_half_up(safe_divide(conversions_value, spend), 2),
    }


class MetricsService:
    """Read and write the metrics cache for one DB session"""

    def __init__(self, db: Session):
        self.db = db

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_sync_metadata(self, customer_id: str, entity_type: str) -> Optional[SyncMetadata]:
        return self.db.query(SyncMetadata).filter(
            SyncMetadata.customer_id == customer_id,
            SyncMetadata.entity_type == entity_type,
        ).first()

    def get_freshness_info(self, sync_meta: Optional[SyncMetadata], end_date: date) -> Dict:
        last_synced_date = sync_meta.last_synced_date if sync_meta else None
        last_completed = sync_meta.last_sync_completed if sync_meta else None
        return {
            "last_synced_at": last_completed.isoformat() if last_completed else None,
            "data_as_of": last_synced_date.isoformat() if last_synced_date else "never",
            "has_partial_data": end_date == date.today(),
            "stale_days": (date.today() - last_synced_date).days if last_synced_date else 999,
            "level": freshness_level(last_completed),
        }

    def get_entity_metrics(self, customer_id: str, entity_type: str, start: date, end: date,
                           parent_entity_id: Optional[str] = None,
                           entity_ids: Optional[List[str]] = None) -> List[Dict]:
        """
        Per-entity totals over a date range, regardless of freshness.

        Returns:
            [{id, name, status, parent_entity_id, impressions, clicks, spend, conversions,
              conversions_value, ctr (%), average_cpc, cpa, roas, days}] ordered by spend desc
        """
        query = self.db.query(MetricsFact).filter(
            MetricsFact.customer_id == customer_id,
            MetricsFact.entity_type == entity_type,
            MetricsFact.date >= start,
            MetricsFact.date <= end,
        )
        if parent_entity_id:
            query = query.filter(MetricsFact.parent_entity_id == str(parent_entity_id))
        if entity_ids:
            query = query.filter(MetricsFact.entity_id.in_([str(i) for i in entity_ids]))

        totals: Dict[str, Dict] = {}
        for fact in query.order_by(MetricsFact.date.desc()).all():
            entry = totals.setdefault(fact.entity_id, {
                "id": fact.entity_id,
                "name": fact.entity_name,
                "parent_entity_id": fact.parent_entity_id,
                "impressions": 0, "clicks": 0, "cost_micros": 0,
                "conversions": 0.0, "conversions_value": 0.0,
                "days": 0,
            })
            entry["impressions"] += fact.impressions or 0
            entry["clicks"] += fact.clicks or 0
            entry["cost_micros"] += fact.cost_micros or 0
            entry["conversions"] += fact.conversions or 0.0
            entry["conversions_value"] += fact.conversions_value or 0.0
            entry["days"] += 1

        if not totals:
            return []

        hierarchy = {
            row.entity_id: row for row in self.db.query(EntityHierarchy).filter(
                EntityHierarchy.customer_id == customer_id,
                EntityHierarchy.entity_type == entity_type,
                EntityHierarchy.entity_id.in_(list(totals)),
            ).all()
        }

        results = []
        for entity_id, entry in totals.items():
            node = hierarchy.get(entity_id)
            results.append({
                "id": entity_id,
                "name": entry["name"] or (node.entity_name if node else None),
                "status": node.status if node else None,
                "parent_entity_id": entry["parent_entity_id"],
                "days": entry["days"],
                **summarize_totals(entry["impressions"], entry["clicks"], entry["cost_micros"],
                                   entry["conversions"], entry["conversions_value"]),
            })
        results.sort(key=lambda r: r["spend"], reverse=True)
        return results

    def _cached_response(self, customer_id: str, entity_type: str, start: date, end: date,
                         parent_entity_id: Optional[str] = None,
                         entity_ids: Optional[List[str]] = None) -> Optional[Dict]:
        sync_meta = self.get_sync_metadata(customer_id, entity_type)
        if not sync_meta or not is_fresh(sync_meta.last_sync_completed):
            return None

        coverage = self.has_cached_data(customer_id, entity_type, start, end, parent_entity_id)
        if not coverage["has_data"]:
            log.info(f"Metrics cache incomplete: {customer_id} {entity_type} {start}..{end} "
                     f"({len(coverage['missing_dates'])} days missing)")
            return None
        if not is_fresh(self.oldest_sync_time(customer_id, entity_type, start, end, parent_entity_id)):
            return None

        data = self.get_entity_metrics(customer_id, entity_type, start, end,
                                       parent_entity_id=parent_entity_id, entity_ids=entity_ids)
        if not data:
            return None

        log.info(f"Metrics cache hit: {customer_id} {entity_type} {start}..{end} ({len(data)} entities)")
        return {
            "data": data,
            "meta": {"source": "cache", "freshness": self.get_freshness_info(sync_meta, end)},
        }

    def get_campaign_metrics(self, customer_id: str, start: date, end: date,
                             campaign_ids: Optional[List[str]] = None) -> Optional[Dict]:
        """{data, meta} from the cache, or None on a miss or stale sync"""
        return self._cached_response(customer_id, "CAMPAIGN", start, end, entity_ids=campaign_ids)

    def get_ad_group_metrics(self, customer_id: str, start: date, end: date,
                             campaign_id: Optional[str] = None) -> Optional[Dict]:
        return self._cached_response(customer_id, "AD_GROUP", start, end, parent_entity_id=campaign_id)

    def get_aggregated_metrics(self, customer_id: str, entity_type: str, start: date, end: date,
                               parent_entity_id: Optional[str] = None) -> Dict:
        """Account-level totals across every entity of one type"""
        rows = self.get_entity_metrics(customer_id, entity_type, start, end, parent_entity_id)
        return summarize_totals(
            sum(r["impressions"] for r in rows),
            sum(r["clicks"] for r in rows),
            sum(r["spend"] for r in rows) * MICROS,
            sum(r["conversions"] for r in rows),
            sum(r["conversions_value"] for r in rows),
        )

    def compare_periods(self, customer_id: str, start: date, end: date) -> Dict:
        """
        Cached campaign totals for start..end against the equally long period just before it.

        Deltas are percent changes; a metric going from 0 to anything is +100.
        """
        days = (end - start).days + 1
        previous_end = start - timedelta(days=1)
        previous_start = previous_end - timedelta(days=days - 1)

        current = self.get_entity_metrics(customer_id, "CAMPAIGN", start, end)
        previous = {r["id"]: r for r in self.get_entity_metrics(customer_id, "CAMPAIGN", previous_start, previous_end)}

        comparisons = []
        for row in current:
            before = previous.get(row["id"], {})
            comparison = {}
            for metric in COMPARE_METRICS:
                now_value, before_value = row[metric], before.get(metric, 0)
                comparison[f"previous_{metric}"] = before_value
                if before_value:
                    comparison[f"{metric}_delta"] = round_half_up((now_value - before_value) / before_value * 100, 2)
                else:
                    comparison[f"{metric}_delta"] = 100 if now_value > 0 else 0
            comparisons.append({"campaign_id": row["id"], "comparison": comparison})

        return {
            "comparisons": comparisons,
            "current_period": {"start": start.isoformat(), "end": end.isoformat(), "days": days},
            "compare_period": {"start": previous_start.isoformat(), "end": previous_end.isoformat(), "days": days},
        }

    def _range_query(self, column, customer_id: str, entity_type: str, start: date, end: date,
                     parent_entity_id: Optional[str] = None):
        query = self.db.query(column).filter(
            MetricsFact.customer_id == customer_id,
            MetricsFact.entity_type == entity_type,
            MetricsFact.date >= start,
            MetricsFact.date <= end,
        )
        if parent_entity_id:
            query = query.filter(MetricsFact.parent_entity_id == str(parent_entity_id))
        return query

    def oldest_sync_time(self, customer_id: str, entity_type: str, start: date, end: date,
                         parent_entity_id: Optional[str] = None) -> Optional[datetime]:
        return self._range_query(func.min(MetricsFact.synced_at), customer_id, entity_type,
                                 start, end, parent_entity_id).scalar()

    def has_cached_data(self, customer_id: str, entity_type: str, start: date, end: date,
                        parent_entity_id: Optional[str] = None) -> Dict:
        existing = {
            row[0] for row in self._range_query(MetricsFact.date, customer_id, entity_type,
                                                start, end, parent_entity_id).distinct().all()
        }
        missing = []
        current = start
        while current <= end:
            if current not in existing:
                missing.append(current.isoformat())
            current += timedelta(days=1)
        return {"has_data": not missing, "missing_dates": missing}

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def mark_sync(self, customer_id: str, entity_type: str, status: str, error: Optional[str] = None,
                  rows_written: Optional[int] = None, last_synced_date: Optional[date] = None,
                  backfill_progress: Optional[Dict] = None) -> SyncMetadata:
        meta = self.get_sync_metadata(customer_id, entity_type)
        if not meta:
            meta = SyncMetadata(customer_id=customer_id, entity_type=entity_type)
            self.db.add(meta)

        now = datetime.utcnow()
        meta.last_sync_status = status
        meta.last_sync_error = error
        if status == "IN_PROGRESS":
            meta.last_sync_started = now
        elif status == "COMPLETED":
            meta.last_sync_completed = now
        if rows_written is not None:
            meta.rows_written = rows_written
        if last_synced_date is not None and (meta.last_synced_date is None or last_synced_date > meta.last_synced_date):
            meta.last_synced_date = last_synced_date
        if backfill_progress is not None:
            meta.backfill_progress = backfill_progress
        self.db.commit()
        return meta

    def cache_metrics(self, customer_id: str, entity_type: str, rows: List[Dict],
                      account_id: Optional[int] = None, data_freshness: str = "FRESH",
                      currency_code: str = "USD") -> int:
        """
        Upsert daily rows keyed by (customer_id, entity_type, entity_id, date).

        Rows carry entity_id, date, impressions, clicks, cost_micros, conversions,
        conversions_value and optionally entity_name and parent_entity_id.
        """
        latest: Optional[date] = None
        now = datetime.utcnow()
        # Pending rows are invisible to queries (autoflush is off)
        batch: Dict[tuple, MetricsFact] = {}

        for row in rows:
            row_date = parse_date(row["date"])
            entity_id = str(row["entity_id"])
            key = (entity_id, row_date)
            fact = batch.get(key)
            if fact is not None:
                log.warning(f"Duplicate {entity_type} row for {entity_id} on {row_date}; keeping the last one")
            else:
                fact = self.db.query(MetricsFact).filter(
                    MetricsFact.customer_id == customer_id,
                    MetricsFact.entity_type == entity_type,
                    MetricsFact.entity_id == entity_id,
                    MetricsFact.date == row_date,
                ).first()
                if not fact:
                    fact = MetricsFact(customer_id=customer_id, entity_type=entity_type,
                                       entity_id=entity_id, date=row_date)
                    self.db.add(fact)
                batch[key] = fact

            impressions = int(row.get("impressions") or 0)
            clicks = int(row.get("clicks") or 0)
            cost_micros = int(row.get("cost_micros") or 0)

            fact.account_id = account_id
            fact.parent_entity_id = str(row["parent_entity_id"]) if row.get("parent_entity_id") else None
            fact.entity_name = row.get("entity_name")
            fact.impressions = impressions
            fact.clicks = clicks
            fact.cost_micros = cost_micros
            fact.conversions = float(row.get("conversions") or 0)
            fact.conversions_value = float(row.get("conversions_value") or 0)
            fact.ctr = safe_divide(clicks, impressions)
            fact.average_cpc = safe_divide(cost_micros, clicks) / MICROS
            fact.currency_code = currency_code
            fact.data_freshness = data_freshness
            fact.synced_at = now

            if latest is None or row_date > latest:
                latest = row_date

        written = len(batch)
        self.db.commit()
        self.mark_sync(customer_id, entity_type, "COMPLETED", rows_written=written, last_synced_date=latest)
        log.info(f"Cached {written} {entity_type} metric rows for {customer_id}")
        return written
