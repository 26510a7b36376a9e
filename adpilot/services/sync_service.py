"""
Sync Service

Pulls daily metrics from Google Ads into the metrics cache and keeps the
entity hierarchy current. Used by the manual sync endpoint and by the
scheduled refresh job.
"""
import time
from datetime import date, datetime, timedelta
from typing import Callable, Dict, Iterable, Optional
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from adpilot.connectors.base_connector import ConnectorError
from adpilot.models.metrics import SyncMetadata
from adpilot.services.entity_hierarchy_service import EntityHierarchyService
from adpilot.services.metrics_service import MetricsService
from adpilot.utils.logger import log

DEFAULT_BACKFILL_DAYS = 90
INCREMENTAL_DAYS = 3
SYNC_INTERVAL_MINUTES = 15
DEFAULT_ENTITY_TYPES = ("CAMPAIGN", "AD_GROUP", "KEYWORD")


class SyncService:
    """
    Args:
        db: session used for metrics and sync bookkeeping
        connector_factory: returns a Google Ads connector for a customer id
    """

    def __init__(self, db: Session, connector_factory: Optional[Callable[[str], object]] = None):
        self.db = db
        self.connector_factory = connector_factory
        self.metrics = MetricsService(db)
        self.hierarchy = EntityHierarchyService(db)

    async def sync_account(self, customer_id: str, account_id: Optional[int] = None,
                           backfill_days: int = DEFAULT_BACKFILL_DAYS,
                           entity_types: Iterable[str] = DEFAULT_ENTITY_TYPES,
                           include_today: bool = False, start_date: Optional[date] = None,
                           end_date: Optional[date] = None) -> Dict:
        """
        Sync every requested entity type for one customer.

        Returns:
            {success, customer_id, start_date, end_date, results: {type: {success, rows_written, error?}},
             duration_ms}
        """
        if self.connector_factory is None:
            raise ValueError("No Google Ads connector available for sync")

        started = time.monotonic()
        entity_types = list(entity_types)
        end = end_date or (date.today() if include_today else date.today() - timedelta(days=1))
        start = start_date or end - timedelta(days=backfill_days - 1)
        total_days = (end - start).days + 1

        progress = {"start": start.isoformat(), "end": end.isoformat(), "days": total_days, "percent": 0}
        for entity_type in entity_types:
            self.metrics.mark_sync(customer_id, entity_type, "IN_PROGRESS", backfill_progress=progress)

        connector = self.connector_factory(customer_id)
        results = {}

        for index, entity_type in enumerate(entity_types):
            try:
                rows = await connector.fetch_daily_metrics(entity_type, start, end)
                written = self.metrics.cache_metrics(customer_id, entity_type, rows, account_id=account_id)
                self.hierarchy.batch_upsert_entities(customer_id, [
                    {
                        "entity_type": entity_type,
                        "entity_id": row["entity_id"],
                        "entity_name": row.get("entity_name"),
                        "status": row.get("status"),
                        "parent_entity_id": row.get("parent_entity_id"),
                        "campaign_id": row.get("campaign_id"),
                        "ad_group_id": row.get("ad_group_id"),
                    }
                    for row in rows
                ], account_id=account_id)
                self.metrics.mark_sync(
                    customer_id, entity_type, "COMPLETED",
                    backfill_progress={**progress, "percent": 100},
                )
                results[entity_type] = {"success": True, "rows_written": written}
            except (ConnectorError, ValueError) as e:
                self.db.rollback()
                log.error(f"Sync failed for {customer_id} {entity_type}: {e}")
                self.metrics.mark_sync(customer_id, entity_type, "FAILED", error=str(e))
                results[entity_type] = {"success": False, "rows_written": 0, "error": str(e)}
            except SQLAlchemyError as e:
                self.db.rollback()
                log.error(f"Sync failed for {customer_id} {entity_type}: database error: {e}")
                message = f"Database error: {e.__class__.__name__}"
                self.metrics.mark_sync(customer_id, entity_type, "FAILED", error=message)
                results[entity_type] = {"success": False, "rows_written": 0, "error": message}

            log.info(f"Sync progress for {customer_id}: {index + 1}/{len(entity_types)} entity types")

        duration_ms = int((time.monotonic() - started) * 1000)
        success = all(r["success"] for r in results.values())
        log.info(f"Sync {'completed' if success else 'finished with errors'} for {customer_id} in {duration_ms}ms")
        return {
            "success": success,
            "customer_id": customer_id,
            "start_date": start.isoformat(),
            "end_date": end.isoformat(),
            "results": results,
            "duration_ms": duration_ms,
        }

    async def incremental_sync(self, customer_id: str, account_id: Optional[int] = None) -> Dict:
        """Last three days including today; conversions keep landing for a few days"""
        return await self.sync_account(
            customer_id,
            account_id=account_id,
            backfill_days=INCREMENTAL_DAYS,
            include_today=True,
        )

    def _metadata(self, customer_id: str):
        return self.db.query(SyncMetadata).filter(SyncMetadata.customer_id == customer_id).all()

    def get_sync_status(self, customer_id: str) -> Dict:
        status = {}
        for meta in self._metadata(customer_id):
            last = meta.last_sync_completed
            status[meta.entity_type] = {
                "status": meta.last_sync_status,
                "last_sync": last.isoformat() if last else None,
                "next_sync": (last + timedelta(minutes=SYNC_INTERVAL_MINUTES)).isoformat() if last else None,
                "rows_written": meta.rows_written or 0,
                "error": meta.last_sync_error,
            }
        for entity_type in DEFAULT_ENTITY_TYPES:
            status.setdefault(entity_type, {
                "status": "PENDING",
                "last_sync": None,
                "next_sync": None,
                "rows_written": 0,
                "error": None,
            })
        return status

    def last_completed_sync(self, customer_id: str) -> Optional[datetime]:
        completed = [m.last_sync_completed for m in self._metadata(customer_id) if m.last_sync_completed]
        return max(completed) if completed else None

    def needs_sync(self, customer_id: str, entity_type: Optional[str] = None,
                   max_stale_minutes: int = SYNC_INTERVAL_MINUTES) -> bool:
        """True when the oldest (or the given type's) completed sync is too old"""
        metadata = self._metadata(customer_id)
        if entity_type:
            metadata = [m for m in metadata if m.entity_type == entity_type]
        completed = [m.last_sync_completed for m in metadata if m.last_sync_completed]
        if not completed:
            return True
        minutes = (datetime.utcnow() - min(completed)).total_seconds() / 60
        return minutes > max_stale_minutes

    def get_backfill_progress(self, customer_id: str) -> Dict:
        metadata = self._metadata(customer_id)
        in_progress = [m for m in metadata if m.last_sync_status == "IN_PROGRESS"]
        if not in_progress:
            return {"is_backfilling": False, "progress": 100, "days_remaining": 0, "estimated_completion": None}

        percents = [float((m.backfill_progress or {}).get("percent", 0)) for m in metadata]
        avg = sum(percents) / len(percents)
        total_days = max(int((m.backfill_progress or {}).get("days", 0)) for m in in_progress)
        return {
            "is_backfilling": True,
            "progress": round(avg, 1),
            "days_remaining": int(total_days * (100 - avg) / 100),
            "estimated_completion": (datetime.utcnow() + timedelta(minutes=100 - avg)).isoformat(),
        }

    def cancel_sync(self, customer_id: str) -> int:
        cancelled = self.db.query(SyncMetadata).filter(
            SyncMetadata.customer_id == customer_id,
            SyncMetadata.last_sync_status == "IN_PROGRESS",
        ).update({"last_sync_status": "FAILED", "last_sync_error": "Cancelled by user"},
                 synchronize_session=False)
        self.db.commit()
        log.info(f"Cancelled {cancelled} in-progress sync(s) for {customer_id}")
        return cancelled
