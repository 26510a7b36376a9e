"""
Metrics sync endpoints
"""
from fastapi import APIRouter, Depends, HTTPException, Query
from typing import Callable, Optional
from datetime import datetime, timedelta
from pydantic import BaseModel
from sqlalchemy.orm import Session

from adpilot.api.accounts import get_connector_factory, resolve_account
from adpilot.api.auth import require_user
from adpilot.models.base import get_db
from adpilot.models.user import User
from adpilot.services.sync_service import SYNC_INTERVAL_MINUTES, SyncService
from adpilot import scheduler
from adpilot.utils.logger import log

router = APIRouter(prefix="/api/sync", tags=["sync"])


class SyncRequest(BaseModel):
    account_id: Optional[str] = None
    sync_type: str = "incremental"
    force: bool = False


class CancelRequest(BaseModel):
    account_id: Optional[str] = None


@router.get("/status")
async def get_sync_status(
    account_id: Optional[str] = Query(None),
    db: Session = Depends(get_db),
    user: User = Depends(require_user),
):
    if not account_id:
        raise HTTPException(status_code=400, detail="account_id is required")
    account = resolve_account(db, user, account_id, require_token=False)

    service = SyncService(db)
    customer_id = account.google_account_id
    return {
        "customer_id": customer_id,
        "entities": service.get_sync_status(customer_id),
        "backfill": service.get_backfill_progress(customer_id),
        "needs_sync": service.needs_sync(customer_id),
        "last_sync_at": account.last_sync_at.isoformat() if account.last_sync_at else None,
    }


@router.post("")
async def trigger_sync(
    body: SyncRequest,
    db: Session = Depends(get_db),
    user: User = Depends(require_user),
    connector_factory: Callable = Depends(get_connector_factory),
):
    """
    Run a sync now.

    incremental: last 3 days including today. full: 90 day backfill.
    Without force, a sync completed in the last 15 minutes is rate limited.
    """
    if not body.account_id:
        raise HTTPException(status_code=400, detail="account_id is required")
    if body.sync_type not in ("incremental", "full"):
        raise HTTPException(status_code=400, detail="sync_type must be incremental or full")
    account = resolve_account(db, user, body.account_id)
    customer_id = account.google_account_id

    service = SyncService(db, lambda _customer_id: connector_factory(account))
    if not body.force:
        last = service.last_completed_sync(customer_id)
        if last and datetime.utcnow() - last < timedelta(minutes=SYNC_INTERVAL_MINUTES):
            next_sync_at = last + timedelta(minutes=SYNC_INTERVAL_MINUTES)
            raise HTTPException(status_code=429, detail={
                "error": "Sync was run recently",
                "next_sync_at": next_sync_at.isoformat(),
            })

    try:
        if body.sync_type == "full":
            stats = await service.sync_account(customer_id, account_id=account.id)
        else:
            stats = await service.incremental_sync(customer_id, account_id=account.id)

        account.last_sync_at = datetime.utcnow()
        db.commit()
        return {"success": stats["success"], "stats": stats}

    except Exception as e:
        log.error(f"Sync error for {customer_id}: {str(e)}")
        raise HTTPException(status_code=500, detail=str(e))


@router.post("/cancel")
async def cancel_sync(body: CancelRequest, db: Session = Depends(get_db), user: User = Depends(require_user)):
    if not body.account_id:
        raise HTTPException(status_code=400, detail="account_id is required")
    account = resolve_account(db, user, body.account_id, require_token=False)
    cancelled = SyncService(db).cancel_sync(account.google_account_id)
    return {"success": True, "cancelled": cancelled}


@router.get("/jobs")
async def get_jobs(user: User = Depends(require_user)):
    """Scheduled jobs and refresh queue counters"""
    return {
        "scheduler_running": scheduler.scheduler.running,
        "jobs": scheduler.get_scheduled_jobs(),
        "queue": scheduler.get_queue_stats(),
    }


def _set_paused(job_id: str, paused: bool):
    try:
        job = scheduler.pause_job(job_id) if paused else scheduler.resume_job(job_id)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except LookupError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return {"success": True, "job": job}


@router.post("/jobs/{job_id}/pause")
async def pause_job(job_id: str, user: User = Depends(require_user)):
    """Pause a recurring job (metrics refresh, rules, keyword refresh, cleanup)"""
    return _set_paused(job_id, True)


@router.post("/jobs/{job_id}/resume")
async def resume_job(job_id: str, user: User = Depends(require_user)):
    return _set_paused(job_id, False)
