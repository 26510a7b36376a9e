"""
Scheduler for background metrics refresh, automated rules, keyword refresh and cleanup

Uses APScheduler for the recurring jobs and for on-demand refresh jobs
queued from the dashboard (one pending job per refresh key).
"""
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger
from datetime import date, datetime, timedelta
from typing import Dict, List, Optional

from adpilot.connectors.google_ads import build_google_ads_connector
from adpilot.models.account import GoogleAdsAccount
from adpilot.models.base import get_db
from adpilot.services import auth_service
from adpilot.services.keyword_metrics import KeywordMetricsService
from adpilot.services.rule_runner import RuleRunner
from adpilot.services.serp_analyzer import SerpAnalyzer
from adpilot.services.sync_service import SyncService
from adpilot.config import get_settings
from adpilot.utils.logger import log

settings = get_settings()
scheduler = AsyncIOScheduler()

REFRESH_JOB_PREFIX = "refresh_"
RECURRING_JOBS = ("metrics_refresh", "automated_rules", "keyword_refresh", "cleanup_expired")
REFRESH_ENTITY_TYPES = {
    "campaigns": "CAMPAIGN",
    "ad-groups": "AD_GROUP",
    "keywords": "KEYWORD",
    "ads": "AD",
}

# Last enqueue time per customer
_last_enqueue: Dict[str, datetime] = {}
_queue_stats = {
    "enqueued": 0,
    "completed": 0,
    "failed": 0,
    "deduplicated": 0,
    "rate_limited": 0,
}


# Recurring jobs

async def refresh_account_metrics():
    """Incremental metrics sync for every active account"""
    db = next(get_db())
    try:
        accounts = db.query(GoogleAdsAccount).filter(GoogleAdsAccount.status == "active").all()
        log.info(f"Starting scheduled metrics refresh for {len(accounts)} account(s)...")

        for account in accounts:
            service = SyncService(db, lambda customer_id, account=account: build_google_ads_connector(account))
            try:
                result = await service.incremental_sync(account.google_account_id, account_id=account.id)
                account.last_sync_at = datetime.utcnow()
                db.commit()
                log.info(
                    f"Metrics refresh for {account.google_account_id}: "
                    f"{'ok' if result['success'] else 'errors'} in {result['duration_ms']}ms"
                )
            except Exception as e:
                log.error(f"Metrics refresh failed for {account.google_account_id}: {str(e)}")
    finally:
        db.close()


async def run_automated_rules():
    """Evaluate rules whose next_run has passed"""
    db = next(get_db())
    try:
        await RuleRunner(db).run_due_rules()
    except Exception as e:
        log.error(f"Automated rules job failed: {str(e)}")
    finally:
        db.close()


async def refresh_popular_keywords():
    """Re-fetch frequently looked-up keywords shortly before their cache entries expire"""
    db = next(get_db())
    try:
        service = KeywordMetricsService(db)
        if not service.dataforseo.is_configured:
            log.info("Keyword refresh skipped: DataForSEO not configured")
            return
        await service.refresh_popular(providers=["dataforseo"])
    except Exception as e:
        log.error(f"Keyword refresh job failed: {str(e)}")
    finally:
        db.close()


async def cleanup_expired_data():
    """Expired sessions, SERP analyses and keyword metrics"""
    db = next(get_db())
    try:
        sessions = auth_service.cleanup_expired(db)
        serp = SerpAnalyzer(db).cleanup_expired()
        keywords = KeywordMetricsService(db).cleanup_expired()
        log.info(f"Cleanup removed {sessions} sessions, {serp} SERP rows, {keywords} keyword metric rows")
    except Exception as e:
        log.error(f"Cleanup job failed: {str(e)}")
    finally:
        db.close()


# Refresh queue

def is_queue_available() -> bool:
    return settings.enable_scheduler


def generate_job_id(entity_type: str, customer_id: str, parent_entity_id: Optional[str],
                    start_date: date, end_date: date) -> str:
    """Same parameters always give the same id"""
    parts = [
        REFRESH_JOB_PREFIX + entity_type.replace("-", "_"),
        customer_id,
        str(parent_entity_id) if parent_entity_id else "root",
        start_date.isoformat(),
        end_date.isoformat(),
    ]
    return "_".join(parts)


async def run_refresh_job(account_id: int, entity_type: str, start_date: date, end_date: date):
    db = next(get_db())
    try:
        account = db.query(GoogleAdsAccount).filter(GoogleAdsAccount.id == account_id).first()
        if not account:
            log.warning(f"Refresh skipped for account {account_id} ({entity_type}): account no longer exists")
            _queue_stats["failed"] += 1
            return

        service = SyncService(db, lambda customer_id: build_google_ads_connector(account))
        result = await service.sync_account(
            account.google_account_id,
            account_id=account.id,
            entity_types=(REFRESH_ENTITY_TYPES[entity_type],),
            include_today=end_date >= date.today(),
            start_date=start_date,
            end_date=end_date,
        )
        _queue_stats["completed" if result["success"] else "failed"] += 1
    except Exception as e:
        _queue_stats["failed"] += 1
        log.error(f"Refresh job failed for account {account_id} ({entity_type}): {str(e)}")
    finally:
        db.close()


def enqueue_refresh(account: GoogleAdsAccount, entity_type: str, start_date: date, end_date: date,
                    parent_entity_id: Optional[str] = None, now: Optional[datetime] = None) -> Dict:
    """
    Queue a one-off refresh.

    Returns:
        {status: queued|already_pending|rate_limited, job_id, date_range}
    """
    now = now or datetime.utcnow()
    customer_id = account.google_account_id
    job_id = generate_job_id(entity_type, customer_id, parent_entity_id, start_date, end_date)
    response = {
        "job_id": job_id,
        "date_range": {"start_date": start_date.isoformat(), "end_date": end_date.isoformat()},
    }

    if scheduler.get_job(job_id):
        _queue_stats["deduplicated"] += 1
        return {"status": "already_pending", **response}

    last = _last_enqueue.get(customer_id)
    if last and now - last < timedelta(seconds=settings.refresh_rate_limit_seconds):
        _queue_stats["rate_limited"] += 1
        return {"status": "rate_limited", **response}

    scheduler.add_job(
        run_refresh_job,
        trigger="date",
        run_date=now,
        id=job_id,
        name=f"Refresh {entity_type} for {customer_id}",
        kwargs={
            "account_id": account.id,
            "entity_type": entity_type,
            "start_date": start_date,
            "end_date": end_date,
        },
        replace_existing=True,
        misfire_grace_time=None,
    )
    _last_enqueue[customer_id] = now
    _queue_stats["enqueued"] += 1
    log.info(f"Queued refresh job {job_id}")
    return {"status": "queued", **response}


def get_queue_stats() -> Dict:
    pending = [job for job in scheduler.get_jobs() if job.id.startswith(REFRESH_JOB_PREFIX)]
    return {**_queue_stats, "pending": len(pending), "available": is_queue_available()}


def reset_queue_state():
    """Forget rate-limit timestamps and counters"""
    _last_enqueue.clear()
    for key in _queue_stats:
        _queue_stats[key] = 0


# Scheduler lifecycle

def setup_scheduler():
    """
    Configure the recurring jobs.

    - Metrics refresh:  every METRICS_REFRESH_INTERVAL_MINUTES (15)
    - Automated rules:  every RULES_CHECK_INTERVAL_MINUTES (60)
    - Keyword refresh:  daily at 2:00am
    - Cleanup:          daily at 3:00am
    """
    scheduler.add_job(
        refresh_account_metrics,
        trigger=IntervalTrigger(minutes=settings.metrics_refresh_interval_minutes),
        id='metrics_refresh',
        name='Google Ads Metrics Refresh',
        replace_existing=True,
        max_instances=1
    )

    scheduler.add_job(
        run_automated_rules,
        trigger=IntervalTrigger(minutes=settings.rules_check_interval_minutes),
        id='automated_rules',
        name='Automated Rules Evaluation',
        replace_existing=True,
        max_instances=1
    )

    scheduler.add_job(
        refresh_popular_keywords,
        trigger=CronTrigger(hour=2, minute=0),
        id='keyword_refresh',
        name='Popular Keyword Metrics Refresh',
        replace_existing=True,
        max_instances=1
    )

    scheduler.add_job(
        cleanup_expired_data,
        trigger=CronTrigger(hour=3, minute=0),
        id='cleanup_expired',
        name='Expired Sessions and Cache Cleanup',
        replace_existing=True,
        max_instances=1
    )

    log.info("Scheduler configured with metrics refresh, rules, keyword refresh and cleanup jobs")


def start_scheduler():
    """Start the scheduler"""
    setup_scheduler()
    scheduler.start()
    log.info("Scheduler started")


def stop_scheduler():
    """Stop the scheduler"""
    if scheduler.running:
        scheduler.shutdown()
        log.info("Scheduler stopped")


def _job_info(job) -> Dict:
    # Jobs added before start() have no next_run_time until the scheduler computes one
    next_run = getattr(job, "next_run_time", None)
    return {
        "id": job.id,
        "name": job.name,
        "kind": "recurring" if job.id in RECURRING_JOBS else "refresh",
        "next_run": next_run.isoformat() if next_run else None,
        "paused": hasattr(job, "next_run_time") and next_run is None,
        "trigger": str(job.trigger),
    }


def get_scheduled_jobs() -> List[Dict]:
    """Recurring jobs first, then queued refreshes"""
    jobs = [_job_info(job) for job in scheduler.get_jobs()]
    return sorted(jobs, key=lambda j: (j["kind"] != "recurring", j["id"]))


def _recurring_job(job_id: str):
    if job_id not in RECURRING_JOBS:
        raise ValueError(f"Only recurring jobs can be paused or resumed: {', '.join(RECURRING_JOBS)}")
    job = scheduler.get_job(job_id)
    if job is None:
        raise LookupError(f"Job {job_id} is not scheduled")
    return job


def pause_job(job_id: str) -> Dict:
    """
    Stop a recurring job from firing until it is resumed.

    Raises:
        ValueError: job_id is not a recurring job
        LookupError: the job is not scheduled (scheduler disabled)
    """
    _recurring_job(job_id)
    job = scheduler.pause_job(job_id)
    log.info(f"Paused job: {job_id}")
    return _job_info(job)


def resume_job(job_id: str) -> Dict:
    """Reschedule a paused recurring job from its trigger; same errors as pause_job"""
    _recurring_job(job_id)
    job = scheduler.resume_job(job_id)
    log.info(f"Resumed job: {job_id}")
    return _job_info(job)
