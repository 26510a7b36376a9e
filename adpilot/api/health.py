"""
Health check and status endpoints
"""
from fastapi import APIRouter
from datetime import datetime
from adpilot.config import get_settings
from adpilot import __version__

settings = get_settings()

router = APIRouter()


@router.get("/health")
async def health_check():
    """Health check endpoint"""
    return {
        "status": "healthy",
        "timestamp": datetime.utcnow().isoformat(),
        "version": __version__
    }


@router.get("/status")
async def get_status():
    """Get system status"""
    from adpilot.scheduler import scheduler

    return {
        "app_name": settings.app_name,
        "version": __version__,
        "environment": settings.environment,
        "features": {
            "llm_assistant": bool(settings.enable_llm_insights and settings.anthropic_api_key),
            "google_ads": bool(settings.google_ads_developer_token),
            "moz": bool(settings.moz_api_token),
            "dataforseo": bool(settings.dataforseo_login and settings.dataforseo_password),
            "scheduler": settings.enable_scheduler,
        },
        "scheduler": {
            "running": scheduler.running,
            "jobs": len(scheduler.get_jobs()),
        },
        "timestamp": datetime.utcnow().isoformat()
    }
