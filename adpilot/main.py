"""
adpilot Google Ads dashboard
Main FastAPI application
"""
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.gzip import GZipMiddleware
from contextlib import asynccontextmanager

from adpilot.config import get_settings
from adpilot.utils.logger import log
from adpilot import __version__

# Import routers
from adpilot.api import (
    accounts, activity, ai, analyzer, auth, automated_rules, google_ads, guardrails, health,
    keyword_factory, keywords, saved_views, sync,
)
from adpilot.middleware.auth_middleware import AuthMiddleware

settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events"""
    log.info(f"Starting {settings.app_name} v{__version__}")
    log.info(f"Environment: {settings.environment}")

    # Initialize database
    try:
        from adpilot.models.base import init_db, SessionLocal
        init_db()
        log.info("Database initialized")

        # Seed initial admin user if configured
        from adpilot.services import auth_service
        db = SessionLocal()
        try:
            auth_service.seed_initial_user(db)
        finally:
            db.close()
    except Exception as e:
        log.error(f"Database initialization error: {str(e)}")

    # Recurring syncs, automated rules and the refresh queue
    from adpilot.scheduler import start_scheduler, stop_scheduler
    if settings.enable_scheduler:
        try:
            start_scheduler()
        except Exception as e:
            log.error(f"Scheduler startup error: {str(e)}")
    else:
        log.info("Scheduler disabled (ENABLE_SCHEDULER=false)")

    yield

    stop_scheduler()
    log.info("Shutting down application")


app = FastAPI(
    title=settings.app_name,
    version=__version__,
    description="""
    Google Ads management dashboard

    - Campaign, ad group and keyword performance served from a local metrics cache
    - Pause/enable, budget and bid changes with safety guardrails
    - Automated rules evaluated on a schedule
    - Keyword research: generation, enrichment, Quality Score, ROI and SERP difficulty
    - Landing page analysis
    - AI assistant using Claude
    """,
    lifespan=lifespan
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=[o.strip() for o in settings.cors_origins.split(",") if o.strip()],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Session-based authentication middleware
app.add_middleware(AuthMiddleware)

# Gzip compression
app.add_middleware(GZipMiddleware, minimum_size=500)

# Include routers
app.include_router(auth.router)
app.include_router(health.router, tags=["health"])
app.include_router(accounts.router)
app.include_router(google_ads.router)
app.include_router(sync.router)
app.include_router(saved_views.router)
app.include_router(automated_rules.router)
app.include_router(guardrails.router)
app.include_router(keyword_factory.router)
app.include_router(keywords.router)
app.include_router(analyzer.router)
app.include_router(ai.router)
app.include_router(activity.router)


@app.get("/")
async def root():
    return {
        "name": settings.app_name,
        "version": __version__,
        "docs": "/docs",
        "health": "/health",
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "adpilot.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.debug,
    )
