"""
HubSpot Pulse — API Server
============================

JSON API serving CRM dashboard metrics computed live from HubSpot.

Route groups:
  /api/health          - Health check
  /api/metrics         - Dashboard metrics (current + previous period)
  /api/trends          - Daily trend buckets
  /api/deals/*         - Deal metrics, stage breakdown, forecast, top-N lists
  /api/companies/*     - Top won / lost companies (or contacts)
  /api/activity/*      - Recent activity, task metrics, today's summary
"""

from contextlib import asynccontextmanager
from datetime import datetime, timezone

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from analytics.service import DashboardService
from dashboard.api.middleware import APIKeyMiddleware
from dashboard.api.routers.activities import router as activities_router
from dashboard.api.routers.companies import router as companies_router
from dashboard.api.routers.deals import router as deals_router
from dashboard.api.routers.metrics import router as metrics_router
from integrations.hubspot import HubSpotClient
from lib.cache import TTLCache
from lib.config import Settings
from lib.errors import HubError
from lib.logger import setup_logger

logger = setup_logger(__name__)

VERSION = "1.0.0"


# ─── Lifespan ─────────────────────────────────────────────────

@asynccontextmanager
async def lifespan(app):
    """Application startup and shutdown."""
    logger.info("Starting HubSpot Pulse...")

    settings: Settings = app.state.settings
    # A missing HUBSPOT_API_KEY raises ConfigError here and aborts startup
    settings.ensure_hubspot_key()
    cache = TTLCache(default_ttl=settings.cache_ttl_seconds)
    client = HubSpotClient.from_settings(settings, cache=cache)

    app.state.service = DashboardService(client, cache, tz=settings.tzinfo)
    logger.info(
        "HubSpot client ready (base_url=%s, cache_ttl=%ss, timezone=%s, concurrency=%d)",
        settings.hubspot_base_url, settings.cache_ttl_seconds, settings.timezone, settings.concurrency,
    )

    logger.info("HubSpot Pulse ready")
    yield
    logger.info("Shutting down HubSpot Pulse...")
    await client.close()


# ─── Handlers ─────────────────────────────────────────────────

async def hub_error_handler(request: Request, exc: HubError):
    logger.error("Unhandled %s on %s: %s", exc.code, request.url.path, exc)
    return JSONResponse(
        status_code=500,
        content={"error": exc.code, "details": str(exc)},
    )


async def health(request: Request):
    """Health check with service status."""
    service = getattr(request.app.state, "service", None)
    return {
        "status": "healthy" if service is not None else "starting",
        "service": "HubSpot Pulse",
        "version": VERSION,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "integrations": service.get_status() if service is not None else {},
    }


# ─── App Setup ────────────────────────────────────────────────

def create_app(settings: Settings) -> FastAPI:
    """Build the API around one Settings object (CORS, auth, HubSpot client)."""
    app = FastAPI(
        title="HubSpot Pulse",
        version=VERSION,
        description="CRM metrics dashboard API backed by the HubSpot search API",
        lifespan=lifespan,
    )
    app.state.settings = settings

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(
        APIKeyMiddleware,
        require_auth=settings.require_api_key,
        api_key=settings.dashboard_api_key,
    )
    app.add_exception_handler(HubError, hub_error_handler)

    app.include_router(metrics_router)
    app.include_router(deals_router)
    app.include_router(companies_router)
    app.include_router(activities_router)
    app.get("/api/health", tags=["system"])(health)
    return app


# The HubSpot key is checked in the lifespan, so importing never needs it
app = create_app(Settings.from_env(require_hubspot_key=False))
