"""
HubSpot Pulse — Entry Point
============================

Run: python main.py
"""

from lib.config import Settings
from lib.logger import setup_logger

settings = Settings.from_env(require_hubspot_key=False)

logger = setup_logger("hubspot-pulse")

if __name__ == "__main__":
    import uvicorn

    logger.info("=" * 60)
    logger.info("  HUBSPOT PULSE — CRM Metrics Dashboard API")
    logger.info("=" * 60)
    logger.info("  Server      : http://0.0.0.0:%s", settings.port)
    logger.info("  API Docs    : http://localhost:%s/docs", settings.port)
    logger.info("  HubSpot     : %s", "configured" if settings.hubspot_api_key else "MISSING KEY")
    logger.info("  Timezone    : %s", settings.timezone)
    logger.info("  Cache TTL   : %ss", settings.cache_ttl_seconds)
    logger.info("  Auth        : %s", "required" if settings.require_api_key else "off")
    logger.info("=" * 60)

    # log_config=None keeps uvicorn on the root handlers installed above
    uvicorn.run(
        "dashboard.api.main:app",
        host="0.0.0.0",
        port=settings.port,
        reload=settings.debug,
        log_config=None,
    )
