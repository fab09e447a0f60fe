"""
Director Network Service.

HTTP entry point: builds director networks for a practice's client
companies from Companies House data and lists the resulting warm
introduction opportunities.
"""
import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.core.config import get_settings
from app.core.database import check_connection, create_tables, reset_engine
from app.core.rate_limiter import get_rate_limiter
from app.api.v1 import network

SERVICE_NAME = "Director Network Service"
SERVICE_VERSION = "0.1.0"

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()
    logging.getLogger().setLevel(settings.log_level)

    logger.info(f"Starting {SERVICE_NAME} {SERVICE_VERSION}")
    logger.info(
        f"Registry: {settings.companies_house_base_url}, "
        f"{settings.registry_rate_limit_requests} requests / "
        f"{settings.registry_rate_limit_window_seconds:g}s, "
        f"{settings.network_call_delay_seconds:g}s between build calls"
    )
    logger.info(f"Identity matching: {settings.identity_match_strategy}")
    if not settings.companies_house_api_key:
        logger.warning("COMPANIES_HOUSE_API_KEY not set; network builds will return 503")

    try:
        create_tables()
    except Exception as e:
        logger.error(f"Failed to create tables: {e}")
        raise

    yield

    logger.info(f"Shutting down {SERVICE_NAME}")
    reset_engine()


app = FastAPI(
    title=SERVICE_NAME,
    description="Warm introduction discovery through shared company directors",
    version=SERVICE_VERSION,
    lifespan=lifespan
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(network.router, prefix="/api/v1")


@app.get("/")
def root():
    """Service info."""
    return {
        "service": SERVICE_NAME,
        "version": SERVICE_VERSION,
        "sources": ["companies_house"],
        "docs": "/docs"
    }


@app.get("/health")
def health_check():
    """
    Database connectivity, registry configuration and rate limit usage.

    Status is "degraded" when the database is unreachable; a missing API key
    only disables builds, so it is reported but does not degrade the status.
    """
    database_ok = check_connection()
    return {
        "status": "healthy" if database_ok else "degraded",
        "database": "connected" if database_ok else "unreachable",
        "registry": {
            "api_key_configured": bool(get_settings().companies_house_api_key),
            "rate_limit": get_rate_limiter().get_stats(),
        },
    }
