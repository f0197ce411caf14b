"""FastAPI application for the Elyn Billing Engine."""

import logging
import time
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from datetime import UTC, datetime
from typing import Any

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from billing_engine.api import bills_router, coding_router
from billing_engine.core.config import settings
from billing_engine.core.database import close_db, init_db
from billing_engine.services.code_tables import get_code_tables

logger = logging.getLogger(__name__)

SERVICE_NAME = "elyn-billing-engine"
VERSION = "0.1.0"


def prewarm_all_services() -> dict[str, Any]:
    """Pre-warm the billing engine singletons at startup.

    Returns:
        Dictionary with service names and their stats.
    """
    start_time = time.perf_counter()
    services_loaded = {}

    try:
        from billing_engine.services.mdm_resolver import get_mdm_resolver
        services_loaded["mdm_resolver"] = get_mdm_resolver().get_stats()
    except Exception as e:
        logger.warning(f"Failed to prewarm mdm_resolver: {e}")

    try:
        from billing_engine.services.hcc_mapper import get_hcc_mapper
        services_loaded["hcc_mapper"] = get_hcc_mapper().get_stats()
    except Exception as e:
        logger.warning(f"Failed to prewarm hcc_mapper: {e}")

    try:
        from billing_engine.services.billing_alerts import get_billing_alert_analyzer
        services_loaded["billing_alerts"] = get_billing_alert_analyzer().get_stats()
    except Exception as e:
        logger.warning(f"Failed to prewarm billing_alerts: {e}")

    try:
        from billing_engine.services.denial_risk import get_denial_risk_scorer
        services_loaded["denial_risk"] = get_denial_risk_scorer().get_stats()
    except Exception as e:
        logger.warning(f"Failed to prewarm denial_risk: {e}")

    try:
        from billing_engine.services.code_validator import get_code_validator
        services_loaded["code_validator"] = get_code_validator().get_stats()
    except Exception as e:
        logger.warning(f"Failed to prewarm code_validator: {e}")

    total_time_ms = (time.perf_counter() - start_time) * 1000

    return {
        "services_loaded": len(services_loaded),
        "total_prewarm_time_ms": round(total_time_ms, 2),
        "services": services_loaded,
    }


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager.

    Handles startup and shutdown events:
    - Startup: Initialize database (debug only), prewarm engine services
    - Shutdown: Close database connections
    """
    startup_start = time.perf_counter()

    # Startup
    if settings.debug:
        await init_db()

    prewarm_stats = prewarm_all_services()
    logger.info(
        f"Services pre-warmed: {prewarm_stats['services_loaded']} services "
        f"in {prewarm_stats['total_prewarm_time_ms']}ms"
    )

    total_startup_ms = (time.perf_counter() - startup_start) * 1000
    logger.info(f"Server ready - total startup time: {total_startup_ms:.0f}ms")

    # Store prewarm stats for readiness endpoint
    app.state.prewarm_stats = prewarm_stats
    app.state.startup_time_ms = total_startup_ms

    yield

    # Shutdown
    await close_db()


app = FastAPI(
    title=settings.app_name,
    description="Billing intelligence API: E/M level derivation, HCC mapping, compliance alerts, denial risk and unified bill management.",
    version=VERSION,
    lifespan=lifespan,
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(coding_router)
app.include_router(bills_router)


@app.get("/health", tags=["Health"])
async def health_check() -> dict[str, Any]:
    """Health check endpoint (liveness probe).

    Use /ready for readiness checks.
    """
    return {
        "status": "healthy",
        "service": SERVICE_NAME,
        "version": VERSION,
        "timestamp": datetime.now(UTC).isoformat(),
    }


@app.get("/ready", tags=["Health"])
async def readiness_check() -> dict[str, Any]:
    """Readiness check endpoint.

    Confirms the engine services are pre-warmed and reports table versions.
    """
    prewarm_stats = getattr(app.state, "prewarm_stats", {})
    startup_time = getattr(app.state, "startup_time_ms", 0)

    return {
        "status": "ready",
        "service": SERVICE_NAME,
        "version": VERSION,
        "timestamp": datetime.now(UTC).isoformat(),
        "startup_time_ms": startup_time,
        "code_tables": get_code_tables().get_stats(),
        "prewarmed_services": prewarm_stats.get("services_loaded", 0),
        "prewarm_time_ms": prewarm_stats.get("total_prewarm_time_ms", 0),
    }


@app.get("/", tags=["Health"])
async def root() -> dict[str, str]:
    """Root endpoint with API info."""
    return {
        "service": "Elyn Billing Engine API",
        "version": VERSION,
        "docs": "/docs",
        "health": "/health",
        "ready": "/ready",
    }
