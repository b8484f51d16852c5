"""FastAPI application entry point for the Merge risk engine."""

import contextlib
import time
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from src.api.middleware.error_handler import global_exception_handler
from src.api.middleware.logging import StructuredLoggingMiddleware
from src.api.routes.fraud import router as fraud_router
from src.api.routes.health import router as health_router
from src.config import settings
from src.domains.fraud.config import default_config
from src.domains.fraud.errors import FraudEngineError
from src.shared.logging import setup_logging

logger = structlog.get_logger()

# Track app start time for uptime calculation
APP_START_TIME: float = 0.0


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan: startup and shutdown logic."""
    global APP_START_TIME
    APP_START_TIME = time.time()
    setup_logging(settings.log_level, json_logs=not settings.debug)

    logger.info(
        "risk_engine_starting",
        app_name=settings.app_name,
        version=settings.app_version,
        debug=settings.debug,
        max_risk_score=default_config.scoring.max_risk_score,
    )

    from src.db.database import init_db

    await init_db()

    # Alert event publishing is optional; the engine works without Kafka
    producer = None
    app.state.alert_publisher = None
    if settings.alerts_publish_enabled:
        try:
            from src.domains.fraud.alerts import KafkaAlertPublisher
            from src.shared.kafka_utils import create_producer

            producer = await create_producer(settings.kafka_bootstrap_servers)
            app.state.alert_publisher = KafkaAlertPublisher(
                producer, topic=default_config.alerts.kafka_topic
            )
        except Exception:
            logger.warning("alert_publisher_failed_to_start", exc_info=True)

    yield

    if producer is not None:
        with contextlib.suppress(Exception):
            await producer.stop()
    logger.info("risk_engine_shutting_down")


app = FastAPI(
    title="Merge Risk Engine",
    description="Rule-based fraud and risk decision engine for the Merge back-office",
    version=settings.app_version,
    lifespan=lifespan,
)

# CORS for local development
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"] if settings.debug else [],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Structured logging middleware
app.add_middleware(StructuredLoggingMiddleware)

# Domain and standard errors are mapped to 4xx; anything else becomes a logged 500
app.add_exception_handler(FraudEngineError, global_exception_handler)
app.add_exception_handler(ValueError, global_exception_handler)
app.add_exception_handler(LookupError, global_exception_handler)
app.add_exception_handler(Exception, global_exception_handler)

# Register routers
app.include_router(health_router)
app.include_router(fraud_router)


def get_uptime() -> int:
    """Get application uptime in seconds."""
    if APP_START_TIME == 0.0:
        return 0
    return int(time.time() - APP_START_TIME)


def run() -> None:
    """Serve the app with uvicorn using the configured host and port."""
    import uvicorn

    uvicorn.run("src.main:app", host=settings.host, port=settings.port, log_config=None)
