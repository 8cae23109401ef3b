"""Companion Safety Engine — Entry Point.

FastAPI application with lifespan management. The database pool, the
safety classifier client and the safety service are built at startup and
kept on app.state.
"""

import logging
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI

from companion_safety.agents.companion import CompanionReplyGenerator, ConversationGate
from companion_safety.api.routes import router
from companion_safety.config import settings
from companion_safety.database import connection
from companion_safety.database.safety_logs import SafetyLogStore
from companion_safety.guardrails.classifier import create_safety_model_client
from companion_safety.guardrails.resources import load_crisis_resources
from companion_safety.guardrails.safety import SafetyService

# --- Logging ---

structlog.configure(
    processors=[
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.add_log_level,
        structlog.processors.JSONRenderer(),
    ],
    wrapper_class=structlog.make_filtering_bound_logger(
        logging.getLevelName(settings.log_level.upper())
    ),
)
logger = structlog.get_logger()


def build_safety_service() -> SafetyService:
    """Wire the safety service from settings."""
    classifier = None
    try:
        classifier = create_safety_model_client(settings)
    except Exception as e:
        logger.warning("safety_classifier_disabled", error=str(e))

    return SafetyService(
        store=SafetyLogStore(),
        classifier=classifier,
        resources=load_crisis_resources(settings.crisis_resources_path, settings.crisis_region),
        settings=settings,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events."""
    logger.info("starting_safety_engine", version=settings.app_version)
    try:
        connection.init_pool()
    except Exception as e:
        # Safety checks still run; audit rows are dropped until the database is back.
        logger.error("database_pool_init_failed", error=str(e))

    app.state.safety_service = build_safety_service()
    app.state.conversation_gate = ConversationGate(
        safety_service=app.state.safety_service,
        reply_generator=CompanionReplyGenerator(settings),
    )
    yield
    connection.close_pool()
    logger.info("stopped_safety_engine")


app = FastAPI(
    title="Companion Safety Engine",
    version=settings.app_version,
    lifespan=lifespan,
)

app.include_router(router, prefix="/api")


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("companion_safety.main:app", host="0.0.0.0", port=8000, reload=settings.debug)
