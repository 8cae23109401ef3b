"""FastAPI routes for the safety engine.

POST /api/safety/check              — run the safety pipeline on one message.
POST /api/chat                      — safety gate + companion reply.
GET  /api/monitoring/crisis-stats   — crisis log counters, optionally for one chat.
GET  /api/monitoring/safety-metrics — safety log aggregates.
GET  /api/monitoring/incidents      — recent high-risk safety checks.
GET  /api/health                    — service health check.
"""

from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from pydantic import BaseModel, Field
import structlog

from companion_safety.agents.companion import ConversationGate
from companion_safety.config import settings
from companion_safety.database import connection
from companion_safety.database.safety_logs import SafetyLogStore
from companion_safety.guardrails.models import CrisisStats, SafetyCheckResult, SafetyMetrics
from companion_safety.guardrails.safety import SafetyService

logger = structlog.get_logger()
router = APIRouter()


# --- Dependencies ---


def get_safety_service(request: Request) -> SafetyService:
    return request.app.state.safety_service


def get_conversation_gate(request: Request) -> ConversationGate:
    return request.app.state.conversation_gate


def get_store(request: Request) -> SafetyLogStore:
    return request.app.state.safety_service.store


# --- Request/Response Models ---


class SafetyCheckRequest(BaseModel):
    message: str = Field(min_length=1, max_length=settings.max_message_length)
    user_id: str = Field(min_length=1)
    chat_id: str | None = None
    message_id: str | None = None


class ChatRequest(BaseModel):
    message: str = Field(min_length=1, max_length=settings.max_message_length)
    user_id: str = Field(min_length=1)
    chat_id: str
    message_id: str | None = None
    system_prompt: str | None = None


class ChatResponse(BaseModel):
    response: str
    escalated: bool
    risk_level: str
    crisis_detected: bool
    crisis_resources: list[str] | None = None
    metadata: dict = Field(default_factory=dict)


class HealthResponse(BaseModel):
    status: str
    services: dict
    version: str


# --- Endpoints ---


@router.get("/health", response_model=HealthResponse)
async def health_check():
    """Service health check."""
    db_status = "connected" if connection.is_initialized() else "disconnected"

    return HealthResponse(
        status="healthy" if db_status == "connected" else "degraded",
        services={
            "database": db_status,
            "safety_classifier": settings.safety_model_provider,
        },
        version=settings.app_version,
    )


@router.post("/safety/check", response_model=SafetyCheckResult)
async def safety_check(
    request: SafetyCheckRequest,
    service: SafetyService = Depends(get_safety_service),
):
    """Run the safety pipeline on one message and return the verdict."""
    return await service.perform_safety_check(
        message=request.message,
        user_id=request.user_id,
        chat_id=request.chat_id,
        message_id=request.message_id,
    )


@router.post("/chat", response_model=ChatResponse)
async def chat(
    request: ChatRequest,
    gate: ConversationGate = Depends(get_conversation_gate),
):
    """Reply to a user message, escalating to crisis resources when needed."""
    result = await gate.respond(
        message=request.message,
        user_id=request.user_id,
        chat_id=request.chat_id,
        message_id=request.message_id,
        system_prompt=request.system_prompt,
    )
    return ChatResponse(
        response=result.response,
        escalated=result.escalated,
        risk_level=result.safety.risk_level.value,
        crisis_detected=result.safety.crisis_detected,
        crisis_resources=result.safety.crisis_resources,
        metadata=result.metadata,
    )


@router.get("/monitoring/crisis-stats", response_model=CrisisStats)
async def crisis_stats(
    recent: int = Query(10, ge=1, le=100, description="Number of recent crisis logs"),
    chat_id: str | None = Query(None, description="Also count crisis logs for this chat"),
    store: SafetyLogStore = Depends(get_store),
):
    """Crisis log counters and the latest detections."""
    try:
        stats = await store.get_crisis_stats(recent)
        if chat_id:
            stats.chat_crises = await store.count_crisis_logs_for_chat(chat_id)
        return stats
    except Exception as e:
        logger.error("crisis_stats_failed", error=str(e))
        raise HTTPException(status_code=503, detail="Monitoring data unavailable")


@router.get("/monitoring/safety-metrics", response_model=SafetyMetrics)
async def safety_metrics(
    start: datetime | None = Query(None, description="Inclusive start of the window"),
    end: datetime | None = Query(None, description="Inclusive end of the window"),
    store: SafetyLogStore = Depends(get_store),
):
    """Safety log aggregates for a date range."""
    try:
        return await store.get_safety_metrics(start, end)
    except Exception as e:
        logger.error("safety_metrics_failed", error=str(e))
        raise HTTPException(status_code=503, detail="Monitoring data unavailable")


@router.get("/monitoring/incidents")
async def safety_incidents(
    limit: int = Query(20, ge=1, le=100, description="Maximum incidents to return"),
    store: SafetyLogStore = Depends(get_store),
):
    """Recent safety checks that required intervention or reached high risk."""
    try:
        return await store.get_recent_safety_incidents(limit)
    except Exception as e:
        logger.error("safety_incidents_failed", error=str(e))
        raise HTTPException(status_code=503, detail="Monitoring data unavailable")
