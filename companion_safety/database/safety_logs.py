"""Audit log queries for crisis and safety checks.

All queries use psycopg2 (sync) with RealDictCursor. Both tables are
append-only from this service: rows are inserted once per detection and
never updated here.

SafetyLogStore wraps the sync functions for async callers.
"""

import asyncio
from datetime import datetime
from typing import Any

import psycopg2.extras
from pydantic import BaseModel, Field

from companion_safety.database.connection import get_connection
from companion_safety.guardrails.models import (
    CrisisStats,
    ModerationFlag,
    RiskLevel,
    SafetyMetrics,
    Sentiment,
)


class CrisisLogRecord(BaseModel):
    """A crisis_logs row."""

    user_id: str
    chat_id: str | None = None
    message_id: str | None = None
    risk_level: RiskLevel
    keywords: list[str] = Field(default_factory=list)
    sentiment: Sentiment
    resources: list[str] = Field(default_factory=list)
    resolved: bool = False


class SafetyLogRecord(BaseModel):
    """A safety_logs row."""

    user_id: str
    chat_id: str | None = None
    message_id: str | None = None
    risk_level: RiskLevel
    moderation_flags: list[ModerationFlag] = Field(default_factory=list)
    crisis_detected: bool
    requires_intervention: bool
    message_preview: str


def save_crisis_log(record: CrisisLogRecord) -> None:
    """Insert a crisis log row.

    Args:
        record: The crisis detection to record.
    """
    with get_connection() as conn:
        with conn.cursor() as cur:
            cur.execute(
                """
                INSERT INTO crisis_logs (
                    user_id, chat_id, message_id,
                    risk_level, keywords, sentiment,
                    resources, resolved
                ) VALUES (
                    %(user_id)s, %(chat_id)s, %(message_id)s,
                    %(risk_level)s, %(keywords)s, %(sentiment)s,
                    %(resources)s, %(resolved)s
                )
                """,
                {
                    "user_id": record.user_id,
                    "chat_id": record.chat_id,
                    "message_id": record.message_id,
                    "risk_level": record.risk_level.value,
                    "keywords": psycopg2.extras.Json(record.keywords),
                    "sentiment": record.sentiment.value,
                    "resources": psycopg2.extras.Json(record.resources),
                    "resolved": record.resolved,
                },
            )


def save_safety_log(record: SafetyLogRecord) -> None:
    """Insert a safety log row.

    Args:
        record: The safety check verdict to record.
    """
    with get_connection() as conn:
        with conn.cursor() as cur:
            cur.execute(
                """
                INSERT INTO safety_logs (
                    user_id, chat_id, message_id,
                    risk_level, moderation_flags,
                    crisis_detected, requires_intervention,
                    message_preview
                ) VALUES (
                    %(user_id)s, %(chat_id)s, %(message_id)s,
                    %(risk_level)s, %(moderation_flags)s,
                    %(crisis_detected)s, %(requires_intervention)s,
                    %(message_preview)s
                )
                """,
                {
                    "user_id": record.user_id,
                    "chat_id": record.chat_id,
                    "message_id": record.message_id,
                    "risk_level": record.risk_level.value,
                    "moderation_flags": psycopg2.extras.Json(
                        [flag.model_dump(mode="json") for flag in record.moderation_flags]
                    ),
                    "crisis_detected": record.crisis_detected,
                    "requires_intervention": record.requires_intervention,
                    "message_preview": record.message_preview,
                },
            )


def get_crisis_stats(recent_limit: int = 10) -> CrisisStats:
    """Crisis log counters plus the most recent rows."""
    with get_connection() as conn:
        with conn.cursor(cursor_factory=psycopg2.extras.RealDictCursor) as cur:
            cur.execute(
                """
                SELECT
                    COUNT(*) AS total_crises,
                    COUNT(*) FILTER (WHERE risk_level = 'critical') AS critical_crises,
                    COUNT(*) FILTER (WHERE resolved) AS resolved_crises
                FROM crisis_logs
                """
            )
            counts = cur.fetchone() or {}
            cur.execute(
                """
                SELECT id, user_id, chat_id, risk_level, keywords, sentiment, resolved, created_at
                FROM crisis_logs
                ORDER BY created_at DESC
                LIMIT %s
                """,
                (recent_limit,),
            )
            recent = [dict(row) for row in cur.fetchall()]

    return CrisisStats(
        total_crises=counts.get("total_crises") or 0,
        critical_crises=counts.get("critical_crises") or 0,
        resolved_crises=counts.get("resolved_crises") or 0,
        recent_crises=recent,
    )


def _date_filter(start: datetime | None, end: datetime | None) -> tuple[str, list[Any]]:
    clauses: list[str] = []
    params: list[Any] = []
    if start:
        clauses.append("created_at >= %s")
        params.append(start)
    if end:
        clauses.append("created_at <= %s")
        params.append(end)
    return (" AND ".join(clauses) or "TRUE"), params


def get_safety_metrics(start: datetime | None = None, end: datetime | None = None) -> SafetyMetrics:
    """Aggregate safety and crisis logs for a date range.

    Args:
        start: Inclusive lower bound on created_at.
        end: Inclusive upper bound on created_at.

    Returns:
        SafetyMetrics with counts and the mean risk (low=0 .. critical=3).
    """
    where, params = _date_filter(start, end)

    with get_connection() as conn:
        with conn.cursor(cursor_factory=psycopg2.extras.RealDictCursor) as cur:
            cur.execute(
                f"""
                SELECT
                    COUNT(*) AS total_checks,
                    COUNT(*) FILTER (WHERE requires_intervention) AS interventions,
                    COALESCE(AVG(CASE risk_level
                        WHEN 'low' THEN 0
                        WHEN 'medium' THEN 1
                        WHEN 'high' THEN 2
                        WHEN 'critical' THEN 3
                        ELSE 0 END), 0) AS average_risk_level
                FROM safety_logs
                WHERE {where}
                """,
                params,
            )
            safety = cur.fetchone() or {}
            cur.execute(
                f"""
                SELECT COUNT(*) AS crisis_detections
                FROM crisis_logs
                WHERE risk_level IN ('high', 'critical') AND {where}
                """,
                params,
            )
            crisis = cur.fetchone() or {}

    interventions = safety.get("interventions") or 0
    return SafetyMetrics(
        total_checks=safety.get("total_checks") or 0,
        flagged_messages=interventions,
        crisis_detections=crisis.get("crisis_detections") or 0,
        interventions=interventions,
        average_risk_level=round(float(safety.get("average_risk_level") or 0), 2),
    )


def get_recent_safety_incidents(limit: int = 20) -> list[dict[str, Any]]:
    """Latest safety checks that required intervention or reached high risk."""
    with get_connection() as conn:
        with conn.cursor(cursor_factory=psycopg2.extras.RealDictCursor) as cur:
            cur.execute(
                """
                SELECT id, user_id, chat_id, message_id, risk_level, moderation_flags,
                       crisis_detected, requires_intervention, message_preview, created_at
                FROM safety_logs
                WHERE requires_intervention OR risk_level IN ('high', 'critical')
                ORDER BY created_at DESC
                LIMIT %s
                """,
                (limit,),
            )
            return [dict(row) for row in cur.fetchall()]


def count_crisis_logs_for_chat(chat_id: str) -> int:
    """Number of crisis detections recorded for a chat."""
    with get_connection() as conn:
        with conn.cursor() as cur:
            cur.execute("SELECT COUNT(*) FROM crisis_logs WHERE chat_id = %s", (chat_id,))
            row = cur.fetchone()
            return row[0] if row else 0


class SafetyLogStore:
    """Async facade over the audit queries.

    Writes run in the default thread pool so the sync psycopg2 driver does
    not block the event loop.
    """

    async def save_crisis_log(self, record: CrisisLogRecord) -> None:
        await asyncio.to_thread(save_crisis_log, record)

    async def save_safety_log(self, record: SafetyLogRecord) -> None:
        await asyncio.to_thread(save_safety_log, record)

    async def get_crisis_stats(self, recent_limit: int = 10) -> CrisisStats:
        return await asyncio.to_thread(get_crisis_stats, recent_limit)

    async def get_safety_metrics(
        self,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> SafetyMetrics:
        return await asyncio.to_thread(get_safety_metrics, start, end)

    async def get_recent_safety_incidents(self, limit: int = 20) -> list[dict[str, Any]]:
        return await asyncio.to_thread(get_recent_safety_incidents, limit)

    async def count_crisis_logs_for_chat(self, chat_id: str) -> int:
        return await asyncio.to_thread(count_crisis_logs_for_chat, chat_id)
