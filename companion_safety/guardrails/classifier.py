"""AI risk classifier.

Asks a generative model for a JSON safety verdict on one message. The
classifier is advisory: timeouts, transport errors, refusals and
malformed replies all collapse to "no additional flags". There is no
retry; one failed attempt is simply no opinion.
"""

import asyncio
import json
import re

from pydantic import ValidationError

from agno.agent import Agent

import structlog

from companion_safety.agents.models import api_key_for, resolve_model
from companion_safety.config import Settings
from companion_safety.guardrails.models import (
    AIClassification,
    CrisisDetectionResult,
    ModerationFlag,
)

logger = structlog.get_logger()

_JSON_OBJECT = re.compile(r"\{.*\}", re.DOTALL)

SAFETY_CLASSIFIER_INSTRUCTIONS = [
    "You are a safety moderation system for an AI companion chat platform.",
    "You analyze a single user message and report genuine safety concerns.",
    "Respond with JSON only.",
]


class SafetyModelClient:
    """Generative model used for safety analysis.

    Owns one Agno agent. Built at application startup and passed to the
    safety service; tests pass their own stand-in with an async generate().
    """

    def __init__(self, agent: Agent):
        self._agent = agent

    async def generate(self, prompt: str) -> str:
        response = await self._agent.arun(prompt)
        return str(response.content or "")


def create_safety_model_client(settings: Settings) -> SafetyModelClient:
    """Build the safety classifier client from settings."""
    provider = settings.safety_model_provider
    agent = Agent(
        name="Safety Classifier",
        model=resolve_model(
            provider,
            settings.safety_model_id,
            api_key=api_key_for(provider, settings),
            temperature=settings.safety_temperature,
            max_tokens=settings.safety_max_output_tokens,
        ),
        instructions=SAFETY_CLASSIFIER_INSTRUCTIONS,
        markdown=False,
    )
    logger.info(
        "safety_classifier_created",
        provider=settings.safety_model_provider,
        model=settings.safety_model_id,
    )
    return SafetyModelClient(agent)


def build_safety_prompt(
    message: str,
    crisis_result: CrisisDetectionResult,
    existing_flags: list[ModerationFlag],
) -> str:
    """Build the safety analysis prompt for one message."""
    return f"""You are a safety moderation system. Analyze the following message for potential safety concerns.

Message: "{message}"

Check for:
1. Harmful or violent content
2. Requests for medical advice (should encourage professional help)
3. Inappropriate or explicit content
4. Spam or malicious content
5. Harassment or hate speech

Crisis already detected: {"Yes" if crisis_result.should_escalate else "No"}
Existing moderation flags: {len(existing_flags)}

Respond in JSON format:
{{
  "isSafe": boolean,
  "riskLevel": "low" | "medium" | "high" | "critical",
  "flags": [
    {{
      "type": "harmful" | "inappropriate" | "spam" | "violence" | "medical-advice" | "harassment",
      "severity": "low" | "medium" | "high",
      "reason": "explanation",
      "confidence": 0.0-1.0
    }}
  ],
  "recommendations": ["suggestion1", "suggestion2"]
}}

Only flag if there are genuine safety concerns. Be conservative - avoid false positives."""


def _parse_flag(entry: object) -> ModerationFlag | None:
    if not isinstance(entry, dict):
        return None
    data = dict(entry)
    # The model sometimes borrows the risk scale for flag severity.
    if data.get("severity") == "critical":
        data["severity"] = "high"
    data.setdefault("reason", "AI safety analysis")
    try:
        return ModerationFlag.model_validate(data)
    except ValidationError:
        logger.warning("ai_safety_flag_rejected", flag=entry)
        return None


def parse_ai_classification(response: str) -> AIClassification:
    """Extract flags from a model reply.

    Takes the outermost {...} block so leading or trailing prose is
    tolerated. Entries whose type, severity or confidence fall outside the
    known values are dropped.

    Args:
        response: Raw model text.

    Returns:
        AIClassification; empty when nothing usable was found.
    """
    match = _JSON_OBJECT.search(response)
    if not match:
        logger.warning("ai_safety_analysis_no_json", response=response[:500])
        return AIClassification()

    try:
        analysis = json.loads(match.group(0))
    except (ValueError, RecursionError):
        logger.warning("ai_safety_analysis_parse_failed", response=response[:500])
        return AIClassification()

    if not isinstance(analysis, dict):
        return AIClassification()

    raw_flags = analysis.get("flags") or []
    if not isinstance(raw_flags, list):
        raw_flags = []
    flags = [flag for flag in (_parse_flag(entry) for entry in raw_flags) if flag is not None]

    recommendations = analysis.get("recommendations") or []
    if not isinstance(recommendations, list):
        recommendations = []

    return AIClassification(
        flags=flags,
        risk_assessment="; ".join(str(r) for r in recommendations),
    )


async def analyze_with_ai(
    message: str,
    crisis_result: CrisisDetectionResult,
    existing_flags: list[ModerationFlag],
    client: SafetyModelClient | None,
    timeout: float | None = None,
) -> AIClassification:
    """Run the AI classifier with a hard timeout.

    Args:
        message: Raw user message text.
        crisis_result: Keyword classifier result, passed as context.
        existing_flags: Pattern matcher flags, passed as context.
        client: Safety model client; None disables the stage.
        timeout: Seconds before the call is abandoned.

    Returns:
        AIClassification. Never raises.
    """
    if client is None:
        return AIClassification()

    prompt = build_safety_prompt(message, crisis_result, existing_flags)
    try:
        response = await asyncio.wait_for(client.generate(prompt), timeout=timeout)
        classification = parse_ai_classification(response)
    except asyncio.TimeoutError:
        logger.error("ai_safety_analysis_timeout", timeout=timeout)
        return AIClassification()
    except Exception as e:
        logger.error("ai_safety_analysis_failed", error=str(e))
        return AIClassification()

    logger.info(
        "ai_safety_analysis_complete",
        flags=len(classification.flags),
        risk_assessment=classification.risk_assessment,
    )
    return classification
