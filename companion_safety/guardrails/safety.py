"""Safety check orchestrator.

Runs on every inbound chat message, before the companion reply:

1. Crisis keyword detection (crisis log written when any keyword fires)
2. Pattern moderation across all content categories
3. AI risk classification, given the crisis result and pattern flags
4. Concatenate pattern and AI flags (no dedup, kept for the audit trail)
5. Aggregate risk level and intervention
6. Recommendations
7. Safety log row (always, best-effort)

Every stage runs even after a critical keyword hit so the safety log holds
the full flag set. Stage failures degrade to "no signal"; the caller always
gets a verdict.
"""

import time
from dataclasses import dataclass, field

import structlog

from companion_safety.config import Settings, settings as default_settings
from companion_safety.database.safety_logs import SafetyLogRecord, SafetyLogStore
from companion_safety.guardrails.classifier import SafetyModelClient, analyze_with_ai
from companion_safety.guardrails.crisis import (
    detect_crisis,
    generate_crisis_response,
    get_crisis_resources,
)
from companion_safety.guardrails.models import (
    CrisisDetectionResult,
    ModerationFlag,
    RiskLevel,
    SafetyCheckResult,
)
from companion_safety.guardrails.patterns import check_content_moderation
from companion_safety.guardrails.resources import CrisisResources
from companion_safety.guardrails.risk import (
    determine_risk_level_from_flags,
    generate_safety_recommendations,
    requires_intervention,
)

logger = structlog.get_logger()


@dataclass
class SafetyCheckContext:
    """Mutable context passed through the safety stages."""

    # Input
    message: str
    user_id: str
    chat_id: str | None = None
    message_id: str | None = None

    # Stage 1-3
    crisis_result: CrisisDetectionResult | None = None
    content_flags: list[ModerationFlag] = field(default_factory=list)
    ai_flags: list[ModerationFlag] = field(default_factory=list)

    # Stage 4-6
    moderation_flags: list[ModerationFlag] = field(default_factory=list)
    risk_level: RiskLevel = RiskLevel.LOW
    requires_intervention: bool = False
    recommendations: list[str] = field(default_factory=list)

    start_time: float = field(default_factory=time.time)


class SafetyService:
    """Entry point of the safety pipeline.

    Usage:
        service = SafetyService(store=SafetyLogStore(), classifier=client, resources=directory)
        result = await service.perform_safety_check("I feel hopeless", user_id="u1", chat_id="c1")
    """

    def __init__(
        self,
        store: SafetyLogStore,
        classifier: SafetyModelClient | None,
        resources: CrisisResources,
        settings: Settings | None = None,
    ):
        self.store = store
        self.classifier = classifier
        self.resources = resources
        self.settings = settings or default_settings

    async def perform_safety_check(
        self,
        message: str,
        user_id: str,
        chat_id: str | None = None,
        message_id: str | None = None,
    ) -> SafetyCheckResult:
        """Classify one inbound message.

        Args:
            message: Raw user message text.
            user_id: Owner of the message.
            chat_id: Chat the message belongs to, if any.
            message_id: Persisted message id, if any.

        Returns:
            SafetyCheckResult consumed by the conversation layer.
        """
        ctx = SafetyCheckContext(
            message=message,
            user_id=user_id,
            chat_id=chat_id,
            message_id=message_id,
        )

        await self._detect_crisis(ctx)
        self._moderate_content(ctx)
        await self._analyze_with_ai(ctx)
        self._aggregate(ctx)
        await self._persist(ctx)

        result = self._build_result(ctx)
        logger.info(
            "safety_check_complete",
            user_id=user_id,
            chat_id=chat_id,
            risk_level=result.risk_level.value,
            flags=len(result.moderation_flags),
            crisis_detected=result.crisis_detected,
            processing_time_ms=int((time.time() - ctx.start_time) * 1000),
        )
        return result

    async def _detect_crisis(self, ctx: SafetyCheckContext) -> None:
        """Stage 1: crisis keyword tiers."""
        ctx.crisis_result = await detect_crisis(
            ctx.message,
            ctx.user_id,
            ctx.chat_id,
            ctx.message_id,
            store=self.store,
            directory=self.resources,
        )

    def _moderate_content(self, ctx: SafetyCheckContext) -> None:
        """Stage 2: pattern tables."""
        ctx.content_flags = check_content_moderation(ctx.message, self.settings.profanity_words)

    async def _analyze_with_ai(self, ctx: SafetyCheckContext) -> None:
        """Stage 3: AI classifier, best-effort."""
        classification = await analyze_with_ai(
            ctx.message,
            ctx.crisis_result,
            ctx.content_flags,
            self.classifier,
            timeout=self.settings.safety_classifier_timeout_seconds,
        )
        ctx.ai_flags = classification.flags

    def _aggregate(self, ctx: SafetyCheckContext) -> None:
        """Stages 4-6: merge flags, risk level, intervention, recommendations."""
        ctx.moderation_flags = [*ctx.content_flags, *ctx.ai_flags]
        ctx.risk_level = determine_risk_level_from_flags(ctx.crisis_result.risk_level, ctx.moderation_flags)
        ctx.requires_intervention = requires_intervention(ctx.risk_level, ctx.moderation_flags)
        ctx.recommendations = generate_safety_recommendations(
            ctx.risk_level, ctx.moderation_flags, ctx.crisis_result
        )

    async def _persist(self, ctx: SafetyCheckContext) -> None:
        """Stage 7: safety log row (best-effort)."""
        try:
            await self.store.save_safety_log(
                SafetyLogRecord(
                    user_id=ctx.user_id,
                    chat_id=ctx.chat_id,
                    message_id=ctx.message_id,
                    risk_level=ctx.risk_level,
                    moderation_flags=ctx.moderation_flags,
                    crisis_detected=ctx.crisis_result.should_escalate,
                    requires_intervention=ctx.requires_intervention,
                    message_preview=ctx.message[: self.settings.message_preview_length],
                )
            )
            if ctx.requires_intervention:
                logger.warning(
                    "safety_intervention_required",
                    user_id=ctx.user_id,
                    risk_level=ctx.risk_level.value,
                    flags=len(ctx.moderation_flags),
                    crisis_detected=ctx.crisis_result.should_escalate,
                )
        except Exception as e:
            logger.error("safety_log_save_failed", user_id=ctx.user_id, error=str(e))

    @staticmethod
    def _build_result(ctx: SafetyCheckContext) -> SafetyCheckResult:
        crisis_detected = ctx.crisis_result.should_escalate
        return SafetyCheckResult(
            is_safe=not ctx.requires_intervention and ctx.risk_level == RiskLevel.LOW,
            risk_level=ctx.risk_level,
            moderation_flags=ctx.moderation_flags,
            crisis_detected=crisis_detected,
            crisis_resources=ctx.crisis_result.resources if crisis_detected else None,
            requires_intervention=ctx.requires_intervention,
            recommendations=ctx.recommendations,
        )

    def crisis_response(self, result: SafetyCheckResult) -> str:
        """Crisis reply for an escalated verdict.

        Verdicts escalated by content flags alone carry no crisis resources,
        so the region's emergency lists are used instead.
        """
        resources = result.crisis_resources or get_crisis_resources(result.risk_level, [], self.resources)
        return generate_crisis_response(
            CrisisDetectionResult(
                risk_level=result.risk_level,
                resources=resources,
                should_escalate=True,
            )
        )


def should_escalate(result: SafetyCheckResult) -> bool:
    """Whether the conversation layer must reply with the crisis template."""
    return result.crisis_detected or result.risk_level == RiskLevel.CRITICAL


SAFETY_GUIDELINES = """

CRITICAL SAFETY & EMPATHY GUIDELINES:

1. EMPATHETIC RESPONSES:
   - Always respond with empathy, understanding, and compassion
   - Never use judgmental, critical, or dismissive language
   - Acknowledge the user's feelings as valid
   - Use supportive and encouraging language
   - Show genuine care and concern

2. PROFESSIONAL BOUNDARIES:
   - You are a supportive AI companion, NOT a medical professional
   - NEVER provide medical diagnoses, prescriptions, or treatment advice
   - If user asks for medical advice, encourage them to consult a qualified healthcare professional
   - NEVER suggest stopping medication or changing medical treatment
   - Remind users that professional help is available for serious concerns

3. CRISIS SUPPORT:
   - If user expresses suicidal thoughts, self-harm, or crisis:
     - Provide immediate crisis resources (Samaritans: 116 123, Emergency: 999)
     - Express genuine concern and support
     - Encourage immediate professional help
   - Never minimize or dismiss crisis situations

4. POSITIVE INTERACTION:
   - Keep conversations helpful and constructive
   - Avoid negative, harmful, or triggering content
   - Focus on support, encouragement, and understanding
   - If unsure how to respond, err on the side of empathy and support

5. PRIVACY & TRUST:
   - Respect user privacy
   - Never share or repeat personal information
   - Create a safe, confidential space for users

Remember: Your role is to support, listen, and provide comfort - with clear boundaries about when professional help is needed."""


def add_safety_guidelines_to_prompt(base_prompt: str) -> str:
    """Append the standing safety and empathy guidelines to a system prompt."""
    return base_prompt + SAFETY_GUIDELINES
