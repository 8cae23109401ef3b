"""Conversation safety gate.

Sits in front of companion reply generation:

- safety check on the inbound message
- crisis template instead of a model reply when the verdict escalates
- otherwise the companion agent, with the standing safety guidelines
  appended to its system prompt
"""

from dataclasses import dataclass, field

from agno.agent import Agent

import structlog

from companion_safety.agents.models import api_key_for, resolve_model
from companion_safety.config import Settings
from companion_safety.guardrails.models import SafetyCheckResult
from companion_safety.guardrails.safety import (
    SafetyService,
    add_safety_guidelines_to_prompt,
    should_escalate,
)

logger = structlog.get_logger()

DEFAULT_SYSTEM_PROMPT = (
    "You are a positive energy companion. Always respond with empathy, positivity, "
    "and helpful guidance. Keep responses concise but meaningful."
)

FALLBACK_REPLY = "I'm here to support you. How can I help you today?"


class CompanionReplyGenerator:
    """Companion reply model. One agent per request, built from settings."""

    def __init__(self, settings: Settings):
        self._settings = settings

    async def generate(self, message: str, system_prompt: str) -> str:
        provider = self._settings.companion_model_provider
        agent = Agent(
            name="Companion",
            model=resolve_model(
                provider,
                self._settings.companion_model_id,
                api_key=api_key_for(provider, self._settings),
            ),
            instructions=[system_prompt],
            markdown=True,
        )
        response = await agent.arun(message)
        if not response.content:
            raise ValueError("Companion agent returned an empty reply")
        return str(response.content)


@dataclass
class GateResult:
    """Reply chosen for one inbound message."""

    response: str
    escalated: bool
    safety: SafetyCheckResult
    metadata: dict = field(default_factory=dict)


class ConversationGate:
    """Routes each message to the crisis template or the companion agent."""

    def __init__(self, safety_service: SafetyService, reply_generator: CompanionReplyGenerator):
        self.safety_service = safety_service
        self.reply_generator = reply_generator

    async def respond(
        self,
        message: str,
        user_id: str,
        chat_id: str | None = None,
        message_id: str | None = None,
        system_prompt: str | None = None,
    ) -> GateResult:
        """Produce the reply for one inbound message.

        Args:
            message: Raw user message text.
            user_id: Owner of the message.
            chat_id: Chat the message belongs to.
            message_id: Persisted message id, if any.
            system_prompt: Companion persona prompt; defaults to the generic companion.

        Returns:
            GateResult with the reply and the safety verdict behind it.
        """
        safety = await self.safety_service.perform_safety_check(message, user_id, chat_id, message_id)

        if should_escalate(safety):
            logger.warning(
                "conversation_escalated",
                user_id=user_id,
                chat_id=chat_id,
                risk_level=safety.risk_level.value,
                crisis_detected=safety.crisis_detected,
            )
            return GateResult(
                response=self.safety_service.crisis_response(safety),
                escalated=True,
                safety=safety,
                metadata={"escalation_reason": safety.risk_level.value},
            )

        prompt = add_safety_guidelines_to_prompt(system_prompt or DEFAULT_SYSTEM_PROMPT)
        try:
            response = await self.reply_generator.generate(message, prompt)
        except Exception as e:
            logger.error("companion_reply_failed", user_id=user_id, chat_id=chat_id, error=str(e))
            return GateResult(
                response=FALLBACK_REPLY,
                escalated=False,
                safety=safety,
                metadata={"error": str(e)},
            )

        return GateResult(response=response, escalated=False, safety=safety)
