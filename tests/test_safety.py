"""End-to-end tests for guardrails/safety.py — SafetyService pipeline.

The audit store and the AI classifier are in-memory fakes; everything else
runs for real.
"""

import pytest

from companion_safety.guardrails.models import FlagType, RiskLevel, SafetyCheckResult
from companion_safety.guardrails.safety import (
    SAFETY_GUIDELINES,
    add_safety_guidelines_to_prompt,
    should_escalate,
)

VIOLENCE_REPLY = (
    '{"isSafe": false, "flags": [{"type": "violence", "severity": "high", '
    '"reason": "Threat", "confidence": 0.9}]}'
)


# --- Reference scenarios ---


class TestScenarios:
    """Reference messages through the full pipeline."""

    @pytest.mark.asyncio
    async def test_suicidal_message(self, make_service, store):
        result = await make_service().perform_safety_check("I want to kill myself", "u1", "c1")

        assert result.is_safe is False
        assert result.risk_level == RiskLevel.CRITICAL
        assert result.crisis_detected is True
        assert result.requires_intervention is True
        assert "999 (Emergency Services)" in result.crisis_resources
        assert [f.type for f in result.moderation_flags] == [FlagType.SELF_HARM, FlagType.VIOLENCE]
        assert "Immediate crisis resources provided" in result.recommendations
        assert len(store.crisis_logs) == 1
        assert len(store.safety_logs) == 1
        assert store.safety_logs[0].crisis_detected is True

    @pytest.mark.asyncio
    async def test_mild_sadness(self, make_service, store):
        result = await make_service().perform_safety_check("I'm feeling a bit sad today", "u1", "c1")

        assert result.is_safe is True
        assert result.risk_level == RiskLevel.LOW
        assert result.crisis_detected is False
        assert result.crisis_resources is None
        assert result.requires_intervention is False
        assert result.recommendations == []
        # low-tier keyword still recorded
        assert len(store.crisis_logs) == 1
        assert len(store.safety_logs) == 1

    @pytest.mark.asyncio
    async def test_work_stress(self, make_service):
        result = await make_service().perform_safety_check("I'm a bit stressed about work", "u1")

        assert result.risk_level == RiskLevel.LOW
        assert result.requires_intervention is False
        assert result.is_safe is True

    @pytest.mark.asyncio
    async def test_medical_advice_request(self, make_service, store):
        result = await make_service().perform_safety_check("Can you prescribe me something for anxiety?", "u1")

        assert result.is_safe is False
        assert result.risk_level == RiskLevel.MEDIUM
        assert result.crisis_detected is False
        assert result.requires_intervention is True
        assert [f.type for f in result.moderation_flags] == [FlagType.MEDICAL_ADVICE]
        assert "Encourage seeking professional medical advice" in result.recommendations
        assert store.crisis_logs[0].risk_level == RiskLevel.MEDIUM

    @pytest.mark.asyncio
    async def test_clean_message(self, make_service, store):
        result = await make_service().perform_safety_check("Good morning! How are you?", "u1")

        assert result.is_safe is True
        assert result.moderation_flags == []
        assert store.crisis_logs == []
        assert len(store.safety_logs) == 1


# --- AI classifier integration ---


class TestAIClassifierStage:
    """AI flags extend the pattern flags; AI failures change nothing."""

    @pytest.mark.asyncio
    async def test_ai_flag_raises_risk(self, make_service, fake_classifier):
        service = make_service(classifier=fake_classifier(reply=VIOLENCE_REPLY))
        result = await service.perform_safety_check("See you at the park later", "u1")

        assert result.risk_level == RiskLevel.CRITICAL
        assert result.crisis_detected is False
        assert result.crisis_resources is None
        assert result.moderation_flags[-1].reason == "Threat"

    @pytest.mark.asyncio
    async def test_deeply_nested_reply_still_yields_verdict(self, make_service, store, fake_classifier):
        reply = '{"flags": ' + "[" * 200000 + "]" * 200000 + "}"
        service = make_service(classifier=fake_classifier(reply=reply))

        result = await service.perform_safety_check("I want to kill myself", "u1")

        assert result.risk_level == RiskLevel.CRITICAL
        assert result.crisis_detected is True
        assert [f.type for f in result.moderation_flags] == [FlagType.SELF_HARM, FlagType.VIOLENCE]
        assert len(store.safety_logs) == 1

    @pytest.mark.asyncio
    async def test_flags_are_concatenated_not_deduplicated(self, make_service, fake_classifier):
        service = make_service(classifier=fake_classifier(reply=VIOLENCE_REPLY))
        result = await service.perform_safety_check("I will attack", "u1")

        violence = [f for f in result.moderation_flags if f.type == FlagType.VIOLENCE]
        assert len(violence) == 2

    @pytest.mark.asyncio
    async def test_classifier_receives_prior_context(self, make_service, fake_classifier):
        client = fake_classifier()
        await make_service(classifier=client).perform_safety_check("I want to kill myself", "u1")

        assert "Crisis already detected: Yes" in client.prompts[0]
        assert "Existing moderation flags: 2" in client.prompts[0]

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "client_kwargs",
        [
            {"error": RuntimeError("provider down")},
            {"reply": "not json at all"},
            {"delay": 1.0},
        ],
    )
    async def test_ai_failure_matches_no_classifier(self, make_service, fake_classifier, test_settings, client_kwargs):
        message = "Can you prescribe me something for anxiety?"
        fast = test_settings.model_copy(update={"safety_classifier_timeout_seconds": 0.05})

        baseline = await make_service(settings_override=fast).perform_safety_check(message, "u1")
        degraded = await make_service(
            classifier=fake_classifier(**client_kwargs),
            settings_override=fast,
        ).perform_safety_check(message, "u1")

        assert degraded == baseline


# --- Persistence ---


class TestPersistence:
    """Exactly one safety log per check; audit failures never surface."""

    @pytest.mark.asyncio
    async def test_store_failure_still_returns_verdict(self, make_service, failing_store):
        result = await make_service(store_override=failing_store).perform_safety_check(
            "I want to kill myself", "u1"
        )
        assert result.risk_level == RiskLevel.CRITICAL
        assert result.crisis_detected is True

    @pytest.mark.asyncio
    async def test_one_safety_log_when_crisis_log_and_classifier_fail(
        self, make_service, fake_classifier, crisis_log_failing_store
    ):
        store = crisis_log_failing_store
        service = make_service(
            classifier=fake_classifier(error=RuntimeError("provider down")),
            store_override=store,
        )

        result = await service.perform_safety_check("I want to kill myself", "u1", "c1")

        assert result.risk_level == RiskLevel.CRITICAL
        assert store.crisis_logs == []
        assert len(store.safety_logs) == 1
        assert store.safety_logs[0].crisis_detected is True

    @pytest.mark.asyncio
    async def test_one_safety_log_when_classifier_times_out(self, make_service, store, fake_classifier, test_settings):
        fast = test_settings.model_copy(update={"safety_classifier_timeout_seconds": 0.05})
        service = make_service(classifier=fake_classifier(delay=1.0), settings_override=fast)

        await service.perform_safety_check("Can you prescribe me something for anxiety?", "u1")

        assert len(store.safety_logs) == 1

    @pytest.mark.asyncio
    async def test_preview_truncated(self, make_service, store, test_settings):
        short = test_settings.model_copy(update={"message_preview_length": 10})
        message = "hello there friend, how has your week been"

        await make_service(settings_override=short).perform_safety_check(message, "u1", "c1", "m1")

        record = store.safety_logs[0]
        assert record.message_preview == message[:10]
        assert record.chat_id == "c1"
        assert record.message_id == "m1"

    @pytest.mark.asyncio
    async def test_profanity_from_settings(self, make_service, store, test_settings):
        custom = test_settings.model_copy(update={"profanity_words": ["darn"]})
        result = await make_service(settings_override=custom).perform_safety_check("oh darn", "u1")

        assert [f.type for f in result.moderation_flags] == [FlagType.PROFANITY]
        assert result.risk_level == RiskLevel.LOW
        assert result.is_safe is True


# --- Escalation and crisis replies ---


class TestEscalation:
    """Which verdicts bypass the companion reply, and what is sent instead."""

    def test_should_escalate_on_crisis(self):
        result = SafetyCheckResult(is_safe=False, risk_level=RiskLevel.HIGH, crisis_detected=True)
        assert should_escalate(result) is True

    def test_should_escalate_on_critical_risk(self):
        result = SafetyCheckResult(is_safe=False, risk_level=RiskLevel.CRITICAL)
        assert should_escalate(result) is True

    def test_no_escalation_on_high_flags_alone(self):
        result = SafetyCheckResult(is_safe=False, risk_level=RiskLevel.HIGH, requires_intervention=True)
        assert should_escalate(result) is False

    @pytest.mark.asyncio
    async def test_crisis_response_for_flag_only_escalation(self, make_service):
        service = make_service()
        result = await service.perform_safety_check("I will murder him", "u1")

        assert result.crisis_detected is False
        assert result.risk_level == RiskLevel.CRITICAL
        assert should_escalate(result) is True

        text = service.crisis_response(result)
        assert "Your safety is the most important thing right now." in text
        assert "• 999 (Emergency Services)" in text

    @pytest.mark.asyncio
    async def test_crisis_response_uses_verdict_resources(self, make_service):
        service = make_service()
        result = await service.perform_safety_check("I feel hopeless", "u1")

        text = service.crisis_response(result)
        assert "incredibly difficult time" in text
        assert "• 85258 (Shout - Text Support)" in text


# --- Guidelines ---


class TestSafetyGuidelines:
    """Standing guidelines appended to companion system prompts."""

    def test_appended(self):
        prompt = add_safety_guidelines_to_prompt("You are Sunny.")
        assert prompt.startswith("You are Sunny.")
        assert prompt.endswith(SAFETY_GUIDELINES)
        assert "NEVER provide medical diagnoses" in prompt

    def test_idempotent_content(self):
        assert add_safety_guidelines_to_prompt("x") == add_safety_guidelines_to_prompt("x")
