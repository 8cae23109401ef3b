"""Crisis keyword detection and crisis response templates.

Keywords are grouped into four severity tiers. The first tier (in order
critical, high, medium) with a match decides the risk level; low-tier
keywords are recorded but never raise the level above low.

Sentiment is a separate word-count heuristic and is deliberately not
reconciled with the keyword tiers: a critical message can still come out
"positive".
"""

import structlog

from companion_safety.database.safety_logs import CrisisLogRecord, SafetyLogStore
from companion_safety.guardrails.models import CrisisDetectionResult, RiskLevel, Sentiment
from companion_safety.guardrails.resources import CrisisResources

logger = structlog.get_logger()

CRISIS_KEYWORDS: dict[RiskLevel, list[str]] = {
    RiskLevel.CRITICAL: [
        "suicide", "kill myself", "end it all", "not worth living", "better off dead",
        "want to die", "end my life", "suicidal", "jump off", "overdose", "hang myself",
    ],
    RiskLevel.HIGH: [
        "self harm", "cut myself", "hurt myself", "self injury", "burn myself",
        "hit myself", "punish myself", "deserve pain", "worthless", "hopeless",
    ],
    RiskLevel.MEDIUM: [
        "depressed", "anxiety", "panic", "overwhelmed", "can't cope", "breaking down",
        "losing control", "scared", "terrified", "alone", "isolated", "no one cares",
    ],
    RiskLevel.LOW: [
        "sad", "down", "stressed", "worried", "concerned", "struggling", "difficult",
        "hard time", "challenging", "tough", "rough day",
    ],
}

POSITIVE_WORDS = ["good", "great", "happy", "better", "improving", "hopeful", "positive"]
NEGATIVE_WORDS = ["bad", "terrible", "awful", "horrible", "worst", "hopeless", "despair"]

# Matched against the detected keywords, not the raw message.
GRIEF_TRIGGERS = {"grief", "loss", "death", "died"}
ABUSE_TRIGGERS = {"abuse", "violence", "hurt", "hit"}
ADDICTION_TRIGGERS = {"drink", "alcohol", "drug", "addiction"}

ESCALATION_LEVELS = (RiskLevel.HIGH, RiskLevel.CRITICAL)


def _match_tiers(message_lower: str) -> tuple[RiskLevel, list[str]]:
    """Return the decisive tier and the keywords matched within it."""
    for level in (RiskLevel.CRITICAL, RiskLevel.HIGH, RiskLevel.MEDIUM):
        matched = [k for k in CRISIS_KEYWORDS[level] if k in message_lower]
        if matched:
            return level, matched

    return RiskLevel.LOW, [k for k in CRISIS_KEYWORDS[RiskLevel.LOW] if k in message_lower]


def analyze_sentiment(message: str) -> Sentiment:
    """Classify sentiment by counting fixed positive and negative words."""
    message_lower = message.lower()
    positive = sum(1 for word in POSITIVE_WORDS if word in message_lower)
    negative = sum(1 for word in NEGATIVE_WORDS if word in message_lower)

    if negative > positive:
        return Sentiment.NEGATIVE
    if positive > negative:
        return Sentiment.POSITIVE
    return Sentiment.NEUTRAL


def get_crisis_resources(
    risk_level: RiskLevel,
    keywords: list[str],
    directory: CrisisResources,
) -> list[str]:
    """Select resources for a risk level and the matched keywords.

    Args:
        risk_level: Decisive crisis tier.
        keywords: Keywords matched in the message.
        directory: Resource directory (region already chosen).

    Returns:
        Ordered resource strings. Duplicates across lists are kept.
    """
    resources: list[str] = []

    if risk_level in ESCALATION_LEVELS:
        resources.extend(directory.emergency_for_region())
        resources.extend(directory.text_support_for_region())

    matched = set(keywords)
    if matched & GRIEF_TRIGGERS:
        resources.extend(directory.specialized.grief)
    if matched & ABUSE_TRIGGERS:
        resources.extend(directory.specialized.abuse)
    if matched & ADDICTION_TRIGGERS:
        resources.extend(directory.specialized.addiction)

    return resources


def classify_crisis(message: str, directory: CrisisResources) -> CrisisDetectionResult:
    """Pure crisis classification, no persistence."""
    risk_level, keywords = _match_tiers(message.lower())
    return CrisisDetectionResult(
        risk_level=risk_level,
        keywords=keywords,
        sentiment=analyze_sentiment(message),
        resources=get_crisis_resources(risk_level, keywords, directory),
        should_escalate=risk_level in ESCALATION_LEVELS,
    )


async def detect_crisis(
    message: str,
    user_id: str,
    chat_id: str | None = None,
    message_id: str | None = None,
    *,
    store: SafetyLogStore,
    directory: CrisisResources,
) -> CrisisDetectionResult:
    """Classify a message and record a crisis log when any keyword fired.

    A failed crisis log write is logged and swallowed; the detection result
    is always returned.

    Args:
        message: Raw user message text.
        user_id: Owner of the message.
        chat_id: Chat the message belongs to, if any.
        message_id: Persisted message id, if any.
        store: Audit store receiving the crisis log row.
        directory: Resource directory.

    Returns:
        CrisisDetectionResult for the message.
    """
    result = classify_crisis(message, directory)

    if result.keywords:
        try:
            await store.save_crisis_log(
                CrisisLogRecord(
                    user_id=user_id,
                    chat_id=chat_id,
                    message_id=message_id,
                    risk_level=result.risk_level,
                    keywords=result.keywords,
                    sentiment=result.sentiment,
                    resources=result.resources,
                )
            )
            logger.warning(
                "crisis_detected",
                user_id=user_id,
                risk_level=result.risk_level.value,
                keywords=result.keywords,
                should_escalate=result.should_escalate,
            )
        except Exception as e:
            logger.error("crisis_log_save_failed", user_id=user_id, error=str(e))

    return result


def _bullets(resources: list[str]) -> str:
    return "\n".join(f"• {resource}" for resource in resources)


def generate_crisis_response(result: CrisisDetectionResult) -> str:
    """Render the severity-tiered crisis reply.

    Deterministic and model-free: this is the reply sent when the normal
    companion generation is bypassed.
    """
    if result.risk_level == RiskLevel.CRITICAL:
        return (
            "I'm deeply concerned about what you're sharing. "
            "Your safety is the most important thing right now.\n\n"
            "**Please reach out for immediate support:**\n"
            f"{_bullets(result.resources)}\n\n"
            "You don't have to face this alone. There are people who care and want to help you "
            "through this difficult time. Please consider reaching out to one of these resources right now.\n\n"
            "I'm here to listen and support you, but your safety comes first."
        )

    if result.risk_level == RiskLevel.HIGH:
        return (
            "I can hear that you're going through an incredibly difficult time. "
            "Your wellbeing matters, and you deserve support.\n\n"
            "**Here are some resources that can help:**\n"
            f"{_bullets(result.resources)}\n\n"
            "It's okay to reach out for help. These services are there specifically to support people "
            "in situations like yours. You don't have to carry this burden alone.\n\n"
            "I'm here to listen and support you through this."
        )

    if result.risk_level == RiskLevel.MEDIUM:
        return (
            "I can sense that you're struggling right now. It takes courage to share these feelings, "
            "and I want you to know that support is available.\n\n"
            "**If you need someone to talk to:**\n"
            f"{_bullets(result.resources[:2])}\n\n"
            "Remember, it's okay to not be okay. These feelings are valid, and reaching out for support "
            "is a sign of strength, not weakness.\n\n"
            "I'm here to listen and support you."
        )

    return (
        "I hear that you're going through a tough time. It's completely normal to feel this way, "
        "and you're not alone in this.\n\n"
        "**If you need additional support:**\n"
        "• Samaritans: 116 123 (24/7, free)\n"
        "• Shout: Text 85258 (24/7, free)\n\n"
        "I'm here to listen and support you through this."
    )
