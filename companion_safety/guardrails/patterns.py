"""Keyword pattern matching for content moderation.

Each category keeps a small static table of (pattern, severity, confidence).
Matching is a case-insensitive substring test: no stemming, no fuzzy
matching, so every flag can be traced back to the literal pattern that
produced it.
"""

from dataclasses import dataclass

from companion_safety.guardrails.models import FlagType, ModerationFlag, Severity


@dataclass(frozen=True)
class PatternConfig:
    """A single moderation pattern."""

    pattern: str
    type: FlagType
    severity: Severity
    confidence: float
    reason: str | None = None


def match_patterns(message: str, patterns: list[PatternConfig]) -> list[ModerationFlag]:
    """Test a message against a pattern table.

    Args:
        message: Raw user message text.
        patterns: Pattern table to test against.

    Returns:
        One flag per matching pattern, in table order.
    """
    message_lower = message.lower()
    flags: list[ModerationFlag] = []

    for config in patterns:
        if config.pattern in message_lower:
            flags.append(
                ModerationFlag(
                    type=config.type,
                    severity=config.severity,
                    confidence=config.confidence,
                    reason=config.reason or f'Detected {config.type.value}: "{config.pattern}"',
                )
            )

    return flags


def _table(flag_type: FlagType, rows: list[tuple[str, Severity, float]]) -> list[PatternConfig]:
    return [PatternConfig(pattern, flag_type, severity, confidence) for pattern, severity, confidence in rows]


SELF_HARM_PATTERNS = _table(
    FlagType.SELF_HARM,
    [
        ("suicide", Severity.HIGH, 0.9),
        ("kill myself", Severity.HIGH, 0.9),
        ("end it all", Severity.HIGH, 0.9),
        ("end my life", Severity.HIGH, 0.9),
        ("commit suicide", Severity.HIGH, 0.9),
        ("self harm", Severity.HIGH, 0.85),
        ("cut myself", Severity.HIGH, 0.85),
        ("hurt myself", Severity.HIGH, 0.85),
        ("overdose", Severity.HIGH, 0.9),
        ("hang myself", Severity.HIGH, 0.9),
        ("jump off", Severity.HIGH, 0.85),
    ],
)

VIOLENCE_PATTERNS = _table(
    FlagType.VIOLENCE,
    [
        ("kill", Severity.HIGH, 0.8),
        ("murder", Severity.HIGH, 0.9),
        ("violence", Severity.HIGH, 0.8),
        ("attack", Severity.HIGH, 0.8),
        ("hurt", Severity.MEDIUM, 0.75),
        ("harm", Severity.MEDIUM, 0.75),
        ("fight", Severity.MEDIUM, 0.7),
        ("beat", Severity.HIGH, 0.8),
        ("strike", Severity.HIGH, 0.8),
        ("assault", Severity.HIGH, 0.85),
        ("threaten", Severity.HIGH, 0.8),
        ("terror", Severity.HIGH, 0.8),
        ("war", Severity.MEDIUM, 0.7),
    ],
)

INAPPROPRIATE_PATTERNS = _table(
    FlagType.INAPPROPRIATE,
    [
        ("explicit", Severity.MEDIUM, 0.7),
        ("pornographic", Severity.HIGH, 0.8),
        ("sexual", Severity.MEDIUM, 0.7),
        ("nude", Severity.MEDIUM, 0.7),
        ("naked", Severity.MEDIUM, 0.7),
        ("sexual content", Severity.HIGH, 0.8),
        ("adult content", Severity.MEDIUM, 0.7),
    ],
)

HARASSMENT_PATTERNS = _table(
    FlagType.HARASSMENT,
    [
        ("hate speech", Severity.HIGH, 0.8),
        ("discrimination", Severity.HIGH, 0.8),
        ("bully", Severity.HIGH, 0.8),
        ("harass", Severity.HIGH, 0.8),
        ("intimidate", Severity.HIGH, 0.8),
        ("threaten", Severity.HIGH, 0.8),
        ("stalk", Severity.HIGH, 0.85),
        ("cyberbully", Severity.HIGH, 0.8),
    ],
)

SPAM_PATTERNS = _table(
    FlagType.SPAM,
    [
        ("click here", Severity.LOW, 0.6),
        ("free money", Severity.LOW, 0.6),
        ("guaranteed", Severity.LOW, 0.6),
        ("act now", Severity.LOW, 0.6),
        ("limited time", Severity.LOW, 0.6),
        ("winner", Severity.LOW, 0.6),
        ("prize", Severity.LOW, 0.6),
        ("congratulations", Severity.LOW, 0.5),
    ],
)

MEDICAL_ADVICE_PATTERNS = _table(
    FlagType.MEDICAL_ADVICE,
    [
        ("diagnose", Severity.MEDIUM, 0.7),
        ("prescribe", Severity.MEDIUM, 0.7),
        ("prescription", Severity.MEDIUM, 0.7),
        ("medication", Severity.MEDIUM, 0.7),
        ("you should take", Severity.MEDIUM, 0.7),
        ("you need surgery", Severity.HIGH, 0.8),
        ("medical treatment", Severity.MEDIUM, 0.7),
        ("diagnosis", Severity.MEDIUM, 0.7),
    ],
)


def check_self_harm_patterns(message: str) -> list[ModerationFlag]:
    return match_patterns(message, SELF_HARM_PATTERNS)


def check_violence_patterns(message: str) -> list[ModerationFlag]:
    return match_patterns(message, VIOLENCE_PATTERNS)


def check_inappropriate_patterns(message: str) -> list[ModerationFlag]:
    return match_patterns(message, INAPPROPRIATE_PATTERNS)


def check_harassment_patterns(message: str) -> list[ModerationFlag]:
    return match_patterns(message, HARASSMENT_PATTERNS)


def check_spam_patterns(message: str) -> list[ModerationFlag]:
    return match_patterns(message, SPAM_PATTERNS)


def check_medical_advice_patterns(message: str) -> list[ModerationFlag]:
    return match_patterns(message, MEDICAL_ADVICE_PATTERNS)


def check_profanity(message: str, profanity_words: list[str]) -> list[ModerationFlag]:
    """Flag configured profanity. An empty word list disables the check."""
    if not profanity_words:
        return []

    message_lower = message.lower()
    return [
        ModerationFlag(
            type=FlagType.PROFANITY,
            severity=Severity.LOW,
            confidence=0.9,
            reason="Profanity detected",
        )
        for word in profanity_words
        if word.lower() in message_lower
    ]


def check_content_moderation(
    message: str,
    profanity_words: list[str] | None = None,
) -> list[ModerationFlag]:
    """Run every category table against a message.

    Args:
        message: Raw user message text.
        profanity_words: Optional profanity list; None or empty disables it.

    Returns:
        Flags from all categories concatenated in a fixed order.
    """
    return [
        *check_self_harm_patterns(message),
        *check_violence_patterns(message),
        *check_inappropriate_patterns(message),
        *check_harassment_patterns(message),
        *check_spam_patterns(message),
        *check_medical_advice_patterns(message),
        *check_profanity(message, profanity_words or []),
    ]
