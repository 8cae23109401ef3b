"""Data types shared by the safety pipeline.

Flags are ephemeral: they live for a single safety check and only the
aggregate verdict is written to the audit tables.
"""

from enum import Enum

from pydantic import BaseModel, Field


class FlagType(str, Enum):
    """Moderation flag categories."""

    HARMFUL = "harmful"
    INAPPROPRIATE = "inappropriate"
    SPAM = "spam"
    VIOLENCE = "violence"
    SELF_HARM = "self-harm"
    MEDICAL_ADVICE = "medical-advice"
    PROFANITY = "profanity"
    HARASSMENT = "harassment"


class Severity(str, Enum):
    """Severity of a single moderation flag."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class RiskLevel(str, Enum):
    """Ordinal risk level: low < medium < high < critical."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        return _RISK_RANK[self]


_RISK_RANK = {
    RiskLevel.LOW: 0,
    RiskLevel.MEDIUM: 1,
    RiskLevel.HIGH: 2,
    RiskLevel.CRITICAL: 3,
}


class Sentiment(str, Enum):
    """Heuristic sentiment label."""

    POSITIVE = "positive"
    NEGATIVE = "negative"
    NEUTRAL = "neutral"


class ModerationFlag(BaseModel):
    """A single classification emitted by the pattern matcher or the AI classifier."""

    type: FlagType
    severity: Severity
    confidence: float = Field(ge=0.0, le=1.0)
    reason: str


class CrisisDetectionResult(BaseModel):
    """Output of the crisis keyword classifier for one message."""

    risk_level: RiskLevel = RiskLevel.LOW
    keywords: list[str] = Field(default_factory=list)
    sentiment: Sentiment = Sentiment.NEUTRAL
    resources: list[str] = Field(default_factory=list)
    should_escalate: bool = False


class AIClassification(BaseModel):
    """Flags contributed by the AI risk classifier. Empty means no opinion."""

    flags: list[ModerationFlag] = Field(default_factory=list)
    risk_assessment: str = ""


class SafetyCheckResult(BaseModel):
    """Final verdict handed to the conversation layer."""

    is_safe: bool
    risk_level: RiskLevel
    moderation_flags: list[ModerationFlag] = Field(default_factory=list)
    crisis_detected: bool = False
    crisis_resources: list[str] | None = None
    requires_intervention: bool = False
    recommendations: list[str] = Field(default_factory=list)


class CrisisStats(BaseModel):
    """Crisis log counters for the monitoring dashboard."""

    total_crises: int = 0
    critical_crises: int = 0
    resolved_crises: int = 0
    recent_crises: list[dict] = Field(default_factory=list)
    chat_crises: int | None = None  # set when stats are requested for one chat


class SafetyMetrics(BaseModel):
    """Safety log aggregates for the monitoring dashboard."""

    total_checks: int = 0
    flagged_messages: int = 0
    crisis_detections: int = 0
    interventions: int = 0
    average_risk_level: float = 0.0
