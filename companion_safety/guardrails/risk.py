"""Risk aggregation over crisis tiers and moderation flags.

Precedence, first match wins:

1. crisis critical -> critical
2. crisis high -> high
3. high-severity violence or self-harm flag -> critical
4. any high-severity flag -> high
5. any medium-severity flag -> medium
6. crisis medium -> medium
7. otherwise low
"""

from companion_safety.guardrails.models import (
    CrisisDetectionResult,
    FlagType,
    ModerationFlag,
    RiskLevel,
    Severity,
)

CRITICAL_FLAG_TYPES = (FlagType.VIOLENCE, FlagType.SELF_HARM)


def determine_risk_level_from_flags(
    crisis_risk_level: RiskLevel,
    moderation_flags: list[ModerationFlag],
) -> RiskLevel:
    """Merge the crisis tier and the moderation flags into one risk level."""
    if crisis_risk_level == RiskLevel.CRITICAL:
        return RiskLevel.CRITICAL
    if crisis_risk_level == RiskLevel.HIGH:
        return RiskLevel.HIGH

    if any(f.severity == Severity.HIGH and f.type in CRITICAL_FLAG_TYPES for f in moderation_flags):
        return RiskLevel.CRITICAL

    if any(f.severity == Severity.HIGH for f in moderation_flags):
        return RiskLevel.HIGH

    if any(f.severity == Severity.MEDIUM for f in moderation_flags):
        return RiskLevel.MEDIUM

    if crisis_risk_level == RiskLevel.MEDIUM:
        return RiskLevel.MEDIUM

    return RiskLevel.LOW


def requires_intervention(risk_level: RiskLevel, moderation_flags: list[ModerationFlag]) -> bool:
    """Whether the message needs intervention.

    Checked independently of the precedence table even though any medium or
    high flag already lifts the risk level to medium or above.
    """
    if risk_level in (RiskLevel.CRITICAL, RiskLevel.HIGH):
        return True

    return any(f.severity in (Severity.HIGH, Severity.MEDIUM) for f in moderation_flags)


def generate_safety_recommendations(
    risk_level: RiskLevel,
    moderation_flags: list[ModerationFlag],
    crisis_result: CrisisDetectionResult,
) -> list[str]:
    """Advisory notes for the caller. Informational only, nothing is enforced."""
    recommendations: list[str] = []

    if risk_level == RiskLevel.CRITICAL or crisis_result.should_escalate:
        recommendations.append("Immediate crisis resources provided")
        recommendations.append("Consider reaching out to emergency services if immediate danger")

    if any(f.type == FlagType.MEDICAL_ADVICE for f in moderation_flags):
        recommendations.append("Encourage seeking professional medical advice")
        recommendations.append("Remind user AI companions are not medical professionals")

    if any(f.type in (FlagType.VIOLENCE, FlagType.HARASSMENT) for f in moderation_flags):
        recommendations.append("Monitor conversation for escalation")
        recommendations.append("Consider additional support resources")

    if risk_level in (RiskLevel.HIGH, RiskLevel.MEDIUM):
        recommendations.append("Continue monitoring conversation")
        recommendations.append("Provide supportive resources")

    return recommendations
