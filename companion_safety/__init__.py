"""Companion Safety Engine.

Crisis detection, content moderation and risk aggregation for AI companion
chats. See companion_safety.guardrails.safety.SafetyService for the entry point.
"""

__version__ = "0.1.0"
