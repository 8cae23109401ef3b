"""Shared test fixtures."""

import asyncio

import pytest

from companion_safety.config import Settings
from companion_safety.guardrails.models import CrisisStats, SafetyMetrics
from companion_safety.guardrails.resources import CrisisResources
from companion_safety.guardrails.safety import SafetyService


class FakeSafetyLogStore:
    """In-memory stand-in for SafetyLogStore.

    fail=True makes every call raise; fail_crisis_log=True fails only the
    crisis log write.
    """

    def __init__(self, fail: bool = False, fail_crisis_log: bool = False):
        self.fail = fail
        self.fail_crisis_log = fail_crisis_log
        self.crisis_logs = []
        self.safety_logs = []

    def _check(self):
        if self.fail:
            raise RuntimeError("database unavailable")

    async def save_crisis_log(self, record):
        self._check()
        if self.fail_crisis_log:
            raise RuntimeError("crisis_logs insert failed")
        self.crisis_logs.append(record)

    async def save_safety_log(self, record):
        self._check()
        self.safety_logs.append(record)

    async def get_crisis_stats(self, recent_limit=10):
        self._check()
        return CrisisStats(total_crises=len(self.crisis_logs))

    async def get_safety_metrics(self, start=None, end=None):
        self._check()
        return SafetyMetrics(total_checks=len(self.safety_logs))

    async def get_recent_safety_incidents(self, limit=20):
        self._check()
        return [r.model_dump(mode="json") for r in self.safety_logs if r.requires_intervention][:limit]

    async def count_crisis_logs_for_chat(self, chat_id):
        self._check()
        return sum(1 for r in self.crisis_logs if r.chat_id == chat_id)


class FakeClassifier:
    """Safety model stand-in returning a canned reply, raising, or hanging."""

    def __init__(self, reply: str = '{"isSafe": true, "flags": []}', error: Exception | None = None, delay: float = 0.0):
        self.reply = reply
        self.error = error
        self.delay = delay
        self.prompts = []

    async def generate(self, prompt: str) -> str:
        self.prompts.append(prompt)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error:
            raise self.error
        return self.reply


@pytest.fixture
def test_settings():
    """Settings isolated from the environment's API keys and profanity list."""
    return Settings(
        openai_api_key="",
        anthropic_api_key="",
        google_api_key="",
        profanity_words=[],
        message_preview_length=500,
        safety_classifier_timeout_seconds=5.0,
    )


@pytest.fixture
def resources():
    return CrisisResources()


@pytest.fixture
def store():
    return FakeSafetyLogStore()


@pytest.fixture
def failing_store():
    return FakeSafetyLogStore(fail=True)


@pytest.fixture
def crisis_log_failing_store():
    """Store whose crisis log write fails while safety log writes succeed."""
    return FakeSafetyLogStore(fail_crisis_log=True)


@pytest.fixture
def make_service(store, resources, test_settings):
    """Build a SafetyService; defaults to the in-memory store and no classifier."""

    def _make(classifier=None, store_override=None, settings_override=None):
        return SafetyService(
            store=store_override or store,
            classifier=classifier,
            resources=resources,
            settings=settings_override or test_settings,
        )

    return _make


@pytest.fixture
def fake_classifier():
    """Factory for FakeClassifier instances."""
    return FakeClassifier
