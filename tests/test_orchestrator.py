"""Tests for ExchangeOrchestrator."""

import asyncio
import json
from datetime import date

import httpx
import pytest

from chinese_tutor.assessment.proficiency import GRAMMAR_ACCURACY
from chinese_tutor.conversation.orchestrator import ExchangeOrchestrator
from chinese_tutor.models.exchange import Exchange
from chinese_tutor.models.proficiency import ProficiencyTier
from chinese_tutor.storage.backends import MemoryBackend
from chinese_tutor.storage.quota_store import MESSAGES_KEY, QuotaSafeStore
from chinese_tutor.storage.snapshot import SnapshotRepository
from chinese_tutor.transport.retry import ResilientTransport

URL = "http://tutor.test/api/chat"
RICH_MESSAGE = (
    "我今天很高兴，我们一起去饭馆吃饭吧。 I really want to try the dumplings "
    "with my good friends tonight"
)
REPLY = "太好了! 饭馆 (fàn guǎn) - restaurant. What food do you like?"


async def _no_sleep(delay: float) -> None:
    return None


class FakeEndpoint:
    """Completion endpoint answering with scripted (status, body) pairs."""

    def __init__(self, *responses):
        self.responses = list(responses) or [(200, {"response": REPLY})]
        self.requests: list[dict] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(json.loads(request.content))
        index = min(len(self.requests) - 1, len(self.responses) - 1)
        status, body = self.responses[index]
        return httpx.Response(status, json=body)


@pytest.fixture
def backend():
    return MemoryBackend()


@pytest.fixture
def repository(backend):
    return SnapshotRepository(QuotaSafeStore(backend))


def _orchestrator(handler, repository, **kwargs) -> ExchangeOrchestrator:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    transport = ResilientTransport(client, sleep=_no_sleep)
    kwargs.setdefault("debounce_seconds", 10.0)
    kwargs.setdefault("today", lambda: date(2026, 10, 18))
    return ExchangeOrchestrator(transport, URL, repository, **kwargs)


class TestSuccessfulExchange:
    async def test_reply_and_state_updates(self, repository):
        endpoint = FakeEndpoint()
        orchestrator = _orchestrator(endpoint, repository)

        outcome = await orchestrator.send("I want to eat at a restaurant 饭馆")

        assert outcome.ok is True
        assert outcome.message == REPLY
        assert outcome.exchange.ai_text == REPLY
        assert len(orchestrator.history) == 1
        assert "饭馆" in orchestrator.vocabulary
        assert "restaurant" in outcome.topics
        assert orchestrator.streak.count == 1
        assert endpoint.requests[0]["message"] == "I want to eat at a restaurant 饭馆"
        assert endpoint.requests[0]["history"] == []

    async def test_history_sent_is_truncated(self, repository):
        endpoint = FakeEndpoint()
        orchestrator = _orchestrator(endpoint, repository)
        orchestrator.history = [Exchange(user_text=f"q{i}", ai_text=f"a{i}") for i in range(25)]

        await orchestrator.send("你好")

        sent = endpoint.requests[0]["history"]
        assert len(sent) == 20
        assert sent[0]["user_text"] == "q5"

    async def test_local_history_capped(self, repository):
        orchestrator = _orchestrator(FakeEndpoint(), repository, max_messages_stored=3)
        for i in range(5):
            await orchestrator.send(f"message {i}")
        assert [e.user_text for e in orchestrator.history] == ["message 2", "message 3", "message 4"]

    async def test_profile_after_three_exchanges(self, repository):
        orchestrator = _orchestrator(FakeEndpoint(), repository)
        outcomes = [await orchestrator.send(RICH_MESSAGE) for _ in range(3)]

        assert outcomes[0].profile is None
        assert outcomes[1].profile is None
        profile = outcomes[2].profile
        assert profile.tier == ProficiencyTier.ADVANCED
        assert profile.standardized_level == 5
        assert profile.confidence == 0.9
        assert outcomes[2].recommendations == []

    async def test_recommendations_follow_weaknesses(self, repository):
        correction = (200, {"response": "Close! The correct way is 我是学生."})
        orchestrator = _orchestrator(FakeEndpoint(correction), repository)
        for _ in range(4):
            outcome = await orchestrator.send("我学生")
        assert GRAMMAR_ACCURACY in outcome.profile.weaknesses
        assert outcome.recommendations[-1].id == "grammar-accuracy-drill"


class TestFailures:
    async def test_validation_error_skips_network(self, repository):
        endpoint = FakeEndpoint()
        orchestrator = _orchestrator(endpoint, repository)
        outcome = await orchestrator.send("   ")
        assert outcome.ok is False
        assert outcome.error == "ValidationError"
        assert endpoint.requests == []
        assert orchestrator.busy is False

    async def test_rate_limited_not_retried(self, repository):
        endpoint = FakeEndpoint((429, {"error": "Too many requests"}))
        orchestrator = _orchestrator(endpoint, repository)
        outcome = await orchestrator.send("你好")
        assert outcome.ok is False
        assert outcome.error == "RateLimitError"
        assert len(endpoint.requests) == 1
        assert orchestrator.history == []

    async def test_transient_failure_exhausted(self, repository):
        endpoint = FakeEndpoint((503, {"error": "unavailable"}))
        orchestrator = _orchestrator(endpoint, repository)
        outcome = await orchestrator.send("你好")
        assert outcome.error == "TransientNetworkError"
        assert "temporarily unavailable" in outcome.message
        assert len(endpoint.requests) == 4

    async def test_transient_then_success(self, repository):
        endpoint = FakeEndpoint((503, {}), (200, {"response": REPLY}))
        orchestrator = _orchestrator(endpoint, repository)
        outcome = await orchestrator.send("你好")
        assert outcome.ok is True
        assert len(endpoint.requests) == 2

    async def test_server_error_without_retries(self, repository):
        endpoint = FakeEndpoint((500, {"error": "Failed to get response from tutor service"}))
        orchestrator = _orchestrator(endpoint, repository)
        orchestrator.retry_options = orchestrator.retry_options.model_copy(
            update={"max_retries": 0}
        )
        outcome = await orchestrator.send("你好")
        assert outcome.ok is False
        assert outcome.error == "TransientNetworkError"

    async def test_bad_request_is_upstream_error(self, repository):
        endpoint = FakeEndpoint((400, {"error": "Message cannot be empty"}))
        orchestrator = _orchestrator(endpoint, repository)
        outcome = await orchestrator.send("你好")
        assert outcome.error == "UpstreamServiceError"
        assert len(endpoint.requests) == 1

    async def test_malformed_reply(self, repository):
        endpoint = FakeEndpoint((200, {"unexpected": True}))
        orchestrator = _orchestrator(endpoint, repository)
        outcome = await orchestrator.send("你好")
        assert outcome.error == "UpstreamServiceError"
        assert orchestrator.history == []


class TestBusyFlag:
    async def test_second_send_while_busy_is_noop(self, repository):
        release = asyncio.Event()
        calls = []

        async def slow_handler(request):
            calls.append(request)
            await release.wait()
            return httpx.Response(200, json={"response": REPLY})

        orchestrator = _orchestrator(slow_handler, repository)
        first = asyncio.create_task(orchestrator.send("你好"))
        await asyncio.sleep(0.01)
        assert orchestrator.busy is True

        assert await orchestrator.send("再见") is None

        release.set()
        outcome = await first
        assert outcome.ok is True
        assert len(calls) == 1
        assert orchestrator.busy is False


class TestPersistence:
    async def test_writes_are_debounced(self, repository, backend):
        orchestrator = _orchestrator(FakeEndpoint(), repository, debounce_seconds=0.05)
        await orchestrator.send("你好")
        await orchestrator.send("谢谢")
        assert backend.get(MESSAGES_KEY) is None

        await asyncio.sleep(0.15)
        assert len(repository.load_history()) == 2

    async def test_flush_and_load(self, repository):
        orchestrator = _orchestrator(FakeEndpoint(), repository)
        for _ in range(3):
            await orchestrator.send(RICH_MESSAGE)
        orchestrator.flush()

        restored = _orchestrator(FakeEndpoint(), repository)
        restored.load()
        assert len(restored.history) == 3
        assert "饭馆" in restored.vocabulary
        assert restored.profile.tier == ProficiencyTier.ADVANCED
        assert restored.assessor.counters.success_count == 3
        assert restored.streak.count == 1
        assert "food" in restored.topics.topics

    async def test_reset_keeps_vocabulary_and_streak(self, repository):
        orchestrator = _orchestrator(FakeEndpoint(), repository)
        await orchestrator.send("你好")
        orchestrator.flush()

        orchestrator.reset()

        assert orchestrator.history == []
        assert repository.load_history() == []
        assert "饭馆" in repository.load_vocabulary()
        assert repository.load_streak()[0] == 1
        assert len(orchestrator.vocabulary) > 0


def test_from_settings(tmp_path):
    from chinese_tutor.config import Settings

    settings = Settings(openai_api_key="k", project_root=tmp_path, retry_max_attempts=1)
    client = httpx.AsyncClient(transport=httpx.MockTransport(FakeEndpoint()))
    orchestrator = ExchangeOrchestrator.from_settings(settings, client, URL)
    assert orchestrator.retry_options.max_retries == 1
    assert 429 not in orchestrator.retry_options.retryable_statuses
    assert orchestrator.max_messages_stored == settings.max_messages_stored
