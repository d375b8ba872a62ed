"""Tests for the upstream completion client."""

from types import SimpleNamespace
from unittest.mock import AsyncMock

import pytest

from chinese_tutor.completion.client import TUTOR_SYSTEM_PROMPT, CompletionClient, build_messages
from chinese_tutor.errors import UpstreamServiceError
from chinese_tutor.models.exchange import Exchange
from chinese_tutor.storage.quota_store import MAX_HISTORY_MESSAGES


def _completion(content):
    return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=content))])


def test_build_messages_order():
    history = [Exchange(user_text="hi", ai_text="你好")]
    messages = build_messages("thanks", history)
    assert messages[0] == {"role": "system", "content": TUTOR_SYSTEM_PROMPT}
    assert [m["role"] for m in messages[1:]] == ["user", "assistant", "user"]
    assert messages[-1]["content"] == "thanks"


class TestComplete:
    async def test_returns_text_and_truncates_history(self):
        client = CompletionClient(api_key="test-key", max_history=2)
        client.client = AsyncMock()
        client.client.chat.completions.create = AsyncMock(return_value=_completion("谢谢"))
        history = [Exchange(user_text=f"q{i}", ai_text=f"a{i}") for i in range(5)]

        reply = await client.complete("thanks", history)

        assert reply == "谢谢"
        sent = client.client.chat.completions.create.call_args.kwargs["messages"]
        assert len(sent) == 1 + 2 * 2 + 1
        assert sent[1]["content"] == "q3"

    async def test_service_failure(self):
        client = CompletionClient(api_key="test-key")
        client.client = AsyncMock()
        client.client.chat.completions.create = AsyncMock(side_effect=RuntimeError("down"))
        with pytest.raises(UpstreamServiceError):
            await client.complete("hello", [])

    async def test_empty_reply(self):
        client = CompletionClient(api_key="test-key")
        client.client = AsyncMock()
        client.client.chat.completions.create = AsyncMock(return_value=_completion(""))
        with pytest.raises(UpstreamServiceError):
            await client.complete("hello", [])


def test_history_limit_matches_client_side():
    from chinese_tutor.conversation.orchestrator import ExchangeOrchestrator
    from chinese_tutor.storage.backends import MemoryBackend
    from chinese_tutor.storage.quota_store import QuotaSafeStore
    from chinese_tutor.storage.snapshot import SnapshotRepository

    client = CompletionClient(api_key="test-key")
    assert client.max_history == MAX_HISTORY_MESSAGES
    orchestrator = ExchangeOrchestrator(
        transport=None,
        endpoint_url="",
        repository=SnapshotRepository(QuotaSafeStore(MemoryBackend())),
    )
    assert orchestrator.max_history_messages == MAX_HISTORY_MESSAGES
