"""Upstream AI completion service."""

import structlog
from openai import AsyncOpenAI

from chinese_tutor.errors import UpstreamServiceError
from chinese_tutor.models.exchange import Exchange
from chinese_tutor.storage.quota_store import MAX_HISTORY_MESSAGES, truncate

logger = structlog.get_logger()

TUTOR_SYSTEM_PROMPT = """\
You are a warm, encouraging Chinese language tutor. Teach Chinese through \
natural conversation in English, introducing Chinese characters with pinyin.

Format Chinese as: characters (pinyin) - English meaning, e.g. 你好 (nǐ hǎo) - hello.
Acknowledge what the learner said, show how to say it in Chinese, introduce at \
most 2-3 new words, give gentle corrections, and end with one simple question.
"""


def build_messages(message: str, history: list[Exchange]) -> list[dict[str, str]]:
    """Chat messages for the upstream call: system prompt, history, new message."""
    messages = [{"role": "system", "content": TUTOR_SYSTEM_PROMPT}]
    for exchange in history:
        messages.append({"role": "user", "content": exchange.user_text})
        messages.append({"role": "assistant", "content": exchange.ai_text})
    messages.append({"role": "user", "content": message})
    return messages


class CompletionClient:
    """Sends a learner message plus recent history to the AI service.

    Args:
        api_key: OpenAI API key.
        model: Chat completion model.
        max_tokens: Reply token limit.
        max_history: Number of most recent exchanges forwarded upstream.
    """

    def __init__(
        self,
        api_key: str,
        model: str = "gpt-4o-mini",
        max_tokens: int = 1000,
        max_history: int = MAX_HISTORY_MESSAGES,
    ):
        self.client = AsyncOpenAI(api_key=api_key)
        self.model = model
        self.max_tokens = max_tokens
        self.max_history = max_history

    async def complete(self, message: str, history: list[Exchange]) -> str:
        """Return the tutor's reply text.

        Raises:
            UpstreamServiceError: The service failed or returned no text.
        """
        recent = truncate(history, self.max_history)
        try:
            response = await self.client.chat.completions.create(
                model=self.model,
                messages=build_messages(message, recent),
                max_tokens=self.max_tokens,
            )
        except Exception as e:
            logger.exception("completion_failed", model=self.model)
            raise UpstreamServiceError(str(e), status_code=500) from e

        content = response.choices[0].message.content if response.choices else None
        if not content:
            raise UpstreamServiceError("empty completion", status_code=500)
        logger.info("completion_received", history=len(recent), chars=len(content))
        return content
