"""Recency-ordered tracking of conversation topics."""

from collections.abc import Callable

import structlog

logger = structlog.get_logger()

MAX_TOPICS = 5

# English and Chinese keywords recognised as topics
TOPIC_KEYWORDS: tuple[str, ...] = (
    "food", "restaurant", "shopping", "travel", "family", "work", "weather",
    "school", "hobbies", "health", "time", "greetings", "numbers",
    "食物", "吃", "餐厅", "买", "商店", "旅行", "家人", "工作", "天气",
    "学校", "爱好", "医生", "时间", "你好", "数字",
)


class TopicTracker:
    """Keeps the five most recently mentioned topics, newest first.

    Args:
        topics: Previously persisted topics.
        persist: Called with the new topic list after every change.
        keywords: Keywords recognised as topics.
    """

    def __init__(
        self,
        topics: list[str] | None = None,
        persist: Callable[[list[str]], None] | None = None,
        keywords: tuple[str, ...] = TOPIC_KEYWORDS,
    ):
        self._topics = list(topics or [])[:MAX_TOPICS]
        self._persist = persist
        self.keywords = keywords

    @property
    def topics(self) -> list[str]:
        return list(self._topics)

    def clear(self) -> None:
        self._topics = []

    def observe(self, text: str) -> list[str]:
        """Prepend keywords found in ``text``; unchanged when none match."""
        if not isinstance(text, str) or not text:
            return self.topics

        lowered = text.lower()
        matched = [kw for kw in self.keywords if kw in lowered]
        if not matched:
            return self.topics

        merged: list[str] = []
        for topic in matched + self._topics:
            if topic not in merged:
                merged.append(topic)
        self._topics = merged[:MAX_TOPICS]
        logger.debug("topics_updated", matched=matched, topics=self._topics)

        if self._persist is not None:
            self._persist(self.topics)
        return self.topics
