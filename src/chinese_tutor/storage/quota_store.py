"""Quota-protected key/value persistence.

Writes are refused when the serialized value is larger than the quota. When
the backend itself runs out of space, the lowest-priority tracked key is
evicted and the write retried once. Nothing in this module raises to callers.
"""

import json
from collections.abc import Sequence
from typing import Any, TypeVar

import structlog
from pydantic_core import to_json

from chinese_tutor.errors import StorageQuotaError
from chinese_tutor.storage.backends import KeyValueBackend, MemoryBackend

logger = structlog.get_logger()

T = TypeVar("T")

DEFAULT_QUOTA_MB = 5.0
MAX_MESSAGES_STORED = 100
MAX_HISTORY_MESSAGES = 20

MESSAGES_KEY = "chinese-tutor-messages"
WORDS_KEY = "chinese-tutor-words"
LEVEL_KEY = "chinese-tutor-level"
COUNTERS_KEY = "chinese-tutor-counters"
STREAK_KEY = "chinese-tutor-streak"
LAST_PRACTICE_KEY = "chinese-tutor-last-practice"
TOPICS_KEY = "chinese-tutor-topics"

# Evicted first to last when the backend is full
EVICTION_PRIORITY: tuple[str, ...] = (MESSAGES_KEY, TOPICS_KEY, WORDS_KEY)


def truncate(sequence: Sequence[T], max_length: int = MAX_MESSAGES_STORED) -> list[T]:
    """Keep the last ``max_length`` elements, preserving order."""
    if max_length <= 0:
        return []
    if len(sequence) <= max_length:
        return list(sequence)
    return list(sequence[-max_length:])


class QuotaSafeStore:
    """JSON persistence over a ``KeyValueBackend`` with size-quota enforcement.

    Args:
        backend: Raw string storage. Defaults to an unbounded in-memory backend.
        quota_mb: Largest single serialized value accepted, in megabytes.
        eviction_priority: Keys to evict, in order, on a backend quota failure.
    """

    def __init__(
        self,
        backend: KeyValueBackend | None = None,
        quota_mb: float = DEFAULT_QUOTA_MB,
        eviction_priority: Sequence[str] = EVICTION_PRIORITY,
    ):
        self.backend = backend if backend is not None else MemoryBackend()
        self.quota_mb = quota_mb
        self.eviction_priority = tuple(eviction_priority)

    @property
    def quota_bytes(self) -> int:
        return int(self.quota_mb * 1024 * 1024)

    def set_safe(self, key: str, value: Any) -> bool:
        """Serialize and store ``value``. Returns False instead of raising."""
        try:
            serialized = to_json(value).decode("utf-8")
        except Exception:
            logger.exception("storage_serialize_failed", key=key)
            return False

        size = len(serialized.encode("utf-8"))
        if size > self.quota_bytes:
            logger.warning(
                "storage_item_too_large",
                key=key,
                size_mb=round(size / (1024 * 1024), 2),
                quota_mb=self.quota_mb,
            )
            return False

        try:
            self.backend.set(key, serialized)
            return True
        except StorageQuotaError:
            logger.error("storage_quota_exceeded", key=key)
        except Exception:
            logger.exception("storage_write_failed", key=key)
            return False

        self.evict_oldest()
        try:
            self.backend.set(key, serialized)
            return True
        except Exception as e:
            logger.error("storage_write_failed_after_eviction", key=key, error=str(e))
            return False

    def get_safe(self, key: str, default: T | None = None) -> Any:
        """Read and deserialize ``key``; ``default`` on a missing key or bad data."""
        try:
            raw = self.backend.get(key)
        except Exception as e:
            logger.error("storage_read_failed", key=key, error=str(e))
            return default
        if raw is None:
            return default
        try:
            return json.loads(raw)
        except ValueError as e:
            logger.error("storage_parse_failed", key=key, error=str(e))
            return default

    def remove(self, key: str) -> None:
        try:
            self.backend.delete(key)
        except Exception as e:
            logger.error("storage_remove_failed", key=key, error=str(e))

    def evict_oldest(self) -> str | None:
        """Remove the first present key in the eviction priority list."""
        try:
            present = set(self.backend.keys())
        except Exception as e:
            logger.error("storage_list_failed", error=str(e))
            return None
        for key in self.eviction_priority:
            if key not in present:
                continue
            self.remove(key)
            logger.info("storage_key_evicted", key=key)
            return key
        return None

    def storage_info(self) -> dict[str, float]:
        """Rough usage estimate in megabytes."""
        used = 0
        try:
            for key in self.backend.keys():
                value = self.backend.get(key)
                if value:
                    used += len(value.encode("utf-8"))
        except Exception as e:
            logger.error("storage_info_failed", error=str(e))
        used_mb = used / (1024 * 1024)
        return {"used": used_mb, "available": max(0.0, self.quota_mb - used_mb)}
