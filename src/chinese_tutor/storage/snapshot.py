"""Versioned, schema-validated access to the persisted learner snapshot.

Every key is written as ``{"version": N, "data": ...}``. Payloads written
before versioning (the bare value) are migrated to version 1 on load. Data
that fails validation is discarded in favour of the default.
"""

from collections.abc import Callable
from datetime import date
from typing import Any

import structlog
from pydantic import BaseModel, TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from chinese_tutor.models.exchange import Exchange
from chinese_tutor.models.proficiency import OutcomeCounters, ProficiencyProfile
from chinese_tutor.storage.quota_store import (
    COUNTERS_KEY,
    LAST_PRACTICE_KEY,
    LEVEL_KEY,
    MESSAGES_KEY,
    STREAK_KEY,
    TOPICS_KEY,
    WORDS_KEY,
    QuotaSafeStore,
)

logger = structlog.get_logger()

SCHEMA_VERSION = 1


class Envelope(BaseModel):
    version: int
    data: Any


def _migrate_v0(raw: Any) -> Any:
    """Unversioned payloads hold the bare value."""
    return raw


# version -> function lifting a payload of that version to version + 1
MIGRATIONS: dict[int, Callable[[Any], Any]] = {
    0: _migrate_v0,
}

_history_adapter = TypeAdapter(list[Exchange])
_words_adapter = TypeAdapter(list[str])
_topics_adapter = TypeAdapter(list[str])
_streak_adapter = TypeAdapter(int)
_date_adapter = TypeAdapter(date)


def _looks_like_envelope(raw: Any) -> bool:
    return isinstance(raw, dict) and set(raw) == {"version", "data"}


class SnapshotRepository:
    """Typed read/write of each snapshot key through a ``QuotaSafeStore``."""

    def __init__(self, store: QuotaSafeStore):
        self.store = store

    def _save(self, key: str, adapter: TypeAdapter, value: Any) -> bool:
        envelope = {"version": SCHEMA_VERSION, "data": adapter.dump_python(value, mode="json")}
        return self.store.set_safe(key, envelope)

    def _load(self, key: str, adapter: TypeAdapter, default: Any) -> Any:
        raw = self.store.get_safe(key)
        if raw is None:
            return default

        if _looks_like_envelope(raw):
            try:
                envelope = Envelope.model_validate(raw)
            except PydanticValidationError:
                logger.error("snapshot_envelope_invalid", key=key)
                return default
            version, data = envelope.version, envelope.data
        else:
            version, data = 0, raw

        if version < 0 or version > SCHEMA_VERSION:
            logger.warning("snapshot_version_unsupported", key=key, version=version)
            return default
        while version < SCHEMA_VERSION:
            data = MIGRATIONS[version](data)
            version += 1
            logger.info("snapshot_migrated", key=key, version=version)

        try:
            return adapter.validate_python(data)
        except PydanticValidationError as e:
            logger.error("snapshot_invalid", key=key, errors=e.error_count())
            return default

    # History
    def load_history(self) -> list[Exchange]:
        return self._load(MESSAGES_KEY, _history_adapter, [])

    def save_history(self, history: list[Exchange]) -> bool:
        return self._save(MESSAGES_KEY, _history_adapter, history)

    def clear_history(self) -> None:
        self.store.remove(MESSAGES_KEY)

    # Vocabulary
    def load_vocabulary(self) -> set[str]:
        return set(self._load(WORDS_KEY, _words_adapter, []))

    def save_vocabulary(self, words: set[str]) -> bool:
        return self._save(WORDS_KEY, _words_adapter, sorted(words))

    # Proficiency
    def load_profile(self) -> ProficiencyProfile | None:
        return self._load(LEVEL_KEY, TypeAdapter(ProficiencyProfile), None)

    def save_profile(self, profile: ProficiencyProfile) -> bool:
        return self._save(LEVEL_KEY, TypeAdapter(ProficiencyProfile), profile)

    def load_counters(self) -> OutcomeCounters:
        return self._load(COUNTERS_KEY, TypeAdapter(OutcomeCounters), OutcomeCounters())

    def save_counters(self, counters: OutcomeCounters) -> bool:
        return self._save(COUNTERS_KEY, TypeAdapter(OutcomeCounters), counters)

    # Topics
    def load_topics(self) -> list[str]:
        return self._load(TOPICS_KEY, _topics_adapter, [])

    def save_topics(self, topics: list[str]) -> bool:
        return self._save(TOPICS_KEY, _topics_adapter, topics)

    # Practice streak
    def load_streak(self) -> tuple[int, date | None]:
        count = self._load(STREAK_KEY, _streak_adapter, 0)
        last = self._load(LAST_PRACTICE_KEY, _date_adapter, None)
        return count, last

    def save_streak(self, count: int, last_practice: date) -> bool:
        saved_count = self._save(STREAK_KEY, _streak_adapter, count)
        saved_date = self._save(LAST_PRACTICE_KEY, _date_adapter, last_practice)
        return saved_count and saved_date
