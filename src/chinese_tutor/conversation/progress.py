"""Learned vocabulary and daily practice streak."""

from datetime import date

import structlog

from chinese_tutor.assessment.metrics import target_script_runs

logger = structlog.get_logger()


class VocabularySet:
    """Append-only set of target-script words seen in tutor replies."""

    def __init__(self, words: set[str] | None = None):
        self._words: set[str] = set(words or ())

    def __len__(self) -> int:
        return len(self._words)

    def __contains__(self, word: object) -> bool:
        return word in self._words

    @property
    def words(self) -> set[str]:
        return set(self._words)

    def harvest(self, text: str) -> set[str]:
        """Add every target-script run in ``text``; return the newly added ones."""
        added = {run for run in target_script_runs(text) if run not in self._words}
        self._words |= added
        if added:
            logger.debug("vocabulary_added", count=len(added), total=len(self._words))
        return added


class PracticeStreak:
    """Consecutive-day practice counter."""

    def __init__(self, count: int = 0, last_practice: date | None = None):
        self.count = count
        self.last_practice = last_practice

    def mark(self, today: date) -> bool:
        """Record practice on ``today``. Returns True when the streak changed."""
        if self.last_practice == today:
            return False
        if self.last_practice is not None and (today - self.last_practice).days == 1:
            self.count += 1
        else:
            self.count = 1
        self.last_practice = today
        logger.info("practice_streak_updated", streak=self.count)
        return True
