"""Heuristic proficiency assessment from the ongoing exchange."""

from collections.abc import Callable
from datetime import datetime

import structlog

from chinese_tutor.assessment.metrics import complexity, contains_target_script, error_signals
from chinese_tutor.config import AssessmentThresholds
from chinese_tutor.models.proficiency import (
    OutcomeCounters,
    ProficiencyProfile,
    ProficiencyTier,
)

logger = structlog.get_logger()

ProfileCallback = Callable[[ProficiencyProfile, OutcomeCounters], None]

GOOD_COMPREHENSION = "good comprehension"
COMPLEX_SENTENCES = "complex sentences"
GROWING_VOCABULARY = "growing vocabulary"
COMPREHENSION = "comprehension"
VOCABULARY_RANGE = "vocabulary range"
GRAMMAR_ACCURACY = "grammar accuracy"


class ProficiencyAssessor:
    """Accumulates exchange outcomes into a proficiency profile.

    Every exchange counts as an interaction. A tutor reply containing a
    correction marker counts as an error; otherwise a learner message written
    in the target script counts as a success. Counters never decay, so the
    tier can always be re-derived from them plus the latest message.

    No profile is produced until ``min_interactions`` exchanges were recorded.

    Args:
        thresholds: Tier cut-offs and strength/weakness limits.
        vocabulary_size: Returns the current learned-vocabulary size.
        counters: Previously persisted counters to resume from.
    """

    def __init__(
        self,
        thresholds: AssessmentThresholds | None = None,
        vocabulary_size: Callable[[], int] = lambda: 0,
        counters: OutcomeCounters | None = None,
    ) -> None:
        self.thresholds = thresholds or AssessmentThresholds()
        self._vocabulary_size = vocabulary_size
        self._counters = counters.model_copy() if counters else OutcomeCounters()
        self._profile: ProficiencyProfile | None = None
        self._callbacks: list[ProfileCallback] = []

    @property
    def counters(self) -> OutcomeCounters:
        return self._counters.model_copy()

    @property
    def profile(self) -> ProficiencyProfile | None:
        return self._profile

    def restore(self, counters: OutcomeCounters, profile: ProficiencyProfile | None = None) -> None:
        """Resume from persisted state."""
        self._counters = counters.model_copy()
        self._profile = profile

    def on_profile_update(self, callback: ProfileCallback) -> None:
        """Register a callback invoked with each newly assessed profile."""
        self._callbacks.append(callback)

    def record(self, user_text: str, ai_text: str) -> ProficiencyProfile | None:
        """Record one exchange; return a new profile once enough data exists."""
        try:
            return self._record(user_text, ai_text)
        except Exception:
            logger.exception("proficiency_record_failed")
            return None

    def _record(self, user_text: str, ai_text: str) -> ProficiencyProfile | None:
        counters = self._counters
        counters.interactions += 1
        if error_signals(ai_text) > 0:
            counters.error_count += 1
        elif contains_target_script(user_text):
            counters.success_count += 1

        if counters.interactions < self.thresholds.min_interactions:
            logger.debug(
                "proficiency_assessment_deferred",
                interactions=counters.interactions,
                required=self.thresholds.min_interactions,
            )
            return None

        score = complexity(user_text)
        profile = self.assess(counters, score, self._vocabulary_size())
        self._profile = profile
        logger.info(
            "proficiency_assessed",
            tier=profile.tier.value,
            success_rate=round(counters.success_rate, 2),
            complexity=score,
        )

        for callback in self._callbacks:
            try:
                callback(profile, self.counters)
            except Exception:
                logger.exception("profile_callback_failed")
        return profile

    def select_tier(self, success_rate: float, score: float) -> ProficiencyTier:
        """Highest tier whose rate and complexity minimums are both met."""
        ordered = [
            (ProficiencyTier.ADVANCED, self.thresholds.advanced),
            (ProficiencyTier.INTERMEDIATE, self.thresholds.intermediate),
            (ProficiencyTier.ELEMENTARY, self.thresholds.elementary),
        ]
        for tier, threshold in ordered:
            if success_rate >= threshold.success_rate and score >= threshold.complexity:
                return tier
        return ProficiencyTier.BEGINNER

    def assess(
        self, counters: OutcomeCounters, score: float, vocabulary_size: int
    ) -> ProficiencyProfile:
        """Derive a profile from counters and the latest message complexity."""
        t = self.thresholds
        success_rate = counters.success_rate
        tier = self.select_tier(success_rate, score)

        strengths: set[str] = set()
        weaknesses: set[str] = set()
        if success_rate > t.good_success_rate:
            strengths.add(GOOD_COMPREHENSION)
        if success_rate < t.poor_success_rate:
            weaknesses.add(COMPREHENSION)
        if score >= t.complex_sentence_score:
            strengths.add(COMPLEX_SENTENCES)
        if vocabulary_size > t.growing_vocabulary:
            strengths.add(GROWING_VOCABULARY)
        if vocabulary_size < t.limited_vocabulary:
            weaknesses.add(VOCABULARY_RANGE)
        if counters.error_count > t.high_error_count:
            weaknesses.add(GRAMMAR_ACCURACY)

        return ProficiencyProfile.for_tier(
            tier,
            strengths=strengths,
            weaknesses=weaknesses,
            last_assessed=datetime.now(),
        )
