"""Proficiency profile, outcome counters and lesson recommendation models."""

from datetime import datetime
from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field


class ProficiencyTier(StrEnum):
    """Ordered proficiency buckets."""

    BEGINNER = "beginner"
    ELEMENTARY = "elementary"
    INTERMEDIATE = "intermediate"
    ADVANCED = "advanced"

    @property
    def standardized_level(self) -> int:
        """Fixed HSK-style level for this tier."""
        return TIER_CONSTANTS[self][0]

    @property
    def confidence(self) -> float:
        return TIER_CONSTANTS[self][1]


# (standardized_level, confidence) per tier; looked up, never computed
TIER_CONSTANTS: dict[ProficiencyTier, tuple[int, float]] = {
    ProficiencyTier.BEGINNER: (1, 0.5),
    ProficiencyTier.ELEMENTARY: (2, 0.6),
    ProficiencyTier.INTERMEDIATE: (3, 0.75),
    ProficiencyTier.ADVANCED: (5, 0.9),
}


class ProficiencyProfile(BaseModel):
    tier: ProficiencyTier = ProficiencyTier.BEGINNER
    standardized_level: int = Field(default=1, ge=1, le=5)
    confidence: float = Field(default=0.5, ge=0.0, le=1.0)
    strengths: set[str] = Field(default_factory=set)
    weaknesses: set[str] = Field(default_factory=set)
    last_assessed: datetime = Field(default_factory=datetime.now)

    @classmethod
    def for_tier(
        cls,
        tier: ProficiencyTier,
        strengths: set[str] | None = None,
        weaknesses: set[str] | None = None,
        last_assessed: datetime | None = None,
    ) -> "ProficiencyProfile":
        """Build a profile whose level and confidence come from the tier table."""
        return cls(
            tier=tier,
            standardized_level=tier.standardized_level,
            confidence=tier.confidence,
            strengths=strengths or set(),
            weaknesses=weaknesses or set(),
            last_assessed=last_assessed or datetime.now(),
        )


class OutcomeCounters(BaseModel):
    """Cumulative exchange outcomes. Only ever incremented."""

    success_count: int = Field(default=0, ge=0)
    error_count: int = Field(default=0, ge=0)
    interactions: int = Field(default=0, ge=0)

    @property
    def total(self) -> int:
        return self.success_count + self.error_count

    @property
    def success_rate(self) -> float:
        if self.total == 0:
            return 0.0
        return self.success_count / self.total


class LessonRecommendation(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    title: str
    description: str
    difficulty: int = Field(ge=1, le=5)
    topics: frozenset[str] = Field(default_factory=frozenset)
    estimated_minutes: int = Field(gt=0)
