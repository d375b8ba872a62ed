"""Lesson recommendations derived from a proficiency profile."""

from chinese_tutor.assessment.proficiency import GRAMMAR_ACCURACY
from chinese_tutor.models.proficiency import (
    LessonRecommendation,
    ProficiencyProfile,
    ProficiencyTier,
)

LESSON_CATALOG: dict[ProficiencyTier, tuple[LessonRecommendation, ...]] = {
    ProficiencyTier.BEGINNER: (
        LessonRecommendation(
            id="basic-greetings",
            title="Greetings & Introductions",
            description="Say hello, introduce yourself and ask someone's name.",
            difficulty=1,
            topics=frozenset({"greetings", "introductions"}),
            estimated_minutes=10,
        ),
        LessonRecommendation(
            id="numbers-counting",
            title="Numbers & Counting",
            description="Count from one to one hundred and ask how many.",
            difficulty=1,
            topics=frozenset({"numbers", "shopping"}),
            estimated_minutes=15,
        ),
    ),
    ProficiencyTier.ELEMENTARY: (
        LessonRecommendation(
            id="ordering-food",
            title="Ordering Food",
            description="Read a menu, order dishes and ask for the bill.",
            difficulty=2,
            topics=frozenset({"food", "restaurants"}),
            estimated_minutes=20,
        ),
    ),
    ProficiencyTier.INTERMEDIATE: (
        LessonRecommendation(
            id="travel-directions",
            title="Travel & Directions",
            description="Buy tickets, ask for directions and describe a trip.",
            difficulty=3,
            topics=frozenset({"travel", "directions"}),
            estimated_minutes=25,
        ),
    ),
    ProficiencyTier.ADVANCED: (),
}

GRAMMAR_DRILL = LessonRecommendation(
    id="grammar-accuracy-drill",
    title="Tone & Grammar Accuracy Drill",
    description="Practise sentence order, measure words and common corrections.",
    difficulty=2,
    topics=frozenset({"grammar", "tones"}),
    estimated_minutes=15,
)


def recommend(profile: ProficiencyProfile) -> list[LessonRecommendation]:
    """Ordered lesson suggestions for ``profile``. Deterministic, no I/O."""
    lessons = list(LESSON_CATALOG[profile.tier])
    if GRAMMAR_ACCURACY in profile.weaknesses:
        lessons.append(GRAMMAR_DRILL)
    return lessons
