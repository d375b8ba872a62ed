"""Tests for lesson recommendations."""

from datetime import datetime

from chinese_tutor.assessment.proficiency import GRAMMAR_ACCURACY
from chinese_tutor.assessment.recommendations import GRAMMAR_DRILL, recommend
from chinese_tutor.models.proficiency import ProficiencyProfile, ProficiencyTier


def _profile(tier: ProficiencyTier, weaknesses: set[str] | None = None) -> ProficiencyProfile:
    return ProficiencyProfile.for_tier(
        tier, weaknesses=weaknesses, last_assessed=datetime(2026, 1, 1)
    )


class TestCatalogSizes:
    def test_beginner(self):
        lessons = recommend(_profile(ProficiencyTier.BEGINNER))
        assert [lesson.id for lesson in lessons] == ["basic-greetings", "numbers-counting"]

    def test_elementary(self):
        assert len(recommend(_profile(ProficiencyTier.ELEMENTARY))) == 1

    def test_intermediate(self):
        assert len(recommend(_profile(ProficiencyTier.INTERMEDIATE))) == 1

    def test_advanced_has_no_base_lessons(self):
        assert recommend(_profile(ProficiencyTier.ADVANCED)) == []


class TestGrammarDrill:
    def test_appended_last(self):
        lessons = recommend(_profile(ProficiencyTier.BEGINNER, {GRAMMAR_ACCURACY}))
        assert len(lessons) == 3
        assert lessons[-1] == GRAMMAR_DRILL

    def test_advanced_with_grammar_weakness(self):
        lessons = recommend(_profile(ProficiencyTier.ADVANCED, {GRAMMAR_ACCURACY}))
        assert lessons == [GRAMMAR_DRILL]

    def test_other_weaknesses_ignored(self):
        lessons = recommend(_profile(ProficiencyTier.ELEMENTARY, {"vocabulary range"}))
        assert GRAMMAR_DRILL not in lessons


def test_deterministic():
    profile = _profile(ProficiencyTier.BEGINNER, {GRAMMAR_ACCURACY, "comprehension"})
    first = recommend(profile)
    for _ in range(5):
        assert recommend(profile) == first
    assert recommend(profile.model_copy(deep=True)) == first


def test_result_is_a_fresh_list():
    profile = _profile(ProficiencyTier.BEGINNER)
    recommend(profile).clear()
    assert len(recommend(profile)) == 2
