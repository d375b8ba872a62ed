"""Tests for TopicTracker."""

from unittest.mock import MagicMock

from chinese_tutor.conversation.topics import MAX_TOPICS, TopicTracker


class TestObserve:
    def test_no_match_is_noop(self):
        persist = MagicMock()
        tracker = TopicTracker(["food"], persist=persist)
        assert tracker.observe("nothing relevant here") == ["food"]
        persist.assert_not_called()

    def test_prepends_matches(self):
        tracker = TopicTracker(["family"])
        assert tracker.observe("Let's talk about travel") == ["travel", "family"]

    def test_chinese_keyword(self):
        tracker = TopicTracker()
        assert tracker.observe("今天的天气很好") == ["天气"]

    def test_case_insensitive(self):
        tracker = TopicTracker()
        assert tracker.observe("I love FOOD") == ["food"]

    def test_deduplicates_keeping_most_recent(self):
        tracker = TopicTracker(["weather", "food", "family"])
        assert tracker.observe("more food please") == ["food", "weather", "family"]

    def test_truncates_to_five(self):
        tracker = TopicTracker(["school", "hobbies", "health", "weather", "family"])
        topics = tracker.observe("work and travel")
        assert len(topics) == MAX_TOPICS
        assert topics[:2] == ["travel", "work"]
        assert "family" not in topics

    def test_persists_on_change(self):
        persist = MagicMock()
        tracker = TopicTracker(persist=persist)
        tracker.observe("shopping trip")
        persist.assert_called_once_with(["shopping"])

    def test_empty_text(self):
        tracker = TopicTracker(["food"])
        assert tracker.observe("") == ["food"]
        assert tracker.observe(None) == ["food"]


def test_initial_topics_bounded():
    tracker = TopicTracker([str(i) for i in range(8)])
    assert len(tracker.topics) == MAX_TOPICS


def test_topics_returns_copy():
    tracker = TopicTracker(["food"])
    tracker.topics.append("x")
    assert tracker.topics == ["food"]
