"""Surface-feature signals used by the proficiency assessor.

All functions are pure and tolerate empty or non-string input.
"""

import re

# CJK Unified Ideographs
TARGET_SCRIPT_PATTERN = re.compile(r"[\u4e00-\u9fff]")
TARGET_SCRIPT_RUN_PATTERN = re.compile(r"[\u4e00-\u9fff]+")

SENTENCE_PUNCTUATION = frozenset("。！？，；：、.!?")

MAX_SCORE = 10.0
CHARS_PER_POINT = 5
MAX_CHAR_POINTS = 3.0
WORD_COUNT_THRESHOLD = 10
LONG_MESSAGE_BONUS = 1.0
COMPLEX_STRUCTURE_BONUS = 2.0

# Phrases a tutor uses when correcting the learner (English and Chinese)
CORRECTION_MARKERS: tuple[str, ...] = (
    "correct way",
    "should be",
    "instead of",
    "try saying",
    "a better way",
    "more natural",
    "应该是",
    "正确的说法",
    "更好的说法",
    "应该说",
    "不对",
)


def contains_target_script(text: str) -> bool:
    if not isinstance(text, str):
        return False
    return TARGET_SCRIPT_PATTERN.search(text) is not None


def target_script_runs(text: str) -> list[str]:
    """Contiguous runs of target-script characters, in order of appearance."""
    if not isinstance(text, str):
        return []
    return TARGET_SCRIPT_RUN_PATTERN.findall(text)


def complexity(text: str) -> float:
    """Score a message 0-10 from script density, length and punctuation.

    The weights are empirical and mix unrelated signals; treat them as fixed.
    """
    if not isinstance(text, str) or not text.strip():
        return 0.0

    script_chars = len(TARGET_SCRIPT_PATTERN.findall(text))
    score = min(script_chars / CHARS_PER_POINT, MAX_CHAR_POINTS)
    if len(text.split()) > WORD_COUNT_THRESHOLD:
        score += LONG_MESSAGE_BONUS
    if any(ch in SENTENCE_PUNCTUATION for ch in text):
        score += COMPLEX_STRUCTURE_BONUS
    return max(0.0, min(score, MAX_SCORE))


def error_signals(text: str) -> int:
    """Number of correction-marker occurrences in a tutor reply."""
    if not isinstance(text, str) or not text:
        return 0
    lowered = text.lower()
    return sum(lowered.count(marker) for marker in CORRECTION_MARKERS)
