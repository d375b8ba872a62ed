"""Validation and sanitisation of learner input."""

import re

from chinese_tutor.errors import ValidationError

MAX_MESSAGE_LENGTH = 500

SUSPICIOUS_PATTERNS = [
    re.compile(r"<script", re.IGNORECASE),
    re.compile(r"javascript:", re.IGNORECASE),
    re.compile(r"on\w+\s*=", re.IGNORECASE),
    re.compile(r"<iframe", re.IGNORECASE),
    re.compile(r"<object", re.IGNORECASE),
    re.compile(r"<embed", re.IGNORECASE),
]

_TAG_PATTERN = re.compile(r"<[^>]*>")
_PROTOCOL_PATTERN = re.compile(r"(javascript|data|vbscript):", re.IGNORECASE)
_HANDLER_PATTERN = re.compile(r"on\w+\s*=", re.IGNORECASE)

_ESCAPES = {
    "&": "&amp;",
    "<": "&lt;",
    ">": "&gt;",
    '"': "&quot;",
    "'": "&#x27;",
    "/": "&#x2F;",
}


def sanitize_input(text: str) -> str:
    """Strip tags, escape HTML-special characters and drop script protocols."""
    if not text:
        return ""
    sanitized = _TAG_PATTERN.sub("", text)
    sanitized = "".join(_ESCAPES.get(ch, ch) for ch in sanitized)
    sanitized = _PROTOCOL_PATTERN.sub("", sanitized)
    sanitized = _HANDLER_PATTERN.sub("", sanitized)
    return sanitized.strip()


def check_message(text: str, max_length: int = MAX_MESSAGE_LENGTH) -> str:
    """Return the trimmed message without escaping it.

    Raises:
        ValidationError: Empty, too long, or containing markup that looks
            like an injection attempt.
    """
    if not text or not text.strip():
        raise ValidationError("Message cannot be empty")

    trimmed = text.strip()
    if len(trimmed) > max_length:
        raise ValidationError(f"Please keep your message under {max_length} characters.")

    for pattern in SUSPICIOUS_PATTERNS:
        if pattern.search(trimmed):
            raise ValidationError("Message contains potentially harmful content")

    return trimmed


def validate_message(text: str, max_length: int = MAX_MESSAGE_LENGTH) -> str:
    """Check the message, then return it sanitised for the tutor service.

    Escaping happens once, at the service boundary; callers forwarding the
    text elsewhere use ``check_message`` instead.
    """
    return sanitize_input(check_message(text, max_length))
