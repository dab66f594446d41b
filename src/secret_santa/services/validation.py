"""Sanitising and validating chat message content."""

from __future__ import annotations

import re

MAX_MESSAGE_LENGTH = 5000

# Injection-style payloads rejected outright: SQL keywords, script/markup
# vectors and shell metacharacter sequences. Plain parentheses stay allowed.
PROHIBITED_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(
        r"(union|select|insert|update|delete|drop|create|alter|exec|execute|script|javascript|<script)",
        re.IGNORECASE,
    ),
    re.compile(r"(<script|<iframe|<object|<embed|<img.*onerror|javascript:)", re.IGNORECASE),
    re.compile(r"(;.*\||\$\{|`)", re.IGNORECASE),
)


class MessageValidationError(ValueError):
    """Raised when chat content is empty, too long or prohibited."""


def sanitize_string(value: str) -> str:
    """Strip NUL bytes and surrounding whitespace."""
    return value.replace("\x00", "").strip()


def validate_message(content: str) -> str:
    """Return sanitised content or raise :class:`MessageValidationError`."""
    content = sanitize_string(content)

    if not content:
        raise MessageValidationError("message cannot be empty")

    if len(content) > MAX_MESSAGE_LENGTH:
        raise MessageValidationError("message too long")

    for pattern in PROHIBITED_PATTERNS:
        if pattern.search(content):
            raise MessageValidationError("message contains prohibited content")

    return content
