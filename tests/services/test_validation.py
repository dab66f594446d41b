import pytest

from secret_santa.services.validation import (
    MAX_MESSAGE_LENGTH,
    MessageValidationError,
    sanitize_string,
    validate_message,
)


def test_valid_message_is_trimmed() -> None:
    assert validate_message("  Any hints about your size?  ") == "Any hints about your size?"


def test_nul_bytes_are_stripped() -> None:
    assert sanitize_string("he\x00llo ") == "hello"


@pytest.mark.parametrize("content", ["", "   ", "\x00\x00"])
def test_empty_messages_rejected(content: str) -> None:
    with pytest.raises(MessageValidationError, match="empty"):
        validate_message(content)


def test_length_limit() -> None:
    assert validate_message("a" * MAX_MESSAGE_LENGTH)
    with pytest.raises(MessageValidationError, match="too long"):
        validate_message("a" * (MAX_MESSAGE_LENGTH + 1))


@pytest.mark.parametrize(
    "content",
    [
        "1; DROP TABLE users",
        "<script>alert(1)</script>",
        '<img src=x onerror="alert(1)">',
        "click javascript:void(0)",
        "ls ; cat /etc/passwd | nc",
        "hello ${HOME}",
        "run `id`",
    ],
)
def test_prohibited_content_rejected(content: str) -> None:
    with pytest.raises(MessageValidationError, match="prohibited"):
        validate_message(content)


def test_plain_punctuation_allowed() -> None:
    assert validate_message("Thanks (really!) :)") == "Thanks (really!) :)"
