import logging

import pytest
import structlog

from finch.logging import get_logger, redact_token, redact_token_processor, setup_logging


def test_redacts_bot_token_in_url() -> None:
    text = "https://api.telegram.org/bot123456789:ABCdefGHI_jkl/sendMessage"

    redacted = redact_token(text)

    assert "123456789" not in redacted
    assert "bot[REDACTED]" in redacted


def test_redacts_bare_token() -> None:
    redacted = redact_token("Token is 123456789:ABCDEFGHIJ_klmnop")

    assert "123456789" not in redacted
    assert "[REDACTED_TOKEN]" in redacted


def test_processor_redacts_event_and_fields() -> None:
    event = {
        "event": "calling bot123:abcdef",
        "url": "https://api.telegram.org/bot123:abcdef/getMe",
        "chat_id": 5,
    }

    result = redact_token_processor(None, "info", event)

    assert result["event"] == "calling bot[REDACTED]"
    assert "abcdef" not in result["url"]
    assert result["chat_id"] == 5


def test_processor_leaves_plain_messages() -> None:
    event = {"event": "dispatch.update"}

    assert redact_token_processor(None, "info", event) == {"event": "dispatch.update"}


@pytest.mark.parametrize("debug", [False, True])
def test_setup_logging(debug: bool) -> None:
    try:
        setup_logging(debug=debug)
        get_logger("finch.test").info("test.event", value=1)
        expected = logging.DEBUG if debug else logging.INFO
        assert logging.getLogger().level == expected
    finally:
        structlog.reset_defaults()
