from __future__ import annotations

from typing import Any

import msgspec

from .logging import get_logger
from .model import Message, Update

logger = get_logger(__name__)


def parse_update(payload: Update | dict[str, Any] | bytes) -> Update | None:
    if isinstance(payload, Update):
        return payload
    try:
        if isinstance(payload, bytes):
            return msgspec.json.decode(payload, type=Update)
        return msgspec.convert(payload, type=Update)
    except (msgspec.ValidationError, msgspec.DecodeError) as exc:
        logger.debug("parsing.invalid_update", error=str(exc))
        return None


def routable_message(update: Update) -> Message | None:
    """Return the update's message if commands can act on it."""
    msg = update.message
    if msg is None or msg.text is None:
        return None
    return msg
