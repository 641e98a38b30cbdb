from __future__ import annotations

from collections.abc import AsyncIterator, Awaitable, Callable

import anyio

from .client import BotClient, RetryAfter
from .logging import get_logger
from .model import Update
from .parsing import parse_update

logger = get_logger(__name__)

POLL_TIMEOUT_S = 50
POLL_RETRY_DELAY_S = 2.0
ALLOWED_UPDATES = ["message"]


async def poll_updates(
    bot: BotClient,
    *,
    offset: int | None = None,
    timeout_s: int = POLL_TIMEOUT_S,
    sleep: Callable[[float], Awaitable[None]] = anyio.sleep,
) -> AsyncIterator[Update]:
    """Long-poll ``getUpdates`` forever, yielding every update once."""
    while True:
        try:
            updates = await bot.get_updates(
                offset=offset,
                timeout_s=timeout_s,
                allowed_updates=ALLOWED_UPDATES,
            )
        except RetryAfter as exc:
            logger.info("transport.poll.retry_after", retry_after=exc.retry_after)
            await sleep(exc.retry_after)
            continue
        if updates is None:
            logger.info("transport.poll.failed")
            await sleep(POLL_RETRY_DELAY_S)
            continue
        for raw in updates:
            update_id = raw.get("update_id") if isinstance(raw, dict) else None
            if isinstance(update_id, int):
                offset = update_id + 1
            update = parse_update(raw)
            if update is None:
                logger.debug("transport.poll.skipped", update_id=update_id)
                continue
            yield update
