"""Webhook listener: Telegram pushes updates to an HTTP endpoint."""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import anyio
from aiohttp import web
from anyio.abc import ObjectReceiveStream, ObjectSendStream

from .logging import get_logger
from .model import Update
from .parsing import parse_update

logger = get_logger(__name__)

DEFAULT_HOST = "0.0.0.0"
DEFAULT_QUEUE_SIZE = 64


def create_webhook_app(
    endpoint: str, send: ObjectSendStream[Update]
) -> web.Application:
    async def handle_update(request: web.Request) -> web.Response:
        body = await request.read()
        update = parse_update(body)
        if update is None:
            logger.warning("webhook.invalid_update", size=len(body))
            return web.json_response({"ok": False}, status=400)
        try:
            await send.send(update)
        except (anyio.ClosedResourceError, anyio.BrokenResourceError):
            return web.json_response({"ok": False}, status=503)
        return web.json_response({"ok": True})

    app = web.Application()
    app.router.add_post(endpoint, handle_update)
    return app


@asynccontextmanager
async def serve_webhook(
    endpoint: str,
    port: int,
    *,
    host: str = DEFAULT_HOST,
    queue_size: int = DEFAULT_QUEUE_SIZE,
) -> AsyncIterator[ObjectReceiveStream[Update]]:
    """Serve ``endpoint`` and yield a stream of the updates posted to it.

    The HTTP response is held until the update is queued, so Telegram
    retries delivery instead of updates piling up in memory.
    """
    send, receive = anyio.create_memory_object_stream[Update](
        max_buffer_size=queue_size
    )
    app = create_webhook_app(endpoint, send)
    runner = web.AppRunner(app, access_log=None)
    await runner.setup()
    site = web.TCPSite(runner, host, port)
    await site.start()
    logger.info("webhook.listening", host=host, port=port, endpoint=endpoint)
    try:
        async with receive:
            yield receive
    finally:
        send.close()
        await runner.cleanup()
