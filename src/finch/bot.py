from __future__ import annotations

from collections.abc import AsyncIterable, AsyncIterator
from typing import Any

import anyio

from .client import BotClient, TelegramClient
from .commands import CommandRegistry, CommandState
from .config import ConfigStore
from .dispatch import (
    DEFAULT_QUEUE_SIZE,
    DEFAULT_WORKERS,
    Dispatcher,
    ErrorHook,
    init_commands,
)
from .logging import get_logger
from .model import Message, Update
from .transport import poll_updates
from .webhook import serve_webhook

logger = get_logger(__name__)


class StartError(RuntimeError):
    pass


class SendError(RuntimeError):
    pass


class Finch:
    """A Telegram bot: API client, config and commands."""

    def __init__(
        self,
        client: BotClient,
        config: ConfigStore,
        registry: CommandRegistry,
        *,
        debug: bool = False,
        on_error: ErrorHook | None = None,
    ) -> None:
        self.client = client
        self.config = config
        self.registry = registry
        self.debug = debug
        self.on_error = on_error
        self.username: str | None = None

    @classmethod
    def from_token(
        cls,
        token: str,
        config: ConfigStore,
        registry: CommandRegistry,
        *,
        debug: bool = False,
        on_error: ErrorHook | None = None,
    ) -> "Finch":
        return cls(
            TelegramClient(token),
            config,
            registry,
            debug=debug,
            on_error=on_error,
        )

    async def identify(self) -> str:
        me = await self.client.get_me()
        username = me.get("username") if me is not None else None
        if not isinstance(username, str) or not username:
            raise StartError("Failed to fetch bot identity (getMe).")
        self.username = username
        logger.info("bot.authorized", username=username)
        return username

    def init_commands(self) -> list[CommandState]:
        return init_commands(self.registry, self)

    def _dispatcher(self, workers: int, queue_size: int) -> Dispatcher:
        return Dispatcher(
            self.registry,
            workers=workers,
            queue_size=queue_size,
            on_error=self.on_error,
        )

    async def start(
        self,
        *,
        workers: int = DEFAULT_WORKERS,
        queue_size: int = DEFAULT_QUEUE_SIZE,
    ) -> None:
        """Initialize commands, then long-poll for updates until cancelled."""
        try:
            await self.identify()
            await self.client.delete_webhook()
            self.init_commands()
            dispatcher = self._dispatcher(workers, queue_size)
            await dispatcher.run(self._trace(poll_updates(self.client)))
        finally:
            await self.close()

    async def start_webhook(
        self,
        domain: str,
        endpoint: str,
        port: int,
        *,
        workers: int = DEFAULT_WORKERS,
        queue_size: int = DEFAULT_QUEUE_SIZE,
    ) -> None:
        """Register a webhook, initialize commands, then serve updates."""
        try:
            await self.identify()
            url = domain.rstrip("/") + endpoint
            logger.info("bot.webhook", url=url)
            if not await self.client.set_webhook(url):
                raise StartError(f"Failed to register webhook {url}.")
            self.init_commands()
            dispatcher = self._dispatcher(workers, queue_size)
            async with serve_webhook(
                endpoint, port, queue_size=queue_size
            ) as updates:
                await dispatcher.run(self._trace(updates))
        finally:
            await self.close()

    async def close(self) -> None:
        with anyio.CancelScope(shield=True):
            await self.client.close()

    async def _trace(self, updates: AsyncIterable[Update]) -> AsyncIterator[Update]:
        async for update in updates:
            if self.debug:
                msg = update.message
                logger.info(
                    "bot.update",
                    update_id=update.update_id,
                    chat_id=msg.chat.id if msg is not None else None,
                    sender=str(msg.from_) if msg is not None and msg.from_ else None,
                    text=msg.text if msg is not None else None,
                )
            yield update

    def expand_text(self, text: str) -> str:
        if self.username is None:
            return text
        return text.replace("@@", f"@{self.username}")

    async def send_message(
        self,
        chat_id: int,
        text: str,
        *,
        reply_to_message_id: int | None = None,
        parse_mode: str | None = None,
    ) -> dict:
        """Send ``text`` with every ``@@`` replaced by the bot's username."""
        result = await self.client.send_message(
            chat_id=chat_id,
            text=self.expand_text(text),
            reply_to_message_id=reply_to_message_id,
            parse_mode=parse_mode,
        )
        if result is None:
            raise SendError(f"Failed to send message to chat {chat_id}.")
        return result

    async def quick_reply(self, message: Message, text: str) -> dict:
        return await self.send_message(
            message.chat.id, text, reply_to_message_id=message.message_id
        )

    async def send(self, method: str, params: dict[str, Any]) -> Any:
        """Call any Bot API method, e.g. ``sendPhoto``, and return its result."""
        result = await self.client.call(method, params)
        if result is None:
            raise SendError(f"Telegram method {method} failed.")
        return result
