from __future__ import annotations

import re
from typing import Any, Protocol

import httpx

from .logging import get_logger

logger = get_logger(__name__)


class RetryAfter(Exception):
    def __init__(self, retry_after: float, description: str | None = None) -> None:
        super().__init__(description or f"retry after {retry_after}")
        self.retry_after = float(retry_after)
        self.description = description


class BotClient(Protocol):
    async def close(self) -> None: ...

    async def call(self, method: str, params: dict[str, Any]) -> Any | None: ...

    async def get_updates(
        self,
        offset: int | None,
        timeout_s: int = 50,
        allowed_updates: list[str] | None = None,
    ) -> list[dict] | None: ...

    async def send_message(
        self,
        chat_id: int,
        text: str,
        reply_to_message_id: int | None = None,
        disable_notification: bool | None = False,
        parse_mode: str | None = None,
    ) -> dict | None: ...

    async def get_me(self) -> dict | None: ...

    async def set_webhook(self, url: str) -> bool: ...

    async def delete_webhook(self) -> bool: ...


_RETRY_AFTER_RE = re.compile(r"retry after (\d+)", re.IGNORECASE)


def _json_object(resp: httpx.Response) -> dict[str, Any] | None:
    try:
        payload = resp.json()
    except ValueError:
        return None
    return payload if isinstance(payload, dict) else None


def _retry_after(payload: dict[str, Any] | None, fallback: str) -> float | None:
    """Read the flood-wait delay from ``parameters`` or the description text."""
    text = fallback
    if payload is not None:
        params = payload.get("parameters")
        if isinstance(params, dict):
            retry_after = params.get("retry_after")
            if isinstance(retry_after, (int, float)):
                return float(retry_after)
        description = payload.get("description")
        if isinstance(description, str):
            text = description
    match = _RETRY_AFTER_RE.search(text)
    if not match:
        return None
    return float(match.group(1))


class TelegramClient:
    def __init__(
        self,
        token: str,
        timeout_s: float = 120,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        if not token:
            raise ValueError("Telegram token is empty")
        self._base = f"https://api.telegram.org/bot{token}"
        self._client = client or httpx.AsyncClient(timeout=timeout_s)
        self._owns_client = client is None

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def call(self, method: str, params: dict[str, Any]) -> Any | None:
        """Invoke a Bot API method and return its ``result``.

        Failures are logged and give None. Flood control raises ``RetryAfter``.
        """
        logger.debug("telegram.request", method=method)
        try:
            resp = await self._client.post(f"{self._base}/{method}", json=params)
        except httpx.HTTPError as exc:
            logger.error(
                "telegram.network_error",
                method=method,
                error=str(exc),
                error_type=exc.__class__.__name__,
            )
            return None

        payload = _json_object(resp)
        ok = payload is not None and bool(payload.get("ok"))
        if resp.status_code == 429 or (payload is not None and not ok):
            retry_after = _retry_after(payload, resp.text)
            if retry_after is not None:
                logger.info(
                    "telegram.rate_limited", method=method, retry_after=retry_after
                )
                description = payload.get("description") if payload else None
                raise RetryAfter(retry_after, description)
        if resp.is_error:
            logger.error("telegram.http_error", method=method, status=resp.status_code)
            return None
        if payload is None:
            logger.error("telegram.bad_response", method=method)
            return None
        if not ok:
            logger.error(
                "telegram.api_error",
                method=method,
                description=payload.get("description"),
            )
            return None
        return payload.get("result")

    async def get_updates(
        self,
        offset: int | None,
        timeout_s: int = 50,
        allowed_updates: list[str] | None = None,
    ) -> list[dict] | None:
        params: dict[str, Any] = {"timeout": timeout_s}
        if offset is not None:
            params["offset"] = offset
        if allowed_updates is not None:
            params["allowed_updates"] = allowed_updates
        res = await self.call("getUpdates", params)
        return res if isinstance(res, list) else None

    async def send_message(
        self,
        chat_id: int,
        text: str,
        reply_to_message_id: int | None = None,
        disable_notification: bool | None = False,
        parse_mode: str | None = None,
    ) -> dict | None:
        params: dict[str, Any] = {"chat_id": chat_id, "text": text}
        if disable_notification is not None:
            params["disable_notification"] = disable_notification
        if reply_to_message_id is not None:
            params["reply_to_message_id"] = reply_to_message_id
        if parse_mode is not None:
            params["parse_mode"] = parse_mode
        res = await self.call("sendMessage", params)
        return res if isinstance(res, dict) else None

    async def get_me(self) -> dict | None:
        res = await self.call("getMe", {})
        return res if isinstance(res, dict) else None

    async def set_webhook(self, url: str) -> bool:
        return bool(await self.call("setWebhook", {"url": url}))

    async def delete_webhook(self) -> bool:
        return bool(await self.call("deleteWebhook", {}))
