from pathlib import Path
from typing import Any

import anyio
import pytest

from finch.bot import Finch, SendError, StartError
from finch.builtin.help import register as register_help
from finch.commands import CommandRegistry
from finch.config import ConfigStore
from finch.model import Chat, Message
from tests.fakes import FakeClient, raw_update


def _bot(tmp_path: Path, client: FakeClient, *, debug: bool = False) -> Finch:
    registry = CommandRegistry()
    register_help(registry)
    return Finch(
        client, ConfigStore.load(tmp_path / "config.json"), registry, debug=debug
    )


@pytest.mark.anyio
async def test_send_message_expands_username(tmp_path: Path) -> None:
    client = FakeClient()
    bot = _bot(tmp_path, client)
    await bot.identify()

    await bot.send_message(5, "try /help@@ or ask @@", parse_mode="Markdown")

    assert client.sent == [
        {
            "chat_id": 5,
            "text": "try /help@finch_bot or ask @finch_bot",
            "reply_to_message_id": None,
            "parse_mode": "Markdown",
        }
    ]


@pytest.mark.anyio
async def test_quick_reply_targets_message(tmp_path: Path) -> None:
    client = FakeClient()
    bot = _bot(tmp_path, client)

    result = await bot.quick_reply(
        Message(message_id=77, chat=Chat(id=-100)), "plain @@ text"
    )

    assert result == {"message_id": 1001}
    assert client.sent[0]["chat_id"] == -100
    assert client.sent[0]["reply_to_message_id"] == 77
    assert client.sent[0]["text"] == "plain @@ text"


@pytest.mark.anyio
async def test_send_failure_raises(tmp_path: Path) -> None:
    client = FakeClient()
    client.fail_send = True
    bot = _bot(tmp_path, client)

    with pytest.raises(SendError):
        await bot.send_message(1, "hi")


@pytest.mark.anyio
async def test_identify_requires_username(tmp_path: Path) -> None:
    bot = _bot(tmp_path, FakeClient(username=""))

    with pytest.raises(StartError, match="getMe"):
        await bot.identify()


@pytest.mark.anyio
async def test_start_polls_and_dispatches(tmp_path: Path) -> None:
    client = FakeClient(
        [
            [raw_update("/help", update_id=1)],
            [raw_update("no command here", update_id=2)],
        ]
    )
    bot = _bot(tmp_path, client)

    async with anyio.create_task_group() as tg:
        tg.start_soon(bot.start)
        with anyio.fail_after(5):
            while not client.sent or len(client.offsets) < 3:
                await anyio.sleep(0.01)
        tg.cancel_scope.cancel()

    assert client.deleted_webhook is True
    assert bot.username == "finch_bot"
    assert len(client.sent) == 1
    assert client.sent[0]["text"].startswith("Loaded commands:")
    assert client.offsets == [None, 2, 3]
    assert client.closed is True


@pytest.mark.anyio
async def test_start_webhook_fails_when_registration_fails(tmp_path: Path) -> None:
    client = FakeClient()
    client.webhook_ok = False
    bot = _bot(tmp_path, client)

    with pytest.raises(StartError, match="https://example.com/hook"):
        await bot.start_webhook("https://example.com/", "/hook", 0)

    assert client.webhooks == ["https://example.com/hook"]
    assert client.closed is True


@pytest.mark.anyio
async def test_debug_logs_each_update(
    tmp_path: Path, log_events: list[dict[str, Any]]
) -> None:
    client = FakeClient([[raw_update("/help", update_id=1, username="bob")]])
    bot = _bot(tmp_path, client, debug=True)

    async with anyio.create_task_group() as tg:
        tg.start_soon(bot.start)
        with anyio.fail_after(5):
            while not client.sent:
                await anyio.sleep(0.01)
        tg.cancel_scope.cancel()

    traced = [event for event in log_events if event["event"] == "bot.update"]
    assert len(traced) == 1
    assert traced[0]["update_id"] == 1
    assert traced[0]["sender"] == "bob"
    assert traced[0]["text"] == "/help"


@pytest.mark.anyio
async def test_updates_are_not_traced_without_debug(
    tmp_path: Path, log_events: list[dict[str, Any]]
) -> None:
    client = FakeClient([[raw_update("/help", update_id=1)]])
    bot = _bot(tmp_path, client)

    async with anyio.create_task_group() as tg:
        tg.start_soon(bot.start)
        with anyio.fail_after(5):
            while not client.sent:
                await anyio.sleep(0.01)
        tg.cancel_scope.cancel()

    assert not [event for event in log_events if event["event"] == "bot.update"]


@pytest.mark.anyio
async def test_send_calls_any_method(tmp_path: Path) -> None:
    client = FakeClient()
    bot = _bot(tmp_path, client)

    result = await bot.send("sendPhoto", {"chat_id": 5, "photo": "file-id"})

    assert result == {"message_id": 2001}
    assert client.calls == [("sendPhoto", {"chat_id": 5, "photo": "file-id"})]


@pytest.mark.anyio
async def test_send_failure_names_method(tmp_path: Path) -> None:
    client = FakeClient()
    client.fail_send = True
    bot = _bot(tmp_path, client)

    with pytest.raises(SendError, match="sendPhoto"):
        await bot.send("sendPhoto", {"chat_id": 5})
