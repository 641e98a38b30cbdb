from collections.abc import Callable, Iterator
from pathlib import Path
from typing import Any

import pytest
from structlog.testing import capture_logs

from finch.bot import Finch
from finch.commands import Command
from tests.fakes import FakeClient, make_bot


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture(autouse=True)
def _clear_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("FINCH_CONFIG", raising=False)
    monkeypatch.delenv("FINCH_TOKEN", raising=False)


@pytest.fixture(autouse=True)
def log_events() -> Iterator[list[dict[str, Any]]]:
    with capture_logs() as events:
        yield events


@pytest.fixture
def bot_factory(tmp_path: Path) -> Callable[..., Finch]:
    def _factory(*commands: Command, client: FakeClient | None = None) -> Finch:
        return make_bot(tmp_path / "config.json", *commands, client=client)

    return _factory
