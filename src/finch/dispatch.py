from __future__ import annotations

from collections.abc import AsyncIterable, Callable
from typing import TYPE_CHECKING

import anyio
from anyio.abc import ObjectReceiveStream

from .commands import CommandRegistry, CommandState
from .logging import get_logger
from .model import Update
from .parsing import routable_message

if TYPE_CHECKING:
    from .bot import Finch

logger = get_logger(__name__)

ErrorHook = Callable[[CommandState, Update, Exception], None]

DEFAULT_WORKERS = 16
DEFAULT_QUEUE_SIZE = 64


def _command_name(state: CommandState) -> str:
    return type(state.command).__name__


def init_commands(registry: CommandRegistry, bot: Finch) -> list[CommandState]:
    """Bind every registered command to ``bot``.

    A command whose ``init`` raises is disabled and returned in the result;
    the remaining commands are still initialized.
    """
    failed: list[CommandState] = []
    for state in registry:
        try:
            state.command.init(state, bot)
        except Exception as exc:
            state.enabled = False
            failed.append(state)
            logger.error(
                "dispatch.init_failed",
                command=_command_name(state),
                error=str(exc),
                error_type=exc.__class__.__name__,
                exc_info=True,
            )
            continue
        state.enabled = True
    logger.info(
        "dispatch.commands_ready",
        enabled=len(registry) - len(failed),
        disabled=len(failed),
    )
    return failed


async def route_update(
    registry: CommandRegistry,
    update: Update,
    *,
    on_error: ErrorHook | None = None,
) -> None:
    """Run every command that wants ``update``, in registration order.

    A command waiting for a reply gets the update through ``run_as_reply``
    without its trigger being checked. Failures are reported per command and
    never stop the walk.
    """
    if routable_message(update) is None:
        logger.debug("dispatch.dropped", update_id=update.update_id)
        return
    for state in registry:
        if not state.enabled:
            continue
        command = state.command
        if state.waiting_for_reply:
            handler = command.run_as_reply
        else:
            try:
                matched = command.should_run(update)
            except Exception as exc:
                _report(state, update, exc, on_error, stage="should_run")
                continue
            if not matched:
                continue
            handler = command.run
        try:
            await handler(update)
        except Exception as exc:
            _report(state, update, exc, on_error, stage=handler.__name__)


def _report(
    state: CommandState,
    update: Update,
    exc: Exception,
    on_error: ErrorHook | None,
    *,
    stage: str,
) -> None:
    logger.error(
        "dispatch.command_failed",
        command=_command_name(state),
        stage=stage,
        update_id=update.update_id,
        error=str(exc),
        error_type=exc.__class__.__name__,
        exc_info=exc,
    )
    if on_error is None:
        return
    try:
        on_error(state, update, exc)
    except Exception as hook_exc:
        logger.warning(
            "dispatch.error_hook_failed",
            error=str(hook_exc),
            error_type=hook_exc.__class__.__name__,
        )


class Dispatcher:
    """Routes updates on a fixed pool of workers fed by a bounded queue.

    Ingestion waits when the queue is full, so a burst of updates cannot
    grow the number of in-flight tasks past ``workers``.
    """

    def __init__(
        self,
        registry: CommandRegistry,
        *,
        workers: int = DEFAULT_WORKERS,
        queue_size: int = DEFAULT_QUEUE_SIZE,
        on_error: ErrorHook | None = None,
    ) -> None:
        if workers < 1:
            raise ValueError("workers must be at least 1")
        if queue_size < 0:
            raise ValueError("queue_size must not be negative")
        self._registry = registry
        self._workers = workers
        self._queue_size = queue_size
        self._on_error = on_error

    async def run(self, updates: AsyncIterable[Update]) -> None:
        """Consume ``updates`` until the source is exhausted."""
        send, receive = anyio.create_memory_object_stream[Update](
            max_buffer_size=self._queue_size
        )
        async with anyio.create_task_group() as tg:
            for worker_id in range(self._workers):
                tg.start_soon(self._worker, worker_id, receive.clone())
            receive.close()
            async with send:
                async for update in updates:
                    await send.send(update)

    async def _worker(
        self, worker_id: int, receive: ObjectReceiveStream[Update]
    ) -> None:
        async with receive:
            async for update in receive:
                logger.debug(
                    "dispatch.update", worker=worker_id, update_id=update.update_id
                )
                await route_update(self._registry, update, on_error=self._on_error)
