from __future__ import annotations

from collections.abc import Callable, Iterator
from dataclasses import dataclass
from importlib.metadata import entry_points
from typing import TYPE_CHECKING, Any, Protocol, TypeVar, runtime_checkable

from .logging import get_logger
from .model import Message, Update

if TYPE_CHECKING:
    from .bot import Finch

logger = get_logger(__name__)

COMMAND_GROUP = "finch.commands"

T = TypeVar("T")


@dataclass(frozen=True, slots=True)
class Help:
    """Information about a command, shown by the help command."""

    name: str = ""
    description: str = ""
    example: str = ""
    botfather: tuple[tuple[str, str], ...] = ()

    def format(self, full: bool = False) -> str:
        """Render the help entry.

        ``full`` puts the description on its own line and adds the example.
        """
        sep = "\n" if full else " - "
        text = f"{self.name}{sep}{self.description}\n"
        if full:
            text += f"Example: {self.example}\n"
        return text + "\n"

    def botfather_lines(self) -> list[str]:
        return [f"{command} - {description}" for command, description in self.botfather]


@runtime_checkable
class Command(Protocol):
    def describe(self) -> Help: ...

    def init(self, state: CommandState, bot: Finch) -> None: ...

    def should_run(self, update: Update) -> bool: ...

    async def run(self, update: Update) -> None: ...

    async def run_as_reply(self, update: Update) -> None: ...


@dataclass(slots=True, eq=False)
class CommandState:
    command: Command
    waiting_for_reply: bool = False
    enabled: bool = True


class CommandBase:
    """Default command with no-op behaviour.

    Subclasses override only what they need. A subclass that overrides
    ``init`` should still call ``super().init(state, bot)``.
    """

    state: CommandState
    bot: Finch

    def describe(self) -> Help:
        return Help()

    def init(self, state: CommandState, bot: Finch) -> None:
        self.state = state
        self.bot = bot

    def should_run(self, update: Update) -> bool:
        return False

    async def run(self, update: Update) -> None:
        return None

    async def run_as_reply(self, update: Update) -> None:
        return None

    @property
    def waiting_for_reply(self) -> bool:
        return self.state.waiting_for_reply

    @waiting_for_reply.setter
    def waiting_for_reply(self, value: bool) -> None:
        self.state.waiting_for_reply = value

    def is_command(self, name: str, update: Update) -> bool:
        msg = update.message
        if msg is None or msg.text is None:
            return False
        return simple_command(name, msg.text, self.bot.username)

    def get(self, key: str, default: Any = None) -> Any:
        return self.bot.config.get(key, default)

    def get_typed(self, key: str, type_: type[T], default: T) -> T:
        return self.bot.config.get_typed(key, type_, default)

    async def set(self, key: str, value: Any) -> None:
        await self.bot.config.set(key, value)

    async def update(
        self, key: str, fn: Callable[[Any], Any], default: Any = None
    ) -> Any:
        return await self.bot.config.update(key, fn, default)

    async def reply(self, message: Message, text: str) -> None:
        await self.bot.quick_reply(message, text)


class CommandRegistry:
    """Registered commands in registration order."""

    def __init__(self) -> None:
        self._states: list[CommandState] = []

    def register(self, command: Command) -> CommandState:
        state = CommandState(command=command)
        self._states.append(state)
        logger.debug("commands.registered", command=type(command).__name__)
        return state

    def __iter__(self) -> Iterator[CommandState]:
        return iter(self._states)

    def __len__(self) -> int:
        return len(self._states)

    @property
    def states(self) -> tuple[CommandState, ...]:
        return tuple(self._states)

    def commands(self) -> list[Command]:
        return [state.command for state in self._states]

    def help_entries(self) -> list[Help]:
        return [state.command.describe() for state in self._states]


RegisterHook = Callable[[CommandRegistry], None]


def load_command_plugins(
    registry: CommandRegistry,
    *,
    names: list[str] | None = None,
) -> list[str]:
    """Run the ``register`` hook of installed command plugins.

    With ``names`` only those plugins run, in the given order. Otherwise
    every plugin runs in entry point name order.
    """
    available = {ep.name: ep for ep in entry_points(group=COMMAND_GROUP)}
    if names is None:
        selected = [available[name] for name in sorted(available)]
    else:
        selected = []
        for name in names:
            ep = available.get(name)
            if ep is None:
                logger.warning("commands.plugin_missing", plugin=name)
                continue
            selected.append(ep)
    loaded: list[str] = []
    for ep in selected:
        try:
            hook: RegisterHook = ep.load()
            hook(registry)
        except Exception as exc:
            logger.error(
                "commands.plugin_load_failed",
                plugin=ep.name,
                value=ep.value,
                error=str(exc),
                error_type=exc.__class__.__name__,
            )
            continue
        loaded.append(ep.name)
    return loaded


def simple_command(name: str, text: str, username: str | None = None) -> bool:
    """Check whether ``text`` starts with ``/name`` or ``/name@username``."""
    if not text.startswith("/"):
        return False
    token = text.split(maxsplit=1)[0][1:]
    command, _, target = token.partition("@")
    if command.lower() != name.lower():
        return False
    if not target:
        return True
    if username is None:
        return False
    return target.lower() == username.lstrip("@").lower()
