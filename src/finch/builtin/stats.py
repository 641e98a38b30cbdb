from __future__ import annotations

from typing import TYPE_CHECKING

from ..commands import CommandBase, CommandRegistry, CommandState, Help
from ..logging import get_logger
from ..model import Update

if TYPE_CHECKING:
    from ..bot import Finch

logger = get_logger(__name__)

STATS_KEY = "stats"


class MessageCounts:
    """Messages seen per sender, shared by the collector and ``/stats``."""

    def __init__(self) -> None:
        self.by_user: dict[str, int] = {}

    def replace(self, counts: dict[str, int]) -> None:
        self.by_user = dict(counts)

    def bump(self, user: str) -> dict[str, int]:
        self.by_user[user] = self.by_user.get(user, 0) + 1
        return dict(self.by_user)


class StatsCollector(CommandBase):
    def __init__(self, counts: MessageCounts) -> None:
        self.counts = counts

    def describe(self) -> Help:
        return Help(name="Stats Collector")

    def init(self, state: CommandState, bot: Finch) -> None:
        super().init(state, bot)
        self.counts.replace(self.get_typed(STATS_KEY, dict[str, int], {}))
        logger.debug("stats.loaded", users=len(self.counts.by_user))

    def should_run(self, update: Update) -> bool:
        return True

    async def run(self, update: Update) -> None:
        msg = update.message
        if msg is None or msg.from_ is None:
            return
        user = str(msg.from_)
        await self.update(STATS_KEY, lambda _current: self.counts.bump(user))


class StatsCommand(CommandBase):
    def __init__(self, counts: MessageCounts) -> None:
        self.counts = counts

    def describe(self) -> Help:
        return Help(
            name="Stats",
            description="Displays some statistics",
            example="/stats@@",
            botfather=(("stats", "Displays some statistics about bot usage"),),
        )

    def should_run(self, update: Update) -> bool:
        return self.is_command("stats", update)

    async def run(self, update: Update) -> None:
        msg = update.message
        if msg is None:
            return
        lines = ["Users seen", ""]
        for user, count in self.counts.by_user.items():
            lines.append(f"{user} - {count}")
        await self.reply(msg, "\n".join(lines) + "\n")


def register(registry: CommandRegistry) -> None:
    counts = MessageCounts()
    registry.register(StatsCollector(counts))
    registry.register(StatsCommand(counts))
