from __future__ import annotations

from ..commands import CommandBase, CommandRegistry, Help
from ..model import Update

BOTFATHER_ARG = "botfather"


class HelpCommand(CommandBase):
    def describe(self) -> Help:
        return Help(
            name="Help",
            description="Displays loaded commands and their help text",
            example="/help@@",
            botfather=(("help", "Displays available commands and help information"),),
        )

    def should_run(self, update: Update) -> bool:
        return self.is_command("help", update)

    async def run(self, update: Update) -> None:
        msg = update.message
        if msg is None:
            return
        if msg.command_arguments() == BOTFATHER_ARG:
            text = render_botfather(self.bot.registry)
        else:
            text = render_help(self.bot.registry)
        await self.reply(msg, text)


def render_help(registry: CommandRegistry) -> str:
    parts = ["Loaded commands:\n\n"]
    for entry in registry.help_entries():
        if not entry.description:
            continue
        parts.append(entry.format(full=True))
    return "".join(parts)


def render_botfather(registry: CommandRegistry) -> str:
    lines: list[str] = []
    for entry in registry.help_entries():
        lines.extend(entry.botfather_lines())
    return "\n".join(lines)


def register(registry: CommandRegistry) -> None:
    registry.register(HelpCommand())
