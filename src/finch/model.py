from __future__ import annotations

import msgspec

__all__ = [
    "Chat",
    "Message",
    "Update",
    "User",
]


class User(msgspec.Struct, forbid_unknown_fields=False):
    id: int
    is_bot: bool = False
    username: str | None = None
    first_name: str | None = None
    last_name: str | None = None

    def __str__(self) -> str:
        if self.username:
            return self.username
        name = " ".join(part for part in (self.first_name, self.last_name) if part)
        return name or str(self.id)


class Chat(msgspec.Struct, forbid_unknown_fields=False):
    id: int
    type: str = "private"
    title: str | None = None
    username: str | None = None


class Message(msgspec.Struct, forbid_unknown_fields=False):
    message_id: int
    chat: Chat
    from_: User | None = msgspec.field(default=None, name="from")
    date: int | None = None
    text: str | None = None

    def is_command(self) -> bool:
        return bool(self.text) and self.text.startswith("/")

    def command(self) -> str:
        """Name of the leading ``/command``, without the slash or ``@bot`` suffix."""
        if not self.is_command():
            return ""
        token = self.text.split(maxsplit=1)[0]
        return token[1:].split("@", 1)[0]

    def command_arguments(self) -> str:
        if not self.is_command():
            return ""
        parts = self.text.split(maxsplit=1)
        if len(parts) < 2:
            return ""
        return parts[1].strip()


class Update(msgspec.Struct, forbid_unknown_fields=False):
    update_id: int
    message: Message | None = None
