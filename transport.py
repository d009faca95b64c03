# transport.py
# Messaging capabilities the bot core calls, independent of Telethon

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum


class MemberStatus(str, Enum):
    CREATOR = "creator"
    ADMINISTRATOR = "administrator"
    MEMBER = "member"
    RESTRICTED = "restricted"
    LEFT = "left"
    KICKED = "kicked"


JOINED_STATUSES = frozenset({MemberStatus.CREATOR, MemberStatus.ADMINISTRATOR, MemberStatus.MEMBER})


class ButtonKind(str, Enum):
    TEXT = "text"
    CALLBACK = "callback"
    URL = "url"
    REQUEST_PHONE = "request_phone"


@dataclass(frozen=True)
class KeyButton:
    label: str
    kind: ButtonKind = ButtonKind.TEXT
    value: str = ""


@dataclass(frozen=True)
class Keyboard:
    """Transport-neutral description of the buttons attached to a message.

    ``inline`` keyboards live under the message; the others replace the
    user's reply keyboard. ``remove`` hides the reply keyboard.
    """

    rows: tuple[tuple[KeyButton, ...], ...] = field(default_factory=tuple)
    inline: bool = False
    remove: bool = False


class Transport(ABC):
    """Messaging capabilities the bot core relies on.

    Every call may raise ``errors.TransportError``; unreachable recipients
    raise ``errors.RecipientBlocked`` and no-op edits raise
    ``errors.MessageNotModified``.
    """

    @abstractmethod
    async def send_message(self, chat_id: int, text: str, keyboard: Keyboard | None = None) -> int:  # pragma: no cover - interface
        """Send and return the new message id."""

    @abstractmethod
    async def edit_message(
        self, chat_id: int, message_id: int, text: str, keyboard: Keyboard | None = None
    ) -> None:  # pragma: no cover - interface
        ...

    @abstractmethod
    async def delete_message(self, chat_id: int, message_id: int) -> None:  # pragma: no cover - interface
        ...

    @abstractmethod
    async def copy_message(self, to_id: int, from_chat: int, message_id: int) -> None:  # pragma: no cover - interface
        ...

    @abstractmethod
    async def get_membership(self, group_id: str, user_id: int) -> MemberStatus:  # pragma: no cover - interface
        ...

    @abstractmethod
    async def send_file(
        self, chat_id: int, data: bytes, filename: str, caption: str | None = None
    ) -> None:  # pragma: no cover - interface
        """Send ``data`` as a document named ``filename``."""
