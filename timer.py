# timer.py
# Time-limited reveal of the WhatsApp group link

import asyncio
import logging
from collections.abc import Awaitable, Callable
from enum import Enum

from errors import MessageNotModified, TransportError

logger = logging.getLogger(__name__)


class RevealState(str, Enum):
    IDLE = "idle"
    REVEALED = "revealed"
    EXPIRED = "expired"


class RevealOutcome(str, Enum):
    DELETED = "deleted"          # message deleted, expiry notice sent
    EDITED = "edited"            # delete failed, message replaced by the expired text
    EXPIRY_FAILED = "expiry_failed"
    ABORTED = "aborted"          # countdown edit failed, message likely gone
    CANCELLED = "cancelled"      # stopped early, link taken down anyway


class EphemeralRevealTimer:
    """Shows protected content for ``duration`` seconds, then takes it down.

    One instance handles exactly one reveal. Every ``tick`` seconds the
    message is re-rendered with the remaining time; at zero it is deleted.
    """

    def __init__(
        self,
        transport,
        *,
        duration: int = 60,
        tick: int = 10,
        sleep_fn: Callable[[float], Awaitable[None]] | None = None,
        cancel: asyncio.Event | None = None,
    ) -> None:
        if duration <= 0 or tick <= 0:
            raise ValueError("duration and tick must be positive")
        self.transport = transport
        self.duration = duration
        self.tick = tick
        self._sleep = sleep_fn or asyncio.sleep
        self._cancel = cancel or asyncio.Event()
        self.state = RevealState.IDLE
        self.remaining = duration
        self.message_id = None

    def cancel(self) -> None:
        self._cancel.set()

    async def reveal(self, chat_id, render, expired_text, expired_notice) -> RevealOutcome:
        """
        ``render(remaining)`` returns the (text, keyboard) shown while counting down.
        ``expired_text`` replaces the message if it cannot be deleted;
        ``expired_notice`` is sent as a fresh message after a successful delete.
        """
        if self.state is not RevealState.IDLE:
            raise RuntimeError("a reveal timer can only be used once")

        text, keyboard = render(self.remaining)
        self.message_id = await self.transport.send_message(chat_id, text, keyboard)
        self.state = RevealState.REVEALED

        while self.remaining > 0:
            step = min(self.tick, self.remaining)
            if await self._sleep_or_cancel(step):
                # a cancelled reveal still takes the link down
                self.state = RevealState.EXPIRED
                await self._expire(chat_id, expired_text, expired_notice)
                return RevealOutcome.CANCELLED
            self.remaining -= step

            if self.remaining > 0 and not await self._refresh(chat_id, render):
                self.state = RevealState.EXPIRED
                return RevealOutcome.ABORTED

        self.state = RevealState.EXPIRED
        return await self._expire(chat_id, expired_text, expired_notice)

    async def _sleep_or_cancel(self, seconds) -> bool:
        if self._cancel.is_set():
            return True
        await self._sleep(seconds)
        return self._cancel.is_set()

    async def _refresh(self, chat_id, render) -> bool:
        text, keyboard = render(self.remaining)
        try:
            await self.transport.edit_message(chat_id, self.message_id, text, keyboard)
        except MessageNotModified:
            pass
        except TransportError as e:
            logger.info(f"Reveal message {self.message_id} in {chat_id} was modified or deleted: {e}")
            return False
        return True

    async def _expire(self, chat_id, expired_text, expired_notice) -> RevealOutcome:
        try:
            await self.transport.delete_message(chat_id, self.message_id)
        except TransportError as e:
            logger.error(f"❌ Could not delete reveal message {self.message_id} in {chat_id}: {e}")
            try:
                await self.transport.edit_message(chat_id, self.message_id, expired_text)
            except TransportError as edit_error:
                logger.error(f"❌ Could not mark reveal message {self.message_id} expired: {edit_error}")
                return RevealOutcome.EXPIRY_FAILED
            return RevealOutcome.EDITED

        try:
            await self.transport.send_message(chat_id, expired_notice)
        except TransportError as e:
            logger.warning(f"⚠️ Expiry notice to {chat_id} failed: {e}")
        return RevealOutcome.DELETED
