# broadcast.py
# Sequential fan-out of one message to every onboarded user

import asyncio
import logging
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass

from errors import RecipientBlocked

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SourceMessage:
    chat_id: int
    message_id: int


@dataclass
class BroadcastSummary:
    success: int = 0
    failed: int = 0
    blocked: int = 0
    total: int = 0
    processed: int = 0
    cancelled: bool = False

    def as_dict(self) -> dict[str, int]:
        return {"success": self.success, "failed": self.failed, "blocked": self.blocked, "total": self.total}


ProgressCallback = Callable[[BroadcastSummary], Awaitable[None]]


class BroadcastEngine:
    """Copies one message to every recipient, one at a time, with a fixed delay."""

    def __init__(
        self,
        transport,
        *,
        delay: float = 0.05,
        progress_every: int = 50,
        sleep_fn: Callable[[float], Awaitable[None]] | None = None,
        cancel: asyncio.Event | None = None,
    ) -> None:
        self.transport = transport
        self.delay = delay
        self.progress_every = progress_every
        self._sleep = sleep_fn or asyncio.sleep
        self._cancel = cancel or asyncio.Event()

    def cancel(self) -> None:
        self._cancel.set()

    async def broadcast(
        self,
        source: SourceMessage,
        recipients: Iterable[int],
        progress: ProgressCallback | None = None,
        *,
        delay: float | None = None,
        progress_every: int | None = None,
    ) -> BroadcastSummary:
        delay = self.delay if delay is None else delay
        every = progress_every or self.progress_every
        recipients = list(recipients)
        summary = BroadcastSummary(total=len(recipients))

        for recipient in recipients:
            if self._cancel.is_set():
                summary.cancelled = True
                break

            await self._deliver(source, recipient, summary)
            summary.processed += 1

            if progress and summary.processed % every == 0:
                try:
                    await progress(summary)
                except Exception as e:
                    logger.warning(f"⚠️ Broadcast progress report failed: {e}")

            await self._sleep(delay)

        if self._cancel.is_set() and summary.processed < summary.total:
            summary.cancelled = True

        logger.info(
            f"📢 Broadcast {'cancelled' if summary.cancelled else 'done'}: "
            f"{summary.processed}/{summary.total} processed, sent={summary.success} "
            f"failed={summary.failed} blocked={summary.blocked}"
        )
        return summary

    async def _deliver(self, source, recipient, summary):
        try:
            await self.transport.copy_message(recipient, source.chat_id, source.message_id)
        except RecipientBlocked:
            summary.blocked += 1
        except Exception as e:
            summary.failed += 1
            logger.error(f"❌ Failed to send to {recipient}: {e}")
        else:
            summary.success += 1
