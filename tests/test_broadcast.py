import asyncio

from broadcast import BroadcastEngine, SourceMessage
from errors import RecipientBlocked, TransportError

SOURCE = SourceMessage(chat_id=900, message_id=42)


class Sleeps:
    def __init__(self):
        self.calls = []

    async def __call__(self, seconds):
        self.calls.append(seconds)


def test_blocked_recipients_are_counted_separately(transport):
    transport.copy_errors[2] = RecipientBlocked("blocked")
    engine = BroadcastEngine(transport, delay=0.05, sleep_fn=Sleeps())

    summary = asyncio.run(engine.broadcast(SOURCE, [1, 2, 3]))

    assert summary.as_dict() == {"success": 2, "failed": 0, "blocked": 1, "total": 3}
    assert transport.copies == [(1, 900, 42), (3, 900, 42)]


def test_other_errors_count_as_failed(transport):
    transport.copy_errors[1] = TransportError("flood")
    transport.copy_errors[3] = ValueError("boom")
    engine = BroadcastEngine(transport, sleep_fn=Sleeps())

    summary = asyncio.run(engine.broadcast(SOURCE, [1, 2, 3]))

    assert (summary.success, summary.failed, summary.blocked) == (1, 2, 0)
    assert summary.processed == 3
    assert not summary.cancelled


def test_delay_after_each_recipient(transport):
    sleeps = Sleeps()
    engine = BroadcastEngine(transport, delay=0.05, sleep_fn=sleeps)

    asyncio.run(engine.broadcast(SOURCE, [1, 2, 3, 4]))

    assert sleeps.calls == [0.05] * 4


def test_progress_reported_every_n(transport):
    reports = []

    async def progress(summary):
        reports.append(summary.processed)
        if summary.processed == 4:
            raise RuntimeError("progress message deleted")

    engine = BroadcastEngine(transport, progress_every=2, sleep_fn=Sleeps())

    summary = asyncio.run(engine.broadcast(SOURCE, range(1, 6), progress))

    assert reports == [2, 4]
    assert summary.success == 5


def test_empty_recipient_list(transport):
    summary = asyncio.run(BroadcastEngine(transport, sleep_fn=Sleeps()).broadcast(SOURCE, []))

    assert summary.as_dict() == {"success": 0, "failed": 0, "blocked": 0, "total": 0}


def test_cancel_stops_remaining_recipients(transport):
    cancel = asyncio.Event()
    engine = BroadcastEngine(transport, sleep_fn=Sleeps(), cancel=cancel)

    async def progress(summary):
        engine.cancel()

    summary = asyncio.run(engine.broadcast(SOURCE, [1, 2, 3, 4], progress, progress_every=2))

    assert summary.cancelled
    assert summary.processed == 2
    assert len(transport.copies) == 2
