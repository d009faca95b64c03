import asyncio

import pytest

from errors import MessageGone, MessageNotModified, TransportError
from timer import EphemeralRevealTimer, RevealOutcome, RevealState


class Sleeps:
    def __init__(self, on_call=None):
        self.calls = []
        self.on_call = on_call

    async def __call__(self, seconds):
        self.calls.append(seconds)
        if self.on_call:
            self.on_call(len(self.calls))


def render(remaining):
    return f"link valid for {remaining}s", None


def _run(timer, chat_id=1):
    return asyncio.run(timer.reveal(chat_id, render, "expired", "link expired"))


def test_countdown_then_delete(transport):
    sleeps = Sleeps()
    timer = EphemeralRevealTimer(transport, duration=30, tick=10, sleep_fn=sleeps)

    outcome = _run(timer)

    assert outcome == RevealOutcome.DELETED
    assert sleeps.calls == [10, 10, 10]
    assert transport.sent[0][1] == "link valid for 30s"
    assert [text for _, _, text in transport.edits] == ["link valid for 20s", "link valid for 10s"]
    assert transport.deletes == [(1, timer.message_id)]
    assert transport.sent[-1][1] == "link expired"
    assert timer.state == RevealState.EXPIRED


def test_last_step_is_shortened(transport):
    sleeps = Sleeps()
    timer = EphemeralRevealTimer(transport, duration=25, tick=10, sleep_fn=sleeps)

    _run(timer)

    assert sleeps.calls == [10, 10, 5]
    assert sum(sleeps.calls) == 25


def test_unchanged_edit_keeps_counting(transport):
    transport.edit_errors = [MessageNotModified("same"), None]
    timer = EphemeralRevealTimer(transport, duration=30, tick=10, sleep_fn=Sleeps())

    assert _run(timer) == RevealOutcome.DELETED
    assert len(transport.deletes) == 1


def test_failed_edit_aborts(transport):
    transport.edit_errors = [MessageGone("deleted by user")]
    timer = EphemeralRevealTimer(transport, duration=30, tick=10, sleep_fn=Sleeps())

    assert _run(timer) == RevealOutcome.ABORTED
    assert transport.deletes == []
    assert len(transport.sent) == 1


def test_delete_failure_falls_back_to_edit(transport):
    transport.delete_error = TransportError("too old")
    timer = EphemeralRevealTimer(transport, duration=10, tick=10, sleep_fn=Sleeps())

    assert _run(timer) == RevealOutcome.EDITED
    assert transport.edits[-1] == (1, timer.message_id, "expired")
    assert len(transport.sent) == 1


def test_cancel_takes_link_down_early(transport):
    cancel = asyncio.Event()
    sleeps = Sleeps(on_call=lambda n: cancel.set() if n == 1 else None)
    timer = EphemeralRevealTimer(transport, duration=30, tick=10, sleep_fn=sleeps, cancel=cancel)

    assert _run(timer) == RevealOutcome.CANCELLED
    assert sleeps.calls == [10]
    assert transport.edits == []
    assert transport.deletes == [(1, timer.message_id)]
    assert transport.sent[-1][1] == "link expired"


def test_cancel_falls_back_to_expired_edit(transport):
    cancel = asyncio.Event()
    cancel.set()
    transport.delete_error = TransportError("too old")
    timer = EphemeralRevealTimer(transport, duration=30, tick=10, sleep_fn=Sleeps(), cancel=cancel)

    assert _run(timer) == RevealOutcome.CANCELLED
    assert transport.edits == [(1, timer.message_id, "expired")]


def test_timer_is_single_use(transport):
    timer = EphemeralRevealTimer(transport, duration=10, tick=10, sleep_fn=Sleeps())
    _run(timer)

    with pytest.raises(RuntimeError):
        _run(timer)


def test_rejects_non_positive_durations(transport):
    with pytest.raises(ValueError):
        EphemeralRevealTimer(transport, duration=0)
