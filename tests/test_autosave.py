"""Autosave scheduler: snapshot at tick time, push in the background."""

import asyncio

from exam_session.autosave import AutosaveScheduler
from exam_session.models import AutosaveRequest, WireAnswer
from exam_session.utils.exceptions import NetworkError


class Recorder:
    def __init__(self, fail: int = 0, delay: float = 0.0) -> None:
        self.fail = fail
        self.delay = delay
        self.received = []

    async def __call__(self, payload: AutosaveRequest) -> bool:
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail:
            self.fail -= 1
            raise NetworkError("offline")
        self.received.append(payload)
        return True


def make_builder(state):
    def build() -> AutosaveRequest:
        return AutosaveRequest(
            session_id="s",
            answers={1: WireAnswer(option_id=state["option"])},
            cursor=state["cursor"],
            remaining_seconds=state["remaining"],
        )

    return build


async def test_snapshot_is_taken_when_the_tick_fires():
    state = {"option": 0, "cursor": 0, "remaining": 60}
    push = Recorder(delay=0.01)
    scheduler = AutosaveScheduler(make_builder(state), push, interval=3600, timeout=1)

    task = scheduler.tick()
    state["option"] = 3
    state["cursor"] = 2

    assert await task is True
    assert push.received[0].answers[1].option_id == 0
    assert push.received[0].cursor == 0
    assert scheduler.last_acknowledged == push.received[0]


async def test_failed_push_is_swallowed_and_next_tick_succeeds():
    state = {"option": 1, "cursor": 0, "remaining": 60}
    push = Recorder(fail=1)
    scheduler = AutosaveScheduler(make_builder(state), push, interval=3600, timeout=1)

    assert await scheduler.tick() is False
    assert scheduler.failures == 1
    assert scheduler.last_acknowledged is None

    state["remaining"] = 30
    assert await scheduler.tick() is True
    assert scheduler.last_acknowledged.remaining_seconds == 30


async def test_refused_snapshot_is_not_acknowledged():
    state = {"option": 1, "cursor": 0, "remaining": 60}

    async def refuse(payload):
        return False

    scheduler = AutosaveScheduler(make_builder(state), refuse, interval=3600, timeout=1)

    assert await scheduler.flush() is False
    assert await scheduler.tick() is False
    assert scheduler.failures == 2
    assert scheduler.last_acknowledged is None


async def test_slow_push_times_out_without_raising():
    state = {"option": 1, "cursor": 0, "remaining": 60}
    scheduler = AutosaveScheduler(
        make_builder(state), Recorder(delay=1.0), interval=3600, timeout=0.01
    )

    assert await scheduler.tick() is False
    assert scheduler.failures == 1


async def test_newer_tick_supersedes_a_hanging_push():
    state = {"option": 1, "cursor": 0, "remaining": 60}
    push = Recorder(delay=0.05)
    scheduler = AutosaveScheduler(make_builder(state), push, interval=3600, timeout=1)

    first = scheduler.tick()
    await asyncio.sleep(0)
    state["remaining"] = 30
    second = scheduler.tick()

    assert await second is True
    assert first.cancelled()
    assert [p.remaining_seconds for p in push.received] == [30]


async def test_tick_does_not_block_the_caller():
    state = {"option": 1, "cursor": 0, "remaining": 60}
    push = Recorder(delay=0.05)
    scheduler = AutosaveScheduler(make_builder(state), push, interval=3600, timeout=1)

    task = scheduler.tick()

    assert not task.done()
    assert push.received == []
    await task


async def test_cancelled_scheduler_stops_ticking():
    state = {"option": 1, "cursor": 0, "remaining": 60}
    push = Recorder()
    scheduler = AutosaveScheduler(make_builder(state), push, interval=0.01, timeout=1)
    scheduler.start()
    scheduler.cancel()
    await asyncio.sleep(0.05)

    assert scheduler.tick() is None
    assert push.received == []


async def test_flush_pushes_immediately():
    state = {"option": 2, "cursor": 1, "remaining": 45}
    push = Recorder()
    scheduler = AutosaveScheduler(make_builder(state), push, interval=3600, timeout=1)
    scheduler.cancel()

    assert await scheduler.flush() is True
    assert push.received[0].remaining_seconds == 45
