import asyncio
import random

import pytest

from takt import CancellationToken, StopReason, backoff_until, forever, jitter_until, until
from takt._core.actions.backoffs import BackoffManager, ExponentialBackoffManager, \
                                        JitteredBackoffManager


@pytest.mark.parametrize('runner', [
    pytest.param(lambda task, token, clock: until(task, 10, token, clock=clock), id='until'),
    pytest.param(lambda task, token, clock: jitter_until(task, 10, 0.5, True, token, clock=clock),
                 id='jitter_until-sliding'),
    pytest.param(lambda task, token, clock: jitter_until(task, 10, 0.5, False, token, clock=clock),
                 id='jitter_until-nonsliding'),
    pytest.param(lambda task, token, clock: backoff_until(
        task, ExponentialBackoffManager(1, 10, None, 2, clock=clock), True, token), id='backoff_until'),
])
async def test_cancelled_token_prevents_any_runs(fakeclock, token, runner):
    calls = []
    token.cancel()
    await runner(lambda: calls.append(1), token, fakeclock)
    assert not calls
    assert fakeclock.timers == 0


async def test_sliding_period_is_counted_from_the_task_end(fakeclock, token, starts, stepper):

    async def task():
        starts.append(fakeclock.now())
        fakeclock.step(3)

    loop_task = asyncio.create_task(until(task, 10, token, clock=fakeclock))
    await stepper(fakeclock, 10, 10, 10)
    await fakeclock.wait_for_waiters()
    token.cancel()
    await asyncio.wait_for(loop_task, timeout=1.0)

    assert starts == [0, 13, 26, 39]


async def test_nonsliding_period_includes_the_task_duration(fakeclock, token, starts, stepper):

    async def task():
        starts.append(fakeclock.now())
        fakeclock.step(3)

    loop_task = asyncio.create_task(jitter_until(task, 10, 0, False, token, clock=fakeclock))
    await stepper(fakeclock, 7, 7)
    await fakeclock.wait_for_waiters()
    token.cancel()
    await asyncio.wait_for(loop_task, timeout=1.0)

    assert starts == [0, 10, 20]


async def test_nonsliding_tasks_longer_than_the_period_go_back_to_back(fakeclock, token, starts):

    async def task():
        starts.append(fakeclock.now())
        fakeclock.step(12)
        if len(starts) >= 3:
            token.cancel()

    await asyncio.wait_for(jitter_until(task, 10, 0, False, token, clock=fakeclock), timeout=1.0)

    assert starts == [0, 12, 24]


async def test_backoff_delays_between_the_runs(fakeclock, token, starts, stepper):
    backoff = ExponentialBackoffManager(2, 20, None, 2, clock=fakeclock)

    async def task():
        starts.append(fakeclock.now())

    loop_task = asyncio.create_task(backoff_until(task, backoff, True, token))
    await stepper(fakeclock, 2, 4, 8, 16)
    await fakeclock.wait_for_waiters()
    token.cancel()
    await asyncio.wait_for(loop_task, timeout=1.0)

    assert starts == [0, 2, 6, 14, 30]


async def test_jittered_period_with_the_injected_randomness(fakeclock, token, starts, stepper):
    rng = random.Random()
    rng.random = lambda: 0.5  # type: ignore

    async def task():
        starts.append(fakeclock.now())

    loop_task = asyncio.create_task(jitter_until(task, 10, 0.2, True, token,
                                                 clock=fakeclock, rng=rng))
    await stepper(fakeclock, 10.5)
    assert starts == [0]

    fakeclock.step(0.5)
    await fakeclock.wait_for_waiters()
    token.cancel()
    await asyncio.wait_for(loop_task, timeout=1.0)

    assert starts == [0, 11]


async def test_cancellation_while_sleeping_stops_promptly(fakeclock, token):
    calls = []
    loop_task = asyncio.create_task(until(lambda: calls.append(1), 10, token, clock=fakeclock))
    await fakeclock.wait_for_waiters()

    token.cancel()
    await asyncio.wait_for(loop_task, timeout=1.0)

    assert len(calls) == 1
    assert fakeclock.now() == 0
    assert fakeclock.timers == 0
    assert not token.waiters


async def test_cancellation_during_the_task_prevents_the_sleep(fakeclock, token):
    calls = []

    async def task():
        calls.append(1)
        token.cancel()

    await asyncio.wait_for(until(task, 10, token, clock=fakeclock), timeout=1.0)

    assert len(calls) == 1
    assert fakeclock.timers == 0


async def test_sync_tasks_can_cancel_the_token_from_their_threads(fakeclock, token):
    calls = []

    def task():
        calls.append(1)
        token.cancel(StopReason.EXHAUSTED)

    await asyncio.wait_for(until(task, 10, token, clock=fakeclock), timeout=1.0)

    assert len(calls) == 1
    assert token.is_cancelled(StopReason.EXHAUSTED)


async def test_shared_token_stops_all_loops(fakeclock, token):
    calls = []
    tasks = [
        asyncio.create_task(until(lambda: calls.append(1), 10, token, clock=fakeclock)),
        asyncio.create_task(until(lambda: calls.append(2), 20, token, clock=fakeclock)),
    ]
    await fakeclock.wait_for_waiters(2)

    token.cancel()
    await asyncio.wait_for(asyncio.gather(*tasks), timeout=1.0)

    assert sorted(calls) == [1, 2]
    assert fakeclock.timers == 0


async def test_every_created_timer_is_stopped_or_fired(fakeclock, token, stepper):
    timers = []

    class SpyingBackoff(BackoffManager):
        def next_delay(self) -> float:
            return 5

        def backoff(self):
            timer = super().backoff()
            timers.append(timer)
            return timer

    runs = []
    loop_task = asyncio.create_task(backoff_until(lambda: runs.append(1),
                                                  SpyingBackoff(clock=fakeclock), True, token))
    await stepper(fakeclock, 5, 5)
    await fakeclock.wait_for_waiters()
    token.cancel()
    await asyncio.wait_for(loop_task, timeout=1.0)

    assert len(runs) == 3
    assert len(timers) == 3
    assert not any(timer.is_pending() for timer in timers)
    assert [timer.is_fired() for timer in timers] == [True, True, False]
    assert timers[-1].is_stopped()


async def test_task_failures_are_logged_and_escalated(fakeclock, token, stepper, assert_logs):
    runs = []

    async def task():
        runs.append(1)
        if len(runs) >= 2:
            raise ValueError("boo!")

    loop_task = asyncio.create_task(until(task, 10, token, clock=fakeclock))
    await stepper(fakeclock, 10)
    with pytest.raises(ValueError, match=r"boo!"):
        await asyncio.wait_for(loop_task, timeout=1.0)

    assert len(runs) == 2
    assert fakeclock.timers == 0
    assert_logs([r"Task has failed on run #2: ValueError\('boo!'\)"])


async def test_loop_stopping_is_logged(fakeclock, token, assert_logs, caplog):
    caplog.set_level(0)
    calls = []
    loop_task = asyncio.create_task(until(lambda: calls.append(1), 10, token, clock=fakeclock))
    await fakeclock.wait_for_waiters()
    token.cancel(StopReason.SIGNAL)
    await asyncio.wait_for(loop_task, timeout=1.0)

    assert_logs([
        r"Sleeping for 10.000s after run #1.",
        r"The loop is stopped after 1 run\(s\): StopReason.SIGNAL.",
    ])


async def test_forever_runs_till_the_asyncio_task_is_cancelled(fakeclock, stepper):
    calls = []
    loop_task = asyncio.create_task(forever(lambda: calls.append(1), 10, clock=fakeclock))
    await stepper(fakeclock, 10, 10)
    await fakeclock.wait_for_waiters()

    loop_task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await loop_task

    assert len(calls) == 3
    assert fakeclock.timers == 0


async def test_real_clock_cancellation_is_prompt(timer):
    token = CancellationToken()
    calls = []
    asyncio.get_running_loop().call_later(0.05, token.cancel)
    with timer:
        await asyncio.wait_for(until(lambda: calls.append(1), 10, token), timeout=1.0)

    assert len(calls) == 1
    assert timer.seconds < 0.5


async def test_real_clock_runs_repeatedly():
    token = CancellationToken()
    calls = []

    async def task():
        calls.append(1)
        if len(calls) >= 3:
            token.cancel()

    backoff = JitteredBackoffManager(0.01, 0)
    await asyncio.wait_for(backoff_until(task, backoff, False, token), timeout=1.0)
    assert len(calls) == 3
