import pytest

from takt import CancellationToken


@pytest.fixture()
def token():
    return CancellationToken(name='test')


@pytest.fixture()
def starts():
    """ The moments of the task starts, as seen by the clock. """
    return []


@pytest.fixture()
def stepper():
    """
    Step the fake clock every time the loop goes to sleep.

    To let the loop run its task after the last step, wait for the waiters once more.
    """
    async def stepper_fn(clock, *seconds):
        for s in seconds:
            await clock.wait_for_waiters()
            clock.step(s)
    return stepper_fn
