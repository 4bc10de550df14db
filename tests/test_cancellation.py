"""
Tests for cooperative cancellation.
"""

import asyncio

import pytest

from spacemolt_agent.agent.cancellation import CancelToken, TurnCancelled


async def answer(value, delay: float = 0):
    await asyncio.sleep(delay)
    return value


@pytest.mark.asyncio
async def test_run_returns_result():
    """Test completed work returns its result."""
    token = CancelToken()

    assert await token.run(answer(42)) == 42


@pytest.mark.asyncio
async def test_run_propagates_errors():
    """Test exceptions from the work are raised unchanged."""

    async def fail():
        raise ValueError("bad input")

    with pytest.raises(ValueError, match="bad input"):
        await CancelToken().run(fail())


@pytest.mark.asyncio
async def test_run_when_already_cancelled():
    """Test a cancelled token refuses new work."""
    token = CancelToken()
    token.cancel()

    with pytest.raises(TurnCancelled):
        await token.run(answer(1))


@pytest.mark.asyncio
async def test_cancel_interrupts_pending_work():
    """Test firing the token aborts in-flight work."""
    token = CancelToken()
    started = asyncio.Event()
    aborted = asyncio.Event()

    async def slow():
        started.set()
        try:
            await asyncio.sleep(10)
        except asyncio.CancelledError:
            aborted.set()
            raise

    async def cancel_soon():
        await started.wait()
        token.cancel()

    canceller = asyncio.create_task(cancel_soon())
    with pytest.raises(TurnCancelled):
        await token.run(slow())
    await canceller

    assert aborted.is_set()
    assert token.cancelled


@pytest.mark.asyncio
async def test_run_timeout():
    """Test work that outlives the timeout raises TimeoutError."""
    with pytest.raises(TimeoutError):
        await CancelToken().run(answer(1, delay=10), timeout=0.01)


@pytest.mark.asyncio
async def test_sleep_ends_early_on_cancel():
    """Test sleeping is interrupted by the token."""
    token = CancelToken()
    loop = asyncio.get_running_loop()
    loop.call_later(0.01, token.cancel)

    with pytest.raises(TurnCancelled):
        await token.sleep(10)
