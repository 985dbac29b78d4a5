from __future__ import annotations

import asyncio

from codeagent_runtime.core.interrupt import CancellationSignal, InterruptCoordinator


def test_no_task_means_no_signal() -> None:
    coord = InterruptCoordinator()

    assert coord.get_cancellation_signal() is None
    assert coord.is_cancelled() is False
    assert coord.is_interrupted() is False


def test_interrupt_cancels_current_signal_and_is_idempotent() -> None:
    coord = InterruptCoordinator()
    signal = coord.start_task()

    coord.interrupt()
    coord.interrupt()

    assert coord.is_interrupted() is True
    assert coord.is_cancelled() is True
    assert signal.cancelled is True
    assert signal() is True


def test_start_task_gives_fresh_signal_and_never_revives_old_one() -> None:
    coord = InterruptCoordinator()
    old = coord.start_task()
    coord.interrupt()

    new = coord.start_task()

    assert new is not old
    assert old.cancelled is True
    assert new.cancelled is False
    assert coord.is_interrupted() is False

    coord.interrupt()
    assert new.cancelled is True


def test_reset_clears_state_but_leaves_old_signal_inert() -> None:
    coord = InterruptCoordinator()
    signal = coord.start_task()

    coord.reset()

    assert coord.get_cancellation_signal() is None
    assert coord.is_interrupted() is False
    coord.interrupt()
    assert signal.cancelled is False


def test_wait_returns_after_cancel() -> None:
    async def _run() -> bool:
        signal = CancellationSignal()
        waiter = asyncio.create_task(signal.wait())
        await asyncio.sleep(0)
        assert not waiter.done()
        signal.cancel()
        await asyncio.wait_for(waiter, timeout=1.0)
        return signal.cancelled

    assert asyncio.run(_run()) is True


def test_wait_on_cancelled_signal_returns_immediately() -> None:
    signal = CancellationSignal()
    signal.cancel()

    asyncio.run(asyncio.wait_for(signal.wait(), timeout=1.0))
