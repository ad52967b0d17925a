"""Tests for the context state lock."""

import asyncio
import pathlib

from tm_local.store import StateLock


async def test_exclusive_within_process(tmp_path: pathlib.Path) -> None:
    """Test that tasks sharing a lock take turns."""
    lock = StateLock(tmp_path / ".lock", poll_interval=0.01)
    events: list[str] = []

    async def worker(name: str) -> None:
        async with lock.hold():
            events.append(f"{name}-in")
            await asyncio.sleep(0.02)
            events.append(f"{name}-out")

    await asyncio.gather(worker("a"), worker("b"))
    assert events == ["a-in", "a-out", "b-in", "b-out"]
    assert not lock.locked


async def test_exclusive_across_holders(tmp_path: pathlib.Path) -> None:
    """Test that a second holder of the lock file waits for the first."""
    first = StateLock(tmp_path / "local" / ".lock", poll_interval=0.01)
    second = StateLock(tmp_path / "local" / ".lock", poll_interval=0.01)
    released = asyncio.Event()
    acquired: list[str] = []

    async def hold_first() -> None:
        async with first.hold():
            acquired.append("first")
            await asyncio.sleep(0.05)
            released.set()

    async def hold_second() -> None:
        await asyncio.sleep(0.01)
        async with second.hold():
            assert released.is_set()
            acquired.append("second")

    await asyncio.gather(hold_first(), hold_second())
    assert acquired == ["first", "second"]


async def test_released_on_error(tmp_path: pathlib.Path) -> None:
    """Test that the lock is released when the block raises."""
    lock = StateLock(tmp_path / ".lock", poll_interval=0.01)
    try:
        async with lock.hold():
            raise ValueError("boom")
    except ValueError:
        pass
    async with lock.hold():
        assert lock.locked
