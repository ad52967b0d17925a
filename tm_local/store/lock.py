"""Single writer lock over the persisted state of a context."""

import asyncio
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
import fcntl
import logging
import os
from pathlib import Path

from tm_local.exceptions import StoreIOError

_LOGGER = logging.getLogger(__name__)

POLL_INTERVAL = 0.05


class StateLock:
    """Serializes read-modify-write cycles of a context's state files.

    Tasks in this process wait on an asyncio lock. Other processes are excluded
    with an advisory `flock` on the lock file, polled without blocking the
    event loop.
    """

    def __init__(self, path: Path, poll_interval: float = POLL_INTERVAL) -> None:
        """Initialize the lock for the lock file path."""
        self._path = path
        self._poll_interval = poll_interval
        self._lock = asyncio.Lock()

    @property
    def locked(self) -> bool:
        """Return True if a task in this process holds the lock."""
        return self._lock.locked()

    @asynccontextmanager
    async def hold(self) -> AsyncGenerator[None, None]:
        """Hold the lock for the duration of the block."""
        async with self._lock:
            fd = await self._acquire()
            try:
                yield
            finally:
                fcntl.flock(fd, fcntl.LOCK_UN)
                os.close(fd)

    async def _acquire(self) -> int:
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            fd = os.open(self._path, os.O_RDWR | os.O_CREAT, 0o644)
        except OSError as err:
            raise StoreIOError(f"Failed to open lock {self._path}: {err}") from err
        waiting = False
        while True:
            try:
                fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
                return fd
            except BlockingIOError:
                if not waiting:
                    _LOGGER.info("Waiting for another process holding %s", self._path)
                    waiting = True
                try:
                    await asyncio.sleep(self._poll_interval)
                except asyncio.CancelledError:
                    os.close(fd)
                    raise
            except OSError as err:
                os.close(fd)
                raise StoreIOError(f"Failed to lock {self._path}: {err}") from err
