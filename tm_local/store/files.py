"""Async helpers for reading and atomically replacing state files."""

import logging
from pathlib import Path

import aiofiles
import aiofiles.os

from tm_local.exceptions import StoreIOError

_LOGGER = logging.getLogger(__name__)

# No public API
__all__: list[str] = []


async def read_file(path: Path) -> str:
    """Return the file contents, empty if the file does not exist."""
    try:
        if not await aiofiles.os.path.exists(path):
            return ""
        async with aiofiles.open(str(path)) as state_file:
            return await state_file.read()
    except OSError as err:
        raise StoreIOError(f"Failed to read {path}: {err}") from err


async def atomic_write(path: Path, content: str) -> None:
    """Write the file through a temporary file renamed over the target.

    Readers observe either the old or the new contents, never a partial write.
    """
    tmp_path = path.with_name(f".{path.name}.tmp")
    try:
        await aiofiles.os.makedirs(path.parent, exist_ok=True)
        async with aiofiles.open(str(tmp_path), mode="w") as state_file:
            await state_file.write(content)
            await state_file.flush()
        await aiofiles.os.replace(tmp_path, path)
    except OSError as err:
        try:
            if await aiofiles.os.path.exists(tmp_path):
                await aiofiles.os.remove(tmp_path)
        except OSError as cleanup_err:
            _LOGGER.warning("Failed to remove %s: %s", tmp_path, cleanup_err)
        raise StoreIOError(f"Failed to write {path}: {err}") from err
    _LOGGER.debug("Wrote %s", path)
