"""Vault file I/O with retry logic and atomic writes.

Notes in synced vaults (OneDrive, Dropbox, iCloud) can raise transient EIO
errors while the sync client hydrates them. Reads and writes retry those with
exponential backoff; every other OSError propagates immediately.
"""

from __future__ import annotations

import asyncio
import contextlib
import errno
import logging
import tempfile
from collections.abc import Callable
from pathlib import Path
from typing import TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


async def _with_retry(
    operation: Callable[[], T],
    path: Path,
    action: str,
    max_retries: int,
    initial_delay: float,
) -> T:
    delay = initial_delay
    for attempt in range(max_retries):
        try:
            return operation()
        except OSError as e:
            if e.errno != errno.EIO or attempt >= max_retries - 1:
                raise
            if attempt == 0:
                logger.warning(
                    f"File I/O error {action} {path} - retrying. "
                    "This may be due to a cloud-synced vault (OneDrive, Dropbox, etc.)."
                )
            await asyncio.sleep(delay)
            delay *= 2
    raise OSError(f"Gave up {action} {path}")


async def read_with_retry(path: Path, max_retries: int = 3, initial_delay: float = 0.1) -> str:
    """Read UTF-8 text, retrying transient sync errors.

    Raises:
        FileNotFoundError: If file doesn't exist.
        OSError: If file can't be read after all retries.
    """
    return await _with_retry(lambda: path.read_text(encoding="utf-8"), path, "reading", max_retries, initial_delay)


async def read_bytes_with_retry(path: Path, max_retries: int = 3, initial_delay: float = 0.1) -> bytes:
    """Read raw bytes, retrying transient sync errors."""
    return await _with_retry(path.read_bytes, path, "reading", max_retries, initial_delay)


async def write_with_retry(path: Path, content: str, max_retries: int = 3, initial_delay: float = 0.1) -> None:
    """Atomically write UTF-8 text, retrying transient sync errors."""
    await _with_retry(lambda: write_atomic(path, content), path, "writing to", max_retries, initial_delay)


def write_atomic(path: Path, content: str) -> None:
    """Write text via temp file + rename so readers never see a partial note.

    Raises:
        OSError: If write or rename fails.
    """
    path.parent.mkdir(parents=True, exist_ok=True)

    temp_path: Path | None = None
    try:
        # Same directory keeps the rename on one filesystem
        with tempfile.NamedTemporaryFile(
            mode="w",
            encoding="utf-8",
            dir=path.parent,
            prefix=f".{path.stem}_",
            suffix=".tmp",
            delete=False,
        ) as tmp_file:
            temp_path = Path(tmp_file.name)
            tmp_file.write(content)
            tmp_file.flush()
        temp_path.replace(path)
    except OSError as e:
        if temp_path:
            with contextlib.suppress(OSError):
                temp_path.unlink()
        raise OSError(e.errno, f"Failed to write atomically to {path}: {e}") from e
