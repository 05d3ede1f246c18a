"""File I/O helpers."""

from .files import read_bytes_with_retry
from .files import read_with_retry
from .files import write_atomic
from .files import write_with_retry

__all__ = [
    "read_with_retry",
    "read_bytes_with_retry",
    "write_with_retry",
    "write_atomic",
]
