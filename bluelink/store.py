"""File resolution: link text to readable vault files."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from pathlib import Path
from pathlib import PurePosixPath
from typing import Protocol

from bluelink.io.files import read_bytes_with_retry
from bluelink.io.files import read_with_retry
from bluelink.io.files import write_with_retry

logger = logging.getLogger(__name__)

_HEADING_PATTERN = re.compile(r"^(#{1,6})[ \t]+(.*?)[ \t#]*$")
_FENCE_PATTERN = re.compile(r"^[ \t]*(```|~~~)")
_SKIPPED_DIRS = frozenset({".git", ".obsidian", ".bluelink", ".trash"})


@dataclass(frozen=True)
class FileHandle:
    """A file inside the vault, identified by its vault-relative POSIX path."""

    path: str

    @property
    def name(self) -> str:
        return PurePosixPath(self.path).name

    @property
    def stem(self) -> str:
        return PurePosixPath(self.path).stem

    @property
    def extension(self) -> str:
        """Lowercase extension without the dot ("" when there is none)."""
        return PurePosixPath(self.path).suffix.lstrip(".").lower()

    @property
    def folder(self) -> str:
        parent = str(PurePosixPath(self.path).parent)
        return "" if parent == "." else parent


class FileStoreProtocol(Protocol):
    """What the resolver needs from the environment's file system."""

    def resolve_link(self, target: str, subpath: str | None, source_path: str) -> FileHandle | None:
        """Resolve link text relative to the file containing it, or None if dangling."""
        ...

    async def read_text(self, handle: FileHandle) -> str: ...

    async def read_binary(self, handle: FileHandle) -> bytes: ...

    async def resolve_section(
        self,
        handle: FileHandle,
        subpath: str,
        text: str | None = None,
    ) -> tuple[int, int] | None:
        """Character offsets of a heading or block inside the file's text, or None.

        When ``text`` is given it is the file's already-read content and the
        offsets index into it; the file is not read again.
        """
        ...

    async def write_text(self, handle: FileHandle, content: str) -> None: ...


def find_section(text: str, subpath: str) -> tuple[int, int] | None:
    """Locate a heading section or a block reference in markdown.

    ``"^id"`` selects the paragraph whose last line ends with ``^id``.
    Anything else is a heading path; for nested paths (``"A#B"``) the last
    component is matched, case-insensitively. A heading section runs from its
    heading line to the next heading of the same or higher level.

    Args:
        text: Markdown text.
        subpath: Subpath from the link, without the leading "#".

    Returns:
        (start, end) character offsets, or None if not found.
    """
    if subpath.startswith("^"):
        return _find_block(text, subpath[1:].strip())
    return _find_heading(text, subpath.split("#")[-1].strip())


def _line_spans(text: str) -> list[tuple[int, int]]:
    spans = []
    offset = 0
    for line in text.splitlines(keepends=True):
        spans.append((offset, offset + len(line.rstrip("\r\n"))))
        offset += len(line)
    return spans


def _find_heading(text: str, name: str) -> tuple[int, int] | None:
    wanted = name.lower()
    start: int | None = None
    level = 0
    in_fence = False
    for line_start, line_end in _line_spans(text):
        line = text[line_start:line_end]
        if _FENCE_PATTERN.match(line):
            in_fence = not in_fence
            continue
        if in_fence:
            continue
        match = _HEADING_PATTERN.match(line)
        if not match:
            continue
        this_level = len(match.group(1))
        if start is not None and this_level <= level:
            return (start, line_start)
        if start is None and match.group(2).strip().lower() == wanted:
            start = line_start
            level = this_level
    if start is None:
        return None
    return (start, len(text))


def _find_block(text: str, block_id: str) -> tuple[int, int] | None:
    if not block_id:
        return None
    marker = re.compile(rf"(?:^|\s)\^{re.escape(block_id)}\s*$")
    paragraph_start: int | None = None
    for line_start, line_end in _line_spans(text):
        line = text[line_start:line_end]
        if not line.strip():
            paragraph_start = None
            continue
        if paragraph_start is None:
            paragraph_start = line_start
        if marker.search(line):
            return (paragraph_start, line_end)
    return None


class VaultFileStore:
    """FileStoreProtocol over a directory of markdown notes.

    Link targets resolve the way note apps do: relative to the linking note's
    folder, then the vault root (each also with an implied ``.md``), then the
    shortest vault path whose tail matches the link. Paths escaping the vault
    never resolve.
    """

    def __init__(self, root: Path) -> None:
        self.root = root.resolve()
        self._index: dict[str, list[str]] | None = None

    def handle_for(self, path: Path | str) -> FileHandle:
        """Handle for a file given as an absolute or vault-relative path.

        Raises:
            ValueError: If the path lies outside the vault.
        """
        candidate = Path(path)
        if not candidate.is_absolute():
            candidate = self.root / candidate
        relative = candidate.resolve().relative_to(self.root)
        return FileHandle(relative.as_posix())

    def absolute_path(self, handle: FileHandle) -> Path:
        return self.root / handle.path

    def _name_index(self) -> dict[str, list[str]]:
        if self._index is None:
            index: dict[str, list[str]] = {}
            for path in self.root.rglob("*"):
                relative = path.relative_to(self.root)
                if any(part in _SKIPPED_DIRS for part in relative.parts) or not path.is_file():
                    continue
                index.setdefault(path.name.lower(), []).append(relative.as_posix())
            for paths in index.values():
                paths.sort(key=lambda p: (p.count("/"), len(p), p))
            self._index = index
        return self._index

    def _inside_vault(self, path: Path) -> FileHandle | None:
        try:
            resolved = path.resolve()
            relative = resolved.relative_to(self.root)
            if not resolved.is_file():
                return None
        except (OSError, ValueError):
            return None
        return FileHandle(relative.as_posix())

    def resolve_link(self, target: str, subpath: str | None, source_path: str) -> FileHandle | None:
        target = target.strip().replace("\\", "/")
        if not target:
            return None

        candidates = [target]
        if not target.lower().endswith(".md"):
            candidates.append(f"{target}.md")

        source_folder = FileHandle(source_path).folder
        for base in (self.root / source_folder, self.root):
            for candidate in candidates:
                if handle := self._inside_vault(base / candidate):
                    return handle

        index = self._name_index()
        for candidate in candidates:
            tail = candidate.removeprefix("./").lower()
            for path in index.get(PurePosixPath(candidate).name.lower(), []):
                if path.lower() == tail or path.lower().endswith(f"/{tail}"):
                    return FileHandle(path)

        logger.debug(f"Dangling link [[{target}]] from {source_path}")
        return None

    async def read_text(self, handle: FileHandle) -> str:
        return await read_with_retry(self.absolute_path(handle))

    async def read_binary(self, handle: FileHandle) -> bytes:
        return await read_bytes_with_retry(self.absolute_path(handle))

    async def resolve_section(
        self,
        handle: FileHandle,
        subpath: str,
        text: str | None = None,
    ) -> tuple[int, int] | None:
        if text is None:
            text = await self.read_text(handle)
        return find_section(text, subpath)

    async def write_text(self, handle: FileHandle, content: str) -> None:
        await write_with_retry(self.absolute_path(handle), content)
