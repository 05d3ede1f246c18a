"""Classify link destinations."""

from __future__ import annotations

from enum import Enum
from typing import TYPE_CHECKING

from bluelink.chat.transcript import DEFAULT_ROLE_HEADER
from bluelink.chat.transcript import is_pending_chat_text

if TYPE_CHECKING:
    from bluelink.store import FileHandle

IMAGE_EXTENSIONS = frozenset({"png", "jpg", "jpeg", "gif", "webp"})
AUDIO_EXTENSIONS = frozenset({"mp3", "wav", "m4a"})

# Only user turns may carry multi-modal input in the outbound request.
MEDIA_ROLES = frozenset({"user"})


class FileCategory(str, Enum):
    """What a link destination is, as far as resolution is concerned."""

    TEXT = "text"
    SECTION = "section"
    IMAGE = "image"
    AUDIO = "audio"
    PENDING_CHAT = "pending-chat"


def is_media_file(handle: FileHandle) -> bool:
    return handle.extension in IMAGE_EXTENSIONS or handle.extension in AUDIO_EXTENSIONS


def classify(
    handle: FileHandle,
    role: str,
    subpath: str | None = None,
    text: str | None = None,
    role_header: str = DEFAULT_ROLE_HEADER,
) -> FileCategory:
    """Decide how a link destination is resolved.

    Media extensions win only for user messages. A subpath makes the link a
    section reference, which is never treated as a pending chat even if the
    whole file is one. ``text`` is the destination's content when already
    read; without it a text file cannot be recognised as a pending chat.

    Args:
        handle: Resolved destination.
        role: Role of the message containing the link.
        subpath: Heading or block subpath from the link, if any.
        text: Destination content, for the pending-chat check.
        role_header: Role header template used to parse transcripts.

    Returns:
        The destination's FileCategory.
    """
    if role in MEDIA_ROLES:
        if handle.extension in IMAGE_EXTENSIONS:
            return FileCategory.IMAGE
        if handle.extension in AUDIO_EXTENSIONS:
            return FileCategory.AUDIO
    if subpath:
        return FileCategory.SECTION
    if text is not None and is_pending_chat_text(text, role_header):
        return FileCategory.PENDING_CHAT
    return FileCategory.TEXT
