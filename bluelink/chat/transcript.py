"""Parse and render markdown chat transcripts.

A transcript is markdown split into messages by role header lines::

    Optional pretext (kept verbatim, never interpreted)
    # role: system
    You are terse.
    # role: user
    Summarise [[Meeting notes]]

Options blocks in the pretext (JSON or YAML) are carried through untouched.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from dataclasses import field
from typing import Literal

from pydantic import BaseModel
from pydantic import ConfigDict
from pydantic import ValidationError

from bluelink.exceptions import TranscriptError

logger = logging.getLogger(__name__)

DEFAULT_ROLE_HEADER = "# role: {role}"

Role = Literal["system", "developer", "user", "assistant", "tool"]


class ChatMessage(BaseModel):
    """Single message of a markdown transcript."""

    model_config = ConfigDict(extra="forbid")

    role: Role
    content: str = ""


@dataclass
class ChatTranscript:
    """Parsed chat file: pretext plus ordered messages."""

    messages: list[ChatMessage] = field(default_factory=list)
    pretext: str = ""
    valid: bool = True  # False when the markdown had no role headers at all

    @property
    def last_message(self) -> ChatMessage | None:
        return self.messages[-1] if self.messages else None

    @property
    def newest_reply(self) -> str:
        """Content of the most recent assistant message, or "" if none."""
        for message in reversed(self.messages):
            if message.role == "assistant":
                return message.content
        return ""

    def append_message(self, role: Role, content: str) -> ChatTranscript:
        self.messages.append(ChatMessage(role=role, content=content.strip()))
        return self


def role_header_pattern(role_header: str = DEFAULT_ROLE_HEADER) -> re.Pattern[str]:
    """Compile the regex matching a role header line for ``role_header``."""
    if "{role}" not in role_header:
        raise ValueError(f"Role header must contain '{{role}}': {role_header!r}")
    before, after = role_header.split("{role}", 1)
    return re.compile(
        rf"^{re.escape(before)}(\w+){re.escape(after)}[^\S\n]*$",
        re.MULTILINE | re.IGNORECASE,
    )


def parse_transcript(markdown: str, role_header: str = DEFAULT_ROLE_HEADER) -> ChatTranscript:
    """Split markdown into a ChatTranscript.

    Markdown without any role header yields an invalid transcript with no
    messages and the whole text as pretext.

    Args:
        markdown: File content.
        role_header: Header template containing ``{role}``.

    Returns:
        Parsed transcript.

    Raises:
        TranscriptError: If a header names an unknown role.
    """
    matches = list(role_header_pattern(role_header).finditer(markdown))
    if not matches:
        return ChatTranscript(messages=[], pretext=markdown.strip(), valid=False)

    messages: list[ChatMessage] = []
    for index, match in enumerate(matches):
        end = matches[index + 1].start() if index + 1 < len(matches) else len(markdown)
        role = match.group(1).lower()
        try:
            messages.append(ChatMessage(role=role, content=markdown[match.end() : end].strip()))
        except ValidationError as e:
            raise TranscriptError(f"Unknown chat role '{role}'") from e

    return ChatTranscript(messages=messages, pretext=markdown[: matches[0].start()].strip())


def serialize_transcript(transcript: ChatTranscript, role_header: str = DEFAULT_ROLE_HEADER) -> str:
    """Render a transcript back to markdown (pretext, then one section per message)."""
    sections = [f"{role_header.replace('{role}', message.role)}\n{message.content}" for message in transcript.messages]
    body = "\n\n".join(sections)
    if transcript.pretext:
        return f"{transcript.pretext}\n\n{body}\n"
    return f"{body}\n"


def is_pending_chat(transcript: ChatTranscript) -> bool:
    """True when the transcript awaits an assistant reply.

    That is: it has role headers, at least one message, and its last message
    is a user turn. The user turn may be empty.
    """
    last = transcript.last_message
    return transcript.valid and last is not None and last.role == "user"


def is_pending_chat_text(markdown: str, role_header: str = DEFAULT_ROLE_HEADER) -> bool:
    """Pending-chat predicate over raw markdown; unparseable text is not pending."""
    try:
        return is_pending_chat(parse_transcript(markdown, role_header))
    except TranscriptError as e:
        logger.debug(f"Not a chat transcript: {e}")
        return False
