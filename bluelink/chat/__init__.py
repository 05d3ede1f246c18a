"""Markdown chat transcripts."""

from .transcript import DEFAULT_ROLE_HEADER
from .transcript import ChatMessage
from .transcript import ChatTranscript
from .transcript import is_pending_chat
from .transcript import is_pending_chat_text
from .transcript import parse_transcript
from .transcript import serialize_transcript

__all__ = [
    "DEFAULT_ROLE_HEADER",
    "ChatMessage",
    "ChatTranscript",
    "parse_transcript",
    "serialize_transcript",
    "is_pending_chat",
    "is_pending_chat_text",
]
