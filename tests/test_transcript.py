"""Tests for markdown chat transcripts."""

from __future__ import annotations

import pytest

from bluelink.chat import ChatTranscript
from bluelink.chat import is_pending_chat
from bluelink.chat import is_pending_chat_text
from bluelink.chat import parse_transcript
from bluelink.chat import serialize_transcript
from bluelink.exceptions import TranscriptError


class TestParseTranscript:
    """Tests for parse_transcript."""

    def test_messages_and_pretext(self) -> None:
        """Header lines split the text into messages after the pretext."""
        transcript = parse_transcript("```json\n{}\n```\n# role: system\nBe terse.\n# role: User\nHi")
        assert transcript.valid
        assert transcript.pretext == "```json\n{}\n```"
        assert [(m.role, m.content) for m in transcript.messages] == [("system", "Be terse."), ("user", "Hi")]

    def test_no_headers_is_invalid(self) -> None:
        """Plain notes are not chats."""
        transcript = parse_transcript("just a note")
        assert not transcript.valid
        assert transcript.messages == []
        assert transcript.pretext == "just a note"

    def test_unknown_role_raises(self) -> None:
        with pytest.raises(TranscriptError, match="robot"):
            parse_transcript("# role: robot\nbeep")

    def test_custom_role_header(self) -> None:
        transcript = parse_transcript("## Speaker: user\nhello", role_header="## Speaker: {role}")
        assert [(m.role, m.content) for m in transcript.messages] == [("user", "hello")]

    def test_role_header_requires_placeholder(self) -> None:
        with pytest.raises(ValueError):
            parse_transcript("# role: user\nhello", role_header="# role")


class TestSerializeTranscript:
    """Tests for serialize_transcript."""

    def test_renders_sections(self) -> None:
        transcript = parse_transcript("# role: user\nHello\n# role: assistant\nHi")
        assert serialize_transcript(transcript) == "# role: user\nHello\n\n# role: assistant\nHi\n"

    def test_keeps_pretext(self) -> None:
        transcript = parse_transcript("notes\n# role: user\nHello")
        assert serialize_transcript(transcript) == "notes\n\n# role: user\nHello\n"

    def test_parse_of_serialized_keeps_messages(self) -> None:
        """Serialized transcripts parse back to the same messages."""
        original = ChatTranscript().append_message("user", "one").append_message("assistant", "two")
        assert parse_transcript(serialize_transcript(original)).messages == original.messages


class TestPendingChat:
    """The pending-chat predicate."""

    def test_last_user_turn_is_pending(self) -> None:
        assert is_pending_chat(parse_transcript("# role: user\nHello"))

    def test_empty_last_user_turn_is_pending(self) -> None:
        assert is_pending_chat(parse_transcript("# role: user\nHello\n# role: assistant\nHi\n# role: user\n"))

    def test_answered_chat_is_not_pending(self) -> None:
        assert not is_pending_chat(parse_transcript("# role: user\nHello\n# role: assistant\nHi"))

    def test_plain_note_is_not_pending(self) -> None:
        assert not is_pending_chat_text("no headers here")

    def test_unparseable_text_is_not_pending(self) -> None:
        assert not is_pending_chat_text("# role: robot\nbeep")

    def test_newest_reply(self) -> None:
        transcript = parse_transcript("# role: assistant\nold\n# role: user\nq\n# role: assistant\nnew\n# role: user\n")
        assert transcript.newest_reply == "new"
