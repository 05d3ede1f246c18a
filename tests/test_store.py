"""Tests for the vault file store."""

from __future__ import annotations

from pathlib import Path

import pytest
from conftest import write_notes

from bluelink.store import FileHandle
from bluelink.store import VaultFileStore
from bluelink.store import find_section


class TestFileHandle:
    """Tests for FileHandle path helpers."""

    def test_parts(self) -> None:
        handle = FileHandle("folder/sub/Note.MD")
        assert handle.name == "Note.MD"
        assert handle.stem == "Note"
        assert handle.extension == "md"
        assert handle.folder == "folder/sub"

    def test_root_folder(self) -> None:
        assert FileHandle("Note.md").folder == ""


class TestResolveLink:
    """Link target lookup."""

    def test_implicit_md_extension(self, vault: Path) -> None:
        write_notes(vault, {"Note.md": "x"})
        assert VaultFileStore(vault).resolve_link("Note", None, "Root.md") == FileHandle("Note.md")

    def test_relative_to_source_folder_first(self, vault: Path) -> None:
        """A sibling of the linking note wins over a root-level file."""
        write_notes(vault, {"Note.md": "root", "projects/Note.md": "sibling"})
        store = VaultFileStore(vault)
        assert store.resolve_link("Note", None, "projects/Chat.md") == FileHandle("projects/Note.md")
        assert store.resolve_link("Note", None, "Chat.md") == FileHandle("Note.md")

    def test_name_anywhere_in_vault(self, vault: Path) -> None:
        """Unqualified names fall back to the shallowest match."""
        write_notes(vault, {"a/b/Deep.md": "deep", "a/Deep.md": "shallow"})
        assert VaultFileStore(vault).resolve_link("Deep", None, "Root.md") == FileHandle("a/Deep.md")

    def test_partial_path_match(self, vault: Path) -> None:
        write_notes(vault, {"x/y/Note.md": "one", "z/Note.md": "two"})
        assert VaultFileStore(vault).resolve_link("y/Note", None, "Root.md") == FileHandle("x/y/Note.md")

    def test_media_file(self, vault: Path) -> None:
        write_notes(vault, {"assets/pic.png": b"png"})
        assert VaultFileStore(vault).resolve_link("pic.png", None, "Root.md") == FileHandle("assets/pic.png")

    def test_dangling(self, vault: Path) -> None:
        assert VaultFileStore(vault).resolve_link("Missing", None, "Root.md") is None

    def test_name_too_long_is_dangling(self, vault: Path) -> None:
        """A target the OS cannot even stat is treated as missing."""
        write_notes(vault, {"Good.md": "good"})
        assert VaultFileStore(vault).resolve_link("x" * 300, None, "Root.md") is None

    def test_outside_vault_rejected(self, vault: Path) -> None:
        (vault.parent / "Secret.md").write_text("secret")
        assert VaultFileStore(vault).resolve_link("../Secret", None, "Root.md") is None

    def test_hidden_config_dirs_not_indexed(self, vault: Path) -> None:
        write_notes(vault, {".obsidian/Hidden.md": "x"})
        assert VaultFileStore(vault).resolve_link("Hidden", None, "Root.md") is None


class TestReadWrite:
    """Async reads and atomic writes."""

    @pytest.mark.asyncio
    async def test_round_trip(self, vault: Path) -> None:
        store = VaultFileStore(vault)
        handle = FileHandle("new/Note.md")
        await store.write_text(handle, "héllo")
        assert await store.read_text(handle) == "héllo"
        assert await store.read_binary(handle) == "héllo".encode()

    @pytest.mark.asyncio
    async def test_resolve_section_uses_given_text(self, vault: Path) -> None:
        """Offsets index into the text passed in, not a fresh read of the file."""
        write_notes(vault, {"Notes.md": "# A\none\n# B\ntwo"})
        store = VaultFileStore(vault)
        handle = FileHandle("Notes.md")
        text = "preamble\n# B\nthree"
        start, end = await store.resolve_section(handle, "B", text)
        assert text[start:end] == "# B\nthree"
        assert await store.resolve_section(handle, "B") == (8, 15)

    def test_handle_for(self, vault: Path) -> None:
        store = VaultFileStore(vault)
        assert store.handle_for(vault / "a" / "b.md") == FileHandle("a/b.md")
        assert store.handle_for("a/b.md") == FileHandle("a/b.md")
        with pytest.raises(ValueError):
            store.handle_for(vault.parent / "outside.md")


class TestFindSection:
    """Heading and block lookup."""

    TEXT = "# Intro\nhello\n## Details\nmore\n### Deeper\ndeep\n# Next\nbye\n"

    def test_heading_runs_to_same_or_higher_level(self) -> None:
        start, end = find_section(self.TEXT, "Details")
        assert self.TEXT[start:end] == "## Details\nmore\n### Deeper\ndeep\n"

    def test_heading_is_case_insensitive(self) -> None:
        start, end = find_section(self.TEXT, "intro")
        assert self.TEXT[start:end].startswith("# Intro\nhello\n## Details")

    def test_nested_path_uses_last_component(self) -> None:
        start, end = find_section(self.TEXT, "Intro#Deeper")
        assert self.TEXT[start:end] == "### Deeper\ndeep\n"

    def test_last_heading_runs_to_end(self) -> None:
        start, end = find_section(self.TEXT, "Next")
        assert self.TEXT[start:end] == "# Next\nbye\n"

    def test_headings_in_code_fences_ignored(self) -> None:
        text = "```\n# Fake\n```\n# Real\nyes"
        start, end = find_section(text, "Real")
        assert text[start:end] == "# Real\nyes"
        assert find_section(text, "Fake") is None

    def test_block_reference(self) -> None:
        text = "para one\nstill one ^abc\n\npara two"
        start, end = find_section(text, "^abc")
        assert text[start:end] == "para one\nstill one ^abc"

    def test_missing(self) -> None:
        assert find_section(self.TEXT, "Nope") is None
        assert find_section(self.TEXT, "^nope") is None
