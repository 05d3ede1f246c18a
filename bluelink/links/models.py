"""Data models for wikilink scanning."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class LinkSyntax(str, Enum):
    """Where a wikilink is allowed to appear."""

    LINE = "line"  # link must occupy a whole line
    INLINE = "inline"  # link may appear anywhere in text


@dataclass(frozen=True)
class LinkOccurrence:
    """One wikilink found in a text blob."""

    raw: str  # link as written, e.g. "![[Note#Intro|alias]]"
    target: str  # link path without subpath or alias, e.g. "Note"
    subpath: str | None  # text after the first "#", e.g. "Intro" or "^block1"
    start: int
    end: int
    embed: bool = False  # written with a leading "!"

    @property
    def span(self) -> tuple[int, int]:
        """Half-open offsets of the occurrence in the scanned text."""
        return (self.start, self.end)

    @property
    def link_text(self) -> str:
        """Target plus subpath, as it appears between the brackets minus any alias."""
        if self.subpath is None:
            return self.target
        return f"{self.target}#{self.subpath}"
