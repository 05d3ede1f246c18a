"""Wikilink extraction from text."""

from __future__ import annotations

import re

from .models import LinkOccurrence
from .models import LinkSyntax

# Whole-line links: optional surrounding horizontal whitespace (any unicode
# space except newline), optional "!" embed prefix.
_LINE_PATTERN = re.compile(r"^[^\S\n]*(?P<raw>(?P<bang>!?)\[\[(?P<body>[^\[\]\n]+)\]\])[^\S\n]*$", re.MULTILINE)
_INLINE_PATTERN = re.compile(r"(?P<raw>(?P<bang>!?)\[\[(?P<body>[^\[\]\n]+?)\]\])")


def parse_link_text(body: str) -> tuple[str, str | None]:
    """Split the text between ``[[`` and ``]]`` into target and subpath.

    The alias after ``|`` is dropped. The subpath is everything after the
    first ``#`` (so ``Note#A#B`` yields ``"A#B"``); an empty subpath is
    treated as absent.

    Args:
        body: Link body, e.g. ``"Note#Section|shown text"``.

    Returns:
        Tuple of (target, subpath or None).
    """
    link = body.split("|", 1)[0].strip()
    target, sep, subpath = link.partition("#")
    target = target.strip()
    subpath = subpath.strip()
    if not sep or not subpath:
        return target, None
    return target, subpath


def scan_links(text: str, syntax: LinkSyntax | str = LinkSyntax.LINE) -> list[LinkOccurrence]:
    """Find every wikilink in ``text`` in left-to-right order.

    With ``LinkSyntax.LINE`` a link counts only when it is alone on its line
    (surrounding whitespace tolerated); the occurrence span then covers the
    whole line so splicing replaces the whitespace too. With
    ``LinkSyntax.INLINE`` links may appear anywhere and the span covers just
    the brackets. Matches never overlap.

    Args:
        text: Text to scan.
        syntax: Which link syntax to accept.

    Returns:
        List of LinkOccurrence in document order.
    """
    syntax = LinkSyntax(syntax)
    pattern = _LINE_PATTERN if syntax is LinkSyntax.LINE else _INLINE_PATTERN

    occurrences: list[LinkOccurrence] = []
    for match in pattern.finditer(text):
        target, subpath = parse_link_text(match.group("body"))
        if not target:
            # "[[#Heading]]" points into the current file; not a file link
            continue
        occurrences.append(
            LinkOccurrence(
                raw=match.group("raw"),
                target=target,
                subpath=subpath,
                start=match.start(),
                end=match.end(),
                embed=bool(match.group("bang")),
            )
        )
    return occurrences
