"""[[wikilink]] scanning."""

from .models import LinkOccurrence
from .models import LinkSyntax
from .parser import parse_link_text
from .parser import scan_links

__all__ = [
    "scan_links",
    "parse_link_text",
    "LinkOccurrence",
    "LinkSyntax",
]
