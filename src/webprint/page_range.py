"""
Page Range Parser
Validates and resolves page selections such as "1,3-5"
"""

import re
from typing import Iterable, List, Optional

from .errors import InvalidRangeSyntax, OutOfRange

RANGE_PATTERN = re.compile(r"^\s*\d+(\s*-\s*\d+)?(\s*,\s*\d+(\s*-\s*\d+)?)*\s*$")

# Upper clamp used when the document's page count is unknown
MAX_PAGE = 10000


def _split_tokens(text: str) -> List[str]:
    return [token.strip() for token in text.split(",")]


def validate_pages(text: Optional[str], total: Optional[int] = None) -> None:
    """
    Strict intake check.

    Raises InvalidRangeSyntax when the text doesn't match the grammar and
    OutOfRange when any page is below 1 or above ``total`` (if known).
    Blank text means "all pages" and is always valid.
    """
    if text is None or not text.strip():
        return

    if not RANGE_PATTERN.match(text):
        raise InvalidRangeSyntax(f"Invalid page range: {text!r}")

    for token in _split_tokens(text):
        if "-" in token:
            start_text, end_text = token.split("-", 1)
            start, end = int(start_text), int(end_text)
            if start > end:
                raise InvalidRangeSyntax(f"Range start is after range end: {token!r}")
            bounds = (start, end)
        else:
            bounds = (int(token),)

        for page in bounds:
            if page < 1:
                raise OutOfRange(f"Page {page} is below 1")
            if total and page > total:
                raise OutOfRange(f"Page {page} is beyond the last page ({total})")


def resolve_pages(text: Optional[str], total: Optional[int] = None) -> Optional[List[int]]:
    """
    Lenient resolution to a strictly increasing page list.

    Malformed tokens, reversed ranges and out-of-bounds pages are dropped.
    Returns None (print all pages) when nothing usable remains.
    """
    if text is None or not text.strip():
        return None

    upper = total if total else MAX_PAGE
    pages = set()

    for token in _split_tokens(text):
        if not token:
            continue
        try:
            if "-" in token:
                start_text, end_text = token.split("-", 1)
                start, end = int(start_text), int(end_text)
            else:
                start = end = int(token)
        except ValueError:
            continue

        if start > end:
            continue

        pages.update(range(max(start, 1), min(end, upper) + 1))

    if not pages:
        return None
    return sorted(pages)


def format_pages(pages: Optional[Iterable[int]]) -> str:
    """Compact form of a resolved page list, e.g. [1, 2, 3, 5] -> "1-3,5"."""
    if not pages:
        return "all"

    ordered = sorted(set(pages))
    parts = []
    run_start = run_end = ordered[0]
    for page in ordered[1:]:
        if page == run_end + 1:
            run_end = page
            continue
        parts.append(str(run_start) if run_start == run_end else f"{run_start}-{run_end}")
        run_start = run_end = page
    parts.append(str(run_start) if run_start == run_end else f"{run_start}-{run_end}")
    return ",".join(parts)
