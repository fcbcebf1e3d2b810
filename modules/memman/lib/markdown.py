"""Shared markdown helpers for memman-managed regions.

A managed region is owned by the sync engine and delimited by marker lines::

    <!-- memman:start id=synced -->
    ...
    <!-- memman:end id=synced -->

Used by the document parsers (region detection) and the section writer
(find-and-replace by id).
"""

import re
from typing import List, Optional, Tuple

MANAGED_START_RE = re.compile(r"<!--\s*memman:start\s+id=(\S+)\s*-->")
MANAGED_END_RE = re.compile(r"<!--\s*memman:end\s+id=(\S+)\s*-->")
HEADING_RE = re.compile(r"^(#{1,6})\s+(.+)$")
BULLET_RE = re.compile(r"^(\s*)[-*+]\s+(.+)$")
LEADING_BULLET_RE = re.compile(r"^[-*+]\s")


def start_marker(managed_id: str) -> str:
    return f"<!-- memman:start id={managed_id} -->"


def end_marker(managed_id: str) -> str:
    return f"<!-- memman:end id={managed_id} -->"


def _marker_line_re(kind: str, managed_id: str = r"\S+"):
    # group 1 is the marker, group 2 the id; the marker must fill its line
    return re.compile(
        rf"^[ \t]*(<!--[ \t]*memman:{kind}[ \t]+id=({managed_id})[ \t]*-->)[ \t\r]*$",
        re.MULTILINE,
    )


START_LINE_RE = _marker_line_re("start")


def find_managed_span(content: str, managed_id: str) -> Optional[Tuple[int, int]]:
    """Locate a managed region by id.

    Markers count only on lines of their own, the same rule the document
    parsers apply; a marker quoted inside prose is ordinary text.

    Returns:
        (start, end) character offsets covering both markers, or None when
        either marker is missing or the end marker precedes the start.
    """
    escaped = re.escape(managed_id)
    start = _marker_line_re("start", escaped).search(content)
    if start is None:
        return None
    end = _marker_line_re("end", escaped).search(content, start.end())
    if end is None:
        return None
    return start.start(1), end.end(1)


def managed_ranges(content: str) -> List[Tuple[str, int, int]]:
    """List (id, start, end) for every complete managed region in content."""
    ranges = []
    for match in START_LINE_RE.finditer(content):
        span = find_managed_span(content, match.group(2))
        if span and span[0] == match.start(1):
            ranges.append((match.group(2), span[0], span[1]))
    return ranges


def inject_managed_section(existing: str, managed_id: str, body: str) -> str:
    """Replace the region with ``body``, or append a new region.

    Replacing keeps everything outside the markers byte-identical. Appending
    trims trailing whitespace and leaves exactly one blank line before the
    new start marker. Injecting the same body twice is a no-op the second
    time.
    """
    block = f"{start_marker(managed_id)}\n{body}\n{end_marker(managed_id)}"
    span = find_managed_span(existing, managed_id)
    if span is not None:
        start, end = span
        return existing[:start] + block + existing[end:]

    head = existing.rstrip()
    if not head:
        return block + "\n"
    return f"{head}\n\n{block}\n"


def remove_managed_section(content: str, managed_id: str) -> str:
    """Delete a managed region, collapsing surrounding blank lines to one.

    A missing id returns the content unchanged.
    """
    span = find_managed_span(content, managed_id)
    if span is None:
        return content

    before = content[:span[0]].rstrip()
    after = content[span[1]:].lstrip()
    if before and after:
        return f"{before}\n\n{after}"
    if before:
        return before + "\n"
    return after
