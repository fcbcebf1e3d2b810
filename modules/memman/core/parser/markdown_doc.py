"""Line-oriented markdown parser shared by the document variants.

Single forward pass, no backtracking:

- ``<!-- memman:start id=X -->`` flushes the open section and buffers every
  following line verbatim until the matching end marker.
- A heading closes the open section and opens a new one at its level.
- Other non-blank text before any heading opens a level-0 preamble section.
- An end marker outside a managed region is plain text.
- A managed region still open at end of input is closed there.

Entry extraction splits a section on top-level bullets; indented bullets and
plain lines continue the current entry and a blank line ends it. A section
without bullets becomes a single entry.
"""

import re
from pathlib import Path
from typing import List, Optional, Sequence, Tuple, Union

from memman.core.types import Document, Entry, Section
from memman.lib.markdown import (
    BULLET_RE,
    HEADING_RE,
    MANAGED_END_RE,
    MANAGED_START_RE,
    end_marker,
    start_marker,
)

TagRule = Tuple[Tuple[str, ...], str]

# Paths and globs such as src/**/*.ts, tests/**, *.vue
_PATH_TOKEN_RE = re.compile(
    r"(?:^|\s)((?:[\w.-]+/)*[\w.*-]+(?:/\*\*)?(?:/[\w.*-]+)?)",
    re.MULTILINE,
)
MAX_PATH_LENGTH = 100


def read_text(file_path: Union[str, Path]) -> Optional[str]:
    """Return file text, or None when the file does not exist."""
    p = Path(file_path)
    if not p.is_file():
        return None
    return p.read_text(encoding="utf-8")


def extract_tags(content: str, tag_rules: Sequence[TagRule]) -> List[str]:
    """Map keyword hits to coarse topic tags (first-seen order, no dupes)."""
    lower = content.lower()
    tags: List[str] = []
    for keywords, tag in tag_rules:
        if tag not in tags and any(k in lower for k in keywords):
            tags.append(tag)
    return tags


def extract_paths(content: str) -> List[str]:
    """Collect slash- or glob-bearing tokens, skipping URLs and long matches."""
    paths: List[str] = []
    for token in _PATH_TOKEN_RE.findall(content):
        token = token.strip()
        if "/" not in token and "*" not in token:
            continue
        if token.startswith("http") or token.startswith("//"):
            continue
        if len(token) >= MAX_PATH_LENGTH:
            continue
        if token not in paths:
            paths.append(token)
    return paths


def _build_entry(lines: List[str], heading: Optional[str], level: int,
                 tag_rules: Sequence[TagRule], infer_paths: bool) -> Optional[Entry]:
    content = "\n".join(lines).strip()
    if not content:
        return None
    return Entry(
        content=content,
        heading=heading,
        level=level,
        tags=extract_tags(content, tag_rules),
        paths=extract_paths(content) if infer_paths else [],
    )


def extract_entries(content: str, level: int, tag_rules: Sequence[TagRule] = (),
                    infer_paths: bool = False) -> List[Entry]:
    """Split a section's raw text into entries."""
    entries: List[Entry] = []
    current: List[str] = []
    heading: Optional[str] = None

    def flush() -> None:
        entry = _build_entry(current, heading, level, tag_rules, infer_paths)
        if entry is not None:
            entries.append(entry)
        current.clear()

    for line in content.split("\n"):
        heading_match = HEADING_RE.match(line)
        if heading_match:
            if current:
                flush()
            heading = heading_match.group(2).strip()
            continue

        bullet_match = BULLET_RE.match(line)
        if bullet_match:
            if not bullet_match.group(1) and current:
                flush()
            current.append(line)
        elif current and line.strip():
            current.append(line)
        elif current:
            flush()

    if current:
        flush()

    if not entries and content.strip():
        entry = _build_entry([content], heading, level, tag_rules, infer_paths)
        if entry is not None:
            entries.append(entry)
    return entries


def parse_markdown(text: str, file_path: str, doc_type: str,
                   tag_rules: Sequence[TagRule] = (), infer_paths: bool = False) -> Document:
    """Parse raw markdown into a Document of sections and entries."""
    sections: List[Section] = []
    current: Optional[Section] = None
    managed_id: Optional[str] = None
    managed_lines: List[str] = []

    def close_section(section: Section) -> None:
        section.entries = extract_entries(section.content, section.level, tag_rules, infer_paths)
        sections.append(section)

    def close_managed() -> None:
        body = "\n".join(managed_lines)
        heading, level = None, 0
        for buffered in managed_lines:
            m = HEADING_RE.match(buffered)
            if m:
                heading, level = m.group(2).strip(), len(m.group(1))
                break
        sections.append(Section(
            heading=heading,
            level=level,
            content=body,
            entries=extract_entries(body, level, tag_rules, infer_paths),
            managed=True,
            managed_id=managed_id,
        ))

    for line in text.split("\n"):
        stripped = line.strip()

        start_match = MANAGED_START_RE.fullmatch(stripped)
        if start_match:
            if current is not None:
                close_section(current)
                current = None
            if managed_id is not None:
                close_managed()
            managed_id = start_match.group(1)
            managed_lines = []
            continue

        if managed_id is not None:
            if MANAGED_END_RE.fullmatch(stripped):
                close_managed()
                managed_id = None
                managed_lines = []
            else:
                managed_lines.append(line)
            continue

        heading_match = HEADING_RE.match(line)
        if heading_match:
            if current is not None:
                close_section(current)
            current = Section(
                heading=heading_match.group(2).strip(),
                level=len(heading_match.group(1)),
                content=line,
            )
            continue

        if current is not None:
            current.content += "\n" + line
        elif stripped:
            current = Section(heading=None, level=0, content=line)

    if managed_id is not None:
        close_managed()
    elif current is not None:
        close_section(current)

    return Document(sections=sections, raw=text, file_path=str(file_path), type=doc_type)


def serialize_sections(sections: Sequence[Section]) -> str:
    """Inverse of parse_markdown, up to whitespace between sections."""
    parts = []
    for section in sections:
        if section.managed and section.managed_id:
            parts.append(
                f"{start_marker(section.managed_id)}\n{section.content}\n"
                f"{end_marker(section.managed_id)}"
            )
        else:
            parts.append(section.content)
    return "\n\n".join(parts)
