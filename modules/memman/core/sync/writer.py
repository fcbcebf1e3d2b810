"""File writers for managed regions and whole documents.

All writes go through ``write_text_atomic`` (temp file in the target
directory, then replace). Writers return whether the file changed so the
sync engine can report what it actually touched.
"""

from pathlib import Path
from tempfile import NamedTemporaryFile
from typing import Iterable, Sequence, Union

from memman.core.parser.markdown_doc import read_text, serialize_sections
from memman.core.types import Entry, Section
from memman.lib.markdown import LEADING_BULLET_RE, inject_managed_section, remove_managed_section


def write_text_atomic(file_path: Union[str, Path], text: str) -> None:
    target = Path(file_path)
    target.parent.mkdir(parents=True, exist_ok=True)
    with NamedTemporaryFile("w", encoding="utf-8", delete=False, dir=str(target.parent)) as tmp:
        tmp.write(text)
        tmp_path = Path(tmp.name)
    tmp_path.replace(target)


def render_entry(content: str) -> str:
    """Entry text as written into a managed region (always a bullet)."""
    return content if LEADING_BULLET_RE.match(content) else f"- {content}"


def format_entries(heading: str, entries: Iterable[Entry]) -> str:
    """Render a heading and entries as a bullet list."""
    lines = []
    if heading:
        lines.append(f"## {heading}")
        lines.append("")
    lines.extend(render_entry(entry.content) for entry in entries)
    return "\n".join(lines)


def write_managed_section(file_path: Union[str, Path], managed_id: str, heading: str,
                          entries: Sequence[Entry]) -> bool:
    """Replace or append the managed region; returns True if the file changed."""
    existing = read_text(file_path) or ""
    updated = inject_managed_section(existing, managed_id, format_entries(heading, entries))
    if updated == existing:
        return False
    write_text_atomic(file_path, updated)
    return True


def remove_managed_section_from_file(file_path: Union[str, Path], managed_id: str) -> bool:
    existing = read_text(file_path)
    if existing is None:
        return False
    updated = remove_managed_section(existing, managed_id)
    if updated == existing:
        return False
    write_text_atomic(file_path, updated)
    return True


def write_full_file(file_path: Union[str, Path], sections: Sequence[Section]) -> None:
    """Overwrite a document with the serialized sections."""
    write_text_atomic(file_path, serialize_sections(sections).rstrip("\n") + "\n")
