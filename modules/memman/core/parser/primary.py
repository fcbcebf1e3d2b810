"""Parser for the primary instruction document (CLAUDE.md)."""

from pathlib import Path
from typing import Union

from memman.core.parser.markdown_doc import parse_markdown, read_text
from memman.core.types import PRIMARY, Document

PRIMARY_TAG_RULES = (
    (("test",), "testing"),
    (("security", "auth"), "security"),
    (("database", "sql", "migration"), "database"),
    (("api", "endpoint", "route"), "api"),
    (("style", "css", "tailwind"), "frontend"),
    (("deploy", "ci", "docker"), "devops"),
    (("never", "always", "must"), "rule"),
)


def parse_primary(text: str, file_path: Union[str, Path] = "CLAUDE.md") -> Document:
    """Parse primary-document text; entries carry inferred paths."""
    return parse_markdown(text, str(file_path), PRIMARY, PRIMARY_TAG_RULES, infer_paths=True)


def parse_primary_file(file_path: Union[str, Path]) -> Document:
    """Parse a primary document from disk; a missing file is an empty document."""
    return parse_primary(read_text(file_path) or "", file_path)
