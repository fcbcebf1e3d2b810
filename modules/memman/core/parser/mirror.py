"""Parser for the mirrored instruction document (AGENTS.md).

Uses a narrower tag vocabulary than the primary parser and never infers
file paths from entry text.
"""

from pathlib import Path
from typing import Union

from memman.core.parser.markdown_doc import parse_markdown, read_text
from memman.core.types import MIRROR, Document

MIRROR_TAG_RULES = (
    (("test",), "testing"),
    (("security", "auth"), "security"),
    (("database", "sql"), "database"),
    (("api", "endpoint"), "api"),
    (("style", "css"), "frontend"),
    (("deploy", "ci"), "devops"),
    (("never", "always", "must"), "rule"),
)


def parse_mirror(text: str, file_path: Union[str, Path] = "AGENTS.md") -> Document:
    return parse_markdown(text, str(file_path), MIRROR, MIRROR_TAG_RULES, infer_paths=False)


def parse_mirror_file(file_path: Union[str, Path]) -> Document:
    return parse_mirror(read_text(file_path) or "", file_path)
