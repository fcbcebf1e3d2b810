"""Shared library for memman."""

from .database import open_connection, transaction
from .git_files import check_files_exist, glob_matches
from .hashing import content_hash, file_hash, hash_file
from .markdown import inject_managed_section, remove_managed_section
from .tokens import estimate_tokens, text_similarity

__all__ = [
    # Database
    "open_connection",
    "transaction",
    # Git
    "check_files_exist",
    "glob_matches",
    # Hashing
    "content_hash",
    "file_hash",
    "hash_file",
    # Markdown
    "inject_managed_section",
    "remove_managed_section",
    # Tokens
    "estimate_tokens",
    "text_similarity",
]
