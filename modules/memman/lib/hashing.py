"""Content fingerprints and whole-file hashes.

``content_hash`` identifies an entry (16 hex chars of SHA-256 over the
trimmed text). Truncation is fine for local dedup; it is not a security
boundary. ``file_hash`` covers the untrimmed raw file and is only used for
sync-state drift detection.
"""

import hashlib
from pathlib import Path
from typing import Union

FINGERPRINT_LENGTH = 16


def content_hash(content: str) -> str:
    """Return the 16-char fingerprint of the trimmed text."""
    digest = hashlib.sha256(content.strip().encode("utf-8")).hexdigest()
    return digest[:FINGERPRINT_LENGTH]


def file_hash(content: str) -> str:
    """Return the full SHA-256 hex digest of the raw text."""
    return hashlib.sha256(content.encode("utf-8")).hexdigest()


def hash_file(path: Union[str, Path]) -> str:
    """Hash a file's current content; a missing file hashes as ''."""
    p = Path(path)
    if not p.exists():
        return ""
    return file_hash(p.read_text(encoding="utf-8"))
