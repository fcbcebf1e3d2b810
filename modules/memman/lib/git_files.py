"""Tracked-file queries backed by git.

Any git failure (not a repository, git missing, timeout) is treated as
"unknown", and unknown means every pattern is reported as existing so that
staleness scoring never penalizes entries it cannot check.
"""

import logging
import re
import subprocess
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Union

logger = logging.getLogger(__name__)

GIT_TIMEOUT = 5


def _git(root: Union[str, Path], *args: str, timeout: float = GIT_TIMEOUT) -> Optional[str]:
    try:
        result = subprocess.run(
            ["git", *args],
            cwd=str(root),
            capture_output=True,
            text=True,
            timeout=timeout,
        )
    except (OSError, subprocess.TimeoutExpired) as e:
        logger.debug("git %s failed: %s", args[0], e)
        return None
    if result.returncode != 0:
        logger.debug("git %s exited %s: %s", args[0], result.returncode, result.stderr.strip())
        return None
    return result.stdout


def glob_to_regex(pattern: str) -> "re.Pattern[str]":
    """Translate a path glob to an anchored regex.

    ``**`` crosses directory separators (``**/`` may match nothing), ``*``
    does not.
    """
    out = []
    i = 0
    while i < len(pattern):
        if pattern.startswith("**/", i):
            out.append("(?:.*/)?")
            i += 3
        elif pattern.startswith("**", i):
            out.append(".*")
            i += 2
        elif pattern[i] == "*":
            out.append("[^/]*")
            i += 1
        else:
            out.append(re.escape(pattern[i]))
            i += 1
    return re.compile("^" + "".join(out) + "$")


def glob_matches(pattern: str, path: str) -> bool:
    if "*" in pattern:
        return bool(glob_to_regex(pattern).match(path))
    return path == pattern or path.startswith(pattern.rstrip("/") + "/")


def list_tracked_files(root: Union[str, Path]) -> Optional[List[str]]:
    """Return tracked paths relative to root, or None when git is unusable."""
    out = _git(root, "ls-files")
    if out is None:
        return None
    return [line for line in out.splitlines() if line]


def check_files_exist(root: Union[str, Path], patterns: Iterable[str]) -> Dict[str, bool]:
    """Report, per pattern, whether any tracked file matches it."""
    patterns = list(patterns)
    tracked = list_tracked_files(root)
    if tracked is None:
        return {p: True for p in patterns}
    return {p: any(glob_matches(p, f) for f in tracked) for p in patterns}


class GitFileChecker:
    """File-existence oracle bound to one project root."""

    def __init__(self, root: Union[str, Path]):
        self.root = Path(root)

    def __call__(self, patterns: Iterable[str]) -> Dict[str, bool]:
        return check_files_exist(self.root, patterns)


def last_modified(root: Union[str, Path], path: str) -> Optional[str]:
    """ISO-8601 author date of the last commit touching path, if any."""
    out = _git(root, "log", "-1", "--format=%aI", "--", path)
    if not out or not out.strip():
        return None
    return out.strip()


def recently_modified_files(root: Union[str, Path], since: str = "7 days ago",
                            limit: int = 50) -> List[str]:
    """Files added or modified in commits since ``since`` (most recent first)."""
    out = _git(root, "log", f"--since={since}", "--diff-filter=AMCR",
               "--name-only", "--pretty=format:")
    if out is None:
        return []
    files: List[str] = []
    for line in out.splitlines():
        line = line.strip()
        if line and line not in files:
            files.append(line)
            if len(files) >= limit:
                break
    return files
