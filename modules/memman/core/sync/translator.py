"""Tool-specific phrasing and eligibility rules for syncing entries.

Translation is deliberately conservative: only the exact phrases below are
rewritten and everything else stays byte-identical.
"""

import re
from dataclasses import replace
from typing import Tuple

from memman.core.types import Entry, Section

UNIVERSAL = "universal"
PRIMARY_ONLY = "claude_only"
MIRROR_ONLY = "agents_only"

MIN_SYNC_LENGTH = 10

TO_MIRROR: Tuple[Tuple["re.Pattern[str]", str], ...] = (
    (re.compile(r"\bClaude Code should\b", re.IGNORECASE), "The AI assistant should"),
    (re.compile(r"\bTell Claude\b", re.IGNORECASE), "Instruct the AI"),
)

TO_PRIMARY: Tuple[Tuple["re.Pattern[str]", str], ...] = (
    (re.compile(r"\bthe AI assistant should\b", re.IGNORECASE), "Claude Code should"),
    (re.compile(r"\binstruct the AI\b", re.IGNORECASE), "Tell Claude"),
)


def _apply(content: str, table) -> str:
    for pattern, replacement in table:
        content = pattern.sub(replacement, content)
    return content


def translate_to_mirror(entry: Entry) -> Entry:
    return replace(entry, content=_apply(entry.content, TO_MIRROR))


def translate_to_primary(entry: Entry) -> Entry:
    return replace(entry, content=_apply(entry.content, TO_PRIMARY))


def translate_section(section: Section, to_mirror: bool) -> Section:
    fn = translate_to_mirror if to_mirror else translate_to_primary
    entries = [fn(e) for e in section.entries]
    return replace(section, entries=entries, content="\n".join(e.content for e in entries))


def should_sync(entry: Entry, min_length: int = MIN_SYNC_LENGTH) -> bool:
    """False for tool configuration internals and formatting fragments."""
    lower = entry.content.lower()
    if "mcp server" in lower and "claude" in lower:
        return False
    if ".claude/settings" in lower or "hooks:" in lower or "claude_desktop_config" in lower:
        return False
    return len(entry.content.strip()) >= min_length


def categorize_for_sync(entry: Entry) -> str:
    lower = entry.content.lower()
    if any(k in lower for k in (".claude/rules", "auto memory", "memory.md", "claude code hooks")):
        return PRIMARY_ONLY
    if "agents.override" in lower:
        return MIRROR_ONLY
    return UNIVERSAL
