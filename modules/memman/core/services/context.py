"""Context block for hook injection.

Priority order, all inside one token budget:

1. Recent high-confidence corrections
2. Entries matching the free-text query
3. Entries whose path globs match the files being touched

Entries that make it into the block get their use count bumped.
"""

import logging
from typing import List, Optional, Sequence, Set

from memman.core.contracts.store import MemoryStorePort
from memman.lib.markdown import LEADING_BULLET_RE
from memman.lib.tokens import estimate_tokens

logger = logging.getLogger(__name__)

CORRECTION_CONFIDENCE = 0.7
CORRECTION_LIMIT = 5
QUERY_LIMIT = 10


def to_bullet(content: str) -> str:
    return "- " + LEADING_BULLET_RE.sub("", content, count=1)


def build_context(store: MemoryStorePort, query: Optional[str] = None,
                  files: Optional[Sequence[str]] = None, max_tokens: int = 500) -> str:
    """Return the markdown block, or "" when nothing fits.

    An entry appears at most once, under the first section that matches it.
    """
    parts: List[str] = []
    seen: Set[str] = set()
    used = 0

    corrections = store.get_corrections(min_confidence=CORRECTION_CONFIDENCE, limit=CORRECTION_LIMIT)
    if corrections:
        parts.append("## Recent Corrections")
        for c in corrections:
            line = f'- "{c.incorrect}" -> "{c.correct}"' if c.incorrect else f"- {c.correct}"
            cost = estimate_tokens(line)
            if used + cost > max_tokens:
                break
            parts.append(line)
            used += cost

    if query and used < max_tokens:
        matches = store.search_entries(query, QUERY_LIMIT)
        if matches:
            parts.append("\n## Relevant Conventions")
            for entry in matches:
                cost = estimate_tokens(entry.content)
                if used + cost > max_tokens:
                    break
                parts.append(to_bullet(entry.content))
                used += cost
                seen.add(entry.id)
                store.increment_use_count(entry.id, f"context:{query}")

    if files and used < max_tokens:
        matched = [e for e in store.get_entries_by_paths(files) if e.id not in seen]
        if matched:
            parts.append("\n## File-specific Notes")
            for entry in matched:
                cost = estimate_tokens(entry.content)
                if used + cost > max_tokens:
                    break
                parts.append(to_bullet(entry.content))
                used += cost
                seen.add(entry.id)
                store.increment_use_count(entry.id, f"context:path:{','.join(files)}")

    logger.debug("Context block: %s parts, ~%s tokens", len(parts), used)
    return "\n".join(parts) + "\n" if parts else ""
