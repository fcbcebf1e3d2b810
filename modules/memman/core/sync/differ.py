"""Entry-level diff between two documents.

Entries are matched by fingerprint first. Each remaining source entry is
then paired with its most word-similar unclaimed target (Jaccard over
lowercase words longer than two chars); a pairing above 0.5 is a
modification. Ties go to the earliest target in document order.
"""

from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from memman.core.types import Entry, Section
from memman.lib.hashing import content_hash
from memman.lib.tokens import text_similarity

MODIFIED_THRESHOLD = 0.5


@dataclass
class ModifiedEntry:
    source: Entry
    target: Entry
    similarity: float


@dataclass
class DiffResult:
    added: List[Entry] = field(default_factory=list)
    removed: List[Entry] = field(default_factory=list)
    modified: List[ModifiedEntry] = field(default_factory=list)
    unchanged: List[Entry] = field(default_factory=list)


def flatten_entries(sections: Iterable[Section]) -> List[Entry]:
    """Entries of every user section (managed regions excluded)."""
    return [e for s in sections if not s.managed for e in s.entries]


def _by_hash(entries: Sequence[Entry]) -> Dict[str, Entry]:
    # last write wins on duplicate fingerprints within one side
    return {content_hash(e.content): e for e in entries}


def find_most_similar(entry: Entry, candidates: Dict[str, Entry]) -> Optional[Tuple[str, Entry, float]]:
    best: Optional[Tuple[str, Entry, float]] = None
    for key, candidate in candidates.items():
        sim = text_similarity(entry.content, candidate.content)
        if best is None or sim > best[2]:
            best = (key, candidate, sim)
    return best


def diff_entries(source_entries: Sequence[Entry], target_entries: Sequence[Entry]) -> DiffResult:
    source = _by_hash(source_entries)
    target = _by_hash(target_entries)
    result = DiffResult()

    # Exact matches are settled before any fuzzy pairing can claim their target
    unclaimed = {h: e for h, e in target.items() if h not in source}
    for h, entry in source.items():
        if h in target:
            result.unchanged.append(entry)
            continue
        best = find_most_similar(entry, unclaimed)
        if best is not None and best[2] > MODIFIED_THRESHOLD:
            key, match, sim = best
            result.modified.append(ModifiedEntry(source=entry, target=match, similarity=sim))
            del unclaimed[key]
        else:
            result.added.append(entry)

    result.removed.extend(unclaimed.values())
    return result


def diff_sections(source_sections: Iterable[Section], target_sections: Iterable[Section]) -> DiffResult:
    return diff_entries(flatten_entries(source_sections), flatten_entries(target_sections))
