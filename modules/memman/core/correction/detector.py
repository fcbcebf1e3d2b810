"""Pattern-based correction detection.

Candidates are a tagged union over one shape: ``origin`` says which channel
produced them (pattern, edit, llm) and only oracle candidates carry their
own category and paths.
"""

import re
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Tuple

from memman.lib.tokens import jaccard, word_set

ORIGIN_PATTERN = "pattern"
ORIGIN_EDIT = "edit"
ORIGIN_LLM = "llm"

CONTEXT_RADIUS = 200
EDIT_MAX_LINES = 3
EDIT_MIN_SIMILARITY = 0.3
EDIT_MAX_SIMILARITY = 0.95
EDIT_CONFIDENCE_SCALE = 0.6


@dataclass
class CorrectionCandidate:
    incorrect: str
    correct: str
    confidence: float
    origin: str = ORIGIN_PATTERN
    context: str = ""
    category: Optional[str] = None
    paths: Optional[List[str]] = None


_FLAGS = re.IGNORECASE | re.MULTILINE

# (pattern, confidence, match -> (incorrect, correct))
CORRECTION_PATTERNS: Tuple[Tuple["re.Pattern[str]", float, Callable[["re.Match[str]"], Tuple[str, str]]], ...] = (
    # "Actually, use X instead of Y"
    (re.compile(r"(?:actually|no),?\s+(?:use|it'?s|we should use|prefer)\s+(.+?)\s+"
                r"(?:instead of|not|rather than)\s+(.+?)(?:\.|$)", _FLAGS),
     0.8, lambda m: (m.group(2), m.group(1))),
    # "Don't use X, use Y"
    (re.compile(r"(?:don'?t|do not|never)\s+use\s+(.+?),?\s+(?:use|prefer)\s+(.+?)(?:\.|$)", _FLAGS),
     0.85, lambda m: (m.group(1), m.group(2))),
    # "X is wrong, should be Y"
    (re.compile(r"(.+?)\s+(?:is|was)\s+(?:wrong|incorrect|outdated|deprecated),?\s+"
                r"(?:should be|use|it'?s)\s+(.+?)(?:\.|$)", _FLAGS),
     0.75, lambda m: (m.group(1), m.group(2))),
    # "Renamed X to Y"
    (re.compile(r"(?:changed?|renamed?|updated?|replaced?|switched?)\s+(.+?)\s+(?:to|with)\s+(.+?)(?:\.|$)", _FLAGS),
     0.6, lambda m: (m.group(1), m.group(2))),
    # "The correct way is X"
    (re.compile(r"the\s+(?:correct|right|proper)\s+(?:way|approach|method|pattern)\s+(?:is|to)\s+(.+?)(?:\.|$)", _FLAGS),
     0.5, lambda m: ("", m.group(1))),
    # "Stop using X"
    (re.compile(r"(?:stop using|no longer use|deprecated|removed)\s+(.+?)(?:\.|,|$)", _FLAGS),
     0.7, lambda m: (m.group(1), "")),
)


def _context(text: str, index: int, radius: int = CONTEXT_RADIUS) -> str:
    return text[max(0, index - radius):index + radius].strip()


def dedupe_candidates(candidates: List[CorrectionCandidate]) -> List[CorrectionCandidate]:
    seen = set()
    unique = []
    for c in candidates:
        key = f"{c.incorrect}|{c.correct}".lower()
        if key in seen:
            continue
        seen.add(key)
        unique.append(c)
    return unique


def detect_corrections(text: str) -> List[CorrectionCandidate]:
    """Run every template over the text, keeping the first of each (incorrect, correct)."""
    candidates = []
    for pattern, confidence, extract in CORRECTION_PATTERNS:
        for match in pattern.finditer(text):
            incorrect, correct = extract(match)
            candidates.append(CorrectionCandidate(
                incorrect=incorrect.strip(),
                correct=correct.strip(),
                confidence=confidence,
                context=_context(text, match.start()),
            ))
    return dedupe_candidates(candidates)


def line_similarity(a: str, b: str) -> float:
    return jaccard(word_set(a, min_length=2), word_set(b, min_length=2))


def detect_edit_correction(file_path: str, old_content: str, new_content: str) -> List[CorrectionCandidate]:
    """Flag small in-place line rewrites of one file as correction candidates."""
    old_lines = old_content.split("\n")
    new_lines = new_content.split("\n")
    old_set, new_set = set(old_lines), set(new_lines)
    removed = [l for l in old_lines if l not in new_set and l.strip()]
    added = [l for l in new_lines if l not in old_set and l.strip()]

    if not (1 <= len(removed) <= EDIT_MAX_LINES and 1 <= len(added) <= EDIT_MAX_LINES):
        return []

    candidates = []
    for before, after in zip(removed, added):
        sim = line_similarity(before, after)
        if EDIT_MIN_SIMILARITY < sim < EDIT_MAX_SIMILARITY:
            candidates.append(CorrectionCandidate(
                incorrect=before.strip(),
                correct=after.strip(),
                confidence=sim * EDIT_CONFIDENCE_SCALE,
                origin=ORIGIN_EDIT,
                context=f"File: {file_path}",
            ))
    return candidates
