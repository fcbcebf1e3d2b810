"""Category assignment, pattern/oracle merge and flip-flop detection."""

import re
from dataclasses import dataclass, field
from typing import Iterable, List, Sequence, Tuple

from memman.core.correction.detector import CorrectionCandidate
from memman.core.types import validate_category

MAX_PATH_LENGTH = 100
_PATH_RE = re.compile(r"(?:[\w.-]+/)+[\w.*-]+")

# First match wins
CATEGORY_RULES: Tuple[Tuple[Tuple[str, ...], str], ...] = (
    (("test", "spec"), "testing"),
    (("security", "auth", "csrf"), "security"),
    (("api", "endpoint", "route"), "architecture"),
    (("database", "migration", "query"), "architecture"),
    (("install", "package", "dependency"), "dependency"),
    (("deploy", "build", "ci/cd"), "workflow"),
    (("command", "run ", "npm "), "command"),
    (("style", "naming", "convention"), "coding_standard"),
    (("debug", "error", "fix"), "debugging"),
    (("prefer", "use "), "preference"),
)


@dataclass
class ClassifiedCorrection:
    incorrect: str
    correct: str
    category: str
    confidence: float
    origin: str
    paths: List[str] = field(default_factory=list)
    is_flip_flop: bool = False


def normalize(text: str) -> str:
    return " ".join(text.lower().split())


def pair_key(incorrect: str, correct: str) -> str:
    return normalize(f"{incorrect}|{correct}")


def infer_category(content: str) -> str:
    lower = content.lower()
    for keywords, category in CATEGORY_RULES:
        if any(k in lower for k in keywords):
            return category
    return "correction"


def extract_paths(content: str) -> List[str]:
    return [
        m for m in _PATH_RE.findall(content)
        if not m.startswith("http") and len(m) < MAX_PATH_LENGTH
    ]


def classify_correction(candidate: CorrectionCandidate) -> ClassifiedCorrection:
    """Oracle-assigned category and paths are trusted; otherwise infer them."""
    content = f"{candidate.incorrect} {candidate.correct}"
    if candidate.category:
        category = validate_category(candidate.category)
    else:
        category = infer_category(content)
    paths = list(candidate.paths) if candidate.paths is not None else extract_paths(content)
    return ClassifiedCorrection(
        incorrect=candidate.incorrect,
        correct=candidate.correct,
        category=category,
        confidence=candidate.confidence,
        origin=candidate.origin,
        paths=paths,
    )


def merge_corrections(pattern_results: Sequence[CorrectionCandidate],
                      llm_results: Sequence[CorrectionCandidate]) -> List[ClassifiedCorrection]:
    """Oracle results first; pattern results only for pairs the oracle missed."""
    merged: List[ClassifiedCorrection] = []
    seen = set()
    for candidate in [*llm_results, *pattern_results]:
        key = pair_key(candidate.incorrect, candidate.correct)
        if key in seen:
            continue
        seen.add(key)
        merged.append(classify_correction(candidate))
    return merged


def detect_flip_flop(correction, existing: Iterable) -> bool:
    """True if some existing correction is the exact reverse of this one."""
    incorrect, correct = normalize(correction.incorrect), normalize(correction.correct)
    return any(
        normalize(e.correct) == incorrect and normalize(e.incorrect) == correct
        for e in existing
    )
