"""Correction pipeline entry points.

- ``process_transcript``: once per session. Pattern detection plus the
  optional oracle, merged, flip-flop checked and persisted.
- ``process_edit`` / ``process_file_edit``: per file edit. Cheap
  line-level detection only.
- ``capture_correction``: explicit capture from a user or tool.

Every new correction is recorded. A confident, non-flip-flop correction is
also promoted to a standing memory entry.
"""

import logging
from typing import List, Optional, Sequence

from memman.core.contracts.store import ExtractionOracle, MemoryStorePort
from memman.core.correction.classifier import detect_flip_flop, merge_corrections
from memman.core.correction.detector import ORIGIN_LLM, detect_corrections, detect_edit_correction
from memman.core.correction.extractor import (
    HEAD_CHARS,
    TAIL_CHARS,
    extract_corrections,
    oracle_from_config,
)
from memman.core.types import CORRECTION_CAPTURE, Correction, MemoryScope, MemorySource, validate_category
from memman.lib.hashing import content_hash

logger = logging.getLogger(__name__)

SOURCE_LLM = "hook_llm"
SOURCE_PATTERN = "hook_pattern"
MANUAL_SOURCES = ("manual", "mcp")
DEFAULT_MODEL = "claude-haiku-4-5-20251001"
MEMORY_THRESHOLD = 0.7
EDIT_THRESHOLD = 0.4


def correction_hash(incorrect: str, correct: str) -> str:
    return content_hash(f"{incorrect}|{correct}")


def memory_content(incorrect: str, correct: str) -> str:
    if incorrect:
        return f'Correction: "{incorrect}" should be "{correct}"'
    return f"Note: {correct}"


def _promote(store: MemoryStorePort, correction: Correction, tags: List[str]) -> str:
    """Link the correction to its memory entry, creating the entry if needed."""
    content = memory_content(correction.incorrect, correction.correct)
    fingerprint = content_hash(content)
    entry = store.get_entry_by_hash(fingerprint)
    if entry is None:
        entry = store.create_entry(
            content=content,
            category=correction.category,
            scope=MemoryScope(level="project"),
            source=MemorySource(type=CORRECTION_CAPTURE),
            content_hash=fingerprint,
            paths=list(correction.paths),
            tags=tags,
        )
    store.link_correction_to_entry(correction.id, entry.id)
    correction.memory_entry_id = entry.id
    return entry.id


def process_transcript(transcript: str, store: MemoryStorePort,
                       oracle: Optional[ExtractionOracle] = None,
                       model: str = DEFAULT_MODEL,
                       session_id: Optional[str] = None,
                       memory_threshold: float = MEMORY_THRESHOLD,
                       head: int = HEAD_CHARS, tail: int = TAIL_CHARS) -> List[Correction]:
    """Detect, merge and persist the corrections of one session transcript.

    Returns the newly recorded corrections (already-known pairs are skipped).
    """
    pattern_results = detect_corrections(transcript)
    llm_results = extract_corrections(transcript, model, oracle, head, tail)
    merged = merge_corrections(pattern_results, llm_results)

    history: List = list(store.get_corrections())
    recorded: List[Correction] = []

    for item in merged:
        pair = correction_hash(item.incorrect, item.correct)
        if store.get_correction_by_hash(pair) is not None:
            continue

        item.is_flip_flop = detect_flip_flop(item, history)
        if item.is_flip_flop:
            logger.info("Flip-flop correction recorded but not promoted: %r -> %r",
                        item.incorrect, item.correct)

        correction = store.create_correction(
            incorrect=item.incorrect,
            correct=item.correct,
            category=item.category,
            confidence=item.confidence,
            source=SOURCE_LLM if item.origin == ORIGIN_LLM else SOURCE_PATTERN,
            content_hash=pair,
            paths=item.paths,
            session_id=session_id,
        )
        if item.confidence >= memory_threshold and not item.is_flip_flop:
            _promote(store, correction, ["correction", "auto-captured"])

        history.append(correction)
        recorded.append(correction)

    logger.info("Transcript processed: %s candidates (%s from oracle), %s new corrections",
                len(merged), len(llm_results), len(recorded))
    return recorded


def process_session(config, store: MemoryStorePort, transcript: str,
                    session_id: Optional[str] = None) -> List[Correction]:
    """``process_transcript`` with oracle and thresholds taken from a MemmanConfig."""
    llm = config.llm
    return process_transcript(
        transcript,
        store,
        oracle=oracle_from_config(llm),
        model=llm.model,
        session_id=session_id,
        memory_threshold=config.correction.memory_threshold,
        head=llm.head_chars,
        tail=llm.tail_chars,
    )


def process_edit(file_path: str, old_content: str, new_content: str, store: MemoryStorePort,
                 session_id: Optional[str] = None,
                 min_confidence: float = EDIT_THRESHOLD) -> List[Correction]:
    """Record small line rewrites of one file as low-confidence corrections."""
    recorded = []
    for candidate in detect_edit_correction(file_path, old_content, new_content):
        if candidate.confidence < min_confidence:
            continue
        pair = correction_hash(candidate.incorrect, candidate.correct)
        if store.get_correction_by_hash(pair) is not None:
            continue
        recorded.append(store.create_correction(
            incorrect=candidate.incorrect,
            correct=candidate.correct,
            category="correction",
            confidence=candidate.confidence,
            source=SOURCE_PATTERN,
            content_hash=pair,
            paths=[file_path],
            session_id=session_id,
        ))
    return recorded


def process_file_edit(config, store: MemoryStorePort, file_path: str, old_content: str,
                      new_content: str, session_id: Optional[str] = None) -> List[Correction]:
    """``process_edit`` gated by the configured edit confidence threshold."""
    return process_edit(file_path, old_content, new_content, store, session_id,
                        min_confidence=config.correction.edit_threshold)


def capture_correction(incorrect: str, correct: str, category: str,
                       paths: Optional[Sequence[str]], source: str, store: MemoryStorePort,
                       session_id: Optional[str] = None) -> Correction:
    """Record an explicit correction at full confidence and promote it."""
    if source not in MANUAL_SOURCES:
        raise ValueError(f"source must be one of {MANUAL_SOURCES}, got {source!r}")
    incorrect, correct = incorrect.strip(), correct.strip()
    if not incorrect and not correct:
        raise ValueError("a correction needs an incorrect or a correct value")

    correction = store.create_correction(
        incorrect=incorrect,
        correct=correct,
        category=validate_category(category),
        confidence=1.0,
        source=source,
        content_hash=correction_hash(incorrect, correct),
        paths=list(paths or []),
        session_id=session_id,
    )
    _promote(store, correction, ["correction", source])
    return correction
