"""LLM-backed correction extraction (the optional oracle).

``extract_corrections`` never raises: a missing oracle, a transport error
or an unparseable answer all yield an empty list so the pipeline continues
with pattern results only.
"""

import logging
from typing import Any, List, Optional

from memman.core.contracts.store import ExtractionOracle
from memman.core.correction.detector import ORIGIN_LLM, CorrectionCandidate
from memman.core.types import validate_category
from memman.lib.llm_clients import call_llm, parse_json_response
from memman.lib.providers import LLMProvider, build_llm_provider

logger = logging.getLogger(__name__)

HEAD_CHARS = 25000
TAIL_CHARS = 25000
TRUNCATION_MARKER = "\n...[truncated]...\n"
DEFAULT_CONFIDENCE = 0.5

EXTRACTION_PROMPT = """You are analyzing a coding session transcript to extract corrections made during the session.

A "correction" is when:
1. The user tells the AI it was wrong about something (explicit correction)
2. The user says "actually, use X instead of Y" (preference correction)
3. The AI recognizes its own mistake and fixes it (self-correction)
4. A pattern/convention/command is updated from old to new (implicit correction)

For each correction found, extract:
- incorrect: What was wrong or outdated
- correct: What is right or current
- category: One of: coding_standard, architecture, command, convention, debugging, preference, workflow, dependency, security, testing, correction
- paths: File paths or glob patterns this correction applies to (empty array if global)
- confidence: 0.0-1.0 how confident you are this is a genuine correction

Return ONLY a JSON object with this exact shape:
{
  "corrections": [
    {
      "incorrect": "string",
      "correct": "string",
      "category": "string",
      "paths": ["string"],
      "confidence": 0.0
    }
  ]
}

If no corrections are found, return: { "corrections": [] }"""


def truncate_transcript(transcript: str, head: int = HEAD_CHARS, tail: int = TAIL_CHARS) -> str:
    """Keep the opening and the most recent context of a long transcript."""
    if len(transcript) <= head + tail:
        return transcript
    return transcript[:head] + TRUNCATION_MARKER + transcript[-tail:]


class LLMExtractionOracle:
    """Extraction oracle over an LLM provider. Raises on transport failure."""

    def __init__(self, provider: LLMProvider, max_tokens: int = 2048, timeout: float = 60):
        self.provider = provider
        self.max_tokens = max_tokens
        self.timeout = timeout

    def __call__(self, transcript: str, model: str) -> List[dict]:
        text, _ = call_llm(
            self.provider,
            EXTRACTION_PROMPT,
            f"Transcript to analyze:\n{transcript}",
            model=model,
            max_tokens=self.max_tokens,
            timeout=self.timeout,
        )
        parsed = parse_json_response(text)
        if isinstance(parsed, dict):
            items = parsed.get("corrections")
            return items if isinstance(items, list) else []
        return parsed if isinstance(parsed, list) else []


def oracle_from_config(llm_cfg) -> Optional[LLMExtractionOracle]:
    """Oracle for an enabled LLM config with an API key, else None."""
    provider = build_llm_provider(llm_cfg)
    if provider is None:
        return None
    return LLMExtractionOracle(provider, max_tokens=llm_cfg.max_tokens, timeout=llm_cfg.timeout)


def _confidence(raw: Any) -> float:
    try:
        value = float(raw)
    except (TypeError, ValueError):
        return DEFAULT_CONFIDENCE
    if value != value or not value:  # NaN and 0 read as missing
        return DEFAULT_CONFIDENCE
    return max(0.0, min(1.0, value))


def normalize_extracted(items: List[Any]) -> List[CorrectionCandidate]:
    """Validate raw oracle items; drop those with neither side filled in."""
    candidates = []
    for item in items:
        if not isinstance(item, dict):
            continue
        incorrect = str(item.get("incorrect") or "").strip()
        correct = str(item.get("correct") or "").strip()
        if not incorrect and not correct:
            continue
        paths = item.get("paths")
        candidates.append(CorrectionCandidate(
            incorrect=incorrect,
            correct=correct,
            confidence=_confidence(item.get("confidence")),
            origin=ORIGIN_LLM,
            category=validate_category(item.get("category")),
            paths=[str(p) for p in paths] if isinstance(paths, list) else [],
        ))
    return candidates


def extract_corrections(transcript: str, model: str, oracle: Optional[ExtractionOracle],
                        head: int = HEAD_CHARS, tail: int = TAIL_CHARS) -> List[CorrectionCandidate]:
    if oracle is None or not transcript.strip():
        return []
    try:
        items = oracle(truncate_transcript(transcript, head, tail), model)
    except Exception as e:
        logger.warning("Correction extraction failed, using pattern results only: %s", e)
        return []
    if not isinstance(items, list):
        logger.warning("Correction extraction returned %s, expected a list", type(items).__name__)
        return []
    return normalize_extracted(items)
