"""Retrying LLM call and tolerant JSON extraction for the correction oracle.

``call_llm`` retries transient failures with exponential backoff and raises
RuntimeError once retries run out. The correction extractor is the only
caller and catches that itself, so a dead API never blocks capture.
"""

import json
import logging
import re
import time
import urllib.error
from typing import Any, Iterator, Optional, Tuple

from memman.lib.providers import LLMProvider

logger = logging.getLogger(__name__)

_MAX_RETRIES = 2
_BACKOFF_SECONDS = 1.0
_TRANSIENT_HTTP = frozenset({408, 429, 500, 502, 503, 504, 529})
_FENCE_RE = re.compile(r"```(?:json)?\s*(.*?)```", re.DOTALL)


def _is_transient(exc: Exception) -> bool:
    if isinstance(exc, urllib.error.HTTPError):
        return exc.code in _TRANSIENT_HTTP
    return isinstance(exc, (urllib.error.URLError, TimeoutError, ConnectionError))


def call_llm(provider: LLMProvider, system_prompt: str, user_message: str,
             model: str, max_tokens: int = 2048, timeout: float = 60,
             max_retries: Optional[int] = None) -> Tuple[str, float]:
    """Send one system + user exchange and return (text, duration).

    Raises:
        RuntimeError: when the last attempt fails; ``__cause__`` is the error.
    """
    messages = [
        {"role": "system", "content": system_prompt},
        {"role": "user", "content": user_message},
    ]
    attempts = 1 + (_MAX_RETRIES if max_retries is None else max_retries)
    started = time.time()
    error: Optional[Exception] = None

    for attempt in range(attempts):
        try:
            result = provider.llm_call(messages, model, max_tokens, timeout)
        except Exception as e:
            error = e
        else:
            if result.truncated:
                logger.warning("[llm_clients] %s hit max_tokens; response truncated", result.model or model)
            if result.text is not None:
                return result.text, result.duration
            error = RuntimeError(f"No response text from {type(provider).__name__} for model={model}")

        if attempt + 1 == attempts or not _is_transient(error):
            break
        backoff = _BACKOFF_SECONDS * 2 ** attempt
        logger.warning("[llm_clients] Transient %s on attempt %s/%s; sleeping %.1fs",
                       getattr(error, "code", type(error).__name__), attempt + 1, attempts, backoff)
        time.sleep(backoff)

    logger.error("[llm_clients] Giving up after %.1fs: %s", time.time() - started, error)
    raise RuntimeError(
        f"LLM call failed (model={model}, error_type={type(error).__name__}, error={error})"
    ) from error


def _candidates(text: str) -> Iterator[str]:
    yield text
    for block in _FENCE_RE.findall(text):
        yield block.strip()
    for opener, closer in ("{}", "[]"):
        start, end = text.find(opener), text.rfind(closer)
        if start != -1 and end > start:
            yield text[start:end + 1]


def parse_json_response(text: str) -> Optional[Any]:
    """First JSON value found in a model reply, or None.

    Tries the whole reply, then each fenced block, then the outermost
    ``{...}`` or ``[...]`` span.
    """
    if not text or not text.strip():
        return None
    cleaned = text.strip()
    last_error = None
    for candidate in _candidates(cleaned):
        try:
            return json.loads(candidate)
        except json.JSONDecodeError as e:
            last_error = e
    logger.warning("[llm_clients] parse_json_response failed (%s chars): %s", len(cleaned), last_error)
    return None
