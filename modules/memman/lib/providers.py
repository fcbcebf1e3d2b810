"""Model providers for the optional correction oracle.

    AnthropicLLMProvider: Messages API over urllib with an API key
    TestLLMProvider: canned reply plus a record of every call, for tests

``build_llm_provider`` returns None unless the LLM is enabled and keyed,
which is how the rest of memman knows to stay pattern-only.
"""

import abc
import json
import logging
import time
import urllib.request
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

logger = logging.getLogger(__name__)


@dataclass
class LLMResult:
    text: Optional[str]
    duration: float
    input_tokens: int = 0
    output_tokens: int = 0
    model: str = ""
    truncated: bool = False


class LLMProvider(abc.ABC):
    """One chat-style completion per call."""

    @abc.abstractmethod
    def llm_call(self, messages: list, model: str,
                 max_tokens: int = 2048, timeout: float = 60) -> LLMResult:
        """Complete ``messages`` (dicts with 'role' system|user and 'content')."""

    @abc.abstractmethod
    def is_available(self) -> bool:
        ...


def split_messages(messages: list) -> Tuple[str, str]:
    """Return (system prompt, last user message)."""
    by_role = {m["role"]: m["content"] for m in messages}
    return by_role.get("system", ""), by_role.get("user", "")


def _result_from_payload(data: Any, model: str, started: float) -> LLMResult:
    if not isinstance(data, dict):
        raise RuntimeError(f"Anthropic API returned non-object JSON for model={model}: {type(data).__name__}")
    blocks = data.get("content", [])
    if not isinstance(blocks, list):
        raise RuntimeError(f"Anthropic API returned a malformed content list for model={model}")
    usage = data.get("usage") if isinstance(data.get("usage"), dict) else {}
    texts = [b["text"] for b in blocks
             if isinstance(b, dict) and b.get("type") == "text" and isinstance(b.get("text"), str)]
    return LLMResult(
        text="\n".join(texts).strip(),
        duration=time.time() - started,
        input_tokens=usage.get("input_tokens", 0),
        output_tokens=usage.get("output_tokens", 0),
        model=data.get("model", model),
        truncated=data.get("stop_reason") == "max_tokens",
    )


class AnthropicLLMProvider(LLMProvider):

    ANTHROPIC_API_URL = "https://api.anthropic.com/v1/messages"
    ANTHROPIC_VERSION = "2023-06-01"

    def __init__(self, api_key: str = "", base_url: str = ""):
        self._api_key = api_key
        self._base_url = base_url or self.ANTHROPIC_API_URL

    def is_available(self) -> bool:
        return bool(self._api_key)

    def _request(self, body: Dict[str, Any]) -> urllib.request.Request:
        return urllib.request.Request(
            self._base_url,
            data=json.dumps(body).encode("utf-8"),
            headers={
                "Content-Type": "application/json",
                "x-api-key": self._api_key,
                "anthropic-version": self.ANTHROPIC_VERSION,
            },
            method="POST",
        )

    def llm_call(self, messages, model, max_tokens=2048, timeout=60):
        system_prompt, user_message = split_messages(messages)
        body: Dict[str, Any] = {
            "model": model,
            "max_tokens": max_tokens,
            "messages": [{"role": "user", "content": user_message}],
        }
        if system_prompt:
            body["system"] = system_prompt

        started = time.time()
        try:
            with urllib.request.urlopen(self._request(body), timeout=timeout) as resp:
                data = json.loads(resp.read().decode("utf-8"))
        except Exception as e:
            logger.error("Anthropic request to %s failed: %s", self._base_url, e)
            raise
        return _result_from_payload(data, model, started)


class TestLLMProvider(LLMProvider):
    """Returns one fixed reply and records the calls it received."""
    __test__ = False  # Not a pytest test class

    def __init__(self, response: str = '{"corrections": []}'):
        self.calls: List[dict] = []
        self._response = response

    def is_available(self) -> bool:
        return True

    def llm_call(self, messages, model, max_tokens=2048, timeout=60):
        self.calls.append({"messages": messages, "model": model, "max_tokens": max_tokens})
        return LLMResult(text=self._response, duration=0.01, model=model)


def build_llm_provider(llm_cfg) -> Optional[LLMProvider]:
    """Provider for an enabled, keyed LLMConfig; otherwise None."""
    if not (llm_cfg.enabled and llm_cfg.api_key):
        return None
    return AnthropicLLMProvider(api_key=llm_cfg.api_key, base_url=llm_cfg.base_url)
