"""Tests for the LLM call wrapper, JSON parsing and providers."""

import io
import json
import urllib.error
from unittest.mock import MagicMock, patch

import pytest

from memman.config import LLMConfig
from memman.lib.llm_clients import call_llm, parse_json_response
from memman.lib.providers import (
    AnthropicLLMProvider,
    LLMResult,
    TestLLMProvider,
    build_llm_provider,
)


def _http_error(code):
    return urllib.error.HTTPError("https://api.example", code, "err", {}, io.BytesIO(b""))


def _flaky(*outcomes):
    provider = MagicMock()
    provider.llm_call.side_effect = list(outcomes)
    return provider


# ---------------------------------------------------------------------------
# call_llm
# ---------------------------------------------------------------------------

class TestCallLLM:

    def test_returns_text_and_duration(self):
        provider = TestLLMProvider('{"ok": true}')
        text, duration = call_llm(provider, "sys", "user", model="m", max_tokens=100)
        assert text == '{"ok": true}'
        assert duration == 0.01
        call = provider.calls[0]
        assert call["messages"] == [{"role": "system", "content": "sys"}, {"role": "user", "content": "user"}]
        assert call["model"] == "m"
        assert call["max_tokens"] == 100

    @patch("memman.lib.llm_clients.time.sleep")
    def test_retries_transient_errors(self, mock_sleep):
        provider = _flaky(TimeoutError("slow"), _http_error(503), LLMResult(text="done", duration=0.1))
        text, _ = call_llm(provider, "s", "u", model="m")
        assert text == "done"
        assert [c.args[0] for c in mock_sleep.call_args_list] == [1.0, 2.0]

    @patch("memman.lib.llm_clients.time.sleep")
    def test_non_retryable_http_error(self, mock_sleep):
        err = _http_error(400)
        provider = _flaky(err)
        with pytest.raises(RuntimeError) as exc_info:
            call_llm(provider, "s", "u", model="m")
        assert exc_info.value.__cause__ is err
        assert provider.llm_call.call_count == 1
        mock_sleep.assert_not_called()

    @patch("memman.lib.llm_clients.time.sleep")
    def test_retries_exhausted(self, mock_sleep):
        provider = _flaky(*[ConnectionError("down")] * 3)
        with pytest.raises(RuntimeError, match="error_type=ConnectionError"):
            call_llm(provider, "s", "u", model="m")
        assert provider.llm_call.call_count == 3

    @patch("memman.lib.llm_clients.time.sleep")
    def test_max_retries_override(self, mock_sleep):
        provider = _flaky(urllib.error.URLError("dns"), LLMResult(text="x", duration=0))
        with pytest.raises(RuntimeError):
            call_llm(provider, "s", "u", model="m", max_retries=0)
        assert provider.llm_call.call_count == 1

    def test_empty_response_is_an_error(self):
        provider = _flaky(LLMResult(text=None, duration=0))
        with pytest.raises(RuntimeError, match="No response"):
            call_llm(provider, "s", "u", model="m")

    def test_truncation_is_logged(self, caplog):
        provider = _flaky(LLMResult(text="partial", duration=0, model="m", truncated=True))
        text, _ = call_llm(provider, "s", "u", model="m")
        assert text == "partial"
        assert "truncated" in caplog.text


class TestParseJsonResponse:

    def test_bare_json(self):
        assert parse_json_response('{"a": 1}') == {"a": 1}

    def test_fenced(self):
        assert parse_json_response('Here:\n```json\n[1, 2]\n```\nDone') == [1, 2]

    def test_prose_around_object(self):
        assert parse_json_response('Sure! {"corrections": []} hope that helps') == {"corrections": []}

    def test_garbage(self, caplog):
        assert parse_json_response("no json here {oops") is None
        assert "parse_json_response failed" in caplog.text

    def test_empty(self):
        assert parse_json_response("") is None


# ---------------------------------------------------------------------------
# providers
# ---------------------------------------------------------------------------

class TestAnthropicProvider:

    def _response(self, payload):
        resp = MagicMock()
        resp.read.return_value = json.dumps(payload).encode()
        resp.__enter__.return_value = resp
        return resp

    @patch("memman.lib.providers.urllib.request.urlopen")
    def test_request_and_result(self, mock_urlopen):
        mock_urlopen.return_value = self._response({
            "content": [{"type": "text", "text": "hello"}, {"type": "tool_use"}],
            "usage": {"input_tokens": 12, "output_tokens": 3},
            "model": "m-1",
            "stop_reason": "max_tokens",
        })
        provider = AnthropicLLMProvider(api_key="sk-test")

        result = provider.llm_call(
            [{"role": "system", "content": "sys"}, {"role": "user", "content": "hi"}],
            "m", max_tokens=64, timeout=5,
        )

        assert (result.text, result.input_tokens, result.output_tokens) == ("hello", 12, 3)
        assert result.model == "m-1"
        assert result.truncated is True
        req = mock_urlopen.call_args[0][0]
        assert req.full_url == AnthropicLLMProvider.ANTHROPIC_API_URL
        assert req.get_header("X-api-key") == "sk-test"
        body = json.loads(req.data)
        assert body["system"] == "sys"
        assert body["messages"] == [{"role": "user", "content": "hi"}]
        assert mock_urlopen.call_args.kwargs["timeout"] == 5

    @patch("memman.lib.providers.urllib.request.urlopen")
    def test_non_object_payload(self, mock_urlopen):
        mock_urlopen.return_value = self._response(["nope"])
        with pytest.raises(RuntimeError, match="non-object"):
            AnthropicLLMProvider(api_key="k").llm_call([{"role": "user", "content": "x"}], "m")

    @patch("memman.lib.providers.urllib.request.urlopen", side_effect=urllib.error.URLError("down"))
    def test_transport_errors_propagate(self, mock_urlopen):
        with pytest.raises(urllib.error.URLError):
            AnthropicLLMProvider(api_key="k").llm_call([{"role": "user", "content": "x"}], "m")

    def test_base_url_override(self):
        provider = AnthropicLLMProvider(api_key="k", base_url="http://localhost:1/v1/messages")
        assert provider._base_url == "http://localhost:1/v1/messages"
        assert provider.is_available()
        assert not AnthropicLLMProvider().is_available()


class TestBuildProvider:

    def test_disabled(self):
        assert build_llm_provider(LLMConfig(enabled=False, api_key="k")) is None

    def test_enabled_without_key(self):
        assert build_llm_provider(LLMConfig(enabled=True)) is None

    def test_enabled(self):
        provider = build_llm_provider(LLMConfig(enabled=True, api_key="k", base_url="http://x"))
        assert isinstance(provider, AnthropicLLMProvider)
        assert provider._base_url == "http://x"
