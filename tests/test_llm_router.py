"""Tests for the LLM router and the Ollama client (no network)."""

import pytest
import requests

from vectorsheet.errors import LLMTransportError, RetriableTransportError, TerminalTransportError
from vectorsheet.llm.ollama_client import ollama_chat_with_tools
from vectorsheet.llm.router import (
    _transport_error,
    call_llm_with_tools,
    get_available_providers,
    get_current_config,
    model_for_tier,
    parse_arguments,
)

TOOLS = [
    {
        "name": "sort_data",
        "description": "Sort rows.",
        "parameters": {"type": "object", "properties": {"column": {"type": "string"}}},
    }
]
MESSAGES = [
    {"role": "system", "content": "You are a data analyst assistant."},
    {"role": "user", "content": "sort by sales"},
]


class TestParseArguments:
    def test_dict_passthrough(self):
        args = {"column": "sales"}
        assert parse_arguments(args) is args

    def test_json_text(self):
        assert parse_arguments('{"column": "sales"}') == {"column": "sales"}

    def test_code_fence(self):
        assert parse_arguments('```json\n{"n": 3}\n```') == {"n": 3}

    @pytest.mark.parametrize("raw", [None, "", "   "])
    def test_empty(self, raw):
        assert parse_arguments(raw) == {}

    @pytest.mark.parametrize("raw", ["{not json", "[1, 2]", '"text"'])
    def test_not_an_object(self, raw):
        assert parse_arguments(raw) is None


class TestTransportErrors:
    def test_auth_is_terminal(self):
        err = _transport_error("openai", 401, "bad key")
        assert isinstance(err, TerminalTransportError)
        assert str(err) == "openai API call failed (401): bad key"

    @pytest.mark.parametrize("status", [429, 500, 503])
    def test_retriable_statuses(self, status):
        assert isinstance(_transport_error("anthropic", status, "busy"), RetriableTransportError)

    def test_other_status(self):
        err = _transport_error("openai", 400, "bad request")
        assert type(err) is LLMTransportError
        assert err.status_code == 400


class TestModels:
    def test_defaults(self):
        assert model_for_tier("complex", "anthropic") == "claude-3-5-sonnet-20241022"
        assert model_for_tier("fast", "ollama") == "llama3.1:8b"

    def test_provider_from_env(self, monkeypatch):
        monkeypatch.setenv("VS_LLM_PROVIDER", "ollama")
        assert model_for_tier("complex") == "qwen2.5:14b-instruct"

    def test_complex_override(self, monkeypatch):
        monkeypatch.setenv("VS_COMPLEX_MODEL", "big-model")
        assert model_for_tier("complex", "openai") == "big-model"
        assert model_for_tier("fast", "openai") == "gpt-4o-mini"

    def test_invalid_tier(self):
        with pytest.raises(ValueError):
            model_for_tier("medium", "openai")

    def test_current_config(self, monkeypatch):
        monkeypatch.setenv("VS_LLM_PROVIDER", "ollama")
        config = get_current_config()
        assert config["provider"] == "ollama"
        assert config["fast_model"] == "llama3.1:8b"
        assert "ollama" in config["available_providers"]

    def test_hosted_providers_need_keys(self):
        assert get_available_providers() == ["ollama"]


def test_unsupported_provider():
    with pytest.raises(ValueError, match="Unsupported LLM provider"):
        call_llm_with_tools(MESSAGES, TOOLS, provider="gemini")


# -----------------------------------------------------------------------------
# Ollama client
# -----------------------------------------------------------------------------

class FakeResponse:
    def __init__(self, status_code=200, payload=None, text=""):
        self.status_code = status_code
        self._payload = payload or {}
        self.text = text

    def json(self):
        return self._payload


@pytest.fixture
def fake_post(monkeypatch):
    """Patch requests.post; call with the response (or exception) to produce."""
    calls = []

    def install(response):
        def post(url, json=None, timeout=None):
            calls.append({"url": url, "json": json, "timeout": timeout})
            if isinstance(response, BaseException):
                raise response
            return response

        monkeypatch.setattr(requests, "post", post)
        return calls

    return install


def test_ollama_tool_call(fake_post):
    calls = fake_post(
        FakeResponse(
            payload={
                "message": {
                    "content": "",
                    "tool_calls": [
                        {"function": {"name": "sort_data", "arguments": {"column": "sales", "order": "ascending"}}}
                    ],
                }
            }
        )
    )
    result = ollama_chat_with_tools(MESSAGES, tools=TOOLS, model="llama3.1:8b", max_tokens=256)
    assert result == {
        "content": "",
        "tool_calls": [{"name": "sort_data", "arguments": {"column": "sales", "order": "ascending"}}],
    }
    payload = calls[0]["json"]
    assert calls[0]["url"] == "http://localhost:11434/api/chat"
    assert payload["stream"] is False
    assert payload["tools"][0] == {"type": "function", "function": TOOLS[0]}
    assert payload["options"]["num_ctx"] == 8192
    assert payload["options"]["num_predict"] == 256


def test_ollama_base_url_from_env(fake_post, monkeypatch):
    monkeypatch.setenv("VS_OLLAMA_BASE_URL", "http://gpu-box:11434")
    calls = fake_post(FakeResponse(payload={"message": {"content": "hi"}}))
    result = ollama_chat_with_tools(MESSAGES, tools=TOOLS, model="m")
    assert result == {"content": "hi", "tool_calls": []}
    assert calls[0]["url"] == "http://gpu-box:11434/api/chat"


def test_ollama_connection_error_is_retriable(fake_post):
    fake_post(requests.exceptions.ConnectionError("refused"))
    with pytest.raises(RetriableTransportError, match="network error"):
        ollama_chat_with_tools(MESSAGES, tools=TOOLS, model="m")


def test_ollama_server_error_is_retriable(fake_post):
    fake_post(FakeResponse(status_code=503, text="overloaded"))
    with pytest.raises(RetriableTransportError) as exc_info:
        ollama_chat_with_tools(MESSAGES, tools=TOOLS, model="m")
    assert exc_info.value.status_code == 503
    assert "(503)" in str(exc_info.value)


def test_ollama_client_error(fake_post):
    fake_post(FakeResponse(status_code=404, text="model not found"))
    with pytest.raises(LLMTransportError) as exc_info:
        ollama_chat_with_tools(MESSAGES, tools=TOOLS, model="m")
    assert not isinstance(exc_info.value, RetriableTransportError)


def test_ollama_malformed_response(fake_post):
    fake_post(FakeResponse(payload={"error": "boom"}))
    with pytest.raises(LLMTransportError, match="Unexpected Ollama response"):
        ollama_chat_with_tools(MESSAGES, tools=TOOLS, model="m")


def test_router_normalizes_ollama_reply(fake_post):
    fake_post(
        FakeResponse(
            payload={
                "message": {
                    "content": "ok",
                    "tool_calls": [
                        {"function": {"name": "sort_data", "arguments": {"column": "sales"}}},
                        {"function": {"name": "clear_filter", "arguments": {}}},
                    ],
                }
            }
        )
    )
    reply = call_llm_with_tools(MESSAGES, TOOLS, provider="ollama")
    assert reply.provider == "ollama"
    assert reply.model == "llama3.1:8b"
    assert reply.tool_call.name == "sort_data"
    assert reply.tool_call.arguments == {"column": "sales"}
    assert [c.name for c in reply.extra_tool_calls] == ["clear_filter"]
