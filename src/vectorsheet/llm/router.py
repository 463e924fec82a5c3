"""LLM router for tool-calling requests.

Routes a chat request plus a tool catalog to the configured provider and
normalizes the reply to either free text or a single tool invocation.

Supported providers:
- openai: GPT models via OpenAI function calling (default)
- anthropic: Claude models via Anthropic tool use
- ollama: Local models via the Ollama chat API

Environment variables:
- VS_LLM_PROVIDER: Provider to use (openai, anthropic, ollama)
- VS_OPENAI_API_KEY / OPENAI_API_KEY: OpenAI API key
- VS_ANTHROPIC_API_KEY / ANTHROPIC_API_KEY: Anthropic API key
- VS_COMPLEX_MODEL: Model for complex requests
- VS_FAST_MODEL: Model for simple requests
"""

from __future__ import annotations

import importlib.util
import json
import os
from dataclasses import dataclass, field
from typing import Any

from vectorsheet.config import get_api_key, get_provider
from vectorsheet.errors import LLMTransportError, RetriableTransportError, TerminalTransportError
from vectorsheet.llm.ollama_client import ollama_chat_with_tools

SUPPORTED_PROVIDERS = ("openai", "anthropic", "ollama")

# Default models per provider and tier
DEFAULT_MODELS = {
    "openai": {
        "complex": "gpt-4o",
        "fast": "gpt-4o-mini",
    },
    "anthropic": {
        "complex": "claude-3-5-sonnet-20241022",
        "fast": "claude-3-5-haiku-20241022",
    },
    "ollama": {
        "complex": "qwen2.5:14b-instruct",
        "fast": "llama3.1:8b",
    },
}


@dataclass(frozen=True)
class ToolCall:
    """A single tool invocation returned by the model.

    ``arguments`` is None when the model produced arguments that are not a
    JSON object; ``raw_arguments`` keeps the original text for diagnostics.
    """

    name: str
    arguments: dict[str, Any] | None
    raw_arguments: str = ""


@dataclass(frozen=True)
class LLMReply:
    text: str = ""
    tool_call: ToolCall | None = None
    model: str = ""
    provider: str = ""
    extra_tool_calls: list[ToolCall] = field(default_factory=list)


def model_for_tier(tier: str, provider: str | None = None) -> str:
    """Resolve the model name for a tier ("complex" or "fast")."""
    resolved = (provider or get_provider()).lower()
    if tier not in ("complex", "fast"):
        raise ValueError(f"Invalid tier: {tier}. Must be 'complex' or 'fast'")
    env_name = "VS_COMPLEX_MODEL" if tier == "complex" else "VS_FAST_MODEL"
    override = os.environ.get(env_name)
    if override:
        return override
    return DEFAULT_MODELS.get(resolved, DEFAULT_MODELS["openai"])[tier]


def parse_arguments(raw: Any) -> dict[str, Any] | None:
    """Parse tool arguments into a dict, tolerating markdown code fences."""
    if isinstance(raw, dict):
        return raw
    if raw is None:
        return {}
    text = str(raw).strip()
    if not text:
        return {}
    if text.startswith("```"):
        lines = text.split("\n")[1:]
        if lines and lines[-1].strip().startswith("```"):
            lines = lines[:-1]
        text = "\n".join(lines)
    try:
        parsed = json.loads(text)
    except json.JSONDecodeError:
        return None
    return parsed if isinstance(parsed, dict) else None


def _transport_error(provider: str, status: int | None, detail: str) -> LLMTransportError:
    message = f"{provider} API call failed"
    if status is not None:
        message += f" ({status})"
    message += f": {detail}"
    if status in (401, 403):
        return TerminalTransportError(message, status_code=status, provider=provider)
    if status == 429 or (status is not None and status >= 500):
        return RetriableTransportError(message, status_code=status, provider=provider)
    return LLMTransportError(message, status_code=status, provider=provider)


def _require_key(provider: str) -> str:
    api_key = get_api_key(provider)
    if not api_key:
        env = "VS_OPENAI_API_KEY or OPENAI_API_KEY" if provider == "openai" else (
            "VS_ANTHROPIC_API_KEY or ANTHROPIC_API_KEY"
        )
        raise TerminalTransportError(
            f"{provider} API key not found. Set {env} environment variable.",
            provider=provider,
        )
    return api_key


def _call_openai(
    messages: list[dict[str, str]],
    tools: list[dict[str, Any]],
    model: str,
    temperature: float,
    max_tokens: int | None,
    timeout: int,
) -> LLMReply:
    """Call OpenAI chat completions with function calling."""
    try:
        import openai
    except ImportError:
        raise ImportError(
            "openai package not installed. Install with: pip install 'vectorsheet[llm]'"
        ) from None

    client = openai.OpenAI(api_key=_require_key("openai"), timeout=timeout)
    try:
        response = client.chat.completions.create(
            model=model,
            messages=messages,
            tools=[{"type": "function", "function": decl} for decl in tools],
            tool_choice="auto",
            temperature=temperature,
            max_tokens=max_tokens or 4096,
        )
    except openai.APIStatusError as e:
        raise _transport_error("openai", e.status_code, str(e)) from e
    except openai.APIConnectionError as e:
        raise RetriableTransportError(
            f"openai network error (connection): {e}", provider="openai"
        ) from e

    message = response.choices[0].message
    calls = [
        ToolCall(
            name=tc.function.name,
            arguments=parse_arguments(tc.function.arguments),
            raw_arguments=tc.function.arguments or "",
        )
        for tc in (message.tool_calls or [])
    ]
    return LLMReply(
        text=message.content or "",
        tool_call=calls[0] if calls else None,
        model=model,
        provider="openai",
        extra_tool_calls=calls[1:],
    )


def _call_anthropic(
    messages: list[dict[str, str]],
    tools: list[dict[str, Any]],
    model: str,
    temperature: float,
    max_tokens: int | None,
    timeout: int,
) -> LLMReply:
    """Call Anthropic messages API with tool use."""
    try:
        import anthropic
    except ImportError:
        raise ImportError(
            "anthropic package not installed. Install with: pip install 'vectorsheet[llm]'"
        ) from None

    client = anthropic.Anthropic(api_key=_require_key("anthropic"), timeout=timeout)

    # Extract system message if present
    system_content = None
    api_messages = []
    for msg in messages:
        if msg["role"] == "system":
            system_content = msg["content"]
        else:
            api_messages.append(msg)

    try:
        response = client.messages.create(
            model=model,
            max_tokens=max_tokens or 4096,
            temperature=temperature,
            system=system_content or "You are a data analyst assistant.",
            messages=api_messages,
            tools=[
                {
                    "name": decl["name"],
                    "description": decl["description"],
                    "input_schema": decl["parameters"],
                }
                for decl in tools
            ],
        )
    except anthropic.APIStatusError as e:
        raise _transport_error("anthropic", e.status_code, str(e)) from e
    except anthropic.APIConnectionError as e:
        raise RetriableTransportError(
            f"anthropic network error (connection): {e}", provider="anthropic"
        ) from e

    texts = []
    calls = []
    for block in response.content:
        if block.type == "text":
            texts.append(block.text)
        elif block.type == "tool_use":
            calls.append(
                ToolCall(
                    name=block.name,
                    arguments=parse_arguments(block.input),
                    raw_arguments=json.dumps(block.input, default=str),
                )
            )
    return LLMReply(
        text="\n".join(texts),
        tool_call=calls[0] if calls else None,
        model=model,
        provider="anthropic",
        extra_tool_calls=calls[1:],
    )


def _call_ollama(
    messages: list[dict[str, str]],
    tools: list[dict[str, Any]],
    model: str,
    temperature: float,
    max_tokens: int | None,
    timeout: int,
) -> LLMReply:
    result = ollama_chat_with_tools(
        messages,
        tools=tools,
        model=model,
        temperature=temperature,
        max_tokens=max_tokens,
        timeout=timeout,
    )
    calls = [
        ToolCall(
            name=call["name"],
            arguments=parse_arguments(call.get("arguments")),
            raw_arguments=json.dumps(call.get("arguments"), default=str),
        )
        for call in result["tool_calls"]
    ]
    return LLMReply(
        text=result["content"],
        tool_call=calls[0] if calls else None,
        model=model,
        provider="ollama",
        extra_tool_calls=calls[1:],
    )


def call_llm_with_tools(
    messages: list[dict[str, str]],
    tools: list[dict[str, Any]],
    *,
    provider: str | None = None,
    model: str | None = None,
    temperature: float = 0.0,
    max_tokens: int | None = None,
    timeout: int | None = None,
) -> LLMReply:
    """Route a tool-calling request to the configured provider.

    Args:
        messages: List of message dicts with 'role' and 'content'
        tools: Provider-neutral tool declarations
        provider: Provider override (default: VS_LLM_PROVIDER)
        model: Model name (default: the provider's fast model)
        temperature: Sampling temperature
        max_tokens: Maximum tokens in response
        timeout: Request timeout in seconds (default: VS_LLM_TIMEOUT or 60)

    Returns:
        LLMReply with text and at most one primary tool call

    Raises:
        LLMTransportError: If the provider call fails
        ValueError: If the provider is not supported
    """
    resolved_provider = (provider or get_provider()).lower()
    if resolved_provider not in SUPPORTED_PROVIDERS:
        raise ValueError(
            f"Unsupported LLM provider: {resolved_provider}. "
            f"Supported: {', '.join(SUPPORTED_PROVIDERS)}"
        )
    resolved_model = model or model_for_tier("fast", resolved_provider)
    resolved_timeout = timeout or int(os.environ.get("VS_LLM_TIMEOUT", "60"))

    if resolved_provider == "anthropic":
        return _call_anthropic(messages, tools, resolved_model, temperature, max_tokens, resolved_timeout)
    if resolved_provider == "ollama":
        return _call_ollama(messages, tools, resolved_model, temperature, max_tokens, resolved_timeout)
    return _call_openai(messages, tools, resolved_model, temperature, max_tokens, resolved_timeout)


def _has_module(module_name: str) -> bool:
    """Return True when a module is installed in the current environment."""
    return importlib.util.find_spec(module_name) is not None


def get_available_providers() -> list[str]:
    """Get list of available LLM providers based on installed packages and API keys."""
    available = ["ollama"]  # Always available
    if _has_module("openai") and get_api_key("openai"):
        available.append("openai")
    if _has_module("anthropic") and get_api_key("anthropic"):
        available.append("anthropic")
    return available


def get_current_config() -> dict[str, Any]:
    """Get current LLM configuration."""
    provider = get_provider()
    return {
        "provider": provider,
        "complex_model": model_for_tier("complex", provider),
        "fast_model": model_for_tier("fast", provider),
        "available_providers": get_available_providers(),
    }
