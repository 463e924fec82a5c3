"""Ollama client wrapper for local LLM inference with tool calling.

Single attempt per call: backoff lives in ``vectorsheet.gateway.retry``, so
failures are raised as transport errors carrying the HTTP status code.
"""

import os
from typing import Any

import requests

from vectorsheet.errors import LLMTransportError, RetriableTransportError


def ollama_chat_with_tools(
    messages: list[dict[str, str]],
    *,
    tools: list[dict[str, Any]],
    model: str,
    temperature: float = 0.0,
    max_tokens: int | None = None,
    timeout: int = 60,
) -> dict[str, Any]:
    """Call the Ollama chat API with a tool catalog.

    Args:
        messages: List of message dicts with 'role' and 'content'
        tools: Provider-neutral tool declarations
        model: Ollama model name (e.g. qwen2.5:14b-instruct)
        temperature: Temperature for sampling (default: 0 for deterministic)
        max_tokens: Maximum tokens in response (optional, Ollama calls it num_predict)
        timeout: Request timeout in seconds

    Returns:
        Dict with 'content' (str) and 'tool_calls' (list of {'name', 'arguments'})

    Raises:
        RetriableTransportError: On connection errors, timeouts, 429 and 5xx
        LLMTransportError: On other HTTP errors or a malformed response
    """
    base_url = os.environ.get("VS_OLLAMA_BASE_URL", "http://localhost:11434")
    endpoint = f"{base_url}/api/chat"

    # System instruction carries a data preview
    num_ctx = int(os.environ.get("VS_OLLAMA_NUM_CTX", "8192"))

    payload: dict[str, Any] = {
        "model": model,
        "messages": messages,
        "tools": [{"type": "function", "function": decl} for decl in tools],
        "stream": False,
        "options": {
            "temperature": temperature,
            "num_ctx": num_ctx,
        },
    }
    if max_tokens is not None:
        payload["options"]["num_predict"] = max_tokens

    try:
        response = requests.post(endpoint, json=payload, timeout=timeout)
    except requests.exceptions.ConnectionError as e:
        raise RetriableTransportError(
            f"ollama network error (connection): cannot connect to Ollama at {base_url}. "
            "Ensure Ollama is running (ollama serve or Ollama app).",
            provider="ollama",
        ) from e
    except requests.exceptions.Timeout as e:
        raise RetriableTransportError(
            f"ollama network error (timeout): request timed out after {timeout}s (model: {model})",
            provider="ollama",
        ) from e

    if response.status_code >= 400:
        status = response.status_code
        message = f"ollama API call failed ({status}): {response.text}"
        if status == 429 or status >= 500:
            raise RetriableTransportError(message, status_code=status, provider="ollama")
        raise LLMTransportError(message, status_code=status, provider="ollama")

    result = response.json()
    if "message" not in result:
        raise LLMTransportError(f"Unexpected Ollama response format: {result}", provider="ollama")

    message = result["message"]
    tool_calls = []
    for call in message.get("tool_calls") or []:
        function = call.get("function") or {}
        if function.get("name"):
            tool_calls.append(
                {"name": function["name"], "arguments": function.get("arguments")}
            )
    return {"content": message.get("content") or "", "tool_calls": tool_calls}
