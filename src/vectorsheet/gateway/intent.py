"""Intent Gateway: natural language to a single validated action.

The gateway is a read-only translator. It builds a system instruction that
describes the current dataset, sends it with the user's request and the tool
catalog to the LLM backend (through the retry wrapper), and returns exactly
one of:

- ``noop``: empty input, nothing was sent
- ``clarify``: the request needs more detail before calling the model
- ``text``: the model answered in prose
- ``action``: the model invoked one tool and its arguments validated
- ``unknown_tool`` / ``validation``: the model invoked a tool that could not be accepted
- ``failure``: the backend call failed terminally (see ``gateway.retry``)

Nothing here raises for backend or model errors; callers render the result.
"""

from __future__ import annotations

import asyncio
import json
import logging
import random
from dataclasses import dataclass, field
from typing import Any, Callable, Literal

from vectorsheet.actions.catalog import build_tool_declarations
from vectorsheet.actions.schema import Action, parse_action
from vectorsheet.config import get_api_key, get_provider
from vectorsheet.dataset import Dataset, column_types
from vectorsheet.errors import ActionValidationError, UnknownToolError
from vectorsheet.gateway.retry import Failure, call_with_retry, classify_failure
from vectorsheet.llm.router import LLMReply, call_llm_with_tools, model_for_tier

logger = logging.getLogger(__name__)

# Case-insensitive substrings that route a request to the complex-tier model
COMPLEXITY_KEYWORDS = (
    "analyze",
    "analysis",
    "correlation",
    "predict",
    "forecast",
    "trend",
    "regression",
    "compare",
)
COMPLEXITY_LENGTH = 200

CHART_TYPES = ("bar", "line", "pie")
CHART_TYPE_QUESTION = "What type of chart would you like to generate? (e.g., bar, line, pie)"

MAX_RECENT_ACTIONS = 3
MAX_PREVIEW_ROWS = 200

ModelMode = Literal["auto", "complex", "fast"]
GatewayKind = Literal["noop", "clarify", "text", "action", "unknown_tool", "validation", "failure"]

_HOSTED_PROVIDERS = {
    "openai": "VS_OPENAI_API_KEY (or OPENAI_API_KEY)",
    "anthropic": "VS_ANTHROPIC_API_KEY (or ANTHROPIC_API_KEY)",
}


@dataclass
class ConversationContext:
    """What the model should know about earlier turns.

    Attributes:
        recent_actions: Applied actions, oldest first (only the last 3 are sent)
        last_query: The previous user utterance
    """

    recent_actions: list[Action] = field(default_factory=list)
    last_query: str = ""


@dataclass(frozen=True)
class GatewayResult:
    """Outcome of one ``interpret`` call."""

    kind: GatewayKind
    text: str = ""
    action: Action | None = None
    failure: Failure | None = None
    tool_name: str | None = None
    errors: list[str] = field(default_factory=list)
    model: str | None = None
    attempts: int = 0

    @property
    def ok(self) -> bool:
        return self.kind in ("noop", "clarify", "text", "action")


# =============================================================================
# Policy
# =============================================================================

def is_complex_request(user_input: str) -> bool:
    """True when the input carries a complexity keyword or is long."""
    lowered = user_input.lower()
    if len(user_input) > COMPLEXITY_LENGTH:
        return True
    return any(keyword in lowered for keyword in COMPLEXITY_KEYWORDS)


def select_model(user_input: str, *, provider: str | None = None, mode: ModelMode = "auto") -> str:
    """Pick the backend model name for a request.

    Args:
        user_input: The user's utterance
        provider: LLM provider (default: VS_LLM_PROVIDER)
        mode: "complex" or "fast" force a tier; "auto" applies the keyword heuristic

    Returns:
        Model name for the chosen tier
    """
    if mode not in ("auto", "complex", "fast"):
        raise ValueError(f"Invalid model mode: {mode}. Must be 'auto', 'complex' or 'fast'")
    if mode == "auto":
        tier = "complex" if is_complex_request(user_input) else "fast"
    else:
        tier = mode
    return model_for_tier(tier, provider)


def needs_chart_type(user_input: str) -> bool:
    lowered = user_input.lower()
    return "chart" in lowered and not any(kind in lowered for kind in CHART_TYPES)


def _describe_action(action: Any) -> str:
    if hasattr(action, "wire_args"):
        return f"{action.name} {json.dumps(action.wire_args(), default=str)}"
    return str(action)


def build_system_instruction(dataset: Dataset, context: ConversationContext | None = None) -> str:
    """Describe the dataset and recent activity for the model."""
    context = context or ConversationContext()
    types = column_types(dataset)

    lines = [
        "You are a data analyst assistant working on a spreadsheet.",
        f"The spreadsheet has {len(dataset)} rows and {len(types)} columns.",
    ]
    if types:
        lines.append("Columns:")
        lines.extend(f"- {name} ({kind})" for name, kind in types.items())

    recent = context.recent_actions[-MAX_RECENT_ACTIONS:]
    if recent:
        lines.append("Recent actions (oldest first):")
        lines.extend(f"- {_describe_action(action)}" for action in recent)
    if context.last_query:
        lines.append(f"Previous request: {context.last_query}")

    lines.append(
        "Use the available functions to change or analyze the data. "
        "Row indices are 0-based. Call at most one function per request; "
        "answer in plain text when no function applies."
    )
    preview = dataset[:MAX_PREVIEW_ROWS]
    note = "" if len(preview) == len(dataset) else f" (first {len(preview)} rows)"
    lines.append(
        f"Here is the current spreadsheet data in JSON format{note}: "
        f"{json.dumps(preview, default=str)}"
    )
    return "\n".join(lines)


def _missing_key_result(provider: str) -> GatewayResult:
    env = _HOSTED_PROVIDERS[provider]
    message = f"{provider} API key not configured"
    classification = classify_failure(message)
    text = (
        "⚠️ API Key Not Configured\n\n"
        f"Please set {env} in your environment.\n\n"
        f"1. Get an API key from your {provider} account\n"
        f"2. Export it: export {env.split(' ')[0]}=your_api_key_here\n"
        "3. Or switch to a local model with VS_LLM_PROVIDER=ollama\n"
        "4. Restart the server"
    )
    return GatewayResult(
        kind="failure",
        text=text,
        failure=Failure(classification=classification, message=message, attempts=0),
    )


# =============================================================================
# Entry point
# =============================================================================

async def interpret(
    user_input: str,
    dataset: Dataset,
    context: ConversationContext | None = None,
    *,
    model_mode: ModelMode = "auto",
    provider: str | None = None,
    on_retry: Callable[[int, float], None] | None = None,
    sleep: Callable[[float], Any] = asyncio.sleep,
    rng: Callable[[], float] = random.random,
) -> GatewayResult:
    """Translate one utterance into text or a validated action.

    Args:
        user_input: Raw user utterance
        dataset: Current dataset (read only)
        context: Recent actions and the previous query
        model_mode: "auto", "complex" or "fast"
        provider: LLM provider override
        on_retry: Observer called with (attempt, delay_ms) before each backoff wait
        sleep: Cooperative sleep used between retries
        rng: Jitter source

    Returns:
        GatewayResult; never raises for backend or model errors
    """
    text = (user_input or "").strip()
    if not text:
        return GatewayResult(kind="noop")

    if needs_chart_type(text):
        return GatewayResult(kind="clarify", text=CHART_TYPE_QUESTION)

    resolved_provider = (provider or get_provider()).lower()
    if resolved_provider in _HOSTED_PROVIDERS and not get_api_key(resolved_provider):
        logger.error("No API key configured for provider %s", resolved_provider)
        return _missing_key_result(resolved_provider)

    model = select_model(text, provider=resolved_provider, mode=model_mode)
    messages = [
        {"role": "system", "content": build_system_instruction(dataset, context)},
        {"role": "user", "content": f"Analyze this request and use appropriate functions to help: {text}"},
    ]
    tools = build_tool_declarations(dataset)

    async def attempt() -> LLMReply:
        return await asyncio.to_thread(
            call_llm_with_tools,
            messages,
            tools,
            provider=resolved_provider,
            model=model,
        )

    outcome = await call_with_retry(
        attempt,
        on_retry=on_retry,
        sleep=sleep,
        rng=rng,
        operation_name="intent_gateway",
    )
    if isinstance(outcome, Failure):
        return GatewayResult(
            kind="failure",
            text=outcome.user_message,
            failure=outcome,
            model=model,
            attempts=outcome.attempts,
        )

    reply: LLMReply = outcome.value
    call = reply.tool_call
    if call is None:
        return GatewayResult(
            kind="text",
            text=reply.text.strip() or "No response from AI.",
            model=model,
            attempts=outcome.attempts,
        )

    if reply.extra_tool_calls:
        logger.warning(
            "Model returned %d tool calls, using the first (%s)",
            len(reply.extra_tool_calls) + 1,
            call.name,
        )

    try:
        if call.arguments is None:
            raise ActionValidationError(
                f"Invalid arguments for {call.name}:\n  - arguments are not a JSON object: {call.raw_arguments}",
                action=call.name,
            )
        action = parse_action(call.name, call.arguments)
    except UnknownToolError as e:
        logger.warning("Model invoked unknown tool %r", call.name)
        return GatewayResult(
            kind="unknown_tool",
            text=f"⚠️ {e}",
            tool_name=call.name,
            errors=[str(e)],
            model=model,
            attempts=outcome.attempts,
        )
    except ActionValidationError as e:
        logger.warning("Rejected %s call: %s", call.name, "; ".join(e.errors))
        return GatewayResult(
            kind="validation",
            text=f"⚠️ {e}",
            tool_name=call.name,
            errors=list(e.errors),
            model=model,
            attempts=outcome.attempts,
        )

    return GatewayResult(
        kind="action",
        text=f"Processing your request: {call.name.replace('_', ' ', 1)}...",
        action=action,
        tool_name=call.name,
        model=model,
        attempts=outcome.attempts,
    )
