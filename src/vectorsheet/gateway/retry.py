"""Retry policy for LLM gateway calls.

Exponential backoff with jitter for overloaded / rate-limited backends, plus
the classification of terminal failures into user-facing categories.

The policy itself is a set of pure functions of (error message, attempt);
``call_with_retry`` only wires them around an awaitable so tests can drive
failures without a live backend.
"""

from __future__ import annotations

import asyncio
import logging
import random
from dataclasses import dataclass
from typing import Awaitable, Callable, Generic, Literal, TypeVar, Union

logger = logging.getLogger(__name__)

T = TypeVar("T")

MAX_RETRIES = 3  # 4 attempts in total
BASE_DELAY_MS = 2000
MAX_DELAY_MS = 32000
JITTER_MS = 1000

# Substrings that mark a failure as worth retrying (matched case-insensitively)
RETRIABLE_PATTERNS = ("503", "overloaded", "429", "rate limit")

FailureKind = Literal["network", "rate_limit", "quota", "auth", "unknown"]

_EXPLANATIONS: dict[str, str] = {
    "network": (
        "⚠️ The AI service is currently unreachable or overloaded. This usually resolves quickly.\n\n"
        "**What you can do:**\n"
        "• Wait 30 seconds and try again\n"
        "• Use simpler queries\n"
        "• Check your network connection"
    ),
    "rate_limit": (
        "⚠️ Rate limit exceeded. You've made too many requests.\n\n"
        "**What you can do:**\n"
        "• Wait a few minutes before trying again\n"
        "• Reduce request frequency\n"
        "• Upgrade to a paid tier for higher limits"
    ),
    "quota": (
        "⚠️ Daily quota exceeded.\n\n"
        "**What you can do:**\n"
        "• Wait until the quota resets\n"
        "• Upgrade to a paid tier"
    ),
    "auth": (
        "⚠️ The AI service rejected the API key.\n\n"
        "**What you can do:**\n"
        "• Check that the API key is set and valid\n"
        "• Make sure the key has access to the selected model"
    ),
    "unknown": "Unable to get a response from the AI.",
}

_AUTH_PATTERNS = ("401", "403", "api key", "api_key", "unauthorized", "permission denied", "authentication")
_OVERLOADED_PATTERNS = ("503", "overloaded")
_NETWORK_PATTERNS = ("network", "timeout", "timed out", "connection", "unreachable")


@dataclass(frozen=True)
class FailureClassification:
    """Terminal failure category shown to the user."""

    kind: FailureKind
    explanation: str
    can_retry: bool


@dataclass(frozen=True)
class RetryDecision:
    """What to do after a failed attempt.

    Attributes:
        retry: Whether another attempt should be made
        delay_ms: Wait before the next attempt (0 when not retrying)
        failure: Terminal classification when ``retry`` is False
    """

    retry: bool
    delay_ms: float = 0.0
    failure: FailureClassification | None = None


@dataclass(frozen=True)
class Success(Generic[T]):
    value: T
    attempts: int


@dataclass(frozen=True)
class Failure:
    classification: FailureClassification
    message: str
    attempts: int

    @property
    def user_message(self) -> str:
        """Canned explanation plus the raw message for diagnostics."""
        return f"{self.classification.explanation}\n\n_Technical details: {self.message}_"


RetryResult = Union[Success[T], Failure]


def is_retriable(message: str) -> bool:
    lowered = (message or "").lower()
    return any(pattern in lowered for pattern in RETRIABLE_PATTERNS)


def backoff_delay_ms(attempt: int) -> int:
    """Delay before retrying after failed attempt ``attempt`` (0-based), without jitter."""
    return min(BASE_DELAY_MS * (2 ** attempt), MAX_DELAY_MS)


def retry_delay_ms(attempt: int, rng: Callable[[], float] = random.random) -> float:
    """Backoff delay plus uniform jitter in [0, JITTER_MS)."""
    return backoff_delay_ms(attempt) + rng() * JITTER_MS


def classify_failure(message: str) -> FailureClassification:
    """Map a terminal error message to a user-facing category.

    Checked in order: overloaded, rate limit, quota, auth, network.
    Quota and auth failures are never retriable.
    """
    lowered = (message or "").lower()

    if any(p in lowered for p in _OVERLOADED_PATTERNS):
        kind: FailureKind = "network"
    elif "429" in lowered or "rate limit" in lowered:
        kind = "rate_limit"
    elif "quota" in lowered:
        kind = "quota"
    elif any(p in lowered for p in _AUTH_PATTERNS):
        kind = "auth"
    elif any(p in lowered for p in _NETWORK_PATTERNS):
        kind = "network"
    else:
        kind = "unknown"

    return FailureClassification(
        kind=kind,
        explanation=_EXPLANATIONS[kind],
        can_retry=kind not in ("quota", "auth"),
    )


def decide(
    message: str,
    attempt: int,
    *,
    rng: Callable[[], float] = random.random,
) -> RetryDecision:
    """Decide whether failed attempt ``attempt`` (0-based) should be retried."""
    if is_retriable(message) and attempt < MAX_RETRIES:
        return RetryDecision(retry=True, delay_ms=retry_delay_ms(attempt, rng))
    return RetryDecision(retry=False, failure=classify_failure(message))


async def call_with_retry(
    operation: Callable[[], Awaitable[T]],
    *,
    on_retry: Callable[[int, float], None] | None = None,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    rng: Callable[[], float] = random.random,
    operation_name: str = "llm_call",
) -> RetryResult:
    """Run an async operation with exponential backoff.

    Args:
        operation: Zero-argument coroutine factory performing one attempt
        on_retry: Observer called with (attempt number, delay in ms) before each wait
        sleep: Cooperative sleep taking seconds (injected in tests)
        rng: Jitter source returning floats in [0, 1)
        operation_name: Name used in log lines

    Returns:
        Success with the operation's value, or Failure with the classification.
        Exceptions raised by ``operation`` never escape.
    """
    attempt = 0
    while True:
        try:
            value = await operation()
            return Success(value=value, attempts=attempt + 1)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            message = str(e) or type(e).__name__
            decision = decide(message, attempt, rng=rng)
            if not decision.retry:
                assert decision.failure is not None
                logger.error(
                    "%s failed after %d attempt(s) [%s]: %s",
                    operation_name,
                    attempt + 1,
                    decision.failure.kind,
                    message,
                )
                return Failure(decision.failure, message, attempt + 1)

            logger.warning(
                "%s attempt %d/%d failed, retrying in %.1fs: %s",
                operation_name,
                attempt + 1,
                MAX_RETRIES + 1,
                decision.delay_ms / 1000,
                message,
            )
            if on_retry is not None:
                on_retry(attempt + 1, decision.delay_ms)
            await sleep(decision.delay_ms / 1000)
            attempt += 1
