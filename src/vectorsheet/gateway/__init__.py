"""Intent Gateway and its retry wrapper."""

from vectorsheet.gateway.intent import (
    CHART_TYPE_QUESTION,
    COMPLEXITY_KEYWORDS,
    ConversationContext,
    GatewayResult,
    build_system_instruction,
    interpret,
    is_complex_request,
    needs_chart_type,
    select_model,
)
from vectorsheet.gateway.retry import (
    Failure,
    FailureClassification,
    RetryDecision,
    Success,
    backoff_delay_ms,
    call_with_retry,
    classify_failure,
    decide,
    is_retriable,
    retry_delay_ms,
)

__all__ = [
    "CHART_TYPE_QUESTION",
    "COMPLEXITY_KEYWORDS",
    "ConversationContext",
    "Failure",
    "FailureClassification",
    "GatewayResult",
    "RetryDecision",
    "Success",
    "backoff_delay_ms",
    "build_system_instruction",
    "call_with_retry",
    "classify_failure",
    "decide",
    "interpret",
    "is_complex_request",
    "is_retriable",
    "needs_chart_type",
    "retry_delay_ms",
    "select_model",
]
