"""Exception taxonomy for the VectorSheet core.

The public entry points (gateway, engine, session) convert these into
structured results; they are raised only inside the core and by the
low-level helpers that tests exercise directly.
"""

from __future__ import annotations


class VectorSheetError(Exception):
    """Base class for all VectorSheet errors."""


class ActionValidationError(VectorSheetError):
    """Raised when an action's arguments are malformed.

    Attributes:
        action: Action name the arguments belong to
        field: Name of the first offending argument (None if not attributable)
        errors: Human-readable error lines, one per problem
    """

    def __init__(
        self,
        message: str,
        *,
        action: str | None = None,
        field: str | None = None,
        errors: list[str] | None = None,
    ):
        super().__init__(message)
        self.action = action
        self.field = field
        self.errors = errors or [message]


class UnknownToolError(VectorSheetError):
    """Raised when the model invokes a tool outside the known catalog."""

    def __init__(self, name: str):
        super().__init__(f"Unhandled action: {name}")
        self.name = name


class LLMTransportError(VectorSheetError):
    """Raised by provider clients when the backend call fails.

    The message always embeds the HTTP status code when one is known, so
    substring classification in ``gateway.retry`` can see it.
    """

    def __init__(self, message: str, *, status_code: int | None = None, provider: str | None = None):
        super().__init__(message)
        self.status_code = status_code
        self.provider = provider


class RetriableTransportError(LLMTransportError):
    """Transport failure eligible for backoff retry (overload, rate limit, network)."""


class TerminalTransportError(LLMTransportError):
    """Transport failure that must not be retried (auth, quota)."""

