"""Storage surface used by the chat session and the HTTP layer.

The core only writes through this interface; the read methods exist for
dashboards and suggestions, never for deciding what an action does.
"""

from __future__ import annotations

from typing import Any, Protocol

from vectorsheet.engine.mutate import HistoryEntry

EVENT_TYPES = ("prompt", "export", "error", "action", "user_activity")


class StorageSurface(Protocol):
    enabled: bool

    # History
    def append_history(self, session_id: str, entry: HistoryEntry) -> None: ...

    def load_history(self, session_id: str, *, limit: int = 50) -> list[dict[str, Any]]: ...

    # Analytics
    def track_prompt(
        self,
        session_id: str,
        prompt: str,
        model_mode: str,
        success: bool,
        response_time_ms: float | None = None,
    ) -> None: ...

    def track_export(self, session_id: str, fmt: str) -> None: ...

    def track_error(self, session_id: str, error_type: str, message: str, can_retry: bool) -> None: ...

    def track_action(self, session_id: str, action: str, metadata: dict[str, Any] | None = None) -> None: ...

    def prompt_analytics(self) -> list[dict[str, Any]]: ...

    def error_analytics(self) -> list[dict[str, Any]]: ...

    def export_analytics(self) -> list[dict[str, Any]]: ...

    def session_activity(self, session_id: str) -> dict[str, Any]: ...

    # Saved prompts
    def list_saved_prompts(self, *, favorites_only: bool = False) -> list[dict[str, Any]]: ...
