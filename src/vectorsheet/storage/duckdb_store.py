"""DuckDB-backed storage for history, analytics, saved prompts and comments."""

from __future__ import annotations

import json
import re
import threading
import uuid
from collections import defaultdict
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any

import duckdb

from vectorsheet.engine.mutate import HistoryEntry
from vectorsheet.prompts import categorize_prompt
from vectorsheet.storage.base import EVENT_TYPES

MAX_TEXT_LENGTH = 200
_MENTION_RE = re.compile(r"@(\w+)")


def _utc_now() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _naive_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def _iso(value: Any) -> str:
    if isinstance(value, datetime):
        return value.isoformat() + "Z"
    return str(value or "")


def _load_json(raw: str | None, default: Any) -> Any:
    try:
        parsed = json.loads(raw or "null")
    except json.JSONDecodeError:
        return default
    return default if parsed is None else parsed


def parse_mentions(text: str) -> list[str]:
    """Return the names mentioned as ``@name`` in a comment."""
    return _MENTION_RE.findall(text or "")


class DuckDBStorage:
    """Thread-safe local persistence for the chat core."""

    def __init__(self, db_path: Path | str, *, enabled: bool = True):
        self.db_path = Path(db_path).expanduser()
        self.enabled = enabled
        self._lock = threading.RLock()
        self._ensure_tables()

    def _connect(self) -> duckdb.DuckDBPyConnection:
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        return duckdb.connect(str(self.db_path), read_only=False)

    def _ensure_tables(self) -> None:
        with self._lock:
            conn = self._connect()
            try:
                conn.execute(
                    """
                    CREATE TABLE IF NOT EXISTS vs_history (
                        session_id VARCHAR,
                        action VARCHAR,
                        description VARCHAR,
                        created_at TIMESTAMP
                    )
                    """
                )
                conn.execute(
                    """
                    CREATE TABLE IF NOT EXISTS vs_events (
                        event_id VARCHAR,
                        session_id VARCHAR,
                        event_type VARCHAR,
                        created_at TIMESTAMP,
                        data_json VARCHAR
                    )
                    """
                )
                conn.execute(
                    """
                    CREATE TABLE IF NOT EXISTS vs_saved_prompts (
                        id VARCHAR,
                        prompt VARCHAR,
                        category VARCHAR,
                        tags_json VARCHAR,
                        created_at TIMESTAMP,
                        last_used TIMESTAMP,
                        use_count BIGINT,
                        is_favorite BOOLEAN
                    )
                    """
                )
                conn.execute(
                    """
                    CREATE TABLE IF NOT EXISTS vs_comments (
                        id VARCHAR,
                        session_id VARCHAR,
                        cell_ref VARCHAR,
                        author VARCHAR,
                        content VARCHAR,
                        mentions_json VARCHAR,
                        created_at TIMESTAMP,
                        resolved BOOLEAN
                    )
                    """
                )
            finally:
                conn.close()

    # =========================================================================
    # History
    # =========================================================================

    def append_history(self, session_id: str, entry: HistoryEntry) -> None:
        with self._lock:
            conn = self._connect()
            try:
                conn.execute(
                    "INSERT INTO vs_history VALUES (?, ?, ?, ?)",
                    [session_id, entry.action, entry.description, _naive_utc(entry.timestamp)],
                )
            finally:
                conn.close()

    def load_history(self, session_id: str, *, limit: int = 50) -> list[dict[str, Any]]:
        """Return a session's history entries, newest first."""
        with self._lock:
            conn = self._connect()
            try:
                rows = conn.execute(
                    """
                    SELECT action, description, created_at
                    FROM vs_history
                    WHERE session_id = ?
                    ORDER BY created_at DESC, rowid DESC
                    LIMIT ?
                    """,
                    [session_id, max(1, min(500, int(limit)))],
                ).fetchall()
            finally:
                conn.close()
        return [
            {"action": str(row[0]), "description": str(row[1]), "timestamp": _iso(row[2])}
            for row in rows
        ]

    # =========================================================================
    # Analytics events
    # =========================================================================

    def track_event(self, session_id: str, event_type: str, data: dict[str, Any]) -> str | None:
        """Record one analytics event; returns its id, or None when analytics is disabled."""
        if event_type not in EVENT_TYPES:
            raise ValueError(f"Invalid event type: {event_type}. Must be one of {EVENT_TYPES}")
        if not self.enabled:
            return None
        event_id = str(uuid.uuid4())
        with self._lock:
            conn = self._connect()
            try:
                conn.execute(
                    "INSERT INTO vs_events VALUES (?, ?, ?, ?, ?)",
                    [event_id, session_id, event_type, _utc_now(), json.dumps(data, default=str)],
                )
            finally:
                conn.close()
        return event_id

    def track_prompt(
        self,
        session_id: str,
        prompt: str,
        model_mode: str,
        success: bool,
        response_time_ms: float | None = None,
    ) -> None:
        self.track_event(
            session_id,
            "prompt",
            {
                "prompt": prompt[:MAX_TEXT_LENGTH],
                "model_mode": model_mode,
                "success": bool(success),
                "response_time_ms": response_time_ms,
                "category": categorize_prompt(prompt),
            },
        )

    def track_export(self, session_id: str, fmt: str) -> None:
        self.track_event(session_id, "export", {"format": fmt})

    def track_error(self, session_id: str, error_type: str, message: str, can_retry: bool) -> None:
        self.track_event(
            session_id,
            "error",
            {
                "error_type": error_type,
                "error_message": message[:MAX_TEXT_LENGTH],
                "can_retry": bool(can_retry),
            },
        )

    def track_action(self, session_id: str, action: str, metadata: dict[str, Any] | None = None) -> None:
        self.track_event(session_id, "action", {"action": action, **(metadata or {})})

    def track_activity(self, session_id: str, active_time: float) -> None:
        self.track_event(session_id, "user_activity", {"active_time": active_time})

    def _events(self, event_type: str | None = None, session_id: str | None = None) -> list[dict[str, Any]]:
        clauses = []
        params: list[Any] = []
        if event_type is not None:
            clauses.append("event_type = ?")
            params.append(event_type)
        if session_id is not None:
            clauses.append("session_id = ?")
            params.append(session_id)
        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        with self._lock:
            conn = self._connect()
            try:
                rows = conn.execute(
                    f"""
                    SELECT session_id, event_type, created_at, data_json
                    FROM vs_events
                    {where}
                    ORDER BY created_at ASC, rowid ASC
                    """,
                    params,
                ).fetchall()
            finally:
                conn.close()
        return [
            {
                "session_id": str(row[0]),
                "event_type": str(row[1]),
                "timestamp": _iso(row[2]),
                "data": _load_json(row[3], {}),
            }
            for row in rows
        ]

    def prompt_analytics(self) -> list[dict[str, Any]]:
        """Per-prompt usage, most used first."""
        stats: dict[str, dict[str, Any]] = {}
        for event in self._events("prompt"):
            data = event["data"]
            prompt = str(data.get("prompt", ""))
            entry = stats.setdefault(
                prompt, {"count": 0, "successes": 0, "times": [], "last_used": event["timestamp"]}
            )
            entry["count"] += 1
            if data.get("success"):
                entry["successes"] += 1
            if data.get("response_time_ms"):
                entry["times"].append(float(data["response_time_ms"]))
            entry["last_used"] = max(entry["last_used"], event["timestamp"])

        out = [
            {
                "prompt": prompt,
                "count": entry["count"],
                "success_rate": entry["successes"] / entry["count"],
                "avg_response_time_ms": (
                    sum(entry["times"]) / len(entry["times"]) if entry["times"] else None
                ),
                "last_used": entry["last_used"],
                "category": categorize_prompt(prompt),
            }
            for prompt, entry in stats.items()
        ]
        out.sort(key=lambda item: item["count"], reverse=True)
        return out

    def export_analytics(self) -> list[dict[str, Any]]:
        counts: dict[str, int] = defaultdict(int)
        last_used: dict[str, str] = {}
        for event in self._events("export"):
            fmt = str(event["data"].get("format", ""))
            counts[fmt] += 1
            last_used[fmt] = max(last_used.get(fmt, ""), event["timestamp"])
        out = [{"format": fmt, "count": count, "last_used": last_used[fmt]} for fmt, count in counts.items()]
        out.sort(key=lambda item: item["count"], reverse=True)
        return out

    def error_analytics(self) -> list[dict[str, Any]]:
        stats: dict[str, dict[str, Any]] = {}
        for event in self._events("error"):
            data = event["data"]
            error_type = str(data.get("error_type", "unknown"))
            entry = stats.setdefault(
                error_type,
                {"count": 0, "last_occurred": event["timestamp"], "can_retry": bool(data.get("can_retry"))},
            )
            entry["count"] += 1
            entry["last_occurred"] = max(entry["last_occurred"], event["timestamp"])
        out = [{"error_type": error_type, **entry} for error_type, entry in stats.items()]
        out.sort(key=lambda item: item["count"], reverse=True)
        return out

    def active_sessions_count(self, *, hours: int = 24) -> int:
        """Number of distinct sessions with an event in the last ``hours`` hours."""
        since = _utc_now() - timedelta(hours=hours)
        with self._lock:
            conn = self._connect()
            try:
                row = conn.execute(
                    "SELECT COUNT(DISTINCT session_id) FROM vs_events WHERE created_at >= ?",
                    [since],
                ).fetchone()
            finally:
                conn.close()
        return int(row[0] if row else 0)

    def session_activity(self, session_id: str) -> dict[str, Any]:
        events = self._events(session_id=session_id)
        by_type: dict[str, int] = defaultdict(int)
        active_time = 0.0
        for event in events:
            by_type[event["event_type"]] += 1
            if event["event_type"] == "user_activity":
                active_time += float(event["data"].get("active_time") or 0)
        return {
            "session_id": session_id,
            "active_time": active_time,
            "prompts_count": by_type["prompt"],
            "exports_count": by_type["export"],
            "errors_count": by_type["error"],
            "actions_count": by_type["action"],
            "last_active": events[-1]["timestamp"] if events else None,
        }

    def analytics_summary(self) -> dict[str, Any]:
        return {
            "prompt_analytics": self.prompt_analytics(),
            "export_analytics": self.export_analytics(),
            "error_analytics": self.error_analytics(),
            "active_sessions": self.active_sessions_count(),
        }

    def clear_analytics(self) -> int:
        with self._lock:
            conn = self._connect()
            try:
                deleted = conn.execute("DELETE FROM vs_events RETURNING event_id").fetchall()
            finally:
                conn.close()
        return len(deleted)

    # =========================================================================
    # Saved prompts
    # =========================================================================

    def save_prompt(
        self, prompt: str, *, category: str | None = None, tags: list[str] | None = None
    ) -> dict[str, Any]:
        prompt_id = f"prompt_{uuid.uuid4().hex[:12]}"
        now = _utc_now()
        record = [
            prompt_id,
            prompt,
            category or categorize_prompt(prompt),
            json.dumps(tags or []),
            now,
            now,
            1,
            False,
        ]
        with self._lock:
            conn = self._connect()
            try:
                conn.execute("INSERT INTO vs_saved_prompts VALUES (?, ?, ?, ?, ?, ?, ?, ?)", record)
            finally:
                conn.close()
        saved = self.get_saved_prompt(prompt_id)
        assert saved is not None
        return saved

    @staticmethod
    def _prompt_row(row: tuple) -> dict[str, Any]:
        return {
            "id": str(row[0]),
            "prompt": str(row[1]),
            "category": str(row[2]),
            "tags": _load_json(row[3], []),
            "created_at": _iso(row[4]),
            "last_used": _iso(row[5]),
            "use_count": int(row[6] or 0),
            "is_favorite": bool(row[7]),
        }

    def get_saved_prompt(self, prompt_id: str) -> dict[str, Any] | None:
        with self._lock:
            conn = self._connect()
            try:
                row = conn.execute(
                    "SELECT * FROM vs_saved_prompts WHERE id = ?", [prompt_id]
                ).fetchone()
            finally:
                conn.close()
        return self._prompt_row(row) if row else None

    def list_saved_prompts(self, *, favorites_only: bool = False) -> list[dict[str, Any]]:
        """Saved prompts: favourites first, then most used, then most recent."""
        where = "WHERE is_favorite" if favorites_only else ""
        with self._lock:
            conn = self._connect()
            try:
                rows = conn.execute(
                    f"""
                    SELECT * FROM vs_saved_prompts
                    {where}
                    ORDER BY is_favorite DESC, use_count DESC, last_used DESC
                    """
                ).fetchall()
            finally:
                conn.close()
        return [self._prompt_row(row) for row in rows]

    def toggle_favorite(self, prompt_id: str) -> bool:
        with self._lock:
            conn = self._connect()
            try:
                updated = conn.execute(
                    "UPDATE vs_saved_prompts SET is_favorite = NOT is_favorite WHERE id = ? RETURNING id",
                    [prompt_id],
                ).fetchall()
            finally:
                conn.close()
        return bool(updated)

    def record_prompt_usage(self, prompt_id: str) -> bool:
        with self._lock:
            conn = self._connect()
            try:
                updated = conn.execute(
                    """
                    UPDATE vs_saved_prompts
                    SET use_count = use_count + 1, last_used = ?
                    WHERE id = ?
                    RETURNING id
                    """,
                    [_utc_now(), prompt_id],
                ).fetchall()
            finally:
                conn.close()
        return bool(updated)

    def delete_prompt(self, prompt_id: str) -> bool:
        with self._lock:
            conn = self._connect()
            try:
                deleted = conn.execute(
                    "DELETE FROM vs_saved_prompts WHERE id = ? RETURNING id", [prompt_id]
                ).fetchall()
            finally:
                conn.close()
        return bool(deleted)

    # =========================================================================
    # Comments
    # =========================================================================

    def add_comment(
        self,
        session_id: str,
        cell_ref: str,
        content: str,
        *,
        author: str = "User",
        mentions: list[str] | None = None,
    ) -> dict[str, Any]:
        """Attach a comment to a cell or range; mentions default to the ``@names`` in the text."""
        comment = {
            "id": f"comment_{uuid.uuid4().hex[:12]}",
            "session_id": session_id,
            "cell_ref": cell_ref,
            "author": author,
            "content": content,
            "mentions": mentions if mentions is not None else parse_mentions(content),
            "created_at": _utc_now(),
            "resolved": False,
        }
        with self._lock:
            conn = self._connect()
            try:
                conn.execute(
                    "INSERT INTO vs_comments VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
                    [
                        comment["id"],
                        session_id,
                        cell_ref,
                        author,
                        content,
                        json.dumps(comment["mentions"]),
                        comment["created_at"],
                        False,
                    ],
                )
            finally:
                conn.close()
        comment["created_at"] = _iso(comment["created_at"])
        return comment

    def list_comments(self, session_id: str, *, cell_ref: str | None = None) -> list[dict[str, Any]]:
        """Comments for a session; ``cell_ref`` matches exactly or as a substring of a range."""
        with self._lock:
            conn = self._connect()
            try:
                rows = conn.execute(
                    """
                    SELECT id, session_id, cell_ref, author, content, mentions_json, created_at, resolved
                    FROM vs_comments
                    WHERE session_id = ?
                    ORDER BY created_at ASC, rowid ASC
                    """,
                    [session_id],
                ).fetchall()
            finally:
                conn.close()
        out = []
        for row in rows:
            if cell_ref is not None and cell_ref not in str(row[2]):
                continue
            out.append(
                {
                    "id": str(row[0]),
                    "session_id": str(row[1]),
                    "cell_ref": str(row[2]),
                    "author": str(row[3]),
                    "content": str(row[4]),
                    "mentions": _load_json(row[5], []),
                    "created_at": _iso(row[6]),
                    "resolved": bool(row[7]),
                }
            )
        return out

    def resolve_comment(self, comment_id: str) -> bool:
        with self._lock:
            conn = self._connect()
            try:
                updated = conn.execute(
                    "UPDATE vs_comments SET resolved = TRUE WHERE id = ? RETURNING id", [comment_id]
                ).fetchall()
            finally:
                conn.close()
        return bool(updated)

    def delete_comment(self, comment_id: str) -> bool:
        with self._lock:
            conn = self._connect()
            try:
                deleted = conn.execute(
                    "DELETE FROM vs_comments WHERE id = ? RETURNING id", [comment_id]
                ).fetchall()
            finally:
                conn.close()
        return bool(deleted)
