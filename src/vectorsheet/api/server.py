"""FastAPI backend for the VectorSheet web UI.

Wraps the chat session (utterance -> gateway -> engine) behind a small JSON
API. Sessions live in memory; history, analytics, saved prompts and comments
go to DuckDB through the storage surface.
"""

from __future__ import annotations

import asyncio
import logging
import math
from pathlib import Path
from typing import Any, Literal, Optional

from fastapi import FastAPI, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import PlainTextResponse
from pydantic import BaseModel, Field

from vectorsheet import __version__
from vectorsheet.config import Settings
from vectorsheet.dataset import SAMPLE_DATA, Dataset, describe_dataset
from vectorsheet.engine.mutate import ActionRejected, MutationResult
from vectorsheet.io.tabular import EXPORT_FORMATS, export_dataset, read_csv_text
from vectorsheet.llm.router import get_current_config
from vectorsheet.prompts import contextual_suggestions, generate_suggestions
from vectorsheet.session import ChatSession
from vectorsheet.storage.duckdb_store import DuckDBStorage

logger = logging.getLogger(__name__)

_MEDIA_TYPES = {
    "csv": "text/csv",
    "json": "application/json",
    "markdown": "text/markdown",
}


# =============================================================================
# Request / response models
# =============================================================================

class CreateSessionRequest(BaseModel):
    """Start a chat session over a dataset (sample data when none is given)."""

    data: Optional[list[dict[str, Any]]] = Field(None, description="Rows as objects")
    csv: Optional[str] = Field(None, description="CSV text with a header line")
    model_mode: Literal["auto", "complex", "fast"] = "auto"
    provider: Optional[str] = None


class MessageRequest(BaseModel):
    message: str = Field(..., description="Natural language request")


class MessageResponse(BaseModel):
    status: str
    text: str
    data: list[dict[str, Any]]
    chart: Optional[dict[str, Any]] = None
    action: Optional[dict[str, Any]] = None
    value: Optional[float] = None
    rows: Optional[list[dict[str, Any]]] = None
    errors: list[str] = Field(default_factory=list)
    summary: str


class FeedbackRequest(BaseModel):
    turn_index: int = Field(..., ge=0)
    feedback: Optional[Literal["positive", "negative"]] = None


class ImportRequest(BaseModel):
    csv: str


def _clean_rows(rows: list[dict[str, Any]]) -> Dataset:
    cleaned: Dataset = []
    for row in rows:
        record = {}
        for key, value in row.items():
            if value is None:
                record[str(key)] = ""
            elif isinstance(value, bool):
                record[str(key)] = str(value).lower()
            elif isinstance(value, (int, float, str)):
                record[str(key)] = value
            else:
                raise HTTPException(
                    status_code=400,
                    detail=f"Unsupported value for column '{key}': {type(value).__name__}",
                )
        if cleaned and record.keys() != cleaned[0].keys():
            raise HTTPException(
                status_code=400,
                detail=f"Row {len(cleaned)} columns differ from the first row: "
                f"expected {list(cleaned[0])}, got {list(record)}",
            )
        cleaned.append(record)
    return cleaned


def _parse_csv(text: str) -> Dataset:
    try:
        return read_csv_text(text)
    except ValueError as e:
        # pandas parser errors subclass ValueError
        raise HTTPException(status_code=400, detail=f"Could not parse CSV: {e}") from e


# =============================================================================
# App factory
# =============================================================================

def create_app(
    storage_path: Path | str | None = None,
    *,
    provider: str | None = None,
    sleep: Any = asyncio.sleep,
) -> FastAPI:
    """Build the API app.

    Args:
        storage_path: DuckDB file (default: VS_STORAGE_PATH)
        provider: LLM provider for new sessions (default: VS_LLM_PROVIDER)
        sleep: Cooperative sleep used for retry backoff

    Returns:
        Configured FastAPI application
    """
    settings = Settings.from_env()
    storage = DuckDBStorage(
        storage_path or settings.storage_path, enabled=settings.analytics_enabled
    )
    sessions: dict[str, ChatSession] = {}

    app = FastAPI(title="VectorSheet API", version=__version__)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["http://localhost:3000", "http://localhost:5173"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.state.storage = storage
    app.state.sessions = sessions

    def _session(session_id: str) -> ChatSession:
        session = sessions.get(session_id)
        if session is None:
            raise HTTPException(status_code=404, detail=f"Unknown session: {session_id}")
        return session

    @app.get("/health")
    async def health() -> dict[str, Any]:
        return {
            "status": "ok",
            "version": __version__,
            "sessions": len(sessions),
            "llm": get_current_config(),
        }

    @app.post("/sessions", status_code=201)
    async def create_session(request: CreateSessionRequest) -> dict[str, Any]:
        if request.csv is not None:
            dataset = _parse_csv(request.csv)
        elif request.data is not None:
            dataset = _clean_rows(request.data)
        else:
            dataset = SAMPLE_DATA
        session = ChatSession(
            dataset,
            storage=storage,
            provider=request.provider or provider,
            model_mode=request.model_mode,
            sleep=sleep,
        )
        sessions[session.session_id] = session
        logger.info("Created session %s (%s)", session.session_id, describe_dataset(dataset))
        return session.snapshot()

    @app.get("/sessions/{session_id}")
    async def get_session(session_id: str) -> dict[str, Any]:
        return _session(session_id).snapshot()

    @app.post("/sessions/{session_id}/messages", response_model=MessageResponse)
    async def send_message(session_id: str, request: MessageRequest) -> MessageResponse:
        session = _session(session_id)
        if session.busy:
            raise HTTPException(status_code=409, detail="A request is already in flight for this session")

        outcome = await session.send(request.message)
        if outcome.status == "busy":
            raise HTTPException(status_code=409, detail=outcome.text)

        result = outcome.result
        errors: list[str] = []
        if outcome.gateway is not None:
            errors.extend(outcome.gateway.errors)
        if isinstance(result, ActionRejected):
            errors.extend(result.errors)
        value = result.value if isinstance(result, MutationResult) else None
        if isinstance(value, float) and math.isnan(value):
            value = None

        return MessageResponse(
            status=outcome.status,
            text=outcome.text,
            data=outcome.dataset,
            chart=outcome.chart.to_dict() if outcome.chart else None,
            action=(
                {"name": outcome.action.name, "args": outcome.action.wire_args()}
                if outcome.action
                else None
            ),
            value=value,
            rows=result.rows if isinstance(result, MutationResult) else None,
            errors=errors,
            summary=describe_dataset(outcome.dataset),
        )

    @app.post("/sessions/{session_id}/feedback")
    async def set_feedback(session_id: str, request: FeedbackRequest) -> dict[str, Any]:
        session = _session(session_id)
        try:
            turn = session.set_feedback(request.turn_index, request.feedback)
        except IndexError as e:
            raise HTTPException(status_code=404, detail=str(e)) from e
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e)) from e
        return turn.to_dict()

    @app.get("/sessions/{session_id}/history")
    async def get_history(session_id: str, limit: int = Query(50, ge=1, le=500)) -> dict[str, Any]:
        _session(session_id)
        return {"session_id": session_id, "history": storage.load_history(session_id, limit=limit)}

    @app.post("/sessions/{session_id}/import")
    async def import_csv(session_id: str, request: ImportRequest) -> dict[str, Any]:
        session = _session(session_id)
        if session.busy:
            raise HTTPException(status_code=409, detail="A request is already in flight for this session")
        dataset = _parse_csv(request.csv)
        session.load_dataset(dataset)
        storage.track_action(session_id, "import", {"rows": len(dataset)})
        return session.snapshot()

    @app.get("/sessions/{session_id}/export")
    async def export(session_id: str, fmt: str = Query("csv", alias="format")) -> PlainTextResponse:
        session = _session(session_id)
        if fmt not in EXPORT_FORMATS:
            raise HTTPException(
                status_code=400,
                detail=f"Unsupported export format: {fmt}. Must be one of {', '.join(EXPORT_FORMATS)}",
            )
        content = export_dataset(session.dataset, fmt)
        storage.track_export(session_id, fmt)
        return PlainTextResponse(content, media_type=_MEDIA_TYPES[fmt])

    @app.get("/sessions/{session_id}/suggestions")
    async def suggestions(session_id: str, request: Request) -> dict[str, Any]:
        session = _session(session_id)
        active_columns = [c for c in request.query_params.getlist("column") if c]
        recent_prompts = [turn.content for turn in session.turns if turn.role == "user"]
        return {
            "suggestions": [s.to_dict() for s in generate_suggestions(session.dataset)],
            "contextual": [
                s.to_dict()
                for s in contextual_suggestions(
                    session.dataset, storage, recent_prompts, active_columns
                )
            ],
        }

    @app.get("/analytics")
    async def analytics() -> dict[str, Any]:
        return storage.analytics_summary()

    return app


def main() -> None:
    """Run the API with uvicorn."""
    import uvicorn

    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    uvicorn.run(create_app(), host="127.0.0.1", port=8000)


if __name__ == "__main__":
    main()
