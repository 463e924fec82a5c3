"""Chat session: one conversation over one dataset.

``ChatSession.send`` runs the whole pipeline for a single utterance:

    utterance -> Intent Gateway (with retry) -> Mutation Engine -> render surface

and records history and analytics on the storage surface. A session serves
one request at a time; a second ``send`` while one is pending is rejected
with a ``busy`` outcome instead of being interleaved.
"""

from __future__ import annotations

import asyncio
import logging
import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Literal, Protocol

from vectorsheet.actions.schema import Action
from vectorsheet.dataset import Dataset, Sheet, SheetCollection, copy_dataset
from vectorsheet.engine.mutate import (
    ActionRejected,
    ChartDescriptor,
    FilterState,
    HistoryEntry,
    MutationResult,
    SortState,
    run_action,
)
from vectorsheet.gateway.intent import ConversationContext, GatewayResult, ModelMode, interpret
from vectorsheet.storage.base import StorageSurface

logger = logging.getLogger(__name__)

GREETING = (
    "Hello! I'm your AI data analyst. I can help you analyze this sales data. "
    "Try asking me to 'show total sales by region' or 'sort by profit in descending order'."
)
RESET_COMMAND = "reset"
RESET_MESSAGE = "Data reset to original state."
BUSY_MESSAGE = "Still working on your previous request. Please wait for it to finish."
MAX_HISTORY = 50
MAX_RECENT_ACTIONS = 3

Role = Literal["user", "assistant"]
Feedback = Literal["positive", "negative"]
TurnStatus = Literal["noop", "busy", "reset", "clarify", "text", "applied", "rejected", "failure"]


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class RenderSurface(Protocol):
    def render(self, text: str, dataset: Dataset, chart: ChartDescriptor | None) -> None: ...


@dataclass
class ConversationTurn:
    role: Role
    content: str
    action: Action | None = None
    chart: ChartDescriptor | None = None
    feedback: Feedback | None = None
    timestamp: datetime = field(default_factory=_utc_now)

    def to_dict(self) -> dict[str, Any]:
        return {
            "role": self.role,
            "content": self.content,
            "action": (
                {"name": self.action.name, "args": self.action.wire_args()} if self.action else None
            ),
            "chart": self.chart.to_dict() if self.chart else None,
            "feedback": self.feedback,
            "timestamp": self.timestamp.isoformat(),
        }


@dataclass
class TurnOutcome:
    """What one ``send`` produced.

    ``result`` is the engine outcome when the gateway returned an action.
    """

    status: TurnStatus
    text: str
    dataset: Dataset
    chart: ChartDescriptor | None = None
    action: Action | None = None
    gateway: GatewayResult | None = None
    result: MutationResult | ActionRejected | None = None


class ChatSession:
    """Per-session state: dataset, conversation, history and filter/sort state."""

    def __init__(
        self,
        dataset: Dataset,
        *,
        storage: StorageSurface | None = None,
        render: RenderSurface | None = None,
        sheets: SheetCollection | None = None,
        provider: str | None = None,
        model_mode: ModelMode = "auto",
        session_id: str | None = None,
        on_retry: Callable[[int, float], None] | None = None,
        sleep: Callable[[float], Any] = asyncio.sleep,
    ):
        self.session_id = session_id or f"session_{uuid.uuid4().hex[:12]}"
        self.storage = storage
        self.render = render
        self.provider = provider
        self.model_mode: ModelMode = model_mode
        self.on_retry = on_retry
        self._sleep = sleep

        self._original = copy_dataset(dataset)
        self.dataset: Dataset = copy_dataset(dataset)
        self.sheets = sheets or SheetCollection([Sheet("Sheet1", copy_dataset(dataset)), Sheet("Sheet2")])
        self.filter_state = FilterState()
        self.sort_state = SortState()

        self.turns: list[ConversationTurn] = [ConversationTurn("assistant", GREETING)]
        self.history: list[HistoryEntry] = []  # newest first
        self._applied: list[Action] = []
        self.last_query = ""
        self._busy = False

    # =========================================================================
    # State
    # =========================================================================

    @property
    def busy(self) -> bool:
        return self._busy

    @property
    def recent_actions(self) -> list[Action]:
        return self._applied[-MAX_RECENT_ACTIONS:]

    def context(self) -> ConversationContext:
        return ConversationContext(recent_actions=self.recent_actions, last_query=self.last_query)

    def _record_history(self, entry: HistoryEntry) -> None:
        self.history.insert(0, entry)
        del self.history[MAX_HISTORY:]
        self._store("append_history", self.session_id, entry)

    def _store(self, method: str, *args: Any) -> None:
        """Write to storage; failures are logged and never reach the caller."""
        if self.storage is None:
            return
        try:
            getattr(self.storage, method)(*args)
        except Exception:
            logger.exception("Storage %s failed for session %s", method, self.session_id)

    def _set_dataset(self, dataset: Dataset, *, detach: bool = False) -> None:
        if detach:
            dataset = copy_dataset(dataset)
        self.dataset = dataset
        self.sheets.active.data = dataset

    def load_dataset(self, dataset: Dataset, *, source: str = "import") -> None:
        """Replace the working and original dataset (e.g. after a CSV import)."""
        self._original = copy_dataset(dataset)
        self._set_dataset(copy_dataset(dataset))
        self.filter_state = FilterState()
        self.sort_state = SortState()
        self._record_history(HistoryEntry(source, f"Loaded {len(dataset)} rows"))

    def reset(self) -> None:
        """Restore the original dataset and clear filter and sort state."""
        self._set_dataset(copy_dataset(self._original))
        self.filter_state = FilterState()
        self.sort_state = SortState()
        self._record_history(HistoryEntry("reset", "Reset data to original"))

    def set_feedback(self, turn_index: int, feedback: Feedback | None) -> ConversationTurn:
        """Tag an assistant turn; ``None`` clears the tag.

        Raises:
            IndexError: If ``turn_index`` is out of range
            ValueError: If the turn is not an assistant turn or feedback is invalid
        """
        if feedback not in ("positive", "negative", None):
            raise ValueError(f"Invalid feedback: {feedback}. Must be 'positive', 'negative' or None")
        if not 0 <= turn_index < len(self.turns):
            raise IndexError(f"No turn at index {turn_index}")
        turn = self.turns[turn_index]
        if turn.role != "assistant":
            raise ValueError("Feedback can only be given on assistant turns")
        turn.feedback = feedback
        self._store("track_action", self.session_id, "feedback", {"turn_index": turn_index, "feedback": feedback})
        return turn

    def snapshot(self) -> dict[str, Any]:
        return {
            "session_id": self.session_id,
            "sheet": self.sheets.active_name,
            "sheets": self.sheets.names,
            "data": self.dataset,
            "filter": {"column": self.filter_state.column, "value": self.filter_state.value},
            "sort": {"column": self.sort_state.column, "order": self.sort_state.order},
            "model_mode": self.model_mode,
            "busy": self._busy,
            "turns": [turn.to_dict() for turn in self.turns],
        }

    # =========================================================================
    # Pipeline
    # =========================================================================

    async def send(self, user_input: str) -> TurnOutcome:
        """Process one utterance end to end.

        Returns:
            TurnOutcome; a ``busy`` outcome when another send is in flight
        """
        if self._busy:
            logger.warning("Session %s busy, rejecting concurrent request", self.session_id)
            return TurnOutcome(status="busy", text=BUSY_MESSAGE, dataset=self.dataset)
        self._busy = True
        try:
            return await self._process(user_input)
        finally:
            self._busy = False

    def _reply(self, outcome: TurnOutcome) -> TurnOutcome:
        self.turns.append(ConversationTurn("assistant", outcome.text, chart=outcome.chart))
        if self.render is not None:
            self.render.render(outcome.text, self.dataset, outcome.chart)
        return outcome

    async def _process(self, user_input: str) -> TurnOutcome:
        text = (user_input or "").strip()
        if not text:
            return TurnOutcome(status="noop", text="", dataset=self.dataset)

        self.turns.append(ConversationTurn("user", text))

        if text.lower() == RESET_COMMAND:
            self.reset()
            return self._reply(TurnOutcome(status="reset", text=RESET_MESSAGE, dataset=self.dataset))

        started = time.perf_counter()
        gateway = await interpret(
            text,
            self.dataset,
            self.context(),
            model_mode=self.model_mode,
            provider=self.provider,
            on_retry=self.on_retry,
            sleep=self._sleep,
        )
        elapsed_ms = (time.perf_counter() - started) * 1000
        self.last_query = text

        if gateway.kind in ("clarify", "text"):
            self._track_prompt(text, True, elapsed_ms)
            return self._reply(
                TurnOutcome(status=gateway.kind, text=gateway.text, dataset=self.dataset, gateway=gateway)
            )

        if gateway.kind == "failure":
            assert gateway.failure is not None
            self._track_prompt(text, False, elapsed_ms)
            self._store(
                "track_error",
                self.session_id,
                gateway.failure.classification.kind,
                gateway.failure.message,
                gateway.failure.classification.can_retry,
            )
            return self._reply(
                TurnOutcome(status="failure", text=gateway.text, dataset=self.dataset, gateway=gateway)
            )

        if gateway.kind != "action" or gateway.action is None:
            # unknown_tool / validation from the gateway
            self._track_prompt(text, False, elapsed_ms)
            self._store("track_error", self.session_id, gateway.kind, "; ".join(gateway.errors), False)
            return self._reply(
                TurnOutcome(status="rejected", text=gateway.text, dataset=self.dataset, gateway=gateway)
            )

        action = gateway.action
        self.turns.append(ConversationTurn("assistant", gateway.text, action=action))
        sheet_before = self.sheets.active_name
        result = run_action(self.dataset, action, sheets=self.sheets)
        if isinstance(result, ActionRejected):
            self._track_prompt(text, False, elapsed_ms)
            self._store("track_error", self.session_id, "validation", result.message, False)
            return self._reply(
                TurnOutcome(
                    status="rejected",
                    text=f"⚠️ {result.message}",
                    dataset=self.dataset,
                    action=action,
                    gateway=gateway,
                    result=result,
                )
            )

        self._set_dataset(result.dataset, detach=self.sheets.active_name != sheet_before)
        if result.filter_state is not None:
            self.filter_state = result.filter_state
        if result.sort_state is not None:
            self.sort_state = result.sort_state
        self._applied.append(action)
        self._record_history(result.history)
        self._track_prompt(text, True, elapsed_ms)
        self._store("track_action", self.session_id, action.name, {"read_only": result.read_only})

        return self._reply(
            TurnOutcome(
                status="applied",
                text=result.confirmation,
                dataset=self.dataset,
                chart=result.chart,
                action=action,
                gateway=gateway,
                result=result,
            )
        )

    def _track_prompt(self, prompt: str, success: bool, elapsed_ms: float) -> None:
        self._store("track_prompt", self.session_id, prompt, self.model_mode, success, elapsed_ms)
