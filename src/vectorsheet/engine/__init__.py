"""Mutation engine for applying actions to spreadsheet data."""

from vectorsheet.engine.mutate import (
    ActionRejected,
    ChartDescriptor,
    FilterState,
    HistoryEntry,
    MutationResult,
    SortState,
    apply_action,
    run_action,
)

__all__ = [
    "ActionRejected",
    "ChartDescriptor",
    "FilterState",
    "HistoryEntry",
    "MutationResult",
    "SortState",
    "apply_action",
    "run_action",
]
