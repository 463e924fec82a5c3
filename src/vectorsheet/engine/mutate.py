"""Mutation engine: applies validated actions to a dataset.

``apply_action`` is a pure function of (dataset, action): the input list and
its records are never modified, a new dataset is always returned, and the
same action on the same dataset yields the same result. Sheet actions are
the only exception, they update the ``SheetCollection`` they are given.

Validation happens before any write, so a rejected action leaves nothing
half-applied.
"""

from __future__ import annotations

import locale
import logging
import math
from dataclasses import dataclass, field as dc_field
from datetime import datetime, timezone
from typing import Any, Callable

from vectorsheet.actions.schema import (
    STUB_ACTIONS,
    Action,
    AddColumn,
    AddRow,
    BatchUpdate,
    CalculateAggregate,
    CellUpdate,
    ClearFilter,
    DeleteColumns,
    DeleteRows,
    DuplicateSheet,
    FilterData,
    FindTopN,
    GenerateChart,
    RenameSheet,
    SortData,
    UpdateCell,
)
from vectorsheet.dataset import (
    Dataset,
    Record,
    SheetCollection,
    Value,
    column_names,
    copy_dataset,
    format_value,
    infer_column_type,
    is_number,
    parse_number,
)
from vectorsheet.errors import ActionValidationError, VectorSheetError

logger = logging.getLogger(__name__)


# =============================================================================
# Result types
# =============================================================================

@dataclass(frozen=True)
class HistoryEntry:
    """Audit log line handed to the storage surface."""

    action: str
    description: str
    timestamp: datetime = dc_field(default_factory=lambda: datetime.now(timezone.utc))


@dataclass(frozen=True)
class ChartDescriptor:
    chart_type: str
    labels: list[str]
    datasets: list[dict[str, Any]]
    title: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "chartType": self.chart_type,
            "labels": list(self.labels),
            "datasets": [dict(series) for series in self.datasets],
            "title": self.title,
        }


@dataclass(frozen=True)
class FilterState:
    column: str | None = None
    value: str = ""


@dataclass(frozen=True)
class SortState:
    column: str | None = None
    order: str | None = None  # "asc" | "desc"


@dataclass
class MutationResult:
    """Outcome of one applied action.

    Attributes:
        dataset: Dataset after the action (equal to the input for read-only actions)
        confirmation: One-line (or short multi-line) text for the assistant turn
        history: Audit entry for the storage surface
        read_only: True when the action is a query and rows are unchanged
        value: Scalar result of ``calculate_aggregate``
        rows: Ranked rows of ``find_top_n``
        chart: Chart descriptor of ``generate_chart``
        filter_state: New filter state when the action changes it
        sort_state: New sort state when the action changes it
    """

    dataset: Dataset
    confirmation: str
    history: HistoryEntry
    read_only: bool = False
    value: float | int | None = None
    rows: Dataset | None = None
    chart: ChartDescriptor | None = None
    filter_state: FilterState | None = None
    sort_state: SortState | None = None


@dataclass
class ActionRejected:
    """Structured failure for an action that could not be applied."""

    action: str
    message: str
    field: str | None = None
    errors: list[str] = dc_field(default_factory=list)


# =============================================================================
# Helpers
# =============================================================================

def _require_column(dataset: Dataset, action: str, column: str, arg: str = "column") -> None:
    if not dataset:
        return
    if column not in dataset[0]:
        available = ", ".join(column_names(dataset))
        raise ActionValidationError(
            f"Unknown column '{column}'. Available columns: {available}",
            action=action,
            field=arg,
        )


def _text_key(value: Value) -> str:
    return locale.strxfrm(str(value).casefold())


def _sort_key(dataset: Dataset, column: str, descending: bool) -> tuple[Callable[[Record], Any], bool]:
    """Return ``(key, reverse)`` for ordering rows by a column.

    Numeric columns compare by value with non-numeric cells (blanks after a
    CSV import) placed last in either direction. Text columns use a
    locale-aware, case-insensitive key.
    """
    if infer_column_type(dataset, column) == "numeric":
        sign = -1 if descending else 1

        def numeric_key(record: Record) -> tuple[int, float]:
            value = record.get(column)
            if is_number(value):
                return (0, sign * value)
            return (1, 0)

        return numeric_key, False
    return (lambda record: _text_key(record.get(column, ""))), descending


def _coerce_cell(dataset: Dataset, action: str, update: CellUpdate) -> Value:
    if infer_column_type(dataset, update.column) == "numeric":
        try:
            return parse_number(update.value)
        except ValueError as e:
            raise ActionValidationError(
                f"Column '{update.column}' is numeric, cannot store {update.value!r}",
                action=action,
                field="value",
            ) from e
    return update.value


def _check_update(dataset: Dataset, action: str, update: CellUpdate) -> Value:
    if update.row_index >= len(dataset):
        raise ActionValidationError(
            f"Row index {update.row_index} is out of range (dataset has {len(dataset)} rows)",
            action=action,
            field="rowIndex",
        )
    _require_column(dataset, action, update.column)
    return _coerce_cell(dataset, action, update)


def _row_label(record: Record, exclude: str, position: int) -> str:
    texts = [str(v) for k, v in record.items() if k != exclude and not is_number(v)]
    if not texts:
        return f"Row {position}"
    if len(texts) == 1:
        return texts[0]
    return f"{texts[0]} ({texts[1]})"


# =============================================================================
# Per-action handlers
# =============================================================================

def _sort_data(dataset: Dataset, action: SortData, sheets: SheetCollection | None) -> MutationResult:
    _require_column(dataset, action.name, action.column)
    key, reverse = _sort_key(dataset, action.column, action.order == "descending")
    ordered = sorted(copy_dataset(dataset), key=key, reverse=reverse)
    return MutationResult(
        dataset=ordered,
        confirmation=f"Sorted by {action.column} in {action.order} order.",
        history=HistoryEntry("sort", f"Sorted by {action.column} {action.order}"),
        sort_state=SortState(action.column, "asc" if action.order == "ascending" else "desc"),
    )


def _aggregate(values: list[float], operation: str) -> float | int:
    if operation == "sum":
        return sum(values)
    if operation == "count":
        return len(values)
    if not values:
        return math.nan
    if operation == "average":
        return sum(values) / len(values)
    if operation == "min":
        return min(values)
    return max(values)


def _calculate_aggregate(
    dataset: Dataset, action: CalculateAggregate, sheets: SheetCollection | None
) -> MutationResult:
    _require_column(dataset, action.name, action.column)
    rows = dataset
    filter_text = ""
    if action.filter_column and action.filter_value:
        _require_column(dataset, action.name, action.filter_column, "filterColumn")
        wanted = action.filter_value.casefold()
        rows = [r for r in dataset if str(r.get(action.filter_column)).casefold() == wanted]
        filter_text = f" (filtered by {action.filter_column}={action.filter_value})"

    values = [r[action.column] for r in rows if is_number(r.get(action.column))]
    result = _aggregate(values, action.operation)
    if isinstance(result, float) and math.isnan(result):
        shown = "NaN (no matching numeric values)"
    else:
        shown = format_value(result)

    return MutationResult(
        dataset=dataset,
        confirmation=f"{action.operation.upper()} of {action.column}{filter_text}: {shown}",
        history=HistoryEntry("calculate", f"{action.operation} of {action.column}{filter_text}"),
        read_only=True,
        value=result,
    )


def _filter_data(dataset: Dataset, action: FilterData, sheets: SheetCollection | None) -> MutationResult:
    _require_column(dataset, action.name, action.column)
    needle = action.value.casefold()
    filtered = [dict(r) for r in dataset if needle in str(r.get(action.column)).casefold()]
    return MutationResult(
        dataset=filtered,
        confirmation=(
            f'Filtered data: Found {len(filtered)} rows where {action.column} '
            f'contains "{action.value}".'
        ),
        history=HistoryEntry("filter", f'Filtered {action.column} by "{action.value}"'),
        filter_state=FilterState(action.column, action.value),
    )


def _add_row(dataset: Dataset, action: AddRow, sheets: SheetCollection | None) -> MutationResult:
    columns = column_names(dataset) or list(action.values)
    missing = [c for c in columns if c not in action.values]
    if missing:
        raise ActionValidationError(
            f"Missing value for column '{missing[0]}' (missing: {', '.join(missing)})",
            action=action.name,
            field=missing[0],
        )
    extra = [c for c in action.values if c not in columns]
    if extra:
        raise ActionValidationError(
            f"Unknown column '{extra[0]}' in new row",
            action=action.name,
            field=extra[0],
        )

    row: Record = {}
    for column in columns:
        raw = action.values[column]
        if dataset and infer_column_type(dataset, column) == "numeric":
            try:
                row[column] = parse_number(raw)
            except ValueError as e:
                raise ActionValidationError(
                    f"Column '{column}' is numeric, cannot store {raw!r}",
                    action=action.name,
                    field=column,
                ) from e
        elif dataset:
            row[column] = str(raw)
        else:
            row[column] = raw

    summary = ", ".join(f"{k}={format_value(v)}" for k, v in row.items())
    return MutationResult(
        dataset=copy_dataset(dataset) + [row],
        confirmation=f"Added new row: {summary}",
        history=HistoryEntry("add_row", f"Added row {len(dataset) + 1}"),
    )


def _update_cell(dataset: Dataset, action: UpdateCell, sheets: SheetCollection | None) -> MutationResult:
    update = action.as_update()
    value = _check_update(dataset, action.name, update)
    updated = copy_dataset(dataset)
    updated[update.row_index][update.column] = value
    return MutationResult(
        dataset=updated,
        confirmation=f"Updated row {update.row_index + 1}: {update.column} = {update.value}",
        history=HistoryEntry("update", f"Updated row {update.row_index + 1}"),
    )


def _find_top_n(dataset: Dataset, action: FindTopN, sheets: SheetCollection | None) -> MutationResult:
    _require_column(dataset, action.name, action.column)
    key, reverse = _sort_key(dataset, action.column, descending=True)
    ranked = sorted(enumerate(dataset), key=lambda pair: key(pair[1]), reverse=reverse)
    ranked = ranked[: action.n]
    top = [dict(r) for _, r in ranked]
    lines = [
        f"{rank}. {_row_label(r, action.column, position + 1)}"
        f" - {action.column}: {format_value(r[action.column])}"
        for rank, (position, r) in enumerate(ranked, start=1)
    ]
    body = "\n".join(lines) if lines else "(no rows)"
    return MutationResult(
        dataset=dataset,
        confirmation=f"Top {action.n} by {action.column}:\n\n{body}",
        history=HistoryEntry("top_n", f"Found top {action.n} by {action.column}"),
        read_only=True,
        rows=top,
    )


def _delete_rows(dataset: Dataset, action: DeleteRows, sheets: SheetCollection | None) -> MutationResult:
    # Indices refer to the dataset as it was before deletion.
    doomed = set(action.row_indices)
    kept = [dict(r) for i, r in enumerate(dataset) if i not in doomed]
    removed = len(dataset) - len(kept)
    noun = "row" if removed == 1 else "rows"
    return MutationResult(
        dataset=kept,
        confirmation=f"Deleted {removed} {noun}.",
        history=HistoryEntry("delete_rows", f"Deleted {removed} {noun}"),
    )


def _delete_columns(
    dataset: Dataset, action: DeleteColumns, sheets: SheetCollection | None
) -> MutationResult:
    doomed = set(action.column_names)
    trimmed = [{k: v for k, v in r.items() if k not in doomed} for r in dataset]
    names = ", ".join(action.column_names)
    return MutationResult(
        dataset=trimmed,
        confirmation=f"Deleted columns: {names}.",
        history=HistoryEntry("delete_columns", f"Deleted columns: {names}"),
    )


def _add_column(dataset: Dataset, action: AddColumn, sheets: SheetCollection | None) -> MutationResult:
    if dataset and action.column_name in dataset[0]:
        raise ActionValidationError(
            f"Column '{action.column_name}' already exists",
            action=action.name,
            field="columnName",
        )
    extended = [{**r, action.column_name: action.default_value} for r in dataset]
    return MutationResult(
        dataset=extended,
        confirmation=f"Added column: {action.column_name}.",
        history=HistoryEntry("add_column", f"Added column: {action.column_name}"),
    )


def _batch_update(dataset: Dataset, action: BatchUpdate, sheets: SheetCollection | None) -> MutationResult:
    # Validate the whole batch against the input snapshot before writing anything.
    values = [_check_update(dataset, action.name, update) for update in action.updates]
    updated = copy_dataset(dataset)
    for update, value in zip(action.updates, values):
        updated[update.row_index][update.column] = value
    count = len(action.updates)
    return MutationResult(
        dataset=updated,
        confirmation=f"Updated {count} cells.",
        history=HistoryEntry("batch_update", f"Updated {count} cells"),
    )


def _clear_filter(dataset: Dataset, action: ClearFilter, sheets: SheetCollection | None) -> MutationResult:
    return MutationResult(
        dataset=dataset,
        confirmation="Cleared all filters.",
        history=HistoryEntry("clear_filter", "Cleared all filters"),
        filter_state=FilterState(),
    )


def _require_sheets(action: str, sheets: SheetCollection | None) -> SheetCollection:
    if sheets is None:
        raise ActionValidationError(
            "No sheet collection available for sheet operations", action=action
        )
    return sheets


def _rename_sheet(dataset: Dataset, action: RenameSheet, sheets: SheetCollection | None) -> MutationResult:
    sheet = _require_sheets(action.name, sheets).rename_active(action.new_name)
    return MutationResult(
        dataset=dataset,
        confirmation=f"Renamed sheet to {sheet.name}.",
        history=HistoryEntry("rename_sheet", f"Renamed sheet to {sheet.name}"),
    )


def _duplicate_sheet(
    dataset: Dataset, action: DuplicateSheet, sheets: SheetCollection | None
) -> MutationResult:
    sheet = _require_sheets(action.name, sheets).duplicate_active(action.new_name, data=dataset)
    return MutationResult(
        dataset=dataset,
        confirmation=f"Duplicated sheet to {sheet.name}.",
        history=HistoryEntry("duplicate_sheet", f"Duplicated sheet to {sheet.name}"),
    )


def _generate_chart(
    dataset: Dataset, action: GenerateChart, sheets: SheetCollection | None
) -> MutationResult:
    chart = ChartDescriptor(
        chart_type=action.chart_type,
        labels=list(action.labels),
        datasets=[{"label": s.label, "data": list(s.data)} for s in action.datasets],
        title=action.title,
    )
    return MutationResult(
        dataset=dataset,
        confirmation=f'Generated a {action.chart_type} chart titled "{action.title}".',
        history=HistoryEntry("generate_chart", f"Generated a {action.chart_type} chart"),
        read_only=True,
        chart=chart,
    )


_STUB_MESSAGES = {
    "pivot_table": ("Generated a pivot table.", "Generated a pivot table"),
    "create_chart": ("Generated a chart.", "Generated a chart"),
    "format_cells": ("Formatted cells.", "Formatted cells"),
    "merge_cells": ("Merged cells.", "Merged cells"),
    "apply_formula": ("Applied a formula.", "Applied a formula"),
}


def _stub(dataset: Dataset, action: Any, sheets: SheetCollection | None) -> MutationResult:
    logger.info("Accepted %s without row changes: %s", action.name, action.wire_args())
    confirmation, description = _STUB_MESSAGES[action.name]
    return MutationResult(
        dataset=dataset,
        confirmation=confirmation,
        history=HistoryEntry(action.name, description),
        read_only=True,
    )


_HANDLERS: dict[str, Callable[[Dataset, Any, SheetCollection | None], MutationResult]] = {
    "sort_data": _sort_data,
    "calculate_aggregate": _calculate_aggregate,
    "filter_data": _filter_data,
    "add_row": _add_row,
    "update_cell": _update_cell,
    "find_top_n": _find_top_n,
    "delete_rows": _delete_rows,
    "delete_columns": _delete_columns,
    "add_column": _add_column,
    "batch_update": _batch_update,
    "clear_filter": _clear_filter,
    "rename_sheet": _rename_sheet,
    "duplicate_sheet": _duplicate_sheet,
    "generate_chart": _generate_chart,
    **{name: _stub for name in STUB_ACTIONS},
}


# =============================================================================
# Public API
# =============================================================================

def apply_action(
    dataset: Dataset,
    action: Action,
    *,
    sheets: SheetCollection | None = None,
) -> MutationResult:
    """Apply one validated action to a dataset.

    Args:
        dataset: Current rows (never modified)
        action: Validated action from ``vectorsheet.actions.parse_action``
        sheets: Sheet collection for ``rename_sheet`` / ``duplicate_sheet``

    Returns:
        MutationResult with the new dataset and confirmation text

    Raises:
        ActionValidationError: If the action does not fit the dataset
    """
    handler = _HANDLERS.get(action.name)
    if handler is None:
        # parse_action only produces catalog names, so this is a programming error.
        raise VectorSheetError(f"No handler registered for action '{action.name}'")
    return handler(dataset, action, sheets)


def run_action(
    dataset: Dataset,
    action: Action,
    *,
    sheets: SheetCollection | None = None,
) -> MutationResult | ActionRejected:
    """Apply an action, returning ``ActionRejected`` instead of raising."""
    try:
        return apply_action(dataset, action, sheets=sheets)
    except ActionValidationError as e:
        logger.warning("Rejected %s: %s", action.name, e)
        return ActionRejected(
            action=action.name,
            message=str(e),
            field=e.field,
            errors=list(e.errors),
        )
