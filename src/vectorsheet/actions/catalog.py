"""Tool catalog registered with the LLM backend.

Declarations are provider-neutral JSON Schema objects::

    {"name": ..., "description": ..., "parameters": {"type": "object", ...}}

``vectorsheet.llm.router`` converts them to each provider's wire format.
"""

from __future__ import annotations

import copy
from typing import Any

from vectorsheet.dataset import Dataset, column_types

_STRING = {"type": "string"}
_NUMBER = {"type": "number"}


def _obj(properties: dict[str, Any], required: list[str] | None = None) -> dict[str, Any]:
    schema: dict[str, Any] = {"type": "object", "properties": properties}
    if required:
        schema["required"] = required
    return schema


def _desc(base: dict[str, Any], description: str, **extra: Any) -> dict[str, Any]:
    return {**base, "description": description, **extra}


_CHART_TYPE = _desc(_STRING, "The type of chart.", enum=["bar", "line", "pie"])

_STATIC_DECLARATIONS: list[dict[str, Any]] = [
    {
        "name": "sort_data",
        "description": "Sorts the spreadsheet data by a specified column in ascending or descending order.",
        "parameters": _obj(
            {
                "column": _desc(_STRING, "The column to sort by."),
                "order": _desc(
                    _STRING,
                    "Sort order: 'ascending' or 'descending'.",
                    enum=["ascending", "descending"],
                ),
            },
            ["column", "order"],
        ),
    },
    {
        "name": "calculate_aggregate",
        "description": (
            "Calculates sum, average, min, max, or count for a specific column. "
            "Can filter rows by an exact column value first."
        ),
        "parameters": _obj(
            {
                "column": _desc(_STRING, "Column to calculate on."),
                "operation": _desc(
                    _STRING,
                    "Type of calculation: sum, average, min, max, or count.",
                    enum=["sum", "average", "min", "max", "count"],
                ),
                "filterColumn": _desc(_STRING, "Optional: Column to filter by."),
                "filterValue": _desc(_STRING, "Optional: Value to filter for (exact, case-insensitive)."),
            },
            ["column", "operation"],
        ),
    },
    {
        "name": "filter_data",
        "description": "Filters spreadsheet data based on a column and value to show only matching rows.",
        "parameters": _obj(
            {
                "column": _desc(_STRING, "Column to filter by."),
                "value": _desc(_STRING, "Value to filter for (case-insensitive partial match)."),
            },
            ["column", "value"],
        ),
    },
    {
        "name": "update_cell",
        "description": "Updates a specific cell value in the spreadsheet by row index and column name.",
        "parameters": _obj(
            {
                "rowIndex": _desc(_NUMBER, "Row index (0-based) to update. First row is 0."),
                "column": _desc(_STRING, "Column to update."),
                "value": _desc(_STRING, "New value (converted to a number for numeric columns)."),
            },
            ["rowIndex", "column", "value"],
        ),
    },
    {
        "name": "find_top_n",
        "description": "Finds and displays the top N rows ranked by a specified column value (highest to lowest).",
        "parameters": _obj(
            {
                "column": _desc(_STRING, "Column to rank by."),
                "n": _desc(_NUMBER, "Number of top results to return."),
            },
            ["column", "n"],
        ),
    },
    {
        "name": "delete_rows",
        "description": "Deletes one or more rows from the spreadsheet based on their indices.",
        "parameters": _obj(
            {
                "rowIndices": _desc(
                    {"type": "array", "items": _NUMBER}, "An array of 0-based row indices to delete."
                ),
            },
            ["rowIndices"],
        ),
    },
    {
        "name": "delete_columns",
        "description": "Deletes one or more columns from the spreadsheet based on their names.",
        "parameters": _obj(
            {
                "columnNames": _desc(
                    {"type": "array", "items": _STRING}, "An array of column names to delete."
                ),
            },
            ["columnNames"],
        ),
    },
    {
        "name": "add_column",
        "description": "Adds a new column to the spreadsheet.",
        "parameters": _obj(
            {
                "columnName": _desc(_STRING, "The name of the new column."),
                "defaultValue": _desc(_STRING, "The default value for the new column."),
            },
            ["columnName"],
        ),
    },
    {
        "name": "batch_update",
        "description": "Performs a batch of cell updates to the spreadsheet.",
        "parameters": _obj(
            {
                "updates": {
                    "type": "array",
                    "items": _obj(
                        {"rowIndex": _NUMBER, "column": _STRING, "value": _STRING},
                        ["rowIndex", "column", "value"],
                    ),
                },
            },
            ["updates"],
        ),
    },
    {
        "name": "format_cells",
        "description": "Applies formatting to a range of cells.",
        "parameters": _obj(
            {
                "range": _desc(_STRING, "The range of cells to format (e.g., 'A1:C5')."),
                "format": _obj(
                    {
                        "bold": {"type": "boolean"},
                        "italic": {"type": "boolean"},
                        "underline": {"type": "boolean"},
                        "fontColor": _STRING,
                        "backgroundColor": _STRING,
                    }
                ),
            },
            ["range", "format"],
        ),
    },
    {
        "name": "merge_cells",
        "description": "Merges a range of cells.",
        "parameters": _obj(
            {"range": _desc(_STRING, "The range of cells to merge (e.g., 'A1:C1').")},
            ["range"],
        ),
    },
    {
        "name": "apply_formula",
        "description": "Applies a formula to a cell.",
        "parameters": _obj(
            {
                "cell": _desc(_STRING, "The cell to apply the formula to (e.g., 'A1')."),
                "formula": _desc(_STRING, "The formula to apply (e.g., '=SUM(B1:B5)')."),
            },
            ["cell", "formula"],
        ),
    },
    {
        "name": "duplicate_sheet",
        "description": "Duplicates the current sheet.",
        "parameters": _obj(
            {"newName": _desc(_STRING, "The name of the new duplicated sheet.")}, ["newName"]
        ),
    },
    {
        "name": "rename_sheet",
        "description": "Renames the current sheet.",
        "parameters": _obj(
            {"newName": _desc(_STRING, "The new name for the current sheet.")}, ["newName"]
        ),
    },
    {
        "name": "pivot_table",
        "description": "Creates a pivot table from the data.",
        "parameters": _obj(
            {
                "rows": _desc({"type": "array", "items": _STRING}, "Columns to use as pivot rows."),
                "columns": _desc({"type": "array", "items": _STRING}, "Columns to use as pivot columns."),
                "values": _desc(_STRING, "The column to aggregate."),
                "aggregator": _desc(
                    _STRING, "The aggregation function to use.", enum=["sum", "average", "count"]
                ),
            },
            ["rows", "columns", "values", "aggregator"],
        ),
    },
    {
        "name": "create_chart",
        "description": "Creates a chart from the data.",
        "parameters": _obj(
            {
                "chartType": _CHART_TYPE,
                "title": _desc(_STRING, "The title of the chart."),
                "xAxis": _desc(_STRING, "The column to use for the x-axis."),
                "yAxis": _desc(_STRING, "The column to use for the y-axis."),
            },
            ["chartType", "title", "xAxis", "yAxis"],
        ),
    },
    {
        "name": "clear_filter",
        "description": "Clears any active filters on the spreadsheet.",
        "parameters": _obj({}),
    },
    {
        "name": "generate_chart",
        "description": "Generates a chart from the spreadsheet data.",
        "parameters": _obj(
            {
                "chartType": _CHART_TYPE,
                "labels": _desc({"type": "array", "items": _STRING}, "The labels for the x-axis."),
                "datasets": _desc(
                    {
                        "type": "array",
                        "items": _obj(
                            {
                                "label": _desc(_STRING, "The label for the dataset."),
                                "data": _desc(
                                    {"type": "array", "items": _NUMBER},
                                    "The data points, one per label.",
                                ),
                            },
                            ["label", "data"],
                        ),
                    },
                    "The datasets for the chart.",
                ),
                "title": _desc(_STRING, "The title of the chart."),
            },
            ["chartType", "labels", "datasets", "title"],
        ),
    },
]


def add_row_declaration(dataset: Dataset) -> dict[str, Any]:
    """Build the ``add_row`` declaration from the dataset's current columns."""
    properties = {
        column: _desc(_NUMBER if kind == "numeric" else _STRING, f"Value for column '{column}'.")
        for column, kind in column_types(dataset).items()
    }
    return {
        "name": "add_row",
        "description": "Adds a new row to the spreadsheet. Every column must be given a value.",
        "parameters": _obj(properties, list(properties) or None),
    }


def build_tool_declarations(dataset: Dataset) -> list[dict[str, Any]]:
    """Return the full tool catalog for the given dataset.

    Returns a deep copy, callers may adapt it freely.
    """
    declarations = copy.deepcopy(_STATIC_DECLARATIONS)
    declarations.insert(3, add_row_declaration(dataset))
    return declarations


def tool_names() -> list[str]:
    return [decl["name"] for decl in build_tool_declarations([])]
