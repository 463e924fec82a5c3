"""Action contracts shared by the Intent Gateway and the Mutation Engine."""

from vectorsheet.actions.catalog import build_tool_declarations, tool_names
from vectorsheet.actions.schema import (
    ACTION_MODELS,
    KNOWN_ACTIONS,
    READ_ONLY_ACTIONS,
    STUB_ACTIONS,
    Action,
    AddColumn,
    AddRow,
    ApplyFormula,
    BatchUpdate,
    CalculateAggregate,
    CellUpdate,
    ClearFilter,
    CreateChart,
    DeleteColumns,
    DeleteRows,
    DuplicateSheet,
    FilterData,
    FindTopN,
    FormatCells,
    GenerateChart,
    MergeCells,
    PivotTable,
    RenameSheet,
    SortData,
    UpdateCell,
    parse_action,
    validate_action,
)

__all__ = [
    "ACTION_MODELS",
    "KNOWN_ACTIONS",
    "READ_ONLY_ACTIONS",
    "STUB_ACTIONS",
    "Action",
    "AddColumn",
    "AddRow",
    "ApplyFormula",
    "BatchUpdate",
    "CalculateAggregate",
    "CellUpdate",
    "ClearFilter",
    "CreateChart",
    "DeleteColumns",
    "DeleteRows",
    "DuplicateSheet",
    "FilterData",
    "FindTopN",
    "FormatCells",
    "GenerateChart",
    "MergeCells",
    "PivotTable",
    "RenameSheet",
    "SortData",
    "UpdateCell",
    "build_tool_declarations",
    "parse_action",
    "tool_names",
    "validate_action",
]
