"""Action schema and validation for VectorSheet.

Every tool the model may invoke has one Pydantic model here. The models are
the contract between the Intent Gateway and the Mutation Engine: the Gateway
turns a raw tool call (name + JSON arguments) into one of these objects, and
the Engine only ever sees validated objects.

Wire names follow the tool catalog (camelCase, e.g. ``filterColumn``);
attributes are snake_case and both spellings are accepted on input.
"""

from __future__ import annotations

from typing import Annotated, Any, Literal, Optional, Union

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    field_validator,
    model_validator,
)

from vectorsheet.errors import ActionValidationError, UnknownToolError

CellValue = Union[str, int, float]


def _to_text(value: Any) -> Any:
    # Models often send numbers where the catalog declares strings.
    if isinstance(value, bool):
        return str(value).lower()
    if isinstance(value, (int, float)):
        return str(value)
    return value


class _ActionModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore", frozen=True)

    def wire_args(self) -> dict[str, Any]:
        """Return the arguments in catalog (camelCase) form."""
        return self.model_dump(by_alias=True, exclude={"name"}, exclude_none=True)


class _ColumnAction(_ActionModel):
    column: str = Field(..., min_length=1, description="Target column")


# =============================================================================
# Row-level actions
# =============================================================================

class SortData(_ColumnAction):
    """Stable sort of all rows by one column."""

    name: Literal["sort_data"] = "sort_data"
    order: Literal["ascending", "descending"] = Field(..., description="Sort order")

    @field_validator("order", mode="before")
    @classmethod
    def normalize_order(cls, v: Any) -> Any:
        if isinstance(v, str):
            lowered = v.strip().lower()
            return {"asc": "ascending", "desc": "descending"}.get(lowered, lowered)
        return v


class CalculateAggregate(_ColumnAction):
    """Read-only aggregate over a numeric column, optionally filtered."""

    name: Literal["calculate_aggregate"] = "calculate_aggregate"
    operation: Literal["sum", "average", "min", "max", "count"]
    filter_column: Optional[str] = Field(None, alias="filterColumn")
    filter_value: Optional[str] = Field(None, alias="filterValue")

    @field_validator("operation", mode="before")
    @classmethod
    def normalize_operation(cls, v: Any) -> Any:
        if isinstance(v, str):
            lowered = v.strip().lower()
            return {"avg": "average", "mean": "average"}.get(lowered, lowered)
        return v

    @field_validator("filter_value", mode="before")
    @classmethod
    def filter_value_as_text(cls, v: Any) -> Any:
        return _to_text(v)


class FilterData(_ColumnAction):
    """Keep rows whose column contains the value (case-insensitive)."""

    name: Literal["filter_data"] = "filter_data"
    value: str

    @field_validator("value", mode="before")
    @classmethod
    def value_as_text(cls, v: Any) -> Any:
        return _to_text(v)


class AddRow(_ActionModel):
    """Append one row. Accepts ``{"values": {...}}`` or the values flattened."""

    name: Literal["add_row"] = "add_row"
    values: dict[str, CellValue] = Field(..., min_length=1)

    @model_validator(mode="before")
    @classmethod
    def collect_flat_values(cls, data: Any) -> Any:
        if isinstance(data, dict) and "values" not in data:
            return {"values": dict(data)}
        return data

    def wire_args(self) -> dict[str, Any]:
        return dict(self.values)


class CellUpdate(BaseModel):
    """One cell write inside ``update_cell`` or ``batch_update``."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore", frozen=True)

    row_index: int = Field(..., ge=0, alias="rowIndex")
    column: str = Field(..., min_length=1)
    value: str

    @field_validator("value", mode="before")
    @classmethod
    def value_as_text(cls, v: Any) -> Any:
        return _to_text(v)


class UpdateCell(_ActionModel):
    name: Literal["update_cell"] = "update_cell"
    row_index: int = Field(..., ge=0, alias="rowIndex")
    column: str = Field(..., min_length=1)
    value: str

    @field_validator("value", mode="before")
    @classmethod
    def value_as_text(cls, v: Any) -> Any:
        return _to_text(v)

    def as_update(self) -> CellUpdate:
        return CellUpdate(row_index=self.row_index, column=self.column, value=self.value)


class FindTopN(_ColumnAction):
    """Read-only ranking of the n rows with the greatest column value."""

    name: Literal["find_top_n"] = "find_top_n"
    n: int = Field(..., ge=1)


class DeleteRows(_ActionModel):
    name: Literal["delete_rows"] = "delete_rows"
    row_indices: list[Annotated[int, Field(ge=0)]] = Field(..., min_length=1, alias="rowIndices")


class DeleteColumns(_ActionModel):
    name: Literal["delete_columns"] = "delete_columns"
    column_names: list[Annotated[str, Field(min_length=1)]] = Field(
        ..., min_length=1, alias="columnNames"
    )


class AddColumn(_ActionModel):
    name: Literal["add_column"] = "add_column"
    column_name: str = Field(..., alias="columnName")
    default_value: CellValue = Field("", alias="defaultValue")

    @field_validator("column_name")
    @classmethod
    def column_name_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Column name cannot be empty")
        return v.strip()

    @field_validator("default_value", mode="before")
    @classmethod
    def none_means_empty(cls, v: Any) -> Any:
        return "" if v is None else v


class BatchUpdate(_ActionModel):
    """Ordered cell writes applied against one input snapshot."""

    name: Literal["batch_update"] = "batch_update"
    updates: list[CellUpdate] = Field(..., min_length=1)


class ClearFilter(_ActionModel):
    name: Literal["clear_filter"] = "clear_filter"


# =============================================================================
# Sheet-level and projection actions
# =============================================================================

class RenameSheet(_ActionModel):
    name: Literal["rename_sheet"] = "rename_sheet"
    new_name: str = Field(..., min_length=1, alias="newName")


class DuplicateSheet(_ActionModel):
    name: Literal["duplicate_sheet"] = "duplicate_sheet"
    new_name: str = Field(..., min_length=1, alias="newName")


class ChartSeries(BaseModel):
    model_config = ConfigDict(frozen=True)

    label: str
    data: list[float]


class GenerateChart(_ActionModel):
    """Chart descriptor; never touches rows."""

    name: Literal["generate_chart"] = "generate_chart"
    chart_type: Literal["bar", "line", "pie"] = Field(..., alias="chartType")
    labels: list[str]
    datasets: list[ChartSeries] = Field(..., min_length=1)
    title: str

    @model_validator(mode="after")
    def series_match_labels(self) -> "GenerateChart":
        for series in self.datasets:
            if len(series.data) != len(self.labels):
                raise ValueError(
                    f"Dataset '{series.label}' has {len(series.data)} points "
                    f"but there are {len(self.labels)} labels"
                )
        return self


# Lower-priority actions: accepted and logged, no row changes.

class PivotTable(_ActionModel):
    name: Literal["pivot_table"] = "pivot_table"
    rows: list[str]
    columns: list[str]
    values: str
    aggregator: Literal["sum", "average", "count"]


class CreateChart(_ActionModel):
    name: Literal["create_chart"] = "create_chart"
    chart_type: Literal["bar", "line", "pie"] = Field(..., alias="chartType")
    title: str
    x_axis: str = Field(..., alias="xAxis")
    y_axis: str = Field(..., alias="yAxis")


class CellFormat(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore", frozen=True)

    bold: Optional[bool] = None
    italic: Optional[bool] = None
    underline: Optional[bool] = None
    font_color: Optional[str] = Field(None, alias="fontColor")
    background_color: Optional[str] = Field(None, alias="backgroundColor")


class FormatCells(_ActionModel):
    name: Literal["format_cells"] = "format_cells"
    range: str
    format: CellFormat


class MergeCells(_ActionModel):
    name: Literal["merge_cells"] = "merge_cells"
    range: str


class ApplyFormula(_ActionModel):
    name: Literal["apply_formula"] = "apply_formula"
    cell: str
    formula: str


Action = Annotated[
    Union[
        SortData,
        CalculateAggregate,
        FilterData,
        AddRow,
        UpdateCell,
        FindTopN,
        DeleteRows,
        DeleteColumns,
        AddColumn,
        BatchUpdate,
        ClearFilter,
        RenameSheet,
        DuplicateSheet,
        GenerateChart,
        PivotTable,
        CreateChart,
        FormatCells,
        MergeCells,
        ApplyFormula,
    ],
    Field(discriminator="name"),
]

ACTION_MODELS: dict[str, type[_ActionModel]] = {
    model.model_fields["name"].default: model
    for model in (
        SortData,
        CalculateAggregate,
        FilterData,
        AddRow,
        UpdateCell,
        FindTopN,
        DeleteRows,
        DeleteColumns,
        AddColumn,
        BatchUpdate,
        ClearFilter,
        RenameSheet,
        DuplicateSheet,
        GenerateChart,
        PivotTable,
        CreateChart,
        FormatCells,
        MergeCells,
        ApplyFormula,
    )
}

KNOWN_ACTIONS: frozenset[str] = frozenset(ACTION_MODELS)

STUB_ACTIONS: frozenset[str] = frozenset(
    {"pivot_table", "create_chart", "format_cells", "merge_cells", "apply_formula"}
)

READ_ONLY_ACTIONS: frozenset[str] = frozenset({"calculate_aggregate", "find_top_n"})


def _format_errors(exc: ValidationError) -> tuple[str | None, list[str]]:
    errors = []
    first_field = None
    for err in exc.errors():
        loc = [str(x) for x in err["loc"]]
        if first_field is None and loc:
            first_field = loc[0]
        where = " -> ".join(loc) if loc else "(arguments)"
        errors.append(f"{where}: {err['msg']}")
    return first_field, errors


def parse_action(name: str, args: dict[str, Any] | None) -> Action:
    """Turn a raw tool call into a validated Action.

    Args:
        name: Tool name as returned by the model
        args: Tool arguments (JSON object)

    Returns:
        The validated action model

    Raises:
        UnknownToolError: If ``name`` is not in the catalog
        ActionValidationError: If the arguments are malformed
    """
    model = ACTION_MODELS.get(name)
    if model is None:
        raise UnknownToolError(name)
    if args is not None and not isinstance(args, dict):
        raise ActionValidationError(
            f"Arguments for {name} must be an object, got {type(args).__name__}",
            action=name,
        )
    payload = dict(args or {})
    if model is not AddRow:
        payload.pop("name", None)
    try:
        return model.model_validate(payload)
    except ValidationError as e:
        field, errors = _format_errors(e)
        message = f"Invalid arguments for {name}:\n" + "\n".join(f"  - {err}" for err in errors)
        raise ActionValidationError(message, action=name, field=field, errors=errors) from e


def validate_action(name: str, args: dict[str, Any] | None) -> tuple[bool, list[str]]:
    """Validate a raw tool call without raising.

    Returns:
        Tuple of (is_valid, errors) where errors is a list of error messages
    """
    try:
        parse_action(name, args)
        return True, []
    except UnknownToolError as e:
        return False, [str(e)]
    except ActionValidationError as e:
        return False, list(e.errors)
