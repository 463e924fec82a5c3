"""Tabular dataset primitives.

A Dataset is an ordered list of Records; a Record maps column name to a
number or a string. All records share the same column set after every
successful mutation, so the first record is treated as the column source.
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass, field
from typing import Literal, Union

from vectorsheet.errors import ActionValidationError

Value = Union[int, float, str]
Record = dict[str, Value]
Dataset = list[Record]

ColumnType = Literal["numeric", "text"]

_SEPARATORS_RE = re.compile(r"[,\s]")

SAMPLE_DATA: Dataset = [
    {"month": "January", "product": "Product A", "region": "North", "sales": 15000, "cost": 8000, "profit": 7000},
    {"month": "January", "product": "Product B", "region": "South", "sales": 12000, "cost": 7000, "profit": 5000},
    {"month": "January", "product": "Product C", "region": "East", "sales": 18000, "cost": 9000, "profit": 9000},
    {"month": "February", "product": "Product A", "region": "North", "sales": 16000, "cost": 8500, "profit": 7500},
    {"month": "February", "product": "Product B", "region": "South", "sales": 14000, "cost": 7500, "profit": 6500},
    {"month": "February", "product": "Product C", "region": "West", "sales": 20000, "cost": 10000, "profit": 10000},
    {"month": "March", "product": "Product A", "region": "East", "sales": 17000, "cost": 9000, "profit": 8000},
    {"month": "March", "product": "Product B", "region": "North", "sales": 13000, "cost": 7000, "profit": 6000},
    {"month": "March", "product": "Product C", "region": "South", "sales": 19000, "cost": 9500, "profit": 9500},
]


def column_names(dataset: Dataset) -> list[str]:
    """Return the ordered column names of the dataset (empty if no rows)."""
    if not dataset:
        return []
    return list(dataset[0].keys())


def infer_column_type(dataset: Dataset, column: str) -> ColumnType:
    """Infer a column's type by sampling the first record.

    Only the first row is sampled. Anything that is not a real number there
    (empty dataset, missing column, None, bool) is reported as text.
    """
    if not dataset:
        return "text"
    sample = dataset[0].get(column)
    if isinstance(sample, bool) or sample is None:
        return "text"
    if isinstance(sample, (int, float)):
        return "numeric"
    return "text"


def column_types(dataset: Dataset) -> dict[str, ColumnType]:
    return {col: infer_column_type(dataset, col) for col in column_names(dataset)}


def numeric_columns(dataset: Dataset) -> list[str]:
    return [col for col, kind in column_types(dataset).items() if kind == "numeric"]


def text_columns(dataset: Dataset) -> list[str]:
    return [col for col, kind in column_types(dataset).items() if kind == "text"]


def parse_number(value: Value) -> int | float:
    """Parse a user-supplied value into a number.

    Thousand separators and surrounding whitespace are stripped, so
    ``"12,500"`` becomes ``12500``. Integral results are returned as int.

    Raises:
        ValueError: If the value is not numeric
    """
    if isinstance(value, bool):
        raise ValueError(f"Not a number: {value!r}")
    if isinstance(value, (int, float)):
        number = float(value)
    else:
        cleaned = _SEPARATORS_RE.sub("", str(value))
        if not cleaned:
            raise ValueError(f"Not a number: {value!r}")
        number = float(cleaned)
    if math.isnan(number) or math.isinf(number):
        raise ValueError(f"Not a finite number: {value!r}")
    if number.is_integer():
        return int(number)
    return number


def is_number(value: object) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def copy_dataset(dataset: Dataset) -> Dataset:
    return [dict(record) for record in dataset]


def describe_dataset(dataset: Dataset) -> str:
    if not dataset:
        return "No data"
    return f"Spreadsheet: {len(dataset)} rows, {len(column_names(dataset))} columns"


def format_value(value: Value) -> str:
    """Render a value the way the confirmation text shows it."""
    if is_number(value):
        if isinstance(value, float) and math.isnan(value):
            return "NaN"
        if isinstance(value, float) and not value.is_integer():
            return f"{value:,.2f}".rstrip("0").rstrip(".")
        return f"{int(value):,}"
    return str(value)


# =============================================================================
# Sheets
# =============================================================================

@dataclass
class Sheet:
    """A named sheet holding its own dataset."""

    name: str
    data: Dataset = field(default_factory=list)
    metadata: dict = field(default_factory=dict)


class SheetCollection:
    """Ordered collection of sheets with one active sheet."""

    def __init__(self, sheets: list[Sheet] | None = None, active: str | None = None):
        self._sheets: list[Sheet] = sheets or [Sheet("Sheet1"), Sheet("Sheet2")]
        self.active_name = active or self._sheets[0].name
        if self.get(self.active_name) is None:
            raise ValueError(f"Active sheet '{self.active_name}' not in collection")

    @property
    def names(self) -> list[str]:
        return [sheet.name for sheet in self._sheets]

    @property
    def active(self) -> Sheet:
        sheet = self.get(self.active_name)
        assert sheet is not None
        return sheet

    def get(self, name: str) -> Sheet | None:
        for sheet in self._sheets:
            if sheet.name == name:
                return sheet
        return None

    def _check_new_name(self, action: str, new_name: str) -> str:
        clean = (new_name or "").strip()
        if not clean:
            raise ActionValidationError(
                "Sheet name cannot be empty", action=action, field="newName"
            )
        if self.get(clean) is not None and clean != self.active_name:
            raise ActionValidationError(
                f"A sheet named '{clean}' already exists", action=action, field="newName"
            )
        return clean

    def rename_active(self, new_name: str) -> Sheet:
        clean = self._check_new_name("rename_sheet", new_name)
        sheet = self.active
        sheet.name = clean
        self.active_name = clean
        return sheet

    def duplicate_active(self, new_name: str, data: Dataset | None = None) -> Sheet:
        """Copy the active sheet under a new name and make the copy active.

        Args:
            new_name: Name of the duplicated sheet
            data: Rows to copy (defaults to the active sheet's stored rows)
        """
        clean = self._check_new_name("duplicate_sheet", new_name)
        if clean == self.active_name:
            raise ActionValidationError(
                f"A sheet named '{clean}' already exists", action="duplicate_sheet", field="newName"
            )
        source = self.active.data if data is None else data
        copy = Sheet(clean, copy_dataset(source), dict(self.active.metadata))
        self._sheets.append(copy)
        self.active_name = clean
        return copy
