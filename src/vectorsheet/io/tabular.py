"""CSV / JSON / Markdown conversion for datasets (pandas-based)."""

from __future__ import annotations

import io
import math

import pandas as pd

from vectorsheet.dataset import Dataset, Value, column_names

EXPORT_FORMATS = ("csv", "json", "markdown")


def _coerce_cell(raw: str) -> Value:
    text = raw.strip()
    if not text:
        return ""
    try:
        number = float(text)
    except ValueError:
        return text
    if math.isnan(number) or math.isinf(number):
        return text
    return int(number) if number.is_integer() and "." not in text and "e" not in text.lower() else number


def read_csv_text(text: str) -> Dataset:
    """Parse CSV text into a dataset.

    The first line is the header. Cells that parse as finite numbers become
    numbers, empty cells become "" and everything else stays text.
    """
    if not text or not text.strip():
        return []
    frame = pd.read_csv(
        io.StringIO(text),
        dtype=str,
        keep_default_na=False,
        skipinitialspace=True,
        skip_blank_lines=True,
    )
    frame.columns = [str(col).strip() for col in frame.columns]
    return [
        {col: _coerce_cell(value) for col, value in record.items()}
        for record in frame.to_dict(orient="records")
    ]


def _frame(dataset: Dataset) -> pd.DataFrame:
    return pd.DataFrame(dataset, columns=column_names(dataset))


def to_csv_text(dataset: Dataset) -> str:
    if not dataset:
        return ""
    return _frame(dataset).to_csv(index=False, lineterminator="\n")


def to_json_text(dataset: Dataset) -> str:
    if not dataset:
        return "[]"
    return _frame(dataset).to_json(orient="records", indent=2)


def _markdown_cell(value: Value) -> str:
    return str(value).replace("|", "\\|").replace("\n", " ")


def to_markdown_table(dataset: Dataset) -> str:
    if not dataset:
        return ""
    columns = column_names(dataset)
    lines = [
        "| " + " | ".join(_markdown_cell(col) for col in columns) + " |",
        "| " + " | ".join("---" for _ in columns) + " |",
    ]
    for record in dataset:
        lines.append("| " + " | ".join(_markdown_cell(record.get(col, "")) for col in columns) + " |")
    return "\n".join(lines)


def export_dataset(dataset: Dataset, fmt: str) -> str:
    """Render a dataset in one of EXPORT_FORMATS."""
    if fmt == "csv":
        return to_csv_text(dataset)
    if fmt == "json":
        return to_json_text(dataset)
    if fmt == "markdown":
        return to_markdown_table(dataset)
    raise ValueError(f"Unsupported export format: {fmt}. Must be one of {EXPORT_FORMATS}")
