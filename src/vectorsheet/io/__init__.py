"""Import and export helpers."""

from vectorsheet.io.tabular import (
    EXPORT_FORMATS,
    export_dataset,
    read_csv_text,
    to_csv_text,
    to_json_text,
    to_markdown_table,
)

__all__ = [
    "EXPORT_FORMATS",
    "export_dataset",
    "read_csv_text",
    "to_csv_text",
    "to_json_text",
    "to_markdown_table",
]
