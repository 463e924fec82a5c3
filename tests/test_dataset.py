"""Tests for dataset primitives and the sheet collection."""

import math

import pytest

from vectorsheet.dataset import (
    Sheet,
    SheetCollection,
    column_names,
    column_types,
    describe_dataset,
    format_value,
    infer_column_type,
    parse_number,
)
from vectorsheet.errors import ActionValidationError


class TestColumnTypes:
    def test_sample_columns(self, sales_data):
        assert column_names(sales_data) == ["month", "product", "region", "sales", "cost", "profit"]
        assert column_types(sales_data) == {
            "month": "text",
            "product": "text",
            "region": "text",
            "sales": "numeric",
            "cost": "numeric",
            "profit": "numeric",
        }

    def test_empty_dataset_is_text(self):
        assert infer_column_type([], "sales") == "text"
        assert column_names([]) == []

    def test_first_row_none_is_text(self):
        data = [{"sales": None}, {"sales": 10}]
        assert infer_column_type(data, "sales") == "text"

    def test_bool_is_text(self):
        assert infer_column_type([{"flag": True}], "flag") == "text"

    def test_only_first_row_is_sampled(self):
        data = [{"x": "n/a"}, {"x": 5}]
        assert infer_column_type(data, "x") == "text"


class TestParseNumber:
    def test_thousand_separators(self):
        assert parse_number("12,500") == 12500
        assert isinstance(parse_number("12,500"), int)

    def test_decimal(self):
        assert parse_number(" 1,234.5 ") == 1234.5

    def test_passthrough(self):
        assert parse_number(7) == 7

    @pytest.mark.parametrize("raw", ["", "abc", "nan", "inf", True])
    def test_rejects_non_numbers(self, raw):
        with pytest.raises(ValueError):
            parse_number(raw)


class TestFormatting:
    def test_format_value(self):
        assert format_value(15000) == "15,000"
        assert format_value(1234.5) == "1,234.5"
        assert format_value(2.0) == "2"
        assert format_value(math.nan) == "NaN"
        assert format_value("North") == "North"

    def test_describe(self, sales_data):
        assert describe_dataset(sales_data) == "Spreadsheet: 9 rows, 6 columns"
        assert describe_dataset([]) == "No data"


class TestSheetCollection:
    def test_defaults(self):
        sheets = SheetCollection()
        assert sheets.names == ["Sheet1", "Sheet2"]
        assert sheets.active.name == "Sheet1"

    def test_rename_active(self):
        sheets = SheetCollection()
        sheets.rename_active("Sales")
        assert sheets.names == ["Sales", "Sheet2"]
        assert sheets.active_name == "Sales"

    def test_rename_to_existing_name_fails(self):
        sheets = SheetCollection()
        with pytest.raises(ActionValidationError) as exc_info:
            sheets.rename_active("Sheet2")
        assert exc_info.value.field == "newName"

    def test_duplicate_copies_rows(self, sales_data):
        sheets = SheetCollection([Sheet("Sheet1", sales_data)])
        copy = sheets.duplicate_active("Copy")
        assert sheets.active_name == "Copy"
        assert copy.data == sales_data
        copy.data[0]["sales"] = 0
        assert sheets.get("Sheet1").data[0]["sales"] == 15000

    def test_duplicate_blank_name_fails(self):
        with pytest.raises(ActionValidationError):
            SheetCollection().duplicate_active("   ")
