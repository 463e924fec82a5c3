"""Tests for CSV / JSON / Markdown conversion."""

import json

import pytest

from vectorsheet.io import export_dataset, read_csv_text, to_csv_text, to_markdown_table


def test_read_csv_coerces_numbers():
    data = read_csv_text("month,sales,note\nJanuary, 15000,ok\nFebruary,2.5,\n")
    assert data == [
        {"month": "January", "sales": 15000, "note": "ok"},
        {"month": "February", "sales": 2.5, "note": ""},
    ]
    assert isinstance(data[0]["sales"], int)


def test_read_csv_keeps_nan_as_text():
    data = read_csv_text("a,b\nnan,1e3\n")
    assert data == [{"a": "nan", "b": 1000.0}]


@pytest.mark.parametrize("text", ["", "   \n", "a,b\n"])
def test_read_csv_empty(text):
    assert read_csv_text(text) == []


def test_csv_export(sales_data):
    text = to_csv_text(sales_data[:2])
    assert text.splitlines() == [
        "month,product,region,sales,cost,profit",
        "January,Product A,North,15000,8000,7000",
        "January,Product B,South,12000,7000,5000",
    ]


def test_csv_export_reads_back(sales_data):
    assert read_csv_text(to_csv_text(sales_data)) == sales_data


def test_json_export(sales_data):
    rows = json.loads(export_dataset(sales_data, "json"))
    assert rows == sales_data


def test_markdown_export():
    table = to_markdown_table([{"name": "a|b", "n": 1}])
    assert table.splitlines() == ["| name | n |", "| --- | --- |", "| a\\|b | 1 |"]


def test_empty_exports():
    assert export_dataset([], "csv") == ""
    assert export_dataset([], "json") == "[]"
    assert export_dataset([], "markdown") == ""


def test_unknown_format(sales_data):
    with pytest.raises(ValueError):
        export_dataset(sales_data, "xlsx")
