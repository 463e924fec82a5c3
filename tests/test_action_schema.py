"""Tests for action parsing, validation and the tool catalog."""

import pytest

from vectorsheet.actions import (
    KNOWN_ACTIONS,
    AddColumn,
    AddRow,
    BatchUpdate,
    CalculateAggregate,
    SortData,
    UpdateCell,
    build_tool_declarations,
    parse_action,
    tool_names,
    validate_action,
)
from vectorsheet.errors import ActionValidationError, UnknownToolError


class TestParseAction:
    def test_sort_data(self):
        action = parse_action("sort_data", {"column": "sales", "order": "descending"})
        assert isinstance(action, SortData)
        assert action.column == "sales"
        assert action.order == "descending"

    def test_sort_order_short_form(self):
        action = parse_action("sort_data", {"column": "sales", "order": "ASC"})
        assert action.order == "ascending"

    def test_aggregate_aliases(self):
        action = parse_action(
            "calculate_aggregate",
            {"column": "sales", "operation": "avg", "filterColumn": "region", "filterValue": "North"},
        )
        assert isinstance(action, CalculateAggregate)
        assert action.operation == "average"
        assert action.filter_column == "region"
        assert action.filter_value == "North"
        assert action.wire_args() == {
            "column": "sales",
            "operation": "average",
            "filterColumn": "region",
            "filterValue": "North",
        }

    def test_update_cell_coerces_value_to_text(self):
        action = parse_action("update_cell", {"rowIndex": 2, "column": "sales", "value": 500})
        assert isinstance(action, UpdateCell)
        assert action.row_index == 2
        assert action.value == "500"

    def test_add_row_flat_arguments(self):
        action = parse_action("add_row", {"month": "April", "sales": 100})
        assert isinstance(action, AddRow)
        assert action.values == {"month": "April", "sales": 100}

    def test_add_column_default(self):
        action = parse_action("add_column", {"columnName": " notes "})
        assert isinstance(action, AddColumn)
        assert action.column_name == "notes"
        assert action.default_value == ""

    def test_batch_update(self):
        action = parse_action(
            "batch_update",
            {"updates": [{"rowIndex": 0, "column": "sales", "value": "10"}]},
        )
        assert isinstance(action, BatchUpdate)
        assert action.updates[0].row_index == 0

    def test_clear_filter_takes_no_arguments(self):
        assert parse_action("clear_filter", None).name == "clear_filter"

    def test_stub_action_parses(self):
        action = parse_action("merge_cells", {"range": "A1:C1"})
        assert action.name == "merge_cells"


class TestValidationErrors:
    def test_unknown_tool(self):
        with pytest.raises(UnknownToolError) as exc_info:
            parse_action("launch_rockets", {})
        assert str(exc_info.value) == "Unhandled action: launch_rockets"

    def test_missing_field_is_identified(self):
        with pytest.raises(ActionValidationError) as exc_info:
            parse_action("sort_data", {"order": "ascending"})
        assert exc_info.value.field == "column"
        assert exc_info.value.action == "sort_data"

    def test_negative_row_index(self):
        with pytest.raises(ActionValidationError) as exc_info:
            parse_action("update_cell", {"rowIndex": -1, "column": "sales", "value": "1"})
        assert exc_info.value.field == "rowIndex"

    def test_bad_operation(self):
        with pytest.raises(ActionValidationError):
            parse_action("calculate_aggregate", {"column": "sales", "operation": "median"})

    def test_non_object_arguments(self):
        with pytest.raises(ActionValidationError):
            parse_action("sort_data", ["sales"])

    def test_chart_series_length_must_match_labels(self):
        with pytest.raises(ActionValidationError):
            parse_action(
                "generate_chart",
                {
                    "chartType": "bar",
                    "labels": ["North", "South"],
                    "datasets": [{"label": "Sales", "data": [1]}],
                    "title": "Sales",
                },
            )

    def test_validate_action_reports_errors(self):
        ok, errors = validate_action("find_top_n", {"column": "profit", "n": 0})
        assert not ok
        assert len(errors) == 1
        assert errors[0].startswith("n:")

        ok, errors = validate_action("find_top_n", {"column": "profit", "n": 2})
        assert ok
        assert errors == []


class TestCatalog:
    def test_every_declared_tool_has_a_model(self):
        assert set(tool_names()) == set(KNOWN_ACTIONS)

    def test_add_row_declaration_uses_column_types(self, sales_data):
        declarations = {d["name"]: d for d in build_tool_declarations(sales_data)}
        params = declarations["add_row"]["parameters"]
        assert params["properties"]["sales"]["type"] == "number"
        assert params["properties"]["region"]["type"] == "string"
        assert params["required"] == ["month", "product", "region", "sales", "cost", "profit"]

    def test_declarations_are_copies(self, sales_data):
        first = build_tool_declarations(sales_data)
        first[0]["name"] = "mutated"
        assert build_tool_declarations(sales_data)[0]["name"] == "sort_data"
