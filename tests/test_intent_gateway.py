"""Tests for the intent gateway (LLM calls replaced by a scripted fake)."""

import asyncio

import pytest

from vectorsheet.actions import SortData, parse_action
from vectorsheet.errors import RetriableTransportError, TerminalTransportError
from vectorsheet.gateway import (
    CHART_TYPE_QUESTION,
    ConversationContext,
    build_system_instruction,
    interpret,
    is_complex_request,
    needs_chart_type,
    select_model,
)
from vectorsheet.llm.router import DEFAULT_MODELS, LLMReply, ToolCall


def run(coro):
    return asyncio.run(coro)


# -----------------------------------------------------------------------------
# Policy helpers
# -----------------------------------------------------------------------------

class TestModelSelection:
    @pytest.mark.parametrize(
        "text",
        ["Analyze sales by region", "what is the TREND here", "compare north and south"],
    )
    def test_keywords_pick_complex(self, text):
        assert is_complex_request(text)
        assert select_model(text, provider="openai") == "gpt-4o"

    def test_short_request_picks_fast(self):
        assert not is_complex_request("sort by profit")
        assert select_model("sort by profit", provider="openai") == "gpt-4o-mini"

    def test_long_request_is_complex(self):
        assert is_complex_request("x" * 201)
        assert not is_complex_request("x" * 200)

    def test_forced_modes(self):
        assert select_model("analyze everything", provider="ollama", mode="fast") == (
            DEFAULT_MODELS["ollama"]["fast"]
        )
        assert select_model("sort", provider="ollama", mode="complex") == (
            DEFAULT_MODELS["ollama"]["complex"]
        )

    def test_env_override(self, monkeypatch):
        monkeypatch.setenv("VS_FAST_MODEL", "my-small-model")
        assert select_model("sort", provider="openai") == "my-small-model"

    def test_invalid_mode(self):
        with pytest.raises(ValueError):
            select_model("sort", mode="turbo")


def test_chart_type_detection():
    assert needs_chart_type("make a chart of sales")
    assert not needs_chart_type("make a bar chart of sales")
    assert not needs_chart_type("sort by sales")


def test_system_instruction_describes_dataset(sales_data):
    context = ConversationContext(
        recent_actions=[
            parse_action("sort_data", {"column": "sales", "order": "ascending"}),
            parse_action("filter_data", {"column": "region", "value": "North"}),
            parse_action("clear_filter", {}),
            parse_action("find_top_n", {"column": "profit", "n": 2}),
        ],
        last_query="show the top 2 by profit",
    )
    instruction = build_system_instruction(sales_data, context)
    assert "The spreadsheet has 9 rows and 6 columns." in instruction
    assert "- sales (numeric)" in instruction
    assert "- region (text)" in instruction
    # Only the last three actions are described
    assert "sort_data" not in instruction
    assert 'filter_data {"column": "region", "value": "North"}' in instruction
    assert "find_top_n" in instruction
    assert "Previous request: show the top 2 by profit" in instruction
    assert '"Product A"' in instruction


# -----------------------------------------------------------------------------
# interpret()
# -----------------------------------------------------------------------------

def test_empty_input_is_noop(fake_llm, sales_data):
    fake = fake_llm(LLMReply(text="unused"))
    result = run(interpret("   ", sales_data, provider="ollama"))
    assert result.kind == "noop"
    assert fake.calls == []


def test_chart_without_type_asks_first(fake_llm, sales_data):
    fake = fake_llm(LLMReply(text="unused"))
    result = run(interpret("chart the sales", sales_data, provider="ollama"))
    assert result.kind == "clarify"
    assert result.text == CHART_TYPE_QUESTION
    assert fake.calls == []


def test_missing_api_key_fails_without_calling(fake_llm, sales_data):
    fake = fake_llm(LLMReply(text="unused"))
    result = run(interpret("sort by sales", sales_data, provider="openai"))
    assert result.kind == "failure"
    assert result.text.startswith("⚠️ API Key Not Configured")
    assert result.failure.classification.kind == "auth"
    assert not result.failure.classification.can_retry
    assert fake.calls == []


def test_text_reply(fake_llm, sales_data):
    fake_llm(LLMReply(text="  Sales look healthy.  "))
    result = run(interpret("how are sales?", sales_data, provider="ollama"))
    assert result.kind == "text"
    assert result.text == "Sales look healthy."
    assert result.ok


def test_empty_reply(fake_llm, sales_data):
    fake_llm(LLMReply(text=""))
    result = run(interpret("hello", sales_data, provider="ollama"))
    assert result.text == "No response from AI."


def test_tool_call_becomes_action(fake_llm, sales_data):
    fake = fake_llm(
        LLMReply(tool_call=ToolCall("sort_data", {"column": "sales", "order": "descending"}))
    )
    result = run(interpret("sort by sales, biggest first", sales_data, provider="ollama"))
    assert result.kind == "action"
    assert isinstance(result.action, SortData)
    assert result.text == "Processing your request: sort data..."
    assert result.attempts == 1

    call = fake.calls[0]
    assert call["provider"] == "ollama"
    assert call["model"] == DEFAULT_MODELS["ollama"]["fast"]
    assert call["messages"][0]["role"] == "system"
    assert call["messages"][1]["content"] == (
        "Analyze this request and use appropriate functions to help: sort by sales, biggest first"
    )
    assert "add_row" in [tool["name"] for tool in call["tools"]]


def test_unknown_tool(fake_llm, sales_data):
    fake_llm(LLMReply(tool_call=ToolCall("launch_rockets", {})))
    result = run(interpret("launch", sales_data, provider="ollama"))
    assert result.kind == "unknown_tool"
    assert result.text == "⚠️ Unhandled action: launch_rockets"
    assert result.tool_name == "launch_rockets"
    assert not result.ok


def test_invalid_arguments(fake_llm, sales_data):
    fake_llm(LLMReply(tool_call=ToolCall("update_cell", {"rowIndex": -2, "column": "sales", "value": "1"})))
    result = run(interpret("set sales", sales_data, provider="ollama"))
    assert result.kind == "validation"
    assert result.action is None
    assert any(err.startswith("rowIndex") for err in result.errors)


def test_unparseable_arguments(fake_llm, sales_data):
    fake_llm(LLMReply(tool_call=ToolCall("sort_data", None, raw_arguments="{column: sales")))
    result = run(interpret("sort", sales_data, provider="ollama"))
    assert result.kind == "validation"
    assert "{column: sales" in result.text


def test_retries_then_succeeds(fake_llm, sales_data, no_sleep):
    fake = fake_llm(
        RetriableTransportError("ollama API call failed (503): overloaded"),
        LLMReply(text="done"),
    )
    retries = []
    result = run(
        interpret(
            "hello",
            sales_data,
            provider="ollama",
            sleep=no_sleep,
            rng=lambda: 0.0,
            on_retry=lambda attempt, delay: retries.append((attempt, delay)),
        )
    )
    assert result.kind == "text"
    assert result.attempts == 2
    assert len(fake.calls) == 2
    assert retries == [(1, 2000)]
    assert no_sleep.delays == [2.0]


def test_terminal_failure(fake_llm, sales_data, no_sleep):
    fake = fake_llm(TerminalTransportError("ollama API call failed (401): unauthorized"))
    result = run(interpret("hello", sales_data, provider="ollama", sleep=no_sleep))
    assert result.kind == "failure"
    assert result.failure.classification.kind == "auth"
    assert "_Technical details: ollama API call failed (401): unauthorized_" in result.text
    assert len(fake.calls) == 1
    assert no_sleep.delays == []


def test_exhausted_retries(fake_llm, sales_data, no_sleep):
    fake = fake_llm(RetriableTransportError("ollama API call failed (503): overloaded"))
    result = run(interpret("hello", sales_data, provider="ollama", sleep=no_sleep, rng=lambda: 0.0))
    assert result.kind == "failure"
    assert result.attempts == 4
    assert len(fake.calls) == 4
    assert result.failure.classification.kind == "network"
