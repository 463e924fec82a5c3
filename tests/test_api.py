"""Tests for the FastAPI backend."""

import pytest
from fastapi.testclient import TestClient

from vectorsheet.api import create_app
from vectorsheet.llm.router import LLMReply, ToolCall


@pytest.fixture
def client(tmp_path):
    app = create_app(tmp_path / "api.duckdb", provider="ollama")
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def session_id(client):
    response = client.post("/sessions", json={})
    assert response.status_code == 201
    return response.json()["session_id"]


def tool(name, **args):
    return LLMReply(tool_call=ToolCall(name, args))


def test_health(client):
    body = client.get("/health").json()
    assert body["status"] == "ok"
    assert body["sessions"] == 0
    assert "provider" in body["llm"]


def test_create_session_defaults_to_sample_data(client):
    body = client.post("/sessions", json={}).json()
    assert len(body["data"]) == 9
    assert body["sheets"] == ["Sheet1", "Sheet2"]
    assert body["turns"][0]["role"] == "assistant"


def test_create_session_from_csv(client):
    body = client.post("/sessions", json={"csv": "item,qty\napple,3\npear,5\n"}).json()
    assert body["data"] == [{"item": "apple", "qty": 3}, {"item": "pear", "qty": 5}]


def test_create_session_rejects_nested_values(client):
    response = client.post("/sessions", json={"data": [{"a": {"nested": 1}}]})
    assert response.status_code == 400


def test_create_session_rejects_ragged_rows(client):
    response = client.post("/sessions", json={"data": [{"a": 1, "b": "x"}, {"c": 2}]})
    assert response.status_code == 400
    assert "columns differ" in response.json()["detail"]
    assert client.get("/health").json()["sessions"] == 0


def test_unknown_session(client):
    assert client.get("/sessions/nope").status_code == 404
    assert client.post("/sessions/nope/messages", json={"message": "hi"}).status_code == 404


def test_applied_message(client, session_id, fake_llm):
    fake_llm(tool("sort_data", column="sales", order="ascending"))
    response = client.post(f"/sessions/{session_id}/messages", json={"message": "sort by sales"})
    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "applied"
    assert body["text"] == "Sorted by sales in ascending order."
    assert body["data"][0]["sales"] == 12000
    assert body["action"] == {"name": "sort_data", "args": {"column": "sales", "order": "ascending"}}
    assert body["summary"] == "Spreadsheet: 9 rows, 6 columns"

    history = client.get(f"/sessions/{session_id}/history").json()["history"]
    assert history[0]["action"] == "sort"


def test_aggregate_value(client, session_id, fake_llm):
    fake_llm(
        tool("calculate_aggregate", column="sales", operation="sum",
             filterColumn="region", filterValue="North")
    )
    body = client.post(f"/sessions/{session_id}/messages", json={"message": "north sales total"}).json()
    assert body["value"] == 44000
    assert body["text"] == "SUM of sales (filtered by region=North): 44,000"


def test_nan_value_is_null(client, session_id, fake_llm):
    fake_llm(
        tool("calculate_aggregate", column="sales", operation="average",
             filterColumn="region", filterValue="Central")
    )
    body = client.post(f"/sessions/{session_id}/messages", json={"message": "central average"}).json()
    assert body["status"] == "applied"
    assert body["value"] is None


def test_rejected_message_lists_errors(client, session_id, fake_llm):
    fake_llm(tool("update_cell", rowIndex=-1, column="sales", value="1"))
    body = client.post(f"/sessions/{session_id}/messages", json={"message": "set it"}).json()
    assert body["status"] == "rejected"
    assert body["errors"]


def test_busy_session(client, session_id):
    client.app.state.sessions[session_id]._busy = True
    response = client.post(f"/sessions/{session_id}/messages", json={"message": "sort"})
    assert response.status_code == 409


def test_feedback(client, session_id, fake_llm):
    fake_llm(LLMReply(text="ok"))
    client.post(f"/sessions/{session_id}/messages", json={"message": "hello"})

    response = client.post(f"/sessions/{session_id}/feedback", json={"turn_index": 2, "feedback": "positive"})
    assert response.status_code == 200
    assert response.json()["feedback"] == "positive"

    assert client.post(
        f"/sessions/{session_id}/feedback", json={"turn_index": 1, "feedback": "negative"}
    ).status_code == 400
    assert client.post(
        f"/sessions/{session_id}/feedback", json={"turn_index": 99, "feedback": "negative"}
    ).status_code == 404


def test_import_and_export(client, session_id):
    response = client.post(f"/sessions/{session_id}/import", json={"csv": "name,score\nada,3\n"})
    assert response.status_code == 200
    assert response.json()["data"] == [{"name": "ada", "score": 3}]

    csv_response = client.get(f"/sessions/{session_id}/export", params={"format": "csv"})
    assert csv_response.status_code == 200
    assert csv_response.headers["content-type"].startswith("text/csv")
    assert csv_response.text.splitlines() == ["name,score", "ada,3"]

    md = client.get(f"/sessions/{session_id}/export", params={"format": "markdown"}).text
    assert md.splitlines()[0] == "| name | score |"

    assert client.get(f"/sessions/{session_id}/export", params={"format": "xlsx"}).status_code == 400

    exports = client.get("/analytics").json()["export_analytics"]
    assert sum(e["count"] for e in exports) == 2


def test_suggestions(client, session_id):
    body = client.get(f"/sessions/{session_id}/suggestions", params={"column": ["sales", "cost"]}).json()
    assert body["suggestions"][0]["text"] == "Summarize sales by region"
    prompts = [s["prompt"] for s in body["contextual"]]
    assert "Analyze the selected sales, cost columns" in prompts


def test_analytics_summary(client, session_id, fake_llm):
    fake_llm(LLMReply(text="ok"))
    client.post(f"/sessions/{session_id}/messages", json={"message": "hello"})
    body = client.get("/analytics").json()
    assert body["active_sessions"] == 1
    assert body["prompt_analytics"][0]["prompt"] == "hello"
