"""Shared fixtures for the vectorsheet test suite.

* ``sales_data``  -- fresh copy of the 9-row sample sheet
* ``storage``     -- DuckDB storage in a temporary directory
* ``fake_llm``    -- scripted stand-in for ``call_llm_with_tools`` patched into the gateway
* ``no_sleep``    -- cooperative sleep that records delays instead of waiting
"""

from __future__ import annotations

import pytest

from vectorsheet.dataset import SAMPLE_DATA, copy_dataset
from vectorsheet.storage.duckdb_store import DuckDBStorage

_ENV_VARS = (
    "VS_LLM_PROVIDER",
    "VS_COMPLEX_MODEL",
    "VS_FAST_MODEL",
    "VS_LLM_TIMEOUT",
    "VS_STORAGE_PATH",
    "VS_ANALYTICS_ENABLED",
    "VS_OPENAI_API_KEY",
    "OPENAI_API_KEY",
    "VS_ANTHROPIC_API_KEY",
    "ANTHROPIC_API_KEY",
)


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def sales_data():
    return copy_dataset(SAMPLE_DATA)


@pytest.fixture
def storage(tmp_path):
    return DuckDBStorage(tmp_path / "vectorsheet.duckdb")


class FakeLLM:
    """Returns scripted replies in order; exceptions in the script are raised."""

    def __init__(self, *script):
        self.script = list(script)
        self.calls: list[dict] = []

    def __call__(self, messages, tools, **kwargs):
        self.calls.append({"messages": messages, "tools": tools, **kwargs})
        item = self.script.pop(0) if len(self.script) > 1 else self.script[0]
        if isinstance(item, BaseException):
            raise item
        return item


@pytest.fixture
def fake_llm(monkeypatch):
    """Install a FakeLLM into the gateway; call with the reply script."""

    def install(*script) -> FakeLLM:
        fake = FakeLLM(*script)
        monkeypatch.setattr("vectorsheet.gateway.intent.call_llm_with_tools", fake)
        return fake

    return install


class SleepRecorder:
    def __init__(self):
        self.delays: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


@pytest.fixture
def no_sleep():
    return SleepRecorder()
