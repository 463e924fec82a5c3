"""Runtime configuration for VectorSheet.

Everything is read from environment variables at call time so tests can
monkeypatch them freely.

Environment variables:
- VS_LLM_PROVIDER: Provider to use (openai, anthropic, ollama)
- VS_OPENAI_API_KEY / OPENAI_API_KEY: OpenAI API key
- VS_ANTHROPIC_API_KEY / ANTHROPIC_API_KEY: Anthropic API key
- VS_OLLAMA_BASE_URL: Ollama base URL (default http://localhost:11434)
- VS_COMPLEX_MODEL: Model used for complex requests
- VS_FAST_MODEL: Model used for simple requests
- VS_LLM_TIMEOUT: Request timeout in seconds
- VS_STORAGE_PATH: DuckDB file for history and analytics
- VS_ANALYTICS_ENABLED: Set to 0/false to skip analytics writes
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

DEFAULT_PROVIDER = "openai"
DEFAULT_STORAGE_PATH = "./data/vectorsheet.duckdb"


def _env_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() not in {"0", "false", "no", "off", ""}


def get_provider() -> str:
    return os.environ.get("VS_LLM_PROVIDER", DEFAULT_PROVIDER).strip().lower()


def get_api_key(provider: str) -> str | None:
    """Return the API key for a hosted provider, or None when unset."""
    if provider == "openai":
        return os.environ.get("VS_OPENAI_API_KEY") or os.environ.get("OPENAI_API_KEY")
    if provider == "anthropic":
        return os.environ.get("VS_ANTHROPIC_API_KEY") or os.environ.get("ANTHROPIC_API_KEY")
    return None


@dataclass
class Settings:
    """Snapshot of the environment configuration."""

    provider: str = DEFAULT_PROVIDER
    ollama_base_url: str = "http://localhost:11434"
    complex_model: str | None = None
    fast_model: str | None = None
    timeout: int = 60
    storage_path: Path = Path(DEFAULT_STORAGE_PATH)
    analytics_enabled: bool = True

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            provider=get_provider(),
            ollama_base_url=os.environ.get("VS_OLLAMA_BASE_URL", "http://localhost:11434"),
            complex_model=os.environ.get("VS_COMPLEX_MODEL") or None,
            fast_model=os.environ.get("VS_FAST_MODEL") or None,
            timeout=int(os.environ.get("VS_LLM_TIMEOUT", "60")),
            storage_path=Path(os.environ.get("VS_STORAGE_PATH", DEFAULT_STORAGE_PATH)).expanduser(),
            analytics_enabled=_env_bool("VS_ANALYTICS_ENABLED", True),
        )
