"""VectorSheet: natural-language spreadsheet editing driven by LLM tool calls."""

__version__ = "0.1.0"
