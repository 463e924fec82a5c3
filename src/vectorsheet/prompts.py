"""Prompt categorization and suggestions.

Suggestions are derived from the dataset shape (column types and a few
well-known column names) and, when a storage surface is given, from prompt
history and favourites.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Iterable

from vectorsheet.dataset import Dataset, column_names, numeric_columns, text_columns

if TYPE_CHECKING:
    from vectorsheet.storage.base import StorageSurface

MAX_SUGGESTIONS = 6
MAX_CONTEXTUAL_SUGGESTIONS = 8

# Checked in order; first match wins
_CATEGORY_KEYWORDS: list[tuple[str, tuple[str, ...]]] = [
    ("summary", ("summarize", "summary")),
    ("explanation", ("explain", "what")),
    ("formula", ("formula", "calculate")),
    ("visualization", ("chart", "graph", "visualize")),
    ("data_manipulation", ("filter", "sort")),
    ("analysis", ("analyze", "analysis")),
    ("comparison", ("compare", "difference")),
    ("trend_analysis", ("trend", "pattern")),
]


def categorize_prompt(prompt: str) -> str:
    """Return the keyword category of a prompt ("general" when nothing matches)."""
    lowered = prompt.lower()
    for category, keywords in _CATEGORY_KEYWORDS:
        if any(keyword in lowered for keyword in keywords):
            return category
    return "general"


@dataclass(frozen=True)
class Suggestion:
    text: str
    category: str
    icon: str = ""

    def to_dict(self) -> dict[str, str]:
        return {"text": self.text, "category": self.category, "icon": self.icon}


@dataclass(frozen=True)
class PromptSuggestion:
    prompt: str
    category: str
    confidence: float
    reason: str

    def to_dict(self) -> dict[str, object]:
        return {
            "prompt": self.prompt,
            "category": self.category,
            "confidence": self.confidence,
            "reason": self.reason,
        }


def _any_named(columns: Iterable[str], *fragments: str) -> bool:
    return any(fragment in col.lower() for col in columns for fragment in fragments)


def generate_suggestions(dataset: Dataset) -> list[Suggestion]:
    """Suggest up to six prompts that fit the dataset's columns."""
    if not dataset:
        return [
            Suggestion("Add some data to get started", "general"),
            Suggestion("Import data from CSV", "general"),
        ]

    numeric = numeric_columns(dataset)
    text = text_columns(dataset)

    has_region = _any_named(text, "region", "location")
    has_month = _any_named(text, "month", "date")
    has_sales = _any_named(numeric, "sales", "revenue")
    has_profit = _any_named(numeric, "profit", "margin")

    suggestions: list[Suggestion] = []

    if numeric:
        if has_sales and has_region:
            suggestions.append(Suggestion("Summarize sales by region", "analysis", "📊"))
        if has_sales and has_month:
            suggestions.append(Suggestion("Show sales trends by month", "analysis", "📈"))
        if has_profit:
            suggestions.append(Suggestion("Find top 5 most profitable items", "analysis", "🏆"))
        if len(numeric) >= 2:
            suggestions.append(
                Suggestion("Calculate total and average for all numeric columns", "analysis", "🔢")
            )

    if len(numeric) >= 2:
        suggestions.append(Suggestion("Create a formula to calculate profit margin", "formula", "🧮"))
        if has_sales and has_profit:
            suggestions.append(Suggestion("Calculate profit percentage", "formula", "📐"))

    if text:
        suggestions.append(Suggestion(f"Filter by {text[0]}", "filter", "🔍"))
    if numeric:
        suggestions.append(Suggestion(f"Sort by {numeric[0]} (descending)", "sort", "⬇️"))

    if has_sales and (has_region or has_month):
        suggestions.append(
            Suggestion("Create a bar chart showing sales distribution", "chart", "📊")
        )
    if has_sales and has_month:
        suggestions.append(
            Suggestion("Create a line chart showing sales over time", "chart", "📈")
        )

    suggestions.append(Suggestion("Analyze this data and provide insights", "general", "💡"))
    return suggestions[:MAX_SUGGESTIONS]


def contextual_suggestions(
    dataset: Dataset,
    storage: StorageSurface | None = None,
    recent_prompts: Iterable[str] = (),
    active_columns: Iterable[str] = (),
) -> list[PromptSuggestion]:
    """Rank suggestions from data shape, prompt history, selection and favourites.

    Args:
        dataset: Current dataset
        storage: Optional storage surface for history and favourites
        recent_prompts: Prompts to leave out (already used this session)
        active_columns: Currently selected columns

    Returns:
        At most eight suggestions, highest confidence first
    """
    recent = set(recent_prompts)
    active = list(active_columns)
    suggestions: list[PromptSuggestion] = []

    if dataset:
        numeric = numeric_columns(dataset)
        text = text_columns(dataset)
        if numeric:
            suggestions.append(
                PromptSuggestion(
                    f"Calculate the sum and average of {numeric[0]}",
                    "calculation",
                    0.9,
                    "Numeric column detected",
                )
            )
            if len(numeric) >= 2:
                suggestions.append(
                    PromptSuggestion(
                        f"Compare {numeric[0]} and {numeric[1]}",
                        "analysis",
                        0.85,
                        "Multiple numeric columns available",
                    )
                )
        if text:
            suggestions.append(
                PromptSuggestion(
                    f"Group and count by {text[0]}", "aggregation", 0.8, "Text column detected"
                )
            )
        if numeric and _any_named(column_names(dataset), "date", "time", "month", "year"):
            suggestions.append(
                PromptSuggestion(
                    f"Show trends over time for {numeric[0]}",
                    "visualization",
                    0.9,
                    "Time-series data detected",
                )
            )

    if storage is not None:
        for item in storage.prompt_analytics()[:5]:
            if item["prompt"] in recent:
                continue
            suggestions.append(
                PromptSuggestion(
                    item["prompt"],
                    item.get("category") or "general",
                    0.7 + item["count"] / 100,
                    f"Frequently used ({item['count']} times)",
                )
            )

    if active:
        suggestions.append(
            PromptSuggestion(
                f"Analyze the selected {', '.join(active)} columns",
                "analysis",
                0.75,
                "Based on current selection",
            )
        )

    if storage is not None:
        for saved in storage.list_saved_prompts(favorites_only=True)[:3]:
            if saved["prompt"] in recent:
                continue
            suggestions.append(
                PromptSuggestion(saved["prompt"], saved["category"], 0.8, "From your favorites")
            )

    suggestions.sort(key=lambda s: s.confidence, reverse=True)
    return suggestions[:MAX_CONTEXTUAL_SUGGESTIONS]
