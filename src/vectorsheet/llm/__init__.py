"""LLM provider clients and routing."""

from vectorsheet.llm.router import (
    DEFAULT_MODELS,
    SUPPORTED_PROVIDERS,
    LLMReply,
    ToolCall,
    call_llm_with_tools,
    get_available_providers,
    get_current_config,
    model_for_tier,
    parse_arguments,
)

__all__ = [
    "DEFAULT_MODELS",
    "SUPPORTED_PROVIDERS",
    "LLMReply",
    "ToolCall",
    "call_llm_with_tools",
    "get_available_providers",
    "get_current_config",
    "model_for_tier",
    "parse_arguments",
]
