"""Provider adapters for the command agent."""

from .base import ChatMessage, ChatResult, LLMProvider, ProviderConfig, ProviderFailure, run_tool_loop
from .config import (
    DEFAULT_PROVIDER,
    PROVIDER_FALLBACK_ORDER,
    PROVIDER_REGISTRY,
    ProviderSpec,
    get_provider_spec,
    list_providers,
)
from .factory import ProviderFactory
from .schema import ANTHROPIC_DIALECT, DIALECTS, GEMINI_DIALECT, OPENAI_DIALECT

__all__ = [
    "ChatMessage",
    "ChatResult",
    "LLMProvider",
    "ProviderConfig",
    "ProviderFailure",
    "run_tool_loop",
    "DEFAULT_PROVIDER",
    "PROVIDER_FALLBACK_ORDER",
    "PROVIDER_REGISTRY",
    "ProviderSpec",
    "get_provider_spec",
    "list_providers",
    "ProviderFactory",
    "ANTHROPIC_DIALECT",
    "DIALECTS",
    "GEMINI_DIALECT",
    "OPENAI_DIALECT",
]
