"""
Provider system for direct LLM API integrations.

Every backend implements the same narrow capability: send role-tagged
messages, get back text plus optional usage stats.
"""

from .base import (
    AIMessage,
    AIResponse,
    BaseProvider,
    ConfigurationError,
    MalformedResponseError,
    NoProviderSelectedError,
    NotConfiguredError,
    ProviderError,
    TokenUsage,
    UpstreamError,
)
from .openai_provider import OpenAIProvider
from .anthropic_provider import AnthropicProvider
from .gemini_provider import GeminiProvider
from .local_provider import LocalModelProvider
from .g4f_provider import G4FProvider
from .manager import ProviderManager

__all__ = [
    "AIMessage",
    "AIResponse",
    "TokenUsage",
    "BaseProvider",
    "ProviderError",
    "ConfigurationError",
    "NotConfiguredError",
    "NoProviderSelectedError",
    "UpstreamError",
    "MalformedResponseError",
    "OpenAIProvider",
    "AnthropicProvider",
    "GeminiProvider",
    "LocalModelProvider",
    "G4FProvider",
    "ProviderManager",
]
