"""
Typed configuration for l2agent.

Each provider kind gets its own configuration record instead of a single
loosely-typed bag of optional fields; the record type is selected by the
provider id.
"""

import os
from dataclasses import asdict, dataclass, field, fields
from pathlib import Path
from typing import Any, ClassVar, Dict, List, Optional, Tuple


def default_memory_dir() -> str:
    env = os.environ.get("L2AGENT_MEMORY_DIR")
    if env:
        return env
    return str(Path.home() / ".l2api-agent" / "memory")


class ProviderSettings:
    """Shared behaviour for provider configuration records."""

    required_fields: ClassVar[Tuple[str, ...]] = ()

    def missing_fields(self) -> List[str]:
        return [name for name in self.required_fields if not getattr(self, name)]

    def to_dict(self) -> Dict[str, Any]:
        return {key: value for key, value in asdict(self).items() if value is not None}


@dataclass
class OpenAIConfig(ProviderSettings):
    api_key: Optional[str] = None
    base_url: str = "https://api.openai.com/v1"
    model: str = "gpt-4"
    temperature: float = 0.7
    max_tokens: int = 4000
    timeout: float = 30.0
    verify: bool = False

    required_fields: ClassVar[Tuple[str, ...]] = ("api_key",)


@dataclass
class AnthropicConfig(ProviderSettings):
    api_key: Optional[str] = None
    base_url: str = "https://api.anthropic.com"
    model: str = "claude-3-sonnet-20240229"
    max_tokens: int = 4000
    temperature: Optional[float] = None
    timeout: float = 30.0
    verify: bool = False

    required_fields: ClassVar[Tuple[str, ...]] = ("api_key",)


@dataclass
class GeminiConfig(ProviderSettings):
    api_key: Optional[str] = None
    base_url: str = "https://generativelanguage.googleapis.com/v1beta"
    model: str = "gemini-1.5-pro-latest"
    max_tokens: int = 2048
    temperature: float = 0.7
    top_p: float = 0.95
    top_k: int = 40
    timeout: float = 30.0
    verify: bool = True

    required_fields: ClassVar[Tuple[str, ...]] = ("api_key",)


@dataclass
class LocalModelConfig(ProviderSettings):
    endpoint: Optional[str] = None
    model: str = ""
    model_path: Optional[str] = None
    use_gpu: bool = True
    gpu_layers: int = -1  # -1 offloads every layer
    context_window: int = 4096
    max_tokens: int = 2048
    temperature: float = 0.7
    timeout: float = 120.0
    verify: bool = False

    required_fields: ClassVar[Tuple[str, ...]] = ("endpoint",)

    @property
    def base_url(self) -> str:
        return (self.endpoint or "").rstrip("/")


@dataclass
class G4FConfig(ProviderSettings):
    server_url: str = "http://localhost:1337"
    api_key: Optional[str] = None
    model: str = "gpt-3.5-turbo"
    max_tokens: int = 2048
    temperature: float = 0.7
    top_p: float = 0.95
    top_k: int = 40
    timeout: float = 30.0
    verify: bool = True

    required_fields: ClassVar[Tuple[str, ...]] = ("server_url",)

    @property
    def base_url(self) -> str:
        return (self.server_url or "").rstrip("/")


PROVIDER_CONFIG_TYPES = {
    "openai": OpenAIConfig,
    "anthropic": AnthropicConfig,
    "google": GeminiConfig,
    "local": LocalModelConfig,
    "g4f": G4FConfig,
}

# Keys as sent by the editor UI
CONFIG_KEY_ALIASES = {
    "apiKey": "api_key",
    "baseUrl": "base_url",
    "maxTokens": "max_tokens",
    "topP": "top_p",
    "topK": "top_k",
    "serverUrl": "server_url",
    "modelPath": "model_path",
    "useGPU": "use_gpu",
    "gpuLayers": "gpu_layers",
    "contextWindow": "context_window",
}


def make_provider_config(provider_id: str, data: Any):
    """
    Build the configuration record for ``provider_id``.

    Args:
        provider_id: One of PROVIDER_CONFIG_TYPES
        data: An instance of the matching record, a mapping of its fields, or None

    Raises:
        ValueError: unknown provider id or unknown configuration keys
    """
    if provider_id not in PROVIDER_CONFIG_TYPES:
        raise ValueError(f"Unknown provider: {provider_id}")
    config_class = PROVIDER_CONFIG_TYPES[provider_id]

    if isinstance(data, config_class):
        return data
    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise TypeError(f"Expected a mapping for {provider_id} configuration")

    normalized = {}
    for key, value in data.items():
        key = CONFIG_KEY_ALIASES.get(key, key)
        if provider_id == "g4f" and key == "base_url":
            key = "server_url"
        elif provider_id == "local" and key == "base_url":
            key = "endpoint"
        # Empty values fall back to the defaults, as the UI sends blanks for unset fields
        if value is None or value == "":
            continue
        normalized[key] = value

    known = {f.name for f in fields(config_class)}
    unknown = sorted(set(normalized) - known)
    if unknown:
        raise ValueError(f"Unknown {provider_id} configuration keys: {', '.join(unknown)}")

    return config_class(**normalized)


@dataclass
class AgentConfig:
    """Main l2agent configuration."""

    memory_dir: str = field(default_factory=default_memory_dir)
    cache_ttl: float = 300.0
    default_provider: Optional[str] = None
    providers: Dict[str, ProviderSettings] = field(default_factory=dict)
    log_level: str = "WARNING"

    def __post_init__(self):
        """Validate configuration consistency."""
        self.memory_dir = os.path.expanduser(str(self.memory_dir))

        if self.cache_ttl < 0:
            raise ValueError("cache_ttl must not be negative")

        if self.default_provider and self.default_provider not in PROVIDER_CONFIG_TYPES:
            raise ValueError(f"Invalid default_provider: {self.default_provider}")

        self.providers = {
            name: make_provider_config(name, value) for name, value in self.providers.items()
        }
