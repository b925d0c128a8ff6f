import logging
import os
from pathlib import Path
from typing import Any, Dict, Optional, Union

import yaml

from .dataclasses import AgentConfig  # noqa: F401
from .dataclasses import AnthropicConfig  # noqa: F401
from .dataclasses import G4FConfig  # noqa: F401
from .dataclasses import GeminiConfig  # noqa: F401
from .dataclasses import LocalModelConfig  # noqa: F401
from .dataclasses import OpenAIConfig  # noqa: F401
from .dataclasses import PROVIDER_CONFIG_TYPES  # noqa: F401
from .dataclasses import make_provider_config

logger = logging.getLogger(__name__)

# provider id -> (credential/endpoint env var, config field)
PROVIDER_ENV_MAP = {
    "openai": ("OPENAI_API_KEY", "api_key"),
    "anthropic": ("ANTHROPIC_API_KEY", "api_key"),
    "google": ("GEMINI_API_KEY", "api_key"),
    "local": ("L2AGENT_LOCAL_ENDPOINT", "endpoint"),
    "g4f": ("G4F_SERVER_URL", "server_url"),
}


class ConfigManager:
    """Manages loading and saving of l2agent configuration."""

    DEFAULT_CONFIG_NAMES = [".l2agent.conf.yml", ".l2agent.conf.yaml"]

    def __init__(self):
        self.config_path = None
        self.config = None

    def find_config_file(self, start_path: Optional[Path] = None) -> Optional[Path]:
        """
        Find configuration file by searching up the directory tree.

        Search order:
        1. Current working directory
        2. Git repository root (if in a git repo)
        3. Home directory
        """
        if start_path is None:
            start_path = Path.cwd()

        search_paths = [start_path]

        try:
            import git

            repo = git.Repo(start_path, search_parent_directories=True)
            repo_root = Path(repo.working_tree_dir)
            if repo_root != start_path:
                search_paths.append(repo_root)
        except ImportError:
            pass
        except (git.exc.InvalidGitRepositoryError, git.exc.NoSuchPathError):
            pass

        search_paths.append(Path.home())

        for directory in search_paths:
            for name in self.DEFAULT_CONFIG_NAMES:
                candidate = directory / name
                if candidate.is_file():
                    return candidate

        return None

    def load_config(self, config_path: Optional[Union[str, Path]] = None) -> AgentConfig:
        """
        Load configuration from file or create default configuration.

        Args:
            config_path: Explicit path to config file, or None to auto-discover

        Returns:
            AgentConfig instance
        """
        if config_path:
            config_path = Path(config_path)
            if not config_path.exists():
                raise FileNotFoundError(f"Configuration file not found: {config_path}")
        else:
            config_path = self.find_config_file()

        config_data: Dict[str, Any] = {}
        if config_path:
            self.config_path = config_path
            with open(config_path, "r", encoding="utf-8") as f:
                config_data = yaml.safe_load(f) or {}
            if not isinstance(config_data, dict):
                raise ValueError(f"Configuration file {config_path} must contain a mapping")
            logger.debug("Loaded configuration from %s", config_path)

        providers = {}
        for name, provider_data in (config_data.get("providers") or {}).items():
            providers[name] = make_provider_config(name, provider_data)
        if not providers:
            providers = self.providers_from_environment()
        config_data["providers"] = providers

        self.config = AgentConfig(**config_data)
        return self.config

    def providers_from_environment(self) -> Dict[str, Any]:
        """Create provider configurations from environment variables."""
        providers = {}
        for provider_id, (env_var, field_name) in PROVIDER_ENV_MAP.items():
            value = os.getenv(env_var)
            if value:
                providers[provider_id] = make_provider_config(provider_id, {field_name: value})
        return providers

    def save_config(self, config: AgentConfig, config_path: Optional[Union[str, Path]] = None):
        """Save configuration to file."""
        if config_path:
            config_path = Path(config_path)
        elif self.config_path:
            config_path = self.config_path
        else:
            config_path = Path.cwd() / self.DEFAULT_CONFIG_NAMES[0]

        config_dict = self._config_to_dict(config)

        with open(config_path, "w", encoding="utf-8") as f:
            yaml.dump(config_dict, f, default_flow_style=False, sort_keys=False)

        self.config_path = config_path

    def _config_to_dict(self, config: AgentConfig) -> Dict[str, Any]:
        """Convert AgentConfig to dictionary for YAML serialization."""
        result: Dict[str, Any] = {
            "memory_dir": config.memory_dir,
            "cache_ttl": config.cache_ttl,
        }
        if config.default_provider:
            result["default_provider"] = config.default_provider
        result["log_level"] = config.log_level

        if config.providers:
            result["providers"] = {
                name: provider.to_dict() for name, provider in config.providers.items()
            }

        return result


def load_config(config_path: Optional[Union[str, Path]] = None) -> AgentConfig:
    """Load configuration using the default manager."""
    return ConfigManager().load_config(config_path)


def save_config(config: AgentConfig, config_path: Optional[Union[str, Path]] = None):
    """Save configuration using the default manager."""
    ConfigManager().save_config(config, config_path)
