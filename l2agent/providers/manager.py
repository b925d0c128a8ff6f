"""
Provider manager for handling the different LLM providers.
"""

import logging
from typing import Any, Dict, List, Optional

from .anthropic_provider import AnthropicProvider
from .base import BaseProvider, ProviderError
from .g4f_provider import G4FProvider
from .gemini_provider import GeminiProvider
from .local_provider import LocalModelProvider
from .openai_provider import OpenAIProvider

logger = logging.getLogger(__name__)


class ProviderManager:
    """Keeps one instance of every provider and tracks which one is selected."""

    def __init__(self):
        self._providers: Dict[str, BaseProvider] = {}
        self._current_id: Optional[str] = None
        self._setup_default_providers()

    def _setup_default_providers(self):
        """Set up default provider instances."""
        for provider in (
            OpenAIProvider(),
            AnthropicProvider(),
            GeminiProvider(),
            LocalModelProvider(),
            G4FProvider(),
        ):
            self._providers[provider.provider_id] = provider

    def add_provider(self, provider: BaseProvider):
        self._providers[provider.provider_id] = provider

    def get_provider(self, provider_id: str) -> BaseProvider:
        if provider_id not in self._providers:
            raise ProviderError(f"Unknown provider: {provider_id}")
        return self._providers[provider_id]

    def get_available_providers(self) -> List[Dict[str, Any]]:
        return [
            {"id": provider_id, "name": provider.get_name(), "isConfigured": provider.is_configured()}
            for provider_id, provider in self._providers.items()
        ]

    @property
    def current(self) -> Optional[BaseProvider]:
        if self._current_id is None:
            return None
        return self._providers[self._current_id]

    @property
    def current_id(self) -> Optional[str]:
        return self._current_id

    def set_provider(self, provider_id: str, config: Any) -> bool:
        """
        Configure a provider and make it the current one.

        Returns False (and keeps the previous selection) when the
        configuration is rejected. Unknown ids raise ProviderError.
        """
        provider = self.get_provider(provider_id)
        try:
            provider.configure(config)
        except ProviderError as e:
            logger.error("Failed to set provider %s: %s", provider_id, e)
            return False

        self._current_id = provider_id
        return True

    def load_provider(self, provider_id: str) -> bool:
        """Select an already configured provider."""
        provider = self.get_provider(provider_id)
        if not provider.is_configured():
            logger.warning("Provider %s is not configured", provider_id)
            return False
        self._current_id = provider_id
        return True

    def configure_all(self, agent_config) -> List[str]:
        """
        Configure every provider named in an AgentConfig.

        Selects ``default_provider`` when it configured successfully, else the
        first provider that did. Returns the ids that configured.
        """
        configured = []
        for provider_id, provider_config in agent_config.providers.items():
            if provider_id not in self._providers:
                logger.warning("Ignoring configuration for unknown provider %s", provider_id)
                continue
            try:
                self._providers[provider_id].configure(provider_config)
            except ProviderError as e:
                logger.warning("Could not configure %s: %s", provider_id, e)
                continue
            configured.append(provider_id)

        if agent_config.default_provider in configured:
            self._current_id = agent_config.default_provider
        elif configured and self._current_id is None:
            self._current_id = configured[0]

        return configured
