"""
Backend facade behind the editor UI's request/response boundary.

Each method corresponds to one call the UI makes; the transport that
carries those calls (IPC, HTTP, in-process) is not this module's concern.
"""

import logging
from typing import Any, Dict, List, Optional

from .config import AgentConfig
from .memory import ProjectMemoryManager, ProjectMemoryRecord
from .providers import AIResponse, ProviderManager
from .session import ConversationSession

logger = logging.getLogger(__name__)

SECRET_KEYS = {"api_key", "apiKey"}


def redact(config: Any) -> Any:
    if not isinstance(config, dict):
        return config
    return {key: "***" if key in SECRET_KEYS and value else value for key, value in config.items()}


class AgentBackend:
    def __init__(
        self,
        config: Optional[AgentConfig] = None,
        providers: Optional[ProviderManager] = None,
        memory: Optional[ProjectMemoryManager] = None,
    ):
        self.config = config or AgentConfig()
        self.providers = providers or ProviderManager()
        self.memory = memory or ProjectMemoryManager(
            self.config.memory_dir, cache_ttl=self.config.cache_ttl
        )
        self.session = ConversationSession(self.providers)

        if config is not None and config.providers:
            self.providers.configure_all(config)

    def send_message(self, message: str, context: Optional[Dict[str, Any]] = None) -> AIResponse:
        return self.session.send(message, context)

    def get_providers(self) -> List[Dict[str, Any]]:
        return self.providers.get_available_providers()

    def get_current_provider(self) -> Optional[str]:
        return self.providers.current_id

    def set_provider(self, provider_id: str, config: Any) -> bool:
        logger.info("Setting provider %s with %s", provider_id, redact(config))
        return self.providers.set_provider(provider_id, config)

    def load_provider(self, provider_id: str) -> bool:
        return self.providers.load_provider(provider_id)

    def test_connection(self) -> bool:
        provider = self.providers.current
        if provider is None:
            logger.info("No provider selected, nothing to test")
            return False
        return provider.test_connection()

    def save_project_state(self, project_path: str, state: Optional[Dict[str, Any]] = None) -> bool:
        """
        Persist a project's state.

        ``state`` uses the UI's keys (``conversationHistory``, ``openFiles``,
        ``recentChanges``, ``metadata``); a missing conversation means the
        session's current history.
        """
        state = state or {}
        history = state.get("conversationHistory")
        if history is None:
            history = self.session.history
        return self.memory.save(
            project_path,
            conversation_history=history,
            open_files=state.get("openFiles") or [],
            recent_changes=state.get("recentChanges") or [],
            metadata=state.get("metadata"),
        )

    def load_project_state(self, project_path: str) -> Optional[ProjectMemoryRecord]:
        return self.memory.load(project_path)

    def restore_session(self, project_path: str) -> Optional[ProjectMemoryRecord]:
        """Load a project's record and replace the conversation with its history."""
        record = self.memory.load(project_path)
        if record is not None:
            self.session.import_snapshot(list(record.conversation_history))
        return record
