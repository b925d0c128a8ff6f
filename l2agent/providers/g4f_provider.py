"""
GPT4Free (G4F) aggregator provider implementation.

A G4F server exposes an OpenAI-compatible chat endpoint, but which routes it
serves for model discovery varies between releases.
"""

import logging
from typing import Any, Dict, List

import requests

from ..config.dataclasses import G4FConfig
from .base import AIMessage, AIResponse, BaseProvider, MalformedResponseError

logger = logging.getLogger(__name__)

MODEL_LIST_PATHS = ("/v1/models", "/models", "/api/models", "/v1/models/list", "/models/list")


class G4FProvider(BaseProvider):
    """Provider for a self-hosted G4F server."""

    provider_id = "g4f"
    display_name = "GPT4Free (G4F)"
    DEFAULT_MODELS = [
        "gpt-3.5-turbo",
        "gpt-4",
        "gpt-4o",
        "gpt-4o-mini",
        "claude-3-haiku",
        "claude-3-sonnet",
        "gemini-pro",
        "gemini-1.5-flash",
        "llama-3-70b",
        "llama-3.1-70b",
        "mixtral-8x7b",
        "blackbox",
    ]

    def _headers(self, config: G4FConfig) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if config.api_key:
            headers["Authorization"] = f"Bearer {config.api_key}"
        return headers

    def _send(self, config: G4FConfig, messages: List[AIMessage], context: Dict[str, Any]) -> AIResponse:
        data = {
            "model": config.model,
            "messages": [{"role": msg.role, "content": msg.content} for msg in messages],
            "max_tokens": config.max_tokens,
            "temperature": config.temperature,
            "top_p": config.top_p,
            "top_k": config.top_k,
            "stream": False,
        }

        response = requests.post(
            f"{config.base_url}/v1/chat/completions",
            headers=self._headers(config),
            json=data,
            timeout=config.timeout,
        )
        response.raise_for_status()

        result = self._handle_chat_completion(response, config.model)
        if not result.content:
            raise MalformedResponseError("G4F server returned an empty completion")
        return result

    def get_server_models(self) -> List[str]:
        """Ask the server which models it serves; empty list if it won't say."""
        if not self.is_configured():
            return []

        config = self.config
        for path in MODEL_LIST_PATHS:
            try:
                response = requests.get(
                    f"{config.base_url}{path}",
                    headers=self._headers(config),
                    timeout=self.PROBE_TIMEOUT,
                )
            except requests.exceptions.RequestException as e:
                logger.debug("G4F model list at %s%s failed: %s", config.base_url, path, e)
                continue

            if response.status_code != 200:
                continue

            try:
                data = response.json()
            except ValueError:
                continue

            models = self._model_ids(data)
            if models:
                return models

        return []

    @staticmethod
    def _model_ids(data: Any) -> List[str]:
        if isinstance(data, dict):
            data = data.get("data", data.get("models", []))
        if not isinstance(data, list):
            return []

        models = []
        for item in data:
            if isinstance(item, str):
                models.append(item)
            elif isinstance(item, dict):
                name = item.get("id") or item.get("name")
                if isinstance(name, str):
                    models.append(name)
        return models

    def _fetch_models(self, config: G4FConfig) -> List[str]:
        return self.get_server_models()

    def _check_connection(self, config: G4FConfig) -> bool:
        # Any HTTP answer means the server is up
        for path in ("/v1/models", "/"):
            try:
                requests.get(f"{config.base_url}{path}", headers=self._headers(config), timeout=self.PROBE_TIMEOUT)
            except requests.exceptions.RequestException as e:
                logger.debug("G4F server at %s%s unreachable: %s", config.base_url, path, e)
                continue
            return True
        return False
