"""
OpenAI provider implementation.
"""

from typing import Any, Dict, List

import requests

from ..config.dataclasses import OpenAIConfig
from .base import AIMessage, AIResponse, BaseProvider


class OpenAIProvider(BaseProvider):
    """OpenAI API provider implementation."""

    provider_id = "openai"
    display_name = "OpenAI"
    DEFAULT_MODELS = ["gpt-4", "gpt-3.5-turbo", "gpt-4-turbo-preview"]

    def _api_base(self, config: OpenAIConfig) -> str:
        base_url = config.base_url.rstrip("/")
        if not base_url.endswith("/v1"):
            base_url = base_url + "/v1"
        return base_url

    def _headers(self, config: OpenAIConfig) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {config.api_key}",
            "Content-Type": "application/json",
        }

    def _send(self, config: OpenAIConfig, messages: List[AIMessage], context: Dict[str, Any]) -> AIResponse:
        data = {
            "model": config.model,
            "messages": [
                {"role": msg.role, "content": self.format_message_content(msg)} for msg in messages
            ],
            "temperature": config.temperature,
            "max_tokens": config.max_tokens,
            "stream": False,
        }

        response = requests.post(
            f"{self._api_base(config)}/chat/completions",
            headers=self._headers(config),
            json=data,
            timeout=config.timeout,
        )
        response.raise_for_status()

        return self._handle_chat_completion(response, config.model)

    def _fetch_models(self, config: OpenAIConfig) -> List[str]:
        response = requests.get(
            f"{self._api_base(config)}/models",
            headers=self._headers(config),
            timeout=self.PROBE_TIMEOUT,
        )
        response.raise_for_status()
        data = self._parse_json(response)
        return sorted(model["id"] for model in data.get("data", []) if "gpt" in model["id"])

    def _check_connection(self, config: OpenAIConfig) -> bool:
        response = requests.get(
            f"{self._api_base(config)}/models",
            headers=self._headers(config),
            timeout=self.PROBE_TIMEOUT,
        )
        return response.status_code == 200
