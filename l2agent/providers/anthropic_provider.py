"""
Anthropic provider implementation.
"""

from typing import Any, Dict, List, Optional, Tuple

import requests

from ..config.dataclasses import AnthropicConfig
from .base import AIMessage, AIResponse, BaseProvider, MalformedResponseError, TokenUsage

ANTHROPIC_VERSION = "2023-06-01"


class AnthropicProvider(BaseProvider):
    """Anthropic API provider implementation."""

    provider_id = "anthropic"
    display_name = "Anthropic Claude"
    DEFAULT_MODELS = [
        "claude-3-opus-20240229",
        "claude-3-sonnet-20240229",
        "claude-3-haiku-20240307",
        "claude-2.1",
        "claude-2.0",
    ]

    def _api_base(self, config: AnthropicConfig) -> str:
        # Anthropic versions via header, the path always carries /v1
        base_url = config.base_url.rstrip("/")
        if base_url.endswith("/v1"):
            base_url = base_url[:-3]
        return base_url

    def _headers(self, config: AnthropicConfig) -> Dict[str, str]:
        return {
            "x-api-key": config.api_key,
            "Content-Type": "application/json",
            "anthropic-version": ANTHROPIC_VERSION,
        }

    def format_messages(self, messages: List[AIMessage]) -> Tuple[Optional[str], List[Dict[str, str]]]:
        """Split out system messages, which Anthropic takes as a separate field."""
        system_parts = [msg.content for msg in messages if msg.role == "system"]
        formatted = [
            {
                "role": "assistant" if msg.role == "assistant" else "user",
                "content": self.format_message_content(msg),
            }
            for msg in messages
            if msg.role != "system"
        ]
        system = "\n\n".join(system_parts) if system_parts else None
        return system, formatted

    def _send(self, config: AnthropicConfig, messages: List[AIMessage], context: Dict[str, Any]) -> AIResponse:
        system, formatted_messages = self.format_messages(messages)

        data: Dict[str, Any] = {
            "model": config.model,
            "messages": formatted_messages,
            "max_tokens": config.max_tokens,
        }
        if system:
            data["system"] = system
        if config.temperature is not None:
            data["temperature"] = config.temperature

        response = requests.post(
            f"{self._api_base(config)}/v1/messages",
            headers=self._headers(config),
            json=data,
            timeout=config.timeout,
        )
        response.raise_for_status()

        return self._handle_messages_response(response, config.model)

    def _handle_messages_response(self, response: requests.Response, model: str) -> AIResponse:
        response_data = self._parse_json(response)

        blocks = response_data.get("content")
        if not isinstance(blocks, list):
            raise MalformedResponseError("Invalid response format from Anthropic API")

        texts = [
            block.get("text", "")
            for block in blocks
            if isinstance(block, dict) and block.get("type") == "text"
        ]
        if not texts:
            raise MalformedResponseError("Anthropic API returned no text content")
        content = "".join(texts)

        usage = response_data.get("usage") or {}
        input_tokens = usage.get("input_tokens", 0)
        output_tokens = usage.get("output_tokens", 0)

        return AIResponse(
            content=content,
            model=response_data.get("model") or model,
            usage=TokenUsage(
                prompt_tokens=input_tokens,
                completion_tokens=output_tokens,
                total_tokens=input_tokens + output_tokens,
            ),
            finish_reason=response_data.get("stop_reason"),
        )

    def _fetch_models(self, config: AnthropicConfig) -> List[str]:
        response = requests.get(
            f"{self._api_base(config)}/v1/models",
            headers=self._headers(config),
            timeout=self.PROBE_TIMEOUT,
        )
        response.raise_for_status()
        data = self._parse_json(response)
        return [model["id"] for model in data.get("data", [])]

    def _check_connection(self, config: AnthropicConfig) -> bool:
        response = requests.get(
            f"{self._api_base(config)}/v1/models",
            headers=self._headers(config),
            timeout=self.PROBE_TIMEOUT,
        )
        return response.status_code == 200
