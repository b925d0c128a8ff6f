"""
Google Gemini provider implementation.
"""

from typing import Any, Dict, List, Optional

import requests

from ..config.dataclasses import GeminiConfig
from .base import AIMessage, AIResponse, BaseProvider, MalformedResponseError, TokenUsage, now_ms

SAFETY_CATEGORIES = [
    "HARM_CATEGORY_HARASSMENT",
    "HARM_CATEGORY_HATE_SPEECH",
    "HARM_CATEGORY_SEXUALLY_EXPLICIT",
    "HARM_CATEGORY_DANGEROUS_CONTENT",
]

SYSTEM_ACKNOWLEDGEMENT = "Understood. I will follow these instructions."


class GeminiProvider(BaseProvider):
    """Gemini generateContent API provider implementation."""

    provider_id = "google"
    display_name = "Google Gemini"
    DEFAULT_MODELS = [
        "gemini-pro",
        "gemini-pro-vision",
        "gemini-1.5-pro",
        "gemini-1.5-pro-latest",
        "gemini-1.5-flash",
        "gemini-1.5-flash-latest",
        "gemini-2.5-pro",
        "gemini-2.5-flash",
    ]

    def format_messages(
        self, messages: List[AIMessage], context: Dict[str, Any]
    ) -> List[Dict[str, Any]]:
        """
        Convert messages to Gemini ``contents``.

        Gemini has no system role: system messages become a leading user turn
        answered by a short model acknowledgement. The request context is
        appended to the last user turn.
        """
        contents: List[Dict[str, Any]] = []

        system_parts = [msg.content for msg in messages if msg.role == "system"]
        if system_parts:
            contents.append({"role": "user", "parts": [{"text": "\n\n".join(system_parts)}]})
            contents.append({"role": "model", "parts": [{"text": SYSTEM_ACKNOWLEDGEMENT}]})

        turns = [
            {"role": "model" if msg.role == "assistant" else "user", "parts": [{"text": msg.content}]}
            for msg in messages
            if msg.role != "system"
        ]

        if context and turns and turns[-1]["role"] == "user":
            text = turns[-1]["parts"][0]["text"]
            if context.get("filePath"):
                text += f"\n\nFile: {context['filePath']}"
            if context.get("selectedCode"):
                text += f"\n\nSelected code:\n```\n{context['selectedCode']}\n```"
            if context.get("projectPath"):
                text += f"\n\nProject: {context['projectPath']}"
            turns[-1]["parts"][0]["text"] = text

        contents.extend(turns)
        return contents

    def _send(self, config: GeminiConfig, messages: List[AIMessage], context: Dict[str, Any]) -> AIResponse:
        data = {
            "contents": self.format_messages(messages, context),
            "generationConfig": {
                "temperature": config.temperature,
                "topK": config.top_k,
                "topP": config.top_p,
                "maxOutputTokens": config.max_tokens,
                "stopSequences": [],
            },
            "safetySettings": [
                {"category": category, "threshold": "BLOCK_MEDIUM_AND_ABOVE"}
                for category in SAFETY_CATEGORIES
            ],
        }

        response = requests.post(
            f"{config.base_url.rstrip('/')}/models/{config.model}:generateContent",
            params={"key": config.api_key},
            headers={"Content-Type": "application/json"},
            json=data,
            timeout=config.timeout,
        )
        response.raise_for_status()

        return self._handle_generate_response(response, config.model)

    def _handle_generate_response(self, response: requests.Response, model: str) -> AIResponse:
        response_data = self._parse_json(response)

        candidates = response_data.get("candidates")
        if not isinstance(candidates, list) or not candidates:
            raise MalformedResponseError("No response from Gemini API")

        candidate = candidates[0]
        parts = (candidate.get("content") or {}).get("parts") if isinstance(candidate, dict) else None
        if not isinstance(parts, list) or not parts or not isinstance(parts[0], dict):
            raise MalformedResponseError("Invalid response format from Gemini API")

        return AIResponse(
            content=parts[0].get("text", ""),
            model=model,
            usage=self._extract_usage_from_response(response_data),
            finish_reason=candidate.get("finishReason", "STOP"),
            metadata={"provider": "gemini", "timestamp": now_ms()},
        )

    def _extract_usage_from_response(self, response_data: Dict[str, Any]) -> Optional[TokenUsage]:
        usage = response_data.get("usageMetadata")
        if not isinstance(usage, dict):
            return None
        prompt = usage.get("promptTokenCount", 0)
        completion = usage.get("candidatesTokenCount", 0)
        return TokenUsage(
            prompt_tokens=prompt,
            completion_tokens=completion,
            total_tokens=usage.get("totalTokenCount", prompt + completion),
        )

    def _list_models(self, config: GeminiConfig) -> requests.Response:
        return requests.get(
            f"{config.base_url.rstrip('/')}/models",
            params={"key": config.api_key},
            timeout=self.PROBE_TIMEOUT,
        )

    def _fetch_models(self, config: GeminiConfig) -> List[str]:
        response = self._list_models(config)
        response.raise_for_status()
        data = self._parse_json(response)

        # Only models that support generateContent
        models = []
        for model in data.get("models", []):
            model_name = model.get("name", "").replace("models/", "")
            supported_methods = model.get("supportedGenerationMethods", [])
            if "generateContent" in supported_methods and model_name.startswith("gemini"):
                models.append(model_name)
        return sorted(models)

    def _check_connection(self, config: GeminiConfig) -> bool:
        return self._list_models(config).status_code == 200
