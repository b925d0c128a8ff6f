"""
Local model server provider implementation.

The dialect spoken by a local server (Ollama, LM Studio, llama.cpp, LocalAI)
is not known ahead of time, so requests are tried against each supported
wire format in turn and the first one that yields a usable body wins. The
winning dialect is tried first on subsequent requests.
"""

import logging
from typing import Any, Dict, List, Optional

import requests

from ..config.dataclasses import LocalModelConfig
from .base import AIMessage, AIResponse, BaseProvider, MalformedResponseError, TokenUsage

logger = logging.getLogger(__name__)

DIALECTS = ("generate", "chat", "completion")

UNSUPPORTED_ROUTE_STATUSES = (404, 405)

HEALTH_PATHS = ("/api/tags", "/v1/models", "/health", "/")

ROLE_PREFIXES = {"user": "Human: ", "assistant": "Assistant: ", "system": "System: "}


class LocalModelProvider(BaseProvider):
    """Provider for a model server running on the local machine."""

    provider_id = "local"
    display_name = "Local Model"
    PROBE_TIMEOUT = 5

    def __init__(self):
        super().__init__()
        self.dialect: Optional[str] = None

    def _on_configured(self):
        self.dialect = None

    def _fallback_models(self) -> List[str]:
        model = self.config.model if self.config is not None else ""
        return [model or "unknown"]

    def _dialect_order(self) -> List[str]:
        if self.dialect is None:
            return list(DIALECTS)
        return [self.dialect] + [d for d in DIALECTS if d != self.dialect]

    def _send(self, config: LocalModelConfig, messages: List[AIMessage], context: Dict[str, Any]) -> AIResponse:
        last_error: Optional[Exception] = None

        for dialect in self._dialect_order():
            attempt = getattr(self, f"_try_{dialect}")
            try:
                response = attempt(config, messages)
            except requests.exceptions.HTTPError as e:
                # Any status other than "no such route" comes from a server that speaks this dialect
                if e.response is None or e.response.status_code not in UNSUPPORTED_ROUTE_STATUSES:
                    raise
                last_error = e
            except (requests.exceptions.ConnectionError, MalformedResponseError) as e:
                last_error = e
            else:
                self.dialect = dialect
                return response

            logger.debug("Local server at %s rejected the %s format: %s", config.base_url, dialect, last_error)

        raise last_error

    def format_prompt(self, messages: List[AIMessage]) -> str:
        """Flatten a conversation into a single completion prompt."""
        parts = [f"{ROLE_PREFIXES[msg.role]}{self.format_message_content(msg)}" for msg in messages]
        parts.append("Assistant:")
        return "\n\n".join(parts)

    def _try_generate(self, config: LocalModelConfig, messages: List[AIMessage]) -> AIResponse:
        """Ollama /api/generate."""
        response = requests.post(
            f"{config.base_url}/api/generate",
            json={
                "model": config.model,
                "prompt": self.format_prompt(messages),
                "stream": False,
                "options": {
                    "num_gpu": config.gpu_layers if config.use_gpu else 0,
                    "num_ctx": config.context_window,
                },
            },
            timeout=config.timeout,
        )
        response.raise_for_status()
        data = self._parse_json(response)

        if not isinstance(data.get("response"), str):
            raise MalformedResponseError("Local server returned no 'response' field")

        usage = None
        if "prompt_eval_count" in data or "eval_count" in data:
            prompt = data.get("prompt_eval_count", 0)
            completion = data.get("eval_count", 0)
            usage = TokenUsage(prompt, completion, prompt + completion)

        return AIResponse(
            content=data["response"],
            model=data.get("model") or config.model,
            usage=usage,
            finish_reason=data.get("done_reason"),
        )

    def _try_chat(self, config: LocalModelConfig, messages: List[AIMessage]) -> AIResponse:
        """OpenAI-compatible /v1/chat/completions (LM Studio, LocalAI, vLLM)."""
        response = requests.post(
            f"{config.base_url}/v1/chat/completions",
            json={
                "model": config.model,
                "messages": [
                    {"role": msg.role, "content": self.format_message_content(msg)} for msg in messages
                ],
                "max_tokens": config.max_tokens,
                "temperature": config.temperature,
            },
            timeout=config.timeout,
        )
        response.raise_for_status()
        return self._handle_chat_completion(response, config.model)

    def _try_completion(self, config: LocalModelConfig, messages: List[AIMessage]) -> AIResponse:
        """Plain /completion (llama.cpp server, LocalAI)."""
        response = requests.post(
            f"{config.base_url}/completion",
            json={
                "model": config.model,
                "prompt": self.format_prompt(messages),
                "max_tokens": config.max_tokens,
                "n_predict": config.max_tokens,
                "temperature": config.temperature,
            },
            timeout=config.timeout,
        )
        response.raise_for_status()
        data = self._parse_json(response)

        choices = data.get("choices")
        if isinstance(choices, list) and choices and isinstance(choices[0], dict) and isinstance(choices[0].get("text"), str):
            content = choices[0]["text"]
        elif isinstance(data.get("content"), str):
            content = data["content"]
        elif isinstance(data.get("text"), str):
            content = data["text"]
        else:
            raise MalformedResponseError("Local server returned no completion text")

        return AIResponse(
            content=content,
            model=config.model or None,
            usage=self._extract_usage_from_response(data),
        )

    def _fetch_models(self, config: LocalModelConfig) -> List[str]:
        try:
            response = requests.get(f"{config.base_url}/api/tags", timeout=self.PROBE_TIMEOUT)
            response.raise_for_status()
            data = self._parse_json(response)
            if "models" in data:
                return [model["name"] for model in data["models"]]
        except (requests.exceptions.RequestException, MalformedResponseError) as e:
            logger.debug("No Ollama model list at %s: %s", config.base_url, e)

        response = requests.get(f"{config.base_url}/v1/models", timeout=self.PROBE_TIMEOUT)
        response.raise_for_status()
        data = self._parse_json(response)
        return [model["id"] for model in data.get("data", [])]

    def _check_connection(self, config: LocalModelConfig) -> bool:
        for path in HEALTH_PATHS:
            try:
                response = requests.get(f"{config.base_url}{path}", timeout=self.PROBE_TIMEOUT)
            except requests.exceptions.RequestException:
                continue
            if response.status_code == 200:
                return True
        return False
