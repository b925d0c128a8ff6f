"""
Base provider interface for LLM API integrations.

Every backend (OpenAI, Anthropic, Gemini, a local model server, a G4F
aggregator) implements the same narrow capability: take an ordered list of
role-tagged messages, return text plus optional usage stats.
"""

import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

import requests

from ..config.dataclasses import make_provider_config

logger = logging.getLogger(__name__)

ROLES = ("user", "assistant", "system")


def now_ms() -> int:
    """Current wall-clock time in epoch milliseconds."""
    return int(time.time() * 1000)


class ProviderError(Exception):
    """Base exception for provider-related errors."""

    def __init__(self, message: str, status_code: Optional[int] = None, retry: bool = False):
        super().__init__(message)
        self.status_code = status_code
        self.retry = retry


class ConfigurationError(ProviderError):
    """Required configuration is missing or the validation probe failed."""


class NotConfiguredError(ProviderError):
    """An operation was attempted on a provider that was never configured."""


class NoProviderSelectedError(NotConfiguredError):
    """A conversation was used before any provider was selected."""


class UpstreamError(ProviderError):
    """Network, timeout or HTTP-status failure reported by a provider backend."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        code: Optional[str] = None,
        retry: bool = False,
        upstream_message: Optional[str] = None,
    ):
        super().__init__(message, status_code=status_code, retry=retry)
        self.code = code
        self.upstream_message = upstream_message


class MalformedResponseError(ProviderError):
    """The backend answered successfully but with a payload we cannot use."""


@dataclass(frozen=True)
class AIMessage:
    """One role-tagged entry of a conversation."""

    role: str
    content: str
    context: Optional[Dict[str, Any]] = None
    timestamp: Optional[int] = None

    def __post_init__(self):
        if self.role not in ROLES:
            raise ValueError(f"Invalid message role: {self.role!r}")
        if not isinstance(self.content, str):
            raise ValueError("Message content must be a string")

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"role": self.role, "content": self.content}
        if self.context is not None:
            data["context"] = self.context
        if self.timestamp is not None:
            data["timestamp"] = self.timestamp
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AIMessage":
        context = data.get("context")
        if context is not None and not isinstance(context, dict):
            raise ValueError("Message context must be a mapping")
        return cls(
            role=data["role"],
            content=data["content"],
            context=context,
            timestamp=data.get("timestamp"),
        )


def as_message(value: Any) -> AIMessage:
    """Accept either an AIMessage or its dict form."""
    if isinstance(value, AIMessage):
        return value
    if isinstance(value, dict):
        return AIMessage.from_dict(value)
    raise TypeError(f"Cannot convert {type(value).__name__} to AIMessage")


@dataclass(frozen=True)
class TokenUsage:
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0

    def to_dict(self) -> Dict[str, int]:
        return {
            "promptTokens": self.prompt_tokens,
            "completionTokens": self.completion_tokens,
            "totalTokens": self.total_tokens,
        }


@dataclass(frozen=True)
class AIResponse:
    """Response from a single completion request."""

    content: str
    model: Optional[str] = None
    usage: Optional[TokenUsage] = None
    finish_reason: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"content": self.content}
        if self.model is not None:
            data["model"] = self.model
        if self.usage is not None:
            data["usage"] = self.usage.to_dict()
        if self.finish_reason is not None:
            data["finishReason"] = self.finish_reason
        if self.metadata:
            data["metadata"] = self.metadata
        return data


class BaseProvider(ABC):
    """Abstract base class for LLM providers.

    A provider starts unconfigured. ``configure()`` validates a candidate
    configuration record (and optionally probes the backend with it) and only
    then commits it, so a failed configure leaves the previous state intact.
    """

    provider_id: str = ""
    display_name: str = ""
    DEFAULT_MODELS: List[str] = []
    PROBE_TIMEOUT = 10

    def __init__(self):
        self.config = None

    def get_name(self) -> str:
        return self.display_name

    def is_configured(self) -> bool:
        return self.config is not None

    def configure(self, config: Any) -> None:
        """
        Validate and commit a provider configuration.

        Args:
            config: The provider's config dataclass, or a mapping of its fields
                (camelCase keys from the UI are accepted)

        Raises:
            ConfigurationError: required fields are missing, unknown fields were
                given, or the connectivity probe failed
        """
        try:
            candidate = make_provider_config(self.provider_id, config)
        except (TypeError, ValueError) as e:
            raise ConfigurationError(f"Invalid {self.get_name()} configuration: {e}") from e

        missing = candidate.missing_fields()
        if missing:
            raise ConfigurationError(
                f"{self.get_name()} requires: {', '.join(missing)}"
            )

        if candidate.verify and not self._probe(candidate):
            raise ConfigurationError(
                f"Failed to connect to {self.get_name()} at {self._endpoint(candidate)}"
            )

        self.config = candidate
        self._on_configured()
        logger.info("Configured %s provider (model=%s)", self.get_name(), getattr(candidate, "model", None))

    def send_message(
        self, messages: Sequence[AIMessage], context: Optional[Dict[str, Any]] = None
    ) -> AIResponse:
        """
        Send a conversation to the backend. A single attempt; no retries.

        Args:
            messages: Ordered conversation history, replayed verbatim
            context: Free-form context for the latest request (file path,
                selected code, project path, task type)

        Returns:
            AIResponse for the completion
        """
        if not self.is_configured():
            raise NotConfiguredError(f"{self.get_name()} provider is not configured")

        messages = [as_message(m) for m in messages]
        try:
            return self._send(self.config, messages, context or {})
        except requests.exceptions.RequestException as e:
            error = self.handle_error(e)
            logger.error("%s request failed: %s", self.get_name(), error)
            raise error from e

    def get_models(self) -> List[str]:
        """List model identifiers, degrading to a built-in list on any failure."""
        models: List[str] = []
        if self.is_configured():
            try:
                models = self._fetch_models(self.config)
            except (ProviderError, requests.exceptions.RequestException, KeyError, TypeError, ValueError) as e:
                logger.warning("Failed to fetch %s models: %s", self.get_name(), e)
        return models or self._fallback_models()

    def test_connection(self) -> bool:
        if not self.is_configured():
            return False
        return self._probe(self.config)

    @abstractmethod
    def _send(self, config: Any, messages: List[AIMessage], context: Dict[str, Any]) -> AIResponse:
        """Perform the request for an already-validated configuration."""
        pass

    @abstractmethod
    def _check_connection(self, config: Any) -> bool:
        """Return True if the backend accepts ``config``; may raise on transport errors."""
        pass

    def _fetch_models(self, config: Any) -> List[str]:
        return []

    def _fallback_models(self) -> List[str]:
        return list(self.DEFAULT_MODELS)

    def _on_configured(self):
        pass

    def _endpoint(self, config: Any) -> str:
        return getattr(config, "base_url", "") or ""

    def _probe(self, config: Any) -> bool:
        try:
            return bool(self._check_connection(config))
        except (ProviderError, requests.exceptions.RequestException, ValueError) as e:
            logger.warning("%s connection test failed: %s", self.get_name(), e)
            return False

    def format_message_content(self, message: AIMessage) -> str:
        """Inline the file path and selected code carried in a message's context."""
        content = message.content
        context = message.context or {}

        if context.get("filePath"):
            content = f"File: {context['filePath']}\n\n{content}"

        if context.get("selectedCode"):
            content = f"{content}\n\nSelected Code:\n```\n{context['selectedCode']}\n```"

        return content

    def _parse_json(self, response: requests.Response) -> Dict[str, Any]:
        try:
            data = response.json()
        except ValueError:
            raise MalformedResponseError(f"{self.get_name()} returned a non-JSON response")
        if not isinstance(data, dict):
            raise MalformedResponseError(f"{self.get_name()} returned an unexpected payload")
        return data

    def _extract_content_from_response(self, response_data: Dict[str, Any]) -> str:
        """
        Extract content from an OpenAI-style completion response.

        Override for provider-specific response formats.
        """
        choices = response_data.get("choices")
        if isinstance(choices, list) and choices and isinstance(choices[0], dict):
            choice = choices[0]
            message = choice.get("message")
            if isinstance(message, dict) and isinstance(message.get("content"), str):
                return message["content"]
            if isinstance(choice.get("text"), str):
                return choice["text"]
        raise MalformedResponseError(f"Invalid response format from {self.get_name()}")

    def _extract_usage_from_response(self, response_data: Dict[str, Any]) -> Optional[TokenUsage]:
        usage = response_data.get("usage")
        if not isinstance(usage, dict):
            return None
        prompt = usage.get("prompt_tokens", 0) or 0
        completion = usage.get("completion_tokens", 0) or 0
        return TokenUsage(
            prompt_tokens=prompt,
            completion_tokens=completion,
            total_tokens=usage.get("total_tokens", prompt + completion) or 0,
        )

    def _handle_chat_completion(self, response: requests.Response, model: Optional[str]) -> AIResponse:
        response_data = self._parse_json(response)
        content = self._extract_content_from_response(response_data)

        finish_reason = None
        choices = response_data.get("choices") or []
        if choices and isinstance(choices[0], dict):
            finish_reason = choices[0].get("finish_reason")

        return AIResponse(
            content=content,
            model=response_data.get("model") or model,
            usage=self._extract_usage_from_response(response_data),
            finish_reason=finish_reason,
        )

    def _upstream_message(self, response: requests.Response) -> Optional[str]:
        try:
            data = response.json()
        except ValueError:
            text = (response.text or "").strip()
            return text[:300] or None

        if isinstance(data, dict):
            error = data.get("error")
            if isinstance(error, dict) and error.get("message"):
                return str(error["message"])
            if isinstance(error, str):
                return error
            if data.get("message"):
                return str(data["message"])
        return None

    def handle_error(self, error: Exception) -> ProviderError:
        """
        Convert transport errors into a descriptive UpstreamError.

        ``retry`` is informational: nothing in this package retries.
        """
        name = self.get_name()
        endpoint = self._endpoint(self.config) if self.config is not None else ""

        if isinstance(error, requests.exceptions.HTTPError) and error.response is not None:
            status_code = error.response.status_code
            detail = self._upstream_message(error.response)

            if status_code in (401, 403):
                message = f"Invalid {name} API key or insufficient permissions"
            elif status_code == 429:
                message = f"{name} API rate limit exceeded"
            elif status_code == 400:
                message = f"{name} API error: {detail or 'Bad request'}"
            elif status_code == 404:
                message = f"{name} endpoint or model not found. Check the server configuration."
            elif status_code >= 500:
                message = f"{name} server internal error (HTTP {status_code})"
            else:
                message = f"{name} API error (HTTP {status_code}): {detail or error}"

            return UpstreamError(
                message,
                status_code=status_code,
                retry=status_code == 429 or status_code >= 500,
                upstream_message=detail,
            )

        if isinstance(error, requests.exceptions.Timeout):
            return UpstreamError(
                f"{name} at {endpoint} is not responding (timeout)",
                code="ETIMEDOUT",
                retry=True,
            )

        if isinstance(error, requests.exceptions.ConnectionError):
            text = str(error)
            if any(marker in text for marker in ("Name or service not known", "getaddrinfo", "nodename")):
                return UpstreamError(
                    f"{name} URL {endpoint} is not reachable. Please check the URL.",
                    code="ENOTFOUND",
                    retry=False,
                )
            return UpstreamError(
                f"Cannot connect to {name} at {endpoint}: {error}",
                code="ECONNREFUSED",
                retry=True,
            )

        return UpstreamError(f"{name} request failed: {error}")
