"""Tests for the provider clients and the provider manager."""

from unittest.mock import patch

import pytest
import requests

from l2agent.config import AgentConfig
from l2agent.providers import (
    AIMessage,
    AnthropicProvider,
    ConfigurationError,
    G4FProvider,
    GeminiProvider,
    LocalModelProvider,
    MalformedResponseError,
    NotConfiguredError,
    OpenAIProvider,
    ProviderError,
    ProviderManager,
    UpstreamError,
)

from .conftest import make_response

CHAT_COMPLETION = {
    "model": "gpt-4-0613",
    "choices": [{"message": {"role": "assistant", "content": "Hello!"}, "finish_reason": "stop"}],
    "usage": {"prompt_tokens": 10, "completion_tokens": 3, "total_tokens": 13},
}

ALL_PROVIDERS = [OpenAIProvider, AnthropicProvider, GeminiProvider, LocalModelProvider, G4FProvider]


def user(text, **context):
    return AIMessage("user", text, context=context or None)


@pytest.fixture
def openai():
    provider = OpenAIProvider()
    provider.configure({"api_key": "sk-test"})
    return provider


class TestUnconfigured:
    @pytest.mark.parametrize("provider_class", ALL_PROVIDERS)
    def test_send_never_reaches_network(self, provider_class):
        provider = provider_class()
        with patch("requests.post") as post, patch("requests.get") as get:
            with pytest.raises(NotConfiguredError):
                provider.send_message([user("hi")])
            post.assert_not_called()
            get.assert_not_called()

    @pytest.mark.parametrize("provider_class", ALL_PROVIDERS)
    def test_state(self, provider_class):
        provider = provider_class()
        assert provider.is_configured() is False
        assert provider.test_connection() is False
        assert provider.get_name()


class TestConfigure:
    def test_missing_credential(self):
        provider = OpenAIProvider()
        with pytest.raises(ConfigurationError, match="api_key"):
            provider.configure({})
        assert provider.is_configured() is False

    def test_blank_credential_counts_as_missing(self):
        with pytest.raises(ConfigurationError):
            AnthropicProvider().configure({"apiKey": ""})

    def test_camel_case_keys(self):
        provider = OpenAIProvider()
        provider.configure({"apiKey": "sk", "maxTokens": 100, "baseUrl": "http://proxy"})
        assert provider.config.max_tokens == 100
        assert provider.config.base_url == "http://proxy"

    def test_unknown_key(self):
        with pytest.raises(ConfigurationError, match="bogus"):
            OpenAIProvider().configure({"api_key": "sk", "bogus": 1})

    def test_local_requires_endpoint(self):
        with pytest.raises(ConfigurationError, match="endpoint"):
            LocalModelProvider().configure({"model": "llama3"})

    def test_failed_probe_keeps_previous_config(self, openai):
        with patch("requests.get", side_effect=requests.exceptions.ConnectionError("refused")):
            with pytest.raises(ConfigurationError, match="Failed to connect"):
                openai.configure({"api_key": "sk-other", "verify": True})
        assert openai.config.api_key == "sk-test"

    def test_successful_probe(self):
        provider = OpenAIProvider()
        with patch("requests.get", return_value=make_response(200, {"data": []})) as get:
            provider.configure({"api_key": "sk", "verify": True})
        assert provider.is_configured()
        assert get.call_args[0][0] == "https://api.openai.com/v1/models"


class TestOpenAI:
    def test_request_and_response(self, openai):
        messages = [
            AIMessage("system", "Be brief"),
            user("Fix this", filePath="src/a.py", selectedCode="x = 1"),
        ]
        with patch("requests.post", return_value=make_response(200, CHAT_COMPLETION)) as post:
            response = openai.send_message(messages)

        url = post.call_args[0][0]
        kwargs = post.call_args[1]
        assert url == "https://api.openai.com/v1/chat/completions"
        assert kwargs["headers"]["Authorization"] == "Bearer sk-test"
        body = kwargs["json"]
        assert body["model"] == "gpt-4"
        assert body["temperature"] == 0.7
        assert body["max_tokens"] == 4000
        assert body["stream"] is False
        assert body["messages"][0] == {"role": "system", "content": "Be brief"}
        assert body["messages"][1]["content"] == "File: src/a.py\n\nFix this\n\nSelected Code:\n```\nx = 1\n```"

        assert response.content == "Hello!"
        assert response.model == "gpt-4-0613"
        assert response.finish_reason == "stop"
        assert response.usage.total_tokens == 13
        assert response.to_dict()["usage"] == {"promptTokens": 10, "completionTokens": 3, "totalTokens": 13}

    def test_accepts_message_dicts(self, openai):
        with patch("requests.post", return_value=make_response(200, CHAT_COMPLETION)) as post:
            openai.send_message([{"role": "user", "content": "hi"}])
        assert post.call_args[1]["json"]["messages"] == [{"role": "user", "content": "hi"}]

    def test_base_url_gets_version_prefix(self):
        provider = OpenAIProvider()
        provider.configure({"api_key": "sk", "base_url": "http://localhost:8080/"})
        with patch("requests.post", return_value=make_response(200, CHAT_COMPLETION)) as post:
            provider.send_message([user("hi")])
        assert post.call_args[0][0] == "http://localhost:8080/v1/chat/completions"

    def test_missing_choices_is_malformed(self, openai):
        with patch("requests.post", return_value=make_response(200, {"choices": []})):
            with pytest.raises(MalformedResponseError):
                openai.send_message([user("hi")])

    def test_non_json_is_malformed(self, openai):
        with patch("requests.post", return_value=make_response(200, text="<html>")):
            with pytest.raises(MalformedResponseError):
                openai.send_message([user("hi")])

    def test_models_filtered_and_sorted(self, openai):
        payload = {"data": [{"id": "whisper-1"}, {"id": "gpt-4o"}, {"id": "gpt-3.5-turbo"}]}
        with patch("requests.get", return_value=make_response(200, payload)):
            assert openai.get_models() == ["gpt-3.5-turbo", "gpt-4o"]

    def test_models_fall_back_on_failure(self, openai):
        with patch("requests.get", return_value=make_response(500, {"error": "boom"})):
            assert openai.get_models() == ["gpt-4", "gpt-3.5-turbo", "gpt-4-turbo-preview"]

    def test_models_unconfigured_fall_back(self):
        with patch("requests.get") as get:
            assert OpenAIProvider().get_models() == OpenAIProvider.DEFAULT_MODELS
            get.assert_not_called()

    def test_connection(self, openai):
        with patch("requests.get", return_value=make_response(200, {"data": []})):
            assert openai.test_connection() is True
        with patch("requests.get", return_value=make_response(401, {"error": {"message": "bad key"}})):
            assert openai.test_connection() is False
        with patch("requests.get", side_effect=requests.exceptions.Timeout()):
            assert openai.test_connection() is False


class TestErrorMapping:
    def _send_error(self, provider, **kwargs):
        with patch("requests.post", **kwargs):
            with pytest.raises(UpstreamError) as excinfo:
                provider.send_message([user("hi")])
        return excinfo.value

    def test_handle_error_maps_exception_directly(self, openai):
        error = openai.handle_error(requests.exceptions.Timeout("read timed out"))
        assert isinstance(error, UpstreamError)
        assert error.code == "ETIMEDOUT"
        assert error.retry is True

    def test_unauthorized(self, openai):
        error = self._send_error(openai, return_value=make_response(401, {"error": {"message": "nope"}}))
        assert error.status_code == 401
        assert "Invalid OpenAI API key" in str(error)
        assert error.retry is False

    def test_forbidden(self, openai):
        error = self._send_error(openai, return_value=make_response(403, {}))
        assert "insufficient permissions" in str(error)

    def test_rate_limit(self, openai):
        error = self._send_error(openai, return_value=make_response(429, {}))
        assert "rate limit" in str(error)
        assert error.retry is True

    def test_bad_request_surfaces_upstream_message(self, openai):
        payload = {"error": {"message": "max_tokens is too large"}}
        error = self._send_error(openai, return_value=make_response(400, payload))
        assert "max_tokens is too large" in str(error)
        assert error.upstream_message == "max_tokens is too large"

    def test_not_found(self, openai):
        error = self._send_error(openai, return_value=make_response(404, text="Not Found"))
        assert "not found" in str(error)
        assert error.upstream_message == "Not Found"

    def test_server_error(self, openai):
        error = self._send_error(openai, return_value=make_response(503, {}))
        assert error.status_code == 503
        assert "internal error" in str(error)
        assert error.retry is True

    def test_timeout(self, openai):
        error = self._send_error(openai, side_effect=requests.exceptions.Timeout("read timed out"))
        assert error.code == "ETIMEDOUT"
        assert "not responding" in str(error)

    def test_connection_refused(self, openai):
        error = self._send_error(openai, side_effect=requests.exceptions.ConnectionError("Connection refused"))
        assert error.code == "ECONNREFUSED"
        assert isinstance(error.__cause__, requests.exceptions.ConnectionError)

    def test_unknown_host(self, openai):
        cause = requests.exceptions.ConnectionError("[Errno -2] Name or service not known")
        error = self._send_error(openai, side_effect=cause)
        assert error.code == "ENOTFOUND"
        assert error.retry is False


class TestAnthropic:
    @pytest.fixture
    def provider(self):
        provider = AnthropicProvider()
        provider.configure({"apiKey": "sk-ant"})
        return provider

    def test_request_and_response(self, provider):
        payload = {
            "model": "claude-3-sonnet-20240229",
            "content": [{"type": "text", "text": "Hel"}, {"type": "tool_use"}, {"type": "text", "text": "lo"}],
            "usage": {"input_tokens": 7, "output_tokens": 2},
            "stop_reason": "end_turn",
        }
        messages = [
            AIMessage("system", "Rule one"),
            AIMessage("system", "Rule two"),
            user("hi"),
            AIMessage("assistant", "hello"),
            user("again"),
        ]
        with patch("requests.post", return_value=make_response(200, payload)) as post:
            response = provider.send_message(messages)

        assert post.call_args[0][0] == "https://api.anthropic.com/v1/messages"
        headers = post.call_args[1]["headers"]
        assert headers["x-api-key"] == "sk-ant"
        assert headers["anthropic-version"] == "2023-06-01"
        body = post.call_args[1]["json"]
        assert body["system"] == "Rule one\n\nRule two"
        assert [m["role"] for m in body["messages"]] == ["user", "assistant", "user"]
        assert body["max_tokens"] == 4000
        assert "temperature" not in body

        assert response.content == "Hello"
        assert response.usage.total_tokens == 9
        assert response.finish_reason == "end_turn"

    def test_content_must_be_list(self, provider):
        with patch("requests.post", return_value=make_response(200, {"content": "text"})):
            with pytest.raises(MalformedResponseError):
                provider.send_message([user("hi")])

    def test_no_text_blocks_is_malformed(self, provider):
        payload = {"content": [{"type": "tool_use", "id": "t1", "name": "x", "input": {}}]}
        with patch("requests.post", return_value=make_response(200, payload)):
            with pytest.raises(MalformedResponseError):
                provider.send_message([user("hi")])

    def test_models(self, provider):
        payload = {"data": [{"id": "claude-3-5-sonnet-20241022"}]}
        with patch("requests.get", return_value=make_response(200, payload)) as get:
            assert provider.get_models() == ["claude-3-5-sonnet-20241022"]
        assert get.call_args[0][0] == "https://api.anthropic.com/v1/models"


class TestGemini:
    @pytest.fixture
    def provider(self):
        provider = GeminiProvider()
        with patch("requests.get", return_value=make_response(200, {"models": []})):
            provider.configure({"apiKey": "AIza"})
        return provider

    def test_configure_probes_key(self):
        provider = GeminiProvider()
        with patch("requests.get", return_value=make_response(400, {"error": {"message": "API key not valid"}})):
            with pytest.raises(ConfigurationError):
                provider.configure({"apiKey": "bad"})
        assert provider.is_configured() is False

    def test_format_messages(self, provider):
        messages = [AIMessage("system", "Be kind"), user("hi"), AIMessage("assistant", "hey"), user("fix")]
        contents = provider.format_messages(messages, {"filePath": "a.py", "projectPath": "/p"})

        assert [c["role"] for c in contents] == ["user", "model", "user", "model", "user"]
        assert contents[0]["parts"][0]["text"] == "Be kind"
        assert contents[-1]["parts"][0]["text"] == "fix\n\nFile: a.py\n\nProject: /p"

    def test_request_and_response(self, provider):
        payload = {
            "candidates": [{"content": {"parts": [{"text": "Answer"}]}, "finishReason": "STOP"}],
            "usageMetadata": {"promptTokenCount": 4, "candidatesTokenCount": 1, "totalTokenCount": 5},
        }
        with patch("requests.post", return_value=make_response(200, payload)) as post:
            response = provider.send_message([user("q")])

        url = post.call_args[0][0]
        assert url == "https://generativelanguage.googleapis.com/v1beta/models/gemini-1.5-pro-latest:generateContent"
        assert post.call_args[1]["params"] == {"key": "AIza"}
        generation = post.call_args[1]["json"]["generationConfig"]
        assert generation["topK"] == 40
        assert generation["maxOutputTokens"] == 2048

        assert response.content == "Answer"
        assert response.usage.total_tokens == 5
        assert response.metadata["provider"] == "gemini"

    def test_no_candidates_is_malformed(self, provider):
        with patch("requests.post", return_value=make_response(200, {"candidates": []})):
            with pytest.raises(MalformedResponseError):
                provider.send_message([user("q")])

    def test_models_support_generate_content(self, provider):
        payload = {
            "models": [
                {"name": "models/gemini-1.5-flash", "supportedGenerationMethods": ["generateContent"]},
                {"name": "models/embedding-001", "supportedGenerationMethods": ["embedContent"]},
            ]
        }
        with patch("requests.get", return_value=make_response(200, payload)):
            assert provider.get_models() == ["gemini-1.5-flash"]


class TestLocalModel:
    @pytest.fixture
    def provider(self):
        provider = LocalModelProvider()
        provider.configure({"endpoint": "http://localhost:11434/", "model": "llama3"})
        return provider

    def test_generate_dialect(self, provider):
        payload = {"model": "llama3", "response": "Hi there", "prompt_eval_count": 5, "eval_count": 2}
        with patch("requests.post", return_value=make_response(200, payload)) as post:
            response = provider.send_message([AIMessage("system", "Rules"), user("hello")])

        assert post.call_count == 1
        assert post.call_args[0][0] == "http://localhost:11434/api/generate"
        body = post.call_args[1]["json"]
        assert body["prompt"] == "System: Rules\n\nHuman: hello\n\nAssistant:"
        assert body["stream"] is False
        assert response.content == "Hi there"
        assert response.usage.total_tokens == 7
        assert provider.dialect == "generate"

    def test_falls_back_to_chat_and_remembers(self, provider):
        responses = {
            "http://localhost:11434/api/generate": make_response(404, text="404 page not found"),
            "http://localhost:11434/v1/chat/completions": make_response(200, CHAT_COMPLETION),
        }
        with patch("requests.post", side_effect=lambda url, **kw: responses[url]) as post:
            assert provider.send_message([user("hello")]).content == "Hello!"
            assert provider.dialect == "chat"

            post.reset_mock()
            provider.send_message([user("again")])
            assert post.call_count == 1
            assert post.call_args[0][0] == "http://localhost:11434/v1/chat/completions"

    def test_completion_dialect(self, provider):
        responses = {
            "http://localhost:11434/api/generate": make_response(200, {"unexpected": True}),
            "http://localhost:11434/v1/chat/completions": make_response(404, {}),
            "http://localhost:11434/completion": make_response(200, {"content": "done"}),
        }
        with patch("requests.post", side_effect=lambda url, **kw: responses[url]):
            assert provider.send_message([user("hello")]).content == "done"
        assert provider.dialect == "completion"

    def test_all_dialects_fail(self, provider):
        with patch("requests.post", side_effect=requests.exceptions.ConnectionError("Connection refused")):
            with pytest.raises(UpstreamError) as excinfo:
                provider.send_message([user("hello")])
        assert excinfo.value.code == "ECONNREFUSED"
        assert "localhost:11434" in str(excinfo.value)

    def test_server_error_from_known_dialect_is_raised(self, provider):
        responses = {
            "http://localhost:11434/api/generate": make_response(
                500, {"error": "model 'llama3' not found, try pulling it first"}
            ),
            "http://localhost:11434/v1/chat/completions": make_response(404, {}),
            "http://localhost:11434/completion": make_response(404, {}),
        }
        with patch("requests.post", side_effect=lambda url, **kw: responses[url]) as post:
            with pytest.raises(UpstreamError) as excinfo:
                provider.send_message([user("hello")])

        assert excinfo.value.status_code == 500
        assert excinfo.value.upstream_message == "model 'llama3' not found, try pulling it first"
        assert post.call_count == 1
        assert provider.dialect is None

    def test_reconfigure_resets_dialect(self, provider):
        provider.dialect = "chat"
        provider.configure({"endpoint": "http://localhost:1234"})
        assert provider.dialect is None

    def test_models_from_ollama_tags(self, provider):
        with patch("requests.get", return_value=make_response(200, {"models": [{"name": "llama3:8b"}]})):
            assert provider.get_models() == ["llama3:8b"]

    def test_models_from_openai_list(self, provider):
        responses = {
            "http://localhost:11434/api/tags": make_response(404, {}),
            "http://localhost:11434/v1/models": make_response(200, {"data": [{"id": "mistral"}]}),
        }
        with patch("requests.get", side_effect=lambda url, **kw: responses[url]):
            assert provider.get_models() == ["mistral"]

    def test_models_fallback(self, provider):
        with patch("requests.get", side_effect=requests.exceptions.ConnectionError()):
            assert provider.get_models() == ["llama3"]

    def test_connection_tries_health_paths(self, provider):
        responses = {
            "http://localhost:11434/api/tags": requests.exceptions.ConnectionError(),
            "http://localhost:11434/v1/models": make_response(404, {}),
            "http://localhost:11434/health": make_response(200, {"status": "ok"}),
        }

        def get(url, **kwargs):
            result = responses[url]
            if isinstance(result, Exception):
                raise result
            return result

        with patch("requests.get", side_effect=get):
            assert provider.test_connection() is True


class TestG4F:
    @pytest.fixture
    def provider(self):
        provider = G4FProvider()
        with patch("requests.get", return_value=make_response(404, text="Not Found")):
            provider.configure({"serverUrl": "http://localhost:1337/", "model": "gpt-4o"})
        return provider

    def test_unreachable_server_rejected(self):
        provider = G4FProvider()
        with patch("requests.get", side_effect=requests.exceptions.ConnectionError("refused")):
            with pytest.raises(ConfigurationError):
                provider.configure({"serverUrl": "http://localhost:9"})
        assert provider.is_configured() is False

    def test_request_and_response(self, provider):
        with patch("requests.post", return_value=make_response(200, CHAT_COMPLETION)) as post:
            response = provider.send_message([user("hi", filePath="a.py")])

        assert post.call_args[0][0] == "http://localhost:1337/v1/chat/completions"
        assert "Authorization" not in post.call_args[1]["headers"]
        body = post.call_args[1]["json"]
        assert body["model"] == "gpt-4o"
        assert body["messages"] == [{"role": "user", "content": "hi"}]
        assert body["top_p"] == 0.95
        assert body["top_k"] == 40
        assert response.content == "Hello!"

    def test_api_key_sent_as_bearer(self):
        provider = G4FProvider()
        provider.configure({"serverUrl": "http://g4f", "apiKey": "secret", "verify": False})
        with patch("requests.post", return_value=make_response(200, CHAT_COMPLETION)) as post:
            provider.send_message([user("hi")])
        assert post.call_args[1]["headers"]["Authorization"] == "Bearer secret"

    def test_empty_content_is_malformed(self, provider):
        payload = {"choices": [{"message": {"content": ""}}]}
        with patch("requests.post", return_value=make_response(200, payload)):
            with pytest.raises(MalformedResponseError):
                provider.send_message([user("hi")])

    def test_server_models_probe_alternate_paths(self, provider):
        responses = {
            "http://localhost:1337/v1/models": make_response(404, text="Not Found"),
            "http://localhost:1337/models": make_response(200, text="<html>"),
            "http://localhost:1337/api/models": make_response(200, ["gpt-4", {"name": "claude-3-haiku"}]),
        }
        with patch("requests.get", side_effect=lambda url, **kw: responses[url]):
            assert provider.get_server_models() == ["gpt-4", "claude-3-haiku"]

    def test_server_models_empty_on_failure(self, provider):
        with patch("requests.get", side_effect=requests.exceptions.ConnectionError()):
            assert provider.get_server_models() == []
            assert provider.get_models() == G4FProvider.DEFAULT_MODELS

    def test_server_models_unconfigured(self):
        with patch("requests.get") as get:
            assert G4FProvider().get_server_models() == []
            get.assert_not_called()


class TestProviderManager:
    def test_available_providers(self):
        manager = ProviderManager()
        providers = manager.get_available_providers()
        assert [p["id"] for p in providers] == ["openai", "anthropic", "google", "local", "g4f"]
        assert all(p["isConfigured"] is False for p in providers)
        assert manager.current is None

    def test_set_provider(self):
        manager = ProviderManager()
        assert manager.set_provider("openai", {"apiKey": "sk"}) is True
        assert manager.current_id == "openai"
        assert manager.get_available_providers()[0]["isConfigured"] is True

    def test_set_provider_failure_keeps_selection(self):
        manager = ProviderManager()
        manager.set_provider("openai", {"apiKey": "sk"})
        assert manager.set_provider("anthropic", {}) is False
        assert manager.current_id == "openai"

    def test_unknown_provider(self):
        with pytest.raises(ProviderError, match="Unknown provider"):
            ProviderManager().set_provider("cohere", {})

    def test_load_provider(self):
        manager = ProviderManager()
        assert manager.load_provider("local") is False
        manager.get_provider("local").configure({"endpoint": "http://localhost:11434"})
        assert manager.load_provider("local") is True
        assert manager.current_id == "local"

    def test_configure_all_selects_default(self):
        config = AgentConfig(
            default_provider="anthropic",
            providers={"openai": {"api_key": "sk"}, "anthropic": {"api_key": "sk-ant"}, "local": {}},
        )
        manager = ProviderManager()
        assert manager.configure_all(config) == ["openai", "anthropic"]
        assert manager.current_id == "anthropic"

    def test_configure_all_falls_back_to_first(self):
        config = AgentConfig(default_provider="local", providers={"openai": {"api_key": "sk"}, "local": {}})
        manager = ProviderManager()
        manager.configure_all(config)
        assert manager.current_id == "openai"
