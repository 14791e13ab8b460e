"""Integration tests for the LLM adapter layer."""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from openai import APIConnectionError

from companion.adapters.llm import OpenAIClient, create_llm_client
from companion.adapters.llm import factory as llm_factory
from companion.core.config import settings
from companion.core.errors import LLMAppError, ServiceUnavailableAppError, ValidationAppError


def _completion(content):
    response = MagicMock()
    response.choices = [MagicMock(message=MagicMock(content=content))]
    return response


@pytest.fixture
def openai_client() -> OpenAIClient:
    return OpenAIClient(api_key="test-key-123", model="gpt-4o")


class TestOpenAIClientIntegration:
    @pytest.mark.asyncio
    async def test_generate_json_success(self, openai_client: OpenAIClient) -> None:
        with patch.object(
            openai_client.client.chat.completions,
            "create",
            new_callable=AsyncMock,
            return_value=_completion('{"reply": "Bonjour", "suggestions": []}'),
        ):
            result = await openai_client.generate_json("Bonjour", schema={"type": "object"})

        assert result == {"reply": "Bonjour", "suggestions": []}

    @pytest.mark.asyncio
    async def test_messages_include_system_and_history(self, openai_client: OpenAIClient) -> None:
        with patch.object(
            openai_client.client.chat.completions,
            "create",
            new_callable=AsyncMock,
            return_value=_completion("{}"),
        ) as mock_create:
            await openai_client.generate_json(
                "Et le preavis ?",
                system="You are a legal assistant.",
                history=[
                    {"role": "user", "content": "Bail commercial"},
                    {"role": "assistant", "content": "Bien note."},
                    {"role": "system", "content": "ignored"},
                ],
                schema={"type": "object"},
                temperature=0.1,
                max_tokens=500,
            )

        kwargs = mock_create.call_args.kwargs
        roles = [message["role"] for message in kwargs["messages"]]
        assert roles == ["system", "user", "assistant", "user"]
        assert kwargs["messages"][0]["content"].startswith("You are a legal assistant.")
        assert kwargs["messages"][-1]["content"] == "Et le preavis ?"
        assert kwargs["response_format"] == {"type": "json_object"}
        assert kwargs["temperature"] == 0.1
        assert kwargs["max_tokens"] == 500

    @pytest.mark.asyncio
    async def test_invalid_json_raises(self, openai_client: OpenAIClient) -> None:
        with patch.object(
            openai_client.client.chat.completions,
            "create",
            new_callable=AsyncMock,
            return_value=_completion("This is not JSON"),
        ):
            with pytest.raises(LLMAppError) as exc_info:
                await openai_client.generate_json("Test")

        assert exc_info.value.code == "llm_invalid_json"

    @pytest.mark.asyncio
    async def test_empty_response_raises(self, openai_client: OpenAIClient) -> None:
        with patch.object(
            openai_client.client.chat.completions,
            "create",
            new_callable=AsyncMock,
            return_value=_completion(None),
        ):
            with pytest.raises(LLMAppError) as exc_info:
                await openai_client.generate_json("Test")

        assert exc_info.value.code == "llm_empty_response"

    @pytest.mark.asyncio
    async def test_provider_error_raises(self, openai_client: OpenAIClient) -> None:
        error = APIConnectionError(request=MagicMock())
        with patch.object(
            openai_client.client.chat.completions,
            "create",
            new_callable=AsyncMock,
            side_effect=error,
        ):
            with pytest.raises(LLMAppError) as exc_info:
                await openai_client.generate_json("Test")

        assert exc_info.value.code == "llm_error"


class TestLLMFactory:
    @pytest.fixture
    def configure(self, monkeypatch: pytest.MonkeyPatch):
        def apply(**values) -> None:
            for name, value in values.items():
                monkeypatch.setattr(settings.llm, name, value)

        return apply

    def test_creates_openai_client(self, configure) -> None:
        configure(provider="openai", model="gpt-4o-mini", api_key="test-key")

        client = create_llm_client()

        assert isinstance(client, OpenAIClient)
        assert client.model == "gpt-4o-mini"

    def test_unconfigured_assistant_is_unavailable(self, configure) -> None:
        configure(provider=None, model=None)

        with pytest.raises(ServiceUnavailableAppError) as exc_info:
            create_llm_client()

        assert exc_info.value.code == "assistant_unavailable"

    def test_missing_api_key(self, configure) -> None:
        configure(provider="openai", model="gpt-4o", api_key=None)

        with pytest.raises(ValidationAppError, match="requires LLM_API_KEY") as exc_info:
            create_llm_client()

        assert exc_info.value.code == "llm_missing_api_key"

    def test_unknown_provider(self, configure) -> None:
        configure(provider="unknown-provider", model="x", api_key="test-key")

        with pytest.raises(ValidationAppError, match="Unknown LLM provider") as exc_info:
            create_llm_client()

        assert exc_info.value.code == "llm_unknown_provider"

    def test_client_is_rebuilt_when_configuration_changes(self, configure, monkeypatch) -> None:
        monkeypatch.setattr(llm_factory, "_client", None)
        monkeypatch.setattr(llm_factory, "_client_config", None)
        configure(provider="openai", model="gpt-4o", api_key="test-key")

        first = llm_factory.get_llm_client()
        assert llm_factory.get_llm_client() is first

        configure(model="gpt-4o-mini")
        second = llm_factory.get_llm_client()

        assert second is not first
        assert second.model == "gpt-4o-mini"
