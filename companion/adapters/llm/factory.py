"""Factory pattern for creating LLM client instances."""

from companion.adapters.llm.base import AbstractLLMClient
from companion.adapters.llm.openai_client import OpenAIClient
from companion.core.config import settings
from companion.core.errors import ServiceUnavailableAppError, ValidationAppError

_client: AbstractLLMClient | None = None
_client_config: tuple | None = None


def create_llm_client() -> AbstractLLMClient:
    """Instantiate the LLM client for the configured provider.

    Raises:
        ServiceUnavailableAppError: If no provider/model is configured.
        ValidationAppError: If provider-specific requirements are not met.
    """
    if not settings.llm.provider or not settings.llm.model:
        raise ServiceUnavailableAppError(
            code="assistant_unavailable",
            message="The legal assistant is not configured on this server",
            details={"hint": "Set LLM_PROVIDER and LLM_MODEL"},
        )

    provider = settings.llm.provider.lower()

    if provider == "openai":
        if not settings.llm.api_key:
            raise ValidationAppError(
                code="llm_missing_api_key",
                message="OpenAI provider requires LLM_API_KEY environment variable",
            )
        return OpenAIClient(
            api_key=settings.llm.api_key,
            model=settings.llm.model,
            base_url=settings.llm.base_url,
            timeout_seconds=settings.llm.timeout_seconds,
        )

    raise ValidationAppError(
        code="llm_unknown_provider",
        message=f"Unknown LLM provider: '{provider}'. Supported providers: openai",
    )


def get_llm_client() -> AbstractLLMClient:
    """FastAPI dependency returning a cached client, rebuilt on config change."""
    global _client, _client_config

    config = (
        settings.llm.provider,
        settings.llm.model,
        settings.llm.api_key,
        settings.llm.base_url,
    )
    if _client is None or _client_config != config:
        _client = create_llm_client()
        _client_config = config
    return _client
