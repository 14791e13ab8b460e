"""LLM adapter layer used by the legal assistant."""

from companion.adapters.llm.base import AbstractLLMClient
from companion.adapters.llm.factory import create_llm_client, get_llm_client
from companion.adapters.llm.openai_client import OpenAIClient

__all__ = [
    "AbstractLLMClient",
    "OpenAIClient",
    "create_llm_client",
    "get_llm_client",
]
