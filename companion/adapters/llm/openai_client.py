"""OpenAI LLM client adapter."""

import json
import logging
from typing import Any

from openai import AsyncOpenAI, OpenAIError

from companion.adapters.llm.base import AbstractLLMClient
from companion.core.errors import LLMAppError

logger = logging.getLogger(__name__)

_JSON_ONLY = "Output JSON only. No extra text or markdown formatting."

_PASSTHROUGH_PARAMS = {
    "max_tokens",
    "top_p",
    "frequency_penalty",
    "presence_penalty",
    "seed",
}


class OpenAIClient(AbstractLLMClient):
    """Chat-completions client returning parsed JSON."""

    def __init__(
        self,
        api_key: str,
        model: str,
        base_url: str | None = None,
        timeout_seconds: float = 45.0,
    ) -> None:
        self.client = AsyncOpenAI(
            api_key=api_key,
            base_url=base_url,
            timeout=timeout_seconds,
        )
        self.model = model

    def _build_messages(
        self,
        prompt: str,
        system: str | None,
        history: list[dict[str, str]] | None,
    ) -> list[dict[str, str]]:
        system_content = f"{system}\n\n{_JSON_ONLY}" if system else _JSON_ONLY
        messages = [{"role": "system", "content": system_content}]
        for turn in history or []:
            if turn.get("role") in ("user", "assistant") and turn.get("content"):
                messages.append({"role": turn["role"], "content": turn["content"]})
        messages.append({"role": "user", "content": prompt})
        return messages

    async def generate_json(
        self,
        prompt: str,
        *,
        system: str | None = None,
        history: list[dict[str, str]] | None = None,
        schema: dict[str, Any] | None = None,
        **kwargs: Any,
    ) -> dict[str, Any]:
        """Generate structured JSON using OpenAI chat completions.

        Raises:
            LLMAppError: If the API call fails or the response is not valid JSON.
        """
        request_params: dict[str, Any] = {
            "model": self.model,
            "messages": self._build_messages(prompt, system, history),
            "temperature": kwargs.pop("temperature", 0.3),
        }

        if schema is not None:
            request_params["response_format"] = {"type": "json_object"}

        for param in _PASSTHROUGH_PARAMS:
            if param in kwargs:
                request_params[param] = kwargs[param]

        try:
            response = await self.client.chat.completions.create(**request_params)
        except OpenAIError as exc:
            logger.error(
                "llm.request_failed",
                extra={"model": self.model, "error_type": type(exc).__name__},
            )
            raise LLMAppError(
                code="llm_error",
                message="The assistant could not answer right now. Please try again.",
                details={"provider": "openai", "model": self.model},
            ) from exc

        content = response.choices[0].message.content
        if not content:
            raise LLMAppError(
                code="llm_empty_response",
                message="The assistant returned an empty response.",
                details={"model": self.model},
            )

        try:
            return json.loads(content.strip())
        except json.JSONDecodeError as exc:
            logger.warning("llm.invalid_json", extra={"model": self.model})
            raise LLMAppError(
                code="llm_invalid_json",
                message="The assistant returned an unreadable response.",
                details={"model": self.model},
            ) from exc
