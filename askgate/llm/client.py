"""
Generative model client.

A thin wrapper around LiteLLM's ``acompletion``: one prompt, an optional
system preamble, a sampling temperature, one non-streamed completion back.
Swapping between Ollama, OpenAI, Anthropic, etc. is a change to the model
string in settings.
"""

from __future__ import annotations

from typing import Any

from litellm import acompletion

from askgate.config.logging import get_logger
from askgate.config.settings import LLMSettings
from askgate.llm.models import LLMError

logger = get_logger(__name__)


class GenerativeClient:
    """
    Issues single-turn completions against the configured model.

    Args:
        settings: LLM configuration (model, api_base, api_key)
    """

    def __init__(self, settings: LLMSettings):
        self._settings = settings

    async def generate(
        self,
        prompt: str,
        temperature: float,
        system: str | None = None,
    ) -> str:
        """
        Generate one completion.

        Args:
            prompt: User prompt text
            temperature: Sampling temperature for this call
            system: Optional system preamble

        Returns:
            The completion text (empty string if the model returned none)

        Raises:
            LLMError: If the API call fails
        """
        messages: list[dict[str, Any]] = []
        if system:
            messages.append({"role": "system", "content": system})
        messages.append({"role": "user", "content": prompt})

        call_kwargs: dict[str, Any] = {
            "model": self._settings.model,
            "messages": messages,
            "temperature": temperature,
            "stream": False,
        }
        if self._settings.api_base:
            call_kwargs["api_base"] = self._settings.api_base
        if self._settings.api_key:
            call_kwargs["api_key"] = self._settings.api_key

        logger.debug(f"Calling {self._settings.model} (temperature={temperature}, system={system is not None})")

        try:
            response = await acompletion(**call_kwargs)
        except Exception as e:
            raise LLMError(f"LLM API call failed: {e}", cause=e) from e

        return response.choices[0].message.content or ""
