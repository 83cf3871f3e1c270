"""LiteLLM client wrapper with retry, backoff, and API key validation.

All embedding and chat calls route through this module. LiteLLM's built-in
retry is used (num_retries=3, exponential backoff). Any failure that
survives the retries is re-raised as ServiceUnavailableError so callers can
degrade instead of crashing.

The defaults are local Ollama models; hosted providers need their API key in
the environment (see validate_api_key).
"""

from __future__ import annotations

import logging
import os
from collections.abc import Sequence
from typing import Protocol, runtime_checkable

import litellm

from lifebutler.errors import ServiceUnavailableError

# Disable LiteLLM verbose logging unless explicitly enabled
litellm.suppress_debug_info = True
litellm.set_verbose = False  # type: ignore[assignment]

logger = logging.getLogger(__name__)


# ------------------------------------------------------------------
# Backend protocols
# ------------------------------------------------------------------


@runtime_checkable
class EmbeddingBackend(Protocol):
    """Turns texts into fixed-dimension vectors. Empty input gives empty output."""

    def embed(self, texts: Sequence[str]) -> list[list[float]]: ...


@runtime_checkable
class ChatBackend(Protocol):
    """Answers an OpenAI-style message list with plain text."""

    def chat(self, messages: list[dict]) -> str: ...


# ------------------------------------------------------------------
# Provider → env var mapping for API key validation
# ------------------------------------------------------------------

_PROVIDER_ENV: dict[str, str | None] = {
    "openai": "OPENAI_API_KEY",
    "anthropic": "ANTHROPIC_API_KEY",
    "azure": "AZURE_API_KEY",
    "cohere": "COHERE_API_KEY",
    "google": "GOOGLE_API_KEY",
    "mistral": "MISTRAL_API_KEY",
    "groq": "GROQ_API_KEY",
    "together_ai": "TOGETHERAI_API_KEY",
    "ollama": None,  # Local, no key required
    "ollama_chat": None,
}


def validate_api_key(model: str) -> None:
    """Check that the required API key env var is set for *model*.

    Args:
        model: LiteLLM model string in 'provider/model' format.

    Raises:
        EnvironmentError: If the required key is missing from environment.
    """
    provider = model.split("/")[0].lower() if "/" in model else "openai"
    env_var = _PROVIDER_ENV.get(provider)

    if env_var is None:
        return  # No key required (e.g. ollama)

    if not os.getenv(env_var):
        raise EnvironmentError(
            f"API key not found for provider '{provider}'. "
            f"Set the {env_var} environment variable."
        )


# ------------------------------------------------------------------
# LiteLLM backend
# ------------------------------------------------------------------


class LiteLLMBackend:
    """Embedding and chat backend over litellm.

    Args:
        embedding_model: LiteLLM embedding model string.
        generation_model: LiteLLM chat model string.
        max_tokens: Maximum output tokens per chat call.
        temperature: Sampling temperature for chat calls.
        num_retries: Retries on transient errors (exponential backoff).
    """

    def __init__(
        self,
        embedding_model: str = "ollama/nomic-embed-text",
        generation_model: str = "ollama/llama3.1",
        max_tokens: int = 1024,
        temperature: float = 0.2,
        num_retries: int = 3,
    ) -> None:
        self.embedding_model = embedding_model
        self.generation_model = generation_model
        self.max_tokens = max_tokens
        self.temperature = temperature
        self.num_retries = num_retries

    def embed(self, texts: Sequence[str]) -> list[list[float]]:
        """Embed *texts* in one call, preserving order.

        Raises:
            ServiceUnavailableError: On persistent failure after retries, or
                when the response count does not match the input count.
        """
        if not texts:
            return []
        try:
            response = litellm.embedding(
                model=self.embedding_model,
                input=list(texts),
                num_retries=self.num_retries,
            )
        except Exception as exc:
            raise ServiceUnavailableError(
                f"Embedding call to '{self.embedding_model}' failed: {exc}"
            ) from exc

        vectors = [list(item["embedding"]) for item in response.data]
        if len(vectors) != len(texts):
            raise ServiceUnavailableError(
                f"Embedding backend returned {len(vectors)} vectors for {len(texts)} texts"
            )
        return vectors

    def chat(self, messages: list[dict]) -> str:
        """Return the content of the first choice for *messages*.

        Raises:
            ServiceUnavailableError: On persistent failure after retries.
        """
        try:
            response = litellm.completion(
                model=self.generation_model,
                messages=messages,
                max_tokens=self.max_tokens,
                temperature=self.temperature,
                num_retries=self.num_retries,
            )
        except Exception as exc:
            raise ServiceUnavailableError(
                f"Chat call to '{self.generation_model}' failed: {exc}"
            ) from exc
        return response.choices[0].message.content or ""
