"""
EmbedSearch Embedding Generation

Centralized module for all embedding API calls. This is the ONLY module in
the codebase that calls the embedding endpoint.

Classes:
    EmbeddingClient — embed(text) -> vector via an OpenAI-compatible API

Rules:
    - Never truncate input: text over EMBEDDING_MAX_INPUT_CHARS, or rejected
      by the model as too long, raises InputTooLong
    - Never log embedding vectors — only metadata
    - No DB access in this module
    - Raise errors immediately — no internal retries; ModelUnavailable is
      retryable by the caller
"""

import time
from typing import Optional

import structlog
from openai import AsyncOpenAI, OpenAIError

from embedsearch.cache.embedding_cache import EmbeddingCache
from embedsearch.errors import InputError, InputTooLong, ModelUnavailable
from embedsearch.llm.providers import get_llm_client, translate_openai_error

logger = structlog.get_logger(__name__)


class EmbeddingClient:
    """
    Turns text into a fixed-length vector using the configured model.

    Args:
        settings: Application settings (provider, model, input budget, timeout).
        client: Pre-built client; created lazily from settings when omitted.
        cache: Optional embedding cache consulted before the model.
    """

    def __init__(
        self,
        settings,
        client: Optional[AsyncOpenAI] = None,
        cache: Optional[EmbeddingCache] = None,
    ):
        self.model = settings.EMBEDDING_MODEL
        self.max_input_chars = settings.EMBEDDING_MAX_INPUT_CHARS
        self._settings = settings
        self._client = client
        self._cache = cache

    def _get_client(self) -> AsyncOpenAI:
        if self._client is None:
            try:
                self._client = get_llm_client(
                    self._settings.EMBEDDING_PROVIDER,
                    self._settings,
                    timeout=self._settings.EMBEDDING_TIMEOUT_SECONDS,
                )
            except ValueError as exc:
                raise ModelUnavailable(f"embedding model not configured: {exc}") from exc
        return self._client

    async def aclose(self) -> None:
        """Release the underlying HTTP client, if one was created."""
        if self._client is not None:
            await self._client.close()
            self._client = None

    async def embed(self, text: str) -> list[float]:
        """
        Embed a single text.

        Raises:
            InputError: Empty text.
            InputTooLong: Text exceeds the model's input budget.
            ModelUnavailable / ModelTimeout: The embedding service failed.
        """
        if not text or not text.strip():
            raise InputError("text must be a non-empty string")
        if len(text) > self.max_input_chars:
            raise InputTooLong(
                f"text has {len(text)} characters; the embedding budget is "
                f"{self.max_input_chars}"
            )

        if self._cache is not None:
            cached = await self._cache.get(self.model, text)
            if cached is not None:
                return [float(v) for v in cached]

        client = self._get_client()
        start_time = time.time()
        try:
            response = await client.embeddings.create(input=[text], model=self.model)
        except OpenAIError as exc:
            error = translate_openai_error(exc, "embedding")
            logger.warning(
                "embedding_failed",
                model=self.model,
                error_type=type(error).__name__,
                error=str(exc),
            )
            raise error from exc

        if not response.data or not response.data[0].embedding:
            raise ModelUnavailable("embedding model returned no vector")

        vector = [float(v) for v in response.data[0].embedding]

        # Log metadata only — never log embedding vectors
        logger.info(
            "embedding_generated",
            model=self.model,
            dimension=len(vector),
            total_tokens=response.usage.total_tokens if response.usage else None,
            elapsed_seconds=round(time.time() - start_time, 3),
        )

        if self._cache is not None:
            await self._cache.set(self.model, text, vector)

        return vector
