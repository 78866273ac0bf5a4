"""OpenAI-compatible embedding provider adapter.

Wraps the ``openai`` async client to implement :class:`IEmbeddingProvider`.
Supports both real OpenAI and OpenAI-compatible endpoints via a custom
``base_url`` and model name.  Every batch call is bounded by
``embedding_timeout_seconds``; expiry raises :class:`EmbeddingTimeoutError`
so an item never hangs in ``processing``.
"""

from __future__ import annotations

import asyncio

import numpy as np
import openai
import structlog

from tutorkb.config.settings import Settings
from tutorkb.interfaces.embedding_provider import IEmbeddingProvider
from tutorkb.utils.errors import EmbeddingError, EmbeddingTimeoutError

logger = structlog.get_logger(logger_name=__name__)

_OPENAI_BATCH_LIMIT = 2048

# Native dimensions of known models.
_MODEL_DIMENSIONS: dict[str, int] = {
    "text-embedding-3-small": 1536,
    "text-embedding-3-large": 3072,
    "text-embedding-ada-002": 1536,
    "BAAI/bge-base-en-v1.5": 768,
    "BAAI/bge-large-en-v1.5": 1024,
}

# Models that accept the ``dimensions`` request parameter.
_SHORTENABLE_MODELS = frozenset({"text-embedding-3-small", "text-embedding-3-large"})


class OpenAIEmbeddingProvider(IEmbeddingProvider):
    """Embedding provider backed by an OpenAI-compatible embeddings API.

    Uses ``text-embedding-3-small`` by default, asking the API for
    ``embedding_dimension`` components so the vectors match the chunk
    store.  Returned vectors are re-normalized to unit length.
    """

    def __init__(self, settings: Settings) -> None:
        self._settings = settings
        self._api_key = settings.openai_api_key
        self._timeout = settings.embedding_timeout_seconds

        client_kwargs: dict = {
            "api_key": self._api_key,
            "timeout": self._timeout,
            "max_retries": 1,
        }
        if settings.openai_base_url:
            client_kwargs["base_url"] = settings.openai_base_url

        self._client = openai.AsyncOpenAI(**client_kwargs)
        self._model = settings.openai_embedding_model or "text-embedding-3-small"
        if self._model in _SHORTENABLE_MODELS:
            self._dimension = settings.embedding_dimension
        else:
            self._dimension = _MODEL_DIMENSIONS.get(self._model, settings.embedding_dimension)
        self._provider_label = (
            "openai-compatible_embedding" if settings.openai_base_url else "openai_embedding"
        )

    # ------------------------------------------------------------------
    # IEmbeddingProvider implementation
    # ------------------------------------------------------------------

    async def embed(self, texts: list[str]) -> list[list[float]]:
        """Generate embedding vectors for a batch of texts.

        Splits into batches of 2048 if the input exceeds the per-call limit.
        """
        if not texts:
            return []

        all_embeddings: list[list[float]] = []
        for start in range(0, len(texts), _OPENAI_BATCH_LIMIT):
            batch = texts[start : start + _OPENAI_BATCH_LIMIT]
            all_embeddings.extend(await self._embed_batch(batch))
        return all_embeddings

    async def embed_single(self, text: str) -> list[float]:
        """Generate an embedding vector for a single text string."""
        result = await self.embed([text])
        return result[0]

    def get_dimension(self) -> int:
        return self._dimension

    def get_provider_name(self) -> str:
        return self._provider_label

    def is_available(self) -> bool:
        """Return ``True`` if an API key is configured."""
        return bool(self._api_key)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _embed_batch(self, batch: list[str]) -> list[list[float]]:
        request: dict = {"input": batch, "model": self._model}
        if self._model in _SHORTENABLE_MODELS:
            request["dimensions"] = self._dimension

        try:
            response = await asyncio.wait_for(
                self._client.embeddings.create(**request),
                timeout=self._timeout,
            )
        except (asyncio.TimeoutError, openai.APITimeoutError) as exc:
            raise EmbeddingTimeoutError(
                message=f"Embedding request timed out after {self._timeout:.0f}s",
                provider_name=self.get_provider_name(),
            ) from exc
        except openai.APIError as exc:
            raise EmbeddingError(
                message=f"{self._provider_label} API error: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

        logger.info(
            "openai_embedding_batch",
            model=self._model,
            provider=self._provider_label,
            batch_size=len(batch),
            tokens=response.usage.total_tokens if response.usage else None,
        )

        vectors = [item.embedding for item in response.data]
        if len(vectors) != len(batch):
            raise EmbeddingError(
                message=f"Expected {len(batch)} embeddings, got {len(vectors)}",
                provider_name=self.get_provider_name(),
            )
        return [self._normalize(v) for v in vectors]

    def _normalize(self, vector: list[float]) -> list[float]:
        arr = np.asarray(vector, dtype=np.float32)
        if arr.shape != (self._dimension,):
            raise EmbeddingError(
                message=(
                    f"Embedding has dimension {arr.shape[0]}, "
                    f"expected {self._dimension}"
                ),
                provider_name=self.get_provider_name(),
            )
        norm = float(np.linalg.norm(arr))
        if norm == 0.0:
            return arr.tolist()
        return (arr / norm).tolist()
