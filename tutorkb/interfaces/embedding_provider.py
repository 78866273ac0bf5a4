"""Abstract base class for text-embedding providers.

Defines the contract for turning text into fixed-dimension vectors.
Implementations may hash tokens locally, call the OpenAI embeddings
endpoint, or wrap any other backend; the orchestrator and the retrieval
service only ever see this interface.
"""

from __future__ import annotations

from abc import ABC, abstractmethod


# Concrete implementations:
#   HashingEmbeddingProvider -- deterministic feature hashing, offline (default)
#   OpenAIEmbeddingProvider  -- text-embedding-3-small or compatible endpoint
# Located in: tutorkb/providers/embedding/
class IEmbeddingProvider(ABC):
    """Contract for text-embedding services used by ingestion and retrieval.

    Every vector returned must be unit-normalized (Euclidean norm 1), or the
    zero vector when the input has no usable tokens, and must be identical
    for identical input.
    """

    @abstractmethod
    async def embed(self, texts: list[str]) -> list[list[float]]:
        """Generate embedding vectors for a batch of texts.

        Parameters
        ----------
        texts:
            One or more text strings to embed.

        Returns
        -------
        list[list[float]]
            Embedding vectors corresponding positionally to *texts*.  Each
            inner list has length equal to :meth:`get_dimension`.

        Raises
        ------
        tutorkb.utils.errors.EmbeddingError
            If the embedding call fails.
        tutorkb.utils.errors.EmbeddingTimeoutError
            If a network call exceeds its timeout.
        """

    @abstractmethod
    async def embed_single(self, text: str) -> list[float]:
        """Generate an embedding vector for a single text (e.g. a query)."""

    @abstractmethod
    def get_dimension(self) -> int:
        """Return the dimensionality of the embedding vectors.

        This value must remain constant for the lifetime of the provider
        and must match the dimension the chunk store was created with.
        """

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return a human-readable identifier for this embedding provider."""

    @abstractmethod
    def is_available(self) -> bool:
        """Return ``True`` if the provider is configured and usable."""
