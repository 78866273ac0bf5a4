"""Deterministic feature-hashing embedding provider.

Maps each lowercase word token to a bucket of a fixed-size vector with a
stable digest (``blake2b``, not Python's salted ``hash()``), accumulates
log-scaled term counts, and L2-normalizes the result with numpy.  Two
texts sharing vocabulary get a positive cosine similarity; identical texts
get exactly 1.0.

No network, no model download: this is the default provider for local
development and tests.  Swap in :class:`OpenAIEmbeddingProvider` for
semantic quality.
"""

from __future__ import annotations

import hashlib
import re
from collections import Counter

import numpy as np
import structlog

from tutorkb.interfaces.embedding_provider import IEmbeddingProvider

logger = structlog.get_logger(logger_name=__name__)

_DEFAULT_DIMENSION = 1536

_TOKEN_RE = re.compile(r"\w+", re.UNICODE)


class HashingEmbeddingProvider(IEmbeddingProvider):
    """Offline embedder satisfying determinism, fixed dimension and unit norm."""

    def __init__(self, dimension: int = _DEFAULT_DIMENSION) -> None:
        if dimension <= 0:
            raise ValueError(f"dimension must be positive, got {dimension}")
        self._dimension = dimension

    async def embed(self, texts: list[str]) -> list[list[float]]:
        return [self._vectorize(t) for t in texts]

    async def embed_single(self, text: str) -> list[float]:
        return self._vectorize(text)

    def get_dimension(self) -> int:
        return self._dimension

    def get_provider_name(self) -> str:
        return "hashing_embedding"

    def is_available(self) -> bool:
        return True

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _bucket(self, token: str) -> int:
        digest = hashlib.blake2b(token.encode("utf-8"), digest_size=8).digest()
        return int.from_bytes(digest, "big") % self._dimension

    def _vectorize(self, text: str) -> list[float]:
        vector = np.zeros(self._dimension, dtype=np.float64)
        counts = Counter(_TOKEN_RE.findall(text.lower()))
        if not counts:
            return vector.tolist()

        for token, count in counts.items():
            vector[self._bucket(token)] += 1.0 + np.log(count)

        vector /= np.linalg.norm(vector)
        return vector.tolist()
