"""Query embedding abstractions and deterministic baseline implementation."""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from hashlib import blake2b
from math import sqrt

from langchain_core.embeddings import Embeddings


class Embedder(ABC):
    """Turns query text into a fixed-length vector.

    Implementations must be deterministic for identical text within a session.
    """

    @abstractmethod
    def embed_query(self, text: str) -> list[float]:
        """Embed one query."""

    async def aembed_query(self, text: str) -> list[float]:
        return await asyncio.to_thread(self.embed_query, text)


class HashingEmbedder(Embedder):
    """Signed feature-hashing query embedder.

    Queries sharing whitespace tokens land near each other in L2 space, which
    is enough for the in-memory index and offline search runs. Real deployments
    plug a provider model in through `LangChainEmbedder`.
    """

    def __init__(self, dimension: int = 256) -> None:
        self.dimension = dimension

    def embed_query(self, text: str) -> list[float]:
        return self._embed(text)

    async def aembed_query(self, text: str) -> list[float]:
        return self._embed(text)

    def _embed(self, text: str) -> list[float]:
        """Bucket each lowercased token by its blake2b digest, then L2-normalize.

        Blank text maps to the zero vector.
        """
        buckets = [0.0] * self.dimension
        for token in text.lower().split():
            digest = blake2b(token.encode("utf-8"), digest_size=8).digest()
            bucket = int.from_bytes(digest[:4], "little") % self.dimension
            buckets[bucket] += -1.0 if digest[4] & 1 else 1.0

        length = sqrt(sum(weight * weight for weight in buckets))
        if length == 0:
            return buckets
        return [weight / length for weight in buckets]


class LangChainEmbedder(Embedder):
    """Adapts any LangChain `Embeddings` provider (OpenAI, HuggingFace, ...)."""

    def __init__(self, embeddings: Embeddings) -> None:
        self._embeddings = embeddings

    @property
    def embeddings(self) -> Embeddings:
        return self._embeddings

    def embed_query(self, text: str) -> list[float]:
        return list(self._embeddings.embed_query(text))

    async def aembed_query(self, text: str) -> list[float]:
        return list(await self._embeddings.aembed_query(text))
