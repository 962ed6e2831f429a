"""Deterministic hash-seeded embeddings for tests and offline development."""
from __future__ import annotations

import hashlib
import random
from typing import List

from .base import EmbeddingProvider


class HashEmbeddingProvider(EmbeddingProvider):
    """Return deterministic embedding vectors derived from each text.

    The vectors carry no semantic meaning; identical texts always map to the
    same vector, which makes ranking reproducible without a model download.
    """

    def __init__(self, dimension: int = 384) -> None:
        if dimension <= 0:
            raise ValueError("dimension must be a positive integer")
        self.dimension = dimension

    @property
    def name(self) -> str:
        return f"hash:{self.dimension}"

    async def embed(self, text: str) -> List[float]:
        seed = int.from_bytes(hashlib.sha256(text.encode("utf-8")).digest(), "big")
        rng = random.Random(seed)
        return [rng.uniform(-1.0, 1.0) for _ in range(self.dimension)]
