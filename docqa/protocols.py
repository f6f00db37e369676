"""
Structural contracts for the external collaborators.

The pipeline only depends on these shapes, so tests can pass in fakes and
deployments can swap FAISS or OpenAI for another backend.
"""
from __future__ import annotations

from typing import Protocol, runtime_checkable

import numpy as np

from docqa.schemas import IndexRecord, QueryFilter, QueryMatch, RawFragment


@runtime_checkable
class DocumentLoader(Protocol):
    async def load(self, bucket: str, key: str) -> list[RawFragment]:
        """Fetch a document and return its content fragments."""
        ...


@runtime_checkable
class EmbeddingClient(Protocol):
    dimensions: int

    async def embed_query(self, text: str) -> np.ndarray:
        """Embed one string into a vector of ``dimensions`` floats."""
        ...

    async def embed_texts(self, texts: list[str]) -> np.ndarray:
        """Embed many strings; returns an (N, dimensions) array."""
        ...


@runtime_checkable
class VectorIndex(Protocol):
    dimensions: int

    async def query(
        self,
        vector: np.ndarray | list[float],
        filter: QueryFilter,
        top_k: int,
        include_metadata: bool = True,
    ) -> list[QueryMatch]:
        """Filtered nearest-neighbour search."""
        ...

    async def upsert(self, records: list[IndexRecord]) -> int:
        """Insert or replace records; returns how many were written."""
        ...


@runtime_checkable
class LanguageModel(Protocol):
    model: str

    async def complete(self, prompt: str) -> str:
        """Return the model's completion for a single prompt string."""
        ...
