"""Shared fakes and fixtures for the pipeline tests."""
from __future__ import annotations

import asyncio
import hashlib

import numpy as np
import pytest

from docqa.index.faiss_index import FAISSVectorIndex
from docqa.schemas import DocumentIdentity, IndexRecord

DIMS = 8


def text_vector(text: str, dims: int = DIMS) -> np.ndarray:
    """Deterministic unit vector derived from the text's hash."""
    seed = int.from_bytes(hashlib.sha256(text.encode("utf-8")).digest()[:4], "little")
    vec = np.random.default_rng(seed).normal(size=dims).astype(np.float32)
    return vec / np.linalg.norm(vec)


class FakeEmbedder:
    def __init__(self, dims: int = DIMS) -> None:
        self.dimensions = dims
        self.queries: list[str] = []
        self.batches: list[list[str]] = []

    async def embed_query(self, text: str) -> np.ndarray:
        self.queries.append(text)
        return text_vector(text, self.dimensions)

    async def embed_texts(self, texts: list[str]) -> np.ndarray:
        self.batches.append(list(texts))
        if not texts:
            return np.empty((0, self.dimensions), dtype=np.float32)
        return np.stack([text_vector(t, self.dimensions) for t in texts])


class FakeModel:
    """Records prompts; answers via *responder* and tracks in-flight calls."""

    def __init__(self, responder=None, delay: float = 0.0) -> None:
        self.model = "fake-model"
        self.prompts: list[str] = []
        self.responder = responder or (lambda prompt: f"summary of {len(prompt)} chars")
        self.delay = delay
        self.in_flight = 0
        self.peak_in_flight = 0

    async def complete(self, prompt: str) -> str:
        self.prompts.append(prompt)
        self.in_flight += 1
        self.peak_in_flight = max(self.peak_in_flight, self.in_flight)
        try:
            await asyncio.sleep(self.delay)
            return self.responder(prompt)
        finally:
            self.in_flight -= 1


class StubIndex:
    """Vector index double returning canned matches and recording calls."""

    def __init__(self, responses=None, dims: int = DIMS, error: Exception | None = None) -> None:
        self.dimensions = dims
        self.responses = list(responses or [])
        self.error = error
        self.queries: list[dict] = []
        self.upserts: list[list[IndexRecord]] = []

    async def query(self, vector, filter, top_k, include_metadata=True):
        self.queries.append(
            {"vector": np.asarray(vector), "filter": filter, "top_k": top_k}
        )
        if self.error is not None:
            raise self.error
        if len(self.responses) > 1:
            return self.responses.pop(0)
        return self.responses[0] if self.responses else []

    async def upsert(self, records):
        self.upserts.append(list(records))
        return len(records)


def make_record(identity: DocumentIdentity, i: int, text: str | None = None) -> IndexRecord:
    text = text or f"{identity.doc_id} chunk {i}"
    return IndexRecord(
        record_id=f"{identity.doc_id}#{i}",
        vector=text_vector(text).tolist(),
        metadata={**identity.metadata(), "text": text, "chunk_index": i},
    )


@pytest.fixture
def identity() -> DocumentIdentity:
    return DocumentIdentity(epic_id="epic-1", doc_id="doc-1")


@pytest.fixture
def other_identity() -> DocumentIdentity:
    return DocumentIdentity(epic_id="epic-1", doc_id="doc-2")


@pytest.fixture
def index() -> FAISSVectorIndex:
    return FAISSVectorIndex(dimensions=DIMS)


@pytest.fixture
def embedder() -> FakeEmbedder:
    return FakeEmbedder()


@pytest.fixture
def populated_index(index, identity, other_identity) -> FAISSVectorIndex:
    """30 records for `identity`, 5 for `other_identity`."""
    records = [make_record(identity, i) for i in range(30)]
    records += [make_record(other_identity, i) for i in range(5)]
    asyncio.run(index.upsert(records))
    return index
