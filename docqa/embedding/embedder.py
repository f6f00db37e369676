"""
OpenAI Embedding Client with LangSmith instrumentation
---------------------------------------------------------
Wraps the OpenAI text-embedding-3-small API with:
  - Async calls (the pipeline awaits every external service)
  - Batching (up to 2048 texts per API call)
  - LangSmith run tracing for cost / latency observability
  - Token usage logging
"""
from __future__ import annotations

import time

import numpy as np
from langsmith import traceable
from loguru import logger
from openai import AsyncOpenAI

from docqa.errors import EmbeddingFailure

MODEL = "text-embedding-3-small"
DIMENSIONS = 1536          # text-embedding-3-small native dimensions
BATCH_SIZE = 512           # OpenAI allows up to 2048; 512 keeps requests < 1 MB


class Embedder:
    """
    Generates L2-normalised embeddings using text-embedding-3-small.

    Embeddings are normalised to unit length so cosine similarity ==
    inner product, which is what the FAISS IndexFlatIP partitions score.
    """

    def __init__(
        self,
        model: str = MODEL,
        dimensions: int = DIMENSIONS,
        batch_size: int = BATCH_SIZE,
        client: AsyncOpenAI | None = None,
    ) -> None:
        self.model = model
        self.dimensions = dimensions
        self.batch_size = batch_size
        self._client = client if client is not None else AsyncOpenAI()
        self.total_tokens_used: int = 0
        self.total_api_calls: int = 0

    @classmethod
    def from_config(cls, config: dict) -> "Embedder":
        cfg = config.get("embedding", {})
        return cls(
            model=cfg.get("model", MODEL),
            dimensions=cfg.get("dimensions", DIMENSIONS),
            batch_size=cfg.get("batch_size", BATCH_SIZE),
        )

    @traceable(name="embed_texts", run_type="embedding")
    async def embed_texts(self, texts: list[str]) -> np.ndarray:
        """
        Embed a list of strings and return an (N, dimensions) float32 array.
        Texts are processed in batches to stay within API limits.
        """
        if not texts:
            return np.empty((0, self.dimensions), dtype=np.float32)

        all_embeddings: list[list[float]] = []

        for i in range(0, len(texts), self.batch_size):
            batch = texts[i: i + self.batch_size]
            embeddings, tokens = await self._embed_batch(batch)
            all_embeddings.extend(embeddings)
            self.total_tokens_used += tokens
            self.total_api_calls += 1

            logger.debug(
                f"[Embedder] Batch {i // self.batch_size + 1} | "
                f"{len(batch)} texts | {tokens} tokens | "
                f"Running total: {self.total_tokens_used} tokens"
            )

        matrix = np.array(all_embeddings, dtype=np.float32)
        # L2-normalise so cosine sim == inner product
        norms = np.linalg.norm(matrix, axis=1, keepdims=True)
        norms = np.where(norms == 0, 1, norms)
        return (matrix / norms).astype(np.float32)

    async def _embed_batch(self, texts: list[str]) -> tuple[list[list[float]], int]:
        """Call the OpenAI Embeddings API for a single batch."""
        # Replace empty strings with a space to avoid API errors
        safe_texts = [t if t.strip() else " " for t in texts]
        start = time.perf_counter()
        try:
            response = await self._client.embeddings.create(
                model=self.model, input=safe_texts
            )
        except Exception as exc:
            logger.error(f"[Embedder] API call failed for {len(texts)} texts: {exc}")
            raise EmbeddingFailure(f"Embedding request failed: {exc}") from exc
        elapsed = time.perf_counter() - start

        embeddings = [item.embedding for item in sorted(response.data, key=lambda x: x.index)]
        tokens_used = response.usage.total_tokens
        logger.debug(f"[Embedder] API call: {len(texts)} texts, {tokens_used} tokens, {elapsed:.2f}s")
        return embeddings, tokens_used

    async def embed_query(self, text: str) -> np.ndarray:
        """Embed a single query string. Returns shape (dimensions,) float32 array."""
        return (await self.embed_texts([text]))[0]

    def usage_summary(self) -> dict:
        return {
            "model": self.model,
            "total_api_calls": self.total_api_calls,
            "total_tokens_used": self.total_tokens_used,
            # text-embedding-3-small: $0.020 per million tokens (as of Feb 2026)
            "estimated_cost_usd": round(self.total_tokens_used / 1_000_000 * 0.020, 6),
        }
