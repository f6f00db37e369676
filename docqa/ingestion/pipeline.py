"""
Ingestion Pipeline
-------------------
Turns a freshly loaded document into indexed, retrievable units:

    fragments
        |
        v
    SlidingWindowChunker (normalise + overlapping windows)
        |
        v
    per-chunk summary (LLM, concurrent, bounded by a semaphore)
        |
        v
    identity stamping (epicId / docId metadata, id = docId)
        |
        v
    one batch embedding call + one upsert
        |
        v
    read-after-write wait (poll the probe until the records are visible)

Only invoked when the probe reports the document's partition empty.  Any
failure aborts the whole ingestion; records already upserted are not rolled
back, so ingestion is at-least-once and non-atomic.
"""
from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass

from langsmith import traceable
from loguru import logger

from docqa.chunking.chunker import SlidingWindowChunker
from docqa.errors import LoadFailure
from docqa.generation.prompts import CHUNK_SUMMARY_PROMPT
from docqa.index.probe import IndexStateProbe
from docqa.protocols import EmbeddingClient, LanguageModel, VectorIndex
from docqa.schemas import DocumentIdentity, IndexRecord, RawFragment, TextChunk


@dataclass
class IngestionStats:
    identity: DocumentIdentity
    fragments: int = 0
    chunks: int = 0
    records_upserted: int = 0
    elapsed_ms: float = 0.0


class IngestionPipeline:
    """
    Chunk, summarise, stamp, embed and upsert one document.

    Args:
        max_concurrency:  Ceiling on simultaneous summary calls.
        settle_timeout_s: How long to wait for upserted records to become
                          visible before failing with ConsistencyTimeout.
    """

    def __init__(
        self,
        chunker: SlidingWindowChunker,
        llm: LanguageModel,
        embedder: EmbeddingClient,
        index: VectorIndex,
        probe: IndexStateProbe,
        max_concurrency: int = 5,
        settle_timeout_s: float = 6.0,
        poll_initial_s: float = 0.25,
        poll_max_s: float = 2.0,
    ) -> None:
        if max_concurrency < 1:
            raise ValueError(f"max_concurrency must be >= 1, got {max_concurrency}")
        self.chunker = chunker
        self.llm = llm
        self.embedder = embedder
        self.index = index
        self.probe = probe
        self.max_concurrency = max_concurrency
        self.settle_timeout_s = settle_timeout_s
        self.poll_initial_s = poll_initial_s
        self.poll_max_s = poll_max_s

    @traceable(name="ingest", run_type="chain")
    async def ingest(
        self, fragments: list[RawFragment], identity: DocumentIdentity
    ) -> IngestionStats:
        t0 = time.perf_counter()
        stats = IngestionStats(identity=identity, fragments=len(fragments))

        chunks = self.chunker.split(fragments)
        if not chunks:
            raise LoadFailure(f"Document {identity} produced no content to index")
        stats.chunks = len(chunks)
        logger.info(f"[Ingestion] {identity} | {len(chunks)} chunk(s) to summarise")

        summarized = await self.summarize_chunks(chunks, identity)

        vectors = await self.embedder.embed_texts([c.content for c in summarized])
        records = [
            IndexRecord.from_chunk(chunk, vector.tolist())
            for chunk, vector in zip(summarized, vectors)
        ]
        stats.records_upserted = await self.index.upsert(records)

        await self.probe.wait_until_visible(
            identity,
            timeout_s=self.settle_timeout_s,
            initial_wait_s=self.poll_initial_s,
            max_wait_s=self.poll_max_s,
        )

        stats.elapsed_ms = (time.perf_counter() - t0) * 1000
        logger.info(
            f"[Ingestion] {identity} | {stats.records_upserted} record(s) indexed "
            f"in {stats.elapsed_ms:.0f}ms"
        )
        return stats

    async def summarize_chunks(
        self, chunks: list[TextChunk], identity: DocumentIdentity
    ) -> list[TextChunk]:
        """
        Summarise every chunk concurrently, at most max_concurrency at a time.

        The first failure cancels the remaining summaries and propagates.
        Result order follows input order; completion order is unspecified.
        """
        semaphore = asyncio.Semaphore(self.max_concurrency)

        async def _one(chunk: TextChunk) -> TextChunk:
            async with semaphore:
                summary = await self.llm.complete(CHUNK_SUMMARY_PROMPT.format(chunk=chunk.content))
            return stamp_chunk(chunk, summary, identity)

        tasks = [asyncio.ensure_future(_one(chunk)) for chunk in chunks]
        try:
            return list(await asyncio.gather(*tasks))
        except BaseException:
            for task in tasks:
                task.cancel()
            raise


def stamp_chunk(chunk: TextChunk, summary: str, identity: DocumentIdentity) -> TextChunk:
    """Return the summarised, identity-stamped replacement for *chunk*."""
    metadata = dict(chunk.metadata)
    metadata.update(identity.metadata())
    metadata["source_text"] = chunk.content
    return chunk.model_copy(
        update={"content": summary, "metadata": metadata, "id": identity.doc_id}
    )
