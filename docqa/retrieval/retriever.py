"""
Similarity Retriever
---------------------
Embeds the user's question and returns the top-k filter-scoped matches
for one document.  Used by question mode.

The retriever is stateless per query -- call retrieve() as many times
as you like from the same instance.
"""
from __future__ import annotations

from langsmith import traceable
from loguru import logger

from docqa.protocols import EmbeddingClient, VectorIndex
from docqa.schemas import DocumentIdentity, SampledItem


class SimilarityRetriever:
    def __init__(self, index: VectorIndex, embedder: EmbeddingClient) -> None:
        self.index = index
        self.embedder = embedder

    @traceable(name="retrieve", run_type="retriever")
    async def retrieve(
        self, query: str, identity: DocumentIdentity, top_k: int = 6
    ) -> list[SampledItem]:
        """
        Args:
            query:    Raw user question.
            identity: Document whose records may be returned.

        Returns:
            Up to top_k items sorted by similarity descending.
        """
        logger.debug(f"[Retriever] {identity} | query={query[:80]!r}")

        query_vec = await self.embedder.embed_query(query)
        matches = await self.index.query(
            query_vec,
            filter=identity.to_filter(),
            top_k=top_k,
            include_metadata=True,
        )

        logger.info(
            f"[Retriever] Retrieved {len(matches)} match(es) "
            f"(top score: {matches[0].score:.4f})" if matches else "[Retriever] No results"
        )
        return [SampledItem.from_match(m) for m in matches]
