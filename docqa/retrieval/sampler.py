"""
Two-Stage Random Sampler
-------------------------
Builds a bounded, diverse context for "give me an overview" requests
(extract / summarize), where a single similarity search over-represents
one topical cluster:

    1. seed query   -- zero vector + document filter, first_pass_top_k hits
    2. seed pick    -- one hit's text, chosen uniformly at random
    3. second query -- embedding of the seed text, second_pass_top_k hits
    4. sample       -- shuffle, keep the first sample_count

Results are non-deterministic by design: two calls against the same index
can return different contexts.  Pass a seeded random.Random for
reproducible runs.
"""
from __future__ import annotations

import random

from langsmith import traceable
from loguru import logger

from docqa.errors import EmptyRetrievalFailure
from docqa.index.probe import zero_vector
from docqa.protocols import EmbeddingClient, VectorIndex
from docqa.schemas import DocumentIdentity, QueryMatch, SampledItem


class RetrievalSampler:
    def __init__(
        self,
        index: VectorIndex,
        embedder: EmbeddingClient,
        rng: random.Random | None = None,
    ) -> None:
        self.index = index
        self.embedder = embedder
        self.rng = rng if rng is not None else random.Random()

    @traceable(name="sample_context", run_type="retriever")
    async def sample(
        self,
        identity: DocumentIdentity,
        first_pass_top_k: int,
        second_pass_top_k: int,
        sample_count: int,
    ) -> list[SampledItem]:
        """
        Returns:
            min(sample_count, len(second pass)) distinct items.

        Raises:
            EmptyRetrievalFailure: the seed query found nothing to sample from.
        """
        query_filter = identity.to_filter()

        seed_matches = await self.index.query(
            zero_vector(self.index.dimensions),
            filter=query_filter,
            top_k=first_pass_top_k,
            include_metadata=True,
        )
        seed_text = self.pick_seed(seed_matches)
        logger.debug(
            f"[Sampler] {identity} | seed pass {len(seed_matches)} hit(s) | "
            f"seed={seed_text[:60]!r}"
        )

        seed_vector = await self.embedder.embed_query(seed_text)
        neighbourhood = await self.index.query(
            seed_vector,
            filter=query_filter,
            top_k=second_pass_top_k,
            include_metadata=True,
        )

        sampled = self.draw(neighbourhood, sample_count)
        logger.info(
            f"[Sampler] {identity} | second pass {len(neighbourhood)} hit(s) "
            f"-> {len(sampled)} sampled"
        )
        return [SampledItem.from_match(m) for m in sampled]

    def pick_seed(self, matches: list[QueryMatch]) -> str:
        texts = [m.text for m in matches if m.text]
        if not texts:
            raise EmptyRetrievalFailure("No text chunks found in the seed query result.")
        return self.rng.choice(texts)

    def draw(self, matches: list[QueryMatch], count: int) -> list[QueryMatch]:
        """Uniform sample without replacement; everything when fewer than count."""
        shuffled = list(matches)
        self.rng.shuffle(shuffled)
        return shuffled[: max(count, 0)]
