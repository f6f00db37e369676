"""
Index State Probe
------------------
Answers "does this document already have records in the index?" with a
single filter-scoped query using a constant zero vector.  The probe only
tests filter-scoped existence, not relevance, so no embedding call is made.

Also provides the read-after-write wait used after ingestion: poll the
probe with exponential backoff until the new records are visible, or fail
with ConsistencyTimeout once the deadline passes.
"""
from __future__ import annotations

import numpy as np
from loguru import logger
from tenacity import AsyncRetrying, RetryError, retry_if_result, stop_after_delay, wait_exponential

from docqa.errors import ConsistencyTimeout, IndexFailure
from docqa.protocols import VectorIndex
from docqa.schemas import DocumentIdentity


def zero_vector(dimensions: int) -> np.ndarray:
    return np.zeros(dimensions, dtype=np.float32)


class IndexStateProbe:
    def __init__(self, index: VectorIndex) -> None:
        self.index = index

    async def is_empty(self, identity: DocumentIdentity) -> bool:
        """
        True iff a filtered top-1 query for *identity* returns no matches.

        Query errors propagate; the caller cannot decide between ingesting
        and reusing without an answer.
        """
        try:
            matches = await self.index.query(
                zero_vector(self.index.dimensions),
                filter=identity.to_filter(),
                top_k=1,
                include_metadata=False,
            )
        except IndexFailure:
            raise
        except Exception as exc:
            raise IndexFailure(f"Probe query failed for {identity}: {exc}") from exc

        empty = len(matches) == 0
        logger.debug(f"[Probe] {identity} -> {'empty' if empty else 'indexed'}")
        return empty

    async def wait_until_visible(
        self,
        identity: DocumentIdentity,
        timeout_s: float = 6.0,
        initial_wait_s: float = 0.25,
        max_wait_s: float = 2.0,
    ) -> None:
        """
        Block until the probe observes records for *identity*.

        Raises:
            ConsistencyTimeout: the records were still invisible after timeout_s.
        """
        retrying = AsyncRetrying(
            stop=stop_after_delay(timeout_s),
            wait=wait_exponential(multiplier=initial_wait_s, min=initial_wait_s, max=max_wait_s),
            retry=retry_if_result(lambda empty: empty),
        )
        try:
            await retrying(self.is_empty, identity)
        except RetryError as exc:
            logger.error(f"[Probe] {identity} not visible after {timeout_s:.1f}s")
            raise ConsistencyTimeout(
                f"Records for {identity} not visible after {timeout_s:.1f}s"
            ) from exc

        logger.debug(f"[Probe] {identity} visible")
