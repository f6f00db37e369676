"""Exception hierarchy shared by every pipeline stage."""
from __future__ import annotations


class DocQAError(Exception):
    """Base class for all pipeline errors."""


class LoadFailure(DocQAError):
    """The document could not be fetched or parsed."""


class IndexFailure(DocQAError):
    """A probe, query or upsert against the vector index failed."""


class EmbeddingFailure(DocQAError):
    """The embedding service failed to produce vectors."""


class CompletionFailure(DocQAError):
    """The language model call failed."""


class EmptyRetrievalFailure(DocQAError):
    """No chunks were available to seed sampling for the document."""


class ConsistencyTimeout(IndexFailure):
    """Freshly upserted records did not become visible before the deadline."""


class RequestTimeout(DocQAError):
    """The whole request exceeded its deadline."""


class PipelineError(DocQAError):
    """
    Opaque failure surfaced at the orchestration boundary.

    The original error is kept as ``cause`` (and as ``__cause__``) so callers
    and tests can still tell the kinds apart.
    """

    def __init__(self, message: str, cause: BaseException | None = None) -> None:
        super().__init__(message)
        self.cause = cause
