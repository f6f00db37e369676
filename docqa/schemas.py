"""
Core Pydantic schemas for the document Q&A pipeline.

All stages share these models so a document's identity travels unchanged
from ingestion through indexing, retrieval and answer generation.
"""
from __future__ import annotations

from enum import Enum
from typing import Any, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


# --- Enumerations ------------------------------------------------------------

class Mode(str, Enum):
    EXTRACT = "extract"        # sample broadly, list the document's features
    SUMMARIZE = "summarize"    # sample broadly, summarise the document
    QUESTION = "question"      # similarity search against the user's prompt


class Stage(str, Enum):
    DEV = "dev"
    PROD = "prod"


# --- Identity & filters ------------------------------------------------------

class DocumentIdentity(BaseModel):
    """
    Composite key scoping every index record of one document within one epic.

    A record missing either field can never be reached by a query, so both
    are required and non-empty.
    """

    model_config = ConfigDict(frozen=True)

    epic_id: str
    doc_id: str

    @field_validator("epic_id", "doc_id")
    @classmethod
    def _not_blank(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("identity fields must be non-empty")
        return v

    def to_filter(self) -> "QueryFilter":
        return QueryFilter.for_identity(self)

    def metadata(self) -> dict[str, str]:
        return {"epicId": self.epic_id, "docId": self.doc_id}

    def __str__(self) -> str:
        return f"{self.epic_id}/{self.doc_id}"


class QueryFilter(BaseModel):
    """Equality filter `{epicId: {$eq}, docId: {$eq}}` attached to every query."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    epic_id: dict[str, str] = Field(alias="epicId")
    doc_id: dict[str, str] = Field(alias="docId")

    @classmethod
    def for_identity(cls, identity: DocumentIdentity) -> "QueryFilter":
        return cls(epicId={"$eq": identity.epic_id}, docId={"$eq": identity.doc_id})

    @model_validator(mode="after")
    def _only_equality(self) -> "QueryFilter":
        for clause in (self.epic_id, self.doc_id):
            if set(clause) != {"$eq"}:
                raise ValueError(f"Only $eq clauses are supported, got {clause}")
        return self

    @property
    def identity(self) -> DocumentIdentity:
        return DocumentIdentity(epic_id=self.epic_id["$eq"], doc_id=self.doc_id["$eq"])

    def matches(self, metadata: dict[str, Any]) -> bool:
        return (
            metadata.get("epicId") == self.epic_id["$eq"]
            and metadata.get("docId") == self.doc_id["$eq"]
        )

    def as_dict(self) -> dict[str, dict[str, str]]:
        return self.model_dump(by_alias=True)


# --- Document content --------------------------------------------------------

class RawFragment(BaseModel):
    """A piece of loaded document content, as produced by a loader."""

    page_content: Union[str, list[str]]
    metadata: dict[str, Any] = Field(default_factory=dict)

    def normalized(self) -> str:
        if isinstance(self.page_content, str):
            return self.page_content
        return "\n".join(self.page_content)


class TextChunk(BaseModel):
    """
    A bounded window of document text; the unit of summarisation and embedding.

    The chunker creates it from normalised text.  Ingestion replaces it once
    with a summarised copy stamped with the document identity, after which it
    is only read.
    """

    content: str
    metadata: dict[str, Any] = Field(default_factory=dict)
    id: Optional[str] = None
    chunk_index: int = 0


class IndexRecord(BaseModel):
    """The persisted form of a chunk inside the vector index."""

    record_id: str
    vector: list[float]
    metadata: dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def from_chunk(cls, chunk: TextChunk, vector: list[float]) -> "IndexRecord":
        metadata = dict(chunk.metadata)
        metadata["text"] = chunk.content
        metadata["chunk_index"] = chunk.chunk_index
        return cls(
            record_id=f"{chunk.id}#{chunk.chunk_index}",
            vector=vector,
            metadata=metadata,
        )


class QueryMatch(BaseModel):
    """One nearest-neighbour hit returned by a vector index query."""

    id: str
    score: float
    metadata: dict[str, Any] = Field(default_factory=dict)

    @property
    def text(self) -> str:
        return self.metadata.get("text", "")


class SampledItem(BaseModel):
    """A single element of the context handed to the language model."""

    page_content: str
    id: Optional[str] = None
    score: Optional[float] = None

    @classmethod
    def from_match(cls, match: QueryMatch) -> "SampledItem":
        return cls(page_content=match.text, id=match.id, score=match.score)


# --- Request boundary ---------------------------------------------------------

class RequestContext(BaseModel):
    """
    Immutable per-request value threaded through every component call.

    A fresh context is built for each incoming request; nothing about one
    request survives into the next.
    """

    model_config = ConfigDict(frozen=True)

    bucket: str
    key: str
    identity: DocumentIdentity
    stage: Stage = Stage.DEV
    mode: Mode = Mode.EXTRACT
    human_prompt: Optional[str] = None

    @model_validator(mode="after")
    def _question_needs_prompt(self) -> "RequestContext":
        if self.mode is Mode.QUESTION and not (self.human_prompt or "").strip():
            raise ValueError("question mode requires a non-empty humanPrompt")
        return self


class ProcessRequest(BaseModel):
    """
    The payload the pipeline receives from its invoker.

    Field names follow the invoker's camelCase contract; snake_case is
    accepted as well.
    """

    model_config = ConfigDict(populate_by_name=True)

    bucket: str
    key: str
    document_id: str = Field(alias="documentId")
    epic_id: str = Field(alias="epicId")
    stage: Stage = Stage.DEV
    type: Mode = Mode.EXTRACT
    human_prompt: Optional[str] = Field(default=None, alias="humanPrompt")

    @field_validator("stage", "type", mode="before")
    @classmethod
    def _default_when_empty(cls, v: Any, info) -> Any:
        if v in (None, ""):
            return Stage.DEV if info.field_name == "stage" else Mode.EXTRACT
        return v

    def to_context(self) -> RequestContext:
        return RequestContext(
            bucket=self.bucket,
            key=self.key,
            identity=DocumentIdentity(epic_id=self.epic_id, doc_id=self.document_id),
            stage=self.stage,
            mode=self.type,
            human_prompt=self.human_prompt,
        )
