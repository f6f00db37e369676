"""Tests for the ingestion pipeline."""

import asyncio

import pytest

from docqa.chunking.chunker import SlidingWindowChunker
from docqa.errors import CompletionFailure, ConsistencyTimeout, LoadFailure
from docqa.index.probe import IndexStateProbe
from docqa.ingestion.pipeline import IngestionPipeline, stamp_chunk
from docqa.schemas import QueryMatch, RawFragment, TextChunk

from conftest import FakeEmbedder, FakeModel, StubIndex


def _pipeline(index, model=None, embedder=None, **kwargs) -> IngestionPipeline:
    return IngestionPipeline(
        chunker=SlidingWindowChunker(chunk_size=500, chunk_overlap=200),
        llm=model or FakeModel(),
        embedder=embedder or FakeEmbedder(),
        index=index,
        probe=IndexStateProbe(index),
        poll_initial_s=0.01,
        poll_max_s=0.02,
        **kwargs,
    )


@pytest.fixture
def fragments():
    return [
        RawFragment(page_content="a" * 1800),
        RawFragment(page_content="b" * 200),
        RawFragment(page_content=["c" * 250, "d" * 249]),
    ]


class TestIngest:
    def test_indexes_every_chunk_with_identity(self, index, identity, fragments):
        model = FakeModel(responder=lambda p: f"SUMMARY[{p[40:50]}]")
        stats = asyncio.run(_pipeline(index, model=model).ingest(fragments, identity))

        assert stats.chunks == 8
        assert stats.records_upserted == 8
        assert index.count(identity) == 8
        assert asyncio.run(IndexStateProbe(index).is_empty(identity)) is False

        matches = asyncio.run(index.query([0.0] * index.dimensions, identity.to_filter(), top_k=50))
        assert len(matches) == 8
        for m in matches:
            assert m.metadata["epicId"] == "epic-1"
            assert m.metadata["docId"] == "doc-1"
            assert m.text.startswith("SUMMARY[")
            assert m.metadata["source_text"]
        assert sorted(m.id for m in matches) == sorted(f"doc-1#{i}" for i in range(8))

    def test_summary_prompt_format(self, index, identity):
        model = FakeModel()
        asyncio.run(_pipeline(index, model=model).ingest([RawFragment(page_content="hello")], identity))
        assert model.prompts == ["Summarize the following text:\n\nhello\n:"]

    def test_embeds_summaries_in_one_batch_and_upserts_once(self, identity, fragments):
        visible = QueryMatch(id="doc-1#0", score=0.0, metadata={"text": "S"})
        index = StubIndex(responses=[[visible]])
        embedder = FakeEmbedder()
        model = FakeModel(responder=lambda p: "S")
        asyncio.run(_pipeline(index, model=model, embedder=embedder).ingest(fragments, identity))

        assert len(embedder.batches) == 1
        assert embedder.batches[0] == ["S"] * 8
        assert len(index.upserts) == 1
        assert len(index.upserts[0]) == 8

    def test_concurrency_is_bounded(self, index, identity, fragments):
        model = FakeModel(delay=0.01)
        asyncio.run(_pipeline(index, model=model, max_concurrency=3).ingest(fragments, identity))
        assert len(model.prompts) == 8
        assert 1 <= model.peak_in_flight <= 3

    def test_summaries_run_concurrently(self, index, identity, fragments):
        model = FakeModel(delay=0.01)
        asyncio.run(_pipeline(index, model=model, max_concurrency=8).ingest(fragments, identity))
        assert model.peak_in_flight > 1

    def test_summary_failure_aborts_before_upsert(self, identity, fragments):
        index = StubIndex()

        def responder(prompt):
            if "b" * 50 in prompt:
                raise CompletionFailure("model unavailable")
            return "ok"

        with pytest.raises(CompletionFailure):
            asyncio.run(_pipeline(index, model=FakeModel(responder=responder)).ingest(fragments, identity))
        assert index.upserts == []

    def test_empty_document_is_a_load_failure(self, index, identity):
        with pytest.raises(LoadFailure):
            asyncio.run(_pipeline(index).ingest([RawFragment(page_content="")], identity))

    def test_invisible_records_time_out(self, identity):
        index = StubIndex()  # upserts succeed but queries never see them
        pipeline = _pipeline(index, settle_timeout_s=0.05)
        with pytest.raises(ConsistencyTimeout):
            asyncio.run(pipeline.ingest([RawFragment(page_content="text")], identity))
        assert len(index.upserts) == 1

    def test_rejects_zero_concurrency(self, index):
        with pytest.raises(ValueError):
            _pipeline(index, max_concurrency=0)


class TestStampChunk:
    def test_returns_new_chunk(self, identity):
        original = TextChunk(content="raw", chunk_index=2, metadata={"chunk_index": 2})
        stamped = stamp_chunk(original, "summary", identity)

        assert stamped.content == "summary"
        assert stamped.id == "doc-1"
        assert stamped.metadata["epicId"] == "epic-1"
        assert stamped.metadata["docId"] == "doc-1"
        assert stamped.metadata["source_text"] == "raw"
        assert original.content == "raw"
        assert "epicId" not in original.metadata
