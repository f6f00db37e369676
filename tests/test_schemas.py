"""Tests for request and identity schemas."""

import pytest
from pydantic import ValidationError

from docqa.schemas import (
    DocumentIdentity,
    IndexRecord,
    Mode,
    ProcessRequest,
    QueryFilter,
    Stage,
    TextChunk,
)


class TestDocumentIdentity:
    def test_filter_shape(self):
        identity = DocumentIdentity(epic_id="e1", doc_id="d1")
        assert identity.to_filter().as_dict() == {
            "epicId": {"$eq": "e1"},
            "docId": {"$eq": "d1"},
        }

    def test_filter_matches_only_both_fields(self):
        f = DocumentIdentity(epic_id="e1", doc_id="d1").to_filter()
        assert f.matches({"epicId": "e1", "docId": "d1", "text": "x"})
        assert not f.matches({"epicId": "e1", "docId": "d2"})
        assert not f.matches({"docId": "d1"})

    def test_filter_round_trips_identity(self):
        identity = DocumentIdentity(epic_id="e1", doc_id="d1")
        assert identity.to_filter().identity == identity

    @pytest.mark.parametrize("epic,doc", [("", "d1"), ("e1", ""), ("  ", "d1")])
    def test_blank_fields_rejected(self, epic, doc):
        with pytest.raises(ValidationError):
            DocumentIdentity(epic_id=epic, doc_id=doc)

    def test_only_equality_filters(self):
        with pytest.raises(ValidationError):
            QueryFilter(epicId={"$ne": "e1"}, docId={"$eq": "d1"})


class TestIndexRecord:
    def test_from_chunk_keeps_text_and_unique_id(self):
        chunk = TextChunk(
            content="summary",
            chunk_index=3,
            id="d1",
            metadata={"epicId": "e1", "docId": "d1", "source_text": "original"},
        )
        record = IndexRecord.from_chunk(chunk, [0.0, 1.0])
        assert record.record_id == "d1#3"
        assert record.metadata["text"] == "summary"
        assert record.metadata["source_text"] == "original"
        assert record.metadata["chunk_index"] == 3


class TestProcessRequest:
    def test_camel_case_event(self):
        req = ProcessRequest.model_validate(
            {"bucket": "b", "key": "k", "documentId": "d1", "epicId": "e1"}
        )
        ctx = req.to_context()
        assert ctx.mode is Mode.EXTRACT
        assert ctx.stage is Stage.DEV
        assert ctx.identity == DocumentIdentity(epic_id="e1", doc_id="d1")

    def test_empty_type_and_stage_fall_back_to_defaults(self):
        req = ProcessRequest.model_validate(
            {"bucket": "b", "key": "k", "documentId": "d1", "epicId": "e1",
             "type": None, "stage": ""}
        )
        assert req.type is Mode.EXTRACT
        assert req.stage is Stage.DEV

    def test_question_requires_prompt(self):
        req = ProcessRequest.model_validate(
            {"bucket": "b", "key": "k", "documentId": "d1", "epicId": "e1", "type": "question"}
        )
        with pytest.raises(ValidationError):
            req.to_context()

    def test_question_with_prompt(self):
        req = ProcessRequest.model_validate(
            {"bucket": "b", "key": "k", "documentId": "d1", "epicId": "e1",
             "type": "question", "humanPrompt": "What is it?", "stage": "prod"}
        )
        ctx = req.to_context()
        assert ctx.mode is Mode.QUESTION
        assert ctx.stage is Stage.PROD
        assert ctx.human_prompt == "What is it?"

    def test_unknown_mode_rejected(self):
        with pytest.raises(ValidationError):
            ProcessRequest.model_validate(
                {"bucket": "b", "key": "k", "documentId": "d1", "epicId": "e1", "type": "translate"}
            )

    def test_context_is_immutable(self):
        ctx = ProcessRequest.model_validate(
            {"bucket": "b", "key": "k", "documentId": "d1", "epicId": "e1"}
        ).to_context()
        with pytest.raises(ValidationError):
            ctx.key = "other"
