"""Tests for the local object loader."""

import asyncio
import json

import fitz
import pytest

from docqa.errors import LoadFailure
from docqa.loading.loader import LocalObjectLoader


@pytest.fixture
def root(tmp_path):
    (tmp_path / "bucket").mkdir()
    return tmp_path


def _load(root, key):
    return asyncio.run(LocalObjectLoader(root).load("bucket", key))


class TestLocalObjectLoader:
    def test_text_file_is_one_fragment(self, root):
        (root / "bucket" / "notes.txt").write_text("hello\nworld", encoding="utf-8")
        fragments = _load(root, "notes.txt")
        assert len(fragments) == 1
        assert fragments[0].normalized() == "hello\nworld"

    def test_nested_key(self, root):
        (root / "bucket" / "a" / "b").mkdir(parents=True)
        (root / "bucket" / "a" / "b" / "doc.md").write_text("# Title", encoding="utf-8")
        assert _load(root, "a/b/doc.md")[0].page_content == "# Title"

    def test_json_strings_and_objects(self, root):
        payload = ["plain", {"pageContent": ["x", "y"], "metadata": {"page": 2}}]
        (root / "bucket" / "doc.json").write_text(json.dumps(payload), encoding="utf-8")
        fragments = _load(root, "doc.json")

        assert [f.normalized() for f in fragments] == ["plain", "x\ny"]
        assert fragments[1].metadata["page"] == 2

    def test_json_must_be_a_list(self, root):
        (root / "bucket" / "doc.json").write_text(json.dumps({"a": 1}), encoding="utf-8")
        with pytest.raises(LoadFailure):
            _load(root, "doc.json")

    def test_json_fragment_without_content(self, root):
        (root / "bucket" / "doc.json").write_text(json.dumps([{"text": "no"}]), encoding="utf-8")
        with pytest.raises(LoadFailure):
            _load(root, "doc.json")

    def test_malformed_json(self, root):
        (root / "bucket" / "doc.json").write_text("{not json", encoding="utf-8")
        with pytest.raises(LoadFailure) as excinfo:
            _load(root, "doc.json")
        assert excinfo.value.__cause__ is not None

    def test_pdf_one_fragment_per_page(self, root):
        path = root / "bucket" / "doc.pdf"
        doc = fitz.open()
        for text in ("First page text", "Second page text"):
            page = doc.new_page()
            page.insert_text((72, 72), text)
        doc.save(str(path))
        doc.close()

        fragments = _load(root, "doc.pdf")
        assert len(fragments) == 2
        assert "First page text" in fragments[0].normalized()
        assert fragments[1].metadata["page"] == 2

    def test_missing_object(self, root):
        with pytest.raises(LoadFailure):
            _load(root, "missing.txt")

    def test_key_cannot_escape_bucket(self, root):
        (root / "secret.txt").write_text("nope", encoding="utf-8")
        with pytest.raises(LoadFailure):
            _load(root, "../secret.txt")

    def test_from_config(self, root):
        loader = LocalObjectLoader.from_config({"loader": {"root": str(root)}})
        assert loader.root == root
