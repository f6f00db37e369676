"""Tests for configuration loading."""

from pathlib import Path

import pytest

from docqa.config import DEFAULTS, index_dir_for_stage, load_config


class TestLoadConfig:
    def test_missing_file_gives_defaults(self, tmp_path):
        cfg = load_config(tmp_path / "absent.yaml")
        assert cfg == DEFAULTS
        assert cfg is not DEFAULTS

    def test_none_gives_defaults(self):
        assert load_config(None) == DEFAULTS

    def test_partial_override_is_deep_merged(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text(
            "chunking:\n  chunk_size: 800\nllm:\n  provider: anthropic\n",
            encoding="utf-8",
        )
        cfg = load_config(path)

        assert cfg["chunking"] == {"chunk_size": 800, "chunk_overlap": 200, "unit": "char"}
        assert cfg["llm"]["provider"] == "anthropic"
        assert cfg["llm"]["model"] == DEFAULTS["llm"]["model"]
        assert DEFAULTS["chunking"]["chunk_size"] == 500

    def test_empty_file(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("", encoding="utf-8")
        assert load_config(path) == DEFAULTS

    def test_non_mapping_root_rejected(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("- a\n- b\n", encoding="utf-8")
        with pytest.raises(ValueError):
            load_config(path)

    def test_shipped_config_matches_reference_settings(self):
        path = Path(__file__).resolve().parents[1] / "config" / "config.yaml"
        cfg = load_config(path)
        assert cfg["chunking"]["chunk_size"] == 500
        assert cfg["chunking"]["chunk_overlap"] == 200
        assert cfg["retrieval"]["question_top_k"] == 6


class TestIndexDir:
    def test_stage_lookup(self):
        assert index_dir_for_stage(DEFAULTS, "prod") == Path("data/index/prod")

    def test_unknown_stage(self):
        with pytest.raises(ValueError):
            index_dir_for_stage(DEFAULTS, "staging")
