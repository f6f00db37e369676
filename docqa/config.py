"""
Pipeline configuration.

Settings come from ``config/config.yaml`` deep-merged over the defaults
below.  Secrets (OPENAI_API_KEY, ANTHROPIC_API_KEY) are never read from the
YAML file; the SDK clients pick them up from the environment, which
python-dotenv populates from ``.env``.
"""
from __future__ import annotations

import copy
from pathlib import Path
from typing import Any

import yaml
from dotenv import load_dotenv
from loguru import logger

DEFAULT_CONFIG_PATH = "config/config.yaml"

DEFAULTS: dict[str, Any] = {
    "chunking": {
        "chunk_size": 500,
        "chunk_overlap": 200,
        "unit": "char",            # "char" | "token"
    },
    "embedding": {
        "model": "text-embedding-3-small",
        "dimensions": 1536,
        "batch_size": 512,
    },
    "llm": {
        "provider": "openai",      # "openai" | "anthropic"
        "model": "gpt-4o-mini",
        "temperature": 0.0,
        "max_tokens": 2048,
    },
    "index": {
        "dirs": {
            "dev": "data/index/dev",
            "prod": "data/index/prod",
        },
    },
    "ingestion": {
        "max_concurrency": 5,
        "settle_timeout_s": 6.0,
        "poll_initial_s": 0.25,
        "poll_max_s": 2.0,
    },
    "retrieval": {
        "question_top_k": 6,
    },
    "serving": {
        "request_timeout_s": 300.0,
    },
    "loader": {
        "root": "data/buckets",
    },
    "logging": {
        "level": "INFO",
        "file": "logs/pipeline.log",
    },
}


def _deep_merge(base: dict, override: dict) -> dict:
    merged = copy.deepcopy(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def load_config(path: str | Path | None = DEFAULT_CONFIG_PATH) -> dict:
    """
    Load the YAML config at *path* and merge it over DEFAULTS.

    A missing file is not an error: the defaults alone describe a working
    local setup.  Also loads ``.env`` so SDK credentials are available.
    """
    load_dotenv()

    if path is None:
        return copy.deepcopy(DEFAULTS)

    p = Path(path)
    if not p.exists():
        logger.debug(f"[Config] {p} not found, using defaults")
        return copy.deepcopy(DEFAULTS)

    with open(p, "r", encoding="utf-8") as f:
        raw = yaml.safe_load(f) or {}
    if not isinstance(raw, dict):
        raise ValueError(f"Config root must be a mapping, got {type(raw).__name__}")

    logger.debug(f"[Config] Loaded {p}")
    return _deep_merge(DEFAULTS, raw)


def index_dir_for_stage(config: dict, stage: str) -> Path:
    """Resolve the on-disk index directory for a deployment stage."""
    dirs = config.get("index", {}).get("dirs", {})
    if stage not in dirs:
        raise ValueError(f"No index directory configured for stage '{stage}'")
    return Path(dirs[stage])
