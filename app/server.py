"""
Document Q&A - Web API Server
------------------------------
FastAPI server that exposes the request handler over HTTP.

Endpoints:
  GET  /api/health    -> configured stages, model, chunking settings
  POST /api/process   -> run one extract / summarize / question request

Run from the project root:
    uvicorn app.server:app --reload --port 8000

The index directories in config/config.yaml are relative to CWD.
"""
from __future__ import annotations

import os
from contextlib import asynccontextmanager
from typing import Optional

import orjson
from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse
from loguru import logger

from docqa.config import load_config
from docqa.serving.orchestrator import Orchestrator, build_orchestrator, handle
from docqa.utils.logger import setup_from_config

CONFIG_PATH = os.getenv("DOCQA_CONFIG", "config/config.yaml")

# ---------------------------------------------------------------------------
# Per-stage orchestrator cache
# ---------------------------------------------------------------------------

_config: Optional[dict] = None
_orchestrators: dict[str, Orchestrator] = {}


def _orchestrator_for(stage: str) -> Orchestrator:
    if _config is None:
        raise RuntimeError("Server not initialised")
    if stage not in _orchestrators:
        logger.info(f"[Server] Building orchestrator for stage '{stage}'")
        _orchestrators[stage] = build_orchestrator(_config, stage)
    return _orchestrators[stage]


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Load configuration once at startup; drop cached pipelines on shutdown."""
    global _config
    _config = load_config(CONFIG_PATH)
    setup_from_config(_config)
    logger.info(f"[Server] Config loaded from {CONFIG_PATH}")
    yield
    _orchestrators.clear()
    _config = None
    logger.info("[Server] Pipelines unloaded.")


# ---------------------------------------------------------------------------
# App
# ---------------------------------------------------------------------------

app = FastAPI(
    title="Document Q&A API",
    description="Feature extraction, summarisation and Q&A over one indexed document",
    version="1.0.0",
    lifespan=lifespan,
)


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------

@app.get("/api/health")
async def health():
    """Return configuration the pipeline is running with."""
    if _config is None:
        raise HTTPException(status_code=503, detail="Server not ready")
    return {
        "status": "ok",
        "stages": sorted(_config["index"]["dirs"]),
        "loaded_stages": sorted(_orchestrators),
        "llm": _config["llm"],
        "embedding_model": _config["embedding"]["model"],
        "chunking": _config["chunking"],
    }


@app.post("/api/process")
async def process(request: Request):
    """
    Run one request and mirror the handler's statusCode onto the HTTP status.

    The body is passed to the handler unvalidated so malformed payloads get
    the same 500 {"error": ...} response as any other failure.
    """
    if _config is None:
        raise HTTPException(status_code=503, detail="Server not ready")

    try:
        event = orjson.loads(await request.body())
    except orjson.JSONDecodeError as exc:
        logger.warning(f"[API] Unparseable body: {exc}")
        return JSONResponse(status_code=500, content={"error": f"Invalid request: {exc}"})

    if isinstance(event, dict):
        logger.info(
            f"[API] Process | type={event.get('type')} stage={event.get('stage')} | "
            f"epic={event.get('epicId')} doc={event.get('documentId')}"
        )

    response = await handle(event, _orchestrator_for)
    return JSONResponse(status_code=response["statusCode"], content=orjson.loads(response["body"]))
