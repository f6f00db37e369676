"""
Request Orchestrator
---------------------
Runs one request end to end:

    RequestContext
        |
        v
    IndexStateProbe.is_empty(identity)
        |
        +-- empty ----> Loader.load -> IngestionPipeline.ingest
        |                                   |
        +-- indexed --> (reuse existing records)
        |                                   |
        +-----------------+-----------------+
                          v
    ModeDispatcher.dispatch(mode, identity, prompt)
                          |
                          v
    OrchestrationResult

Every failure is wrapped in PipelineError at this boundary.  handle()
maps the outcome onto the invoker's {statusCode, body} contract: 200 with
{"result": ...} or 500 with {"error": ...}; there is no partial success.
"""
from __future__ import annotations

import asyncio
import random
import time
from dataclasses import dataclass
from typing import Any, Callable

import orjson
from langsmith import traceable
from loguru import logger
from pydantic import ValidationError

from docqa.chunking.chunker import SlidingWindowChunker
from docqa.config import index_dir_for_stage
from docqa.embedding.embedder import Embedder
from docqa.errors import DocQAError, PipelineError, RequestTimeout
from docqa.generation.dispatcher import ModeDispatcher
from docqa.generation.llm import build_model
from docqa.index.faiss_index import FAISSVectorIndex
from docqa.index.probe import IndexStateProbe
from docqa.ingestion.pipeline import IngestionPipeline
from docqa.loading.loader import LocalObjectLoader
from docqa.protocols import DocumentLoader
from docqa.retrieval.retriever import SimilarityRetriever
from docqa.retrieval.sampler import RetrievalSampler
from docqa.schemas import Mode, ProcessRequest, RequestContext

_DEADLINE_SLACK_S = 0.01


# ---------------------------------------------------------------------------
# Result schema
# ---------------------------------------------------------------------------

@dataclass
class OrchestrationResult:
    answer: str
    mode: Mode
    ingested: bool
    context_size: int
    elapsed_ms: float = 0.0

    def to_dict(self) -> dict:
        return {
            "answer": self.answer,
            "mode": self.mode.value,
            "ingested": self.ingested,
            "context_size": self.context_size,
            "elapsed_ms": round(self.elapsed_ms, 1),
        }


# ---------------------------------------------------------------------------
# Orchestrator
# ---------------------------------------------------------------------------

class Orchestrator:
    """
    Probe, ingest if needed, dispatch.

    Usage:
        orchestrator = build_orchestrator(config, stage="dev")
        result = await orchestrator.run(request.to_context())
        print(result.answer)
    """

    def __init__(
        self,
        loader: DocumentLoader,
        probe: IndexStateProbe,
        ingestion: IngestionPipeline,
        dispatcher: ModeDispatcher,
        request_timeout_s: float | None = 300.0,
    ) -> None:
        self.loader = loader
        self.probe = probe
        self.ingestion = ingestion
        self.dispatcher = dispatcher
        self.request_timeout_s = request_timeout_s

    @traceable(name="process_document", run_type="chain")
    async def run(self, context: RequestContext) -> OrchestrationResult:
        """
        Raises:
            PipelineError: wrapping whichever step failed (see ``.cause``).
        """
        logger.info(
            f"[Orchestrator] {context.mode.value} | {context.identity} | "
            f"{context.bucket}/{context.key} | stage={context.stage.value}"
        )
        started = time.perf_counter()
        try:
            return await asyncio.wait_for(self._run(context), timeout=self.request_timeout_s)
        except asyncio.TimeoutError as exc:
            if not self._deadline_expired(started):
                # A step raised TimeoutError on its own; not the request deadline.
                logger.error(f"[Orchestrator] {type(exc).__name__}: {exc}")
                raise PipelineError(str(exc) or type(exc).__name__, cause=exc) from exc
            timeout = RequestTimeout(
                f"Request for {context.identity} exceeded {self.request_timeout_s:.0f}s"
            )
            logger.error(f"[Orchestrator] {timeout}")
            raise PipelineError(str(timeout), cause=timeout) from exc
        except Exception as exc:
            logger.error(f"[Orchestrator] {type(exc).__name__}: {exc}")
            raise PipelineError(str(exc), cause=exc) from exc

    def _deadline_expired(self, started: float) -> bool:
        if self.request_timeout_s is None:
            return False
        # The event loop may fire the deadline up to one clock tick early.
        return time.perf_counter() - started + _DEADLINE_SLACK_S >= self.request_timeout_s

    async def _run(self, context: RequestContext) -> OrchestrationResult:
        t0 = time.perf_counter()
        identity = context.identity

        ingested = await self.ensure_indexed(context)
        dispatched = await self.dispatcher.dispatch(context.mode, identity, context.human_prompt)

        elapsed_ms = (time.perf_counter() - t0) * 1000
        logger.info(
            f"[Orchestrator] Complete | {identity} | ingested={ingested} | "
            f"context={dispatched.context_size} | {elapsed_ms:.0f}ms"
        )
        return OrchestrationResult(
            answer=dispatched.answer,
            mode=dispatched.mode,
            ingested=ingested,
            context_size=dispatched.context_size,
            elapsed_ms=elapsed_ms,
        )

    async def ensure_indexed(self, context: RequestContext) -> bool:
        """Ingest the document unless its partition already holds records."""
        if not await self.probe.is_empty(context.identity):
            logger.info(f"[Orchestrator] {context.identity} already indexed, reusing")
            return False

        logger.info(f"[Orchestrator] {context.identity} not indexed, ingesting")
        fragments = await self.loader.load(context.bucket, context.key)
        await self.ingestion.ingest(fragments, context.identity)
        return True


# ---------------------------------------------------------------------------
# Wiring
# ---------------------------------------------------------------------------

def build_orchestrator(config: dict, stage: str = "dev", rng: random.Random | None = None) -> Orchestrator:
    """Assemble the concrete FAISS / OpenAI / local-loader pipeline for *stage*."""
    embedder = Embedder.from_config(config)
    index = FAISSVectorIndex.open(index_dir_for_stage(config, stage), dimensions=embedder.dimensions)
    llm = build_model(config)
    probe = IndexStateProbe(index)

    ing_cfg = config.get("ingestion", {})
    ingestion = IngestionPipeline(
        chunker=SlidingWindowChunker.from_config(config),
        llm=llm,
        embedder=embedder,
        index=index,
        probe=probe,
        max_concurrency=ing_cfg.get("max_concurrency", 5),
        settle_timeout_s=ing_cfg.get("settle_timeout_s", 6.0),
        poll_initial_s=ing_cfg.get("poll_initial_s", 0.25),
        poll_max_s=ing_cfg.get("poll_max_s", 2.0),
    )
    dispatcher = ModeDispatcher.from_config(
        config,
        llm=llm,
        sampler=RetrievalSampler(index, embedder, rng=rng),
        retriever=SimilarityRetriever(index, embedder),
    )
    return Orchestrator(
        loader=LocalObjectLoader.from_config(config),
        probe=probe,
        ingestion=ingestion,
        dispatcher=dispatcher,
        request_timeout_s=config.get("serving", {}).get("request_timeout_s", 300.0),
    )


# ---------------------------------------------------------------------------
# Request boundary
# ---------------------------------------------------------------------------

def _response(status_code: int, body: dict) -> dict:
    return {"statusCode": status_code, "body": orjson.dumps(body).decode("utf-8")}


async def handle(
    event: Any,
    orchestrator_factory: Callable[[str], Orchestrator],
) -> dict:
    """
    Process one invoker event and return ``{statusCode, body}``.

    A fresh RequestContext is built from every event.  The factory receives
    the request's stage so dev and prod traffic hit separate indexes.
    """
    keys = sorted(event) if isinstance(event, dict) else type(event).__name__
    logger.info(f"[Handler] Incoming event | keys={keys}")
    try:
        context = ProcessRequest.model_validate(event).to_context()
        result = await orchestrator_factory(context.stage.value).run(context)
    except ValidationError as exc:
        logger.warning(f"[Handler] Invalid request: {exc.error_count()} error(s)")
        return _response(500, {"error": f"Invalid request: {exc}"})
    except DocQAError as exc:
        return _response(500, {"error": str(exc)})
    except Exception as exc:
        logger.exception(f"[Handler] Unexpected failure: {exc}")
        return _response(500, {"error": str(exc)})

    return _response(200, {"result": result.answer})
