"""
FastAPI Endpoints for the Call Scoring Engine
=============================================
Streams pipeline progress as server-sent events.

Base URL: http://localhost:8000

Endpoints:
- GET  /             - API info
- GET  /api/health   - Health check
- POST /api/extract  - Bronze -> Silver extraction (SSE)
- POST /api/analyze  - Full Bronze -> Gold analysis (SSE)

Both POST endpoints take a multipart form with ``file`` (xlsx or csv),
``apiKey`` and ``model`` (claude, openai or openrouter). Every stream ends
with exactly one ``complete`` or ``error`` event.
"""

import logging
import queue
import threading
import time
from datetime import datetime, timezone
from typing import Callable, Iterator, Optional

from fastapi import FastAPI, File, Form, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, StreamingResponse
from dotenv import load_dotenv

# Load environment variables
load_dotenv()

from .. import __version__
from ..config.settings import ANALYSIS_TIMEOUT_SECONDS
from ..engine import create_engine
from ..llm_client import SUPPORTED_PROVIDERS
from ..models.events import ErrorEvent, PipelineEvent

logger = logging.getLogger(__name__)

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
}
TERMINAL_EVENTS = ("complete", "error")


# =============================================================================
# FastAPI App Initialization
# =============================================================================

app = FastAPI(
    title="Call Scoring Engine API",
    description="""
## Sales Call Analysis

Upload a call-tracking export and get rep performance and lead quality scores.

### Pipeline:
- **Bronze**: Spreadsheet parsing
- **Silver**: AI triage and contact extraction with rule-based validation
- **Gold**: AI scoring, weighted overall score, rep summaries

### Quick Start:
1. Use `/api/extract` to review triage and extraction quality
2. Use `/api/analyze` for the full scored report
    """,
    version=__version__,
    docs_url="/docs",
    redoc_url="/redoc",
)

# CORS middleware - Allow all origins for frontend development
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# =============================================================================
# Streaming helpers
# =============================================================================

def stream_pipeline(
    run: Callable[[Callable[[PipelineEvent], None]], object],
    timeout: float,
) -> Iterator[str]:
    """
    Run a pipeline on a worker thread and yield its events as SSE frames.

    The stream always ends with a terminal event: the pipeline's own, a
    timeout error once ``timeout`` seconds have passed, or an internal error
    if the worker stopped without one. In-flight AI calls are not cancelled
    on timeout; the worker thread is left to finish on its own.
    """
    events: "queue.Queue[Optional[PipelineEvent]]" = queue.Queue()

    def worker():
        try:
            run(events.put)
        except Exception as e:
            logger.exception("Pipeline worker crashed")
            events.put(ErrorEvent(message="Pipeline crashed", code="internal_error", details=str(e)[:500]))
        finally:
            events.put(None)

    threading.Thread(target=worker, name="pipeline-worker", daemon=True).start()
    deadline = time.monotonic() + timeout

    while True:
        remaining = deadline - time.monotonic()
        try:
            if remaining <= 0:
                raise queue.Empty
            event = events.get(timeout=remaining)
        except queue.Empty:
            logger.warning(f"Pipeline exceeded {timeout}s, closing stream")
            yield ErrorEvent(
                message=f"Analysis timed out after {timeout:g} seconds",
                code="timeout",
            ).to_sse()
            return

        if event is None:
            yield ErrorEvent(
                message="Pipeline ended without a result",
                code="internal_error",
            ).to_sse()
            return

        yield event.to_sse()
        if event.type in TERMINAL_EVENTS:
            return


def _error_stream(message: str, code: str) -> StreamingResponse:
    """A stream consisting of a single error event"""
    frame = ErrorEvent(message=message, code=code).to_sse()
    return StreamingResponse(iter([frame]), media_type="text/event-stream", headers=SSE_HEADERS)


async def _prepare_run(
    file: Optional[UploadFile],
    api_key: Optional[str],
    model: str,
):
    """Validate the form and build an engine; returns (engine, data) or an error response"""
    if file is None:
        return None, _error_stream("No file provided", "missing_file")

    if not api_key or not api_key.strip():
        return None, _error_stream("API key is required", "missing_api_key")

    provider = (model or "claude").strip().lower()
    if provider not in SUPPORTED_PROVIDERS:
        return None, _error_stream(
            f"Unknown model '{model}'. Use one of: {', '.join(SUPPORTED_PROVIDERS)}",
            "invalid_model",
        )

    data = await file.read()
    try:
        engine = create_engine(api_key=api_key.strip(), provider=provider)
    except Exception as e:
        logger.error(f"Could not initialize {provider} client: {e}")
        return None, _error_stream(f"Could not initialize {provider} client", "internal_error")

    logger.info(f"Received {file.filename!r} ({len(data)} bytes) for {provider}")
    return (engine, data), None


def _sse_response(frames: Iterator[str]) -> StreamingResponse:
    return StreamingResponse(frames, media_type="text/event-stream", headers=SSE_HEADERS)


# =============================================================================
# Health & Info Endpoints
# =============================================================================

@app.get("/", tags=["Info"])
async def root():
    """API information and available endpoints"""
    return {
        "service": "Call Scoring Engine",
        "version": __version__,
        "status": "running",
        "docs": "/docs",
        "endpoints": {
            "Extract": "POST /api/extract",
            "Analyze": "POST /api/analyze",
            "Health": "GET /api/health",
        }
    }


@app.get("/api/health", tags=["Info"])
async def health_check():
    """Health check endpoint for monitoring"""
    return {
        "status": "healthy",
        "service": "Call Scoring Engine",
        "version": __version__,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "providers": list(SUPPORTED_PROVIDERS),
        "timeout_seconds": ANALYSIS_TIMEOUT_SECONDS,
    }


# =============================================================================
# Pipeline Endpoints
# =============================================================================

@app.post("/api/extract", tags=["Pipeline"])
async def extract_calls(
    file: Optional[UploadFile] = File(None),
    api_key: Optional[str] = Form(None, alias="apiKey"),
    model: str = Form("claude"),
):
    """
    Parse, triage and extract contact info without scoring.

    Streams `status`, `bronze_complete`, `extract_progress`,
    `extract_complete` and finally `complete` (or `error`).
    """
    prepared, error = await _prepare_run(file, api_key, model)
    if error:
        return error
    engine, data = prepared

    return _sse_response(stream_pipeline(
        lambda emit: engine.run_extraction(data, emit),
        ANALYSIS_TIMEOUT_SECONDS,
    ))


@app.post("/api/analyze", tags=["Pipeline"])
async def analyze_calls(
    file: Optional[UploadFile] = File(None),
    api_key: Optional[str] = Form(None, alias="apiKey"),
    model: str = Form("claude"),
):
    """
    Full Bronze -> Silver -> Gold analysis.

    Streams Silver progress, then `start`, one `call_complete` or
    `call_error` per scored call, and finally `complete` (or `error`).
    `complete.partial` is true when some calls could not be scored.
    """
    prepared, error = await _prepare_run(file, api_key, model)
    if error:
        return error
    engine, data = prepared

    return _sse_response(stream_pipeline(
        lambda emit: engine.run_analysis(data, emit),
        ANALYSIS_TIMEOUT_SECONDS,
    ))


# =============================================================================
# Error Handlers
# =============================================================================

@app.exception_handler(Exception)
async def global_exception_handler(request, exc):
    return JSONResponse(
        status_code=500,
        content={
            "error": "Internal server error",
            "detail": str(exc),
            "type": type(exc).__name__,
        }
    )
