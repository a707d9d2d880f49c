"""FastAPI application setup for the retrieval service."""

from __future__ import annotations

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from docqa.api.dependencies import (
    get_app_settings,
    get_embedding_provider,
    get_reranking_orchestrator,
    get_retrieval_orchestrator,
    get_vector_store,
    load_configured_corpus,
)
from docqa.api.routes_admin import router as admin_router
from docqa.api.routes_reranking import router as reranking_router
from docqa.api.routes_retrieval import router as retrieval_router
from docqa.core.errors import (
    ConfigurationError,
    ProviderError,
    RateLimitedError,
    RetrievalError,
    StageFailedError,
    ValidationError,
)
from docqa.core.logging import configure_logging, get_logger, log_context

configure_logging()
logger = get_logger(__name__)

app = FastAPI(
    title="DocQA Retrieval",
    version="0.1.0",
    docs_url="/docs",
    redoc_url="/redoc",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=get_app_settings().cors_origins,
    allow_credentials=True,
    allow_methods=['*'],
    allow_headers=['*'],
)

app.include_router(retrieval_router, prefix="/retrieval", tags=["retrieval"])
app.include_router(reranking_router, prefix="/reranking", tags=["reranking"])
app.include_router(admin_router, prefix="", tags=["admin"])


def _status_for(exc: RetrievalError) -> int:
    if isinstance(exc, ValidationError):
        return 400
    if isinstance(exc, ConfigurationError):
        return 503
    if isinstance(exc, StageFailedError):
        return 429 if isinstance(exc.cause, RateLimitedError) else 502
    if isinstance(exc, RateLimitedError):
        return 429
    if isinstance(exc, ProviderError):
        return 502
    return 500


@app.exception_handler(RetrievalError)
async def retrieval_error_handler(request: Request, exc: RetrievalError) -> JSONResponse:
    status_code = _status_for(exc)
    body: dict[str, object] = {
        "success": False,
        "error": exc.__class__.__name__,
        "detail": str(exc),
    }
    if isinstance(exc, StageFailedError):
        body["stage"] = exc.stage
    log = logger.warning if status_code < 500 else logger.error
    log(
        "%s %s failed: %s",
        request.method,
        request.url.path,
        exc,
        extra=log_context(status=status_code, error=exc.__class__.__name__, stage=body.get("stage")),
    )
    return JSONResponse(status_code=status_code, content=body)


@app.on_event("startup")
async def startup() -> None:
    """Warm up core singletons on startup."""
    get_app_settings()
    get_embedding_provider()
    get_vector_store()
    get_reranking_orchestrator()
    get_retrieval_orchestrator()
    indexed = await load_configured_corpus()
    if indexed:
        logger.info("Loaded %d chunks from configured corpus", indexed)


@app.get("/health", tags=["admin"])
def health() -> dict[str, bool]:
    """Simple liveness check."""
    return {"ok": True}
