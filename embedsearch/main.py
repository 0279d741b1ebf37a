"""
EmbedSearch API

FastAPI application entry point for the embedding retrieval service.
"""

import logging
import sys
from contextlib import asynccontextmanager
from typing import Any, Optional

import structlog
from fastapi import Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.concurrency import run_in_threadpool

from embedsearch.api.dependencies import get_vector_store
from embedsearch.api.embeddings import router as embeddings_router
from embedsearch.cache.embedding_cache import EmbeddingCache, create_redis_client
from embedsearch.config import settings
from embedsearch.db.session import create_db_engine, create_session_factory, init_db
from embedsearch.errors import EmbedSearchError, StorageError
from embedsearch.llm.answer import AnswerGenerator
from embedsearch.search.embeddings import EmbeddingClient
from embedsearch.store.vector_store import VectorStore


# =============================================================================
# Structlog Configuration
# =============================================================================
SERVICE_NAME = "embedsearch"


def _add_service_name(logger, method_name, event_dict):
    event_dict.setdefault("service", SERVICE_NAME)
    return event_dict


def configure_logging(level: str = "INFO") -> None:
    """
    Configure structlog for JSON logging with ISO timestamps.

    Every record carries ``service="embedsearch"`` so the logs can be told
    apart when shipped alongside other services.

    All logs are output as JSON with consistent fields:
    - timestamp: ISO 8601 format
    - level: log level (info, warning, error, etc.)
    - event: log message
    - Additional context fields (endpoint, chunk_id, etc.)
    """
    shared_processors: list[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.stdlib.ExtraAdder(),
        _add_service_name,
    ]

    structlog.configure(
        processors=shared_processors + [
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=shared_processors,
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ],
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.handlers = [handler]
    root_logger.setLevel(level.upper())

    # Reduce noise from third-party libraries
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)


# =============================================================================
# Sentry Configuration
# =============================================================================
def _drop_client_errors(event: dict, hint: dict) -> Optional[dict]:
    """
    Sentry ``before_send`` hook: client errors (4xx domain errors) are
    expected traffic, not incidents. Model and storage failures are kept.
    """
    exc_info = hint.get("exc_info")
    if exc_info and isinstance(exc_info[1], EmbedSearchError) and exc_info[1].status_code < 500:
        return None
    return event


def configure_sentry(dsn: Optional[str], debug: bool = False) -> None:
    """
    Initialize Sentry error tracking if a DSN is configured.

    The ``sentry`` extra must be installed; without it a warning is logged
    and the service runs untracked.
    """
    if not dsn:
        return

    logger = structlog.get_logger()
    try:
        import sentry_sdk
        from sentry_sdk.integrations.fastapi import FastApiIntegration
        from sentry_sdk.integrations.sqlalchemy import SqlalchemyIntegration
    except ImportError:
        logger.warning("sentry_sdk_not_installed", hint="pip install embedsearch[sentry]")
        return

    sentry_sdk.init(
        dsn=dsn,
        integrations=[
            FastApiIntegration(transaction_style="endpoint"),
            SqlalchemyIntegration(),
        ],
        traces_sample_rate=0.1,
        environment="development" if debug else "production",
        before_send=_drop_client_errors,
    )
    logger.info("sentry_initialized", dsn_prefix=dsn[:20] + "...")


# =============================================================================
# Application Lifespan
# =============================================================================
@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Create the process-wide resources on startup and release them on shutdown:
    the datastore engine, the optional Redis cache, and the model clients.
    """
    # Startup
    configure_logging(settings.LOG_LEVEL)
    configure_sentry(settings.SENTRY_DSN, debug=settings.DEBUG)

    logger = structlog.get_logger()

    engine = create_db_engine(settings.DATABASE_URL, echo=settings.DB_ECHO)
    init_db(engine)
    app.state.engine = engine
    app.state.session_factory = create_session_factory(engine)

    cache = None
    app.state.redis = None
    if settings.EMBEDDING_CACHE_ENABLED:
        app.state.redis = create_redis_client(settings.REDIS_URL)
        cache = EmbeddingCache(app.state.redis, settings.EMBEDDING_CACHE_TTL_SECONDS)

    app.state.embedder = EmbeddingClient(settings, cache=cache)
    app.state.generator = AnswerGenerator(settings)

    logger.info(
        "application_startup",
        app_name="EmbedSearch API",
        database=engine.url.render_as_string(hide_password=True),
        embedding_model=settings.EMBEDDING_MODEL,
        embedding_cache=cache is not None,
        debug=settings.DEBUG,
    )

    yield

    # Shutdown
    await app.state.embedder.aclose()
    await app.state.generator.aclose()
    if app.state.redis is not None:
        await app.state.redis.aclose()
    engine.dispose()
    logger.info("application_shutdown")


# =============================================================================
# FastAPI Application
# =============================================================================
app = FastAPI(
    title="EmbedSearch API",
    description="Embedding storage, similarity search and retrieval-augmented answers",
    version="0.1.0",
    lifespan=lifespan,
    docs_url="/docs" if settings.DEBUG else None,
    redoc_url="/redoc" if settings.DEBUG else None,
)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Invalid query/path parameters are client errors: 400, not 422."""
    errors = exc.errors()
    reason = "; ".join(
        f"{'.'.join(str(part) for part in err.get('loc', ()))}: {err.get('msg')}"
        for err in errors
    )
    structlog.get_logger().warning("request_validation_failed", path=request.url.path, reason=reason)
    return JSONResponse(status_code=400, content={"detail": reason or "Invalid request"})


# =============================================================================
# Health Check Endpoint
# =============================================================================
@app.get("/health", tags=["Health"])
async def health_check(store: VectorStore = Depends(get_vector_store)) -> JSONResponse:
    """
    Health check endpoint for load balancers and monitoring.

    Returns:
        JSON response with status "ok" plus the stored chunk count and
        the fixed vector dimension (null while the store is empty).
    """
    try:
        chunks = await run_in_threadpool(store.count)
        dimension = await run_in_threadpool(store.dimension)
    except StorageError as exc:
        structlog.get_logger().error("health_check_failed", error=exc.message)
        return JSONResponse(content={"status": "degraded"}, status_code=503)

    return JSONResponse(
        content={"status": "ok", "chunks": chunks, "dimension": dimension},
        status_code=200,
    )


# =============================================================================
# API Routers
# =============================================================================
app.include_router(embeddings_router)
