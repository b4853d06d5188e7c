"""Embedding service main application."""

import time
from contextlib import asynccontextmanager
from typing import Any, Callable, Optional

import uvicorn
from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sentence_transformers import SentenceTransformer
import structlog

from .api.routes import router as api_router
from .api.service import EmbeddingService
from .encoders.embedding_engine import EmbeddingEngine
from .encoders.model_loader import ModelLoader
from .errors import FatalInitFailure
from .runtime.metrics import get_metrics_collector
from libs.common.config import EmbeddingConfig
from libs.common.logging import configure_logging

logger = structlog.get_logger("embedding_service")

SERVICE_NAME = "embedding-service"


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager.

    Loads the model before the server accepts traffic. A load failure
    propagates out of startup, so uvicorn exits instead of serving.
    """
    config: EmbeddingConfig = app.state.config
    configure_logging(SERVICE_NAME, config.ml_log_level, config.ml_log_format)
    app.state.startup_time = time.time()

    logger.info("Starting embedding service", model_name=config.ml_embedding_model)

    try:
        handle = await app.state.model_loader.initialize()
    except FatalInitFailure as e:
        logger.critical("Failed to load model, exiting", error=str(e))
        raise

    app.state.embedding_engine.attach(handle)
    app.state.metrics_collector.set_model_loaded(handle.name, True)

    logger.info(
        "Embedding service started successfully",
        model_name=handle.name,
        dimensions=handle.dimension,
        port=config.ml_embedding_port
    )

    yield

    logger.info("Embedding service shutdown complete")


def create_app(
    config: Optional[EmbeddingConfig] = None,
    model_factory: Callable[..., Any] = SentenceTransformer
) -> FastAPI:
    """Build the FastAPI application and its process-wide state.

    State is created here, before the lifespan runs, so requests that reach
    the app while the model is loading are answered with NotReady.
    """
    config = config or EmbeddingConfig()

    app = FastAPI(
        title="Embedding Service",
        description="Sentence embedding generation for semantic similarity search",
        version="0.1.0",
        lifespan=lifespan
    )

    metrics_collector = get_metrics_collector(SERVICE_NAME)
    engine = EmbeddingEngine(config.ml_max_concurrent_inferences, metrics_collector)

    app.state.config = config
    app.state.startup_time = time.time()
    app.state.metrics_collector = metrics_collector
    app.state.embedding_engine = engine
    app.state.embedding_service = EmbeddingService(engine, config, metrics_collector=metrics_collector)
    app.state.model_loader = ModelLoader(config, model_factory=model_factory)
    metrics_collector.set_model_loaded(config.ml_embedding_model, False)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(api_router)

    @app.middleware("http")
    async def add_process_time_header(request: Request, call_next):
        """Add processing time header to responses."""
        start_time = time.time()
        response = await call_next(request)
        process_time = time.time() - start_time
        response.headers["X-Process-Time"] = str(process_time)
        return response

    @app.middleware("http")
    async def metrics_middleware(request: Request, call_next):
        """Collect metrics for HTTP requests."""
        start_time = time.time()

        try:
            response = await call_next(request)
            status_code = response.status_code
        except Exception as e:
            logger.error("Unhandled request error", path=request.url.path, error=str(e))
            status_code = 500
            response = JSONResponse(
                status_code=500,
                content={"error": "Internal server error", "details": str(e)}
            )

        duration = time.time() - start_time
        app.state.metrics_collector.record_http_request(
            method=request.method,
            endpoint=request.url.path,
            status=status_code,
            duration=duration
        )

        return response

    @app.get("/metrics")
    async def metrics():
        """Prometheus metrics endpoint."""
        metrics_data = app.state.metrics_collector.get_metrics()
        return Response(content=metrics_data, media_type="text/plain")

    @app.get("/live")
    async def liveness():
        """Liveness probe. Returns quickly if process is responsive."""
        return {
            "status": "alive",
            "service": SERVICE_NAME,
            "uptime_seconds": time.time() - app.state.startup_time
        }

    @app.get("/ready")
    async def readiness():
        """Readiness probe. 503 until the model is attached."""
        engine: EmbeddingEngine = app.state.embedding_engine
        if not engine.is_ready:
            return JSONResponse(
                status_code=503,
                content={"status": "not_ready", "service": SERVICE_NAME}
            )
        return {
            "status": "ready",
            "service": SERVICE_NAME,
            "model": engine.handle.name,
            "device": engine.handle.device
        }

    @app.get("/")
    async def root():
        """Root endpoint."""
        return {
            "service": SERVICE_NAME,
            "version": "0.1.0",
            "status": "running",
            "endpoints": {
                "health": "/health",
                "model": "/model",
                "embed": "/embed",
                "batch": "/embed/batch",
                "metrics": "/metrics"
            },
            "probes": {
                "live": "/live",
                "ready": "/ready"
            }
        }

    return app


app = create_app()


def run() -> None:
    """Console entrypoint: serve ``app`` with uvicorn on the configured port."""
    config: EmbeddingConfig = app.state.config
    uvicorn.run(
        app,
        host=config.ml_embedding_host,
        port=config.ml_embedding_port,
        lifespan="on",
        log_level=config.ml_log_level.lower()
    )


if __name__ == "__main__":
    run()
