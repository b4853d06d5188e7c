"""API routes for embedding service."""

from typing import Any, List
from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field
import structlog

from .service import EmbeddingService
from ..errors import EmbeddingServiceError, InferenceFailure
from ..runtime.metrics import MetricsCollector

logger = structlog.get_logger("embedding_service.api")

router = APIRouter()


class HealthResponse(BaseModel):
    """Response model for the health endpoint."""
    status: str = Field(..., description="ready or loading")
    model: str = Field(..., description="Configured model identifier")
    timestamp: str = Field(..., description="ISO8601 UTC timestamp")


class ModelInfoResponse(BaseModel):
    """Response model for the model endpoint."""
    name: str = Field(..., description="Model identifier")
    dimensions: int = Field(..., description="Embedding dimension")
    description: str = Field(..., description="Human readable model description")
    status: str = Field(..., description="loaded or loading")


class EmbedResponse(BaseModel):
    """Response model for single embedding endpoint."""
    embedding: List[float] = Field(..., description="Unit-norm embedding vector")
    dimensions: int = Field(..., description="Vector length")
    duration_ms: int = Field(..., description="Embedding computation time in milliseconds")
    model: str = Field(..., description="Model identifier")


class BatchEmbedResponse(BaseModel):
    """Response model for batch embedding endpoint."""
    embeddings: List[List[float]] = Field(..., description="Vectors in input order")
    count: int = Field(..., description="Number of embeddings generated")
    dimensions: int = Field(..., description="Vector length shared by all embeddings")
    duration_ms: int = Field(..., description="Embedding computation time in milliseconds")
    model: str = Field(..., description="Model identifier")


def get_embedding_service(request: Request) -> EmbeddingService:
    """Get the service facade from application state."""
    return request.app.state.embedding_service


def get_metrics(request: Request) -> MetricsCollector:
    """Get metrics collector from application state."""
    return request.app.state.metrics_collector


async def read_json_payload(request: Request) -> Any:
    """Decode the request body; undecodable bodies become ``None``.

    The facade rejects ``None`` as invalid input, so a broken body gets the
    same 400 answer as a missing field.
    """
    body = await request.body()
    if not body:
        return None
    try:
        return await request.json()
    except ValueError as e:
        logger.warning("Request body is not valid JSON", path=request.url.path, error=str(e))
        return None


def error_response(
    error: Exception,
    failure_message: str,
    operation: str,
    metrics_collector: MetricsCollector
) -> JSONResponse:
    """Convert an exception raised below the facade into a JSON error body."""
    metrics_collector.record_embedding_failure(operation, type(error).__name__)

    if isinstance(error, EmbeddingServiceError) and not isinstance(error, InferenceFailure):
        return JSONResponse(status_code=error.status_code, content={"error": error.message})

    logger.error(failure_message, operation=operation, error=str(error))
    return JSONResponse(
        status_code=500,
        content={"error": failure_message, "details": str(error)}
    )


@router.get("/health", response_model=HealthResponse)
async def health(service: EmbeddingService = Depends(get_embedding_service)):
    """Report readiness; always 200."""
    return service.readiness()


@router.get("/model", response_model=ModelInfoResponse)
async def model_info(service: EmbeddingService = Depends(get_embedding_service)):
    """Describe the served model; always 200."""
    return service.model_info()


@router.post("/embed", response_model=EmbedResponse)
async def embed(
    request: Request,
    service: EmbeddingService = Depends(get_embedding_service),
    metrics_collector: MetricsCollector = Depends(get_metrics)
):
    """Embed a single text."""
    try:
        payload = await read_json_payload(request)
        return await service.embed(payload)
    except Exception as e:
        return error_response(e, "Failed to generate embedding", "single", metrics_collector)


@router.post("/embed/batch", response_model=BatchEmbedResponse)
async def embed_batch(
    request: Request,
    service: EmbeddingService = Depends(get_embedding_service),
    metrics_collector: MetricsCollector = Depends(get_metrics)
):
    """Embed a list of texts; output order matches input order."""
    try:
        payload = await read_json_payload(request)
        return await service.embed_batch(payload)
    except Exception as e:
        return error_response(e, "Failed to generate embeddings", "batch", metrics_collector)
