"""Embedding engine: text in, unit-length vector out.

The engine owns the process' single ``ModelHandle``. Each call tokenizes the
text and runs the forward pass through the SentenceTransformer, mean-pools the
per-token vectors and L2-normalizes the result, so cosine similarity between
two outputs reduces to a dot product.

``embed`` is synchronous and CPU/GPU bound. Async callers go through
``aembed``, which runs it in a worker thread behind a semaphore that caps the
number of concurrent inferences against the shared model.
"""

import asyncio
from contextlib import nullcontext
from enum import Enum
from typing import Any, List, Optional
import numpy as np
import structlog

from libs.common.metrics import MetricsCollector
from .model_loader import ModelHandle
from ..errors import (
    DegenerateEmbeddingError,
    InferenceFailure,
    InvalidInputError,
    NotReadyError,
)

logger = structlog.get_logger("embedding_service.embedding_engine")


class ReadinessState(str, Enum):
    """Lifecycle of the engine. Moves from LOADING to READY once."""

    LOADING = "loading"
    READY = "ready"


def _to_numpy(values: Any) -> np.ndarray:
    if hasattr(values, "detach"):
        values = values.detach().cpu().float().numpy()
    return np.asarray(values, dtype=np.float64)


def mean_pool(token_embeddings: Any) -> np.ndarray:
    """Average a ``(tokens, dim)`` matrix over the token axis."""
    matrix = _to_numpy(token_embeddings)
    if matrix.ndim != 2:
        raise InferenceFailure(f"Expected a (tokens, dim) matrix, got shape {matrix.shape}")
    if matrix.shape[0] == 0:
        raise DegenerateEmbeddingError("Model produced no tokens for the input text")
    return matrix.mean(axis=0)


def l2_normalize(vector: np.ndarray) -> np.ndarray:
    """Scale ``vector`` to unit Euclidean length.

    A zero or non-finite norm cannot be normalized and raises
    ``DegenerateEmbeddingError`` instead of producing NaNs.
    """
    norm = float(np.linalg.norm(vector))
    if not np.isfinite(norm) or norm == 0.0:
        raise DegenerateEmbeddingError(f"Cannot normalize embedding with norm {norm}")
    return vector / norm


def validate_text(text: Any) -> str:
    if not isinstance(text, str) or not text:
        raise InvalidInputError("Text is required and must be a non-empty string")
    return text


class EmbeddingEngine:
    """Wraps the loaded model and produces normalized sentence embeddings.

    Parameters
    - max_concurrency: upper bound on inferences running at the same time
    - metrics_collector: optional collector for the in-flight gauge
    """

    def __init__(
        self,
        max_concurrency: int = 4,
        metrics_collector: Optional[MetricsCollector] = None
    ):
        self.max_concurrency = max_concurrency
        self.metrics_collector = metrics_collector
        self._handle: Optional[ModelHandle] = None
        self._semaphore: Optional[asyncio.Semaphore] = None

    def attach(self, handle: ModelHandle) -> None:
        """Take ownership of the loaded model and become ready.

        May only be called once; the handle is never swapped.
        """
        if self._handle is not None:
            raise RuntimeError("Embedding engine already has a model attached")
        self._handle = handle
        logger.info(
            "Embedding engine ready",
            model_name=handle.name,
            dimension=handle.dimension,
            device=handle.device
        )

    @property
    def status(self) -> ReadinessState:
        return ReadinessState.READY if self._handle is not None else ReadinessState.LOADING

    @property
    def is_ready(self) -> bool:
        return self._handle is not None

    @property
    def handle(self) -> Optional[ModelHandle]:
        return self._handle

    @property
    def dimensions(self) -> Optional[int]:
        return self._handle.dimension if self._handle else None

    def _require_handle(self) -> ModelHandle:
        if self._handle is None:
            raise NotReadyError()
        return self._handle

    def embed(self, text: str) -> List[float]:
        """Embed one text into a unit-norm vector of the model's dimensionality.

        Raises
        - ``InvalidInputError`` for anything but a non-empty string
        - ``NotReadyError`` before a model is attached
        - ``InferenceFailure`` (or ``DegenerateEmbeddingError``) on model errors
        """
        validate_text(text)
        handle = self._require_handle()

        try:
            token_embeddings = handle.model.encode(
                text,
                output_value="token_embeddings",
                show_progress_bar=False,
            )
        except Exception as e:
            logger.error("Model forward pass failed", model_name=handle.name, error=str(e))
            raise InferenceFailure(f"Model inference failed: {e}") from e

        vector = l2_normalize(mean_pool(token_embeddings))

        if vector.shape[0] != handle.dimension:
            raise InferenceFailure(
                f"Embedding has {vector.shape[0]} dimensions, model declares {handle.dimension}"
            )

        return vector.tolist()

    async def aembed(self, text: str) -> List[float]:
        """Async ``embed``: bounded concurrency, inference off the event loop."""
        validate_text(text)
        self._require_handle()

        if self._semaphore is None:
            self._semaphore = asyncio.Semaphore(self.max_concurrency)

        in_flight = (
            self.metrics_collector.inferences_in_flight.track_inprogress()
            if self.metrics_collector else nullcontext()
        )
        async with self._semaphore:
            with in_flight:
                # A worker thread cannot be interrupted; hold the slot until it returns.
                future = asyncio.ensure_future(asyncio.to_thread(self.embed, text))
                try:
                    return await asyncio.shield(future)
                except asyncio.CancelledError:
                    await asyncio.wait([future])
                    raise
