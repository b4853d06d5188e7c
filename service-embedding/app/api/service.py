"""Service facade consumed by the HTTP routes.

Validates request payloads, gates on readiness and delegates to the engine
or the batch coordinator. Payloads arrive as already-decoded JSON values so
shape errors (wrong type, missing key, empty array) are reported as
``InvalidInputError`` before the engine is touched.
"""

import time
from datetime import datetime, timezone
from typing import Any, Dict, Optional
import structlog

from libs.common.config import EmbeddingConfig
from libs.common.metrics import MetricsCollector
from ..batching.batch_coordinator import BatchCoordinator
from ..encoders.embedding_engine import EmbeddingEngine, ReadinessState
from ..errors import InvalidInputError, NotReadyError

logger = structlog.get_logger("embedding_service.facade")


def _utc_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


class EmbeddingService:
    """Readiness, model-info, single and batch embedding operations."""

    def __init__(
        self,
        engine: EmbeddingEngine,
        config: EmbeddingConfig,
        coordinator: Optional[BatchCoordinator] = None,
        metrics_collector: Optional[MetricsCollector] = None
    ):
        self.engine = engine
        self.config = config
        self.coordinator = coordinator or BatchCoordinator(engine)
        self.metrics_collector = metrics_collector

    @property
    def model_name(self) -> str:
        return self.config.ml_embedding_model

    def readiness(self) -> Dict[str, Any]:
        """Current readiness state. Never fails."""
        return {
            "status": self.engine.status.value,
            "model": self.model_name,
            "timestamp": _utc_timestamp(),
        }

    def model_info(self) -> Dict[str, Any]:
        """Static model description plus load status. Never fails."""
        ready = self.engine.status is ReadinessState.READY
        return {
            "name": self.model_name,
            "dimensions": self.engine.dimensions if ready else self.config.ml_embedding_dimension,
            "description": self.config.ml_embedding_description,
            "status": "loaded" if ready else "loading",
        }

    async def embed(self, payload: Any) -> Dict[str, Any]:
        """Embed ``payload["text"]``.

        Returns ``embedding``, ``dimensions``, ``duration_ms`` and ``model``.
        """
        text = payload.get("text") if isinstance(payload, dict) else None
        if not isinstance(text, str) or not text:
            raise InvalidInputError("Text is required and must be a string")

        if not self.engine.is_ready:
            raise NotReadyError()

        start_time = time.time()
        embedding = await self.engine.aembed(text)
        duration = time.time() - start_time

        if self.metrics_collector:
            self.metrics_collector.record_embedding(self.model_name, "single", duration)

        logger.debug("Embedding generated", dimensions=len(embedding), duration_ms=duration * 1000)

        return {
            "embedding": embedding,
            "dimensions": len(embedding),
            "duration_ms": int(duration * 1000),
            "model": self.model_name,
        }

    async def embed_batch(self, payload: Any) -> Dict[str, Any]:
        """Embed every entry of ``payload["texts"]``, preserving order."""
        texts = payload.get("texts") if isinstance(payload, dict) else None
        if not isinstance(texts, list) or len(texts) == 0:
            raise InvalidInputError("texts must be a non-empty array")

        if not self.engine.is_ready:
            raise NotReadyError()

        start_time = time.time()
        result = await self.coordinator.embed_batch(texts)
        duration = time.time() - start_time

        if self.metrics_collector:
            self.metrics_collector.record_embedding(
                self.model_name, "batch", duration, text_count=result.count
            )

        logger.info(
            "Batch embeddings generated",
            count=result.count,
            duration_ms=duration * 1000
        )

        return {
            "embeddings": result.embeddings,
            "count": result.count,
            "dimensions": result.dimensions,
            "duration_ms": int(duration * 1000),
            "model": self.model_name,
        }
