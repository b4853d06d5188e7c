"""Model loader for the embedding service.

Resolves the configured SentenceTransformer model, places it on the selected
device and wraps it in an immutable ``ModelHandle``. The loader runs exactly
once per process, from the application lifespan; any failure is reported as
``FatalInitFailure`` so the process exits instead of serving half-initialized.
"""

import asyncio
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Optional
from sentence_transformers import SentenceTransformer
import structlog

from libs.common.config import EmbeddingConfig
from libs.common.logging import log_performance
from ..batching.gpu_detector import detect_optimal_device
from ..errors import FatalInitFailure
from ..pipelines.retry_handler import create_model_load_retry_handler

logger = structlog.get_logger("embedding_service.model_loader")


@dataclass(frozen=True)
class ModelHandle:
    """Loaded embedding model plus the metadata fixed at load time."""

    name: str
    dimension: int
    device: str
    max_length: Optional[int]
    loaded_at: float
    load_seconds: float
    model: Any = field(repr=False, compare=False)


class ModelLoader:
    """One-shot loader for the service's single embedding model.

    Parameters
    - config: ``EmbeddingConfig`` with model id, cache dir and retry knobs
    - model_factory: callable building the model; defaults to
      ``SentenceTransformer`` and is swapped out in tests
    """

    def __init__(
        self,
        config: EmbeddingConfig,
        model_factory: Callable[..., Any] = SentenceTransformer
    ):
        self.config = config
        self.model_factory = model_factory
        self.retry_handler = create_model_load_retry_handler(
            max_attempts=config.ml_embedding_load_attempts,
            base_delay=config.ml_embedding_load_retry_delay,
        )
        self._invoked = False

    async def initialize(self) -> ModelHandle:
        """Load the configured model and return its handle.

        Raises
        - ``FatalInitFailure`` when the model cannot be acquired
        - ``RuntimeError`` when called more than once
        """
        if self._invoked:
            raise RuntimeError("Model loader has already been invoked")
        self._invoked = True

        model_name = self.config.ml_embedding_model
        device = detect_optimal_device(self.config.ml_gpu_preference)

        logger.info(
            "Loading embedding model",
            model_name=model_name,
            device=device,
            cache_dir=self.config.ml_embedding_cache_dir
        )
        start_time = time.time()

        try:
            model = await self.retry_handler.execute_with_retry(
                self._acquire,
                model_name,
                device,
                operation_name=f"load_model_{model_name}"
            )
            dimension = model.get_sentence_embedding_dimension()
        except Exception as e:
            logger.error("Failed to load embedding model", model_name=model_name, error=str(e))
            raise FatalInitFailure(f"Failed to load model {model_name}: {e}") from e

        if not isinstance(dimension, int) or dimension <= 0:
            raise FatalInitFailure(
                f"Model {model_name} reports no usable embedding dimension: {dimension!r}"
            )

        if dimension != self.config.ml_embedding_dimension:
            logger.warning(
                "Loaded model dimension differs from configuration",
                model_name=model_name,
                configured=self.config.ml_embedding_dimension,
                loaded=dimension
            )

        load_seconds = time.time() - start_time
        handle = ModelHandle(
            name=model_name,
            dimension=dimension,
            device=device,
            max_length=getattr(model, "max_seq_length", None),
            loaded_at=time.time(),
            load_seconds=load_seconds,
            model=model,
        )

        log_performance(
            "load_model",
            load_seconds * 1000,
            model_name=model_name,
            device=device,
            dimension=dimension
        )
        return handle

    async def _acquire(self, model_name: str, device: str) -> Any:
        """Build the model in a worker thread so the event loop stays free."""
        return await asyncio.to_thread(
            self.model_factory,
            model_name,
            device=device,
            cache_folder=self.config.ml_embedding_cache_dir,
        )
