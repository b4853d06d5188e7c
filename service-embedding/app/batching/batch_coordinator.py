"""Batch coordinator: fan texts out to the engine and join them in order."""

import asyncio
from dataclasses import dataclass
from typing import Any, List, Sequence
import structlog

from ..encoders.embedding_engine import EmbeddingEngine, validate_text
from ..errors import EmbeddingServiceError, InferenceFailure, InvalidInputError, NotReadyError

logger = structlog.get_logger("embedding_service.batch_coordinator")


@dataclass
class BatchResult:
    """Vectors for a batch, ``embeddings[i]`` belonging to ``texts[i]``."""

    embeddings: List[List[float]]
    count: int
    dimensions: int


class BatchCoordinator:
    """Dispatches one engine call per text and aggregates fail-fast.

    Every element becomes its own task; completion order is irrelevant
    because each result is written back to the index it was dispatched from.
    The first failing element aborts the batch: outstanding tasks are
    cancelled and the error, prefixed with the element's index, is raised.
    """

    def __init__(self, engine: EmbeddingEngine):
        self.engine = engine

    async def embed_batch(self, texts: Sequence[Any]) -> BatchResult:
        if not isinstance(texts, (list, tuple)) or len(texts) == 0:
            raise InvalidInputError("texts must be a non-empty array")

        for index, text in enumerate(texts):
            try:
                validate_text(text)
            except InvalidInputError as e:
                raise e.with_context(f"texts[{index}]") from e

        if not self.engine.is_ready:
            raise NotReadyError()

        embeddings: List[Any] = [None] * len(texts)
        tasks = {
            asyncio.create_task(self.engine.aembed(text)): index
            for index, text in enumerate(texts)
        }

        try:
            done, pending = await asyncio.wait(tasks, return_when=asyncio.FIRST_EXCEPTION)
        except asyncio.CancelledError:
            for task in tasks:
                task.cancel()
            raise

        failures = {tasks[task]: task.exception() for task in done if task.exception() is not None}
        if failures:
            for task in pending:
                task.cancel()
            if pending:
                await asyncio.gather(*pending, return_exceptions=True)

            index = min(failures)
            error = failures[index]
            logger.error(
                "Batch element failed",
                index=index,
                batch_size=len(texts),
                error=str(error)
            )
            if isinstance(error, EmbeddingServiceError):
                raise error.with_context(f"texts[{index}]") from error
            raise InferenceFailure(f"texts[{index}]: {error}") from error

        for task, index in tasks.items():
            embeddings[index] = task.result()

        dimensions = {len(vector) for vector in embeddings}
        if len(dimensions) != 1:
            raise InferenceFailure(f"Batch produced mixed dimensionalities: {sorted(dimensions)}")

        return BatchResult(
            embeddings=embeddings,
            count=len(embeddings),
            dimensions=dimensions.pop(),
        )
