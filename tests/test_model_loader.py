"""Tests for the one-shot model loader and its retry policy."""

import pytest

from app.encoders.model_loader import ModelLoader
from app.errors import FatalInitFailure
from app.pipelines.retry_handler import RetryConfig, RetryHandler
from tests.conftest import DIMENSION, TEST_MODEL, FakeSentenceTransformer


class FlakyFactory:
    """Raises ``errors`` in order, then returns a fake model."""

    def __init__(self, *errors, dimension=DIMENSION):
        self.errors = list(errors)
        self.dimension = dimension
        self.calls = []

    def __call__(self, model_name, device=None, cache_folder=None):
        self.calls.append({"model_name": model_name, "device": device, "cache_folder": cache_folder})
        if self.errors:
            raise self.errors.pop(0)
        return FakeSentenceTransformer(model_name, device, cache_folder, dimension=self.dimension)


@pytest.mark.asyncio
async def test_initialize_returns_handle(config):
    factory = FlakyFactory()
    config.ml_embedding_cache_dir = "/tmp/test-cache"

    handle = await ModelLoader(config, model_factory=factory).initialize()

    assert handle.name == TEST_MODEL
    assert handle.dimension == DIMENSION
    assert handle.device == "cpu"
    assert handle.max_length == 256
    assert handle.load_seconds >= 0
    assert isinstance(handle.model, FakeSentenceTransformer)
    assert factory.calls == [
        {"model_name": TEST_MODEL, "device": "cpu", "cache_folder": "/tmp/test-cache"}
    ]


@pytest.mark.asyncio
async def test_initialize_runs_once(config):
    loader = ModelLoader(config, model_factory=FlakyFactory())
    await loader.initialize()
    with pytest.raises(RuntimeError):
        await loader.initialize()


@pytest.mark.asyncio
async def test_malformed_model_is_fatal_without_retry(config):
    config.ml_embedding_load_attempts = 3
    factory = FlakyFactory(ValueError("unsupported model format"))

    with pytest.raises(FatalInitFailure) as exc_info:
        await ModelLoader(config, model_factory=factory).initialize()

    assert "unsupported model format" in str(exc_info.value)
    assert len(factory.calls) == 1


@pytest.mark.asyncio
async def test_transient_errors_are_retried(config):
    config.ml_embedding_load_attempts = 3
    factory = FlakyFactory(ConnectionError("reset"), TimeoutError("slow hub"))

    handle = await ModelLoader(config, model_factory=factory).initialize()

    assert handle.dimension == DIMENSION
    assert len(factory.calls) == 3


@pytest.mark.asyncio
async def test_exhausted_retries_are_fatal(config):
    config.ml_embedding_load_attempts = 2
    factory = FlakyFactory(OSError("no network"), OSError("still no network"))

    with pytest.raises(FatalInitFailure):
        await ModelLoader(config, model_factory=factory).initialize()

    assert len(factory.calls) == 2


@pytest.mark.asyncio
async def test_model_without_dimension_is_fatal(config):
    with pytest.raises(FatalInitFailure):
        await ModelLoader(config, model_factory=FlakyFactory(dimension=0)).initialize()


@pytest.mark.asyncio
async def test_loaded_dimension_wins_over_configuration(config):
    config.ml_embedding_dimension = 768
    handle = await ModelLoader(config, model_factory=FlakyFactory()).initialize()
    assert handle.dimension == DIMENSION


@pytest.mark.asyncio
async def test_retry_handler_does_not_retry_unlisted_errors():
    calls = []

    async def fails():
        calls.append(1)
        raise KeyError("nope")

    handler = RetryHandler(RetryConfig(max_attempts=3, base_delay=0.0, retryable_exceptions=(OSError,)))
    with pytest.raises(KeyError):
        await handler.execute_with_retry(fails, operation_name="test")
    assert len(calls) == 1


def test_retry_delay_grows_and_caps():
    handler = RetryHandler(RetryConfig(base_delay=1.0, max_delay=5.0, jitter=False))
    assert [handler._calculate_delay(a) for a in range(4)] == [1.0, 2.0, 4.0, 5.0]
