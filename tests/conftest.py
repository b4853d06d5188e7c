"""Shared fixtures: a deterministic stand-in for SentenceTransformer."""

import hashlib
import sys
import threading
import time
from pathlib import Path

import numpy as np
import pytest

# Add project root and the service directory to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))
sys.path.insert(0, str(project_root / "service-embedding"))

from fastapi.testclient import TestClient

from app.encoders.embedding_engine import EmbeddingEngine
from app.encoders.model_loader import ModelHandle
from app.main import create_app
from libs.common.config import EmbeddingConfig

TEST_MODEL = "test/fake-minilm"
DIMENSION = 384


class FakeSentenceTransformer:
    """Produces one pseudo-random vector per whitespace token.

    Vectors are seeded from the token text, so outputs are deterministic.
    Behaviour hooks:
    - ``delays``: text -> seconds to sleep inside ``encode``
    - ``fail_on``: texts whose forward pass raises ``RuntimeError``
    - ``zero_on``: texts whose token matrix is all zeros
    """

    def __init__(self, model_name=TEST_MODEL, device="cpu", cache_folder=None, dimension=DIMENSION):
        self.model_name = model_name
        self.device = device
        self.cache_folder = cache_folder
        self.dimension = dimension
        self.output_dimension = dimension
        self.max_seq_length = 256
        self.delays = {}
        self.fail_on = set()
        self.zero_on = set()
        self.calls = []
        self.active = 0
        self.max_active = 0
        self._lock = threading.Lock()

    def get_sentence_embedding_dimension(self):
        return self.dimension

    def _token_vector(self, token):
        seed = int(hashlib.sha256(token.encode("utf-8")).hexdigest()[:16], 16)
        return np.random.default_rng(seed).standard_normal(self.output_dimension).astype(np.float32)

    def encode(self, text, output_value="sentence_embedding", show_progress_bar=False):
        assert output_value == "token_embeddings"
        with self._lock:
            self.calls.append(text)
            self.active += 1
            self.max_active = max(self.max_active, self.active)
        try:
            if text in self.delays:
                time.sleep(self.delays[text])
            if text in self.fail_on:
                raise RuntimeError(f"forward pass exploded on {text!r}")
            tokens = text.split() or [text]
            if text in self.zero_on:
                return np.zeros((len(tokens), self.output_dimension), dtype=np.float32)
            return np.stack([self._token_vector(token) for token in tokens])
        finally:
            with self._lock:
                self.active -= 1


def expected_embedding(text, dimension=DIMENSION):
    """Mean-pooled, normalized vector the fake model should yield for ``text``."""
    model = FakeSentenceTransformer(dimension=dimension)
    tokens = np.stack([model._token_vector(t) for t in (text.split() or [text])]).astype(np.float64)
    pooled = tokens.mean(axis=0)
    return pooled / np.linalg.norm(pooled)


@pytest.fixture
def config():
    """Configuration pointing at the fake model with fast, single-shot loading."""
    return EmbeddingConfig(
        ml_embedding_model=TEST_MODEL,
        ml_embedding_dimension=DIMENSION,
        ml_embedding_cache_dir=None,
        ml_embedding_load_attempts=1,
        ml_embedding_load_retry_delay=0.0,
        ml_gpu_preference="cpu",
        ml_log_format="console",
        ml_max_concurrent_inferences=4,
    )


@pytest.fixture
def fake_model():
    return FakeSentenceTransformer()


@pytest.fixture
def model_handle(fake_model):
    return ModelHandle(
        name=TEST_MODEL,
        dimension=DIMENSION,
        device="cpu",
        max_length=fake_model.max_seq_length,
        loaded_at=time.time(),
        load_seconds=0.0,
        model=fake_model,
    )


@pytest.fixture
def engine(model_handle):
    """Ready engine wrapping the fake model."""
    engine = EmbeddingEngine(max_concurrency=4)
    engine.attach(model_handle)
    return engine


@pytest.fixture
def model_factory(fake_model):
    """Factory handed to ``ModelLoader``; always returns ``fake_model``."""
    def factory(model_name, device=None, cache_folder=None):
        fake_model.model_name = model_name
        fake_model.device = device
        fake_model.cache_folder = cache_folder
        return fake_model
    return factory


@pytest.fixture
def client(config, model_factory):
    """Client for an app whose lifespan has loaded the fake model."""
    app = create_app(config, model_factory=model_factory)
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def loading_client(config, model_factory):
    """Client for an app whose lifespan has not run: the model is still loading."""
    app = create_app(config, model_factory=model_factory)
    return TestClient(app)
