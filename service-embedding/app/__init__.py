"""Embedding service package.

Layout:
- ``api``: FastAPI routes and the ``EmbeddingService`` facade.
- ``encoders``: ``ModelLoader`` and ``EmbeddingEngine`` (text -> unit vector).
- ``batching``: order-preserving batch fan-out and device detection.
- ``pipelines``: retry/backoff used while acquiring the model.
- ``runtime``: service-local metrics.

Import convenience:
- from app.main import create_app
"""
