"""Common utilities shared across the service and its scripts.

Includes:
- ``config``: Pydantic-based service configuration from environment variables.
- ``logging``: structured logging setup with structlog.
- ``metrics``: Prometheus metrics helpers.

Import pattern:
- from libs.common.config import EmbeddingConfig
- from libs.common.logging import configure_logging
"""
