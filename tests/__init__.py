"""Tests for the embedding service.

Unit and API tests run against a deterministic fake model (see
``conftest.py``). Real-model checks live under ``integration``; HTTP contract
checks under ``contract``; the Locust scenario under ``load``.
"""
