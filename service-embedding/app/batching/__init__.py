"""Batching components for the embedding service.

Key pieces
- ``batch_coordinator``: fans a list of texts out to the engine, one task per
  element, and joins the results back in input order (fail-fast).
- ``gpu_detector``: detects available accelerators and picks the device the
  model is loaded on.
"""
