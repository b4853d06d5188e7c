"""API contract tests.

These tests validate that public endpoints conform to agreed request/response
schemas and remain stable across releases. They focus on shape and semantics
rather than specific vector values.
"""
