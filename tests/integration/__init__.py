"""Integration tests that need the real embedding model."""
