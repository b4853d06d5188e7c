"""Embedding processing pipelines.

Currently holds the retry/backoff helper used to acquire the model at startup.
"""
