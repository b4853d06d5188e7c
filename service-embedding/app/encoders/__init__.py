"""Embedding encoders.

- ``model_loader``: one-shot acquisition of the configured model.
- ``embedding_engine``: pooling and normalization around the loaded model.

Heavy ML imports stay inside the implementation modules.
"""
