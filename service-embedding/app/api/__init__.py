"""API subpackage for the embedding service.

Contains the FastAPI router and the service facade behind it:
- Readiness (``/health``) and model description (``/model``)
- Single text embedding (``/embed``)
- Ordered batch embedding (``/embed/batch``)
"""
