"""Error taxonomy for the embedding service.

Every per-request failure is an ``EmbeddingServiceError`` carrying the HTTP
status the route layer answers with. ``FatalInitFailure`` is raised only
during startup and is never converted into a response.
"""


class EmbeddingServiceError(Exception):
    """Base class for errors surfaced to API callers."""

    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def with_context(self, prefix: str) -> "EmbeddingServiceError":
        """Return a copy of this error whose message is prefixed with ``prefix``."""
        return type(self)(f"{prefix}: {self.message}")


class InvalidInputError(EmbeddingServiceError):
    """Malformed, missing or empty request payload. Never retried."""

    status_code = 400


class NotReadyError(EmbeddingServiceError):
    """Model is still loading; the caller should back off and retry."""

    status_code = 503

    def __init__(self, message: str = "Model is still loading, please try again"):
        super().__init__(message)


class InferenceFailure(EmbeddingServiceError):
    """Unexpected failure during tokenization, forward pass or pooling."""

    status_code = 500


class DegenerateEmbeddingError(InferenceFailure):
    """Pooled vector has zero or non-finite norm and cannot be normalized."""


class FatalInitFailure(Exception):
    """The model could not be loaded; the process must not start serving."""
