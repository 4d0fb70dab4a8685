"""Error taxonomy of the ingestion and retrieval pipeline.

Every error that crosses the API boundary is a PipelineError carrying a stable
machine-readable code, a human message and an HTTP status. Clients raise
ClientRequestError; services translate it into the matching pipeline error.
"""


class PipelineError(Exception):
    """Base class for all typed pipeline errors."""

    status_code: int = 500
    default_code: str = "INTERNAL_ERROR"

    def __init__(
        self,
        message: str,
        code: str | None = None,
        cause: BaseException | None = None,
        transient: bool = False,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code
        self.cause = cause
        self.transient = transient or bool(getattr(cause, "transient", False))

    def to_dict(self, include_details: bool = False) -> dict:
        """Serialise the error for an API response.

        Args:
            include_details (bool): Add the underlying cause (development mode only).

        Returns:
            dict: {"error": ..., "code": ...} plus "details" when requested.
        """
        body = {"error": self.message, "code": self.code}
        if include_details:
            body["details"] = str(self.cause) if self.cause else self.message
        return body


class ValidationError(PipelineError):
    """Caller input was rejected. Never retried."""

    status_code = 400
    default_code = "VALIDATION_FAILED"

    def __init__(self, message: str, code: str | None = None, cause: BaseException | None = None) -> None:
        super().__init__(message, code=code, cause=cause)
        if self.code == "API_KEY_MISSING":
            self.status_code = 401


class ExtractionError(PipelineError):
    """The content loader could not produce text for a source."""

    status_code = 422
    default_code = "EXTRACTION_FAILED"


class EmbeddingError(PipelineError):
    """The embedding provider failed on a batch."""

    status_code = 502
    default_code = "VECTOR_CREATION_FAILED"


class GenerationError(PipelineError):
    """The generation provider failed to answer."""

    status_code = 502
    default_code = "RESPONSE_GENERATION_FAILED"


class StoreError(PipelineError):
    """The vector store failed a bootstrap, upsert, search, scroll or delete."""

    status_code = 503
    default_code = "STORE_FAILED"


class NotFoundError(PipelineError):
    """A document or its context could not be found."""

    status_code = 404
    default_code = "DOCUMENT_NOT_FOUND"


class AuthorizationError(PipelineError):
    """The caller may not use an admin route."""

    status_code = 403
    default_code = "UNAUTHORIZED"


class ClientRequestError(Exception):
    """Raised by ClientInterface when a backend request fails.

    Attributes:
        url: The requested URL.
        status_code: HTTP status, or None when the transport failed.
        body: Truncated response text, if any.
        transient: True for timeouts, transport errors and 5xx/429 responses.
    """

    def __init__(self, message: str, url: str, status_code: int | None = None, body: str = "", transient: bool = False) -> None:
        super().__init__(message)
        self.url = url
        self.status_code = status_code
        self.body = body
        self.transient = transient

    def is_client_error(self) -> bool:
        """Whether the backend rejected the request itself (4xx other than 429)."""
        return self.status_code is not None and 400 <= self.status_code < 500 and self.status_code != 429
