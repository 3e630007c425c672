"""Error types raised by the knowledge base core.

Every error a caller can observe derives from ``KnowledgeBaseError`` and
carries the HTTP status and stable error code the API layer renders.
``DuplicateContentError`` is internal: the ingestion pipeline resolves it
into ``created=False`` and it never reaches a caller.
"""


class KnowledgeBaseError(Exception):
    """Base exception for knowledge base errors."""

    def __init__(self, message: str, status_code: int = 500, error_code: str = "INTERNAL"):
        self.message = message
        self.status_code = status_code
        self.error_code = error_code
        super().__init__(self.message)


class UnauthorizedError(KnowledgeBaseError):
    """Raised when no tenant identity is present or it does not own the resource."""

    def __init__(self, message: str = "Unauthorized"):
        super().__init__(message=message, status_code=401, error_code="UNAUTHORIZED")


class NotFoundError(KnowledgeBaseError):
    """Raised when a referenced entry does not exist."""

    def __init__(self, message: str = "Entry not found"):
        super().__init__(message=message, status_code=404, error_code="NOT_FOUND")


class UnsupportedFormatError(KnowledgeBaseError):
    """Raised when text cannot be extracted, or extraction yields no text."""

    def __init__(self, message: str = "Unsupported document format"):
        super().__init__(message=message, status_code=415, error_code="UNSUPPORTED_FORMAT")


class PayloadTooLargeError(KnowledgeBaseError):
    """Raised when an upload exceeds the configured size limit."""

    def __init__(self, message: str = "Upload too large"):
        super().__init__(message=message, status_code=413, error_code="PAYLOAD_TOO_LARGE")


class TransientIOError(KnowledgeBaseError):
    """Raised when the blob store, embedding model or vector index fails in a retryable way."""

    def __init__(self, message: str = "Upstream service unavailable"):
        super().__init__(message=message, status_code=503, error_code="TRANSIENT_IO")


class IngestionFailedError(KnowledgeBaseError):
    """Raised when ingestion fails for a non-retryable reason after compensation ran."""

    def __init__(self, message: str = "Ingestion failed"):
        super().__init__(message=message, status_code=500, error_code="INGESTION_FAILED")


class DuplicateContentError(Exception):
    """Raised by the entry store when (namespace, content_hash) is already claimed."""

    def __init__(self, namespace: str, content_hash: str):
        self.namespace = namespace
        self.content_hash = content_hash
        super().__init__(f"Content {content_hash[:12]} already exists in namespace")
