"""Qdrant client construction and collection management."""
import logging
from qdrant_client import QdrantClient
from qdrant_client.http.exceptions import ResponseHandlingException, UnexpectedResponse
from qdrant_client.models import Distance, PayloadSchemaType, VectorParams

from ragvault.core.errors import TransientIOError

logger = logging.getLogger(__name__)


def create_qdrant_client(url: str, api_key: str | None = None) -> QdrantClient:
    """
    Create a Qdrant client.

    ``url`` may be ``":memory:"`` for an in-process instance.
    """
    if url == ":memory:":
        logger.info("Initializing in-memory Qdrant client")
        return QdrantClient(location=":memory:")

    logger.info(f"Initializing Qdrant client: {url}")
    return QdrantClient(url=url, api_key=api_key or None)


def is_transient_qdrant_error(exc: Exception) -> bool:
    if isinstance(exc, ResponseHandlingException):
        return True
    if isinstance(exc, UnexpectedResponse):
        return exc.status_code is None or exc.status_code == 429 or exc.status_code >= 500
    return False


QDRANT_ERRORS = (ResponseHandlingException, UnexpectedResponse)


def raise_for_qdrant_error(exc: Exception, action: str) -> None:
    """Re-raise a Qdrant failure, as TransientIOError when it is retryable."""
    if is_transient_qdrant_error(exc):
        raise TransientIOError(f"Vector index unavailable during {action}: {exc}") from exc
    raise exc


def ensure_collection_exists(
    client: QdrantClient,
    collection_name: str,
    vector_size: int,
) -> None:
    """
    Ensure Qdrant collection exists with proper configuration.

    Safe to call concurrently: losing a creation race is treated as success.

    Args:
        client: Qdrant client
        collection_name: Name of collection
        vector_size: Dimension of embedding vectors
    """
    collections = client.get_collections().collections
    if any(c.name == collection_name for c in collections):
        return

    logger.info(f"Creating Qdrant collection: {collection_name}")
    try:
        client.create_collection(
            collection_name=collection_name,
            vectors_config=VectorParams(
                size=vector_size,
                distance=Distance.COSINE,
            ),
        )
    except (UnexpectedResponse, ValueError) as e:
        # Another request created it first
        if not client.collection_exists(collection_name):
            raise
        logger.info(f"Collection '{collection_name}' created concurrently: {e}")
        return

    client.create_payload_index(
        collection_name=collection_name,
        field_name="entry_id",
        field_schema=PayloadSchemaType.KEYWORD,
    )
    logger.info(f"Collection '{collection_name}' created successfully")
