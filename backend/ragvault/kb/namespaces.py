"""Namespace registry: one isolated vector collection per tenant."""
import hashlib
import logging

from qdrant_client import QdrantClient
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session

from ragvault.kb.client import QDRANT_ERRORS, ensure_collection_exists, raise_for_qdrant_error
from ragvault.models.kb_namespaces import KBNamespace

logger = logging.getLogger(__name__)


def collection_name_for(namespace: str, prefix: str = "kb_") -> str:
    """Derive a stable, Qdrant-safe collection name for a namespace."""
    digest = hashlib.sha256(namespace.encode("utf-8")).hexdigest()[:32]
    return f"{prefix}{digest}"


class NamespaceRegistry:
    """Maps tenant namespaces to their dedicated Qdrant collections."""

    def __init__(
        self,
        engine: Engine,
        qdrant_client: QdrantClient,
        vector_size: int,
        collection_prefix: str = "kb_",
    ) -> None:
        self._engine = engine
        self._qdrant = qdrant_client
        self._vector_size = vector_size
        self._prefix = collection_prefix

    def get(self, namespace: str) -> KBNamespace | None:
        """Look up a registered namespace without creating it."""
        with Session(self._engine) as session:
            return session.get(KBNamespace, namespace)

    def get_or_create(self, namespace: str) -> KBNamespace:
        """
        Register a namespace (if needed) and make sure its collection exists.

        Concurrent first uploads for the same tenant both succeed; the
        registry row is created once.
        """
        record = self.get(namespace)
        if record is None:
            record = KBNamespace(
                namespace=namespace,
                collection_name=collection_name_for(namespace, self._prefix),
            )
            try:
                with Session(self._engine) as session:
                    session.add(record)
                    session.commit()
                    session.refresh(record)
                logger.info(f"Registered namespace -> {record.collection_name}")
            except IntegrityError:
                logger.info(f"Namespace registered concurrently ({record.collection_name})")
                record = self.get(namespace)
                if record is None:
                    raise

        try:
            ensure_collection_exists(self._qdrant, record.collection_name, self._vector_size)
        except QDRANT_ERRORS as e:
            raise_for_qdrant_error(e, "collection setup")
        return record

    def collection_for(self, namespace: str) -> str | None:
        record = self.get(namespace)
        return record.collection_name if record else None
