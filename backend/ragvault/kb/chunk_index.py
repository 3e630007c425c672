"""
Chunk/embedding index over Qdrant.

Every namespace has its own collection (see ``NamespaceRegistry``), so a
query can only ever score vectors of the namespace it was issued for.
Points carry their owning ``entry_id`` so an entry's chunks can be counted
and removed as a batch.
"""
import logging
import uuid
from typing import NamedTuple

from qdrant_client import QdrantClient
from qdrant_client.models import (
    FieldCondition,
    Filter,
    FilterSelector,
    MatchValue,
    PointStruct,
)

from ragvault.kb.chunker import TextChunk, chunk_text
from ragvault.kb.client import QDRANT_ERRORS, raise_for_qdrant_error
from ragvault.kb.embeddings import Embedder
from ragvault.kb.namespaces import NamespaceRegistry
from ragvault.kb.retry import RetryPolicy

logger = logging.getLogger(__name__)


class ChunkHit(NamedTuple):
    """One scored chunk returned from a namespace-scoped query."""
    entry_id: str
    chunk_id: str
    score: float
    order: int
    content: str


def chunk_point_id(entry_id: str, order: int) -> str:
    """Stable point id so a retried upsert overwrites instead of duplicating."""
    return str(uuid.uuid5(uuid.NAMESPACE_URL, f"ragvault:{entry_id}:{order}"))


def _entry_filter(entry_id: str) -> Filter:
    return Filter(
        must=[
            FieldCondition(
                key="entry_id",
                match=MatchValue(value=entry_id),
            )
        ]
    )


class ChunkIndex:
    """Splits entry text into chunks, embeds them and stores them per namespace."""

    def __init__(
        self,
        qdrant_client: QdrantClient,
        registry: NamespaceRegistry,
        embedder: Embedder,
        chunk_size: int = 800,
        chunk_overlap: int = 200,
        retry_policy: RetryPolicy | None = None,
    ) -> None:
        self._qdrant = qdrant_client
        self._registry = registry
        self._embedder = embedder
        self._chunk_size = chunk_size
        self._chunk_overlap = chunk_overlap
        self._retry = retry_policy or RetryPolicy()

    def split(self, text: str) -> list[TextChunk]:
        return chunk_text(text, chunk_size=self._chunk_size, chunk_overlap=self._chunk_overlap)

    def index(
        self,
        namespace: str,
        entry_id: str,
        text: str,
        chunks: list[TextChunk] | None = None,
    ) -> int:
        """
        Chunk, embed, and write all chunks of one entry as a batch.

        Embeddings are computed once per chunk: a transient failure retries
        only the batch that failed, and a retried vector write reuses the
        vectors already computed. If the points cannot be written completely,
        every chunk already written for the entry is removed before the error
        propagates.

        Args:
            namespace: Owning namespace
            entry_id: Owning entry
            text: Extracted text (ignored when ``chunks`` is given)
            chunks: Pre-split chunks

        Returns:
            Number of chunks written
        """
        chunks = chunks if chunks is not None else self.split(text)
        if not chunks:
            return 0

        collection_name = self._registry.get_or_create(namespace).collection_name

        logger.info(f"Embedding {len(chunks)} chunks for entry {entry_id}")
        embeddings = self._embed([c.content for c in chunks])

        points = [
            PointStruct(
                id=chunk_point_id(entry_id, chunk.order),
                vector=embedding,
                payload={
                    "entry_id": entry_id,
                    "order": chunk.order,
                    "start_idx": chunk.start_idx,
                    "end_idx": chunk.end_idx,
                    "content": chunk.content,
                },
            )
            for chunk, embedding in zip(chunks, embeddings)
        ]

        try:
            self._retry.call("upsert_chunks", self._upsert, collection_name, points)
        except Exception:
            logger.error(f"Chunk batch for entry {entry_id} failed, rolling back")
            self.delete_entry_chunks(namespace, entry_id)
            raise

        logger.info(f"Indexed {len(points)} chunks for entry {entry_id} in '{collection_name}'")
        return len(points)

    def _embed(self, texts: list[str]) -> list[list[float]]:
        batch_size = max(1, self._embedder.batch_size)
        embeddings: list[list[float]] = []
        for start in range(0, len(texts), batch_size):
            batch = texts[start:start + batch_size]
            embeddings.extend(self._retry.call("embed_chunks", self._embedder.embed, batch))
        return embeddings

    def _upsert(self, collection_name: str, points: list[PointStruct]) -> None:
        try:
            self._qdrant.upsert(collection_name=collection_name, points=points, wait=True)
        except QDRANT_ERRORS as e:
            raise_for_qdrant_error(e, "upsert")

    def query(self, namespace: str, query_vector: list[float], top_k: int) -> list[ChunkHit]:
        """
        Score chunks of one namespace against a query vector.

        Returns an empty list for namespaces that were never registered.
        """
        collection_name = self._registry.collection_for(namespace)
        if collection_name is None:
            logger.info("Query against unregistered namespace, no results")
            return []

        try:
            response = self._qdrant.query_points(
                collection_name=collection_name,
                query=query_vector,
                limit=top_k,
                with_payload=True,
                with_vectors=False,
            )
        except QDRANT_ERRORS as e:
            raise_for_qdrant_error(e, "query")

        hits = []
        for point in response.points:
            payload = point.payload or {}
            hits.append(ChunkHit(
                entry_id=payload.get("entry_id", ""),
                chunk_id=str(point.id),
                score=point.score,
                order=payload.get("order", 0),
                content=payload.get("content", ""),
            ))
        return hits

    def count_entry_chunks(self, namespace: str, entry_id: str) -> int:
        collection_name = self._registry.collection_for(namespace)
        if collection_name is None:
            return 0
        result = self._qdrant.count(
            collection_name=collection_name,
            count_filter=_entry_filter(entry_id),
            exact=True,
        )
        return result.count

    def delete_entry_chunks(self, namespace: str, entry_id: str) -> None:
        """Remove every chunk of an entry. Idempotent."""
        collection_name = self._registry.collection_for(namespace)
        if collection_name is None:
            return
        try:
            self._qdrant.delete(
                collection_name=collection_name,
                points_selector=FilterSelector(filter=_entry_filter(entry_id)),
                wait=True,
            )
        except QDRANT_ERRORS as e:
            raise_for_qdrant_error(e, "delete")
        logger.info(f"Deleted chunks of entry {entry_id} from '{collection_name}'")
