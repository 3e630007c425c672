"""KB retrieval: namespace-scoped semantic search hydrated with entry metadata."""
import logging

from opentelemetry.trace import Status, StatusCode

from ragvault.core.tenancy import TenantContext
from ragvault.core.tracing import get_tracer, safe_span_attributes
from ragvault.kb.chunk_index import ChunkHit, ChunkIndex
from ragvault.kb.embeddings import Embedder
from ragvault.kb.entry_store import EntryStore, as_utc
from ragvault.kb.models import ChunkSnippet, RetrievedEntry
from ragvault.kb.retry import RetryPolicy

logger = logging.getLogger(__name__)
tracer = get_tracer(__name__)

MAX_TOP_K = 50

# Extra candidates fetched so that chunks of still-pending entries, which are
# dropped during hydration, do not shrink the result set
CANDIDATE_FACTOR = 2


class RetrievalEngine:
    """Read path of the knowledge base."""

    def __init__(
        self,
        entry_store: EntryStore,
        chunk_index: ChunkIndex,
        embedder: Embedder,
        retry_policy: RetryPolicy | None = None,
    ) -> None:
        self._entries = entry_store
        self._chunks = chunk_index
        self._embedder = embedder
        self._retry = retry_policy or RetryPolicy()

    def retrieve(self, tenant: TenantContext, query: str, top_k: int = 5) -> list[RetrievedEntry]:
        """
        Search the tenant's knowledge base.

        The best ``top_k`` chunks are grouped by entry. Entries are ranked by
        their best chunk score; equal scores go to the most recently created
        entry. Entries that are not fully ingested are never returned.

        Args:
            tenant: Caller's tenant context
            query: Search query text
            top_k: Number of chunks to consider (1-50)

        Returns:
            Ranked entries, each with its matching chunks in score order
        """
        if not 1 <= top_k <= MAX_TOP_K:
            raise ValueError(f"top_k must be between 1 and {MAX_TOP_K}")

        query = query.strip()
        if not query:
            return []

        with tracer.start_as_current_span("kb.retrieve") as span:
            span.set_attributes(safe_span_attributes(query=query, top_k=top_k))
            logger.info(f"Searching KB: query='{query[:50]}...', k={top_k}")

            try:
                query_vector = self._retry.call("embed_query", self._embedder.embed, [query])[0]
                hits = self._chunks.query(tenant.namespace, query_vector, top_k * CANDIDATE_FACTOR)
                results = self._hydrate(tenant.namespace, hits, top_k)
            except Exception as e:
                span.set_status(Status(StatusCode.ERROR, str(e)))
                raise

            span.set_attribute("kb.result_count", len(results))
            logger.info(f"Found {len(results)} entries from {len(hits)} candidate chunks")
            return results

    def _hydrate(self, namespace: str, hits: list[ChunkHit], top_k: int) -> list[RetrievedEntry]:
        entries = self._entries.get_many(namespace, list({hit.entry_id for hit in hits}))

        visible = [
            hit for hit in hits
            if hit.entry_id in entries
            and entries[hit.entry_id].is_ready
            and entries[hit.entry_id].namespace == namespace
        ]
        visible.sort(key=lambda hit: (
            -hit.score,
            -as_utc(entries[hit.entry_id].created_at).timestamp(),
            hit.entry_id,
            hit.order,
        ))

        grouped: dict[str, RetrievedEntry] = {}
        for hit in visible[:top_k]:
            result = grouped.get(hit.entry_id)
            if result is None:
                entry = entries[hit.entry_id]
                result = RetrievedEntry(
                    entry_id=hit.entry_id,
                    key=entry.key,
                    title=entry.title,
                    score=hit.score,
                    created_at=entry.created_at,
                    metadata=dict(entry.metadata_json or {}),
                )
                grouped[hit.entry_id] = result
            result.chunks.append(ChunkSnippet(
                chunk_id=hit.chunk_id,
                score=hit.score,
                order=hit.order,
                content=hit.content,
            ))

        # Insertion order already follows best score, then recency
        return list(grouped.values())
