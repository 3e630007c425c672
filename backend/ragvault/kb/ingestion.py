"""
Document ingestion: fingerprint, dedup, extract, chunk, embed, commit.

Ordering guarantees:
- The content hash is computed and checked before anything is written,
  so re-uploading known content never touches the blob store or the
  embedding model.
- Text is extracted and chunked before the entry is claimed, so
  unsupported or empty documents fail without side effects.
- The entry is claimed in ``pending`` state under the
  (namespace, content_hash) uniqueness constraint before blob and vector
  writes; the loser of a concurrent race returns the winner's entry.
- The entry only turns ``ready`` after all chunks are written. Any failure
  or interruption in between discards blob, chunks and the pending record.
"""
import logging
from datetime import datetime, timezone

from opentelemetry.trace import Status, StatusCode

from ragvault.core.errors import (
    DuplicateContentError,
    IngestionFailedError,
    KnowledgeBaseError,
    TransientIOError,
    UnsupportedFormatError,
)
from ragvault.core.tenancy import TenantContext
from ragvault.core.tracing import get_tracer, safe_span_attributes
from ragvault.kb.blob_store import BlobStore
from ragvault.kb.chunk_index import ChunkIndex
from ragvault.kb.entry_store import EntryStore
from ragvault.kb.extraction import extract_text
from ragvault.kb.fingerprint import fingerprint
from ragvault.kb.lifecycle import LifecycleManager
from ragvault.kb.models import AddDocumentResult
from ragvault.kb.retry import RetryPolicy
from ragvault.models.kb_entries import KBEntry

logger = logging.getLogger(__name__)
tracer = get_tracer(__name__)


class IngestionPipeline:
    """Write path of the knowledge base."""

    def __init__(
        self,
        entry_store: EntryStore,
        chunk_index: ChunkIndex,
        blob_store: BlobStore,
        lifecycle: LifecycleManager,
        retry_policy: RetryPolicy | None = None,
    ) -> None:
        self._entries = entry_store
        self._chunks = chunk_index
        self._blobs = blob_store
        self._lifecycle = lifecycle
        self._retry = retry_policy or RetryPolicy()

    def add_document(
        self,
        tenant: TenantContext,
        filename: str,
        data: bytes,
        mime_type: str | None = None,
        category: str | None = None,
    ) -> AddDocumentResult:
        """
        Ingest one uploaded file into the tenant's knowledge base.

        Args:
            tenant: Caller's tenant context
            filename: Original filename; used as entry key and title
            data: Raw file bytes
            mime_type: Declared MIME type; detected when omitted
            category: Optional category stored in entry metadata

        Returns:
            AddDocumentResult; ``created`` is False when the namespace already
            holds an entry with identical bytes

        Raises:
            UnsupportedFormatError: No extractor for the type, or no text in the document
            TransientIOError: Blob store, embedding model or vector index kept failing
            IngestionFailedError: Any other failure after the entry was claimed
        """
        namespace = tenant.namespace

        with tracer.start_as_current_span("kb.add_document") as span:
            fp = fingerprint(data, filename, mime_type)
            span.set_attributes(safe_span_attributes(
                filename=filename,
                mime_type=fp.mime_type,
                size_bytes=len(data),
                content_hash=fp.content_hash,
            ))

            existing = self._find_live_duplicate(namespace, fp.content_hash)
            if existing is not None:
                span.set_attribute("kb.created", False)
                return self._duplicate_result(existing)

            try:
                text = extract_text(data, fp.mime_type, filename)
                chunks = self._chunks.split(text)
                if not chunks:
                    raise UnsupportedFormatError(f"{filename} produced no indexable text")
            except UnsupportedFormatError as e:
                span.set_status(Status(StatusCode.ERROR, e.message))
                raise

            metadata = {
                "uploadedBy": namespace,
                "filename": filename,
                "category": category,
            }

            try:
                entry = self._entries.claim(
                    namespace=namespace,
                    content_hash=fp.content_hash,
                    key=filename,
                    title=filename,
                    mime_type=fp.mime_type,
                    size_bytes=len(data),
                    metadata=metadata,
                )
            except DuplicateContentError:
                winner = self._entries.find_by_hash(namespace, fp.content_hash)
                if winner is None:
                    # The concurrent ingestion that beat us has already rolled back
                    raise TransientIOError("Concurrent ingestion of identical content failed, retry")
                logger.info(f"Lost ingestion race to entry {winner.id}, returning it")
                span.set_attribute("kb.created", False)
                return self._duplicate_result(winner)

            span.set_attribute("kb.entry_id", str(entry.id))
            storage_id: str | None = None

            try:
                storage_id = self._retry.call("store_blob", self._blobs.store, data, fp.mime_type)
                self._require_claim(self._entries.attach_blob(entry.id, storage_id), entry)

                chunk_count = self._chunks.index(namespace, str(entry.id), text, chunks=chunks)
                url = self._retry.call("get_blob_url", self._blobs.get_url, storage_id)
                self._require_claim(self._entries.mark_ready(entry.id, chunk_count), entry)
            except BaseException as e:
                logger.error(f"Ingestion of {filename} failed, discarding entry {entry.id}: {e!r}")
                span.set_status(Status(StatusCode.ERROR, repr(e)))
                self._lifecycle.discard_failed(entry.id, namespace, storage_id)
                if isinstance(e, KnowledgeBaseError) or not isinstance(e, Exception):
                    raise
                raise IngestionFailedError(f"Ingestion failed: {e}") from e

            logger.info(f"Ingested {filename} as entry {entry.id} ({chunk_count} chunks)")
            span.set_attributes({"kb.created": True, "kb.chunk_count": chunk_count})

            return AddDocumentResult(url=url, entry_id=str(entry.id), created=True)

    @staticmethod
    def _require_claim(updated: KBEntry | None, entry: KBEntry) -> None:
        # The pending record was removed under us; its blob and chunks must not outlive it
        if updated is None:
            raise TransientIOError(f"Entry {entry.id} was removed during ingestion, retry")

    def _find_live_duplicate(self, namespace: str, content_hash: str) -> KBEntry | None:
        """Return the entry holding this content, reclaiming it first if it was abandoned."""
        existing = self._entries.find_by_hash(namespace, content_hash)
        if existing is None:
            return None

        if self._lifecycle.is_stale(existing, datetime.now(timezone.utc)):
            logger.warning(f"Reclaiming abandoned pending entry {existing.id}")
            self._lifecycle.purge(existing)
            return None

        logger.debug("This entry already exists, skipping upload")
        return existing

    def _duplicate_result(self, entry: KBEntry) -> AddDocumentResult:
        storage_id = entry.storage_id
        url = self._retry.call("get_blob_url", self._blobs.get_url, storage_id) if storage_id else None
        return AddDocumentResult(url=url, entry_id=str(entry.id), created=False)
