"""Entry deletion and cleanup.

Deletion spans three stores with no shared transaction, so it runs as an
ordered sequence of idempotent steps: blob, then chunks, then the entry
record. If a step fails the entry record is still there and the whole
sequence can be re-run.
"""
import logging
from datetime import datetime, timedelta, timezone

from opentelemetry.trace import Status, StatusCode

from ragvault.core.errors import NotFoundError, UnauthorizedError
from ragvault.core.tenancy import TenantContext
from ragvault.core.tracing import get_tracer, safe_span_attributes
from ragvault.kb.blob_store import BlobStore
from ragvault.kb.chunk_index import ChunkIndex
from ragvault.kb.entry_store import EntryStore, as_utc
from ragvault.kb.namespaces import NamespaceRegistry
from ragvault.kb.retry import RetryPolicy
from ragvault.models.kb_entries import KBEntry

logger = logging.getLogger(__name__)
tracer = get_tracer(__name__)


class LifecycleManager:
    """Authorized deletion and recovery of abandoned ingestions."""

    def __init__(
        self,
        entry_store: EntryStore,
        chunk_index: ChunkIndex,
        blob_store: BlobStore,
        registry: NamespaceRegistry,
        retry_policy: RetryPolicy | None = None,
        pending_ttl_seconds: int = 900,
    ) -> None:
        self._entries = entry_store
        self._chunks = chunk_index
        self._blobs = blob_store
        self._registry = registry
        self._retry = retry_policy or RetryPolicy()
        self._pending_ttl = timedelta(seconds=pending_ttl_seconds)

    def load_owned_entry(self, tenant: TenantContext, entry_id: str) -> KBEntry:
        """
        Load an entry the tenant owns.

        Raises:
            UnauthorizedError: If the namespace is unknown or the entry belongs elsewhere
            NotFoundError: If the entry does not exist or is still being ingested
        """
        if self._registry.get(tenant.namespace) is None:
            raise UnauthorizedError("Invalid namespace")

        entry = self._entries.get(entry_id)
        if entry is None:
            raise NotFoundError("Entry not found")

        if entry.uploaded_by != tenant.namespace or entry.namespace != tenant.namespace:
            logger.warning(f"Namespace mismatch on entry {entry_id}: access denied")
            raise UnauthorizedError("Invalid Organization ID")

        # Pending entries belong to an ingestion still in flight
        if not entry.is_ready:
            raise NotFoundError("Entry not found")

        return entry

    def delete_entry(self, tenant: TenantContext, entry_id: str) -> None:
        """
        Delete an entry with its blob and chunks after verifying ownership.

        Raises:
            UnauthorizedError: Unknown namespace, or the entry belongs to another tenant
            NotFoundError: The entry does not exist or is still being ingested
            TransientIOError: A store failed; the entry record survives and the call can be retried
        """
        with tracer.start_as_current_span("kb.delete_entry") as span:
            span.set_attributes(safe_span_attributes(entry_id=entry_id))
            try:
                entry = self.load_owned_entry(tenant, entry_id)
                self.purge(entry)
            except Exception as e:
                span.set_status(Status(StatusCode.ERROR, str(e)))
                raise

    def purge(self, entry: KBEntry) -> None:
        """Run the cascading delete for an entry, dependents first."""
        entry_id = str(entry.id)

        storage_id = entry.storage_id
        if storage_id:
            self._retry.call("delete_blob", self._blobs.delete, storage_id)

        self._retry.call("delete_chunks", self._chunks.delete_entry_chunks, entry.namespace, entry_id)

        self._entries.delete(entry.id)
        logger.info(f"Entry {entry_id} purged (blob={'yes' if storage_id else 'no'})")

    def discard_failed(self, entry_id, namespace: str, storage_id: str | None) -> None:
        """
        Compensate a failed ingestion.

        Each step is attempted even if an earlier one fails; anything left
        behind stays in ``pending`` state and is picked up by
        ``recover_stale_entries``.
        """
        steps = []
        if storage_id:
            steps.append(("delete_blob", self._blobs.delete, (storage_id,)))
        steps.append(("delete_chunks", self._chunks.delete_entry_chunks, (namespace, str(entry_id))))
        steps.append(("delete_entry", self._entries.delete, (entry_id,)))

        for name, fn, args in steps:
            try:
                fn(*args)
            except Exception:
                logger.exception(f"Compensation step {name} failed for entry {entry_id}")

    def is_stale(self, entry: KBEntry, now: datetime | None = None) -> bool:
        now = now or datetime.now(timezone.utc)
        return not entry.is_ready and as_utc(entry.updated_at) < now - self._pending_ttl

    def recover_stale_entries(self, now: datetime | None = None) -> int:
        """
        Purge pending entries whose ingestion never completed.

        Returns:
            Number of entries purged
        """
        now = now or datetime.now(timezone.utc)
        stale = self._entries.list_stale_pending(now - self._pending_ttl)
        for entry in stale:
            logger.warning(f"Recovering abandoned ingestion for entry {entry.id}")
            self.purge(entry)
        return len(stale)
