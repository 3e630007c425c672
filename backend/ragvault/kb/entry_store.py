"""Entry metadata store on SQLModel.

Writes that decide entry identity go through ``claim``, which relies on the
UNIQUE (namespace, content_hash) constraint: of two concurrent claims for
the same content only one commits, the other gets ``DuplicateContentError``.
"""
import logging
import uuid
from datetime import datetime, timezone

from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, col, select

from ragvault.core.errors import DuplicateContentError
from ragvault.models.kb_entries import ENTRY_PENDING, ENTRY_READY, KBEntry

logger = logging.getLogger(__name__)


def parse_entry_id(entry_id: str | uuid.UUID) -> uuid.UUID | None:
    if isinstance(entry_id, uuid.UUID):
        return entry_id
    try:
        return uuid.UUID(str(entry_id))
    except ValueError:
        return None


def as_utc(value: datetime) -> datetime:
    # SQLite hands timestamps back without tzinfo
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class EntryStore:
    """Durable index of knowledge base entries."""

    def __init__(self, engine: Engine) -> None:
        self._engine = engine

    def get(self, entry_id: str | uuid.UUID) -> KBEntry | None:
        parsed = parse_entry_id(entry_id)
        if parsed is None:
            return None
        with Session(self._engine) as session:
            return session.get(KBEntry, parsed)

    def find_by_hash(self, namespace: str, content_hash: str) -> KBEntry | None:
        with Session(self._engine) as session:
            statement = select(KBEntry).where(
                KBEntry.namespace == namespace,
                KBEntry.content_hash == content_hash,
            )
            return session.exec(statement).first()

    def claim(
        self,
        namespace: str,
        content_hash: str,
        key: str,
        title: str,
        mime_type: str,
        size_bytes: int,
        metadata: dict,
    ) -> KBEntry:
        """
        Insert a pending entry for (namespace, content_hash).

        Raises:
            DuplicateContentError: If the pair is already claimed
        """
        entry = KBEntry(
            namespace=namespace,
            key=key,
            title=title,
            content_hash=content_hash,
            mime_type=mime_type,
            size_bytes=size_bytes,
            status=ENTRY_PENDING,
            metadata_json=dict(metadata),
        )
        with Session(self._engine) as session:
            session.add(entry)
            try:
                session.commit()
            except IntegrityError as e:
                session.rollback()
                raise DuplicateContentError(namespace, content_hash) from e
            session.refresh(entry)

        logger.info(f"Claimed entry {entry.id} for content {content_hash[:12]}")
        return entry

    def _update(self, entry_id: uuid.UUID, **changes) -> KBEntry | None:
        with Session(self._engine) as session:
            entry = session.get(KBEntry, entry_id)
            if entry is None:
                return None
            for field, value in changes.items():
                setattr(entry, field, value)
            entry.updated_at = datetime.now(timezone.utc)
            session.add(entry)
            session.commit()
            session.refresh(entry)
            return entry

    def attach_blob(self, entry_id: uuid.UUID, storage_id: str) -> KBEntry | None:
        """Record the blob of a pending entry so cleanup can find it."""
        entry = self.get(entry_id)
        if entry is None:
            return None
        # Reassign so the JSON column is flagged dirty
        metadata = {**entry.metadata_json, "storageId": storage_id}
        return self._update(entry_id, metadata_json=metadata)

    def mark_ready(self, entry_id: uuid.UUID, chunk_count: int) -> KBEntry | None:
        return self._update(entry_id, status=ENTRY_READY, chunk_count=chunk_count)

    def get_many(self, namespace: str, entry_ids: list[str]) -> dict[str, KBEntry]:
        """Fetch entries by id, restricted to one namespace."""
        parsed = [p for p in (parse_entry_id(e) for e in entry_ids) if p is not None]
        if not parsed:
            return {}
        with Session(self._engine) as session:
            statement = select(KBEntry).where(
                KBEntry.namespace == namespace,
                col(KBEntry.id).in_(parsed),
            )
            return {str(entry.id): entry for entry in session.exec(statement).all()}

    def list_entries(
        self,
        namespace: str,
        category: str | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[KBEntry]:
        """List ready entries of a namespace, newest first."""
        with Session(self._engine) as session:
            statement = (
                select(KBEntry)
                .where(KBEntry.namespace == namespace, KBEntry.status == ENTRY_READY)
                .order_by(col(KBEntry.created_at).desc(), col(KBEntry.id))
            )
            entries = session.exec(statement).all()

        # Category lives in the JSON metadata; filter portably in Python
        if category is not None:
            entries = [e for e in entries if (e.metadata_json or {}).get("category") == category]
        return list(entries[offset:offset + limit])

    def find_by_storage_id(self, namespace: str, storage_id: str) -> KBEntry | None:
        """Return the ready entry of a namespace whose blob is ``storage_id``."""
        with Session(self._engine) as session:
            statement = select(KBEntry).where(KBEntry.namespace == namespace, KBEntry.status == ENTRY_READY)
            entries = session.exec(statement).all()
        return next((e for e in entries if e.storage_id == storage_id), None)

    def list_stale_pending(self, older_than: datetime) -> list[KBEntry]:
        with Session(self._engine) as session:
            statement = select(KBEntry).where(KBEntry.status == ENTRY_PENDING)
            pending = session.exec(statement).all()
        return [e for e in pending if as_utc(e.updated_at) < older_than]

    def delete(self, entry_id: uuid.UUID) -> bool:
        """Delete an entry record. Returns False if it was already gone."""
        with Session(self._engine) as session:
            entry = session.get(KBEntry, entry_id)
            if entry is None:
                return False
            session.delete(entry)
            session.commit()
        logger.info(f"Deleted entry record {entry_id}")
        return True
