"""Database models for knowledge base entries."""

import uuid
from datetime import datetime, timezone
from typing import Literal
from sqlalchemy import UniqueConstraint
from sqlmodel import Field, SQLModel, Column, JSON, String

EntryStatus = Literal["pending", "ready"]

ENTRY_PENDING: EntryStatus = "pending"
ENTRY_READY: EntryStatus = "ready"


class KBEntry(SQLModel, table=True):
    """One logical uploaded document within a namespace.

    An entry is claimed in ``pending`` state before its blob is written and
    its chunks are indexed, and flipped to ``ready`` once both succeeded.
    The (namespace, content_hash) pair is unique so that concurrent uploads
    of the same bytes to the same namespace collapse onto one entry.

    Entries are never edited in place: a changed file is a new entry.
    """

    __tablename__ = "kb_entries"
    __table_args__ = (
        UniqueConstraint("namespace", "content_hash", name="uq_kb_entries_namespace_hash"),
    )

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)

    # Owning tenant (immutable)
    namespace: str = Field(index=True)

    # Caller-supplied logical name (usually the filename) and display title
    key: str
    title: str

    content_hash: str = Field(index=True)
    mime_type: str
    size_bytes: int = 0

    status: str = Field(default=ENTRY_PENDING, sa_column=Column(String, index=True))
    chunk_count: int = 0

    # storageId, uploadedBy, filename, category
    metadata_json: dict = Field(default_factory=dict, sa_column=Column(JSON))

    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def storage_id(self) -> str | None:
        return (self.metadata_json or {}).get("storageId")

    @property
    def uploaded_by(self) -> str | None:
        return (self.metadata_json or {}).get("uploadedBy")

    @property
    def is_ready(self) -> bool:
        return self.status == ENTRY_READY
