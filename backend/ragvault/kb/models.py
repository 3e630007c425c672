"""Pydantic models for KB operations."""
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel
from datetime import datetime

from ragvault.models.kb_entries import KBEntry


class AddDocumentResult(BaseModel):
    """Outcome of an upload."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    url: str | None
    entry_id: str
    created: bool


class EntryView(BaseModel):
    """Public view of an entry record."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    entry_id: str
    namespace: str
    key: str
    title: str
    content_hash: str
    mime_type: str
    size_bytes: int
    status: str
    chunk_count: int
    metadata: dict = Field(default_factory=dict)
    created_at: datetime

    @classmethod
    def from_entry(cls, entry: KBEntry) -> "EntryView":
        return cls(
            entry_id=str(entry.id),
            namespace=entry.namespace,
            key=entry.key,
            title=entry.title,
            content_hash=entry.content_hash,
            mime_type=entry.mime_type,
            size_bytes=entry.size_bytes,
            status=entry.status,
            chunk_count=entry.chunk_count,
            metadata=dict(entry.metadata_json or {}),
            created_at=entry.created_at,
        )


class ChunkSnippet(BaseModel):
    """A supporting chunk of a retrieved entry."""
    chunk_id: str
    score: float
    order: int
    content: str


class RetrievedEntry(BaseModel):
    """An entry matched by a query, with the chunks that matched."""
    entry_id: str
    key: str
    title: str
    score: float
    created_at: datetime
    metadata: dict = Field(default_factory=dict)
    chunks: list[ChunkSnippet] = Field(default_factory=list)

    @property
    def snippet(self) -> str:
        return self.chunks[0].content if self.chunks else ""


class KBQueryResult(BaseModel):
    """Single search result."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    entry_id: str
    score: float
    snippet: str
    title: str
    key: str
    category: str | None = None


class KBQueryResponse(BaseModel):
    """Response model for KB search."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    results: list[KBQueryResult]
    query: str
    k: int


class KBEntryListResponse(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    entries: list[EntryView]
    limit: int
    offset: int
