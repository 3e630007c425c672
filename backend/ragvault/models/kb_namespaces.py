"""Database model for the namespace registry."""

from datetime import datetime, timezone
from sqlmodel import Field, SQLModel


class KBNamespace(SQLModel, table=True):
    """Maps a tenant namespace to its dedicated vector collection."""

    __tablename__ = "kb_namespaces"

    namespace: str = Field(primary_key=True)
    collection_name: str = Field(unique=True)

    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
