"""Pytest configuration and shared fixtures."""

import hashlib
import math
import os
import re
from typing import Generator

import pytest

# Set test environment variables before importing the app (settings are read at import)
os.environ.update({
    "OPENAI_API_KEY": "sk-test-key",
    "DATABASE_URL": "sqlite://",
    "QDRANT_URL": ":memory:",
    "BLOB_BACKEND": "local",
    "BLOB_PUBLIC_BASE_URL": "http://testserver/api/kb/blobs",
    "OTEL_TRACES_EXPORTER": "none",
})

from qdrant_client import QdrantClient  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402
from sqlmodel import SQLModel, create_engine  # noqa: E402

from ragvault.core.errors import TransientIOError  # noqa: E402
from ragvault.core.tenancy import TenantContext  # noqa: E402
from ragvault.kb.blob_store import LocalBlobStore  # noqa: E402
from ragvault.kb.retry import RetryPolicy  # noqa: E402
from ragvault.kb.service import KnowledgeBase  # noqa: E402
from ragvault.models import kb_entries, kb_namespaces  # noqa: E402,F401

_WORD_RE = re.compile(r"[a-z0-9]+")


class FakeEmbedder:
    """Deterministic bag-of-words embedder: texts sharing words score higher."""

    def __init__(self, dimension: int = 256, batch_size: int = 64) -> None:
        self.dimension = dimension
        self.batch_size = batch_size
        self.calls: list[list[str]] = []
        self.failures_remaining = 0

    def fail_next(self, times: int) -> None:
        self.failures_remaining = times

    def embed(self, texts: list[str]) -> list[list[float]]:
        self.calls.append(list(texts))
        if self.failures_remaining > 0:
            self.failures_remaining -= 1
            raise TransientIOError("embedding model unavailable")
        return [self._vector(text) for text in texts]

    def _vector(self, text: str) -> list[float]:
        vector = [0.0] * self.dimension
        for word in _WORD_RE.findall(text.lower()):
            bucket = int(hashlib.md5(word.encode()).hexdigest(), 16) % self.dimension
            vector[bucket] += 1.0
        norm = math.sqrt(sum(v * v for v in vector)) or 1.0
        return [v / norm for v in vector]

    @property
    def embedded_texts(self) -> list[str]:
        return [text for batch in self.calls for text in batch]


@pytest.fixture
def engine():
    """In-memory SQLite shared across threads."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SQLModel.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def qdrant() -> Generator[QdrantClient, None, None]:
    client = QdrantClient(location=":memory:")
    yield client
    client.close()


@pytest.fixture
def embedder() -> FakeEmbedder:
    return FakeEmbedder()


@pytest.fixture
def blob_store(tmp_path) -> LocalBlobStore:
    return LocalBlobStore(tmp_path / "blobs", "http://testserver/api/kb/blobs")


@pytest.fixture
def retry_policy() -> RetryPolicy:
    # No backoff sleeps in tests
    return RetryPolicy(attempts=3, initial_wait=0, max_wait=0)


@pytest.fixture
def knowledge_base(engine, qdrant, embedder, blob_store, retry_policy) -> KnowledgeBase:
    return KnowledgeBase(
        engine=engine,
        qdrant_client=qdrant,
        embedder=embedder,
        blob_store=blob_store,
        chunk_size=50,
        chunk_overlap=10,
        retry_policy=retry_policy,
        pending_ttl_seconds=900,
    )


@pytest.fixture
def acme() -> TenantContext:
    return TenantContext(namespace="acme", subject="user|alice")


@pytest.fixture
def other() -> TenantContext:
    return TenantContext(namespace="other", subject="user|bob")


@pytest.fixture
def faq_bytes() -> bytes:
    return (
        b"Frequently asked questions.\n\n"
        b"Our refund policy allows customers to return any product within 30 days "
        b"of purchase for a full refund. Refunds are issued to the original payment method.\n\n"
        b"Support hours are Monday to Friday."
    )


@pytest.fixture
def shipping_bytes() -> bytes:
    return (
        b"Shipping guide.\n\n"
        b"Orders ship from our warehouse in two business days. International delivery "
        b"takes up to three weeks depending on customs."
    )
