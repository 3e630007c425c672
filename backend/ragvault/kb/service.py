"""The knowledge base service object and its factory."""
import logging

from qdrant_client import QdrantClient
from sqlalchemy.engine import Engine

from ragvault.core.config import Settings
from ragvault.core.tenancy import TenantContext
from ragvault.kb.blob_store import BlobStore, LocalBlobStore, S3BlobStore
from ragvault.kb.chunk_index import ChunkIndex
from ragvault.kb.client import create_qdrant_client
from ragvault.kb.embeddings import Embedder, OpenAIEmbedder
from ragvault.kb.entry_store import EntryStore
from ragvault.kb.ingestion import IngestionPipeline
from ragvault.kb.lifecycle import LifecycleManager
from ragvault.kb.models import AddDocumentResult, RetrievedEntry
from ragvault.kb.namespaces import NamespaceRegistry
from ragvault.kb.retrieval import RetrievalEngine
from ragvault.kb.retry import RetryPolicy
from ragvault.models.kb_entries import KBEntry

logger = logging.getLogger(__name__)


class KnowledgeBase:
    """
    Entry store, chunk index and blob store wired together.

    Every operation takes the caller's ``TenantContext`` explicitly.
    """

    def __init__(
        self,
        engine: Engine,
        qdrant_client: QdrantClient,
        embedder: Embedder,
        blob_store: BlobStore,
        chunk_size: int = 800,
        chunk_overlap: int = 200,
        collection_prefix: str = "kb_",
        retry_policy: RetryPolicy | None = None,
        pending_ttl_seconds: int = 900,
    ) -> None:
        retry_policy = retry_policy or RetryPolicy()

        self.qdrant_client = qdrant_client
        self.blob_store = blob_store
        self.registry = NamespaceRegistry(
            engine, qdrant_client, vector_size=embedder.dimension, collection_prefix=collection_prefix
        )
        self.entries = EntryStore(engine)
        self.chunks = ChunkIndex(
            qdrant_client,
            self.registry,
            embedder,
            chunk_size=chunk_size,
            chunk_overlap=chunk_overlap,
            retry_policy=retry_policy,
        )
        self.lifecycle = LifecycleManager(
            self.entries,
            self.chunks,
            blob_store,
            self.registry,
            retry_policy=retry_policy,
            pending_ttl_seconds=pending_ttl_seconds,
        )
        self.ingestion = IngestionPipeline(
            self.entries, self.chunks, blob_store, self.lifecycle, retry_policy=retry_policy
        )
        self.retrieval = RetrievalEngine(self.entries, self.chunks, embedder, retry_policy=retry_policy)

    def add_document(
        self,
        tenant: TenantContext,
        filename: str,
        data: bytes,
        mime_type: str | None = None,
        category: str | None = None,
    ) -> AddDocumentResult:
        return self.ingestion.add_document(tenant, filename, data, mime_type=mime_type, category=category)

    def retrieve(self, tenant: TenantContext, query: str, top_k: int = 5) -> list[RetrievedEntry]:
        return self.retrieval.retrieve(tenant, query, top_k)

    def delete_entry(self, tenant: TenantContext, entry_id: str) -> None:
        self.lifecycle.delete_entry(tenant, entry_id)

    def get_entry(self, tenant: TenantContext, entry_id: str) -> KBEntry:
        return self.lifecycle.load_owned_entry(tenant, entry_id)

    def owns_blob(self, tenant: TenantContext, storage_id: str) -> bool:
        return self.entries.find_by_storage_id(tenant.namespace, storage_id) is not None

    def list_entries(
        self,
        tenant: TenantContext,
        category: str | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[KBEntry]:
        return self.entries.list_entries(tenant.namespace, category=category, limit=limit, offset=offset)

    def recover_stale_entries(self) -> int:
        return self.lifecycle.recover_stale_entries()


def build_blob_store(settings: Settings) -> BlobStore:
    if settings.BLOB_BACKEND == "s3":
        if not settings.S3_BUCKET:
            raise ValueError("S3_BUCKET must be set when BLOB_BACKEND=s3")
        return S3BlobStore(
            bucket=settings.S3_BUCKET,
            region=settings.S3_REGION,
            url_expires_in=settings.S3_URL_EXPIRES_IN,
        )
    return LocalBlobStore(settings.BLOB_LOCAL_DIR, settings.BLOB_PUBLIC_BASE_URL)


def build_knowledge_base(settings: Settings, engine: Engine) -> KnowledgeBase:
    """Construct the production knowledge base from settings."""
    logger.info(
        f"Building knowledge base (blobs={settings.BLOB_BACKEND}, "
        f"model={settings.EMBEDDING_MODEL}, dim={settings.EMBEDDING_DIMENSION})"
    )
    return KnowledgeBase(
        engine=engine,
        qdrant_client=create_qdrant_client(settings.QDRANT_URL, settings.QDRANT_API_KEY),
        embedder=OpenAIEmbedder(
            api_key=settings.OPENAI_API_KEY,
            model=settings.EMBEDDING_MODEL,
            dimension=settings.EMBEDDING_DIMENSION,
            batch_size=settings.EMBEDDING_BATCH_SIZE,
        ),
        blob_store=build_blob_store(settings),
        chunk_size=settings.CHUNK_SIZE,
        chunk_overlap=settings.CHUNK_OVERLAP,
        collection_prefix=settings.QDRANT_COLLECTION_PREFIX,
        retry_policy=RetryPolicy(
            attempts=settings.RETRY_ATTEMPTS,
            max_wait=settings.RETRY_MAX_WAIT_SECONDS,
        ),
        pending_ttl_seconds=settings.PENDING_ENTRY_TTL_SECONDS,
    )
