"""Knowledge Base API routes for upload, search and deletion."""
import logging
from fastapi import APIRouter, Depends, File, Form, HTTPException, Query, Response, UploadFile, status
from fastapi.responses import FileResponse, JSONResponse
from starlette.concurrency import run_in_threadpool

from ragvault.api.deps import get_knowledge_base, get_tenant
from ragvault.core.config import settings
from ragvault.core.errors import PayloadTooLargeError
from ragvault.core.tenancy import TenantContext
from ragvault.kb.blob_store import LocalBlobStore
from ragvault.kb.models import (
    EntryView,
    KBEntryListResponse,
    KBQueryResponse,
    KBQueryResult,
)
from ragvault.kb.retrieval import MAX_TOP_K
from ragvault.kb.service import KnowledgeBase

logger = logging.getLogger(__name__)

kb_router = APIRouter(prefix="/kb", tags=["knowledge-base"])


@kb_router.post("/files")
async def upload_file(
    file: UploadFile = File(...),
    mime_type: str | None = Form(None),
    category: str | None = Form(None),
    tenant: TenantContext = Depends(get_tenant),
    kb: KnowledgeBase = Depends(get_knowledge_base),
) -> JSONResponse:
    """
    Upload a document to the tenant's knowledge base.

    Re-uploading byte-identical content is a no-op that returns the existing
    entry with ``created: false``.

    Args:
        file: File to upload
        mime_type: Overrides the MIME type detected from filename and content
        category: Optional category stored with the entry

    Returns:
        ``{url, entryId, created}``; 201 when a new entry was created
    """
    binary_content = await file.read()
    file_name = file.filename or "untitled"

    if len(binary_content) > settings.MAX_UPLOAD_BYTES:
        raise PayloadTooLargeError(f"File size exceeds {settings.MAX_UPLOAD_MB} MB limit")

    logger.info(f"Processing KB upload: file={file_name}, size={len(binary_content)}")

    result = await run_in_threadpool(
        kb.add_document,
        tenant,
        file_name,
        binary_content,
        mime_type=mime_type or None,
        category=category or None,
    )

    return JSONResponse(
        status_code=status.HTTP_201_CREATED if result.created else status.HTTP_200_OK,
        content=result.model_dump(by_alias=True),
    )


@kb_router.get("/files", response_model=KBEntryListResponse)
def list_files(
    category: str | None = Query(None),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    tenant: TenantContext = Depends(get_tenant),
    kb: KnowledgeBase = Depends(get_knowledge_base),
) -> KBEntryListResponse:
    """List the tenant's ingested documents, newest first."""
    entries = kb.list_entries(tenant, category=category, limit=limit, offset=offset)
    return KBEntryListResponse(
        entries=[EntryView.from_entry(e) for e in entries],
        limit=limit,
        offset=offset,
    )


@kb_router.get("/files/{entry_id}", response_model=EntryView)
def get_file(
    entry_id: str,
    tenant: TenantContext = Depends(get_tenant),
    kb: KnowledgeBase = Depends(get_knowledge_base),
) -> EntryView:
    return EntryView.from_entry(kb.get_entry(tenant, entry_id))


@kb_router.delete("/files/{entry_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_file(
    entry_id: str,
    tenant: TenantContext = Depends(get_tenant),
    kb: KnowledgeBase = Depends(get_knowledge_base),
) -> Response:
    """Delete an entry, its chunks and its stored blob."""
    kb.delete_entry(tenant, entry_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@kb_router.get("/query", response_model=KBQueryResponse)
def query_kb(
    q: str = Query(..., min_length=1, description="Search query"),
    k: int = Query(5, ge=1, le=MAX_TOP_K, description="Number of results"),
    tenant: TenantContext = Depends(get_tenant),
    kb: KnowledgeBase = Depends(get_knowledge_base),
) -> KBQueryResponse:
    """
    Search the tenant's knowledge base.

    Returns one result per matching entry with its best snippet, ranked by
    relevance.
    """
    logger.info(f"KB query: query='{q[:50]}...', k={k}")

    results = kb.retrieve(tenant, q, top_k=k)

    return KBQueryResponse(
        results=[
            KBQueryResult(
                entry_id=r.entry_id,
                score=r.score,
                snippet=r.snippet,
                title=r.title,
                key=r.key,
                category=r.metadata.get("category"),
            )
            for r in results
        ],
        query=q,
        k=k,
    )


@kb_router.get("/blobs/{storage_id}")
def download_blob(
    storage_id: str,
    tenant: TenantContext = Depends(get_tenant),
    kb: KnowledgeBase = Depends(get_knowledge_base),
) -> FileResponse:
    """
    Serve a stored blob for the local blob backend.

    Only blobs referenced by a ready entry of the caller's namespace are
    served; anything else is reported as missing.
    """
    if not isinstance(kb.blob_store, LocalBlobStore):
        raise HTTPException(status_code=404, detail="Blob not found")

    if not kb.owns_blob(tenant, storage_id):
        raise HTTPException(status_code=404, detail="Blob not found")

    found = kb.blob_store.open(storage_id)
    if found is None:
        raise HTTPException(status_code=404, detail="Blob not found")

    path, content_type = found
    return FileResponse(path, media_type=content_type)
