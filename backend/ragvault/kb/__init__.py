"""
Knowledge Base module: tenant-isolated document ingestion and retrieval.

Provides:
- Content fingerprinting and MIME detection
- Text extraction, chunking and embedding
- Per-namespace Qdrant collections with entry metadata in SQL
- Idempotent uploads, namespace-scoped search and cascading deletes
"""
