"""Tenant-scoped knowledge base: ingestion, deduplication and semantic retrieval."""

__version__ = "0.1.0"
