"""Unit tests for the retrieval engine."""
from datetime import datetime, timedelta, timezone

import pytest
from sqlmodel import Session

from ragvault.kb.chunk_index import ChunkHit
from ragvault.kb.fingerprint import compute_content_hash
from ragvault.models.kb_entries import KBEntry


class TestRetrieve:
    def test_relevant_entry_ranks_first(self, knowledge_base, acme, faq_bytes, shipping_bytes):
        faq = knowledge_base.add_document(acme, "faq.txt", faq_bytes)
        knowledge_base.add_document(acme, "shipping.txt", shipping_bytes)

        results = knowledge_base.retrieve(acme, "refund policy", top_k=5)

        assert results[0].entry_id == faq.entry_id
        assert results[0].title == "faq.txt"
        assert "refund" in results[0].snippet.lower()
        assert [r.score for r in results] == sorted((r.score for r in results), reverse=True)

    def test_other_namespace_never_returned(self, knowledge_base, acme, other, faq_bytes, shipping_bytes):
        knowledge_base.add_document(acme, "shipping.txt", shipping_bytes)
        theirs = knowledge_base.add_document(other, "faq.txt", faq_bytes)

        results = knowledge_base.retrieve(acme, "refund policy", top_k=10)

        assert theirs.entry_id not in {r.entry_id for r in results}

    def test_chunks_grouped_per_entry(self, knowledge_base, acme):
        text = ("Refund policy details. " * 60).encode()
        entry = knowledge_base.add_document(acme, "long.txt", text)

        results = knowledge_base.retrieve(acme, "refund policy", top_k=4)

        assert len(results) == 1
        assert results[0].entry_id == entry.entry_id
        assert 1 < len(results[0].chunks) <= 4
        assert results[0].score == results[0].chunks[0].score

    def test_unknown_namespace_returns_nothing(self, knowledge_base, acme):
        assert knowledge_base.retrieve(acme, "anything", top_k=3) == []

    def test_blank_query_returns_nothing(self, knowledge_base, acme, faq_bytes, embedder):
        knowledge_base.add_document(acme, "faq.txt", faq_bytes)
        calls = len(embedder.calls)

        assert knowledge_base.retrieve(acme, "   ", top_k=3) == []
        assert len(embedder.calls) == calls

    @pytest.mark.parametrize("top_k", [0, 51])
    def test_top_k_bounds(self, knowledge_base, acme, top_k):
        with pytest.raises(ValueError):
            knowledge_base.retrieve(acme, "refund", top_k=top_k)

    def test_pending_entry_is_invisible(self, knowledge_base, acme, faq_bytes):
        pending = knowledge_base.entries.claim(
            namespace="acme",
            content_hash=compute_content_hash(faq_bytes),
            key="faq.txt",
            title="faq.txt",
            mime_type="text/plain",
            size_bytes=len(faq_bytes),
            metadata={"uploadedBy": "acme", "filename": "faq.txt", "category": None},
        )
        # Chunks written, entry not yet finalized
        knowledge_base.chunks.index("acme", str(pending.id), faq_bytes.decode())

        assert knowledge_base.retrieve(acme, "refund policy", top_k=5) == []


class TestRanking:
    def test_ties_broken_by_recency(self, knowledge_base, acme, engine):
        older = knowledge_base.add_document(acme, "a.txt", b"refund policy")
        newer = knowledge_base.add_document(acme, "b.txt", b"Refund policy!")
        with Session(engine) as session:
            row = session.get(KBEntry, knowledge_base.entries.get(older.entry_id).id)
            row.created_at = datetime.now(timezone.utc) - timedelta(days=1)
            session.add(row)
            session.commit()

        # Both normalize to the same bag of words, so scores tie
        results = knowledge_base.retrieve(acme, "refund policy", top_k=5)

        assert [r.entry_id for r in results] == [newer.entry_id, older.entry_id]
        assert results[0].score == pytest.approx(results[1].score)

    def test_hydration_drops_foreign_hits(self, knowledge_base, acme, other, faq_bytes):
        theirs = knowledge_base.add_document(other, "faq.txt", faq_bytes)
        forged = [ChunkHit(entry_id=theirs.entry_id, chunk_id="c1", score=0.9, order=0, content="x")]

        assert knowledge_base.retrieval._hydrate("acme", forged, top_k=5) == []
