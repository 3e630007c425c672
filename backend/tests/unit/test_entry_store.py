"""Unit tests for the entry metadata store."""
from datetime import datetime, timedelta, timezone

import pytest
from sqlmodel import Session

from ragvault.core.errors import DuplicateContentError
from ragvault.kb.entry_store import EntryStore
from ragvault.models.kb_entries import ENTRY_PENDING, ENTRY_READY, KBEntry


def _backdate(engine, entry_id, minutes: int) -> None:
    with Session(engine) as session:
        entry = session.get(KBEntry, entry_id)
        entry.created_at = datetime.now(timezone.utc) - timedelta(minutes=minutes)
        session.add(entry)
        session.commit()


def _claim(store: EntryStore, namespace: str = "acme", content_hash: str = "h" * 64, **overrides):
    fields = dict(
        namespace=namespace,
        content_hash=content_hash,
        key="faq.txt",
        title="faq.txt",
        mime_type="text/plain",
        size_bytes=10,
        metadata={"uploadedBy": namespace, "filename": "faq.txt", "category": None},
    )
    fields.update(overrides)
    return store.claim(**fields)


class TestClaim:
    def test_claim_creates_pending_entry(self, engine):
        store = EntryStore(engine)
        entry = _claim(store)

        assert entry.status == ENTRY_PENDING
        assert entry.uploaded_by == "acme"
        assert store.get(entry.id).content_hash == "h" * 64

    def test_second_claim_same_namespace_conflicts(self, engine):
        store = EntryStore(engine)
        first = _claim(store)

        with pytest.raises(DuplicateContentError):
            _claim(store)

        assert store.find_by_hash("acme", "h" * 64).id == first.id

    def test_same_hash_other_namespace_is_allowed(self, engine):
        store = EntryStore(engine)
        a = _claim(store, namespace="acme")
        b = _claim(store, namespace="other")

        assert a.id != b.id


class TestUpdates:
    def test_attach_blob_and_mark_ready(self, engine):
        store = EntryStore(engine)
        entry = _claim(store)

        store.attach_blob(entry.id, "f" * 32)
        ready = store.mark_ready(entry.id, chunk_count=4)

        assert ready.status == ENTRY_READY
        assert ready.chunk_count == 4
        reloaded = store.get(entry.id)
        assert reloaded.storage_id == "f" * 32
        assert reloaded.metadata_json["filename"] == "faq.txt"

    def test_delete_is_idempotent(self, engine):
        store = EntryStore(engine)
        entry = _claim(store)

        assert store.delete(entry.id) is True
        assert store.delete(entry.id) is False
        assert store.get(entry.id) is None

    def test_updates_report_vanished_entry(self, engine):
        store = EntryStore(engine)
        entry = _claim(store)
        store.delete(entry.id)

        assert store.attach_blob(entry.id, "f" * 32) is None
        assert store.mark_ready(entry.id, chunk_count=1) is None


class TestQueries:
    def test_get_with_malformed_id(self, engine):
        assert EntryStore(engine).get("not-a-uuid") is None

    def test_get_many_is_namespace_scoped(self, engine):
        store = EntryStore(engine)
        mine = _claim(store, namespace="acme")
        theirs = _claim(store, namespace="other")

        found = store.get_many("acme", [str(mine.id), str(theirs.id), "garbage"])

        assert list(found) == [str(mine.id)]

    def test_list_entries_only_ready_newest_first(self, engine):
        store = EntryStore(engine)
        older = _claim(store, content_hash="a" * 64)
        newer = _claim(store, content_hash="b" * 64)
        _claim(store, content_hash="c" * 64)  # stays pending
        store.mark_ready(older.id, 1)
        store.mark_ready(newer.id, 1)
        _backdate(engine, older.id, minutes=5)

        listed = store.list_entries("acme")

        assert [e.id for e in listed] == [newer.id, older.id]

    def test_list_entries_by_category(self, engine):
        store = EntryStore(engine)
        billing = _claim(
            store,
            content_hash="a" * 64,
            metadata={"uploadedBy": "acme", "filename": "b.txt", "category": "billing"},
        )
        other = _claim(store, content_hash="b" * 64)
        store.mark_ready(billing.id, 1)
        store.mark_ready(other.id, 1)

        assert [e.id for e in store.list_entries("acme", category="billing")] == [billing.id]

    def test_list_stale_pending(self, engine):
        store = EntryStore(engine)
        pending = _claim(store, content_hash="a" * 64)
        ready = _claim(store, content_hash="b" * 64)
        store.mark_ready(ready.id, 1)

        future = datetime.now(timezone.utc) + timedelta(minutes=1)
        past = datetime.now(timezone.utc) - timedelta(minutes=1)

        assert [e.id for e in store.list_stale_pending(future)] == [pending.id]
        assert store.list_stale_pending(past) == []

    def test_find_by_storage_id_is_namespace_scoped(self, engine):
        store = EntryStore(engine)
        mine = _claim(store, namespace="acme")
        store.attach_blob(mine.id, "a" * 32)
        store.mark_ready(mine.id, 1)
        pending = _claim(store, namespace="acme", content_hash="p" * 64)
        store.attach_blob(pending.id, "b" * 32)

        assert store.find_by_storage_id("acme", "a" * 32).id == mine.id
        assert store.find_by_storage_id("other", "a" * 32) is None
        # Blobs of in-flight ingestions are not served
        assert store.find_by_storage_id("acme", "b" * 32) is None
