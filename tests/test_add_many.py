"""Tests for batch reconciliation in FirestoreService.add_many."""

from __future__ import annotations

import pytest
from fakes import FakeFirestore
from firebase_helpers import FirestoreService
from firebase_helpers.exceptions import BatchWriteError, EncodingError, MissingSecondaryIDError
from firebase_helpers.service import MAX_BATCH_WRITES
from google.api_core.exceptions import Aborted
from sample_models import Attachment, Person


async def test_add_many_inserts_new_documents(service: FirestoreService, store: FakeFirestore):
    ids = await service.add_many([Person(name="Ann"), Person(name="Ben")], "X")

    assert len(ids) == 2
    docs = store.documents("people")
    assert [docs[i]["name"] for i in ids] == ["Ann", "Ben"]
    assert all(docs[i]["owner_id"] == "X" for i in ids)
    assert store.requests.count("commit") == 1


async def test_add_many_merges_known_ids_that_match(service: FirestoreService, store: FakeFirestore):
    store.put("people", "p1", {"name": "Ann", "age": 30, "nickname": "A", "owner_id": "X"})

    ids = await service.add_many([Person(id="p1", name="Ann", age=31), Person(name="Ben")], "X")

    assert ids[0] == "p1"
    docs = store.documents("people")
    assert docs["p1"] == {"id": "p1", "name": "Ann", "age": 31, "nickname": "A", "owner_id": "X"}
    assert docs[ids[1]]["name"] == "Ben"
    assert len(docs) == 2


async def test_add_many_leaves_documents_of_other_groups_untouched(service: FirestoreService, store: FakeFirestore):
    other = {"name": "Other", "age": 40, "nickname": "O", "owner_id": "Y"}
    store.put("people", "p1", other)

    ids = await service.add_many([Person(id="p1", name="Ann")], "X")

    docs = store.documents("people")
    assert docs["p1"] == other
    assert ids[0] != "p1"
    assert docs[ids[0]] == {"name": "Ann", "age": 0, "owner_id": "X"}


async def test_add_many_queries_once(service: FirestoreService, store: FakeFirestore):
    await service.add_many([Person(name=str(i)) for i in range(5)], "X")
    assert store.requests == ["query", "commit"]


async def test_add_many_missing_secondary_id(service: FirestoreService, store: FakeFirestore):
    with pytest.raises(MissingSecondaryIDError):
        await service.add_many([Person(name="Ann")], None)
    with pytest.raises(MissingSecondaryIDError):
        await service.add_many([], None)
    assert store.requests == []


async def test_add_many_empty_list_is_a_no_op(service: FirestoreService, store: FakeFirestore):
    assert await service.add_many([], "X") == []
    assert store.requests == []


async def test_add_many_encoding_failure_writes_nothing(service: FirestoreService, store: FakeFirestore):
    objects = [
        Attachment(label="ok"),
        Attachment(label="broken", payload=object()),
        Attachment(label="also ok"),
    ]
    with pytest.raises(EncodingError):
        await service.add_many(objects, "X")
    assert store.documents("attachments") == {}
    assert "commit" not in store.requests


async def test_add_many_rejects_mixed_models(service: FirestoreService, store: FakeFirestore):
    with pytest.raises(EncodingError, match="Cannot batch"):
        await service.add_many([Person(name="Ann"), Attachment(label="x")], "X")
    assert store.requests == []


async def test_add_many_failed_commit_leaves_no_documents(service: FirestoreService, store: FakeFirestore):
    store.fail_commit = Aborted("contention")

    with pytest.raises(BatchWriteError) as exc_info:
        await service.add_many([Person(name="Ann"), Person(name="Ben")], "X")

    assert exc_info.value.operation == "add_many"
    assert isinstance(exc_info.value.__cause__, Aborted)
    assert store.documents("people") == {}


async def test_add_many_rejects_oversized_batch(service: FirestoreService, store: FakeFirestore):
    objects = [Person(name=str(i)) for i in range(MAX_BATCH_WRITES + 1)]
    with pytest.raises(BatchWriteError, match="batch limit"):
        await service.add_many(objects, "X")
    assert store.requests == []
