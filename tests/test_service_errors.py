"""Tests for FirestoreService error handling. Verifies that google.api_core
exceptions are caught and re-raised as domain PersistenceError subclasses."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import pytest
from firebase_helpers import FirestoreService
from firebase_helpers.exceptions import ConnectionFailedError, PersistenceError, QueryError
from firebase_helpers.service import _is_connection_error
from google.api_core.exceptions import (
    DeadlineExceeded,
    InternalServerError,
    PermissionDenied,
    RetryError,
    ServiceUnavailable,
)
from sample_models import Person


def _make_service(collection: MagicMock) -> FirestoreService:
    """Create a FirestoreService whose client returns *collection*."""
    client = MagicMock()
    client.collection = MagicMock(return_value=collection)
    return FirestoreService(client)


def _collection_with_document(document: MagicMock) -> MagicMock:
    collection = MagicMock()
    collection.document = MagicMock(return_value=document)
    return collection


async def test_fetch_one_connection_error():
    document = MagicMock()
    document.get = AsyncMock(side_effect=ServiceUnavailable("down"))
    service = _make_service(_collection_with_document(document))

    with pytest.raises(ConnectionFailedError) as exc_info:
        await service.fetch_one(Person, "p1")
    assert exc_info.value.entity_name == "Person"
    assert exc_info.value.operation == "fetch_one"
    assert exc_info.value.document_id == "p1"
    assert str(exc_info.value).startswith("[Person/p1] fetch_one failed")


async def test_fetch_one_generic_error_raises_query_error():
    document = MagicMock()
    document.get = AsyncMock(side_effect=InternalServerError("boom"))
    service = _make_service(_collection_with_document(document))

    with pytest.raises(QueryError):
        await service.fetch_one(Person, "p1")


async def test_fetch_many_error_raises_query_error(caplog: pytest.LogCaptureFixture):
    collection = MagicMock()
    collection.get = AsyncMock(side_effect=InternalServerError("boom"))
    service = _make_service(collection)

    with pytest.raises(QueryError) as exc_info:
        await service.fetch_many(Person, {})
    assert exc_info.value.operation == "fetch_many"
    assert "Firestore fetch_many failed for Person: InternalServerError" in caplog.text


async def test_fetch_many_passes_equality_filters():
    query = MagicMock()
    query.get = AsyncMock(return_value=[])
    collection = MagicMock()
    collection.where = MagicMock(return_value=query)
    service = _make_service(collection)

    assert await service.fetch_many(Person, {"age": 3}) == []
    field_filter = collection.where.call_args.kwargs["filter"]
    assert (field_filter.field_path, field_filter.op_string, field_filter.value) == ("age", "==", 3)


async def test_save_permission_denied_raises_persistence_error():
    document = MagicMock()
    document.set = AsyncMock(side_effect=PermissionDenied("nope"))
    service = _make_service(_collection_with_document(document))

    with pytest.raises(PersistenceError) as exc_info:
        await service.save(Person(name="Ann"), id="p1")
    assert type(exc_info.value) is PersistenceError
    assert exc_info.value.operation == "save"


async def test_save_by_secondary_id_add_failure():
    query = MagicMock()
    query.get = AsyncMock(return_value=[])
    collection = MagicMock()
    collection.where = MagicMock(return_value=query)
    collection.add = AsyncMock(side_effect=DeadlineExceeded("slow"))
    service = _make_service(collection)

    with pytest.raises(ConnectionFailedError):
        await service.save_by_secondary_id(Person(name="Ann"), "X")


async def test_delete_connection_error():
    document = MagicMock()
    document.delete = AsyncMock(side_effect=DeadlineExceeded("slow"))
    service = _make_service(_collection_with_document(document))

    with pytest.raises(ConnectionFailedError):
        await service.delete(Person, "p1")


async def test_non_store_errors_propagate_unchanged():
    document = MagicMock()
    document.get = AsyncMock(side_effect=RuntimeError("bug"))
    service = _make_service(_collection_with_document(document))

    with pytest.raises(RuntimeError, match="bug"):
        await service.fetch_one(Person, "p1")


def test_is_connection_error():
    assert _is_connection_error(ServiceUnavailable("x"))
    assert _is_connection_error(DeadlineExceeded("x"))
    assert _is_connection_error(RetryError("gave up", cause=ServiceUnavailable("x")))
    assert not _is_connection_error(PermissionDenied("x"))
    assert not _is_connection_error(ValueError("x"))
