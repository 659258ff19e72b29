"""Conversion between model instances and Firestore field-maps."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, TypeVar
from uuid import UUID

from pydantic import ValidationError

from firebase_helpers.exceptions import DecodingError, DocumentNotFoundError, EncodingError
from firebase_helpers.models import FirestoreModel
from firebase_helpers.timestamps import format_timestamp

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=FirestoreModel)

_SCALAR_TYPES = (str, int, float, bool, bytes)


def encode(obj: FirestoreModel) -> dict[str, Any]:
    """Convert *obj* into a field-map ready to be written to the store.

    Unset optional fields (``None``) are left out of the payload, so a model
    without an ``id`` produces a payload without an ``id`` key.
    Datetimes must be timezone-aware: they are stored in UTC and decode back
    as aware UTC values, so a naive value could not round-trip.

    Raises:
        EncodingError: If *obj* is not a model, or holds a value with no
            store representation (including a naive datetime).
    """
    if not isinstance(obj, FirestoreModel):
        raise EncodingError(
            entity_name=type(obj).__name__,
            operation="encode",
            detail="Only FirestoreModel instances can be encoded.",
        )
    entity_name = type(obj).__name__
    dumped = obj.model_dump(by_alias=True, exclude_none=True)
    if not isinstance(dumped, Mapping):
        raise EncodingError(
            entity_name=entity_name,
            operation="encode",
            detail="Unable to convert object to a field-map.",
        )
    return {key: _to_store_value(value, entity_name, key) for key, value in dumped.items()}


def _to_store_value(value: Any, entity_name: str, path: str) -> Any:
    if isinstance(value, Enum):
        return _to_store_value(value.value, entity_name, path)
    if value is None or isinstance(value, _SCALAR_TYPES):
        return value
    if isinstance(value, datetime):
        if value.tzinfo is None or value.utcoffset() is None:
            raise EncodingError(
                entity_name=entity_name,
                operation="encode",
                detail=f"Field '{path}' holds a naive datetime; attach a timezone before saving.",
            )
        return format_timestamp(value)
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, (UUID, Decimal)):
        return str(value)
    if isinstance(value, Mapping):
        result: dict[str, Any] = {}
        for key, item in value.items():
            if not isinstance(key, str):
                raise EncodingError(
                    entity_name=entity_name,
                    operation="encode",
                    detail=f"Field '{path}' has a non-string key {key!r}.",
                )
            result[key] = _to_store_value(item, entity_name, f"{path}.{key}")
        return result
    if isinstance(value, (list, tuple, set, frozenset)):
        return [_to_store_value(item, entity_name, f"{path}[{i}]") for i, item in enumerate(value)]
    raise EncodingError(
        entity_name=entity_name,
        operation="encode",
        detail=f"Field '{path}' holds a {type(value).__name__}, which has no document representation.",
    )


def decode(model: type[M], snapshot: Any) -> M:
    """Build a *model* instance from a document snapshot.

    The snapshot's id is injected as ``id`` unless the stored data already
    carries an ``id`` field.

    Raises:
        DocumentNotFoundError: If the snapshot has no data.
        DecodingError: If the data does not validate against *model*.
    """
    data = snapshot.to_dict()
    if data is None:
        raise DocumentNotFoundError(
            entity_name=model.__name__,
            operation="decode",
            detail=f"Document '{snapshot.id}' has no data.",
            document_id=snapshot.id,
        )
    data.setdefault("id", snapshot.id)
    try:
        return model.model_validate(data)
    except ValidationError as exc:
        logger.debug("Decoding %s document %s failed: %s", model.__name__, snapshot.id, exc)
        raise DecodingError(
            entity_name=model.__name__,
            operation="decode",
            detail=f"Document '{snapshot.id}' does not match the model schema ({exc.error_count()} errors).",
            document_id=snapshot.id,
            cause=exc,
        ) from exc
