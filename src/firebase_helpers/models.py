"""Base model and descriptor for types stored in Firestore."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, ClassVar, get_args

from pydantic import BaseModel, ValidationInfo, field_validator

from firebase_helpers.timestamps import is_timestamp, parse_timestamp


class FirestoreModel(BaseModel):
    """Base class for every storable type.

    Subclasses declare their fields as regular pydantic fields; the declared
    fields are the document schema. Two class-level attributes locate the
    documents in the store::

        class Workout(FirestoreModel):
            collection_path: ClassVar[str] = "workouts"
            secondary_id_key: ClassVar[str] = "user_id"

            title: str
            started_at: datetime

    ``id`` holds the primary document identifier once the object has been
    stored (or when the caller chooses the identifier up front).
    """

    collection_path: ClassVar[str] = ""
    secondary_id_key: ClassVar[str] = ""

    id: str | None = None

    @field_validator("*", mode="before")
    @classmethod
    def decode_timestamps(cls, value: Any, info: ValidationInfo) -> Any:
        """Parse fixed-format timestamp strings for datetime-typed fields."""
        if not isinstance(value, str) or not is_timestamp(value):
            return value
        field = cls.model_fields.get(info.field_name or "")
        if field is None or not _accepts_datetime(field.annotation):
            return value
        return parse_timestamp(value)


def _accepts_datetime(annotation: Any) -> bool:
    if annotation is datetime:
        return True
    return any(_accepts_datetime(arg) for arg in get_args(annotation))


@dataclass(frozen=True)
class ModelDescriptor:
    """Storage location metadata for a model type."""

    name: str
    collection_path: str
    secondary_id_key: str


def describe(model: type[FirestoreModel] | FirestoreModel) -> ModelDescriptor:
    """Return the :class:`ModelDescriptor` for a model class or instance.

    Raises:
        TypeError: If *model* is not a ``FirestoreModel`` or does not declare
            both ``collection_path`` and ``secondary_id_key``.
    """
    cls: Any = model if isinstance(model, type) else type(model)
    if not issubclass(cls, FirestoreModel):
        raise TypeError(f"{cls.__name__} is not a FirestoreModel subclass")
    if not cls.collection_path:
        raise TypeError(f"{cls.__name__} must declare a non-empty collection_path")
    if not cls.secondary_id_key:
        raise TypeError(f"{cls.__name__} must declare a non-empty secondary_id_key")
    return ModelDescriptor(
        name=cls.__name__,
        collection_path=cls.collection_path,
        secondary_id_key=cls.secondary_id_key,
    )
