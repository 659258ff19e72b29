"""FirestoreServicing protocol: the public surface of the document service."""

from __future__ import annotations

from collections.abc import Callable, Sequence
from typing import TYPE_CHECKING, Any, Protocol, TypeVar, runtime_checkable

from firebase_helpers.models import FirestoreModel

if TYPE_CHECKING:
    from firebase_helpers.subscriptions import Subscription

M = TypeVar("M", bound=FirestoreModel)


@runtime_checkable
class FirestoreServicing(Protocol):
    """Generic CRUD and live-update operations for any ``FirestoreModel``.

    Host applications depend on this protocol so that tests can substitute a
    fake implementation for the Firestore-backed one.
    """

    async def fetch_one(self, model: type[M], id: str) -> M:
        """Fetch a single object by primary id."""
        ...

    async def fetch_one_by_secondary_id(self, model: type[M], secondary_id: str) -> M:
        """Fetch the first object whose secondary identifier equals *secondary_id*."""
        ...

    async def fetch_many(self, model: type[M], filters: dict[str, Any]) -> list[M]:
        """Fetch every object matching all equality *filters*; fail on undecodable documents."""
        ...

    async def fetch_many_by_secondary_id(
        self,
        model: type[M],
        secondary_id: str | None = None,
        filters: dict[str, Any] | None = None,
    ) -> list[M]:
        """Fetch objects by optional secondary id plus filters, skipping undecodable documents."""
        ...

    async def save(self, obj: FirestoreModel, id: str, individual_fields: Sequence[str] | None = None) -> None:
        """Merge *obj* into the document *id*."""
        ...

    async def save_by_secondary_id(
        self,
        obj: FirestoreModel,
        secondary_id: str | None,
        override_existing: bool = True,
    ) -> str:
        """Upsert *obj* keyed by its secondary identifier and return the document id."""
        ...

    async def add_many(self, objects: Sequence[FirestoreModel], secondary_id: str | None) -> list[str]:
        """Reconcile *objects* against stored documents in one atomic batch."""
        ...

    async def delete(self, model: type[FirestoreModel] | FirestoreModel, id: str) -> None:
        """Delete the document *id*."""
        ...

    def subscribe(
        self,
        model: type[M],
        on_error: Callable[[Exception], None] | None = None,
    ) -> Subscription[M]:
        """Stream decoded snapshots of the model's collection."""
        ...

    def unsubscribe(self, subscription: Subscription[Any]) -> None:
        """Cancel a subscription returned by :meth:`subscribe`."""
        ...
