"""Firestore-backed implementation of the FirestoreServicing protocol."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Sequence
from typing import Any, TypeVar

from google.api_core.exceptions import DeadlineExceeded, GoogleAPIError, RetryError, ServiceUnavailable
from google.cloud.firestore_v1.base_query import FieldFilter

from firebase_helpers.exceptions import (
    BatchWriteError,
    ConnectionFailedError,
    DecodingError,
    DocumentNotFoundError,
    EncodingError,
    MissingSecondaryIDError,
    ObjectNotFoundError,
    PersistenceError,
    QueryError,
)
from firebase_helpers.mapping import decode, encode
from firebase_helpers.models import FirestoreModel, ModelDescriptor, describe
from firebase_helpers.subscriptions import Subscription

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=FirestoreModel)

# Firestore rejects write batches with more operations than this.
MAX_BATCH_WRITES = 500


class FirestoreService:
    """Generic CRUD and live-update operations over a Firestore database.

    ``client`` is a ``google.cloud.firestore.AsyncClient`` used for every
    one-shot read and write. ``listen_client`` is a synchronous
    ``google.cloud.firestore.Client``; it is only needed for :meth:`subscribe`
    because snapshot listeners are not available on the async client.

    Lookups by secondary identifier take the first document in the store's
    result order. Uniqueness of secondary identifiers is not enforced.
    """

    def __init__(self, client: Any, listen_client: Any = None) -> None:
        self._client = client
        self._listen_client = listen_client
        self._subscriptions: list[Subscription[Any]] = []

    async def __aenter__(self) -> FirestoreService:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    @property
    def subscriptions(self) -> list[Subscription[Any]]:
        """Active subscriptions, oldest first."""
        return list(self._subscriptions)

    # -- Reads ----------------------------------------------------------------

    async def fetch_one(self, model: type[M], id: str) -> M:
        """Fetch the document *id* from the model's collection.

        Raises:
            DocumentNotFoundError: If the document does not exist.
            DecodingError: If the stored data does not match *model*.
        """
        descriptor = describe(model)
        reference = self._collection(descriptor).document(id)
        try:
            snapshot = await reference.get()
        except GoogleAPIError as exc:
            raise _translate_error(exc, descriptor, "fetch_one", QueryError, document_id=id) from exc
        if not snapshot.exists:
            raise DocumentNotFoundError(
                entity_name=descriptor.name,
                operation="fetch_one",
                detail=f"Document '{id}' does not exist.",
                document_id=id,
            )
        return decode(model, snapshot)

    async def fetch_one_by_secondary_id(self, model: type[M], secondary_id: str) -> M:
        """Fetch the first object whose secondary identifier equals *secondary_id*.

        Raises:
            ObjectNotFoundError: If no decodable document matches.
        """
        objects = await self.fetch_many_by_secondary_id(model, secondary_id)
        if not objects:
            descriptor = describe(model)
            raise ObjectNotFoundError(
                entity_name=descriptor.name,
                operation="fetch_one_by_secondary_id",
                detail=f"No document with {descriptor.secondary_id_key} == {secondary_id!r}.",
            )
        return objects[0]

    async def fetch_many(self, model: type[M], filters: dict[str, Any]) -> list[M]:
        """Fetch every object matching all equality *filters*.

        Raises:
            DecodingError: On the first document that does not match *model*;
                no partial result is returned.
        """
        descriptor = describe(model)
        snapshots = await self._get_documents(descriptor, filters, "fetch_many")
        return [decode(model, snapshot) for snapshot in snapshots]

    async def fetch_many_by_secondary_id(
        self,
        model: type[M],
        secondary_id: str | None = None,
        filters: dict[str, Any] | None = None,
    ) -> list[M]:
        """Fetch objects by optional secondary identifier plus equality *filters*.

        Without a secondary id and filters every document in the collection is
        returned. The secondary id takes precedence over a filter on the same
        key. Documents that fail to decode are skipped.
        """
        descriptor = describe(model)
        predicates = dict(filters or {})
        if secondary_id is not None:
            predicates[descriptor.secondary_id_key] = secondary_id
        snapshots = await self._get_documents(descriptor, predicates, "fetch_many_by_secondary_id")
        objects: list[M] = []
        for snapshot in snapshots:
            try:
                objects.append(decode(model, snapshot))
            except (DecodingError, DocumentNotFoundError):
                logger.warning("Skipping undecodable %s document %s", descriptor.name, snapshot.id)
        return objects

    # -- Writes ---------------------------------------------------------------

    async def save(self, obj: FirestoreModel, id: str, individual_fields: Sequence[str] | None = None) -> None:
        """Merge *obj* into the document *id*, creating it if needed.

        With ``individual_fields`` only those keys are written; every other
        field of the stored document is left untouched.
        """
        descriptor = describe(obj)
        payload = encode(obj)
        if individual_fields is not None:
            wanted = set(individual_fields)
            payload = {key: value for key, value in payload.items() if key in wanted}
        reference = self._collection(descriptor).document(id)
        try:
            await reference.set(payload, merge=True)
        except GoogleAPIError as exc:
            raise _translate_error(exc, descriptor, "save", document_id=id) from exc
        logger.debug("Merged %d fields into %s/%s", len(payload), descriptor.collection_path, id)

    async def save_by_secondary_id(
        self,
        obj: FirestoreModel,
        secondary_id: str | None,
        override_existing: bool = True,
    ) -> str:
        """Upsert *obj* keyed by its secondary identifier.

        - If the object already carries an ``id`` it is merged into that
          document without querying.
        - Otherwise, the first document with the same secondary id is replaced
          when ``override_existing`` is true (fields missing from *obj* are
          removed from the document).
        - In every other case a new document is added.

        Returns:
            The id of the document that now holds the data.

        Raises:
            MissingSecondaryIDError: If *secondary_id* is None. Nothing is sent
                to the store.
        """
        descriptor = describe(obj)
        if secondary_id is None:
            raise MissingSecondaryIDError(
                entity_name=descriptor.name,
                operation="save_by_secondary_id",
                detail="secondary_id is required.",
            )
        payload = encode(obj)
        payload[descriptor.secondary_id_key] = secondary_id
        collection = self._collection(descriptor)

        known_id = payload.get("id")
        if known_id is not None:
            try:
                await collection.document(known_id).set(payload, merge=True)
            except GoogleAPIError as exc:
                raise _translate_error(exc, descriptor, "save_by_secondary_id", document_id=known_id) from exc
            return known_id

        matches = await self._get_documents(
            descriptor, {descriptor.secondary_id_key: secondary_id}, "save_by_secondary_id"
        )
        try:
            if matches and override_existing:
                existing = matches[0]
                await existing.reference.set(payload)
                logger.debug("Replaced %s/%s", descriptor.collection_path, existing.id)
                return existing.id
            _, reference = await collection.add(payload)
        except GoogleAPIError as exc:
            raise _translate_error(exc, descriptor, "save_by_secondary_id") from exc
        logger.debug("Added %s/%s", descriptor.collection_path, reference.id)
        return reference.id

    async def add_many(self, objects: Sequence[FirestoreModel], secondary_id: str | None) -> list[str]:
        """Reconcile *objects* against the documents sharing *secondary_id*.

        Objects whose ``id`` matches one of those documents are merged into it;
        all others are inserted as new documents under generated ids, so a
        document outside the group is never overwritten. Every write goes into
        one batch, so either all of them become visible or none does.

        Returns:
            The document ids written, in the order of *objects*.

        Raises:
            MissingSecondaryIDError: If *secondary_id* is None.
            EncodingError: If any object cannot be encoded; nothing is written.
            BatchWriteError: If the batch is too large or the commit fails.
        """
        if not objects:
            if secondary_id is None:
                raise MissingSecondaryIDError(
                    entity_name="FirestoreModel",
                    operation="add_many",
                    detail="secondary_id is required.",
                )
            return []

        descriptor = describe(objects[0])
        if secondary_id is None:
            raise MissingSecondaryIDError(
                entity_name=descriptor.name,
                operation="add_many",
                detail="secondary_id is required.",
            )
        if len(objects) > MAX_BATCH_WRITES:
            raise BatchWriteError(
                entity_name=descriptor.name,
                operation="add_many",
                detail=f"{len(objects)} writes exceed the batch limit of {MAX_BATCH_WRITES}.",
            )

        payloads: list[dict[str, Any]] = []
        for obj in objects:
            if describe(obj) != descriptor:
                raise EncodingError(
                    entity_name=descriptor.name,
                    operation="add_many",
                    detail=f"Cannot batch a {type(obj).__name__} with {descriptor.name} objects.",
                )
            payload = encode(obj)
            payload[descriptor.secondary_id_key] = secondary_id
            payloads.append(payload)

        matches = await self._get_documents(descriptor, {descriptor.secondary_id_key: secondary_id}, "add_many")
        existing_ids = {snapshot.id for snapshot in matches}

        collection = self._collection(descriptor)
        batch = self._client.batch()
        written: list[str] = []
        for payload in payloads:
            known_id = payload.get("id")
            if known_id is not None and known_id in existing_ids:
                reference = collection.document(known_id)
                batch.set(reference, payload, merge=True)
            else:
                payload.pop("id", None)
                reference = collection.document()
                batch.set(reference, payload)
            written.append(reference.id)

        try:
            await batch.commit()
        except GoogleAPIError as exc:
            raise _translate_error(exc, descriptor, "add_many", BatchWriteError) from exc
        logger.debug(
            "Committed %d writes to %s (%d merged)",
            len(written),
            descriptor.collection_path,
            len(existing_ids.intersection(written)),
        )
        return written

    async def delete(self, model: type[FirestoreModel] | FirestoreModel, id: str) -> None:
        """Delete the document *id*. A missing document is not an error."""
        descriptor = describe(model)
        try:
            await self._collection(descriptor).document(id).delete()
        except GoogleAPIError as exc:
            raise _translate_error(exc, descriptor, "delete", document_id=id) from exc

    # -- Live updates ---------------------------------------------------------

    def subscribe(
        self,
        model: type[M],
        on_error: Callable[[Exception], None] | None = None,
    ) -> Subscription[M]:
        """Listen to the model's collection and stream decoded snapshots.

        Must be called from a running event loop; snapshots are delivered to
        that loop. Each call registers its own listener.
        """
        descriptor = describe(model)
        if self._listen_client is None:
            raise RuntimeError(
                "FirestoreService.subscribe requires a synchronous Firestore client. "
                "Pass it via the `listen_client` constructor parameter."
            )
        subscription: Subscription[M] = Subscription(model, asyncio.get_running_loop(), on_error)
        collection = self._listen_client.collection(descriptor.collection_path)
        subscription.attach(collection.on_snapshot(subscription.handle_snapshot))
        self._subscriptions.append(subscription)
        logger.debug("Listening to %s (%d active)", descriptor.collection_path, len(self._subscriptions))
        return subscription

    def unsubscribe(self, subscription: Subscription[Any]) -> None:
        """Cancel *subscription* and end its iteration."""
        subscription.close()
        if subscription in self._subscriptions:
            self._subscriptions.remove(subscription)

    def close(self) -> None:
        """Cancel every active subscription."""
        for subscription in self._subscriptions:
            subscription.close()
        self._subscriptions.clear()

    async def aclose(self) -> None:
        """Cancel every active subscription without blocking the event loop."""
        subscriptions, self._subscriptions = self._subscriptions, []
        await asyncio.gather(*(subscription.aclose() for subscription in subscriptions))

    # -- Internals ------------------------------------------------------------

    def _collection(self, descriptor: ModelDescriptor) -> Any:
        return self._client.collection(descriptor.collection_path)

    async def _get_documents(
        self, descriptor: ModelDescriptor, predicates: dict[str, Any], operation: str
    ) -> list[Any]:
        """Run a conjunction of equality predicates against the collection."""
        query = self._collection(descriptor)
        for key, value in predicates.items():
            query = query.where(filter=FieldFilter(key, "==", value))
        try:
            return list(await query.get())
        except GoogleAPIError as exc:
            raise _translate_error(exc, descriptor, operation, QueryError) from exc


def _is_connection_error(exc: Exception) -> bool:
    """Check whether *exc* means Firestore could not be reached."""
    return isinstance(exc, (ServiceUnavailable, DeadlineExceeded, RetryError))


def _translate_error(
    exc: GoogleAPIError,
    descriptor: ModelDescriptor,
    operation: str,
    error_cls: type[PersistenceError] = PersistenceError,
    document_id: str | None = None,
) -> PersistenceError:
    """Map a store-client exception to the domain taxonomy and log it."""
    if _is_connection_error(exc):
        logger.error("Firestore %s connection error for %s: %s", operation, descriptor.name, type(exc).__name__)
        return ConnectionFailedError(
            entity_name=descriptor.name,
            operation=operation,
            detail="Firestore could not be reached.",
            document_id=document_id,
            cause=exc,
        )
    logger.error("Firestore %s failed for %s: %s", operation, descriptor.name, type(exc).__name__)
    return error_cls(
        entity_name=descriptor.name,
        operation=operation,
        detail="Firestore rejected the request.",
        document_id=document_id,
        cause=exc,
    )
