"""Firebase Helpers: typed CRUD and live updates on top of Firestore."""

from firebase_helpers.connections import (
    FirestoreSettings,
    create_clients,
    load_settings,
    make_default_firestore_service,
)
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
from firebase_helpers.protocols import FirestoreServicing
from firebase_helpers.service import FirestoreService
from firebase_helpers.subscriptions import Subscription
from firebase_helpers.timestamps import format_timestamp, parse_timestamp

__all__ = [
    "BatchWriteError",
    "ConnectionFailedError",
    "DecodingError",
    "DocumentNotFoundError",
    "EncodingError",
    "FirestoreModel",
    "FirestoreService",
    "FirestoreServicing",
    "FirestoreSettings",
    "MissingSecondaryIDError",
    "ModelDescriptor",
    "ObjectNotFoundError",
    "PersistenceError",
    "QueryError",
    "Subscription",
    "create_clients",
    "decode",
    "describe",
    "encode",
    "format_timestamp",
    "load_settings",
    "make_default_firestore_service",
    "parse_timestamp",
]
