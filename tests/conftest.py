"""Shared fixtures for firebase-helpers tests."""

from __future__ import annotations

import pytest
from fakes import FakeFirestore
from firebase_helpers import FirestoreService


@pytest.fixture()
def store() -> FakeFirestore:
    return FakeFirestore()


@pytest.fixture()
def service(store: FakeFirestore) -> FirestoreService:
    return FirestoreService(store, listen_client=store)
