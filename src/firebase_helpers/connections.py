"""Firestore connection settings, loaded from .firebase/firestore.json."""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Any

from google.cloud import firestore
from google.oauth2 import service_account
from pydantic import BaseModel, Field, field_validator

from firebase_helpers.service import FirestoreService

logger = logging.getLogger(__name__)

DEFAULT_DATABASE = "(default)"
SETTINGS_PATH = Path(".firebase") / "firestore.json"

# Environment variables that override file settings, in precedence order.
_PROJECT_ENV_VARS = ("GOOGLE_CLOUD_PROJECT", "GCP_PROJECT")
_DATABASE_ENV_VAR = "FIRESTORE_DATABASE"
_EMULATOR_ENV_VAR = "FIRESTORE_EMULATOR_HOST"


class FirestoreSettings(BaseModel):
    """Connection configuration for one Firestore database."""

    project: str | None = Field(default=None, description="GCP project id. Resolved from ADC when omitted.")
    database: str = Field(default=DEFAULT_DATABASE, min_length=1, description="Firestore database id.")
    emulator_host: str | None = Field(default=None, description="host:port of a local Firestore emulator.")
    credentials_file: str | None = Field(default=None, description="Path to a service-account JSON key.")

    model_config = {"extra": "forbid"}

    @field_validator("credentials_file")
    @classmethod
    def validate_credentials_file(cls, v: str | None) -> str | None:
        """Ensure the service-account key file exists."""
        if v is not None and not Path(v).is_file():
            raise ValueError(f"Credentials file '{v}' does not exist.")
        return v


def load_settings(project_root: str | Path | None = None) -> FirestoreSettings:
    """Load firestore.json from the .firebase directory.

    Environment variables (``GOOGLE_CLOUD_PROJECT``/``GCP_PROJECT``,
    ``FIRESTORE_DATABASE``, ``FIRESTORE_EMULATOR_HOST``) override values from
    the file. Falls back to defaults when the file doesn't exist.
    """
    if project_root is None:
        project_root = Path(os.getenv("FIREBASE_HELPERS_ROOT", "."))
    else:
        project_root = Path(project_root)

    config_path = project_root / SETTINGS_PATH
    data: dict[str, Any] = {}
    if config_path.exists():
        data = json.loads(config_path.read_text(encoding="utf-8"))

    project = next((os.environ[name] for name in _PROJECT_ENV_VARS if os.getenv(name)), None)
    if project:
        data["project"] = project
    if os.getenv(_DATABASE_ENV_VAR):
        data["database"] = os.environ[_DATABASE_ENV_VAR]
    if os.getenv(_EMULATOR_ENV_VAR):
        data["emulator_host"] = os.environ[_EMULATOR_ENV_VAR]

    return FirestoreSettings.model_validate(data)


def create_clients(settings: FirestoreSettings) -> tuple[firestore.AsyncClient, firestore.Client]:
    """Build the async data client and the synchronous listener client.

    The Firestore client library only picks up an emulator from the
    environment, so ``emulator_host`` is exported as ``FIRESTORE_EMULATOR_HOST``
    unless that variable is already set.
    """
    if settings.emulator_host:
        os.environ.setdefault(_EMULATOR_ENV_VAR, settings.emulator_host)
        logger.info("Using Firestore emulator at %s", os.environ[_EMULATOR_ENV_VAR])

    kwargs: dict[str, Any] = {"project": settings.project, "database": settings.database}
    if settings.credentials_file:
        kwargs["credentials"] = service_account.Credentials.from_service_account_file(settings.credentials_file)

    return firestore.AsyncClient(**kwargs), firestore.Client(**kwargs)


def make_default_firestore_service(settings: FirestoreSettings | None = None) -> FirestoreService:
    """Create a :class:`FirestoreService` from *settings* (or :func:`load_settings`)."""
    if settings is None:
        settings = load_settings()
    client, listen_client = create_clients(settings)
    return FirestoreService(client, listen_client=listen_client)
