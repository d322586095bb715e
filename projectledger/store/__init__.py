"""Mini README: Persistence backends for projects and entry groups.

``create_store`` builds the backend named by ``LedgerSettings.store_backend``.
The in-memory store needs no services and is what the tests use; the Mongo
store talks to the collections written by earlier versions of the app.
"""

from __future__ import annotations

from typing import Optional

from ..configuration import LedgerSettings, StoreBackend, get_settings
from ..logging_utils import get_logger
from .base import EntryStore
from .memory import InMemoryEntryStore
from .mongo import MongoEntryStore

LOGGER = get_logger(__name__)


def create_store(settings: Optional[LedgerSettings] = None) -> EntryStore:
    """Instantiate the configured store backend."""

    settings = settings or get_settings()
    LOGGER.info("Creating '%s' entry store", settings.store_backend.value)
    if settings.store_backend is StoreBackend.MONGO:
        return MongoEntryStore(
            settings.mongo_uri,
            settings.mongo_database,
            timeout_ms=settings.store_timeout_ms,
        )
    return InMemoryEntryStore()


__all__ = ["EntryStore", "InMemoryEntryStore", "MongoEntryStore", "create_store"]
