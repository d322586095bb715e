"""Mini README: Shared fixtures for the Project Ledger test-suite.

Every test runs against a fresh in-memory store and settings built directly
from keyword arguments, so nothing depends on the environment or on a
running database. ``RawDocumentStore`` adds access to the stored documents
themselves, for groups written by older clients.
"""

from __future__ import annotations

import copy
from typing import Any, Dict

import pytest

from projectledger.configuration import LedgerSettings
from projectledger.finance.models import Project, new_identifier
from projectledger.services import LedgerService, ProjectService
from projectledger.store import InMemoryEntryStore


class RawDocumentStore(InMemoryEntryStore):
    """In-memory store that can seed and inspect documents verbatim."""

    def insert_raw_group(self, document: Dict[str, Any]) -> str:
        """Store a document as is, e.g. one written by an older client."""

        document = copy.deepcopy(document)
        document.setdefault("_id", new_identifier())
        with self._lock:
            self._groups[document["_id"]] = document
            self._order[document["_id"]] = next(self._insertion)
        return document["_id"]

    def raw_group(self, group_id: str) -> Dict[str, Any]:
        with self._lock:
            return copy.deepcopy(self._groups[group_id])


@pytest.fixture
def settings() -> LedgerSettings:
    return LedgerSettings(
        _env_file=None,
        store_backend="memory",
        conflict_retries=3,
        default_page_size=10,
        max_page_size=50,
    )


@pytest.fixture
def store() -> RawDocumentStore:
    return RawDocumentStore()


@pytest.fixture
def ledger(store: InMemoryEntryStore, settings: LedgerSettings) -> LedgerService:
    return LedgerService(store, settings)


@pytest.fixture
def projects(store: InMemoryEntryStore) -> ProjectService:
    return ProjectService(store)


@pytest.fixture
def project(projects: ProjectService) -> Project:
    return projects.create_project({"name": "Riverside Renovation", "client": "Acme"})
