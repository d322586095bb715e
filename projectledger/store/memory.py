"""Mini README: In-memory document store.

Structure:
    * InMemoryEntryStore - keeps plain documents in dictionaries and copies
      them on every read and write, like a real document database would.

Used by the test-suite and by the ``memory`` backend for demos. A lock makes
each operation atomic so the compare-and-swap on ``revision`` behaves the
same as MongoDB's conditional update when several requests race.
"""

from __future__ import annotations

import copy
import itertools
import threading
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional

from ..errors import ConflictError, NotFoundError
from ..finance.models import EntryGroup, Project, new_identifier, utcnow
from ..logging_utils import get_logger
from .base import EntryStore

LOGGER = get_logger(__name__)

# MongoDB sorts a missing createdAt below every date.
UNDATED = datetime.min.replace(tzinfo=timezone.utc)


class InMemoryEntryStore(EntryStore):
    """Dictionary-backed store holding documents rather than records."""

    backend_name = "memory"

    def __init__(self, legacy_records: Optional[Iterable[Dict[str, Any]]] = None) -> None:
        self._projects: Dict[str, Dict[str, Any]] = {}
        self._groups: Dict[str, Dict[str, Any]] = {}
        self._legacy: List[Dict[str, Any]] = [dict(record) for record in legacy_records or []]
        self._insertion = itertools.count()
        self._order: Dict[str, int] = {}
        self._lock = threading.RLock()
        LOGGER.debug("In-memory store initialised with %s legacy records", len(self._legacy))

    def _newest_first(self, documents: Iterable[Dict[str, Any]]) -> List[Dict[str, Any]]:
        """Order like MongoDB: createdAt descending, later inserts first on ties."""

        return sorted(
            documents,
            key=lambda document: (document.get("createdAt") or UNDATED, self._order[document["_id"]]),
            reverse=True,
        )

    # -- projects -----------------------------------------------------------

    def list_projects(self) -> List[Project]:
        """Every project document, newest first."""

        with self._lock:
            documents = self._newest_first(copy.deepcopy(list(self._projects.values())))
        return [Project.from_document(document) for document in documents]

    def find_project(self, project_id: str) -> Project:
        """Return a copy of one project or raise ``NotFoundError``."""

        with self._lock:
            document = self._projects.get(project_id)
            if document is None:
                raise NotFoundError("Project", project_id)
            return Project.from_document(copy.deepcopy(document))

    def find_project_by_name(self, name: str) -> Optional[Project]:
        """Exact, case-sensitive name match."""

        with self._lock:
            for document in self._projects.values():
                if document.get("name") == name:
                    return Project.from_document(copy.deepcopy(document))
        return None

    def create_project(self, project: Project) -> Project:
        """Insert a project, assigning an id and creation time when missing."""

        document = project.to_document()
        document["_id"] = document["_id"] or new_identifier()
        document["createdAt"] = document["createdAt"] or utcnow()
        with self._lock:
            self._projects[document["_id"]] = copy.deepcopy(document)
            self._order[document["_id"]] = next(self._insertion)
        return Project.from_document(document)

    def save_project(self, project: Project) -> Project:
        """Overwrite a project document; projects carry no revision."""

        document = project.to_document()
        with self._lock:
            if project.project_id not in self._projects:
                raise NotFoundError("Project", project.project_id)
            self._projects[project.project_id] = copy.deepcopy(document)
        return Project.from_document(document)

    def delete_project(self, project_id: str) -> None:
        """Remove the project document only; its groups are left to the caller."""

        with self._lock:
            if self._projects.pop(project_id, None) is None:
                raise NotFoundError("Project", project_id)

    # -- entry groups -------------------------------------------------------

    def find_entry_group(self, group_id: str) -> EntryGroup:
        """Return a copy of one group or raise ``NotFoundError``."""

        with self._lock:
            document = self._groups.get(group_id)
            if document is None:
                raise NotFoundError("Entry", group_id)
            return EntryGroup.from_document(copy.deepcopy(document))

    def find_entry_groups(self, project_id: Optional[str] = None) -> List[EntryGroup]:
        """Groups of one project (or all), newest first."""

        with self._lock:
            documents = [
                copy.deepcopy(document)
                for document in self._groups.values()
                if project_id is None or document.get("projectId") == project_id
            ]
            documents = self._newest_first(documents)
        return [EntryGroup.from_document(document) for document in documents]

    def create_entry_group(self, group: EntryGroup) -> EntryGroup:
        """Insert a group at revision 0."""

        document = group.to_document()
        document["_id"] = document["_id"] or new_identifier()
        document["createdAt"] = document["createdAt"] or utcnow()
        document["updatedAt"] = document["updatedAt"] or document["createdAt"]
        document["revision"] = 0
        with self._lock:
            self._groups[document["_id"]] = copy.deepcopy(document)
            self._order[document["_id"]] = next(self._insertion)
        return EntryGroup.from_document(document)

    def save_entry_group(self, group: EntryGroup, expected_revision: int) -> EntryGroup:
        """Compare-and-swap on ``revision`` under the store lock."""

        document = group.to_document()
        document["revision"] = expected_revision + 1
        with self._lock:
            stored = self._groups.get(group.group_id)
            if stored is None:
                raise NotFoundError("Entry", group.group_id)
            if int(stored.get("revision") or 0) != expected_revision:
                raise ConflictError(group.group_id, expected_revision)
            self._groups[group.group_id] = copy.deepcopy(document)
        return EntryGroup.from_document(document)

    def delete_entry_group(self, group_id: str, expected_revision: Optional[int] = None) -> None:
        """Delete a group, checking ``expected_revision`` when given."""

        with self._lock:
            stored = self._groups.get(group_id)
            if stored is None:
                raise NotFoundError("Entry", group_id)
            if expected_revision is not None and int(stored.get("revision") or 0) != expected_revision:
                raise ConflictError(group_id, expected_revision)
            del self._groups[group_id]

    def delete_entry_groups_for_project(self, project_id: str) -> int:
        """Drop every group of a project and return how many went."""

        with self._lock:
            doomed = [
                group_id
                for group_id, document in self._groups.items()
                if document.get("projectId") == project_id
            ]
            for group_id in doomed:
                del self._groups[group_id]
        return len(doomed)

    def find_legacy_records(self) -> List[Dict[str, Any]]:
        """Copies of the legacy records given to the constructor."""

        with self._lock:
            return copy.deepcopy(self._legacy)

