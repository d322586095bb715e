"""Mini README: Abstract document store used by the ledger services.

Structure:
    * EntryStore - interface over the ``projects``, ``entries`` and legacy
      ``pnlentries`` collections, exchanging domain records.

Implementations convert between stored documents and records with the
``from_document``/``to_document`` helpers of ``projectledger.finance.models``,
so label and amount normalisation happens at this boundary and nowhere else.
Writes to entry groups are compare-and-swap on ``revision``: a save succeeds
only if the stored revision still equals the one the caller read.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

from ..finance.models import EntryGroup, Project
from ..logging_utils import get_logger

LOGGER = get_logger(__name__)


class EntryStore(ABC):
    """Base interface for project and entry group persistence."""

    backend_name: str = "generic"

    # -- projects -----------------------------------------------------------

    @abstractmethod
    def list_projects(self) -> List[Project]:
        """Return every project, newest first."""

    @abstractmethod
    def find_project(self, project_id: str) -> Project:
        """Return a project or raise ``NotFoundError``."""

    @abstractmethod
    def find_project_by_name(self, name: str) -> Optional[Project]:
        """Return the project with exactly this name, if any."""

    @abstractmethod
    def create_project(self, project: Project) -> Project:
        """Insert a new project; the returned record carries the stored id."""

    @abstractmethod
    def save_project(self, project: Project) -> Project:
        """Overwrite an existing project or raise ``NotFoundError``."""

    @abstractmethod
    def delete_project(self, project_id: str) -> None:
        """Remove a project document or raise ``NotFoundError``."""

    # -- entry groups -------------------------------------------------------

    @abstractmethod
    def find_entry_group(self, group_id: str) -> EntryGroup:
        """Return an entry group or raise ``NotFoundError``."""

    @abstractmethod
    def find_entry_groups(self, project_id: Optional[str] = None) -> List[EntryGroup]:
        """Return groups (optionally of one project), newest first."""

    @abstractmethod
    def create_entry_group(self, group: EntryGroup) -> EntryGroup:
        """Insert a new group at revision 0."""

    @abstractmethod
    def save_entry_group(self, group: EntryGroup, expected_revision: int) -> EntryGroup:
        """Replace a group if its stored revision equals ``expected_revision``.

        Returns the group at its new revision. Raises ``ConflictError`` when
        the stored revision differs and ``NotFoundError`` when the group is
        gone.
        """

    @abstractmethod
    def delete_entry_group(self, group_id: str, expected_revision: Optional[int] = None) -> None:
        """Remove a group, optionally only at a given revision."""

    @abstractmethod
    def delete_entry_groups_for_project(self, project_id: str) -> int:
        """Remove every group of a project and return how many were removed."""

    # -- legacy records -----------------------------------------------------

    @abstractmethod
    def find_legacy_records(self) -> List[Dict[str, Any]]:
        """Return flat PnL records written by the first version of the ledger."""

    def oldest_entry_group(self, project_id: str) -> Optional[EntryGroup]:
        """The group new transactions for a project are appended to."""

        groups = self.find_entry_groups(project_id)
        if not groups:
            return None
        return groups[-1]

    def close(self) -> None:
        """Release connections; a no-op for stores without any."""

        LOGGER.debug("Closing %s store", self.backend_name)
