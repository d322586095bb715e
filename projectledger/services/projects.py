"""Mini README: Project lifecycle with financial summaries.

Structure:
    * ProjectSummary - a project with its income, expense and profit.
    * ProjectDetail - a summary plus every transaction of the project.
    * ProjectService - create, update, list, fetch and cascading delete.

Project names are unique. Deleting a project removes its entry groups first
so an interrupted delete never leaves groups pointing at a missing project.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Union

from ..errors import DuplicateProjectError
from ..finance.aggregation import FlatTransaction, Totals, compute_totals, flatten_transactions
from ..finance.models import Project
from ..finance.validation import ProjectPayload, validate_project_fields
from ..logging_utils import get_logger
from ..store.base import EntryStore

LOGGER = get_logger(__name__)


@dataclass(frozen=True, slots=True)
class ProjectSummary:
    project: Project
    totals: Totals

    def as_dict(self) -> Dict[str, object]:
        payload = self.project.as_dict()
        payload.update(
            {
                "inbound": float(self.totals.income),
                "outbound": float(self.totals.expense),
                "profit": float(self.totals.net),
            }
        )
        return payload


@dataclass(frozen=True, slots=True)
class ProjectDetail:
    summary: ProjectSummary
    transactions: List[FlatTransaction]

    def as_dict(self) -> Dict[str, object]:
        return {
            "project": self.summary.as_dict(),
            "transactions": [transaction.as_dict() for transaction in self.transactions],
        }


class ProjectService:
    """Manage projects and cascade their entry groups."""

    def __init__(self, store: EntryStore) -> None:
        self._store = store

    def _summarise(self, project: Project) -> ProjectSummary:
        return ProjectSummary(project=project, totals=compute_totals(self._store.find_entry_groups(project.project_id)))

    def list_projects(self) -> List[ProjectSummary]:
        """Every project, newest first, with inbound/outbound/profit."""

        return [self._summarise(project) for project in self._store.list_projects()]

    def get_project(self, project_id: str) -> ProjectDetail:
        project = self._store.find_project(project_id)
        groups = self._store.find_entry_groups(project_id)
        return ProjectDetail(
            summary=ProjectSummary(project=project, totals=compute_totals(groups)),
            transactions=flatten_transactions(groups),
        )

    def create_project(self, fields: Union[Mapping[str, Any], ProjectPayload]) -> Project:
        validated = validate_project_fields(fields)
        if self._store.find_project_by_name(validated.name) is not None:
            raise DuplicateProjectError(
                "Project with this name already exists",
                errors=[{"field": "name", "message": "Project with this name already exists"}],
            )
        project = self._store.create_project(
            Project(
                project_id="",
                name=validated.name,
                description=validated.description,
                client=validated.client,
                status=validated.status,
            )
        )
        LOGGER.info("Created project %s (%s)", project.project_id, project.name)
        return project

    def update_project(self, project_id: str, fields: Union[Mapping[str, Any], ProjectPayload]) -> ProjectSummary:
        validated = validate_project_fields(fields)
        project = self._store.find_project(project_id)
        clash = self._store.find_project_by_name(validated.name)
        if clash is not None and clash.project_id != project.project_id:
            raise DuplicateProjectError(
                "Project with this name already exists",
                errors=[{"field": "name", "message": "Project with this name already exists"}],
            )
        project.name = validated.name
        project.description = validated.description
        project.client = validated.client
        project.status = validated.status
        saved = self._store.save_project(project)
        LOGGER.info("Updated project %s", project_id)
        return self._summarise(saved)

    def delete_project(self, project_id: str) -> int:
        """Delete a project and its entry groups; returns how many groups went."""

        self._store.find_project(project_id)
        removed = self._store.delete_entry_groups_for_project(project_id)
        self._store.delete_project(project_id)
        LOGGER.info("Deleted project %s and %s entry groups", project_id, removed)
        return removed
