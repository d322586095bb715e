"""Mini README: Tests for the project, ledger and migration services.

Structure:
    * ProjectService - validation, unique names, summaries, cascade delete.
    * LedgerService - totals scenarios, entry filters and listings.
    * migrate_legacy_records - project lookup by name, duplicates, bad rows.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal

import pytest

from projectledger.errors import DuplicateProjectError, NotFoundError, ValidationError
from projectledger.finance.aggregation import TransactionQuery
from projectledger.finance.labels import TransactionType
from projectledger.finance.models import Project, ProjectStatus
from projectledger.services import (
    EntryFilter,
    LedgerService,
    ProjectService,
    migrate_legacy_records,
)
from projectledger.store import InMemoryEntryStore


def _item(label: str, cost: object, description: str = "line", when: str = "2024-03-01") -> dict:
    return {"description": description, "type": label, "cost": cost, "date": when}


def test_create_project_applies_defaults(projects: ProjectService) -> None:
    project = projects.create_project({"name": "  Harbour Bridge  "})

    assert project.name == "Harbour Bridge"
    assert project.status is ProjectStatus.PLANNING
    assert project.project_id
    assert project.created_at is not None


@pytest.mark.parametrize(
    "fields, field_name",
    [
        ({"name": "ab"}, "name"),
        ({"name": "x" * 101}, "name"),
        ({"name": "Valid", "description": "d" * 501}, "description"),
        ({"name": "Valid", "client": "c" * 101}, "client"),
        ({"name": "Valid", "status": "Paused"}, "status"),
    ],
)
def test_create_project_rejects_invalid_fields(projects: ProjectService, fields: dict, field_name: str) -> None:
    with pytest.raises(ValidationError) as caught:
        projects.create_project(fields)

    assert caught.value.errors[0]["field"] == field_name


def test_project_names_are_unique(projects: ProjectService, project: Project) -> None:
    with pytest.raises(DuplicateProjectError):
        projects.create_project({"name": project.name})

    other = projects.create_project({"name": "Second Site"})
    with pytest.raises(DuplicateProjectError):
        projects.update_project(other.project_id, {"name": project.name})


def test_update_project_keeps_its_own_name(projects: ProjectService, project: Project) -> None:
    summary = projects.update_project(project.project_id, {"name": project.name, "status": "Completed"})

    assert summary.project.status is ProjectStatus.COMPLETED
    assert summary.as_dict()["profit"] == 0.0


def test_list_projects_includes_totals(projects: ProjectService, ledger: LedgerService, project: Project) -> None:
    ledger.append_transactions(project.project_id, [_item("income", 100), _item("Expense", 40)])

    listed = projects.list_projects()

    assert len(listed) == 1
    payload = listed[0].as_dict()
    assert (payload["inbound"], payload["outbound"], payload["profit"]) == (100.0, 40.0, 60.0)


def test_delete_project_cascades_to_entry_groups(
    projects: ProjectService, ledger: LedgerService, store: InMemoryEntryStore, project: Project
) -> None:
    ledger.create_entry_group(project.project_id, [_item("income", 10)])
    ledger.create_entry_group(project.project_id, [_item("expenses", 5)])
    survivor = projects.create_project({"name": "Unrelated"})
    ledger.create_entry_group(survivor.project_id, [_item("income", 1)])

    removed = projects.delete_project(project.project_id)

    assert removed == 2
    with pytest.raises(NotFoundError):
        store.find_project(project.project_id)
    assert store.find_entry_groups(project.project_id) == []
    assert len(store.find_entry_groups(survivor.project_id)) == 1


def test_delete_unknown_project(projects: ProjectService) -> None:
    with pytest.raises(NotFoundError):
        projects.delete_project("missing")


def test_totals_after_positional_delete(ledger: LedgerService, project: Project) -> None:
    """Deleting the 40 expense of [100, 40, 30] leaves 130/0/130."""

    result = ledger.append_transactions(
        project.project_id, [_item("income", 100), _item("expenses", 40), _item("income", 30)]
    )
    assert ledger.compute_project_totals(project.project_id).net == Decimal("90")

    ledger.delete_transaction_at(result.group.group_id, 1)

    totals = ledger.compute_project_totals(project.project_id)
    assert (totals.income, totals.expense, totals.net) == (Decimal("130"), Decimal("0"), Decimal("130"))


def test_global_totals_span_projects(ledger: LedgerService, projects: ProjectService, project: Project) -> None:
    other = projects.create_project({"name": "North Wing"})
    ledger.append_transactions(project.project_id, [_item("income", 20)])
    ledger.append_transactions(other.project_id, [_item("outbound", 5)])

    totals = ledger.compute_global_totals()

    assert (totals.income, totals.expense) == (Decimal("20"), Decimal("5"))


def test_project_reads_reject_unknown_projects(ledger: LedgerService) -> None:
    with pytest.raises(NotFoundError):
        ledger.compute_project_totals("missing")
    with pytest.raises(NotFoundError):
        ledger.monthly_trend("missing")


def test_entry_filter_matches_on_any_transaction(ledger: LedgerService, project: Project) -> None:
    march = ledger.create_entry_group(
        project.project_id, [_item("income", 10, when="2024-03-10"), _item("expenses", 2, when="2024-03-11")]
    )
    june = ledger.create_entry_group(project.project_id, [_item("expenses", 7, when="2024-06-01")])

    incomes = ledger.list_entry_groups(EntryFilter.build(project_id=project.project_id, type_label="Income"))
    spring = ledger.list_entry_groups(
        EntryFilter.build(start_date=date(2024, 3, 11), end_date=date(2024, 3, 31))
    )
    everything = ledger.list_entry_groups(EntryFilter.build(project_id=project.project_id))

    assert [group.group_id for group in incomes] == [march.group_id]
    assert [group.group_id for group in spring] == [march.group_id]
    assert {group.group_id for group in everything} == {march.group_id, june.group_id}


def test_entry_filter_rejects_bad_input() -> None:
    with pytest.raises(ValidationError):
        EntryFilter.build(type_label="refund")
    with pytest.raises(ValidationError):
        EntryFilter.build(start_date=date(2024, 2, 1), end_date=date(2024, 1, 1))


def test_listing_uses_configured_page_size(ledger: LedgerService, project: Project) -> None:
    ledger.append_transactions(project.project_id, [_item("income", n + 1, f"row {n}") for n in range(12)])

    default_page = ledger.list_flattened_transactions(project.project_id)
    with pytest.raises(ValidationError):
        ledger.list_flattened_transactions(project.project_id, TransactionQuery(limit=51))

    assert len(default_page.items) == 10
    assert default_page.total_count == 12
    assert default_page.total_pages == 2


def test_migration_moves_legacy_records_once(settings) -> None:
    legacy = [
        {"project": "Old Mill", "description": "Deposit", "type": "inbound", "cost": 500, "date": "2023-05-02"},
        {"project": "Old Mill", "description": "Timber", "type": "outbound", "cost": "120.50", "date": "2023-05-09"},
        {"project": "Old Mill", "description": "Timber", "type": "outbound", "cost": "120.50", "date": "2023-05-09"},
        {"project": "Gone Project", "description": "Orphan", "type": "Income", "cost": 1, "date": "2023-01-01"},
        {"project": "Old Mill", "description": "Broken", "type": "gift", "cost": 3, "date": "2023-05-10"},
    ]
    store = InMemoryEntryStore(legacy_records=legacy)
    ledger = LedgerService(store, settings)
    mill = ProjectService(store).create_project({"name": "Old Mill"})

    report = migrate_legacy_records(store, ledger)

    assert report.migrated == 2
    assert report.skipped_duplicate == 1
    assert report.skipped_unknown_project == 1
    assert report.skipped_invalid == 1
    totals = ledger.compute_project_totals(mill.project_id)
    assert (totals.income, totals.expense) == (Decimal("500"), Decimal("120.50"))
    groups = store.find_entry_groups(mill.project_id)
    assert len(groups) == 1
    assert [t.transaction_type for t in groups[0].transactions] == [TransactionType.INCOME, TransactionType.EXPENSE]

    rerun = migrate_legacy_records(store, ledger)

    assert rerun.migrated == 0
    assert rerun.skipped_duplicate == 3
