"""Mini README: Tests for positional transaction addressing.

Structure:
    * lookup / bounds - NotFound and IndexOutOfRange before any mutation.
    * append / delete / update / replace - index bookkeeping and atomicity.
    * concurrency - conflict retries, stale references and exhaustion.
    * legacy documents - groups written by older clients stay editable.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import Callable, Optional

import pytest

from projectledger.errors import (
    ConcurrentModificationError,
    IndexOutOfRangeError,
    NotFoundError,
    StaleReferenceError,
    ValidationError,
)
from projectledger.finance.labels import TransactionType
from projectledger.finance.locator import EntryLocator
from projectledger.finance.models import EntryGroup, Project, Transaction
from projectledger.store import InMemoryEntryStore

from conftest import RawDocumentStore


def _item(label: str, cost: object, description: str = "line", when: Optional[str] = None) -> dict:
    payload = {"description": description, "type": label, "cost": cost}
    if when:
        payload["date"] = when
    return payload


def _seeded(store: InMemoryEntryStore, project: Project) -> str:
    locator = EntryLocator(store)
    result = locator.append(
        project.project_id,
        [_item("income", 100, "first"), _item("expenses", 40, "second"), _item("income", 30, "third")],
    )
    return result.group.group_id


def test_append_to_empty_project_creates_one_group(store: RawDocumentStore, project: Project) -> None:
    """The first transaction of a project creates its entry group at index 0."""

    locator = EntryLocator(store)

    result = locator.append(project.project_id, [_item("expenses", 25, "Paint", "2024-03-05")])

    groups = store.find_entry_groups(project.project_id)
    assert result.created is True
    assert result.assigned_indices == [0]
    assert len(groups) == 1
    stored = groups[0].transactions[0]
    assert stored.transaction_type is TransactionType.EXPENSE
    assert stored.amount == Decimal("25.00")
    assert stored.occurred_on == date(2024, 3, 5)


def test_append_assigns_indices_after_existing_rows(store: RawDocumentStore, project: Project) -> None:
    group_id = _seeded(store, project)
    locator = EntryLocator(store)

    result = locator.append(project.project_id, [_item("income", 1, "x"), _item("income", 2, "y")])

    assert result.created is False
    assert result.group.group_id == group_id
    assert result.assigned_indices == [3, 4]
    reread = store.find_entry_group(group_id)
    assert [reread.transactions[i].description for i in result.assigned_indices] == ["x", "y"]


def test_append_to_unknown_project_fails(store: RawDocumentStore) -> None:
    with pytest.raises(NotFoundError):
        EntryLocator(store).append("missing", [_item("income", 1)])


def test_lookup_rejects_unknown_group_and_bad_indices(store: RawDocumentStore, project: Project) -> None:
    group_id = _seeded(store, project)
    locator = EntryLocator(store)

    assert locator.lookup(group_id, "2").transaction.description == "third"
    with pytest.raises(NotFoundError):
        locator.lookup("nope", 0)
    for bad in (-1, 3, "abc", None, True, 1.5):
        with pytest.raises(IndexOutOfRangeError):
            locator.lookup(group_id, bad)


def test_delete_shifts_later_indices_down(store: RawDocumentStore, project: Project) -> None:
    """Deleting index 1 of [100, 40, 30] leaves [100, 30]."""

    group_id = _seeded(store, project)
    before = store.find_entry_group(group_id)

    outcome = EntryLocator(store).delete_at(group_id, 1)

    after = store.find_entry_group(group_id)
    assert outcome.group_deleted is False
    assert outcome.removed.description == "second"
    assert [t.description for t in after.transactions] == ["first", "third"]
    assert after.transactions[0] == before.transactions[0]
    assert after.transactions[1].transaction_id == before.transactions[2].transaction_id
    assert after.revision == before.revision + 1


def test_deleting_the_last_transaction_removes_the_group(store: RawDocumentStore, project: Project) -> None:
    locator = EntryLocator(store)
    group_id = locator.append(project.project_id, [_item("income", 5)]).group.group_id

    outcome = locator.delete_at(group_id, 0)

    assert outcome.group_deleted is True
    assert outcome.remaining == 0
    with pytest.raises(NotFoundError):
        store.find_entry_group(group_id)


def test_update_at_replaces_in_place(store: RawDocumentStore, project: Project) -> None:
    group_id = _seeded(store, project)
    before = store.find_entry_group(group_id)

    updated = EntryLocator(store).update_at(group_id, 1, _item("Income", "55.5", "refund", "2024-05-01"))

    assert len(updated.transactions) == 3
    changed = updated.transactions[1]
    assert changed.transaction_type is TransactionType.INCOME
    assert changed.amount == Decimal("55.50")
    assert changed.transaction_id == before.transactions[1].transaction_id
    assert updated.transactions[0] == before.transactions[0]
    assert updated.transactions[2] == before.transactions[2]
    assert store.raw_group(group_id)["entries"][1]["type"] == "income"


def test_update_out_of_range_never_mutates(store: RawDocumentStore, project: Project) -> None:
    group_id = _seeded(store, project)
    before = store.raw_group(group_id)

    with pytest.raises(IndexOutOfRangeError):
        EntryLocator(store).update_at(group_id, 3, _item("income", 1))

    assert store.raw_group(group_id) == before


@pytest.mark.parametrize(
    "fields",
    [_item("income", 1, ""), _item("gift", 1), _item("income", 0), _item("income", 1, "x" * 201)],
)
def test_update_with_invalid_fields_is_rejected(store: RawDocumentStore, project: Project, fields: dict) -> None:
    group_id = _seeded(store, project)
    before = store.raw_group(group_id)

    with pytest.raises(ValidationError):
        EntryLocator(store).update_at(group_id, 0, fields)

    assert store.raw_group(group_id) == before


def test_replace_sequence_is_all_or_nothing(store: RawDocumentStore, project: Project) -> None:
    group_id = _seeded(store, project)
    before = store.raw_group(group_id)
    locator = EntryLocator(store)

    with pytest.raises(ValidationError) as caught:
        locator.replace_sequence(group_id, [_item("income", 9, "ok"), _item("income", -1, "bad")])

    assert store.raw_group(group_id) == before
    assert caught.value.errors[0]["field"] == "entries[1].cost"

    replaced = locator.replace_sequence(
        group_id, [_item("expenses", 7, "only")], entry_date=date(2024, 6, 1)
    )
    assert [t.description for t in replaced.transactions] == ["only"]
    assert replaced.entry_date == date(2024, 6, 1)


class RacingStore(RawDocumentStore):
    """Runs ``race`` right before a save, like a request that got there first."""

    def __init__(self) -> None:
        super().__init__()
        self.race: Optional[Callable[[InMemoryEntryStore], None]] = None
        self.repeat = False

    def save_entry_group(self, group: EntryGroup, expected_revision: int) -> EntryGroup:
        race = self.race
        if race is not None:
            if not self.repeat:
                self.race = None
            race(self)
        return super().save_entry_group(group, expected_revision)

    def delete_entry_group(self, group_id: str, expected_revision: Optional[int] = None) -> None:
        race = self.race
        if race is not None:
            if not self.repeat:
                self.race = None
            race(self)
        super().delete_entry_group(group_id, expected_revision)


def _rival_append(group_id: str) -> Callable[[InMemoryEntryStore], None]:
    def race(store: InMemoryEntryStore) -> None:
        rival = store.find_entry_group(group_id)
        rival.transactions.append(
            Transaction.create(
                description="rival",
                transaction_type=TransactionType.EXPENSE,
                amount=Decimal("1.00"),
                occurred_on=None,
            )
        )
        InMemoryEntryStore.save_entry_group(store, rival, rival.revision)

    return race


def _rival_delete_first(group_id: str) -> Callable[[InMemoryEntryStore], None]:
    def race(store: InMemoryEntryStore) -> None:
        rival = store.find_entry_group(group_id)
        rival.transactions.pop(0)
        InMemoryEntryStore.save_entry_group(store, rival, rival.revision)

    return race


def _rival_touch(group_id: str) -> Callable[[InMemoryEntryStore], None]:
    def race(store: InMemoryEntryStore) -> None:
        rival = store.find_entry_group(group_id)
        InMemoryEntryStore.save_entry_group(store, rival, rival.revision)

    return race


def _rival_delete_group(group_id: str) -> Callable[[InMemoryEntryStore], None]:
    def race(store: InMemoryEntryStore) -> None:
        InMemoryEntryStore.delete_entry_group(store, group_id)

    return race


@pytest.fixture
def racing_store() -> RacingStore:
    return RacingStore()


@pytest.fixture
def racing_project(racing_store: RacingStore) -> Project:
    return racing_store.create_project(Project(project_id="", name="Race Track"))


def test_conflicting_update_is_retried_without_losing_the_rival_write(
    racing_store: RacingStore, racing_project: Project
) -> None:
    group_id = _seeded(racing_store, racing_project)
    racing_store.race = _rival_append(group_id)

    updated = EntryLocator(racing_store).update_at(group_id, 0, _item("income", 150, "first, revised"))

    assert [t.description for t in updated.transactions] == ["first, revised", "second", "third", "rival"]
    assert updated.revision == 2


def test_moved_target_raises_stale_reference(racing_store: RacingStore, racing_project: Project) -> None:
    group_id = _seeded(racing_store, racing_project)
    racing_store.race = _rival_delete_first(group_id)

    with pytest.raises(StaleReferenceError):
        EntryLocator(racing_store).delete_at(group_id, 1)

    remaining = racing_store.find_entry_group(group_id)
    assert [t.description for t in remaining.transactions] == ["second", "third"]


def test_concurrent_append_is_retried(racing_store: RacingStore, racing_project: Project) -> None:
    group_id = _seeded(racing_store, racing_project)
    racing_store.race = _rival_append(group_id)

    result = EntryLocator(racing_store).append(racing_project.project_id, [_item("income", 3, "mine")])

    assert result.assigned_indices == [4]
    assert [t.description for t in result.group.transactions][-2:] == ["rival", "mine"]


def test_endless_conflicts_give_up(racing_store: RacingStore, racing_project: Project) -> None:
    group_id = _seeded(racing_store, racing_project)
    racing_store.race = _rival_append(group_id)
    racing_store.repeat = True

    with pytest.raises(ConcurrentModificationError):
        EntryLocator(racing_store, conflict_retries=2).update_at(group_id, 0, _item("income", 1))


def test_conflicting_replace_is_retried(racing_store: RacingStore, racing_project: Project) -> None:
    group_id = _seeded(racing_store, racing_project)
    racing_store.race = _rival_append(group_id)

    replaced = EntryLocator(racing_store).replace_sequence(group_id, [_item("expenses", 7, "only")])

    assert [t.description for t in replaced.transactions] == ["only"]
    assert replaced.revision == 2


def test_replace_gives_up_after_retries(racing_store: RacingStore, racing_project: Project) -> None:
    group_id = _seeded(racing_store, racing_project)
    racing_store.race = _rival_append(group_id)
    racing_store.repeat = True

    with pytest.raises(ConcurrentModificationError):
        EntryLocator(racing_store, conflict_retries=2).replace_sequence(group_id, [_item("expenses", 7, "only")])

    stored = racing_store.raw_group(group_id)
    assert [item["description"] for item in stored["entries"]] == ["first", "second", "third"] + ["rival"] * 3


def test_emptying_delete_retries_when_a_rival_appends(racing_store: RacingStore, racing_project: Project) -> None:
    """The group is only deleted at the revision that was read; a rival row keeps it alive."""

    locator = EntryLocator(racing_store)
    group_id = locator.append(racing_project.project_id, [_item("income", 5, "solo")]).group.group_id
    racing_store.race = _rival_append(group_id)

    outcome = locator.delete_at(group_id, 0)

    assert outcome.removed.description == "solo"
    assert outcome.group_deleted is False
    assert outcome.remaining == 1
    assert [t.description for t in racing_store.find_entry_group(group_id).transactions] == ["rival"]


def test_emptying_delete_gives_up_after_retries(racing_store: RacingStore, racing_project: Project) -> None:
    group_id = EntryLocator(racing_store).append(
        racing_project.project_id, [_item("income", 5, "solo")]
    ).group.group_id
    racing_store.race = _rival_touch(group_id)
    racing_store.repeat = True

    with pytest.raises(ConcurrentModificationError):
        EntryLocator(racing_store, conflict_retries=1).delete_at(group_id, 0)

    assert [t.description for t in racing_store.find_entry_group(group_id).transactions] == ["solo"]


def test_append_recreates_a_group_deleted_mid_write(racing_store: RacingStore, racing_project: Project) -> None:
    locator = EntryLocator(racing_store)
    group_id = locator.append(racing_project.project_id, [_item("income", 1, "a")]).group.group_id
    racing_store.race = _rival_delete_group(group_id)

    result = locator.append(racing_project.project_id, [_item("income", 2, "b")])

    assert result.created is True
    assert result.assigned_indices == [0]
    assert result.group.group_id != group_id
    assert [t.description for t in result.group.transactions] == ["b"]
    assert len(racing_store.find_entry_groups(racing_project.project_id)) == 1


def test_legacy_documents_are_editable(store: RawDocumentStore, project: Project) -> None:
    """Groups written by older clients use other labels, ``amount`` and no ids."""

    group_id = store.insert_raw_group(
        {
            "projectId": project.project_id,
            "entries": [
                {"description": "old income", "type": "Income", "amount": 12.5},
                {"description": "odd row", "type": "transfer", "cost": "n/a"},
                {"description": "old cost", "type": "outbound", "cost": 2},
            ],
            "date": "2023-11-02",
        }
    )
    locator = EntryLocator(store)

    located = locator.lookup(group_id, 0)
    assert located.transaction.transaction_type is TransactionType.INCOME
    assert located.transaction.occurred_on is None
    assert located.group.effective_date(located.transaction) == date(2023, 11, 2)

    locator.delete_at(group_id, 2)

    raw = store.raw_group(group_id)
    assert raw["revision"] == 1
    assert raw["entries"][1]["type"] == "transfer"
    assert raw["entries"][1]["cost"] == "n/a"
    assert raw["entries"][0]["transaction_id"] == f"{group_id}-0"


def test_undated_legacy_group_is_the_oldest(store: RawDocumentStore, project: Project) -> None:
    """A group without ``createdAt`` sorts last, as MongoDB orders it."""

    locator = EntryLocator(store)
    dated_id = locator.append(project.project_id, [_item("income", 1, "new")]).group.group_id
    legacy_id = store.insert_raw_group(
        {"projectId": project.project_id, "entries": [{"description": "old", "type": "Income", "amount": 3}]}
    )

    assert [group.group_id for group in store.find_entry_groups(project.project_id)] == [dated_id, legacy_id]
    assert store.oldest_entry_group(project.project_id).group_id == legacy_id
    assert locator.append(project.project_id, [_item("income", 2, "more")]).group.group_id == legacy_id
