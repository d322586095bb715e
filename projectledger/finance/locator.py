"""Mini README: Positional addressing of transactions inside entry groups.

Structure:
    * LocatedTransaction - a resolved (group, index, transaction) triple.
    * DeleteOutcome - what a positional delete did to its group.
    * AppendResult - the group appended to and the indices handed out.
    * EntryLocator - lookup, update-at-index, whole-sequence replacement,
      delete-at-index and append, all as read/validate/conditional-write.

A transaction's index is its position in the group's list; deleting index
``i`` shifts every later transaction down by one. Each transaction also
carries a stable ``transaction_id``. Writes are compare-and-swap on the
group's ``revision``; when another request wins the race the locator re-reads
the group and retries (``tenacity``), but only if the transaction the caller
addressed is still at the index the caller gave. Otherwise the caller's view
is stale and ``StaleReferenceError`` is raised instead of touching a
different row.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from typing import (
    TYPE_CHECKING,
    Any,
    Callable,
    List,
    Mapping,
    Optional,
    Sequence,
    TypeVar,
    Union,
)

from tenacity import RetryCallState, RetryError, Retrying, retry_if_exception_type, stop_after_attempt

from ..errors import (
    ConcurrentModificationError,
    ConflictError,
    IndexOutOfRangeError,
    NotFoundError,
    StaleReferenceError,
)
from ..logging_utils import get_logger
from .models import EntryGroup, Transaction, utcnow
from .validation import EntryItemPayload, validate_transaction_fields, validate_transaction_list

if TYPE_CHECKING:
    from ..store.base import EntryStore

LOGGER = get_logger(__name__)

ResultT = TypeVar("ResultT")
EntryItems = Sequence[Union[Mapping[str, Any], EntryItemPayload]]


@dataclass(frozen=True, slots=True)
class LocatedTransaction:
    group: EntryGroup
    index: int
    transaction: Transaction


@dataclass(frozen=True, slots=True)
class DeleteOutcome:
    group_id: str
    index: int
    removed: Transaction
    group_deleted: bool
    remaining: int


@dataclass(frozen=True, slots=True)
class AppendResult:
    group: EntryGroup
    assigned_indices: List[int]
    created: bool


def coerce_index(group: EntryGroup, index: object) -> int:
    """Validate a positional reference against a group's current length."""

    length = len(group.transactions)
    position: Optional[int] = None
    if isinstance(index, int) and not isinstance(index, bool):
        position = index
    elif isinstance(index, str):
        try:
            position = int(index.strip(), 10)
        except ValueError:
            position = None
    if position is None:
        raise IndexOutOfRangeError(
            group.group_id, index, length, message=f"Invalid entry index: {index!r} is not a number"
        )
    if position < 0 or position >= length:
        raise IndexOutOfRangeError(group.group_id, position, length)
    return position


def _build(fields: EntryItemPayload, *, now, transaction_id: Optional[str] = None,
           default_date: Optional[date] = None) -> Transaction:
    return Transaction.create(
        description=fields.description,
        transaction_type=fields.transaction_type,
        amount=fields.amount,
        occurred_on=fields.occurred_on or default_date,
        now=now,
        transaction_id=transaction_id,
    )


def _log_retry(retry_state: RetryCallState) -> None:
    outcome = retry_state.outcome
    LOGGER.warning(
        "Write lost a race (attempt %s): %s",
        retry_state.attempt_number,
        outcome.exception() if outcome is not None else "unknown",
    )


class EntryLocator:
    """Resolve and mutate single transactions by (group id, index)."""

    def __init__(self, store: EntryStore, *, conflict_retries: int = 3) -> None:
        self._store = store
        self._conflict_retries = conflict_retries

    def _retrying(
        self,
        fallback_id: str,
        operation: Callable[[bool], ResultT],
    ) -> ResultT:
        """Run ``operation(retrying)`` until it stops losing races.

        ``retrying`` is false on the first attempt, so the operation can reuse
        what the caller already read. Exhausted retries surface as
        ``ConcurrentModificationError``; anything other than a
        ``ConflictError`` propagates unchanged.
        """

        try:
            for attempt in Retrying(
                retry=retry_if_exception_type(ConflictError),
                stop=stop_after_attempt(self._conflict_retries + 1),
                before_sleep=_log_retry,
            ):
                with attempt:
                    return operation(attempt.retry_state.attempt_number > 1)
        except RetryError as error:
            last = error.last_attempt.exception()
            group_id = getattr(last, "group_id", fallback_id)
            raise ConcurrentModificationError(group_id, getattr(last, "expected_revision", 0)) from error
        raise AssertionError("unreachable")  # pragma: no cover

    # -- reads --------------------------------------------------------------

    def lookup(self, group_id: str, index: object) -> LocatedTransaction:
        """Return the transaction at ``index`` together with its group."""

        group = self._store.find_entry_group(group_id)
        position = coerce_index(group, index)
        return LocatedTransaction(group=group, index=position, transaction=group.transactions[position])

    # -- positional writes --------------------------------------------------

    def _at_index(
        self,
        group_id: str,
        index: object,
        mutate: Callable[[EntryGroup, int], ResultT],
    ) -> ResultT:
        """Run ``mutate`` against the addressed transaction, retrying on conflicts."""

        located = self.lookup(group_id, index)
        position = located.index
        target_id = located.transaction.transaction_id

        def attempt(retrying: bool) -> ResultT:
            group = located.group
            if retrying:
                group = self._store.find_entry_group(group_id)
                if group.position_of(target_id) != position:
                    LOGGER.warning(
                        "Transaction %s of entry %s moved during retry; index %s is stale",
                        target_id,
                        group_id,
                        position,
                    )
                    raise StaleReferenceError(group_id, position, len(group.transactions))
            return mutate(group, position)

        return self._retrying(group_id, attempt)

    def update_at(
        self,
        group_id: str,
        index: object,
        fields: Union[Mapping[str, Any], EntryItemPayload],
        *,
        entry_date: Optional[date] = None,
    ) -> EntryGroup:
        """Replace the transaction at ``index`` in place; other indices are untouched."""

        validated = validate_transaction_fields(fields)

        def replace(group: EntryGroup, position: int) -> EntryGroup:
            now = utcnow()
            existing = group.transactions[position]
            group.transactions[position] = _build(validated, now=now, transaction_id=existing.transaction_id)
            if entry_date is not None:
                group.entry_date = entry_date
            group.updated_at = now
            return self._store.save_entry_group(group, group.revision)

        updated = self._at_index(group_id, index, replace)
        LOGGER.info("Updated transaction %s of entry %s", index, group_id)
        return updated

    def delete_at(self, group_id: str, index: object) -> DeleteOutcome:
        """Remove the transaction at ``index``; an emptied group is deleted."""

        def remove(group: EntryGroup, position: int) -> DeleteOutcome:
            expected = group.revision
            removed = group.transactions.pop(position)
            if group.transactions:
                group.updated_at = utcnow()
                self._store.save_entry_group(group, expected)
                deleted = False
            else:
                self._store.delete_entry_group(group.group_id, expected_revision=expected)
                deleted = True
            return DeleteOutcome(
                group_id=group.group_id,
                index=position,
                removed=removed,
                group_deleted=deleted,
                remaining=len(group.transactions),
            )

        outcome = self._at_index(group_id, index, remove)
        LOGGER.info(
            "Deleted transaction %s of entry %s (group deleted: %s)",
            outcome.index,
            group_id,
            outcome.group_deleted,
        )
        return outcome

    # -- whole-group writes -------------------------------------------------

    def replace_sequence(
        self,
        group_id: str,
        items: EntryItems,
        *,
        entry_date: Optional[date] = None,
    ) -> EntryGroup:
        """Swap a group's whole transaction list in a single write.

        Every element is validated before the group is read, so a bad element
        leaves the stored list exactly as it was.
        """

        validated = validate_transaction_list(items)

        def attempt(retrying: bool) -> EntryGroup:
            group = self._store.find_entry_group(group_id)
            now = utcnow()
            group.transactions = [_build(fields, now=now) for fields in validated]
            if entry_date is not None:
                group.entry_date = entry_date
            group.updated_at = now
            return self._store.save_entry_group(group, group.revision)

        saved = self._retrying(group_id, attempt)
        LOGGER.info("Replaced entry %s with %s transactions", group_id, len(validated))
        return saved

    def create_group(
        self,
        project_id: str,
        items: EntryItems,
        *,
        entry_date: Optional[date] = None,
    ) -> EntryGroup:
        """Store a new entry group for a project; undated items take the group date."""

        validated = validate_transaction_list(items)
        self._store.find_project(project_id)
        now = utcnow()
        group_date = entry_date or now.date()
        group = EntryGroup(
            group_id="",
            project_id=project_id,
            transactions=[_build(fields, now=now, default_date=group_date) for fields in validated],
            entry_date=group_date,
            created_at=now,
            updated_at=now,
        )
        created = self._store.create_entry_group(group)
        LOGGER.info("Created entry %s for project %s with %s transactions", created.group_id, project_id, len(validated))
        return created

    def append(
        self,
        project_id: str,
        items: EntryItems,
        *,
        entry_date: Optional[date] = None,
    ) -> AppendResult:
        """Append to the project's entry group, creating it on first use.

        A group deleted between the read and the write is retried like a
        conflict: the next attempt appends to whichever group is now oldest,
        or creates one.
        """

        validated = validate_transaction_list(items)
        self._store.find_project(project_id)

        def attempt(retrying: bool) -> AppendResult:
            group = self._store.oldest_entry_group(project_id)
            if group is None:
                created = self.create_group(project_id, validated, entry_date=entry_date)
                return AppendResult(
                    group=created,
                    assigned_indices=list(range(len(created.transactions))),
                    created=True,
                )
            now = utcnow()
            start = len(group.transactions)
            default_date = entry_date or now.date()
            group.transactions.extend(_build(fields, now=now, default_date=default_date) for fields in validated)
            group.updated_at = now
            try:
                saved = self._store.save_entry_group(group, group.revision)
            except NotFoundError as error:
                raise ConflictError(group.group_id, group.revision) from error
            return AppendResult(
                group=saved,
                assigned_indices=list(range(start, start + len(validated))),
                created=False,
            )

        result = self._retrying(project_id, attempt)
        LOGGER.info(
            "Appended %s transactions to entry %s for project %s",
            len(validated),
            result.group.group_id,
            project_id,
        )
        return result
