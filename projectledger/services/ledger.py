"""Mini README: Ledger operations exposed to the HTTP layer and the CLI.

Structure:
    * EntryFilter - project/type/date-range filter for entry group listings.
    * LedgerService - totals, trends, transaction listings and every write
      that addresses transactions by (entry id, index).

The service owns no state besides its store and locator. Reads take a
snapshot of the relevant entry groups and hand it to the pure functions in
``projectledger.finance.aggregation``.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from typing import Any, List, Mapping, Optional, Union

from ..configuration import LedgerSettings, get_settings
from ..finance.aggregation import (
    MonthlyBucket,
    Totals,
    TransactionPage,
    TransactionQuery,
    compute_monthly_trend,
    compute_totals,
    flatten_transactions,
    query_transactions,
)
from ..finance.labels import TransactionType, canonicalise
from ..finance.locator import AppendResult, DeleteOutcome, EntryItems, EntryLocator, LocatedTransaction
from ..finance.models import EntryGroup
from ..finance.validation import EntryItemPayload
from ..errors import ValidationError
from ..logging_utils import get_logger
from ..store.base import EntryStore

LOGGER = get_logger(__name__)


@dataclass(frozen=True, slots=True)
class EntryFilter:
    """Select groups holding at least one transaction matching every criterion.

    Dates compare against each transaction's effective date and both bounds
    are inclusive whole days.
    """

    project_id: Optional[str] = None
    transaction_type: Optional[TransactionType] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None

    @classmethod
    def build(
        cls,
        *,
        project_id: Optional[str] = None,
        type_label: Optional[str] = None,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
    ) -> "EntryFilter":
        transaction_type = None
        if type_label:
            transaction_type = canonicalise(type_label)
            if transaction_type is None:
                raise ValidationError(
                    "Type must be either income or expenses",
                    errors=[{"field": "type", "message": f"Unsupported transaction type: {type_label!r}"}],
                )
        if start_date and end_date and start_date > end_date:
            raise ValidationError(
                "startDate must not be after endDate",
                errors=[{"field": "startDate", "message": "startDate must not be after endDate"}],
            )
        return cls(
            project_id=project_id,
            transaction_type=transaction_type,
            start_date=start_date,
            end_date=end_date,
        )

    def matches(self, group: EntryGroup) -> bool:
        for transaction in group.transactions:
            if self.transaction_type is not None and transaction.transaction_type is not self.transaction_type:
                continue
            when = group.effective_date(transaction)
            if self.start_date and (when is None or when < self.start_date):
                continue
            if self.end_date and (when is None or when > self.end_date):
                continue
            return True
        return False

    @property
    def filters_transactions(self) -> bool:
        return any((self.transaction_type, self.start_date, self.end_date))


class LedgerService:
    """Facade over the store, the locator and the aggregation engine."""

    def __init__(self, store: EntryStore, settings: Optional[LedgerSettings] = None) -> None:
        self._store = store
        self._settings = settings or get_settings()
        self.locator = EntryLocator(store, conflict_retries=self._settings.conflict_retries)

    # -- aggregation --------------------------------------------------------

    def project_groups(self, project_id: str) -> List[EntryGroup]:
        """Snapshot of a project's groups; raises ``NotFoundError`` for unknown projects."""

        self._store.find_project(project_id)
        return self._store.find_entry_groups(project_id)

    def compute_project_totals(self, project_id: str) -> Totals:
        totals = compute_totals(self.project_groups(project_id))
        if totals.unclassified or totals.invalid_amounts:
            LOGGER.warning(
                "Project %s has %s unclassified and %s unreadable transactions",
                project_id,
                len(totals.unclassified),
                len(totals.invalid_amounts),
            )
        return totals

    def compute_global_totals(self) -> Totals:
        return compute_totals(self._store.find_entry_groups())

    def monthly_trend(self, project_id: Optional[str] = None) -> List[MonthlyBucket]:
        groups = self.project_groups(project_id) if project_id else self._store.find_entry_groups()
        return compute_monthly_trend(groups)

    def list_flattened_transactions(
        self, project_id: str, query: Optional[TransactionQuery] = None
    ) -> TransactionPage:
        query = query or TransactionQuery(limit=self._settings.default_page_size)
        flattened = flatten_transactions(self.project_groups(project_id))
        page = query_transactions(flattened, query, max_limit=self._settings.max_page_size)
        LOGGER.debug(
            "Listing %s of %s transactions for project %s",
            len(page.items),
            page.total_count,
            project_id,
        )
        return page

    # -- entry groups -------------------------------------------------------

    def list_entry_groups(self, entry_filter: Optional[EntryFilter] = None) -> List[EntryGroup]:
        entry_filter = entry_filter or EntryFilter()
        groups = self._store.find_entry_groups(entry_filter.project_id)
        if entry_filter.filters_transactions:
            groups = [group for group in groups if entry_filter.matches(group)]
        return groups

    def get_entry_group(self, group_id: str) -> EntryGroup:
        return self._store.find_entry_group(group_id)

    def create_entry_group(
        self, project_id: str, items: EntryItems, *, entry_date: Optional[date] = None
    ) -> EntryGroup:
        return self.locator.create_group(project_id, items, entry_date=entry_date)

    def delete_entry_group(self, group_id: str) -> None:
        self._store.delete_entry_group(group_id)
        LOGGER.info("Deleted entry %s", group_id)

    # -- positional operations ----------------------------------------------

    def get_transaction_at(self, group_id: str, index: object) -> LocatedTransaction:
        return self.locator.lookup(group_id, index)

    def update_transaction_at(
        self, group_id: str, index: object, fields: Union[Mapping[str, Any], EntryItemPayload], *, entry_date: Optional[date] = None
    ) -> EntryGroup:
        return self.locator.update_at(group_id, index, fields, entry_date=entry_date)

    def replace_transactions(
        self, group_id: str, items: EntryItems, *, entry_date: Optional[date] = None
    ) -> EntryGroup:
        return self.locator.replace_sequence(group_id, items, entry_date=entry_date)

    def delete_transaction_at(self, group_id: str, index: object) -> DeleteOutcome:
        return self.locator.delete_at(group_id, index)

    def append_transactions(
        self, project_id: str, items: EntryItems, *, entry_date: Optional[date] = None
    ) -> AppendResult:
        return self.locator.append(project_id, items, entry_date=entry_date)
