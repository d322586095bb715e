"""Mini README: Income/expense aggregation over entry groups.

Structure:
    * TransactionRef - (group id, index) address of one transaction.
    * Totals - income, expense and net plus diagnostics.
    * FlatTransaction - one transaction annotated with its address.
    * MonthlyBucket - per-month income, expense and profit for trend charts.
    * TransactionQuery / TransactionPage - search, filter, sort and paging.
    * compute_totals / flatten_transactions / compute_monthly_trend /
      query_transactions - pure functions over a snapshot of entry groups.

Nothing here touches the store or mutates its inputs, so aggregations for
different projects can run side by side. Sums are ``Decimal`` and therefore
identical however often and in whatever order they are recomputed; they use
``MONEY_CONTEXT`` so large totals are not rounded. ``Totals.as_dict`` adds
the exact decimal strings next to the JSON floats.
"""

from __future__ import annotations

import math
from collections import defaultdict
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Dict, Iterable, List, Optional, Tuple

from ..errors import ValidationError
from .labels import TransactionType, canonicalise
from .models import EntryGroup
from .money import MONEY_CONTEXT, ZERO

SORT_FIELDS = ("date", "amount", "description", "type")
SORT_ORDERS = ("asc", "desc")


@dataclass(frozen=True, slots=True)
class TransactionRef:
    group_id: str
    index: int


@dataclass(frozen=True, slots=True)
class Totals:
    """Project (or global) totals.

    ``unclassified`` lists transactions whose type is not recognised and
    ``invalid_amounts`` those whose cost could not be parsed; neither adds
    to a total.
    """

    income: Decimal = ZERO
    expense: Decimal = ZERO
    unclassified: Tuple[TransactionRef, ...] = ()
    invalid_amounts: Tuple[TransactionRef, ...] = ()

    @property
    def net(self) -> Decimal:
        return MONEY_CONTEXT.subtract(self.income, self.expense)

    def as_dict(self) -> Dict[str, object]:
        return {
            "income": float(self.income),
            "expense": float(self.expense),
            "net": float(self.net),
            "exact": {"income": str(self.income), "expense": str(self.expense), "net": str(self.net)},
            "diagnostics": {
                "unclassified": [_ref_dict(ref) for ref in self.unclassified],
                "invalidAmounts": [_ref_dict(ref) for ref in self.invalid_amounts],
            },
        }


def _ref_dict(ref: TransactionRef) -> Dict[str, object]:
    return {"entryId": ref.group_id, "entryIndex": ref.index}


@dataclass(frozen=True, slots=True)
class FlatTransaction:
    """A transaction lifted out of its group, with everything a listing needs."""

    group_id: str
    index: int
    transaction_id: str
    project_id: str
    description: str
    transaction_type: Optional[TransactionType]
    type_label: str
    amount: Decimal
    amount_valid: bool
    effective_date: Optional[date]
    created_at: object = None
    updated_at: object = None

    @property
    def ref(self) -> TransactionRef:
        return TransactionRef(self.group_id, self.index)

    def as_dict(self) -> Dict[str, object]:
        return {
            "entryId": self.group_id,
            "entryIndex": self.index,
            "transactionId": self.transaction_id,
            "projectId": self.project_id,
            "description": self.description,
            "type": self.type_label,
            "classified": self.transaction_type is not None,
            "amount": float(self.amount),
            "amountValid": self.amount_valid,
            "date": self.effective_date.isoformat() if self.effective_date else None,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
            "updateat": self.updated_at.isoformat() if self.updated_at else None,
        }


@dataclass(frozen=True, slots=True)
class MonthlyBucket:
    period_key: str
    period_label: str
    income: Decimal
    expense: Decimal

    @property
    def profit(self) -> Decimal:
        return MONEY_CONTEXT.subtract(self.income, self.expense)

    def as_dict(self) -> Dict[str, object]:
        return {
            "period": self.period_key,
            "month": self.period_label,
            "income": float(self.income),
            "expense": float(self.expense),
            "profit": float(self.profit),
        }


def compute_totals(groups: Iterable[EntryGroup]) -> Totals:
    """Sum income and expenses across every transaction of every group."""

    income = ZERO
    expense = ZERO
    unclassified: List[TransactionRef] = []
    invalid: List[TransactionRef] = []
    for group in groups:
        for index, transaction in enumerate(group.transactions):
            ref = TransactionRef(group.group_id, index)
            if transaction.transaction_type is None:
                unclassified.append(ref)
            if transaction.amount is None:
                invalid.append(ref)
            if transaction.transaction_type is None or transaction.amount is None:
                continue
            if transaction.transaction_type is TransactionType.INCOME:
                income = MONEY_CONTEXT.add(income, transaction.amount)
            else:
                expense = MONEY_CONTEXT.add(expense, transaction.amount)
    return Totals(
        income=income,
        expense=expense,
        unclassified=tuple(unclassified),
        invalid_amounts=tuple(invalid),
    )


def flatten_transactions(groups: Iterable[EntryGroup]) -> List[FlatTransaction]:
    """List every transaction, unrecognised ones included, with its address."""

    flattened: List[FlatTransaction] = []
    for group in groups:
        for index, transaction in enumerate(group.transactions):
            flattened.append(
                FlatTransaction(
                    group_id=group.group_id,
                    index=index,
                    transaction_id=transaction.transaction_id,
                    project_id=group.project_id,
                    description=transaction.description,
                    transaction_type=transaction.transaction_type,
                    type_label=transaction.type_label,
                    amount=transaction.amount if transaction.amount is not None else ZERO,
                    amount_valid=transaction.amount is not None,
                    effective_date=group.effective_date(transaction),
                    created_at=group.created_at,
                    updated_at=transaction.updated_at or group.updated_at,
                )
            )
    return flattened


def compute_monthly_trend(groups: Iterable[EntryGroup]) -> List[MonthlyBucket]:
    """Bucket income and expenses by calendar month, oldest month first.

    Months without transactions are not emitted. Transactions without an
    effective date, with an unknown type or an unreadable amount are left out.
    """

    sums: Dict[Tuple[int, int], List[Decimal]] = defaultdict(lambda: [ZERO, ZERO])
    for group in groups:
        for transaction in group.transactions:
            when = group.effective_date(transaction)
            if when is None or transaction.transaction_type is None or transaction.amount is None:
                continue
            bucket = sums[(when.year, when.month)]
            slot = 0 if transaction.transaction_type is TransactionType.INCOME else 1
            bucket[slot] = MONEY_CONTEXT.add(bucket[slot], transaction.amount)

    return [
        MonthlyBucket(
            period_key=f"{year:04d}-{month:02d}",
            period_label=f"{date(year, month, 1):%b} {year}",
            income=income,
            expense=expense,
        )
        for (year, month), (income, expense) in sorted(sums.items())
    ]


@dataclass(frozen=True, slots=True)
class TransactionQuery:
    """Listing options for a project's transactions."""

    search: str = ""
    type_filter: str = "all"
    sort_by: str = "date"
    sort_order: str = "desc"
    page: int = 1
    limit: int = 10


@dataclass(frozen=True, slots=True)
class TransactionPage:
    items: List[FlatTransaction]
    total_count: int
    page: int
    limit: int
    unfiltered_count: int = 0

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total_count / self.limit) if self.total_count else 0

    def as_dict(self) -> Dict[str, object]:
        return {
            "items": [item.as_dict() for item in self.items],
            "totalCount": self.total_count,
            "unfilteredCount": self.unfiltered_count,
            "page": self.page,
            "limit": self.limit,
            "totalPages": self.total_pages,
        }


def format_display_date(value: Optional[date]) -> str:
    """Dates as the dashboard shows them, e.g. ``5 Mar 2024``."""

    if value is None:
        return "N/A"
    return f"{value.day} {value:%b %Y}"


def _matches_search(item: FlatTransaction, needle: str) -> bool:
    if needle in item.description.lower():
        return True
    if item.effective_date is None:
        return False
    return needle in format_display_date(item.effective_date).lower() or needle in item.effective_date.isoformat()


def _sort_key(sort_by: str):
    if sort_by == "amount":
        return lambda item: (item.amount, item.group_id, item.index)
    if sort_by == "description":
        return lambda item: (item.description.lower(), item.group_id, item.index)
    if sort_by == "type":
        return lambda item: (item.type_label, item.group_id, item.index)
    return lambda item: (item.effective_date or date.min, item.group_id, item.index)


def query_transactions(
    items: List[FlatTransaction], query: TransactionQuery, *, max_limit: Optional[int] = None
) -> TransactionPage:
    """Filter, sort and paginate a flattened transaction list."""

    problems = []
    if query.sort_by not in SORT_FIELDS:
        problems.append({"field": "sortBy", "message": f"sortBy must be one of {', '.join(SORT_FIELDS)}"})
    if query.sort_order not in SORT_ORDERS:
        problems.append({"field": "sortOrder", "message": "sortOrder must be asc or desc"})
    if query.page < 1:
        problems.append({"field": "page", "message": "page must be 1 or greater"})
    if query.limit < 1 or (max_limit is not None and query.limit > max_limit):
        problems.append({"field": "limit", "message": f"limit must be between 1 and {max_limit or 'unbounded'}"})
    wanted_type: Optional[TransactionType] = None
    if query.type_filter and query.type_filter != "all":
        wanted_type = canonicalise(query.type_filter)
        if wanted_type is None:
            problems.append({"field": "type", "message": "type must be all, income or expenses"})
    if problems:
        raise ValidationError(problems[0]["message"], errors=problems)

    selected = items
    if wanted_type is not None:
        selected = [item for item in selected if item.transaction_type is wanted_type]
    needle = query.search.strip().lower()
    if needle:
        selected = [item for item in selected if _matches_search(item, needle)]

    ordered = sorted(selected, key=_sort_key(query.sort_by), reverse=query.sort_order == "desc")
    start = (query.page - 1) * query.limit
    return TransactionPage(
        items=ordered[start : start + query.limit],
        total_count=len(ordered),
        page=query.page,
        limit=query.limit,
        unfiltered_count=len(items),
    )
