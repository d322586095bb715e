"""Mini README: Income and expense bookkeeping for client projects.

This package holds the domain records (projects, entry groups, transactions),
the canonical transaction types with their legacy label table, Decimal money
helpers, the aggregation engine behind the totals and trend charts, and the
locator that addresses transactions by their position inside an entry group.
"""

from .aggregation import (
    FlatTransaction,
    MonthlyBucket,
    Totals,
    TransactionPage,
    TransactionQuery,
    TransactionRef,
    compute_monthly_trend,
    compute_totals,
    flatten_transactions,
    query_transactions,
)
from .labels import LABEL_TABLE, TransactionType, canonicalise, require_type
from .locator import AppendResult, DeleteOutcome, EntryLocator, LocatedTransaction
from .models import EntryGroup, Project, ProjectStatus, Transaction

__all__ = [
    "AppendResult",
    "DeleteOutcome",
    "EntryGroup",
    "EntryLocator",
    "FlatTransaction",
    "LABEL_TABLE",
    "LocatedTransaction",
    "MonthlyBucket",
    "Project",
    "ProjectStatus",
    "Totals",
    "Transaction",
    "TransactionPage",
    "TransactionQuery",
    "TransactionRef",
    "TransactionType",
    "canonicalise",
    "compute_monthly_trend",
    "compute_totals",
    "flatten_transactions",
    "query_transactions",
    "require_type",
]
