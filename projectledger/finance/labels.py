"""Mini README: Canonical transaction types and the legacy label table.

Structure:
    * TransactionType - the two canonical variants and their storage labels.
    * LABEL_TABLE - every external label ever written, mapped to a variant.
    * canonicalise / require_type - read-side and write-side conversions.

Older clients wrote ``Income``/``Expense`` and the first ledger wrote
``inbound``/``outbound``. Everything that crosses the store boundary goes
through this table so the rest of the code only sees ``TransactionType``.
"""

from __future__ import annotations

from enum import Enum
from typing import Dict, Optional

from ..errors import ValidationError


class TransactionType(str, Enum):
    """Canonical transaction type; values are the labels written to storage."""

    INCOME = "income"
    EXPENSE = "expenses"

    @property
    def display_name(self) -> str:
        return "Income" if self is TransactionType.INCOME else "Expense"


LABEL_TABLE: Dict[str, TransactionType] = {
    "income": TransactionType.INCOME,
    "Income": TransactionType.INCOME,
    "inbound": TransactionType.INCOME,
    "expenses": TransactionType.EXPENSE,
    "Expense": TransactionType.EXPENSE,
    "expense": TransactionType.EXPENSE,
    "outbound": TransactionType.EXPENSE,
}


def canonicalise(label: object) -> Optional[TransactionType]:
    """Map a stored or submitted label to its variant, ``None`` when unknown."""

    if isinstance(label, TransactionType):
        return label
    if not isinstance(label, str):
        return None
    return LABEL_TABLE.get(label.strip())


def require_type(label: object) -> TransactionType:
    """Write-side conversion: unknown labels are rejected."""

    transaction_type = canonicalise(label)
    if transaction_type is None:
        raise ValidationError(
            "Type must be either income or expenses",
            errors=[{"field": "type", "message": f"Unsupported transaction type: {label!r}"}],
        )
    return transaction_type
