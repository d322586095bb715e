"""Mini README: Decimal money helpers.

Structure:
    * CENT - quantisation step for every stored amount and total.
    * AmountParse - result of a lenient read-side parse.
    * parse_amount - read-side parse that flags rather than raises.
    * require_positive_amount - write-side validation.
    * quantise - round a Decimal to cents.
    * MONEY_CONTEXT - arithmetic context used for every sum of amounts.

Amounts are held as ``Decimal`` so sums are exact regardless of how many
times a project's totals are recomputed. Floats coming from JSON or from
older documents are converted through ``str`` to keep their shortest repr.
The default decimal context keeps only 28 significant digits, so amounts
and sums use ``MONEY_CONTEXT`` instead.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Context, Decimal, DivisionByZero, InvalidOperation, Overflow
from typing import Optional

from ..errors import ValidationError

CENT = Decimal("0.01")
ZERO = Decimal("0.00")
MONEY_CONTEXT = Context(prec=60, rounding=ROUND_HALF_UP, traps=[InvalidOperation, DivisionByZero, Overflow])


def quantise(value: Decimal) -> Decimal:
    return value.quantize(CENT, rounding=ROUND_HALF_UP, context=MONEY_CONTEXT)


@dataclass(frozen=True, slots=True)
class AmountParse:
    """Outcome of parsing a stored amount."""

    value: Optional[Decimal]
    raw: object

    @property
    def valid(self) -> bool:
        return self.value is not None

    @property
    def contribution(self) -> Decimal:
        """What the amount adds to a total: the value, or zero when invalid."""

        return self.value if self.value is not None else ZERO


def _to_decimal(value: object) -> Optional[Decimal]:
    if value is None or isinstance(value, bool):
        return None
    if hasattr(value, "to_decimal"):
        # bson.Decimal128
        value = value.to_decimal()
    if isinstance(value, Decimal):
        candidate = value
    elif isinstance(value, (int, float)):
        candidate = Decimal(str(value))
    elif isinstance(value, str):
        text = value.strip().replace(",", "")
        if not text:
            return None
        try:
            candidate = Decimal(text)
        except InvalidOperation:
            return None
    else:
        return None
    if not candidate.is_finite():
        return None
    try:
        return quantise(candidate)
    except InvalidOperation:
        # more digits than MONEY_CONTEXT can hold
        return None


def parse_amount(value: object) -> AmountParse:
    """Parse a stored amount, flagging values that cannot be read."""

    return AmountParse(value=_to_decimal(value), raw=value)


def require_positive_amount(value: object) -> Decimal:
    """Validate a submitted cost: numeric and at least one cent."""

    amount = _to_decimal(value)
    if amount is None:
        raise ValidationError(
            "Cost must be a number",
            errors=[{"field": "cost", "message": f"Cost must be a number, got {value!r}"}],
        )
    if amount < CENT:
        raise ValidationError(
            "Cost must be greater than 0",
            errors=[{"field": "cost", "message": "Cost must be greater than 0"}],
        )
    return amount
