"""Mini README: Field validation for submitted transactions and projects.

Structure:
    * EntryItemPayload - pydantic model for one submitted transaction.
    * ProjectPayload - pydantic model for project attributes.
    * describe_errors - flatten pydantic errors into ``{field, message}`` rows.
    * validate_transaction_fields / validate_transaction_list /
      validate_project_fields / validate_date - entry points used by the
      services for input that did not come through the HTTP layer.

Validation always happens before anything is written. The HTTP layer binds
request bodies to these models directly; everything else calls the
``validate_*`` helpers, which raise ``projectledger.errors.ValidationError``
with the same field paths (``entries[1].cost``) the API reports.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, TypeAdapter, field_validator
from pydantic import ValidationError as PydanticValidationError

from ..errors import ValidationError
from .labels import TransactionType, require_type
from .models import ProjectStatus, parse_date
from .money import require_positive_amount

DESCRIPTION_MAX_LENGTH = 200
PROJECT_NAME_MIN_LENGTH = 3
PROJECT_NAME_MAX_LENGTH = 100
PROJECT_DESCRIPTION_MAX_LENGTH = 500
PROJECT_CLIENT_MAX_LENGTH = 100


def _checked_date(value: object) -> Optional[date]:
    try:
        return parse_date(value)
    except ValueError as error:
        raise ValueError("Invalid date format") from error


class EntryItemPayload(BaseModel):
    """One transaction as submitted; ``amount`` is accepted as an alias of ``cost``."""

    model_config = ConfigDict(str_strip_whitespace=True, frozen=True)

    description: str = Field(..., min_length=1, max_length=DESCRIPTION_MAX_LENGTH)
    transaction_type: TransactionType = Field(..., validation_alias="type")
    amount: Decimal = Field(..., validation_alias=AliasChoices("cost", "amount"))
    occurred_on: Optional[date] = Field(default=None, validation_alias="date")

    @field_validator("transaction_type", mode="before")
    @classmethod
    def _canonical_type(cls, value: object) -> TransactionType:
        return require_type(value)

    @field_validator("amount", mode="before")
    @classmethod
    def _positive_cost(cls, value: object) -> Decimal:
        return require_positive_amount(value)

    @field_validator("occurred_on", mode="before")
    @classmethod
    def _iso_date(cls, value: object) -> Optional[date]:
        return _checked_date(value)


class ProjectPayload(BaseModel):
    """Project attributes; omitted description/client default to empty."""

    model_config = ConfigDict(str_strip_whitespace=True, frozen=True)

    name: str = Field(..., min_length=PROJECT_NAME_MIN_LENGTH, max_length=PROJECT_NAME_MAX_LENGTH)
    description: str = Field("", max_length=PROJECT_DESCRIPTION_MAX_LENGTH)
    client: str = Field("", max_length=PROJECT_CLIENT_MAX_LENGTH)
    status: ProjectStatus = ProjectStatus.PLANNING

    @field_validator("description", "client", mode="before")
    @classmethod
    def _empty_when_missing(cls, value: object) -> object:
        return "" if value is None else value

    @field_validator("status", mode="before")
    @classmethod
    def _default_status(cls, value: object) -> object:
        return value or ProjectStatus.PLANNING


_ENTRY_LIST = TypeAdapter(List[EntryItemPayload])


def _message(problem: Mapping[str, Any]) -> str:
    context = problem.get("ctx") or {}
    if problem.get("type") == "value_error" and "error" in context:
        return str(context["error"])
    return str(problem.get("msg", "Invalid value"))


def describe_errors(
    problems: Iterable[Mapping[str, Any]], *, prefix: str = "", skip: int = 0
) -> List[Dict[str, str]]:
    """Turn pydantic error dicts into ``{field, message}`` rows.

    ``skip`` drops leading location parts such as FastAPI's ``body``.
    """

    rows: List[Dict[str, str]] = []
    for problem in problems:
        path = prefix
        for part in tuple(problem.get("loc", ()))[skip:]:
            if isinstance(part, int):
                path += f"[{part}]"
            else:
                path += f".{part}" if path else str(part)
        rows.append({"field": path, "message": _message(problem)})
    return rows


def _rejected(error: PydanticValidationError, *, prefix: str = "") -> ValidationError:
    rows = describe_errors(error.errors(), prefix=prefix)
    return ValidationError(rows[0]["message"] if rows else "Invalid input", errors=rows)


def validate_date(value: object, *, field_name: str = "date") -> Optional[date]:
    """Parse an optional ISO 8601 date, rejecting anything unreadable."""

    try:
        return _checked_date(value)
    except ValueError as error:
        raise ValidationError(
            "Invalid date format",
            errors=[{"field": field_name, "message": f"Invalid date format: {value!r}"}],
        ) from error


def validate_transaction_fields(
    fields: Union[Mapping[str, Any], EntryItemPayload], *, position: Optional[int] = None
) -> EntryItemPayload:
    if isinstance(fields, EntryItemPayload):
        return fields
    try:
        return EntryItemPayload.model_validate(fields)
    except PydanticValidationError as error:
        raise _rejected(error, prefix=f"entries[{position}]" if position is not None else "") from error


def validate_transaction_list(
    items: Sequence[Union[Mapping[str, Any], EntryItemPayload]]
) -> List[EntryItemPayload]:
    """Validate every element before any of them is used; all-or-nothing."""

    if not isinstance(items, (list, tuple)) or not items:
        raise ValidationError(
            "At least one entry item is required",
            errors=[{"field": "entries", "message": "Entries must be a non-empty array"}],
        )
    try:
        return _ENTRY_LIST.validate_python(list(items))
    except PydanticValidationError as error:
        raise _rejected(error, prefix="entries") from error


def validate_project_fields(fields: Union[Mapping[str, Any], ProjectPayload]) -> ProjectPayload:
    if isinstance(fields, ProjectPayload):
        return fields
    try:
        return ProjectPayload.model_validate(fields)
    except PydanticValidationError as error:
        raise _rejected(error) from error
