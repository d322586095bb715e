"""Mini README: Domain records for projects, entry groups and transactions.

Structure:
    * ProjectStatus - enumerated project lifecycle states.
    * Project - a client project owning zero or more entry groups.
    * Transaction - one income or expense line inside an entry group.
    * EntryGroup - stored document holding an ordered list of transactions.
    * utcnow / parse_date - timestamp helpers shared with the store layer.

Records convert to and from plain documents only through ``from_document``
and ``to_document``. The document field names (``projectId``, ``entries``,
``cost``, ``updateat``) match what earlier versions of the application wrote,
so existing collections load without a migration. Reading is lenient: labels
and amounts that cannot be understood are kept verbatim and flagged, never
dropped, and are written back unchanged when a sibling transaction changes.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import date, datetime, time, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional

from ..logging_utils import get_logger
from .labels import TransactionType, canonicalise
from .money import parse_amount

LOGGER = get_logger(__name__)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_identifier() -> str:
    return uuid.uuid4().hex


def parse_date(value: object) -> Optional[date]:
    """Read a calendar date from a date, datetime or ISO 8601 string."""

    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            return datetime.fromisoformat(text).date()
        except ValueError:
            return date.fromisoformat(text[:10])
    raise ValueError(f"Unsupported date value: {value!r}")


def _lenient_date(value: object) -> Optional[date]:
    try:
        return parse_date(value)
    except ValueError:
        LOGGER.warning("Ignoring unreadable stored date %r", value)
        return None


def _date_to_document(value: Optional[date]) -> Optional[datetime]:
    if value is None:
        return None
    return datetime.combine(value, time.min, tzinfo=timezone.utc)


class ProjectStatus(str, Enum):
    """Lifecycle state shown next to each project."""

    PLANNING = "Planning"
    IN_PROGRESS = "In Progress"
    COMPLETED = "Completed"


@dataclass(slots=True)
class Project:
    """A client project; owns entry groups by reference."""

    project_id: str
    name: str
    description: str = ""
    client: str = ""
    status: ProjectStatus = ProjectStatus.PLANNING
    created_at: Optional[datetime] = None

    @classmethod
    def from_document(cls, document: Mapping[str, Any]) -> "Project":
        raw_status = document.get("status") or ProjectStatus.PLANNING.value
        try:
            status = ProjectStatus(raw_status)
        except ValueError:
            LOGGER.warning("Project %s has unknown status %r", document.get("_id"), raw_status)
            status = ProjectStatus.PLANNING
        return cls(
            project_id=str(document["_id"]),
            name=document.get("name", ""),
            description=document.get("description") or "",
            client=document.get("client") or "",
            status=status,
            created_at=document.get("createdAt"),
        )

    def to_document(self) -> Dict[str, Any]:
        return {
            "_id": self.project_id,
            "name": self.name,
            "description": self.description,
            "client": self.client,
            "status": self.status.value,
            "createdAt": self.created_at,
        }

    def as_dict(self) -> Dict[str, object]:
        return {
            "id": self.project_id,
            "name": self.name,
            "description": self.description,
            "client": self.client,
            "status": self.status.value,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
        }


@dataclass(slots=True)
class Transaction:
    """One line of an entry group.

    ``transaction_type`` is ``None`` when the stored label is not in the label
    table and ``amount`` is ``None`` when the stored cost could not be parsed;
    ``raw_type``/``raw_amount`` keep the stored values in both cases.
    """

    transaction_id: str
    description: str
    transaction_type: Optional[TransactionType]
    amount: Optional[Decimal]
    occurred_on: Optional[date] = None
    updated_at: Optional[datetime] = None
    raw_type: object = None
    raw_amount: object = None

    @classmethod
    def create(
        cls,
        *,
        description: str,
        transaction_type: TransactionType,
        amount: Decimal,
        occurred_on: Optional[date],
        now: Optional[datetime] = None,
        transaction_id: Optional[str] = None,
    ) -> "Transaction":
        return cls(
            transaction_id=transaction_id or new_identifier(),
            description=description,
            transaction_type=transaction_type,
            amount=amount,
            occurred_on=occurred_on,
            updated_at=now or utcnow(),
            raw_type=transaction_type.value,
            raw_amount=amount,
        )

    @classmethod
    def from_document(cls, document: Mapping[str, Any], *, fallback_id: str) -> "Transaction":
        raw_type = document.get("type")
        raw_amount = document.get("cost", document.get("amount"))
        identifier = document.get("transaction_id") or document.get("_id") or fallback_id
        return cls(
            transaction_id=str(identifier),
            description=document.get("description") or "",
            transaction_type=canonicalise(raw_type),
            amount=parse_amount(raw_amount).value,
            occurred_on=_lenient_date(document.get("date")),
            updated_at=document.get("updateat"),
            raw_type=raw_type,
            raw_amount=raw_amount,
        )

    def to_document(self) -> Dict[str, Any]:
        document: Dict[str, Any] = {
            "transaction_id": self.transaction_id,
            "description": self.description,
            "type": self.transaction_type.value if self.transaction_type else self.raw_type,
            "cost": self.amount if self.amount is not None else self.raw_amount,
            "updateat": self.updated_at,
        }
        if self.occurred_on is not None:
            document["date"] = _date_to_document(self.occurred_on)
        return document

    @property
    def type_label(self) -> str:
        if self.transaction_type is not None:
            return self.transaction_type.value
        return "" if self.raw_type is None else str(self.raw_type)


@dataclass(slots=True)
class EntryGroup:
    """Stored document holding a project's transactions in insertion order."""

    group_id: str
    project_id: str
    transactions: List[Transaction] = field(default_factory=list)
    entry_date: Optional[date] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    revision: int = 0

    @classmethod
    def from_document(cls, document: Mapping[str, Any]) -> "EntryGroup":
        group_id = str(document["_id"])
        items = document.get("entries") or []
        return cls(
            group_id=group_id,
            project_id=str(document.get("projectId")),
            transactions=[
                Transaction.from_document(item, fallback_id=f"{group_id}-{index}")
                for index, item in enumerate(items)
            ],
            entry_date=_lenient_date(document.get("date")),
            created_at=document.get("createdAt"),
            updated_at=document.get("updatedAt") or document.get("updatedat"),
            revision=int(document.get("revision") or 0),
        )

    def to_document(self) -> Dict[str, Any]:
        return {
            "_id": self.group_id,
            "projectId": self.project_id,
            "entries": [transaction.to_document() for transaction in self.transactions],
            "date": _date_to_document(self.entry_date),
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
            "revision": self.revision,
        }

    def effective_date(self, transaction: Transaction) -> Optional[date]:
        """The transaction's own date, else the group's fallback date."""

        return transaction.occurred_on or self.entry_date

    def position_of(self, transaction_id: str) -> Optional[int]:
        for index, transaction in enumerate(self.transactions):
            if transaction.transaction_id == transaction_id:
                return index
        return None

    def as_dict(self) -> Dict[str, object]:
        """Serialisable view with every transaction's date filled in."""

        return {
            "id": self.group_id,
            "projectId": self.project_id,
            "date": self.entry_date.isoformat() if self.entry_date else None,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
            "updatedAt": self.updated_at.isoformat() if self.updated_at else None,
            "revision": self.revision,
            "entries": [
                {
                    "transactionId": transaction.transaction_id,
                    "description": transaction.description,
                    "type": transaction.type_label,
                    "cost": str(transaction.amount) if transaction.amount is not None else None,
                    "date": _iso(self.effective_date(transaction)),
                    "updateat": transaction.updated_at.isoformat() if transaction.updated_at else None,
                }
                for transaction in self.transactions
            ],
        }


def _iso(value: Optional[date]) -> Optional[str]:
    return value.isoformat() if value else None
