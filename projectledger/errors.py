"""Mini README: Error taxonomy shared by the store, services and web layer.

Structure:
    * LedgerError - base class carrying a human readable message.
    * ValidationError / DuplicateProjectError - rejected input, nothing written.
    * NotFoundError - referenced project or entry group does not exist.
    * IndexOutOfRangeError / StaleReferenceError - bad positional reference.
    * ConflictError / ConcurrentModificationError - optimistic write lost a race.
    * TransientStoreError - connectivity or timeout talking to the store.

Errors are raised where they are detected and translated to HTTP responses in
one place (``projectledger.interface.web_app``).
"""

from __future__ import annotations

from typing import Dict, List, Optional


class LedgerError(Exception):
    """Base class for every error raised by Project Ledger."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def __str__(self) -> str:
        return self.message


class ValidationError(LedgerError, ValueError):
    """Input failed field validation; the request is rejected as a whole."""

    def __init__(self, message: str, *, errors: Optional[List[Dict[str, str]]] = None) -> None:
        super().__init__(message)
        self.errors = errors or []


class DuplicateProjectError(ValidationError):
    """A project with the same name already exists."""


class NotFoundError(LedgerError, LookupError):
    """A project or entry group could not be found."""

    def __init__(self, kind: str, identifier: str) -> None:
        super().__init__(f"{kind} {identifier} not found")
        self.kind = kind
        self.identifier = identifier


class IndexOutOfRangeError(LedgerError, IndexError):
    """Positional reference outside of an entry group's transaction list."""

    def __init__(self, group_id: str, index: object, length: int, message: Optional[str] = None) -> None:
        if message is None:
            if length:
                message = (
                    f"Invalid entry index: {index} is out of bounds for entry {group_id} "
                    f"(max: {length - 1})"
                )
            else:
                message = f"Invalid entry index: {index}; entry {group_id} has no transactions"
        super().__init__(message)
        self.group_id = group_id
        self.index = index
        self.length = length


class StaleReferenceError(IndexOutOfRangeError):
    """The transaction an index pointed to moved or vanished during a retry."""

    def __init__(self, group_id: str, index: object, length: int) -> None:
        super().__init__(
            group_id,
            index,
            length,
            message=(
                f"Entry {group_id} changed while updating index {index}; "
                "re-fetch the transactions and try again"
            ),
        )


class ConflictError(LedgerError):
    """A conditional save found a different revision than expected."""

    def __init__(self, group_id: str, expected_revision: int) -> None:
        super().__init__(
            f"Entry {group_id} was modified concurrently (expected revision {expected_revision})"
        )
        self.group_id = group_id
        self.expected_revision = expected_revision


class ConcurrentModificationError(ConflictError):
    """Conflicts persisted after every allowed re-read."""


class TransientStoreError(LedgerError):
    """The document store was unreachable or timed out."""
