"""Mini README: Import flat PnL records from the first ledger version.

Structure:
    * MigrationReport - counts of migrated and skipped records.
    * migrate_legacy_records - move every legacy record into its project's
      entry group.

Legacy records name their project by *name* and label types ``inbound`` /
``outbound`` (sometimes ``Income`` / ``Expense``). A record is skipped when
its project no longer exists, when it cannot be validated, or when the
project already holds a transaction with the same description, date, type and
amount, which makes the migration safe to run more than once.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Dict, List, Optional, Set, Tuple

from ..errors import ValidationError
from ..finance.aggregation import flatten_transactions
from ..finance.labels import TransactionType
from ..finance.models import parse_date
from ..finance.validation import validate_transaction_fields
from ..logging_utils import get_logger
from ..store.base import EntryStore
from .ledger import LedgerService

LOGGER = get_logger(__name__)

Fingerprint = Tuple[str, Optional[date], TransactionType, Decimal]


@dataclass(slots=True)
class MigrationReport:
    migrated: int = 0
    skipped_unknown_project: int = 0
    skipped_duplicate: int = 0
    skipped_invalid: int = 0
    messages: List[str] = field(default_factory=list)

    @property
    def skipped(self) -> int:
        return self.skipped_unknown_project + self.skipped_duplicate + self.skipped_invalid


def _existing_fingerprints(store: EntryStore, project_id: str) -> Set[Fingerprint]:
    return {
        (item.description, item.effective_date, item.transaction_type, item.amount)
        for item in flatten_transactions(store.find_entry_groups(project_id))
        if item.transaction_type is not None and item.amount_valid
    }


def migrate_legacy_records(store: EntryStore, ledger: LedgerService) -> MigrationReport:
    """Move legacy PnL records into entry groups and report what happened."""

    report = MigrationReport()
    records = store.find_legacy_records()
    LOGGER.info("Found %s legacy records to migrate", len(records))
    projects = {project.name: project.project_id for project in store.list_projects()}
    seen: Dict[str, Set[Fingerprint]] = {}

    for record in records:
        description = record.get("description")
        project_id = projects.get(record.get("project"))
        if project_id is None:
            report.skipped_unknown_project += 1
            report.messages.append(f"Skipping entry for unknown project: {record.get('project')}")
            continue
        try:
            fields = validate_transaction_fields(
                {
                    "description": description,
                    "type": record.get("type"),
                    "cost": record.get("cost", record.get("amount")),
                    "date": parse_date(record.get("date")),
                }
            )
        except (ValidationError, ValueError) as error:
            report.skipped_invalid += 1
            report.messages.append(f"Skipping invalid record {description!r}: {error}")
            continue

        fingerprints = seen.setdefault(project_id, _existing_fingerprints(store, project_id))
        fingerprint = (fields.description, fields.occurred_on, fields.transaction_type, fields.amount)
        if fingerprint in fingerprints:
            report.skipped_duplicate += 1
            report.messages.append(f"Skipping duplicate entry item for: {description}")
            continue

        ledger.append_transactions(
            project_id,
            [fields],
            entry_date=fields.occurred_on,
        )
        fingerprints.add(fingerprint)
        report.migrated += 1
        report.messages.append(f"Migrated: {description} for project {record.get('project')}")

    LOGGER.info("Migration completed: migrated=%s skipped=%s", report.migrated, report.skipped)
    return report
