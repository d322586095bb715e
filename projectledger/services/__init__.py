"""Mini README: Application services used by the web interface and the CLI.

``ProjectService`` covers project lifecycle, ``LedgerService`` the totals,
trends and positional transaction edits, and ``migrate_legacy_records`` the
one-off import of records from the first ledger version.
"""

from .ledger import EntryFilter, LedgerService
from .migration import MigrationReport, migrate_legacy_records
from .projects import ProjectDetail, ProjectService, ProjectSummary

__all__ = [
    "EntryFilter",
    "LedgerService",
    "MigrationReport",
    "ProjectDetail",
    "ProjectService",
    "ProjectSummary",
    "migrate_legacy_records",
]
