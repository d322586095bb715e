"""Mini README: Core package initializer for Project Ledger.

Project Ledger tracks income and expenses per client project: projects own
entry groups, entry groups hold ordered transactions, and the dashboard shows
per-project totals and monthly trends. Subpackages:

    * finance - records, label normalisation, aggregation and the locator.
    * store - in-memory and MongoDB document stores.
    * services - project lifecycle, ledger operations and legacy migration.
    * interface - FastAPI application and dashboard template.
"""

from .logging_utils import get_logger

__version__ = "1.0.0"

__all__ = ["get_logger", "__version__"]
