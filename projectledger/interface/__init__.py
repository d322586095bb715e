"""Mini README: Interactive interfaces for Project Ledger.

Exports the FastAPI application factory serving the JSON API and the HTML
dashboard. The Typer launcher lives in ``run_dashboard.py`` at the repo root.
"""

from .web_app import create_application

__all__ = ["create_application"]
