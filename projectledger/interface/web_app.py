"""Mini README: FastAPI application serving the ledger API and dashboard.

Structure:
    * Request bodies - pydantic models for project and entry payloads.
    * create_application - application factory wiring routes, error
      translation and the Jinja2 dashboard.

All domain errors are raised by the services and turned into JSON responses
by the exception handlers registered here: validation problems and bad
indices give 400, unknown ids 404, lost concurrent updates 409 and an
unreachable store 503.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from datetime import date
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from fastapi import FastAPI, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import HTMLResponse, JSONResponse
from fastapi.templating import Jinja2Templates
from pydantic import BaseModel, Field

from ..configuration import LedgerSettings, get_settings
from ..errors import (
    ConflictError,
    IndexOutOfRangeError,
    LedgerError,
    NotFoundError,
    StaleReferenceError,
    TransientStoreError,
    ValidationError,
)
from ..finance.aggregation import TransactionQuery, compute_totals, flatten_transactions
from ..finance.validation import EntryItemPayload, ProjectPayload, describe_errors, validate_date
from ..logging_utils import configure_root_logger, get_logger
from ..services import EntryFilter, LedgerService, ProjectService
from ..store import EntryStore, create_store

LOGGER = get_logger(__name__)


class EntriesPayload(BaseModel):
    entries: List[EntryItemPayload] = Field(default_factory=list)
    date: Optional[str] = None


class CreateEntryPayload(EntriesPayload):
    projectId: str


class UpdateEntryPayload(EntriesPayload):
    entryIndex: Optional[Union[int, str]] = None


def _error_response(status_code: int, error: LedgerError) -> JSONResponse:
    payload: Dict[str, Any] = {"success": False, "message": error.message}
    if isinstance(error, ValidationError) and error.errors:
        payload["errors"] = error.errors
    return JSONResponse(payload, status_code=status_code)


def create_application(
    settings: Optional[LedgerSettings] = None,
    store: Optional[EntryStore] = None,
) -> FastAPI:
    """Create the FastAPI application with routes and dependencies."""

    settings = settings or get_settings()
    configure_root_logger(settings.log_level)
    store = store or create_store(settings)

    @asynccontextmanager
    async def lifespan(_: FastAPI):
        yield
        store.close()

    app = FastAPI(title="Project Ledger", version="1.0.0", lifespan=lifespan)
    templates = Jinja2Templates(directory=str(Path(__file__).parent / "templates"))

    projects = ProjectService(store)
    ledger = LedgerService(store, settings)
    app.state.store = store
    app.state.settings = settings

    # -- error translation --------------------------------------------------

    @app.exception_handler(ValidationError)
    async def validation_failed(_: Request, error: ValidationError) -> JSONResponse:
        LOGGER.debug("Rejected request: %s", error.errors or error.message)
        return _error_response(400, error)

    @app.exception_handler(NotFoundError)
    async def not_found(_: Request, error: NotFoundError) -> JSONResponse:
        return _error_response(404, error)

    @app.exception_handler(IndexOutOfRangeError)
    async def index_out_of_range(_: Request, error: IndexOutOfRangeError) -> JSONResponse:
        return _error_response(400, error)

    @app.exception_handler(StaleReferenceError)
    async def stale_reference(_: Request, error: StaleReferenceError) -> JSONResponse:
        return _error_response(409, error)

    @app.exception_handler(ConflictError)
    async def conflict(_: Request, error: ConflictError) -> JSONResponse:
        return _error_response(409, error)

    @app.exception_handler(TransientStoreError)
    async def store_unavailable(_: Request, error: TransientStoreError) -> JSONResponse:
        return _error_response(503, error)

    @app.exception_handler(RequestValidationError)
    async def malformed_request(_: Request, error: RequestValidationError) -> JSONResponse:
        problems = describe_errors(error.errors(), skip=1)
        LOGGER.debug("Malformed request body: %s", problems)
        return JSONResponse(
            {"success": False, "message": "Malformed request", "errors": problems},
            status_code=400,
        )

    # -- dashboard ----------------------------------------------------------

    @app.get("/", response_class=HTMLResponse)
    def dashboard(request: Request) -> HTMLResponse:
        """Render project totals and the monthly trend table."""

        summaries = projects.list_projects()
        totals = ledger.compute_global_totals()
        trend = ledger.monthly_trend()
        LOGGER.debug("Rendering dashboard with %s projects and %s trend months", len(summaries), len(trend))
        return templates.TemplateResponse(
            request,
            "dashboard.html",
            {
                "summaries": summaries,
                "totals": totals,
                "trend": trend,
                "currency": settings.currency_code,
            },
        )

    @app.get("/api/health")
    async def health() -> JSONResponse:
        """Liveness check naming the active store backend."""

        return JSONResponse({"status": "ok", "store": store.backend_name})

    # -- projects -----------------------------------------------------------

    @app.get("/api/projects")
    def list_projects() -> JSONResponse:
        """Every project, newest first, with inbound, outbound and profit."""

        summaries = [summary.as_dict() for summary in projects.list_projects()]
        return JSONResponse({"count": len(summaries), "data": summaries})

    @app.get("/api/projects/{project_id}")
    def get_project(project_id: str) -> JSONResponse:
        """One project with its totals and flattened transactions."""

        return JSONResponse(projects.get_project(project_id).as_dict())

    @app.post("/api/projects", status_code=201)
    def create_project(payload: ProjectPayload) -> JSONResponse:
        """Create a project; names are unique."""

        project = projects.create_project(payload)
        body = project.as_dict()
        body.update({"inbound": 0.0, "outbound": 0.0, "profit": 0.0})
        return JSONResponse({"message": "Project created successfully", "project": body}, status_code=201)

    @app.put("/api/projects/{project_id}")
    def update_project(project_id: str, payload: ProjectPayload) -> JSONResponse:
        """Rename or re-describe a project and return its refreshed totals."""

        summary = projects.update_project(project_id, payload)
        return JSONResponse({"message": "Project updated successfully", "project": summary.as_dict()})

    @app.delete("/api/projects/{project_id}")
    def delete_project(project_id: str) -> JSONResponse:
        """Delete a project together with all of its entry groups."""

        removed = projects.delete_project(project_id)
        return JSONResponse(
            {
                "message": "Project and all related entries deleted successfully",
                "deletedEntries": removed,
            }
        )

    @app.get("/api/projects/{project_id}/totals")
    def project_totals(project_id: str) -> JSONResponse:
        """Income, expense and net for one project."""

        return JSONResponse(ledger.compute_project_totals(project_id).as_dict())

    @app.get("/api/projects/{project_id}/transactions")
    def project_transactions(
        project_id: str,
        search: str = "",
        type_filter: str = Query("all", alias="type"),
        sort_by: str = Query("date", alias="sortBy"),
        sort_order: str = Query("desc", alias="sortOrder"),
        page: int = 1,
        limit: Optional[int] = None,
    ) -> JSONResponse:
        """Search, filter, sort and page a project's flattened transactions."""

        query = TransactionQuery(
            search=search,
            type_filter=type_filter,
            sort_by=sort_by,
            sort_order=sort_order,
            page=page,
            limit=settings.default_page_size if limit is None else limit,
        )
        return JSONResponse(ledger.list_flattened_transactions(project_id, query).as_dict())

    @app.get("/api/projects/{project_id}/entries")
    def project_entries(project_id: str) -> JSONResponse:
        """A project's entry groups plus the flattened list and a summary."""

        groups = ledger.project_groups(project_id)
        totals = compute_totals(groups)
        flattened = [transaction.as_dict() for transaction in flatten_transactions(groups)]
        return JSONResponse(
            {
                "success": True,
                "count": len(flattened),
                "data": [group.as_dict() for group in groups],
                "flattenedEntries": flattened,
                "summary": {
                    "income": float(totals.income),
                    "expense": float(totals.expense),
                    "net": float(totals.net),
                },
            }
        )

    @app.post("/api/projects/{project_id}/entries")
    def append_project_entries(project_id: str, payload: EntriesPayload) -> JSONResponse:
        """Append transactions to the project's entry group, creating it on first use."""

        entry_date = validate_date(payload.date)
        result = ledger.append_transactions(project_id, payload.entries, entry_date=entry_date)
        return JSONResponse(
            {
                "success": True,
                "message": "Entry added successfully" if result.created else "Entry updated successfully",
                "data": result.group.as_dict(),
                "entryId": result.group.group_id,
                "assignedIndices": result.assigned_indices,
            },
            status_code=201 if result.created else 200,
        )

    # -- entry groups -------------------------------------------------------

    @app.get("/api/entries")
    def list_entries(
        project_id: Optional[str] = Query(None, alias="projectId"),
        type_label: Optional[str] = Query(None, alias="type"),
        start_date: Optional[date] = Query(None, alias="startDate"),
        end_date: Optional[date] = Query(None, alias="endDate"),
    ) -> JSONResponse:
        """Entry groups filtered by project, type and date range."""

        entry_filter = EntryFilter.build(
            project_id=project_id,
            type_label=type_label,
            start_date=start_date,
            end_date=end_date,
        )
        groups = ledger.list_entry_groups(entry_filter)
        return JSONResponse(
            {"success": True, "count": len(groups), "data": [group.as_dict() for group in groups]}
        )

    @app.post("/api/entries", status_code=201)
    def create_entry(payload: CreateEntryPayload) -> JSONResponse:
        """Store a new entry group for a project."""

        entry_date = validate_date(payload.date)
        group = ledger.create_entry_group(payload.projectId, payload.entries, entry_date=entry_date)
        return JSONResponse({"success": True, "data": group.as_dict()}, status_code=201)

    @app.get("/api/entries/{entry_id}")
    def get_entry(entry_id: str) -> JSONResponse:
        """One entry group with every transaction."""

        return JSONResponse({"success": True, "data": ledger.get_entry_group(entry_id).as_dict()})

    @app.get("/api/entries/{entry_id}/transactions/{entry_index}")
    def get_transaction(entry_id: str, entry_index: str) -> JSONResponse:
        """The transaction at a position inside an entry group."""

        located = ledger.get_transaction_at(entry_id, entry_index)
        entry = located.group.as_dict()["entries"][located.index]
        return JSONResponse({"success": True, "entryId": entry_id, "entryIndex": located.index, "data": entry})

    @app.put("/api/entries/{entry_id}")
    def update_entry(entry_id: str, payload: UpdateEntryPayload) -> JSONResponse:
        """Update one transaction by ``entryIndex`` or replace the whole list."""

        entry_date = validate_date(payload.date)
        if payload.entryIndex is not None and payload.entries:
            group = ledger.update_transaction_at(
                entry_id, payload.entryIndex, payload.entries[0], entry_date=entry_date
            )
        elif payload.entries:
            group = ledger.replace_transactions(entry_id, payload.entries, entry_date=entry_date)
        else:
            raise ValidationError(
                "No valid entries data provided",
                errors=[{"field": "entries", "message": "Entries must be a non-empty array"}],
            )
        return JSONResponse({"success": True, "data": group.as_dict()})

    @app.delete("/api/entries/{entry_id}")
    def delete_entry(
        entry_id: str,
        entry_index: Optional[str] = Query(None, alias="entryIndex"),
    ) -> JSONResponse:
        """Delete a whole entry group, or a single transaction by ``entryIndex``."""

        if entry_index is None:
            ledger.delete_entry_group(entry_id)
            return JSONResponse(
                {"success": True, "message": "Entry deleted successfully", "groupDeleted": True}
            )
        outcome = ledger.delete_transaction_at(entry_id, entry_index)
        return JSONResponse(
            {
                "success": True,
                "message": "Transaction deleted successfully",
                "groupDeleted": outcome.group_deleted,
                "remaining": outcome.remaining,
            }
        )

    # -- reporting ----------------------------------------------------------

    @app.get("/api/totals")
    def global_totals() -> JSONResponse:
        """Income, expense and net across every project."""

        return JSONResponse(ledger.compute_global_totals().as_dict())

    @app.get("/api/trends/monthly")
    def monthly_trend(project_id: Optional[str] = Query(None, alias="projectId")) -> JSONResponse:
        """Income, expense and profit per calendar month."""

        buckets = ledger.monthly_trend(project_id)
        return JSONResponse({"data": [bucket.as_dict() for bucket in buckets]})

    return app
