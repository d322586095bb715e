"""Mini README: MongoDB implementation of the entry store.

Structure:
    * DecimalCodec - stores ``Decimal`` amounts as BSON ``Decimal128``.
    * MongoEntryStore - pymongo-backed ``EntryStore``.

Identifiers are ``ObjectId`` in the database and plain strings everywhere
else; a string that is not a valid ``ObjectId`` cannot name a document and is
reported as not found. Entry group writes are conditional ``replace_one``
calls filtered on ``revision`` so two requests editing the same group never
silently overwrite each other. Connection problems and timeouts surface as
``TransientStoreError`` and are never retried here.
"""

from __future__ import annotations

from contextlib import contextmanager
from decimal import Decimal
from typing import Any, Dict, Iterator, List, Mapping, Optional

from bson import ObjectId
from bson.codec_options import CodecOptions, TypeCodec, TypeRegistry
from bson.decimal128 import Decimal128
from pymongo import DESCENDING, MongoClient
from pymongo.errors import ConnectionFailure, ExecutionTimeout, WTimeoutError

from ..errors import ConflictError, NotFoundError, TransientStoreError
from ..finance.models import EntryGroup, Project, utcnow
from ..logging_utils import get_logger
from .base import EntryStore

LOGGER = get_logger(__name__)

PROJECTS = "projects"
ENTRIES = "entries"
LEGACY_PNL = "pnlentries"


class DecimalCodec(TypeCodec):
    python_type = Decimal
    bson_type = Decimal128

    def transform_python(self, value: Decimal) -> Decimal128:
        return Decimal128(value)

    def transform_bson(self, value: Decimal128) -> Decimal:
        return value.to_decimal()


CODEC_OPTIONS = CodecOptions(type_registry=TypeRegistry([DecimalCodec()]), tz_aware=True)


def to_object_id(identifier: str, kind: str) -> ObjectId:
    """Convert an API identifier, treating malformed ids as missing documents."""

    if isinstance(identifier, ObjectId):
        return identifier
    if not ObjectId.is_valid(identifier):
        raise NotFoundError(kind, str(identifier))
    return ObjectId(identifier)


def revision_filter(object_id: ObjectId, expected_revision: int) -> Dict[str, Any]:
    """Match a group at a revision; documents from older clients have none."""

    if expected_revision == 0:
        return {
            "_id": object_id,
            "$or": [{"revision": 0}, {"revision": {"$exists": False}}],
        }
    return {"_id": object_id, "revision": expected_revision}


def _stringify_ids(document: Mapping[str, Any]) -> Dict[str, Any]:
    converted = dict(document)
    converted["_id"] = str(converted["_id"])
    if isinstance(converted.get("projectId"), ObjectId):
        converted["projectId"] = str(converted["projectId"])
    return converted


@contextmanager
def _translate_errors(operation: str) -> Iterator[None]:
    try:
        yield
    except (ConnectionFailure, ExecutionTimeout, WTimeoutError) as error:
        LOGGER.warning("Store operation %s failed: %s", operation, error)
        raise TransientStoreError(f"Document store unavailable during {operation}") from error


class MongoEntryStore(EntryStore):
    """Entry store backed by a MongoDB database."""

    backend_name = "mongo"

    def __init__(
        self,
        uri: str,
        database: str,
        *,
        timeout_ms: int = 5000,
        client: Optional[MongoClient] = None,
    ) -> None:
        self._client = client or MongoClient(
            uri,
            serverSelectionTimeoutMS=timeout_ms,
            connectTimeoutMS=timeout_ms,
            socketTimeoutMS=timeout_ms,
            tz_aware=True,
        )
        db = self._client.get_database(database, codec_options=CODEC_OPTIONS)
        self._projects = db[PROJECTS]
        self._groups = db[ENTRIES]
        self._legacy = db[LEGACY_PNL]
        LOGGER.info("Mongo store bound to database '%s'", database)

    # -- projects -----------------------------------------------------------

    def list_projects(self) -> List[Project]:
        """All projects sorted by createdAt, then _id, descending."""

        with _translate_errors("list_projects"):
            cursor = self._projects.find().sort([("createdAt", DESCENDING), ("_id", DESCENDING)])
            return [Project.from_document(_stringify_ids(document)) for document in cursor]

    def find_project(self, project_id: str) -> Project:
        """Load one project; malformed ids are reported as not found."""

        object_id = to_object_id(project_id, "Project")
        with _translate_errors("find_project"):
            document = self._projects.find_one({"_id": object_id})
        if document is None:
            raise NotFoundError("Project", project_id)
        return Project.from_document(_stringify_ids(document))

    def find_project_by_name(self, name: str) -> Optional[Project]:
        """Exact match on the stored name."""

        with _translate_errors("find_project_by_name"):
            document = self._projects.find_one({"name": name})
        return Project.from_document(_stringify_ids(document)) if document else None

    def create_project(self, project: Project) -> Project:
        """Insert a project and return it with the generated ObjectId."""

        document = project.to_document()
        document.pop("_id")
        document["createdAt"] = document["createdAt"] or utcnow()
        with _translate_errors("create_project"):
            result = self._projects.insert_one(document)
        document["_id"] = str(result.inserted_id)
        return Project.from_document(document)

    def save_project(self, project: Project) -> Project:
        """Replace a project document by id."""

        object_id = to_object_id(project.project_id, "Project")
        document = project.to_document()
        document["_id"] = object_id
        with _translate_errors("save_project"):
            result = self._projects.replace_one({"_id": object_id}, document)
        if result.matched_count == 0:
            raise NotFoundError("Project", project.project_id)
        return Project.from_document(_stringify_ids(document))

    def delete_project(self, project_id: str) -> None:
        """Delete one project document."""

        object_id = to_object_id(project_id, "Project")
        with _translate_errors("delete_project"):
            result = self._projects.delete_one({"_id": object_id})
        if result.deleted_count == 0:
            raise NotFoundError("Project", project_id)

    # -- entry groups -------------------------------------------------------

    def _group_document(self, group: EntryGroup) -> Dict[str, Any]:
        """Document for a group with ObjectId references restored."""

        document = group.to_document()
        document["_id"] = to_object_id(group.group_id, "Entry")
        if ObjectId.is_valid(group.project_id):
            document["projectId"] = ObjectId(group.project_id)
        return document

    def find_entry_group(self, group_id: str) -> EntryGroup:
        """Load one entry group; malformed ids are reported as not found."""

        object_id = to_object_id(group_id, "Entry")
        with _translate_errors("find_entry_group"):
            document = self._groups.find_one({"_id": object_id})
        if document is None:
            raise NotFoundError("Entry", group_id)
        return EntryGroup.from_document(_stringify_ids(document))

    def find_entry_groups(self, project_id: Optional[str] = None) -> List[EntryGroup]:
        """Groups of one project (or all), newest first as MongoDB sorts them."""

        query: Dict[str, Any] = {}
        if project_id is not None:
            if not ObjectId.is_valid(project_id):
                return []
            query["projectId"] = ObjectId(project_id)
        with _translate_errors("find_entry_groups"):
            cursor = self._groups.find(query).sort([("createdAt", DESCENDING), ("_id", DESCENDING)])
            return [EntryGroup.from_document(_stringify_ids(document)) for document in cursor]

    def create_entry_group(self, group: EntryGroup) -> EntryGroup:
        """Insert a group at revision 0; the id is generated client side."""

        group.group_id = group.group_id or str(ObjectId())
        now = utcnow()
        group.created_at = group.created_at or now
        group.updated_at = group.updated_at or group.created_at
        group.revision = 0
        document = self._group_document(group)
        with _translate_errors("create_entry_group"):
            self._groups.insert_one(document)
        return EntryGroup.from_document(_stringify_ids(document))

    def save_entry_group(self, group: EntryGroup, expected_revision: int) -> EntryGroup:
        """Conditional ``replace_one`` on ``revision``.

        A miss is a ``ConflictError`` when the group still exists and a
        ``NotFoundError`` when it was deleted meanwhile.
        """

        document = self._group_document(group)
        document["revision"] = expected_revision + 1
        with _translate_errors("save_entry_group"):
            result = self._groups.replace_one(revision_filter(document["_id"], expected_revision), document)
            if result.matched_count == 0:
                exists = self._groups.count_documents({"_id": document["_id"]}, limit=1)
                if not exists:
                    raise NotFoundError("Entry", group.group_id)
                raise ConflictError(group.group_id, expected_revision)
        return EntryGroup.from_document(_stringify_ids(document))

    def delete_entry_group(self, group_id: str, expected_revision: Optional[int] = None) -> None:
        """Delete a group, optionally only at ``expected_revision``."""

        object_id = to_object_id(group_id, "Entry")
        query = {"_id": object_id} if expected_revision is None else revision_filter(object_id, expected_revision)
        with _translate_errors("delete_entry_group"):
            result = self._groups.delete_one(query)
            if result.deleted_count == 0:
                if not self._groups.count_documents({"_id": object_id}, limit=1):
                    raise NotFoundError("Entry", group_id)
                raise ConflictError(group_id, expected_revision or 0)

    def delete_entry_groups_for_project(self, project_id: str) -> int:
        """Delete every group referencing the project."""

        if not ObjectId.is_valid(project_id):
            return 0
        with _translate_errors("delete_entry_groups_for_project"):
            result = self._groups.delete_many({"projectId": ObjectId(project_id)})
        return result.deleted_count

    def find_legacy_records(self) -> List[Dict[str, Any]]:
        """Raw documents from the first version of the ledger."""

        with _translate_errors("find_legacy_records"):
            return [_stringify_ids(document) for document in self._legacy.find()]

    def close(self) -> None:
        """Close the pymongo client."""

        super().close()
        self._client.close()
