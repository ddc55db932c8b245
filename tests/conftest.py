"""Pytest fixtures: in-memory stand-ins for the pymongo client/database/collection."""

import copy
import re
from typing import Any, Dict, List, Optional

import pytest
from bson import ObjectId
from fastapi import FastAPI, Request
from fastapi.testclient import TestClient
from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError
from pymongo.results import DeleteResult, InsertOneResult

from mongorest.binding import CollectionBinding
from mongorest.auth import login_required
from mongorest.routers.rest import bind
from mongorest.services.mapper import RestMapper
from mongorest.services.mongo import MongodbService

ADMIN = "admin-1"

_MISSING = object()


def _matches(doc: Dict[str, Any], flt: Dict[str, Any]) -> bool:
    for key, cond in flt.items():
        value = doc.get(key, _MISSING)
        if isinstance(cond, dict) and "$regex" in cond:
            if value is _MISSING or not re.search(cond["$regex"], str(value)):
                return False
        elif value is _MISSING or value != cond:
            return False
    return True


def _project(doc: Dict[str, Any], projection: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    if not projection:
        return doc
    inclusive = any(v == 1 for v in projection.values())
    out = {"_id": doc["_id"]} if inclusive else dict(doc)
    for key, spec in projection.items():
        if key not in doc:
            continue
        if isinstance(spec, dict) and "$slice" in spec:
            n = spec["$slice"]
            out[key] = doc[key][:n] if n >= 0 else doc[key][n:]
        elif spec == 1:
            out[key] = doc[key]
    return out


def _sort_key(value: Any):
    return (0,) if value is _MISSING else (1, value)


class FakeCursor:
    def __init__(self, docs: List[Dict[str, Any]], projection=None) -> None:
        self._docs = docs
        self._projection = projection
        self._skip = 0
        self._limit = 0

    def sort(self, spec):
        for key, direction in reversed(spec):
            self._docs.sort(key=lambda d: _sort_key(d.get(key, _MISSING)), reverse=direction < 0)
        return self

    def skip(self, n: int):
        self._skip = n
        return self

    def limit(self, n: int):
        self._limit = n
        return self

    def __iter__(self):
        docs = self._docs[self._skip:]
        if self._limit:
            docs = docs[: self._limit]
        return iter([_project(d, self._projection) for d in docs])


class FakeCollection:
    def __init__(self, name: str = "items") -> None:
        self.name = name
        self.docs: List[Dict[str, Any]] = []
        self.unique_keys: List[str] = []
        self.insert_calls: List[Dict[str, Any]] = []

    def _check_unique(self, doc: Dict[str, Any]) -> None:
        for key in ["_id"] + self.unique_keys:
            for existing in self.docs:
                if existing.get(key) == doc.get(key):
                    raise DuplicateKeyError(
                        f"E11000 duplicate key error collection: {self.name} index: {key}_1 dup key",
                        11000,
                        {"keyPattern": {key: 1}, "keyValue": {key: doc.get(key)}},
                    )

    def create_index(self, keys, unique: bool = False, **kwargs) -> str:
        key = keys[0][0]
        if unique and key not in self.unique_keys:
            self.unique_keys.append(key)
        return f"{key}_1"

    def insert_one(self, doc: Dict[str, Any], bypass_document_validation: bool = False):
        self.insert_calls.append({"bypass_document_validation": bypass_document_validation})
        if "_id" not in doc:
            doc["_id"] = ObjectId()
        self._check_unique(doc)
        self.docs.append(copy.deepcopy(doc))
        return InsertOneResult(doc["_id"], True)

    def find_one(self, flt: Dict[str, Any]):
        for doc in self.docs:
            if _matches(doc, flt):
                return copy.deepcopy(doc)
        return None

    def find(self, flt: Dict[str, Any], projection=None) -> FakeCursor:
        return FakeCursor([copy.deepcopy(d) for d in self.docs if _matches(d, flt)], projection)

    def count_documents(self, flt: Dict[str, Any]) -> int:
        return sum(1 for d in self.docs if _matches(d, flt))

    def delete_one(self, flt: Dict[str, Any]):
        for i, doc in enumerate(self.docs):
            if _matches(doc, flt):
                del self.docs[i]
                return DeleteResult({"n": 1}, True)
        return DeleteResult({"n": 0}, True)

    def find_one_and_update(self, flt, update, upsert: bool = False, return_document=ReturnDocument.BEFORE):
        target = next((d for d in self.docs if _matches(d, flt)), None)
        if target is None:
            if not upsert:
                return None
            target = dict(flt)
            self.docs.append(target)
            before = None
        else:
            before = copy.deepcopy(target)
        target.update(update.get("$set", {}))
        for key, inc in update.get("$inc", {}).items():
            target[key] = target.get(key, 0) + inc
        if return_document == ReturnDocument.AFTER:
            return copy.deepcopy(target)
        return before

    def distinct(self, field: str) -> List[Any]:
        values: List[Any] = []
        for doc in self.docs:
            if field in doc and doc[field] not in values:
                values.append(doc[field])
        return values


class FakeDatabase:
    def __init__(self) -> None:
        self.collections: Dict[str, FakeCollection] = {}

    def __getitem__(self, name: str) -> FakeCollection:
        return self.collections.setdefault(name, FakeCollection(name))


class FakeClient:
    def __init__(self) -> None:
        self.databases: Dict[str, FakeDatabase] = {}
        self.closed = False

    def __getitem__(self, name: str) -> FakeDatabase:
        return self.databases.setdefault(name, FakeDatabase())

    def close(self) -> None:
        self.closed = True


class Clock:
    """Deterministic millisecond clock, advanced by hand."""

    def __init__(self, start: int = 1_700_000_000_000) -> None:
        self.now = start

    def __call__(self) -> int:
        return self.now

    def tick(self, ms: int = 1) -> int:
        self.now += ms
        return self.now


def add_header_user(app: FastAPI) -> None:
    """Stand-in for login middleware: ``X-User`` header becomes the subject."""

    @app.middleware("http")
    async def header_user(request: Request, call_next):
        uid = request.headers.get("x-user")
        if uid:
            request.state.user = {"id": uid}
        return await call_next(request)


@pytest.fixture
def clock() -> Clock:
    return Clock()


@pytest.fixture
def collection() -> FakeCollection:
    return FakeCollection("posts")


@pytest.fixture
def make_mapper(collection, clock):
    def _make(**binding_kwargs) -> RestMapper:
        binding_kwargs.setdefault("admin_id", ADMIN)
        binding = CollectionBinding(path="/api/posts", collection="posts", **binding_kwargs)
        mapper = RestMapper(binding, lambda: collection, clock=clock)
        mapper.ensure_index()
        return mapper

    return _make


@pytest.fixture
def fake_client() -> FakeClient:
    return FakeClient()


@pytest.fixture
def store(fake_client) -> MongodbService:
    service = MongodbService("mongodb://unused:27017", "testdb", retries=1, backoff_s=0)
    service._open = lambda: fake_client
    service.connect()
    return service


@pytest.fixture
def api(store):
    """App with /api/posts (login guarded, unique on slug, overwrite) and /api/notes (open)."""
    app = FastAPI()
    add_header_user(app)
    bind(app, CollectionBinding(
        path="/api/posts",
        collection="posts",
        index_key="slug",
        overwrite_on_duplicated=True,
        admin_id=ADMIN,
        guard=login_required,
    ), store).ensure_index()
    bind(app, CollectionBinding(path="/api/notes", collection="notes", admin_id=ADMIN), store)
    return app


@pytest.fixture
def client(api) -> TestClient:
    return TestClient(api)


@pytest.fixture
def posts(fake_client) -> FakeCollection:
    return fake_client["testdb"]["posts"]


@pytest.fixture
def notes(fake_client) -> FakeCollection:
    return fake_client["testdb"]["notes"]
