from typing import Any, Callable, Dict, List, Mapping, Optional
from pymongo.collection import Collection
from pymongo.errors import DuplicateKeyError
from pymongo.results import DeleteResult, InsertOneResult
import logging

from ..auth import RequestContext
from ..binding import CollectionBinding
from ..errors import Forbidden
from ..utils import from_jsonable, now_ms, parse_object_id
from .permissions import ANONYMOUS, SYSTEM_FIELD, can_delete, can_patch, classify_ownership
from .query import ListQuery, regex_limit

logger = logging.getLogger(__name__)

# Never taken from a patch body
PROTECTED_FIELDS = ("_id", "creator", "token")


def insert_result(res: Optional[InsertOneResult]) -> Optional[Dict[str, Any]]:
    if res is None:
        return None
    return {"insertedId": res.inserted_id, "acknowledged": res.acknowledged}


def violates_index(error: DuplicateKeyError, key: str) -> bool:
    """True when the duplicate-key failure is on the unique index over ``key``."""
    details = error.details or {}
    pattern = details.get("keyPattern") or details.get("keyValue")
    if pattern:
        return key in pattern
    # servers that omit keyPattern still name the index in the message
    return f"index: {key}_1 " in str(error)


def delete_result(res: DeleteResult) -> Dict[str, Any]:
    return {"acknowledged": res.acknowledged, "deletedCount": res.deleted_count}


class RestMapper:
    """
    Implements the generic REST operations for one bound collection.
    Return values are plain dicts/lists still holding BSON types; the router
    turns them into JSON.
    """

    def __init__(
        self,
        binding: CollectionBinding,
        get_collection: Callable[[], Collection],
        clock: Callable[[], int] = now_ms,
    ) -> None:
        self.binding = binding
        self._get_collection = get_collection
        self._clock = clock

    @property
    def collection(self) -> Collection:
        return self._get_collection()

    def ensure_index(self) -> Optional[str]:
        key = self.binding.index_key
        if not key:
            return None
        name = self.collection.create_index([(key, 1)], unique=True)
        logger.info("ensure index %s: %s", self.binding.collection, key)
        return name

    def list(self, params: Mapping[str, Any]) -> Dict[str, Any]:
        q = ListQuery.from_params(params)
        col = self.collection
        total = col.count_documents(q.filter)
        cursor = col.find(q.filter, q.projection_spec())
        items = list(cursor.sort(q.sort_spec()).skip(q.skip).limit(q.count))
        return {
            "page": q.page,
            "count": q.count,
            "query": q.filter,
            "sort": q.sort,
            "order": q.order,
            "total": total,
            "list": items,
        }

    def get_one(self, doc_id: str) -> Dict[str, Any]:
        found = self.collection.find_one({"_id": parse_object_id(doc_id)})
        if found:
            return found
        return {"code": 404}

    def create(self, body: Dict[str, Any], ctx: RequestContext) -> Dict[str, Any]:
        obj = from_jsonable(body)
        obj["creator"] = ctx.subject_id or ANONYMOUS
        obj["created"] = self._clock()
        obj["updated"] = obj["created"]
        obj["token"] = ctx.token
        col = self.collection
        result: Optional[InsertOneResult] = None
        try:
            result = col.insert_one(obj, bypass_document_validation=True)
        except DuplicateKeyError as e:
            key = self.binding.index_key
            if self.binding.overwrite_on_duplicated and key:
                if not violates_index(e, key):
                    # collision on another index, e.g. _id
                    raise
                logger.info("overwrite duplicated %s %s=%r", self.binding.collection, key, obj.get(key))
                col.delete_one({key: obj.get(key)})
                result = col.insert_one(obj, bypass_document_validation=True)
            else:
                # no insert happened; the caller sees result=None
                logger.warning("duplicate key on %s, document not inserted", self.binding.collection)
        return {"result": insert_result(result), "object": obj}

    def patch(self, doc_id: str, body: Dict[str, Any], ctx: RequestContext) -> Dict[str, Any]:
        oid = parse_object_id(doc_id)
        if not can_patch(body, ctx.subject_id, self.binding.admin_id):
            logger.info("patch of %r by %r refused: %s is admin only", doc_id, ctx.subject_id, SYSTEM_FIELD)
            raise Forbidden(f"Only the administrator can modify '{SYSTEM_FIELD}'")
        changes = {k: v for k, v in body.items() if k not in PROTECTED_FIELDS}
        changes["updated"] = self._clock()
        self.collection.find_one_and_update({"_id": oid}, {"$set": changes})
        return {"code": 204}

    def delete(self, doc_id: str, ctx: RequestContext) -> Optional[Dict[str, Any]]:
        oid = parse_object_id(doc_id)
        col = self.collection
        found = col.find_one({"_id": oid})
        if not found:
            return None
        ownership = classify_ownership(found)
        if not can_delete(ownership, ctx.subject_id, ctx.token, self.binding.admin_id):
            logger.info("delete of %r by %r refused (%s)", doc_id, ctx.subject_id, type(ownership).__name__)
            raise Forbidden("Only the creator or the administrator can delete")
        return {"deleted": delete_result(col.delete_one({"_id": oid}))}

    def distinct(self, field: str) -> List[Any]:
        return self.collection.distinct(field)

    def regex(self, prop: str, value: str, count: Any = None) -> Dict[str, Any]:
        cursor = self.collection.find({prop: {"$regex": value}}).limit(regex_limit(count))
        return {"result": list(cursor)}
