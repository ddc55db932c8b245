from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Union
from fastapi import APIRouter, Body, Depends, FastAPI, HTTPException, Query, Request, Response
from pymongo.errors import PyMongoError
import logging

from ..auth import RequestContext, request_context
from ..binding import CollectionBinding
from ..errors import Forbidden, InvalidDocumentId
from ..schemas import CodeResponse, CreateResponse, DeleteResponse, ListResponse, RegexResponse
from ..services.mapper import RestMapper
from ..services.mongo import MongodbService
from ..utils import to_jsonable

logger = logging.getLogger(__name__)


@dataclass
class BoundCollection:
    binding: CollectionBinding
    mapper: RestMapper
    router: APIRouter

    def ensure_index(self) -> Optional[str]:
        return self.mapper.ensure_index()


@contextmanager
def _http_errors():
    try:
        yield
    except Forbidden as e:
        raise HTTPException(status_code=403, detail=e.reason)
    except InvalidDocumentId:
        raise HTTPException(status_code=400, detail="Invalid document id")
    except PyMongoError as e:
        raise HTTPException(status_code=400, detail=str(e))


def _is_bound(target: Union[FastAPI, APIRouter], path: str) -> bool:
    return any(getattr(route, "path", None) == path for route in target.routes)


def bind(target: Union[FastAPI, APIRouter], binding: CollectionBinding, store: MongodbService) -> BoundCollection:
    """Register the REST routes for ``binding`` on ``target``."""
    if _is_bound(target, binding.path):
        raise ValueError(f"Path already bound: {binding.path}")

    mapper = RestMapper(binding, lambda: store.get_db(binding.db_name)[binding.collection])
    router = APIRouter(prefix=binding.path, tags=[binding.collection])
    guarded = [Depends(binding.guard)] if binding.guard else []

    @router.get("", response_model=ListResponse)
    def list_documents(request: Request):
        with _http_errors():
            return to_jsonable(mapper.list(request.query_params))

    @router.get("/distinct/{field}", response_model=List[Any])
    def distinct_values(field: str):
        with _http_errors():
            return to_jsonable(mapper.distinct(field))

    @router.get("/regex/{prop}/{value}", response_model=RegexResponse)
    def regex_search(prop: str, value: str, count: Optional[str] = Query(None)):
        with _http_errors():
            return to_jsonable(mapper.regex(prop, value, count))

    @router.get("/{doc_id}")
    def get_document(doc_id: str):
        with _http_errors():
            return to_jsonable(mapper.get_one(doc_id))

    @router.post("", response_model=CreateResponse, dependencies=guarded)
    def create_document(
        payload: Dict[str, Any] = Body(...),
        ctx: RequestContext = Depends(request_context),
    ):
        with _http_errors():
            return to_jsonable(mapper.create(payload, ctx))

    @router.patch("/{doc_id}", response_model=CodeResponse, dependencies=guarded)
    def patch_document(
        doc_id: str,
        payload: Dict[str, Any] = Body(...),
        ctx: RequestContext = Depends(request_context),
    ):
        with _http_errors():
            return mapper.patch(doc_id, payload, ctx)

    @router.delete("/{doc_id}", response_model=DeleteResponse, dependencies=guarded)
    def delete_document(doc_id: str, ctx: RequestContext = Depends(request_context)):
        with _http_errors():
            deleted = mapper.delete(doc_id, ctx)
        if deleted is None:
            return Response(status_code=204)
        return deleted

    target.include_router(router)
    logger.info("rest service booted %s -> %s", binding.path, binding.collection)
    return BoundCollection(binding=binding, mapper=mapper, router=router)
