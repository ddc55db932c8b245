from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field


class ListResponse(BaseModel):
    page: int
    count: int
    query: Dict[str, Any] = Field(default_factory=dict)
    sort: Optional[str] = None
    order: Optional[str] = None
    total: int
    list: List[Dict[str, Any]]


class InsertResult(BaseModel):
    inserted_id: Any = Field(..., alias="insertedId")
    acknowledged: bool = True


class CreateResponse(BaseModel):
    result: Optional[InsertResult] = None
    object: Dict[str, Any]


class DeleteResult(BaseModel):
    acknowledged: bool = True
    deleted_count: int = Field(..., alias="deletedCount")


class DeleteResponse(BaseModel):
    deleted: DeleteResult


class RegexResponse(BaseModel):
    result: List[Dict[str, Any]]


class CodeResponse(BaseModel):
    code: int
