from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Tuple
from pymongo import ASCENDING, DESCENDING

from ..utils import to_int

DEFAULT_PAGE = 1
DEFAULT_COUNT = 10
DEFAULT_REGEX_LIMIT = 1000

CONTROL_PARAMS = ("page", "count", "sort", "order", "projection", "token")

# Used when no explicit sort is requested: newest first, _id breaks ties
# between documents created in the same millisecond.
DEFAULT_SORT: List[Tuple[str, int]] = [("created", DESCENDING), ("_id", DESCENDING)]


def parse_projection(spec: Optional[str]) -> Optional[Dict[str, Any]]:
    """Turn ``"a,b.2"`` into ``{"a": 1, "b": {"$slice": 2}}``."""
    if not spec:
        return None
    projection: Dict[str, Any] = {}
    for raw in spec.split(","):
        name = raw.strip()
        if not name:
            continue
        head, sep, tail = name.rpartition(".")
        if sep and head and tail.lstrip("-").isdigit():
            # array projection with slice
            projection[head] = {"$slice": int(tail)}
        else:
            projection[name] = 1
    return projection or None


def sort_direction(order: Any) -> int:
    return ASCENDING if to_int(order, ASCENDING) >= 0 else DESCENDING


@dataclass
class ListQuery:
    page: int = DEFAULT_PAGE
    count: int = DEFAULT_COUNT
    sort: Optional[str] = None
    order: Optional[str] = None
    projection: Optional[str] = None
    filter: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_params(cls, params: Mapping[str, Any]) -> "ListQuery":
        page = to_int(params.get("page"), DEFAULT_PAGE)
        count = to_int(params.get("count"), DEFAULT_COUNT)
        residual = {k: v for k, v in params.items() if k not in CONTROL_PARAMS}
        return cls(
            page=page if page >= 1 else DEFAULT_PAGE,
            count=count if count > 0 else DEFAULT_COUNT,
            sort=params.get("sort") or None,
            order=params.get("order"),
            projection=params.get("projection") or None,
            filter=residual,
        )

    @property
    def skip(self) -> int:
        return (self.page - 1) * self.count

    def sort_spec(self) -> List[Tuple[str, int]]:
        if self.sort:
            return [(self.sort, sort_direction(self.order))]
        return list(DEFAULT_SORT)

    def projection_spec(self) -> Optional[Dict[str, Any]]:
        return parse_projection(self.projection)


def regex_limit(value: Any) -> int:
    limit = to_int(value, DEFAULT_REGEX_LIMIT)
    return limit if limit > 0 else DEFAULT_REGEX_LIMIT
