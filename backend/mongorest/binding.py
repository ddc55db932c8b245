from dataclasses import dataclass
from typing import Any, Callable, Optional


@dataclass(frozen=True)
class CollectionBinding:
    """Static configuration linking one MongoDB collection to one REST base path."""

    path: str
    collection: str
    db_name: Optional[str] = None
    index_key: Optional[str] = None
    overwrite_on_duplicated: bool = False
    admin_id: Optional[str] = None
    # FastAPI dependency run before POST/PATCH/DELETE
    guard: Optional[Callable[..., Any]] = None

    def __post_init__(self) -> None:
        if not self.path.startswith("/"):
            raise ValueError(f"Binding path must start with '/': {self.path!r}")
        if not self.collection:
            raise ValueError("Binding collection name is required")
        if self.overwrite_on_duplicated and not self.index_key:
            raise ValueError("overwrite_on_duplicated requires an index_key")
        # normalise trailing slash so "/api/posts/" and "/api/posts" collide
        path = self.path.rstrip("/")
        if not path:
            raise ValueError("Binding path cannot be the root path")
        object.__setattr__(self, "path", path)
