"""Request context extraction and the default login guard.

Authentication itself happens upstream: any middleware that sets
``request.state.user`` (a mapping with ``id`` or an object with ``.id``)
is enough for the mapping layer.
"""

from dataclasses import dataclass
from typing import Any, Optional

from fastapi import HTTPException, Request


@dataclass(frozen=True)
class RequestContext:
    subject_id: Optional[str] = None
    token: Optional[str] = None


def _subject_id(user: Any) -> Optional[str]:
    if user is None:
        return None
    if isinstance(user, dict):
        value = user.get("id")
    else:
        value = getattr(user, "id", None)
    return str(value) if value is not None else None


def request_context(request: Request) -> RequestContext:
    token = request.query_params.get("token") or request.headers.get("x-token")
    return RequestContext(
        subject_id=_subject_id(getattr(request.state, "user", None)),
        token=token or None,
    )


def login_required(request: Request) -> None:
    if _subject_id(getattr(request.state, "user", None)) is None:
        raise HTTPException(status_code=401, detail="Login required")
