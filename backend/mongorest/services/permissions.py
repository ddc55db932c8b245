"""Ownership classification and the authorization rules for patch and delete.

Everything here is pure: the mapper loads the document, these functions decide.
"""

from dataclasses import dataclass
from typing import Any, Dict, Optional, Union

ANONYMOUS = "anonymous"
SYSTEM_FIELD = "system"


@dataclass(frozen=True)
class Owned:
    subject_id: str


@dataclass(frozen=True)
class AnonymousWithToken:
    token: str


@dataclass(frozen=True)
class AnonymousNoToken:
    pass


Ownership = Union[Owned, AnonymousWithToken, AnonymousNoToken]


def classify_ownership(doc: Dict[str, Any]) -> Ownership:
    token = doc.get("token")
    if token is None:
        return AnonymousNoToken()
    creator = doc.get("creator")
    if creator is None or creator == ANONYMOUS:
        return AnonymousWithToken(token)
    return Owned(str(creator))


def can_delete(
    ownership: Ownership,
    subject_id: Optional[str],
    token: Optional[str],
    admin_id: Optional[str],
) -> bool:
    if isinstance(ownership, AnonymousNoToken):
        return True
    if isinstance(ownership, AnonymousWithToken) and token is not None and token == ownership.token:
        return True
    if not subject_id:
        return False
    if isinstance(ownership, Owned) and ownership.subject_id == subject_id:
        return True
    return admin_id is not None and subject_id == admin_id


def can_patch(body: Dict[str, Any], subject_id: Optional[str], admin_id: Optional[str]) -> bool:
    """Only the administrator may touch the reserved ``system`` property."""
    if SYSTEM_FIELD not in body:
        return True
    return subject_id is not None and admin_id is not None and subject_id == admin_id
