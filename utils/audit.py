"""Audit trail for logins, account administration and issue triage."""
import json
from enum import Enum
from typing import NamedTuple, Optional, Union

from flask import request

from models import db
from models.audit_log import AuditLog
from models.issue import Issue
from models.user import User


class AuditAction(str, Enum):
    REGISTER_SUCCESS = "REGISTER_SUCCESS"
    REGISTER_FAIL_EXISTS = "REGISTER_FAIL_EXISTS"
    LOGIN_SUCCESS = "LOGIN_SUCCESS"
    LOGIN_FAIL = "LOGIN_FAIL"
    LOGIN_LOCKED = "LOGIN_LOCKED"
    LOGIN_OFFICER_UNVERIFIED = "LOGIN_OFFICER_UNVERIFIED"
    LOGOUT = "LOGOUT"
    OFFICER_VERIFIED = "OFFICER_VERIFIED"
    PROFILE_UPDATE = "PROFILE_UPDATE"
    USER_DEACTIVATE = "USER_DEACTIVATE"
    ISSUE_CREATE = "ISSUE_CREATE"
    ISSUE_UPDATE = "ISSUE_UPDATE"
    ISSUE_ASSIGN = "ISSUE_ASSIGN"
    ISSUE_DELETE = "ISSUE_DELETE"


class EntityRef(NamedTuple):
    entity: str
    entity_id: int


_ENTITY_NAMES = {User: "user", Issue: "issue"}


def entity_ref(obj: Union[User, Issue]) -> EntityRef:
    """Capture what a row is before it goes away (e.g. ahead of a delete)."""
    return EntityRef(_ENTITY_NAMES[type(obj)], obj.id)


def _client_ip() -> Optional[str]:
    # first hop of X-Forwarded-For is the reporting client
    forwarded = request.headers.get("X-Forwarded-For", "")
    ip = forwarded.split(",")[0].strip() or request.remote_addr
    return ip[:64] if ip else None


def log_event(action: AuditAction, actor_id=None, target=None, metadata=None):
    """
    Record one audit row. ``target`` is the user or issue acted upon, or an
    EntityRef taken earlier.
    """
    if target is not None and not isinstance(target, EntityRef):
        target = entity_ref(target)
    user_agent = request.headers.get("User-Agent", "")

    row = AuditLog(
        user_id=actor_id,
        action=AuditAction(action).value,
        entity=target.entity if target else None,
        entity_id=str(target.entity_id) if target else None,
        ip=_client_ip(),
        user_agent=user_agent[:255] if user_agent else None,
        metadata_json=json.dumps(metadata, default=str) if metadata else None
    )
    db.session.add(row)
    db.session.commit()
