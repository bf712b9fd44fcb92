"""
trustcota/audit.py

Audit logging helper.

Goals:
- Capture WHO did WHAT to WHICH entity, with the changed values.
- Store IP address and user agent for traceability.

IMPORTANT:
- Audit rows go through storage.create_audit_log(); they are never updated or deleted.
- Entity ids are stored as strings so batch entries can use "bulk_upload".
- Outside a request (CLI, tests) user, IP and user agent are simply left empty.
"""

from __future__ import annotations

import logging
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, Optional

from flask import has_request_context, request
from flask_login import current_user

from .models import AuditLog
from .storage import Storage, get_storage

logger = logging.getLogger(__name__)

BULK_UPLOAD_ID = "bulk_upload"


def _json_safe(value: Any) -> Any:
    """Convert Decimal/datetime (recursively) so the payload fits a JSON column."""
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, dict):
        return {str(k): _json_safe(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_json_safe(v) for v in value]
    return value


def _actor_id(user_id: Optional[int]) -> Optional[int]:
    if user_id is not None:
        return user_id
    if has_request_context() and current_user.is_authenticated:
        return int(current_user.get_id())
    return None


def log_action(
    action: str,
    entity_type: str,
    entity_id: Any,
    changes: Optional[Dict[str, Any]] = None,
    *,
    user_id: Optional[int] = None,
    storage: Optional[Storage] = None,
) -> AuditLog:
    """
    Append one AuditLog row.

    Parameters:
        action: create / update / delete / select / approve / reject / cancel / upload
        entity_type: table-ish name, e.g. "quotation_request"
        entity_id: row id (or BULK_UPLOAD_ID)
        changes: delta payload; keys are whatever the caller considers relevant
        user_id: explicit actor; defaults to the logged-in user
        storage: backend to write to; defaults to the application storage

    SECURITY NOTE:
    - request.remote_addr is as Flask sees it. Behind a reverse proxy, configure
      ProxyFix so the real client IP is recorded.
    """
    ip_address = None
    user_agent = None
    if has_request_context():
        ip_address = request.remote_addr
        user_agent = request.headers.get("User-Agent")

    entry = (storage or get_storage()).create_audit_log(
        {
            "user_id": _actor_id(user_id),
            "action": action,
            "entity_type": entity_type,
            "entity_id": str(entity_id),
            "changes": _json_safe(changes) if changes is not None else None,
            "ip_address": ip_address,
            "user_agent": user_agent,
        }
    )
    logger.debug("audit %s %s %s", action, entity_type, entity_id)
    return entry
