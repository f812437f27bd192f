# Overview: Append-only business audit trail.

from __future__ import annotations

import json
from typing import Any

from flask import has_request_context, request

from ..extensions import db
from ..models import AuditLog
"""
Audit Trail Invariants (authoritative)

- Append-only: no updates or deletes of existing rows.
- Rows are flushed, never committed, here; they commit or roll back
  together with the business change they describe.
- No business logic in the audit trail itself.
"""


def append_audit_log(
    *,
    business_id: int,
    action: str,
    entity_type: str,
    entity_id: int | None = None,
    user_id: int | None = None,
    location_id: int | None = None,
    description: str | None = None,
    metadata: dict[str, Any] | None = None,
) -> AuditLog:
    """Append one audit row in the caller's transaction."""
    ip_address = None
    user_agent = None
    if has_request_context():
        ip_address = request.remote_addr
        user_agent = request.headers.get("User-Agent")

    entry = AuditLog(
        business_id=business_id,
        location_id=location_id,
        user_id=user_id,
        action=action,
        entity_type=entity_type,
        entity_id=entity_id,
        description=description,
        metadata_json=json.dumps(metadata, default=str, sort_keys=True) if metadata else None,
        ip_address=ip_address,
        user_agent=user_agent,
    )
    db.session.add(entry)
    db.session.flush()
    return entry


def list_audit_logs(
    *,
    business_id: int,
    action: str | None = None,
    entity_type: str | None = None,
    entity_id: int | None = None,
    user_id: int | None = None,
    limit: int = 200,
) -> list[AuditLog]:
    query = db.session.query(AuditLog).filter_by(business_id=business_id)
    if action:
        query = query.filter_by(action=action)
    if entity_type:
        query = query.filter_by(entity_type=entity_type)
    if entity_id is not None:
        query = query.filter_by(entity_id=entity_id)
    if user_id is not None:
        query = query.filter_by(user_id=user_id)
    return query.order_by(AuditLog.id.desc()).limit(min(limit, 1000)).all()
