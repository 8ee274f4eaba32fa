"""Log Schemas — response shaping for persisted log rows."""

import json

from app.core.domain_types import isoformat_or_none
from app.models.log_entry import LogEntry


def _decode_data(raw: str | None):
    if raw is None:
        return None
    try:
        return json.loads(raw)
    except ValueError:
        return raw


def log_to_dict(entry: LogEntry) -> dict:
    return {
        "id": str(entry.id),
        "timestamp": isoformat_or_none(entry.timestamp),
        "level": entry.level,
        "message": entry.message,
        "data": _decode_data(entry.data),
        "route": entry.route,
        "method": entry.method,
        "path": entry.path,
        "status_code": entry.status_code,
        "duration": entry.duration,
        "user_id": entry.user_id,
        "user_role": entry.user_role,
        "client_ip": entry.client_ip,
        "user_agent": entry.user_agent,
        "session_id": entry.session_id,
        "environment": entry.environment,
        "version": entry.version,
        "service": entry.service,
        "error_name": entry.error_name,
        "error_stack": entry.error_stack,
        "tags": list(entry.tags or []),
        "category": entry.category,
        "operation": entry.operation,
        "trace_id": entry.trace_id,
        "correlation_id": entry.correlation_id,
        "created_at": isoformat_or_none(entry.created_at),
    }
