"""
Audit logging. Security-relevant events only; no tokens, secrets, or request bodies.
Records go to the "token_server.audit" logger so deployments can route them separately.
"""
import logging

from fastapi import Request

EVENT_TOKEN_ISSUED = "token_issued"
EVENT_TOKEN_REFRESHED = "token_refreshed"
EVENT_TOKEN_REVOKED = "token_revoked"
EVENT_CLIENT_AUTH_FAIL = "client_auth_fail"
EVENT_REFRESH_FAIL = "refresh_fail"

OUTCOME_SUCCESS = "success"
OUTCOME_FAIL = "fail"

audit_logger = logging.getLogger("token_server.audit")


def get_client_ip(request: Request | None) -> str | None:
    """Client IP if available (request.client.host). Forwarding headers are not trusted."""
    if request is None or request.client is None:
        return None
    return getattr(request.client, "host", None)


def log_audit(
    event_type: str,
    *,
    client_id: str | None = None,
    ip: str | None = None,
    outcome: str = OUTCOME_SUCCESS,
    reason: str | None = None,
) -> None:
    """Emit one audit record. Never pass tokens or secrets here."""
    audit_logger.info(
        "audit event=%s outcome=%s client_id=%s ip=%s%s",
        event_type,
        outcome,
        client_id or "-",
        ip or "-",
        f" reason={reason!r}" if reason else "",
        extra={
            "audit_event": event_type,
            "audit_outcome": outcome,
            "audit_client_id": client_id,
            "audit_ip": ip,
        },
    )
