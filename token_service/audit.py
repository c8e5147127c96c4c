"""
Audit logging for security-relevant events only; no tokens, secrets, or request bodies.
Records go to the "token_service.audit" logger so deployments can route them separately.
"""
import logging

from fastapi import Request

logger = logging.getLogger(__name__)

EVENT_TOKEN_ISSUED = "token_issued"
EVENT_TOKEN_DENIED = "token_denied"
EVENT_CLIENT_REGISTERED = "client_registered"
EVENT_REGISTRATION_DENIED = "registration_denied"
EVENT_ADMIN_DENIED = "admin_denied"

OUTCOME_SUCCESS = "success"
OUTCOME_FAIL = "fail"


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
    """Emit one audit record. Never pass tokens or secrets."""
    level = logging.INFO if outcome == OUTCOME_SUCCESS else logging.WARNING
    logger.log(
        level,
        "audit event=%s outcome=%s client_id=%s ip=%s%s",
        event_type,
        outcome,
        client_id or "-",
        ip or "-",
        f" reason={reason}" if reason else "",
    )
