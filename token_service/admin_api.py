"""
Admin API under /api. Every route requires a Bearer token carrying admin.read and admin.write.
"""
import logging
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Request, status

from token_service.audit import EVENT_ADMIN_DENIED, get_client_ip, log_audit, OUTCOME_FAIL
from token_service.config import ADMIN_GATE_SCOPES
from token_service.dependencies import get_registry, get_verifier
from token_service.errors import ClientNotFound, InsufficientScope, SecurityViolation
from token_service.registry import ClientRegistry
from token_service.verifier import TokenVerifier, VerifiedToken

logger = logging.getLogger(__name__)


def security_violation_to_http(e: SecurityViolation) -> HTTPException:
    """Opaque 401 for any token failure; 403 naming the scope for insufficient scope."""
    if isinstance(e, InsufficientScope):
        return HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail={"error": "insufficient_scope", "error_description": f"Scope '{e.scope}' required"},
        )
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail={"error": e.error},
        headers={"WWW-Authenticate": "Bearer"},
    )


def require_admin_token(
    request: Request,
    verifier: Annotated[TokenVerifier, Depends(get_verifier)],
) -> VerifiedToken:
    try:
        return verifier.verify(request.headers.get("Authorization"), ADMIN_GATE_SCOPES)
    except SecurityViolation as e:
        log_audit(
            EVENT_ADMIN_DENIED,
            ip=get_client_ip(request),
            outcome=OUTCOME_FAIL,
            reason=type(e).__name__,
        )
        raise security_violation_to_http(e) from None


router = APIRouter(prefix="/api", tags=["admin"], dependencies=[Depends(require_admin_token)])


@router.get("/whoami")
def whoami(caller: Annotated[VerifiedToken, Depends(require_admin_token)]):
    """Identity and scopes of the verified admin token."""
    return {"clientId": caller.client_id, "scopes": caller.scopes}


@router.get("/servers/{server_id}")
def get_server(server_id: str, registry: Annotated[ClientRegistry, Depends(get_registry)]):
    """Look up one client and report which storage tier answered."""
    try:
        result = registry.lookup(server_id)
    except ClientNotFound:
        raise HTTPException(status_code=404, detail={"error": "Client not found"})
    body = result.client.to_listing()
    body["storageTier"] = result.tier
    return body
