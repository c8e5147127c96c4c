"""
Token endpoint (POST /token). OAuth 2.0 client-credentials grant only.
"""
from fastapi import APIRouter, Depends, Form, Request

from token_service.audit import (
    EVENT_TOKEN_DENIED,
    EVENT_TOKEN_ISSUED,
    get_client_ip,
    log_audit,
    OUTCOME_FAIL,
)
from token_service.client_auth import get_client_credentials_from_request
from token_service.dependencies import get_issuer
from token_service.errors import OAuthError
from token_service.issuer import TokenIssuer

router = APIRouter()


@router.post("/token")
def token(
    request: Request,
    grant_type: str | None = Form(None),
    client_id: str | None = Form(None),
    client_secret: str | None = Form(None),
    audience: str | None = Form(None),
    scope: str | None = Form(None),
    issuer: TokenIssuer = Depends(get_issuer),
):
    """
    client_credentials: authenticate the client, intersect requested scopes with its
    granted scopes, and return a signed Bearer token. Errors are rendered by the OAuthError handler.
    """
    cid, csecret = get_client_credentials_from_request(request, client_id, client_secret)
    try:
        response = issuer.issue(
            grant_type=grant_type,
            client_id=cid,
            client_secret=csecret,
            audience=audience,
            scope=scope,
        )
    except OAuthError as e:
        log_audit(EVENT_TOKEN_DENIED, client_id=cid, ip=get_client_ip(request), outcome=OUTCOME_FAIL, reason=e.error)
        raise
    log_audit(EVENT_TOKEN_ISSUED, client_id=cid, ip=get_client_ip(request))
    return response
