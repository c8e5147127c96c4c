"""
Client (server) registration and listing: POST /servers/register, GET /servers.
Registration is open in development; otherwise it needs the management credentials
in X-Management-Client-Id / X-Management-Client-Secret headers.
"""
import json
import logging

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from starlette.concurrency import run_in_threadpool

from token_service.admin import MANAGEMENT, AdminCredentialGuard
from token_service.audit import (
    EVENT_CLIENT_REGISTERED,
    EVENT_REGISTRATION_DENIED,
    get_client_ip,
    log_audit,
    OUTCOME_FAIL,
)
from token_service.config import is_development
from token_service.dependencies import get_admin_guard, get_registry
from token_service.errors import AdminNotConfigured, ClientConflict, InvalidAdminCredentials
from token_service.registry import ClientRegistry

logger = logging.getLogger(__name__)
router = APIRouter()

MANAGEMENT_ID_HEADER = "X-Management-Client-Id"
MANAGEMENT_SECRET_HEADER = "X-Management-Client-Secret"

_UNAUTHORIZED = (
    "Unauthorized. Client registration is only allowed in development "
    "or with management client credentials."
)


def _registration_gate(request: Request, guard: AdminCredentialGuard) -> tuple[str | None, JSONResponse | None]:
    """Return (registered_by, None) when allowed, or (None, error response)."""
    if is_development():
        return "development", None
    ip = get_client_ip(request)
    client_id = request.headers.get(MANAGEMENT_ID_HEADER)
    client_secret = request.headers.get(MANAGEMENT_SECRET_HEADER)
    if not client_id or not client_secret:
        log_audit(EVENT_REGISTRATION_DENIED, ip=ip, outcome=OUTCOME_FAIL, reason="missing credentials")
        return None, JSONResponse(
            {"error": _UNAUTHORIZED, "details": "management client ID and secret are required"},
            status_code=403,
        )
    try:
        guard.verify(MANAGEMENT, client_id, client_secret)
    except AdminNotConfigured:
        return None, JSONResponse({"error": "server_error"}, status_code=500)
    except InvalidAdminCredentials:
        log_audit(EVENT_REGISTRATION_DENIED, client_id=client_id, ip=ip, outcome=OUTCOME_FAIL, reason="invalid credentials")
        return None, JSONResponse({"error": _UNAUTHORIZED}, status_code=403)
    return MANAGEMENT, None


def _valid_scopes(scopes) -> bool:
    return isinstance(scopes, list) and all(isinstance(s, str) and s.strip() for s in scopes)


@router.post("/servers/register")
async def register_server(
    request: Request,
    registry: ClientRegistry = Depends(get_registry),
    guard: AdminCredentialGuard = Depends(get_admin_guard),
):
    """Register a client; the generated secret is returned once and never again."""
    registered_by, denied = _registration_gate(request, guard)
    if denied is not None:
        return denied

    try:
        body = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        return JSONResponse({"error": "Invalid JSON"}, status_code=400)
    if not isinstance(body, dict):
        return JSONResponse({"error": "Invalid JSON"}, status_code=400)

    server_id = body.get("serverId")
    name = body.get("name")
    scopes = body.get("scopes", [])
    if not isinstance(server_id, str) or not server_id.strip() or not isinstance(name, str) or not name.strip():
        return JSONResponse({"error": "Missing serverId or name"}, status_code=400)
    if not _valid_scopes(scopes):
        return JSONResponse({"error": "scopes must be an array of strings"}, status_code=400)

    try:
        registration = await run_in_threadpool(
            registry.register, server_id.strip(), name.strip(), scopes, registered_by
        )
    except ClientConflict as e:
        return JSONResponse(
            {"error": "Client already exists", "clientId": e.existing.client_id, "scopes": e.existing.scopes},
            status_code=409,
        )

    log_audit(EVENT_CLIENT_REGISTERED, client_id=registration.client.client_id, ip=get_client_ip(request))
    return JSONResponse(
        {
            "serverId": registration.client.client_id,
            "clientId": registration.client.client_id,
            "clientSecret": registration.client_secret,
            "scopes": registration.client.scopes,
        },
        status_code=201,
    )


@router.get("/servers")
def list_servers(registry: ClientRegistry = Depends(get_registry)):
    """Registered clients from both storage tiers; primary wins on id collision. No secrets."""
    return {"servers": [c.to_listing() for c in registry.list()]}
