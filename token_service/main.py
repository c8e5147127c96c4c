"""
Token service: OAuth 2.0 client-credentials authorization server.
JWKS publication, token minting, client registration/listing, health, admin API.
"""
import logging
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, Request
from fastapi.responses import JSONResponse

from token_service.admin_api import router as admin_router
from token_service.dependencies import get_key_source, get_registry
from token_service.errors import OAuthError
from token_service.keys import KeyMaterialSource
from token_service.registry import ClientRegistry
from token_service.seed import seed_from_env
from token_service.servers import router as servers_router
from token_service.token_endpoint import router as token_router
from token_service.well_known import router as well_known_router

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Resolve keys eagerly (logs what was found) and seed a client from env on startup."""
    key_source = get_key_source()
    logger.info("Token service started with %d verification key(s)", len(key_source.resolve_verification_keys()))
    seed_from_env(get_registry())
    yield


app = FastAPI(title="Token Service", version="1.0.0", lifespan=lifespan)
app.include_router(well_known_router, tags=["well-known"])
app.include_router(token_router, tags=["token"])
app.include_router(servers_router, tags=["servers"])
app.include_router(admin_router)


@app.exception_handler(OAuthError)
async def oauth_error_handler(request: Request, exc: OAuthError):
    return JSONResponse(exc.to_dict(), status_code=exc.status_code)


@app.get("/health")
def health():
    """Liveness probe."""
    return {"status": "ok", "service": "token_service"}


@app.get("/auth/health")
def auth_health(
    key_source: KeyMaterialSource = Depends(get_key_source),
    registry: ClientRegistry = Depends(get_registry),
):
    """Key count, registered-client count and which storage backend answered."""
    storage = registry.status()
    return {
        "status": "healthy",
        "keysLoaded": len(key_source.resolve_verification_keys()),
        "serversRegistered": storage.clients,
        "databaseConnected": storage.database_connected,
        "storageType": storage.storage_type,
    }


if __name__ == "__main__":
    import uvicorn

    logging.basicConfig(level=logging.INFO)
    uvicorn.run(
        "token_service.main:app",
        host="127.0.0.1",
        port=4111,
        reload=True,
    )
