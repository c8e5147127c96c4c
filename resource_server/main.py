"""
Resource Server (sample protected API).
Bearer tokens from the token service, verified via its JWKS; /public, /weather (weather.read).
"""
from fastapi import FastAPI

from resource_server.auth import RequireWeatherRead
from token_service.verifier import VerifiedToken

app = FastAPI(title="Resource Server", version="1.0.0")


@app.get("/health")
def health():
    """Liveness probe."""
    return {"status": "ok", "service": "resource_server"}


@app.get("/public")
def public():
    """Anonymous access; no token needed."""
    return {"message": "Public data", "access": "anonymous"}


@app.get("/weather")
def weather(caller: VerifiedToken = RequireWeatherRead):
    """Requires scope weather.read. Returns a canned forecast and the calling client."""
    return {
        "location": "Seattle",
        "forecast": "Light rain",
        "temperatureC": 12,
        "clientId": caller.client_id,
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "resource_server.main:app",
        host="127.0.0.1",
        port=7000,
        reload=True,
    )
