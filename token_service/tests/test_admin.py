"""
Tests for the static admin/management credential guard and the bearer-gated /api routes.
"""
import pytest

from token_service.admin import ADMIN, MANAGEMENT, AdminCredentialGuard
from token_service.config import ADMIN_CLIENT_SCOPES
from token_service.errors import AdminNotConfigured, InvalidAdminCredentials
from token_service.issuer import TokenIssuer

AUDIENCE = "https://tools.local/admin"


def _guard(configured):
    return AdminCredentialGuard(lookup=lambda kind: configured.get(kind, (None, None)))


# --- credential guard ---


def test_guard_accepts_exact_pair():
    guard = _guard({MANAGEMENT: ("mgmt", "s3cret")})
    guard.verify(MANAGEMENT, "mgmt", "s3cret")
    assert guard.matches(MANAGEMENT, "mgmt", "s3cret") is True


@pytest.mark.parametrize(
    "client_id,secret",
    [("mgmt", "wrong"), ("other", "s3cret"), ("mgmt", ""), (None, "s3cret"), ("mgmt", "s3cret ")],
)
def test_guard_rejects_mismatch(client_id, secret):
    guard = _guard({MANAGEMENT: ("mgmt", "s3cret")})
    with pytest.raises(InvalidAdminCredentials):
        guard.verify(MANAGEMENT, client_id, secret)
    assert guard.matches(MANAGEMENT, client_id, secret) is False


@pytest.mark.parametrize("configured", [(None, None), ("mgmt", None), (None, "s3cret")])
def test_guard_not_configured(configured):
    guard = _guard({MANAGEMENT: configured})
    with pytest.raises(AdminNotConfigured):
        guard.verify(MANAGEMENT, "mgmt", "s3cret")
    assert guard.matches(MANAGEMENT, "mgmt", "s3cret") is False


def test_guard_kinds_are_independent():
    guard = _guard({ADMIN: ("admin", "a"), MANAGEMENT: ("mgmt", "m")})
    assert guard.matches(ADMIN, "admin", "a")
    assert not guard.matches(ADMIN, "mgmt", "m")


def test_guard_unknown_kind():
    with pytest.raises(ValueError):
        _guard({}).verify("root", "x", "y")


def test_guard_reads_environment_per_call(monkeypatch):
    guard = AdminCredentialGuard()
    assert guard.matches(ADMIN, "admin", "pw") is False
    monkeypatch.setenv("ADMIN_CLIENT_ID", "admin")
    monkeypatch.setenv("ADMIN_CLIENT_SECRET", "pw")
    assert guard.matches(ADMIN, "admin", "pw") is True


# --- /api gate ---


def _auth(jwk_pair, scopes, client_id="caller"):
    private, _ = jwk_pair
    return {"Authorization": f"Bearer {TokenIssuer.sign(private, client_id, AUDIENCE, scopes)}"}


def test_api_without_token_returns_401(client):
    response = client.get("/api/whoami")
    assert response.status_code == 401
    assert response.json()["detail"]["error"] == "invalid_request"
    assert response.headers.get("www-authenticate") == "Bearer"


def test_api_with_garbage_token_returns_401(client):
    response = client.get("/api/whoami", headers={"Authorization": "Bearer garbage"})
    assert response.status_code == 401
    assert response.json()["detail"]["error"] == "invalid_token"


def test_api_missing_admin_write_returns_403(client, jwk_pair):
    response = client.get("/api/whoami", headers=_auth(jwk_pair, ["admin.read"]))
    assert response.status_code == 403
    detail = response.json()["detail"]
    assert detail["error"] == "insufficient_scope"
    assert "admin.write" in detail["error_description"]


def test_api_whoami(client, jwk_pair):
    response = client.get("/api/whoami", headers=_auth(jwk_pair, ["admin.read", "admin.write"]))
    assert response.status_code == 200
    assert response.json() == {"clientId": "caller", "scopes": ["admin.read", "admin.write"]}


def test_api_with_admin_client_token(client, monkeypatch):
    monkeypatch.setenv("ADMIN_CLIENT_ID", "root-admin")
    monkeypatch.setenv("ADMIN_CLIENT_SECRET", "root-secret")
    token = client.post(
        "/token",
        data={
            "grant_type": "client_credentials",
            "client_id": "root-admin",
            "client_secret": "root-secret",
            "audience": AUDIENCE,
            "scope": "admin.read admin.write",
        },
    ).json()["access_token"]
    response = client.get("/api/whoami", headers={"Authorization": f"Bearer {token}"})
    assert response.status_code == 200
    assert response.json()["clientId"] == "root-admin"
    assert set(response.json()["scopes"]) <= set(ADMIN_CLIENT_SCOPES)


def test_api_get_server_reports_tier(client, registry, jwk_pair):
    registry.register("weather-agent", "Weather Agent", ["weather.read"])
    response = client.get("/api/servers/weather-agent", headers=_auth(jwk_pair, ["admin.read", "admin.write"]))
    assert response.status_code == 200
    data = response.json()
    assert data["serverId"] == "weather-agent"
    assert data["storageTier"] == "primary"
    assert "clientSecretHash" not in data


def test_api_get_server_not_found(client, jwk_pair):
    response = client.get("/api/servers/nobody", headers=_auth(jwk_pair, ["admin.read", "admin.write"]))
    assert response.status_code == 404
    assert response.json()["detail"]["error"] == "Client not found"


def test_guard_reads_configuration_once_per_check():
    calls = []

    def lookup(kind):
        calls.append(kind)
        return ("mgmt", "s3cret")

    guard = AdminCredentialGuard(lookup=lookup)
    assert guard.matches(MANAGEMENT, "mgmt", "s3cret") is True
    assert calls == [MANAGEMENT]
    guard.verify(MANAGEMENT, "mgmt", "s3cret")
    assert calls == [MANAGEMENT, MANAGEMENT]
