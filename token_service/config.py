"""
Token service configuration. Keys and credentials come from env or key files;
no secrets in this file.
"""
import os

# Issuer of every access token minted here (public identifier, also checked on verify)
ISSUER = "https://token.example"

# Access token lifetime (seconds). Fixed; not configurable per client or request.
ACCESS_TOKEN_EXPIRES = 3600

# Owning-subject label of the signing key in fallback key files (agent_id field)
TOKEN_SERVICE_SUBJECT = "token-service"

# Primary key source: single JSON-encoded JWKs
PRIVATE_KEY_ENV = "TOKEN_SERVICE_PRIVATE_KEY"
PUBLIC_KEY_ENV = "TOKEN_SERVICE_PUBLIC_KEY"

# Fallback key-file directory for local development
KEYS_DIR = os.environ.get("KEYS_DIR", "keys")

# Fallback-tier snapshot of registered clients
SERVERS_DB_FILE = os.environ.get("SERVERS_DB_FILE", "servers.json")

# Primary store. Unset means the primary tier is unavailable and the fallback tier answers.
DATABASE_URL = os.environ.get("DATABASE_URL", "").strip() or None

# bcrypt cost for stored client secrets
BCRYPT_ROUNDS = int(os.environ.get("TOKEN_SERVICE_BCRYPT_ROUNDS", "12"))

# Scopes the admin bearer gate on /api requires
ADMIN_GATE_SCOPES = ["admin.read", "admin.write"]

# Scopes granted to the admin client (ADMIN_CLIENT_ID / ADMIN_CLIENT_SECRET) at /token
ADMIN_CLIENT_SCOPES = [
    "admin.read",
    "admin.write",
    "client.read",
    "client.write",
    "agent.read",
    "agent.write",
    "workflow.read",
    "workflow.write",
    "tool.read",
    "tool.write",
    "rag.read",
    "rag.write",
]

# Credential kinds checked by AdminCredentialGuard: kind -> (client id env, client secret env)
ADMIN_CREDENTIALS_ENV = {
    "admin": ("ADMIN_CLIENT_ID", "ADMIN_CLIENT_SECRET"),
    "management": ("MANAGEMENT_CLIENT_ID", "MANAGEMENT_CLIENT_SECRET"),
}


def is_development() -> bool:
    """True only when the deployment declares APP_ENV=development. Read per call."""
    return os.environ.get("APP_ENV", "production").strip().lower() == "development"


def admin_credentials(kind: str) -> tuple[str | None, str | None]:
    """Configured (client_id, client_secret) for a credential kind. Read per call, never cached."""
    id_env, secret_env = ADMIN_CREDENTIALS_ENV[kind]
    return os.environ.get(id_env) or None, os.environ.get(secret_env) or None
