"""
Resource server configuration. The token service URL and this API's audience
are public identifiers, not secrets.
"""
import os

# Token service; JWKS is fetched from here
TOKEN_SERVICE_URL = os.environ.get("TOKEN_SERVICE_URL", "http://127.0.0.1:4111").rstrip("/")
JWKS_URI = os.environ.get("TOKEN_SERVICE_JWKS_URL", f"{TOKEN_SERVICE_URL}/.well-known/jwks.json")

# Audience of this API; access tokens must carry it in aud
API_AUDIENCE = os.environ.get("TOKEN_SERVICE_AUD", "https://tools.local/weather")

# How long fetched JWKS are reused before refetching (seconds)
JWKS_CACHE_SECONDS = 300

# Scope required by protected routes
SCOPE_WEATHER_READ = "weather.read"
