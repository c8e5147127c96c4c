"""
Where the token endpoint finds client credentials (RFC 6749 §2.3.1):
form fields client_id + client_secret, or an Authorization: Basic header.
"""
import base64
import binascii
from urllib.parse import unquote

from fastapi import Request

BASIC_SCHEME = "basic"


def basic_credentials(authorization: str | None) -> tuple[str, str] | None:
    """(client_id, client_secret) from a Basic header, or None if absent or malformed."""
    scheme, _, encoded = (authorization or "").strip().partition(" ")
    if scheme.lower() != BASIC_SCHEME or not encoded:
        return None
    try:
        pair = base64.b64decode(encoded.strip(), validate=True).decode("utf-8")
    except (binascii.Error, UnicodeDecodeError):
        return None
    client_id, sep, client_secret = pair.partition(":")
    if not sep:
        return None
    # Both halves are form-urlencoded before base64
    return unquote(client_id.strip()), unquote(client_secret)


def get_client_credentials_from_request(
    request: Request,
    client_id_form: str | None,
    client_secret_form: str | None,
) -> tuple[str | None, str | None]:
    """Form pair if complete, else Basic header, else whatever the form carried."""
    if client_id_form and client_secret_form:
        return client_id_form.strip(), client_secret_form
    basic = basic_credentials(request.headers.get("Authorization"))
    if basic is not None:
        return basic
    return (client_id_form or "").strip() or None, client_secret_form or None
