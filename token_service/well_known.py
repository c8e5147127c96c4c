"""
Well-known endpoint: JWKS.
"""
from fastapi import APIRouter, Depends

from token_service.dependencies import get_key_source
from token_service.keys import KeyMaterialSource

router = APIRouter()


@router.get("/.well-known/jwks.json")
def jwks_json(key_source: KeyMaterialSource = Depends(get_key_source)):
    """JSON Web Key Set for token signature verification. Always 200; empty keys if none resolvable."""
    return key_source.jwks()
