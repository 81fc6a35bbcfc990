"""
Access token package.

Self-describing, HMAC-signed access tokens of the form
``AFKMATE-{tier}-{base36 ms timestamp}-{subject id}-{12 hex signature}``.
Tokens carry everything needed to judge them, so validation needs no
database. Issuance is an administrative, library-level operation (see
``service_api.app.admin``) and is not bound to any HTTP route.
"""

from .codec import (
    SIGNATURE_LENGTH,
    TOKEN_DELIMITER,
    TOKEN_LIFETIME,
    TOKEN_MAGIC,
    TokenClaims,
    TokenCodec,
    TokenFailure,
    TokenValidationResult,
    Tier,
)

__all__ = [
    "SIGNATURE_LENGTH",
    "TOKEN_DELIMITER",
    "TOKEN_LIFETIME",
    "TOKEN_MAGIC",
    "TokenClaims",
    "TokenCodec",
    "TokenFailure",
    "TokenValidationResult",
    "Tier",
]
