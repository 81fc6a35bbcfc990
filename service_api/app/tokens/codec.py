"""
Signed access token codec.
"""

import hashlib
import hmac
import re
import string
import time
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Callable, Optional

from afkmate_shared.errors import ConfigurationError
from afkmate_shared.logging import get_logger

TOKEN_MAGIC = "AFKMATE"
TOKEN_DELIMITER = "-"
TOKEN_LIFETIME = timedelta(days=365)
SIGNATURE_LENGTH = 12

_LIFETIME_MS = int(TOKEN_LIFETIME.total_seconds() * 1000)
_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
_BASE36_DIGITS = string.digits + string.ascii_lowercase
_BASE36_PATTERN = re.compile(r"[0-9a-zA-Z]+")


class Tier(str, Enum):
    """Subscription tiers a token may grant."""
    PREMIUM = "premium"
    PRO = "pro"
    ENTERPRISE = "enterprise"

    @classmethod
    def from_value(cls, value: str) -> Optional["Tier"]:
        """Case-insensitive lookup; None when the value is not a known tier."""
        try:
            return cls(value.lower())
        except ValueError:
            return None


class TokenFailure(str, Enum):
    """Why a token was rejected. Every kind is terminal."""
    MALFORMED_TOKEN = "malformed_token"
    INVALID_TIER = "invalid_tier"
    INVALID_TIMESTAMP = "invalid_timestamp"
    EXPIRED = "expired"
    INVALID_SIGNATURE = "invalid_signature"

    @property
    def message(self) -> str:
        return _FAILURE_MESSAGES[self]


_FAILURE_MESSAGES = {
    TokenFailure.MALFORMED_TOKEN: "Invalid token format",
    TokenFailure.INVALID_TIER: "Invalid subscription tier",
    TokenFailure.INVALID_TIMESTAMP: "Invalid token timestamp",
    TokenFailure.EXPIRED: "Token has expired",
    TokenFailure.INVALID_SIGNATURE: "Invalid token signature",
}


@dataclass(frozen=True)
class TokenClaims:
    """Decoded grant. Only ever produced by ``TokenCodec.parse`` after the signature verified."""
    subject_id: str
    tier: Tier
    issued_at: datetime
    expires_at: datetime


@dataclass(frozen=True)
class TokenValidationResult:
    """Outcome of ``TokenCodec.parse``: claims on success, a failure kind otherwise."""
    valid: bool
    claims: Optional[TokenClaims] = None
    failure: Optional[TokenFailure] = None
    detail: Optional[str] = None

    @property
    def message(self) -> str:
        if self.valid:
            return "Token validated successfully"
        if self.detail:
            return self.detail
        return self.failure.message if self.failure else "Invalid token"

    @classmethod
    def accept(cls, claims: TokenClaims) -> "TokenValidationResult":
        return cls(valid=True, claims=claims)

    @classmethod
    def reject(cls, failure: TokenFailure, detail: Optional[str] = None) -> "TokenValidationResult":
        return cls(valid=False, failure=failure, detail=detail)


def to_base36(value: int) -> str:
    """Encode a non-negative integer in lowercase base 36."""
    if value < 0:
        raise ValueError("value must be non-negative")
    if value == 0:
        return "0"
    digits = []
    while value:
        value, remainder = divmod(value, 36)
        digits.append(_BASE36_DIGITS[remainder])
    return "".join(reversed(digits))


class TokenCodec:
    """Encode and authenticate AFKMate access tokens.

    The secret is fixed for the lifetime of the codec. When it is None every
    operation raises ConfigurationError so a misconfigured deployment fails
    closed instead of accepting or issuing tokens under a guessable key.
    """

    def __init__(self, secret: Optional[str], clock: Callable[[], float] = time.time):
        self._secret = secret.encode("utf-8") if secret else None
        self._clock = clock
        self.logger = get_logger("api.token_codec")

    @property
    def configured(self) -> bool:
        return self._secret is not None

    def _require_secret(self) -> bytes:
        if self._secret is None:
            raise ConfigurationError("Token secret not configured")
        return self._secret

    def _sign(self, secret: bytes, tier: str, timestamp36: str, subject_id: str) -> str:
        payload = TOKEN_DELIMITER.join((TOKEN_MAGIC, tier, timestamp36, subject_id))
        digest = hmac.new(secret, payload.encode("utf-8"), hashlib.sha256).hexdigest()
        return digest[:SIGNATURE_LENGTH]

    def _now_ms(self) -> int:
        return int(self._clock() * 1000)

    def generate(self, subject_id: str, tier: str = Tier.PREMIUM.value) -> str:
        """Issue a token for ``subject_id``. Administrative use only."""
        secret = self._require_secret()

        if not subject_id:
            raise ValueError("subject_id must be a non-empty string")
        if TOKEN_DELIMITER in subject_id:
            raise ValueError(f"subject_id must not contain '{TOKEN_DELIMITER}'")
        tier_value = Tier.from_value(tier.value if isinstance(tier, Tier) else str(tier))
        if tier_value is None:
            raise ValueError(f"Unknown tier: {tier}")

        timestamp36 = to_base36(self._now_ms())
        signature = self._sign(secret, tier_value.value, timestamp36, subject_id)

        self.logger.info("Token issued", subject_id=subject_id, tier=tier_value.value)
        return TOKEN_DELIMITER.join((TOKEN_MAGIC, tier_value.value, timestamp36, subject_id, signature))

    def parse(self, token: Any) -> TokenValidationResult:
        """Decode and authenticate ``token``.

        Checks run cheapest first and stop at the first failure: structure,
        tier, timestamp, expiry, then the signature. Bad input never raises.
        """
        secret = self._require_secret()
        result = self._parse(secret, token)
        if not result.valid:
            self.logger.warning("Token verification failed", reason=result.failure.value)
        return result

    def _parse(self, secret: bytes, token: Any) -> TokenValidationResult:
        if not token or not isinstance(token, str):
            return TokenValidationResult.reject(TokenFailure.MALFORMED_TOKEN, "Token is required")

        parts = token.split(TOKEN_DELIMITER)
        if len(parts) != 5 or parts[0] != TOKEN_MAGIC:
            return TokenValidationResult.reject(TokenFailure.MALFORMED_TOKEN)

        _, tier_field, timestamp36, subject_id, provided_signature = parts

        tier = Tier.from_value(tier_field)
        if tier is None:
            return TokenValidationResult.reject(TokenFailure.INVALID_TIER)

        if not _BASE36_PATTERN.fullmatch(timestamp36):
            return TokenValidationResult.reject(TokenFailure.INVALID_TIMESTAMP)
        try:
            issued_ms = int(timestamp36, 36)
            issued_at = _EPOCH + timedelta(milliseconds=issued_ms)
            expires_at = issued_at + TOKEN_LIFETIME
        except (OverflowError, ValueError):
            return TokenValidationResult.reject(TokenFailure.INVALID_TIMESTAMP)

        if self._now_ms() > issued_ms + _LIFETIME_MS:
            return TokenValidationResult.reject(TokenFailure.EXPIRED)

        # The signature covers the tier exactly as presented, so a re-cased
        # tier field does not verify.
        expected_signature = self._sign(secret, tier_field, timestamp36, subject_id)
        # compare_digest is constant-time and returns False on length mismatch.
        if not hmac.compare_digest(provided_signature.encode("utf-8"), expected_signature.encode("ascii")):
            return TokenValidationResult.reject(TokenFailure.INVALID_SIGNATURE)

        return TokenValidationResult.accept(
            TokenClaims(
                subject_id=subject_id,
                tier=tier,
                issued_at=issued_at,
                expires_at=expires_at,
            )
        )
