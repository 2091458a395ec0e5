"""Short-lived, business-scoped QR check-in tokens.

Token layout: ``<payload>.<signature>`` where payload is the base64url form of
``"<business_id>:<issued_at_ms>:<nonce>"`` and signature is the base64url
HMAC-SHA256 of the encoded payload.
"""

from __future__ import annotations

import base64
import binascii
import hashlib
import hmac
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from ..common.datetime_utils import from_epoch_ms, now_local, to_epoch_ms
from ..core.constants import QR_CLOCK_SKEW_SECONDS, QR_TOKEN_TTL_SECONDS
from ..core.enums import TokenFailure


def _b64url_encode(raw: bytes) -> str:
    return base64.urlsafe_b64encode(raw).rstrip(b"=").decode("ascii")


def _b64url_decode(value: str) -> bytes:
    padding = "=" * (-len(value) % 4)
    return base64.urlsafe_b64decode(value + padding)


@dataclass(frozen=True)
class IssuedToken:
    token: str
    business_id: int
    issued_at: datetime
    expires_at: datetime


@dataclass(frozen=True)
class TokenValidation:
    ok: bool
    reason: Optional[TokenFailure] = None
    business_id: Optional[int] = None
    issued_at: Optional[datetime] = None


class TokenCodec:
    def __init__(
        self,
        signing_key: str,
        *,
        ttl_seconds: int = QR_TOKEN_TTL_SECONDS,
        clock_skew_seconds: int = QR_CLOCK_SKEW_SECONDS,
        clock=now_local,
    ):
        if not signing_key:
            raise ValueError("QR signing key is required")
        self._key = signing_key.encode("utf-8")
        self._ttl = timedelta(seconds=int(ttl_seconds))
        self._skew = timedelta(seconds=int(clock_skew_seconds))
        self._clock = clock

    @property
    def ttl(self) -> timedelta:
        return self._ttl

    def _sign(self, payload_b64: str) -> str:
        digest = hmac.new(self._key, payload_b64.encode("ascii"), hashlib.sha256).digest()
        return _b64url_encode(digest)

    def issue(self, business_id: int, *, now: datetime | None = None) -> IssuedToken:
        now = now or self._clock()
        issued_ms = to_epoch_ms(now)
        payload = f"{int(business_id)}:{issued_ms}:{secrets.token_hex(16)}"
        payload_b64 = _b64url_encode(payload.encode("ascii"))
        issued_at = from_epoch_ms(issued_ms)
        return IssuedToken(
            token=f"{payload_b64}.{self._sign(payload_b64)}",
            business_id=int(business_id),
            issued_at=issued_at,
            expires_at=issued_at + self._ttl,
        )

    def _decode(self, token: str) -> Optional[tuple[int, int]]:
        if not isinstance(token, str) or not token.isascii() or token.count(".") != 1:
            return None
        payload_b64, signature = token.strip().split(".", 1)
        if not payload_b64 or not signature:
            return None
        if not hmac.compare_digest(signature, self._sign(payload_b64)):
            return None
        try:
            business_raw, issued_raw, nonce = _b64url_decode(payload_b64).decode("ascii").split(":")
            business_id, issued_ms = int(business_raw), int(issued_raw)
        except (binascii.Error, UnicodeDecodeError, ValueError):
            return None
        if not nonce:
            return None
        return business_id, issued_ms

    def validate(self, token: str, expected_business_id: int, *, now: datetime | None = None) -> TokenValidation:
        now = now or self._clock()
        decoded = self._decode(token)
        if decoded is None:
            return TokenValidation(ok=False, reason=TokenFailure.INVALID_FORMAT)

        business_id, issued_ms = decoded
        issued_at = from_epoch_ms(issued_ms)
        age = now - issued_at
        if age < -self._skew:
            return TokenValidation(ok=False, reason=TokenFailure.INVALID_FORMAT, business_id=business_id)
        if age > self._ttl:
            return TokenValidation(
                ok=False, reason=TokenFailure.EXPIRED, business_id=business_id, issued_at=issued_at
            )
        if business_id != int(expected_business_id):
            return TokenValidation(
                ok=False, reason=TokenFailure.WRONG_BUSINESS, business_id=business_id, issued_at=issued_at
            )
        return TokenValidation(ok=True, business_id=business_id, issued_at=issued_at)
