"""Client-held, HMAC-signed history store.

Used for stateless deployments: the client receives its own request history
as two opaque values (payload, signature) and echoes them on the next request.

Token format:
- payload: timestamps delta-encoded in arrival order, compact JSON,
  zlib-compressed, base64url without padding. The same history always
  produces the same payload.
- signature: hex HMAC-SHA256 of the payload string.

A token that fails verification or decoding is treated as empty history and
logged as ``rate_limit.token_tampered``. Requests are never rejected because
of a bad token.
"""

from __future__ import annotations

import base64
import binascii
import hashlib
import hmac
import json
import logging
import time
import zlib
from typing import Callable

from app.adapters.rate_limit.base import (
    AbstractClientStateStore,
    ClientContext,
    SignedToken,
    TimestampHistory,
)
from app.adapters.rate_limit.window import prune
from app.core.errors import TokenTamperedError
from app.core.logging import hash_client_identity

logger = logging.getLogger(__name__)

# Browsers drop cookies larger than this.
MAX_COOKIE_BYTES = 4096

# Upper bound for the decompressed payload, guards against zlib bombs.
_MAX_DECODED_BYTES = 1_048_576


def encode_history(history: TimestampHistory) -> str:
    """Serialize a history into the canonical payload string."""
    deltas: list[int] = []
    previous = 0
    for ts in history:
        deltas.append(ts - previous)
        previous = ts

    raw = json.dumps(deltas, separators=(",", ":")).encode("ascii")
    packed = zlib.compress(raw, 9)
    return base64.urlsafe_b64encode(packed).rstrip(b"=").decode("ascii")


def decode_history(payload: str) -> TimestampHistory:
    """Parse a payload string back into absolute timestamps.

    Raises:
        TokenTamperedError: If the payload is not a valid encoded history.
    """
    try:
        padded = payload + "=" * (-len(payload) % 4)
        packed = base64.urlsafe_b64decode(padded.encode("ascii"))
        inflater = zlib.decompressobj()
        raw = inflater.decompress(packed, _MAX_DECODED_BYTES)
        if inflater.unconsumed_tail or not inflater.eof:
            raise ValueError("payload is truncated or too large")
        deltas = json.loads(raw)
    except (ValueError, binascii.Error, zlib.error) as exc:
        raise TokenTamperedError(
            code="token_malformed",
            message=f"History payload could not be decoded: {exc}",
        ) from exc

    if not isinstance(deltas, list) or not all(
        isinstance(d, int) and not isinstance(d, bool) for d in deltas
    ):
        raise TokenTamperedError(
            code="token_malformed",
            message="History payload must be a list of integers",
        )

    history: TimestampHistory = []
    current = 0
    for delta in deltas:
        current += delta
        history.append(current)
    return history


class SignedClientStore(AbstractClientStateStore):
    """History store that hands the (signed) history back to the client.

    No server-side state is shared between requests, so no cross-request
    lock is needed: each response issues exactly one token derived from
    exactly one read.
    """

    def __init__(
        self,
        secret: str,
        *,
        retention_seconds: int = 86400,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Initialize the signed store.

        Args:
            secret: Server-held MAC key. Rotating it invalidates every
                outstanding token (they read as empty history).
            retention_seconds: Maximum age of a kept timestamp.
            clock: Time source returning UNIX time in seconds.

        Raises:
            ValueError: If the secret is empty or retention_seconds is invalid.
        """
        if not secret:
            raise ValueError("secret must be a non-empty string")
        if retention_seconds < 1:
            raise ValueError("retention_seconds must be >= 1")

        self._key = secret.encode("utf-8")
        self._retention_seconds = retention_seconds
        self._clock = clock

    def sign(self, payload: str) -> str:
        return hmac.new(self._key, payload.encode("utf-8"), hashlib.sha256).hexdigest()

    def issue(self, history: TimestampHistory) -> SignedToken:
        """Encode and sign a history as-is (no pruning)."""
        payload = encode_history(history)
        return SignedToken(payload=payload, signature=self.sign(payload))

    def verify(self, token: SignedToken) -> TimestampHistory:
        """Return the history carried by ``token``.

        Raises:
            TokenTamperedError: On signature mismatch or undecodable payload.
        """
        expected = self.sign(token.payload).encode("ascii")
        if not hmac.compare_digest(expected, token.signature.encode("utf-8")):
            raise TokenTamperedError(
                code="token_signature_mismatch",
                message="History signature does not match payload",
            )
        return decode_history(token.payload)

    def read(self, context: ClientContext) -> TimestampHistory:
        if context.token is None:
            return []

        try:
            history = self.verify(context.token)
        except TokenTamperedError as exc:
            logger.warning(
                "rate_limit.token_tampered",
                extra={
                    "key_hash": hash_client_identity(context.identity),
                    "error_code": exc.code,
                    "payload_length": len(context.token.payload),
                },
            )
            return []

        return prune(history, self._retention_seconds, int(self._clock()))

    def write(self, context: ClientContext, history: TimestampHistory) -> SignedToken:
        """Prune, encode and sign ``history``; the token replaces ``context.token``."""
        pruned = prune(history, self._retention_seconds, int(self._clock()))
        token = self.issue(pruned)
        context.token = token

        token_bytes = len(token.payload) + len(token.signature)
        if token_bytes > MAX_COOKIE_BYTES:
            logger.warning(
                "rate_limit.token_oversized",
                extra={
                    "token_bytes": token_bytes,
                    "entries": len(pruned),
                    "max_cookie_bytes": MAX_COOKIE_BYTES,
                },
            )
        return token
