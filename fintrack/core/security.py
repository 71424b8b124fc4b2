from __future__ import annotations

import json
import logging
import math
import time
from datetime import datetime, timezone
from typing import Any, Callable

from jose.utils import base64url_decode
from pydantic import BaseModel, ConfigDict, ValidationError

from ..services.storage import SessionStore

logger = logging.getLogger(__name__)

Clock = Callable[[], float]

# 9999-12-31T23:59:59Z, the last instant a datetime can hold.
MAX_TIMESTAMP = 253_402_300_799


class TokenClaims(BaseModel):
    """The subset of the credential payload the client relies on."""

    model_config = ConfigDict(extra="allow", strict=True)

    exp: int | float
    sub: str | int | None = None

    @property
    def expires_at(self) -> datetime:
        return datetime.fromtimestamp(self.exp, tz=timezone.utc)


def _decode_segment(segment: str) -> dict[str, Any]:
    try:
        decoded = json.loads(base64url_decode(segment.encode("ascii")))
    except (ValueError, TypeError) as exc:
        raise ValueError("Could not parse token payload") from exc
    if not isinstance(decoded, dict):
        raise ValueError("Could not parse token payload")
    return decoded


def decode_claims(token: str) -> TokenClaims:
    """Read the payload of a signed token without verifying its signature.

    The signature is the backend's business; the client only needs the
    structure and the ``exp`` claim to decide whether sending it is useful.
    Raises ``ValueError`` describing the first problem found.
    """

    parts = token.split(".")
    if len(parts) != 3:
        raise ValueError("Token has invalid format")
    payload = _decode_segment(parts[1])
    if payload.get("exp") is None:
        raise ValueError("Token payload does not have an expiration date")
    try:
        claims = TokenClaims.model_validate(payload)
    except ValidationError as exc:
        raise ValueError("Token payload has an invalid expiration date") from exc
    if not math.isfinite(claims.exp) or abs(claims.exp) > MAX_TIMESTAMP:
        raise ValueError("Token payload has an invalid expiration date")
    return claims


def describe_token(token: str | None, now: float | None = None) -> str:
    """Human readable status line used by the network debug page."""

    if not token:
        return "No token found in storage"
    try:
        claims = decode_claims(token)
    except ValueError as exc:
        return str(exc)
    now = time.time() if now is None else now
    if claims.exp <= now:
        return "Token has expired"
    return f"Valid token for user: {claims.sub}, expires: {claims.expires_at.isoformat()}"


class SessionGuard:
    """Decides whether the stored credential is worth presenting.

    A negative answer purges the Session Record, except when there is no
    credential at all. Callers rely on that side effect: a page gate or an
    outgoing request that sees a bad token leaves the store empty.
    """

    def __init__(self, store: SessionStore, clock: Clock = time.time) -> None:
        self.store = store
        self.clock = clock

    def is_valid(self, credential: str | None) -> bool:
        if not credential:
            return False
        try:
            claims = decode_claims(credential)
        except ValueError as exc:
            self._purge(str(exc))
            return False
        now = self.clock()
        if claims.exp <= now:
            self._purge("Token has expired")
            return False
        logger.debug(
            "session.token_valid",
            extra={"extra_data": {"expires_in_min": round((claims.exp - now) / 60), "sub": claims.sub}},
        )
        return True

    def check(self) -> bool:
        return self.is_valid(self.store.token)

    def _purge(self, reason: str) -> None:
        logger.warning("session.purged", extra={"extra_data": {"reason": reason}})
        self.store.clear()
