"""Bearer-secret check for the cron trigger endpoint."""

import hmac
from typing import Optional

BEARER_PREFIX = "bearer "


def extract_bearer_token(authorization: Optional[str]) -> Optional[str]:
    """Return the token from an ``Authorization: Bearer <token>`` header."""
    if not authorization:
        return None
    if not authorization[: len(BEARER_PREFIX)].lower() == BEARER_PREFIX:
        return None
    token = authorization[len(BEARER_PREFIX):].strip()
    return token or None


def is_authorized(authorization: Optional[str], secret: Optional[str]) -> bool:
    """Check the request's Authorization header against the configured secret.

    With no secret configured every request is authorized; callers are
    expected to log that auth is disabled. Tokens are compared in constant
    time.
    """
    if not secret:
        return True
    token = extract_bearer_token(authorization)
    if token is None:
        return False
    return hmac.compare_digest(token.encode("utf-8"), secret.encode("utf-8"))
