from __future__ import annotations

import base64
import hashlib
import hmac
import time

from jose import JWTError, jwt

from ekkle.core.config import settings


TOKEN_ALGORITHM = "HS256"


class WebhookVerificationError(Exception):
    """The webhook token or body digest did not check out."""


class LiveKitNotConfigured(Exception):
    """LiveKit API key/secret are not set."""


def body_digest(body: bytes) -> str:
    return base64.b64encode(hashlib.sha256(body).digest()).decode("ascii")


def _credentials(api_key: str | None, api_secret: str | None) -> tuple[str, str]:
    key = api_key if api_key is not None else settings.LIVEKIT_API_KEY
    secret = api_secret if api_secret is not None else settings.LIVEKIT_API_SECRET
    if not key or not secret:
        raise LiveKitNotConfigured("LiveKit API key/secret are not configured")
    return key, secret


def verify_webhook(
    body: bytes,
    auth_header: str,
    *,
    api_key: str | None = None,
    api_secret: str | None = None,
) -> dict[str, object]:
    """
    Check a LiveKit webhook: the Authorization header is a JWT signed with
    the API secret, issued by the API key, whose ``sha256`` claim is the
    base64 SHA-256 of the raw body. Returns the token claims.
    """
    key, secret = _credentials(api_key, api_secret)
    token = auth_header.strip()
    if token.lower().startswith("bearer "):
        token = token[7:].strip()
    try:
        claims = jwt.decode(
            token,
            secret,
            algorithms=[TOKEN_ALGORITHM],
            issuer=key,
            options={"verify_aud": False},
        )
    except JWTError as exc:
        raise WebhookVerificationError("Invalid webhook token") from exc
    expected = claims.get("sha256")
    if not isinstance(expected, str) or not hmac.compare_digest(expected, body_digest(body)):
        raise WebhookVerificationError("Webhook body digest mismatch")
    return claims


def sign_webhook(
    body: bytes,
    *,
    api_key: str | None = None,
    api_secret: str | None = None,
    ttl_seconds: int = 600,
) -> str:
    """
    Build the Authorization token LiveKit would send for ``body``.
    """
    key, secret = _credentials(api_key, api_secret)
    now = int(time.time())
    payload = {
        "iss": key,
        "nbf": now,
        "exp": now + ttl_seconds,
        "sha256": body_digest(body),
    }
    return jwt.encode(payload, secret, algorithm=TOKEN_ALGORITHM)
