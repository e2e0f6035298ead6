"""Bearer token utilities.

The identity provider is external; this module only issues and verifies the
HS256 tokens that carry its subject to the API. HS256 only needs stdlib hmac.
"""
from __future__ import annotations

import base64
import hashlib
import hmac
import json
import time
from datetime import timedelta
from typing import Optional

from core.config import get_settings
from core.utils import utcnow

SETTINGS = get_settings()


# ---------------------------------------------------------------------------
# HS256 JWT
# ---------------------------------------------------------------------------

def _b64url_encode(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode()


def _b64url_decode(s: str) -> bytes:
    padding = 4 - len(s) % 4
    if padding != 4:
        s += "=" * padding
    return base64.urlsafe_b64decode(s)


def _sign(signing_input: str, secret: str) -> bytes:
    return hmac.new(secret.encode(), signing_input.encode(), hashlib.sha256).digest()


def _jwt_encode(payload: dict, secret: str) -> str:
    header = {"alg": "HS256", "typ": "JWT"}
    segments = [
        _b64url_encode(json.dumps(header, separators=(",", ":")).encode()),
        _b64url_encode(json.dumps(payload, separators=(",", ":"), default=str).encode()),
    ]
    segments.append(_b64url_encode(_sign(".".join(segments), secret)))
    return ".".join(segments)


def _jwt_decode(token: str, secret: str) -> Optional[dict]:
    parts = token.split(".")
    if len(parts) != 3:
        return None

    try:
        actual_sig = _b64url_decode(parts[2])
        if not hmac.compare_digest(_sign(f"{parts[0]}.{parts[1]}", secret), actual_sig):
            return None
        payload = json.loads(_b64url_decode(parts[1]))
    except (ValueError, UnicodeDecodeError):
        return None

    if not isinstance(payload, dict):
        return None

    exp = payload.get("exp")
    if isinstance(exp, (int, float)) and exp < time.time():
        return None

    return payload


# ---------------------------------------------------------------------------
# Token Creation/Decoding
# ---------------------------------------------------------------------------

def create_access_token(user_id: int, email: str, expires_minutes: Optional[int] = None) -> str:
    """Create a signed access token for an internal user id."""
    minutes = expires_minutes or SETTINGS.jwt_access_token_expire_minutes
    expire = utcnow() + timedelta(minutes=minutes)
    payload = {
        "sub": str(user_id),
        "email": email,
        "exp": int(expire.timestamp()),
        "type": "access",
    }
    return _jwt_encode(payload, SETTINGS.jwt_secret_key)


def decode_access_token(token: str) -> Optional[dict]:
    """
    Decode and validate an access token.

    Returns:
        Token payload dict, or None if invalid/expired.
    """
    payload = _jwt_decode(token, SETTINGS.jwt_secret_key)
    if payload is None:
        return None
    if payload.get("type") != "access":
        return None
    return payload


__all__ = ["create_access_token", "decode_access_token"]
