"""OAuth2 ``state`` correlation token.

``state`` is base64(JSON{userId, provider}) so the callback can tell who
started the flow without a server session.  When ``oauth_state_secret`` is
set, an HMAC-SHA256 tag is appended (``<payload>.<tag>``) and a token with a
missing or wrong tag is rejected.
"""

from __future__ import annotations

import base64
import binascii
import hashlib
import hmac
import json
from dataclasses import dataclass

from wearsync.wearables.errors import InvalidCallbackError


@dataclass(frozen=True)
class OAuthState:
    user_id: str
    provider: str


def _b64encode(raw: bytes) -> str:
    return base64.urlsafe_b64encode(raw).decode("ascii").rstrip("=")


def _b64decode(text: str) -> bytes:
    return base64.urlsafe_b64decode(text + "=" * (-len(text) % 4))


def _tag(payload: str, secret: str) -> str:
    digest = hmac.new(secret.encode("utf-8"), payload.encode("utf-8"), hashlib.sha256).digest()
    return _b64encode(digest)


def encode_state(user_id: str, provider: str, secret: str = "") -> str:
    payload = _b64encode(
        json.dumps({"userId": user_id, "provider": provider}, separators=(",", ":")).encode("utf-8")
    )
    if secret:
        return f"{payload}.{_tag(payload, secret)}"
    return payload


def decode_state(state: str, secret: str = "") -> OAuthState:
    """Parse a state token.

    Raises:
        InvalidCallbackError: Malformed payload, or bad tag when a secret is set.
    """
    payload, _, tag = state.partition(".")
    if secret and not hmac.compare_digest(
        tag.encode("utf-8"), _tag(payload, secret).encode("ascii")
    ):
        raise InvalidCallbackError("Invalid state parameter")

    try:
        data = json.loads(_b64decode(payload))
    except (binascii.Error, UnicodeDecodeError, ValueError) as exc:
        raise InvalidCallbackError("Invalid state parameter") from exc

    if not isinstance(data, dict) or not data.get("userId") or not data.get("provider"):
        raise InvalidCallbackError("Invalid state parameter")
    return OAuthState(user_id=str(data["userId"]), provider=str(data["provider"]))
