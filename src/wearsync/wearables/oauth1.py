"""OAuth 1.0a request signing (HMAC-SHA1) for the Garmin Connect APIs.

Implements the RFC 5849 primitives directly: nonce and timestamp generation,
RFC 3986 percent-encoding, the signature base string, the HMAC-SHA1
signature and the ``Authorization: OAuth ...`` header.

A single ``SignatureEngine`` value is built at startup and handed to the
authorization, callback and sync components.  It holds no per-request state;
the clock and the nonce source are constructor arguments so tests can pin
them.

Usage::

    engine = SignatureEngine()
    header = engine.sign(
        "GET", "https://apis.garmin.com/wellness-api/rest/dailies",
        consumer_key, consumer_secret,
        token=access_token, token_secret=access_token_secret,
        query={"uploadStartTimeInSeconds": 1771804800, "uploadEndTimeInSeconds": 1771891200},
    )
"""

from __future__ import annotations

import base64
import hashlib
import hmac
import secrets
import time
from typing import Any, Callable, Mapping
from urllib.parse import parse_qsl, quote, urlsplit, urlunsplit

SIGNATURE_METHOD = "HMAC-SHA1"
OAUTH_VERSION = "1.0"


class SignatureEngine:
    """OAuth 1.0a signing primitives.

    Args:
        clock:     Returns seconds since the epoch.  Defaults to ``time.time``.
        nonce_fn:  Returns a fresh opaque nonce.  Defaults to 16 random bytes, hex.
    """

    def __init__(
        self,
        clock: Callable[[], float] | None = None,
        nonce_fn: Callable[[], str] | None = None,
    ) -> None:
        self._clock = clock or time.time
        self._nonce_fn = nonce_fn or (lambda: secrets.token_hex(16))

    # ------------------------------------------------------------------
    # Primitives
    # ------------------------------------------------------------------

    def nonce(self) -> str:
        """Cryptographically random token; providers reject a reused nonce as a replay."""
        return self._nonce_fn()

    def timestamp(self) -> str:
        """Whole seconds since the epoch, as a string."""
        return str(int(self._clock()))

    @staticmethod
    def percent_encode(value: Any) -> str:
        """RFC 3986 encoding: everything but ``A-Z a-z 0-9 - . _ ~`` is escaped.

        Unlike component encoders that leave ``! * ' ( )`` alone, these five are
        escaped too.  Non-string values are stringified first.
        """
        return quote(str(value), safe="~")

    def signature_base_string(
        self, method: str, url: str, params: Mapping[str, Any]
    ) -> str:
        """Compose ``METHOD&enc(url)&enc(k1=v1&k2=v2...)``.

        Parameters are percent-encoded and then sorted, so the result does not
        depend on the mapping's insertion order.
        """
        encoded = sorted(
            (self.percent_encode(k), self.percent_encode(v)) for k, v in params.items()
        )
        joined = "&".join(f"{k}={v}" for k, v in encoded)
        return "&".join(
            [method.upper(), self.percent_encode(url), self.percent_encode(joined)]
        )

    def hmac_sha1_signature(
        self,
        base_string: str,
        consumer_secret: str,
        token_secret: str | None = None,
    ) -> str:
        """Base64 HMAC-SHA1 of the base string.

        The key is ``enc(consumer_secret)&enc(token_secret)``; the token secret
        is empty while requesting the request token.
        """
        key = f"{self.percent_encode(consumer_secret)}&{self.percent_encode(token_secret or '')}"
        digest = hmac.new(
            key.encode("utf-8"), base_string.encode("utf-8"), hashlib.sha1
        ).digest()
        return base64.b64encode(digest).decode("ascii")

    def authorization_header(self, params: Mapping[str, Any]) -> str:
        """Render ``OAuth k1="v1", k2="v2"`` from the ``oauth_*`` entries only."""
        pairs = sorted(
            (self.percent_encode(k), self.percent_encode(v))
            for k, v in params.items()
            if k.startswith("oauth_")
        )
        return "OAuth " + ", ".join(f'{k}="{v}"' for k, v in pairs)

    # ------------------------------------------------------------------
    # Composition
    # ------------------------------------------------------------------

    def oauth_params(
        self, consumer_key: str, token: str | None = None, **extra: str
    ) -> dict[str, str]:
        """The protocol parameter set for one request.

        ``extra`` carries step-specific entries such as ``oauth_callback`` or
        ``oauth_verifier``.
        """
        params = {
            "oauth_consumer_key": consumer_key,
            "oauth_nonce": self.nonce(),
            "oauth_signature_method": SIGNATURE_METHOD,
            "oauth_timestamp": self.timestamp(),
            "oauth_version": OAUTH_VERSION,
        }
        if token:
            params["oauth_token"] = token
        params.update(extra)
        return params

    def sign(
        self,
        method: str,
        url: str,
        consumer_key: str,
        consumer_secret: str,
        token: str | None = None,
        token_secret: str | None = None,
        query: Mapping[str, Any] | None = None,
        **extra: str,
    ) -> str:
        """Build the complete ``Authorization`` header value for a request.

        Query parameters (inline in ``url`` or passed as ``query``) are part of
        the signed set but never of the header.
        """
        parts = urlsplit(url)
        base_url = urlunsplit((parts.scheme.lower(), parts.netloc.lower(), parts.path, "", ""))

        oauth = self.oauth_params(consumer_key, token, **extra)
        signed: dict[str, Any] = dict(parse_qsl(parts.query, keep_blank_values=True))
        if query:
            signed.update(query)
        signed.update(oauth)

        base_string = self.signature_base_string(method, base_url, signed)
        oauth["oauth_signature"] = self.hmac_sha1_signature(
            base_string, consumer_secret, token_secret
        )
        return self.authorization_header(oauth)
