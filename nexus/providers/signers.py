"""Coinbase Advanced Trade request signing.

Two interchangeable schemes:
- HMAC-SHA256 over timestamp + METHOD + path + body (CB-ACCESS-* headers)
- CDP JWT signed with ES256, sent as a bearer token

Headers are single-use: both schemes embed the current time, so callers
must sign again for every request.
"""
import hashlib
import hmac
import secrets
import time
from abc import ABC, abstractmethod
from typing import Dict, Optional

import jwt

from nexus.core.config import Credential, Settings
from nexus.core.errors import ConfigurationError, SigningError
from nexus.core.logging import get_logger

logger = get_logger(__name__)

JWT_TTL_SECONDS = 120
JWT_ISSUER = "cdp"
JWT_AUDIENCE = ["retail_rest_api_proxy"]


class RequestSigner(ABC):
    """Produces authentication headers for one brokerage call."""

    def __init__(self, credential: Credential):
        if not credential.key_id or not credential.secret:
            raise ConfigurationError(
                "Coinbase credentials not configured",
                has_key=bool(credential.key_id),
                has_secret=bool(credential.secret),
            )
        self._credential = credential

    @property
    def key_id(self) -> str:
        return self._credential.key_id

    @abstractmethod
    def sign(self, method: str, path: str, body: str = "") -> Dict[str, str]:
        """Return fresh headers for METHOD path with the exact body that will be sent."""


class HmacSigner(RequestSigner):
    """CB-ACCESS-* header signing with a shared secret."""

    def sign(self, method: str, path: str, body: str = "", timestamp: Optional[int] = None) -> Dict[str, str]:
        ts = str(int(time.time()) if timestamp is None else timestamp)
        message = f"{ts}{method.upper()}{path}{body or ''}"
        signature = hmac.new(
            self._credential.secret.encode("utf-8"),
            message.encode("utf-8"),
            hashlib.sha256,
        ).hexdigest()
        return {
            "CB-ACCESS-KEY": self._credential.key_id,
            "CB-ACCESS-SIGN": signature,
            "CB-ACCESS-TIMESTAMP": ts,
            "Content-Type": "application/json",
        }


class JwtSigner(RequestSigner):
    """CDP API key signing: ES256 JWT bound to one METHOD host/path."""

    def __init__(self, credential: Credential, host: str = "api.coinbase.com"):
        super().__init__(credential)
        self.host = host

    def build_jwt(self, method: str, path: str) -> str:
        """
        Build JWT token for Coinbase Advanced Trade API (ES256).

        Coinbase CDP JWT format:
        - Header: { "alg": "ES256", "kid": key_name, "nonce": random_hex }
        - Payload: { "sub": key_name, "iss": "cdp", "aud": [...], "nbf": now,
          "exp": now+120, "uri": "METHOD host/path" }

        The uri claim never carries the query string.
        """
        path = path.split("?", 1)[0].rstrip("/") or "/"
        now = int(time.time())

        header = {
            "alg": "ES256",
            "kid": self._credential.key_id,
            "nonce": secrets.token_hex(16),
        }
        payload = {
            "sub": self._credential.key_id,
            "iss": JWT_ISSUER,
            "aud": JWT_AUDIENCE,
            "nbf": now,
            "exp": now + JWT_TTL_SECONDS,
            "uri": f"{method.upper()} {self.host}{path}",
        }

        try:
            # PyJWT emits the raw r||s signature form required by JWS for ES256
            return jwt.encode(payload, self._credential.secret, algorithm="ES256", headers=header)
        except Exception as e:
            # Never include key material in error messages
            logger.error("JWT signing failed: %s", type(e).__name__)
            raise SigningError("Failed to sign request") from e

    def sign(self, method: str, path: str, body: str = "") -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self.build_jwt(method, path)}",
            "Content-Type": "application/json",
        }


def build_signer(settings: Settings) -> RequestSigner:
    """Construct the signer selected by COINBASE_AUTH_SCHEME.

    Raises:
        ConfigurationError: If credentials for the selected scheme are missing
    """
    settings.validate_auth_scheme()
    credential = settings.coinbase_credential()
    if settings.coinbase_auth_scheme.lower() == "jwt":
        return JwtSigner(credential, host=settings.coinbase_api_host)
    return HmacSigner(credential)
