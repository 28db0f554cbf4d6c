from __future__ import annotations

from dataclasses import dataclass
import logging
import time
from typing import Any

import httpx
import jwt
from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric.rsa import RSAPrivateKey

from pushworker.core.config import Settings
from pushworker.core.errors import AuthError, ProviderConfigError
from pushworker.services.telemetry import increment_counter, record_external_call


logger = logging.getLogger(__name__)

JWT_BEARER_GRANT_TYPE = "urn:ietf:params:oauth:grant-type:jwt-bearer"


@dataclass(frozen=True)
class AccessToken:
    value: str
    expires_at: float

    def is_fresh(self, *, now: float, skew_s: int) -> bool:
        return now < self.expires_at - max(0, skew_s)


def normalize_private_key_pem(raw: str) -> str:
    # Env vars carry the PEM with escaped newlines.
    return raw.replace("\\n", "\n").strip()


def load_service_account_key(raw_pem: str) -> RSAPrivateKey:
    """Import a PEM-encoded RSA private key (PKCS#8 or PKCS#1).

    Anything else is rejected with ``AuthError``; no attempt is made to guess
    other encodings.
    """
    pem = normalize_private_key_pem(raw_pem)
    if not pem.startswith("-----BEGIN"):
        raise AuthError("service account private key is not PEM encoded")
    try:
        key = serialization.load_pem_private_key(pem.encode("utf-8"), password=None)
    except (ValueError, TypeError, UnsupportedAlgorithm) as exc:
        raise AuthError("service account private key could not be parsed") from exc
    if not isinstance(key, RSAPrivateKey):
        raise AuthError("service account private key is not an RSA key")
    return key


class ServiceAccountSigner:
    """Obtain FCM bearer tokens through the signed JWT assertion flow.

    Tokens are cached until shortly before expiry, so a long-running loop can
    reuse one signer while a one-shot invocation still exchanges exactly once.
    """

    def __init__(self, settings: Settings, client: httpx.AsyncClient | None = None) -> None:
        self._settings = settings
        self._client = client
        self._owns_client = False
        self._cached: AccessToken | None = None
        self._key: RSAPrivateKey | None = None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is not None:
            return self._client
        self._client = httpx.AsyncClient(timeout=self._settings.push_gateway_timeout_s)
        self._owns_client = True
        return self._client

    def _now(self) -> float:
        return time.time()

    def _signing_key(self) -> RSAPrivateKey:
        if self._key is not None:
            return self._key
        raw_key = self._settings.fcm_private_key
        if raw_key is None or not raw_key.get_secret_value().strip():
            raise ProviderConfigError("FCM_PRIVATE_KEY is required for push delivery")
        self._key = load_service_account_key(raw_key.get_secret_value())
        return self._key

    def build_assertion(self, *, now: float | None = None) -> str:
        client_email = (self._settings.fcm_client_email or "").strip()
        if not client_email:
            raise ProviderConfigError("FCM_CLIENT_EMAIL is required for push delivery")
        issued_at = int(now if now is not None else self._now())
        claims = {
            "iss": client_email,
            "scope": self._settings.fcm_scope,
            "aud": self._settings.fcm_token_uri,
            "iat": issued_at,
            "exp": issued_at + int(self._settings.fcm_assertion_ttl_s),
        }
        try:
            return jwt.encode(claims, self._signing_key(), algorithm="RS256", headers={"typ": "JWT"})
        except jwt.PyJWTError as exc:
            raise AuthError("service account assertion could not be signed") from exc

    async def _exchange(self, assertion: str) -> dict[str, Any]:
        client = self._get_client()
        start = time.monotonic()
        try:
            response = await client.post(
                self._settings.fcm_token_uri,
                data={"grant_type": JWT_BEARER_GRANT_TYPE, "assertion": assertion},
            )
        except httpx.HTTPError as exc:
            record_external_call(
                integration="oauth.token",
                latency_ms=(time.monotonic() - start) * 1000.0,
                success=False,
            )
            logger.warning("oauth_token_exchange_transport_error error=%s", exc.__class__.__name__)
            raise AuthError(f"token exchange request failed: {exc.__class__.__name__}") from exc
        record_external_call(
            integration="oauth.token",
            latency_ms=(time.monotonic() - start) * 1000.0,
            success=response.is_success,
        )
        if not response.is_success:
            logger.warning("oauth_token_exchange_failed status=%s", response.status_code)
            raise AuthError(f"token exchange failed with status {response.status_code}: {response.text[:300]}")
        try:
            body = response.json()
        except ValueError as exc:
            raise AuthError("token exchange returned a non-JSON body") from exc
        if not isinstance(body, dict) or not body.get("access_token"):
            raise AuthError("token exchange response missing access_token")
        return body

    async def get_access_token(self, *, force_refresh: bool = False) -> str:
        now = self._now()
        cached = self._cached
        if not force_refresh and cached is not None and cached.is_fresh(
            now=now, skew_s=self._settings.push_token_refresh_skew_s
        ):
            return cached.value
        assertion = self.build_assertion(now=now)
        body = await self._exchange(assertion)
        try:
            expires_in = int(body.get("expires_in") or self._settings.fcm_assertion_ttl_s)
        except (TypeError, ValueError):
            expires_in = int(self._settings.fcm_assertion_ttl_s)
        self._cached = AccessToken(value=str(body["access_token"]), expires_at=now + expires_in)
        increment_counter("push_access_tokens_issued_total")
        logger.info("oauth_token_issued expires_in=%s", expires_in)
        return self._cached.value

    async def aclose(self) -> None:
        # Injected clients belong to the caller.
        if self._owns_client and self._client is not None:
            await self._client.aclose()
            self._client = None
            self._owns_client = False
