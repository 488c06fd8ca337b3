# src/promoreel/services/token_signer.py

"""
Service-account authentication against Google Cloud.

Builds an RS256-signed JWT assertion for a service account and exchanges it
at the OAuth token endpoint for a short-lived bearer token.
"""

import json
import time
import logging

import httpx
import jwt
from pydantic import BaseModel, ValidationError
from opentelemetry import trace

from promoreel.errors import AuthError

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

TOKEN_URI = "https://oauth2.googleapis.com/token"
CLOUD_PLATFORM_SCOPE = "https://www.googleapis.com/auth/cloud-platform"
JWT_BEARER_GRANT = "urn:ietf:params:oauth:grant-type:jwt-bearer"
ASSERTION_LIFETIME_SECONDS = 3600


class ServiceAccountCredentials(BaseModel):
    """The subset of a service-account JSON key file the signer needs."""

    client_email: str
    private_key: str
    private_key_id: str | None = None
    token_uri: str = TOKEN_URI

    @classmethod
    def from_json(cls, raw: str) -> "ServiceAccountCredentials":
        try:
            return cls.model_validate(json.loads(raw))
        except (ValueError, TypeError, ValidationError) as e:
            raise AuthError("Service account credentials are malformed") from e


class TokenSigner:
    """
    Mints bearer tokens for the AI platform.

    Tokens are never cached; every caller gets a fresh one.
    """

    def __init__(
        self,
        credentials: ServiceAccountCredentials,
        scope: str = CLOUD_PLATFORM_SCOPE,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.credentials = credentials
        self.scope = scope
        self.timeout = timeout
        self._transport = transport

    @classmethod
    def from_service_account_json(cls, raw: str | None, **kwargs) -> "TokenSigner":
        if not raw:
            raise AuthError("Service account credentials not configured")
        return cls(ServiceAccountCredentials.from_json(raw), **kwargs)

    def build_assertion(self, now: int | None = None) -> str:
        """
        Sign the JWT assertion presented to the token endpoint.

        Returns:
            Compact JWS string (header.claims.signature)
        """
        now = int(time.time()) if now is None else now
        claims = {
            "iss": self.credentials.client_email,
            "scope": self.scope,
            "aud": self.credentials.token_uri,
            "iat": now,
            "exp": now + ASSERTION_LIFETIME_SECONDS,
        }
        headers = {"kid": self.credentials.private_key_id} if self.credentials.private_key_id else None

        try:
            return jwt.encode(claims, self.credentials.private_key, algorithm="RS256", headers=headers)
        except (ValueError, TypeError, jwt.PyJWTError) as e:
            # cryptography raises ValueError for keys it cannot load
            logger.error("Failed to sign service account assertion for %s", self.credentials.client_email)
            raise AuthError("Failed to sign service account assertion") from e

    async def fetch_access_token(self) -> str:
        """
        Exchange a freshly signed assertion for a bearer token.

        Returns:
            OAuth2 access token
        """
        with tracer.start_as_current_span("gcp.fetch_access_token") as span:
            span.set_attribute("gcp.principal", self.credentials.client_email)
            assertion = self.build_assertion()

            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                try:
                    response = await client.post(
                        self.credentials.token_uri,
                        data={"grant_type": JWT_BEARER_GRANT, "assertion": assertion},
                    )
                except httpx.HTTPError as e:
                    logger.exception("HTTP error during token exchange")
                    raise AuthError(f"Token exchange request failed: {e}") from e

            if response.status_code != 200:
                logger.error(
                    "Token exchange failed with HTTP %s: %s",
                    response.status_code,
                    response.text[:200],
                )
                span.set_attribute("error", True)
                raise AuthError(f"Failed to get access token: HTTP {response.status_code}")

            try:
                token = response.json().get("access_token")
            except ValueError as e:
                raise AuthError("Token endpoint returned a non-JSON body") from e

            if not token:
                raise AuthError("Token endpoint response did not include access_token")

            logger.debug("Obtained access token for %s", self.credentials.client_email)
            return token


class DeferredTokenSigner:
    """
    Parses the service-account key on the first token request.

    Lets a pipeline be built where GCP credentials are absent, as long as
    nothing asks it for a token.
    """

    def __init__(self, raw: str | None, **kwargs):
        self._raw = raw
        self._kwargs = kwargs
        self._signer: TokenSigner | None = None

    @property
    def signer(self) -> TokenSigner:
        if self._signer is None:
            self._signer = TokenSigner.from_service_account_json(self._raw, **self._kwargs)
        return self._signer

    async def fetch_access_token(self) -> str:
        return await self.signer.fetch_access_token()
