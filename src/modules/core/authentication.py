"""Identity-provider ID token authentication for Django REST Framework.

Customers sign in with the canteen's OAuth identity provider (Google by
default).  The frontend forwards the provider-issued ID token as a Bearer
token; this backend verifies it with PyJWT against the provider's JWKS and
exposes the verified ``(subject, email, name)`` triple as
``request.user``.

Security decisions
------------------
* **Fail Closed**: any decode / validation error returns 401.
* ``algorithms`` is hard-coded to RS256, never derived from the token header.
* Audience (our OAuth client id) **and** issuer are always validated.
* Tokens whose issuer is not the identity provider are left for the next
  authentication class (SimpleJWT for staff).
"""

from __future__ import annotations

from typing import Optional

import jwt as pyjwt
import structlog
from django.conf import settings
from jwt import PyJWKClient
from jwt.exceptions import PyJWTError
from rest_framework.authentication import BaseAuthentication
from rest_framework.exceptions import AuthenticationFailed

logger = structlog.get_logger(__name__)

ID_TOKEN_ALGORITHM = "RS256"

_jwks_clients: dict[str, PyJWKClient] = {}


def _get_jwks_client(url: str) -> PyJWKClient:
    # PyJWKClient caches the key set itself (300 s lifespan)
    client = _jwks_clients.get(url)
    if client is None:
        client = PyJWKClient(url, cache_jwk_set=True, lifespan=300)
        _jwks_clients[url] = client
    return client


class CustomerIdentity:
    """Verified customer principal supplied by the identity provider.

    The provider is the source of truth: there is no local ``User`` row.
    """

    def __init__(self, payload: dict):
        self.payload = payload
        self.sub: str = payload.get("sub", "")
        self.email: str = payload.get("email", "")
        self.name: str = payload.get("name") or self.email

    # DRF checks
    is_authenticated = True
    is_active = True
    is_staff = False

    @property
    def pk(self) -> str:
        # Throttle cache key
        return self.sub

    def __str__(self) -> str:  # pragma: no cover
        return self.sub


class IdentityProviderAuthentication(BaseAuthentication):
    """DRF authentication class that validates identity-provider ID tokens."""

    keyword = "Bearer"

    def authenticate(self, request):
        """Return ``(CustomerIdentity, token)`` or ``None`` (no credentials)."""
        header = request.META.get("HTTP_AUTHORIZATION", "")
        if not header:
            return None

        token = self._extract_token(header)
        if not settings.IDENTITY_PROVIDER_CLIENT_ID:
            return None
        if not self._token_has_provider_issuer(token):
            return None

        payload = self._decode_token(token)
        if not payload.get("email"):
            raise AuthenticationFailed("ID token carries no e-mail claim.")
        if payload.get("email_verified") is False:
            raise AuthenticationFailed("E-mail address is not verified.")

        identity = CustomerIdentity(payload)
        logger.info("id_token_authenticated", sub=identity.sub)
        return (identity, token)

    def authenticate_header(self, request):
        """Value for the ``WWW-Authenticate`` response header on 401."""
        return f'{self.keyword} realm="api"'

    @staticmethod
    def _extract_token(header: str) -> str:
        parts = header.split()
        if len(parts) != 2 or parts[0].lower() != "bearer":
            raise AuthenticationFailed("Invalid Authorization header format.")
        return parts[1]

    @staticmethod
    def _token_has_provider_issuer(token: str) -> bool:
        try:
            payload = pyjwt.decode(
                token,
                options={
                    "verify_signature": False,
                    "verify_aud": False,
                    "verify_iss": False,
                },
            )
        except PyJWTError:
            return False
        return payload.get("iss") == settings.IDENTITY_PROVIDER_ISSUER

    @staticmethod
    def _decode_token(token: str) -> dict:
        client = _get_jwks_client(settings.IDENTITY_PROVIDER_JWKS_URL)
        try:
            signing_key = client.get_signing_key_from_jwt(token)
            payload = pyjwt.decode(
                token,
                signing_key.key,
                algorithms=[ID_TOKEN_ALGORITHM],
                audience=settings.IDENTITY_PROVIDER_CLIENT_ID,
                issuer=settings.IDENTITY_PROVIDER_ISSUER,
            )
        except PyJWTError as exc:
            logger.warning("id_token_validation_failed", error=str(exc))
            raise AuthenticationFailed(f"Token validation failed: {exc}") from exc
        return payload


def identity_from_user(user) -> Optional[CustomerIdentity]:
    """Return the customer principal of a request, if it is one."""
    return user if isinstance(user, CustomerIdentity) else None
