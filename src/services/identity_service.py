"""Bearer token verification."""

import asyncio
import logging
from typing import Protocol

from firebase_admin import auth
from firebase_admin.exceptions import FirebaseError
from itsdangerous import BadSignature, SignatureExpired, URLSafeTimedSerializer

from src.core.config import Settings
from src.core.errors import Unauthorized, UpstreamError
from src.core.firebase_store import get_firebase_app


logger = logging.getLogger(__name__)


class IdentityVerifier(Protocol):
    """Turns a bearer credential into the caller's uid."""

    async def verify(self, token: str) -> str:
        """Return the uid for ``token``.

        Raises:
            Unauthorized: If the token is missing, malformed, expired or revoked
            UpstreamError: If the identity provider cannot be reached
        """
        ...


class SignedTokenVerifier:
    """Verifies tokens signed with the application secret (local development and tests)."""

    def __init__(self, secret_key: str, *, max_age_seconds: int = 86400) -> None:
        self._serializer = URLSafeTimedSerializer(secret_key, salt="grocerease-identity")
        self._max_age_seconds = max_age_seconds

    def issue(self, uid: str) -> str:
        """Sign a token for ``uid``."""
        return self._serializer.dumps({"uid": uid})

    async def verify(self, token: str) -> str:
        if not token:
            raise Unauthorized("Missing authentication token")
        try:
            payload = self._serializer.loads(token, max_age=self._max_age_seconds)
        except SignatureExpired as e:
            logger.warning("identity_token_expired")
            raise Unauthorized("Authentication token expired") from e
        except BadSignature as e:
            logger.warning("identity_token_invalid")
            raise Unauthorized("Invalid authentication token") from e

        uid = payload.get("uid") if isinstance(payload, dict) else None
        if not uid:
            raise Unauthorized("Invalid authentication token")
        return uid


class FirebaseIdentityVerifier:
    """Verifies Firebase ID tokens with firebase-admin."""

    def __init__(self, settings: Settings) -> None:
        self._settings = settings

    async def verify(self, token: str) -> str:
        if not token:
            raise Unauthorized("Missing authentication token")
        app = get_firebase_app(self._settings)
        try:
            decoded = await asyncio.to_thread(auth.verify_id_token, token, app)
        except (auth.InvalidIdTokenError, auth.ExpiredIdTokenError, auth.RevokedIdTokenError, ValueError) as e:
            logger.warning("identity_token_rejected", extra={"error": str(e)})
            raise Unauthorized("Invalid authentication token") from e
        except (auth.CertificateFetchError, FirebaseError) as e:
            logger.error("identity_provider_failed", extra={"error": str(e)})
            raise UpstreamError("Identity provider unavailable") from e
        return decoded["uid"]


def bearer_token(authorization: str | None) -> str:
    """Extract the token from an ``Authorization: Bearer ...`` header value."""
    if not authorization:
        return ""
    scheme, _, token = authorization.strip().partition(" ")
    if scheme.lower() != "bearer":
        return ""
    return token.strip()
