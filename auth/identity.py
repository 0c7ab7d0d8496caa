# auth/identity.py
"""
Bearer credential verification.

Tokens are issued by the external identity provider; this service only
verifies them and extracts the subject. create_access_token exists for
local development and tests.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

from jose import JWTError, jwt

_logger = logging.getLogger(__name__)

ACCESS_TOKEN_EXPIRE_MINUTES = 60


class AuthError(Exception):
    """Base authentication error."""
    pass


class InvalidCredentialsError(AuthError):
    """Bearer credential missing, malformed, expired or not signed by the provider."""
    pass


class Forbidden(AuthError):
    """Authenticated subject does not match the account being acted on."""
    pass


class IdentityVerifier:
    """
    Verify JWT bearer credentials and return the authenticated subject.

    Args:
        secret: HMAC secret or PEM public key of the identity provider
        algorithm: JWS algorithm (HS256, RS256, ...)
        audience: Expected "aud" claim, if any
        issuer: Expected "iss" claim, if any
    """

    def __init__(
        self,
        secret: str,
        algorithm: str = "HS256",
        audience: Optional[str] = None,
        issuer: Optional[str] = None,
    ):
        self.secret = secret
        self.algorithm = algorithm
        self.audience = audience
        self.issuer = issuer

    def verify(self, credential: Optional[str]) -> str:
        """
        Verify a bearer credential.

        Returns:
            Subject ID ("sub" claim)

        Raises:
            InvalidCredentialsError: If the credential cannot be trusted
        """
        if not self.secret:
            raise InvalidCredentialsError("Identity verification is not configured")
        if not credential:
            raise InvalidCredentialsError("Missing bearer credential")

        try:
            claims = jwt.decode(
                credential,
                self.secret,
                algorithms=[self.algorithm],
                audience=self.audience,
                issuer=self.issuer,
                options={"verify_aud": self.audience is not None},
            )
        except JWTError as e:
            _logger.warning(f"Rejected bearer credential: {e}")
            raise InvalidCredentialsError("Invalid or expired token") from e

        subject = claims.get("sub")
        if not subject or not isinstance(subject, str):
            raise InvalidCredentialsError("Token has no subject")

        return subject

    def create_access_token(
        self,
        subject: str,
        expires_delta: Optional[timedelta] = None,
        **claims,
    ) -> str:
        """Create a signed token for a subject (development and tests)."""
        expire = datetime.now(timezone.utc) + (
            expires_delta or timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES)
        )
        to_encode = {"sub": subject, "exp": expire, **claims}
        if self.audience:
            to_encode.setdefault("aud", self.audience)
        if self.issuer:
            to_encode.setdefault("iss", self.issuer)
        return jwt.encode(to_encode, self.secret, algorithm=self.algorithm)


def ensure_subject(subject: str, user_id: str) -> None:
    """
    Check that the authenticated subject is acting on its own account.

    Raises:
        Forbidden: On mismatch
    """
    if subject != user_id:
        _logger.warning(f"Subject {subject} attempted to act on account {user_id}")
        raise Forbidden("You can only access your own account")
