# auth/__init__.py
"""
Authentication module.

Provides:
- Verification of identity-provider bearer tokens (JWT)
- FastAPI dependencies for the authenticated subject
- Subject / account ownership checks
"""

from auth.identity import (
    AuthError,
    Forbidden,
    IdentityVerifier,
    InvalidCredentialsError,
    ensure_subject,
)
from auth.middleware import get_authenticated_subject, require_path_user

__all__ = [
    "AuthError",
    "Forbidden",
    "IdentityVerifier",
    "InvalidCredentialsError",
    "ensure_subject",
    "get_authenticated_subject",
    "require_path_user",
]
