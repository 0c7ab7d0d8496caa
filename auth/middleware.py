# auth/middleware.py
"""
FastAPI authentication dependencies.

Provides:
- Bearer credential extraction
- Authenticated subject injection into route handlers
- Path user_id / subject matching
"""

from __future__ import annotations

from typing import Optional

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from auth.identity import IdentityVerifier, ensure_subject

# auto_error=False so a missing header surfaces as our 401, not FastAPI's 403
security = HTTPBearer(auto_error=False)


def get_identity_verifier(request: Request) -> IdentityVerifier:
    """FastAPI dependency: the verifier built at startup."""
    return request.app.state.identity_verifier


async def get_authenticated_subject(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    verifier: IdentityVerifier = Depends(get_identity_verifier),
) -> str:
    """
    FastAPI dependency: Get the authenticated subject (required).

    Raises InvalidCredentialsError (401) if the credential is missing
    or invalid.
    """
    credential = credentials.credentials if credentials else None
    return verifier.verify(credential)


async def require_path_user(
    user_id: str,
    subject: str = Depends(get_authenticated_subject),
) -> str:
    """
    FastAPI dependency: the {user_id} path parameter, checked against the subject.

    Usage:
        @router.get("/account/{user_id}")
        async def get_account(user_id: str = Depends(require_path_user)):
            ...
    """
    ensure_subject(subject, user_id)
    return user_id
